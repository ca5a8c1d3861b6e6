"""
Local key-value persistence for the business list.

Holds the cache envelope (businesses + categories + timestamp) and any other
small JSON documents, such as the favorites list, that must survive restarts.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from typing import Protocol

from pydantic import ValidationError

from localfy.models.business import Business, CacheEnvelope, PageCursor

LOGGER = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    async def get_item(self, key: str) -> str | None: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...


class MemoryKeyValueStorage:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.items: dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    async def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class FileKeyValueStorage:
    """
    One file per key under a root directory.

    Blocking file I/O runs in a worker thread so the event loop keeps serving.
    """

    _UNSAFE_CHARS_REGEX = re.compile(r"[^A-Za-z0-9_.-]")

    def __init__(self, root: str) -> None:
        self.root = root
        os.makedirs(self.root, exist_ok=True)
        LOGGER.info("Initialized FileKeyValueStorage with root=%s", root)

    async def get_item(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, self._path(key))

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, self._path(key), value)

    async def remove_item(self, key: str) -> None:
        await asyncio.to_thread(self._remove, self._path(key))

    def _path(self, key: str) -> str:
        safe_key = self._UNSAFE_CHARS_REGEX.sub("_", key) or "_"
        return os.path.join(self.root, f"{safe_key}.json")

    @staticmethod
    def _read(path: str) -> str | None:
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as handle:
            return handle.read()

    @staticmethod
    def _write(path: str, value: str) -> None:
        # Write-then-rename so a crash never leaves a half-written cache file.
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as handle:
            handle.write(value)
        os.replace(tmp_path, path)

    @staticmethod
    def _remove(path: str) -> None:
        if os.path.exists(path):
            os.remove(path)


def now_millis() -> int:
    return int(time.time() * 1000)


class BusinessCacheStore:
    DEFAULT_VALIDITY_SECONDS = 300
    DEFAULT_CACHE_KEY = "businesses_cache"

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        validity_seconds: float = DEFAULT_VALIDITY_SECONDS,
        cache_key: str = DEFAULT_CACHE_KEY,
    ) -> None:
        self._storage = storage
        self._validity_millis = int(validity_seconds * 1000)
        self._cache_key = cache_key
        self._loading = False

    @property
    def validity_millis(self) -> int:
        return self._validity_millis

    @property
    def loading(self) -> bool:
        return self._loading

    async def save(
        self,
        businesses: list[Business],
        categories: list[str],
        cursor: PageCursor | None = None,
    ) -> None:
        envelope = CacheEnvelope(
            businesses=list(businesses),
            categories=list(categories),
            last_updated=now_millis(),
            cursor=cursor,
        )
        try:
            await self._storage.set_item(self._cache_key, envelope.model_dump_json(by_alias=True))
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to persist business cache key=%s", self._cache_key)
            return
        LOGGER.debug("Persisted %d businesses to cache key=%s", len(businesses), self._cache_key)

    async def load(self) -> CacheEnvelope | None:
        if self._loading:
            LOGGER.debug("Cache load already in flight; skipping.")
            return None

        self._loading = True
        try:
            try:
                raw = await self._storage.get_item(self._cache_key)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Failed to read business cache key=%s", self._cache_key)
                return None

            if not raw:
                return None

            try:
                return CacheEnvelope.model_validate_json(raw)
            except ValidationError as exc:
                LOGGER.warning("Discarding corrupt business cache key=%s: %s", self._cache_key, exc.error_count())
                return None
        finally:
            self._loading = False

    def is_cache_valid(self, envelope: CacheEnvelope | None, now: int | None = None) -> bool:
        if envelope is None:
            return False
        current = now_millis() if now is None else now
        return current - envelope.last_updated < self._validity_millis
