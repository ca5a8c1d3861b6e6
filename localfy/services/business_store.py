from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel

from localfy.models.business import Business, CacheEnvelope, PageCursor, RawBusinessDocument
from localfy.services.auth import AuthSession
from localfy.services.business_observers import BusinessObserverManager
from localfy.services.business_repository import BusinessRepository
from localfy.services.cancellation import CancellationToken
from localfy.services.local_cache import BusinessCacheStore, KeyValueStorage, now_millis
from localfy.services.normalizer import normalize_business

LOGGER = logging.getLogger(__name__)


class StoreStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class BusinessStore:
    """Single source of truth for the business list served to consumers.

    Owns the full list, the category-filtered view, pagination state and the
    favorites set. Reads go through the persisted cache before hitting the
    remote collection; live listeners patch records in place.
    """

    FETCH_ERROR_MESSAGE = "Could not load businesses. Please try again later."
    _READ_ONLY_FIELDS = {"id", "created_at", "updated_at"}

    def __init__(
        self,
        repository: BusinessRepository,
        cache_store: BusinessCacheStore,
        favorites_storage: KeyValueStorage,
        *,
        auth: AuthSession | None = None,
        page_size: int = BusinessRepository.DEFAULT_PAGE_SIZE,
        favorites_key: str = "favorites",
        favorites_persist_delay: float = 0.05,
    ) -> None:
        self._repository = repository
        self._cache_store = cache_store
        self._favorites_storage = favorites_storage
        self._auth = auth
        self._page_size = max(1, int(page_size))
        self._favorites_key = favorites_key
        self._favorites_persist_delay = max(0.0, float(favorites_persist_delay))

        self._businesses: list[Business] = []
        self._filtered: list[Business] = []
        self._categories: list[str] = []
        self._selected_category: str | None = None
        self._status = StoreStatus.IDLE
        self._error: str | None = None
        self._cursor: PageCursor | None = None
        self._has_more = True
        self._last_updated: int | None = None
        self._refreshing = False
        self._loading_more = False

        self._favorites: set[str] = set()
        self._persisted_favorites: list[str] | None = None
        self._favorites_task: asyncio.Task | None = None

        self._lifetime = CancellationToken()
        self._background: set[asyncio.Task] = set()
        self._auth_unsubscribe: Callable[[], None] | None = None
        self._observers = BusinessObserverManager(
            subscribe=repository.watch_document,
            on_change=self._apply_remote_change,
        )

    @property
    def businesses(self) -> list[Business]:
        return list(self._businesses)

    @property
    def filtered_businesses(self) -> list[Business]:
        return list(self._filtered)

    @property
    def categories(self) -> list[str]:
        return list(self._categories)

    @property
    def selected_category(self) -> str | None:
        return self._selected_category

    @property
    def status(self) -> StoreStatus:
        return self._status

    @property
    def loading(self) -> bool:
        return self._status is StoreStatus.LOADING

    @property
    def ready(self) -> bool:
        return self._status in {StoreStatus.READY, StoreStatus.ERROR}

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def cursor(self) -> PageCursor | None:
        return self._cursor

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def loading_more(self) -> bool:
        return self._loading_more

    @property
    def favorites(self) -> list[str]:
        return sorted(self._favorites)

    @property
    def observed_ids(self) -> set[str]:
        return self._observers.active_ids

    @property
    def disposed(self) -> bool:
        return self._lifetime.cancelled

    def new_token(self) -> CancellationToken:
        return self._lifetime.child()

    async def init(self) -> None:
        await self._load_local_favorites()
        if self._auth is not None:
            self._auth_unsubscribe = self._auth.subscribe(self._on_auth_changed)
            if self._auth.current_user_id:
                await self._sync_remote_favorites(self._auth.current_user_id)
        await self.refresh()

    async def dispose(self) -> None:
        if self._lifetime.cancelled:
            return
        self._lifetime.cancel()
        self._observers.close()
        if self._auth_unsubscribe is not None:
            self._auth_unsubscribe()
            self._auth_unsubscribe = None
        for task in list(self._background):
            task.cancel()
        await self.flush_favorites()

    async def refresh(self, *, force: bool = False, token: CancellationToken | None = None) -> None:
        if self._refreshing:
            return

        self._refreshing = True
        previous_status = self._status
        try:
            if not force and self._memory_is_fresh():
                self._error = None
                self._status = StoreStatus.READY
                return

            self._status = StoreStatus.LOADING
            self._error = None

            if not force:
                envelope = await self._cache_store.load()
                if self._is_cancelled(token):
                    self._restore_status(previous_status)
                    return
                if self._cache_store.is_cache_valid(envelope):
                    self._hydrate(envelope)
                    self._status = StoreStatus.READY
                    LOGGER.info("Hydrated %d businesses from local cache", len(self._businesses))
                    return

            try:
                page = await self._repository.fetch_page(page_size=self._page_size)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Failed to refresh businesses")
                if self._is_cancelled(token):
                    self._restore_status(previous_status)
                    return
                self._error = self.FETCH_ERROR_MESSAGE
                self._status = StoreStatus.ERROR
                return

            if self._is_cancelled(token):
                self._restore_status(previous_status)
                return

            self._businesses = self._normalize_documents(page.documents)
            self._categories = self._collect_categories(self._businesses)
            self._refilter()
            self._cursor = page.cursor
            self._has_more = page.has_more
            self._last_updated = now_millis()
            await self._cache_store.save(self._businesses, self._categories, self._cursor)
            self._status = StoreStatus.READY
            LOGGER.info("Fetched %d businesses (has_more=%s)", len(self._businesses), self._has_more)
        finally:
            self._refreshing = False

    async def load_more(self, *, token: CancellationToken | None = None) -> None:
        if self._loading_more or not self._has_more or self._cursor is None:
            return

        self._loading_more = True
        try:
            try:
                page = await self._repository.fetch_page(
                    category=self._selected_category,
                    cursor=self._cursor,
                    page_size=self._page_size,
                )
            except Exception:  # noqa: BLE001
                LOGGER.exception("Failed to load more businesses")
                if not self._is_cancelled(token):
                    self._error = self.FETCH_ERROR_MESSAGE
                return

            if self._is_cancelled(token):
                return

            known_ids = {business.id for business in self._businesses}
            appended = self._normalize_documents(page.documents, known_ids=known_ids)
            self._businesses = [*self._businesses, *appended]
            self._categories = self._collect_categories(self._businesses)
            self._refilter()
            if page.cursor is not None:
                self._cursor = page.cursor
            self._has_more = page.has_more
            self._error = None
            await self._cache_store.save(self._businesses, self._categories, self._cursor)
            LOGGER.debug("Appended %d businesses (has_more=%s)", len(appended), self._has_more)
        finally:
            self._loading_more = False

    def set_selected_category(self, category: str | None) -> None:
        cleaned = category.strip() if isinstance(category, str) else None
        self._selected_category = cleaned or None
        self._refilter()

    def reset_pagination(self) -> None:
        self._cursor = None
        self._has_more = True

    def toggle_favorite(self, business_id: str) -> bool:
        self._favorites ^= {business_id}
        self._schedule_favorites_persist()
        return business_id in self._favorites

    def is_favorite(self, business_id: str) -> bool:
        return business_id in self._favorites

    def favorite_businesses(self) -> list[Business]:
        return [business for business in self._businesses if business.id in self._favorites]

    async def flush_favorites(self) -> None:
        task = self._favorites_task
        self._favorites_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._persist_favorites()

    async def get_business_by_id(self, business_id: str) -> Business | None:
        for business in self._businesses:
            if business.id == business_id:
                return business

        try:
            document = await self._repository.get_document(business_id)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to fetch business=%s", business_id)
            return None
        if document is None:
            return None
        return normalize_business(document.id, document.data)

    async def update_business(self, business_id: str, fields: dict[str, Any]) -> bool:
        remote_fields = self._to_remote_fields(fields)
        now = datetime.now(timezone.utc)

        patched: Business | None = None
        updated_list: list[Business] = []
        for business in self._businesses:
            if business.id == business_id:
                patched = self._patch(business, remote_fields, now)
                updated_list.append(patched)
            else:
                updated_list.append(business)

        if patched is not None:
            self._businesses = updated_list
            self._categories = self._collect_categories(self._businesses)
            self._refilter()
            await self._cache_store.save(self._businesses, self._categories, self._cursor)

        # The remote gets the caller's values as sent; only the local copy is normalized.
        try:
            await self._repository.update_document(business_id, remote_fields)
        except Exception:  # noqa: BLE001
            # No rollback: local state stays ahead of the remote until the next refresh.
            LOGGER.exception("Failed to update business=%s", business_id)
            return False
        return True

    async def owned_businesses(self, owner_id: str) -> list[Business]:
        try:
            documents = await self._repository.fetch_owned(owner_id)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to fetch businesses owned by=%s", owner_id)
            return []
        return self._normalize_documents(documents)

    def observe(self, ids: Iterable[str]) -> Callable[[], None]:
        if self._lifetime.cancelled:
            return lambda: None
        return self._observers.observe(ids)

    def _memory_is_fresh(self) -> bool:
        if self._last_updated is None:
            return False
        return now_millis() - self._last_updated < self._cache_store.validity_millis

    def _is_cancelled(self, token: CancellationToken | None) -> bool:
        return self._lifetime.cancelled or (token is not None and token.cancelled)

    def _restore_status(self, previous: StoreStatus) -> None:
        self._status = previous if previous is not StoreStatus.LOADING else StoreStatus.IDLE

    def _hydrate(self, envelope: CacheEnvelope) -> None:
        self._businesses = self._dedupe(envelope.businesses)
        cached_categories = [category for category in envelope.categories if category]
        self._categories = cached_categories or self._collect_categories(self._businesses)
        self._refilter()
        self._last_updated = envelope.last_updated
        if envelope.cursor is not None:
            self._cursor = envelope.cursor
        elif self._businesses:
            # Cursors are keyset-based, so the last cached record is enough to resume paging.
            last = self._businesses[-1]
            self._cursor = PageCursor(created_at=last.created_at, document_id=last.id)
        else:
            self._cursor = None
        self._has_more = bool(self._businesses) and len(self._businesses) % self._page_size == 0

    def _refilter(self) -> None:
        category = self._selected_category
        if category is None:
            self._filtered = list(self._businesses)
        else:
            self._filtered = [business for business in self._businesses if business.category == category]

    def _normalize_documents(
        self,
        documents: Iterable[RawBusinessDocument],
        *,
        known_ids: set[str] | None = None,
    ) -> list[Business]:
        seen = set(known_ids or ())
        businesses: list[Business] = []
        for document in documents:
            if document.id in seen:
                continue
            seen.add(document.id)
            businesses.append(normalize_business(document.id, document.data))
        return businesses

    def _dedupe(self, businesses: Iterable[Business]) -> list[Business]:
        seen: set[str] = set()
        unique: list[Business] = []
        for business in businesses:
            if business.id in seen:
                continue
            seen.add(business.id)
            unique.append(business)
        return unique

    def _collect_categories(self, businesses: Iterable[Business]) -> list[str]:
        categories: list[str] = []
        for business in businesses:
            if business.category and business.category not in categories:
                categories.append(business.category)
        return categories

    def _field_names(self, fields: dict[str, Any]) -> list[str]:
        aliases = {info.alias: name for name, info in Business.model_fields.items() if info.alias}
        names: list[str] = []
        unknown: list[str] = []
        for key in fields:
            name = key if key in Business.model_fields else aliases.get(key)
            if name is None or name in self._READ_ONLY_FIELDS:
                unknown.append(key)
                continue
            names.append(name)
        if unknown:
            raise ValueError(f"Unknown or read-only business fields: {', '.join(sorted(unknown))}.")
        return names

    def _to_remote_fields(self, fields: dict[str, Any]) -> dict[str, Any]:
        names = self._field_names(fields)
        remote: dict[str, Any] = {}
        for key, name in zip(fields, names):
            value = fields[key]
            if isinstance(value, list):
                value = [self._dump_value(item) for item in value]
            elif isinstance(value, dict):
                value = {item_key: self._dump_value(item) for item_key, item in value.items()}
            remote[Business.model_fields[name].alias or name] = self._dump_value(value)
        return remote

    def _dump_value(self, value: Any) -> Any:
        if isinstance(value, BaseModel):
            return value.model_dump(mode="python", by_alias=True)
        return value

    def _patch(self, business: Business, remote_fields: dict[str, Any], now: datetime) -> Business:
        payload = business.model_dump(mode="python", by_alias=True)
        payload.update(remote_fields)
        payload["updatedAt"] = now
        return normalize_business(business.id, payload)

    def _apply_remote_change(self, business_id: str, data: dict[str, Any]) -> None:
        if self._lifetime.cancelled:
            return

        updated = normalize_business(business_id, data)
        replaced = False
        businesses: list[Business] = []
        for business in self._businesses:
            if business.id == business_id:
                businesses.append(updated)
                replaced = True
            else:
                businesses.append(business)
        if not replaced:
            return

        self._businesses = businesses
        self._categories = self._collect_categories(self._businesses)
        self._refilter()
        LOGGER.debug("Applied remote change to business=%s", business_id)

    def _schedule_favorites_persist(self) -> None:
        if self._favorites_task is not None and not self._favorites_task.done():
            self._favorites_task.cancel()
        self._favorites_task = asyncio.get_running_loop().create_task(self._persist_favorites_later())

    async def _persist_favorites_later(self) -> None:
        await asyncio.sleep(self._favorites_persist_delay)
        await self._persist_favorites()

    async def _persist_favorites(self) -> None:
        snapshot = sorted(self._favorites)
        if snapshot == self._persisted_favorites:
            return

        if not await self._write_local_favorites(snapshot):
            return
        self._persisted_favorites = snapshot

        user_id = self._auth.current_user_id if self._auth is not None else None
        if not user_id:
            return
        try:
            await self._repository.set_user_favorites(user_id, snapshot)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to sync favorites for user=%s", user_id)

    async def _write_local_favorites(self, snapshot: list[str]) -> bool:
        try:
            await self._favorites_storage.set_item(self._favorites_key, json.dumps(snapshot))
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to persist favorites locally")
            return False
        return True

    async def _load_local_favorites(self) -> None:
        try:
            raw = await self._favorites_storage.get_item(self._favorites_key)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to read local favorites")
            return
        if not raw:
            return

        try:
            values = json.loads(raw)
        except ValueError:
            LOGGER.warning("Discarding corrupt local favorites")
            return
        if not isinstance(values, list):
            return
        self._favorites = {item for item in values if isinstance(item, str) and item}
        self._persisted_favorites = sorted(self._favorites)

    def _on_auth_changed(self, user_id: str | None) -> None:
        if user_id is None or self._lifetime.cancelled:
            return
        task = asyncio.get_running_loop().create_task(self._sync_remote_favorites(user_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _sync_remote_favorites(self, user_id: str) -> None:
        try:
            remote = await self._repository.get_user_favorites(user_id)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to load favorites for user=%s", user_id)
            return

        current_user = self._auth.current_user_id if self._auth is not None else None
        if self._lifetime.cancelled or current_user != user_id:
            return

        self._favorites = set(remote)
        snapshot = sorted(self._favorites)
        if await self._write_local_favorites(snapshot):
            self._persisted_favorites = snapshot
