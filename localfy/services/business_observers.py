from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Callable

from localfy.services.business_repository import ChangeHandler, ErrorHandler, Unsubscribe

LOGGER = logging.getLogger(__name__)

Subscribe = Callable[[str, ChangeHandler, ErrorHandler], Unsubscribe]


class BusinessObserverManager:
    """Keeps exactly one live listener per observed business id."""

    def __init__(
        self,
        subscribe: Subscribe,
        on_change: Callable[[str, dict[str, Any]], None],
        on_error: Callable[[str, BaseException], None] | None = None,
    ) -> None:
        self._subscribe = subscribe
        self._on_change = on_change
        self._on_error = on_error
        self._active: dict[str, Unsubscribe] = {}

    @property
    def active_ids(self) -> set[str]:
        return set(self._active)

    def observe(self, ids: Iterable[str]) -> Callable[[], None]:
        requested = {str(item) for item in ids if item}
        current = set(self._active)

        for business_id in current - requested:
            self._stop(business_id)

        created: dict[str, Unsubscribe] = {}
        for business_id in sorted(requested - current):
            handle = self._subscribe(business_id, self._on_change, self._handle_error)
            self._active[business_id] = handle
            created[business_id] = handle

        if created:
            LOGGER.debug("Observing %d businesses (+%d)", len(self._active), len(created))

        def teardown() -> None:
            for business_id, handle in created.items():
                # Only close handles this call created that nobody has replaced since.
                if self._active.get(business_id) is handle:
                    self._stop(business_id)

        return teardown

    def close(self) -> None:
        for business_id in list(self._active):
            self._stop(business_id)

    def _stop(self, business_id: str) -> None:
        handle = self._active.pop(business_id, None)
        if handle is None:
            return
        try:
            handle()
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to unsubscribe listener for business=%s", business_id)

    def _handle_error(self, business_id: str, exc: BaseException) -> None:
        LOGGER.error("Listener for business=%s failed: %s", business_id, exc)
        # The listener is dead; drop it so a later observe() can subscribe again.
        self._active.pop(business_id, None)
        if self._on_error is not None:
            self._on_error(business_id, exc)
