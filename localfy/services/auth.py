from __future__ import annotations

import logging
from typing import Callable

LOGGER = logging.getLogger(__name__)

AuthListener = Callable[[str | None], None]


class AuthSession:
    def __init__(self, user_id: str | None = None) -> None:
        self._user_id = user_id
        self._listeners: list[AuthListener] = []

    @property
    def current_user_id(self) -> str | None:
        return self._user_id

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, user_id: str) -> None:
        cleaned = str(user_id or "").strip()
        if not cleaned:
            raise ValueError("user_id is required.")
        self._set_user(cleaned)

    def sign_out(self) -> None:
        self._set_user(None)

    def _set_user(self, user_id: str | None) -> None:
        if user_id == self._user_id:
            return
        self._user_id = user_id
        LOGGER.info("Auth state changed user=%s", user_id)
        for listener in list(self._listeners):
            try:
                listener(user_id)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Auth listener failed")
