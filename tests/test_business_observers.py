from typing import Any

from localfy.services.business_observers import BusinessObserverManager


class _Listeners:
    def __init__(self) -> None:
        self.subscribed: list[str] = []
        self.unsubscribed: list[str] = []
        self.handlers: dict[str, tuple[Any, Any]] = {}

    def subscribe(self, business_id: str, on_change, on_error):
        self.subscribed.append(business_id)
        self.handlers[business_id] = (on_change, on_error)

        def unsubscribe() -> None:
            self.unsubscribed.append(business_id)

        return unsubscribe


def _manager(listeners: _Listeners, changes: list | None = None, errors: list | None = None) -> BusinessObserverManager:
    return BusinessObserverManager(
        subscribe=listeners.subscribe,
        on_change=lambda key, data: changes.append((key, data)) if changes is not None else None,
        on_error=lambda key, exc: errors.append((key, exc)) if errors is not None else None,
    )


def test_observe_reconciles_by_set_difference() -> None:
    listeners = _Listeners()
    manager = _manager(listeners)

    manager.observe(["a", "b"])
    manager.observe(["b", "c"])

    assert listeners.subscribed == ["a", "b", "c"]
    assert listeners.unsubscribed == ["a"]
    assert manager.active_ids == {"b", "c"}


def test_observe_same_ids_is_idempotent() -> None:
    listeners = _Listeners()
    manager = _manager(listeners)

    manager.observe(["a", "b"])
    manager.observe(["b", "a", "a", ""])

    assert listeners.subscribed == ["a", "b"]
    assert listeners.unsubscribed == []


def test_teardown_only_stops_listeners_created_by_that_call() -> None:
    listeners = _Listeners()
    manager = _manager(listeners)

    first_teardown = manager.observe(["a", "b"])
    second_teardown = manager.observe(["a", "b", "c"])

    second_teardown()
    assert listeners.unsubscribed == ["c"]
    assert manager.active_ids == {"a", "b"}

    first_teardown()
    assert sorted(listeners.unsubscribed) == ["a", "b", "c"]
    assert manager.active_ids == set()


def test_stale_teardown_leaves_resubscribed_listener_alone() -> None:
    listeners = _Listeners()
    manager = _manager(listeners)

    stale = manager.observe(["a"])
    manager.observe([])
    manager.observe(["a"])
    stale()

    assert listeners.subscribed == ["a", "a"]
    assert listeners.unsubscribed == ["a"]
    assert manager.active_ids == {"a"}


def test_changes_are_forwarded() -> None:
    listeners = _Listeners()
    changes: list = []
    manager = _manager(listeners, changes=changes)

    manager.observe(["a"])
    on_change, _ = listeners.handlers["a"]
    on_change("a", {"name": "Updated"})

    assert changes == [("a", {"name": "Updated"})]


def test_listener_error_drops_it_so_it_can_resubscribe() -> None:
    listeners = _Listeners()
    errors: list = []
    manager = _manager(listeners, errors=errors)

    manager.observe(["a", "b"])
    _, on_error = listeners.handlers["a"]
    failure = PermissionError("denied")
    on_error("a", failure)

    assert errors == [("a", failure)]
    assert manager.active_ids == {"b"}

    manager.observe(["a", "b"])
    assert listeners.subscribed == ["a", "b", "a"]


def test_close_stops_everything_and_survives_bad_unsubscribe() -> None:
    stopped: list[str] = []

    def subscribe(business_id: str, on_change, on_error):
        def unsubscribe() -> None:
            stopped.append(business_id)
            if business_id == "a":
                raise RuntimeError("already closed")

        return unsubscribe

    manager = BusinessObserverManager(subscribe=subscribe, on_change=lambda key, data: None)
    manager.observe(["a", "b"])
    manager.close()

    assert sorted(stopped) == ["a", "b"]
    assert manager.active_ids == set()
