from __future__ import annotations


class CancellationToken:
    """Marks whether the consumer that started an operation still wants its result.

    Tokens can be chained to a parent: cancelling the parent cancels every child.
    """

    def __init__(self, parent: CancellationToken | None = None) -> None:
        self._parent = parent
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        return self._parent is not None and self._parent.cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def child(self) -> CancellationToken:
        return CancellationToken(parent=self)
