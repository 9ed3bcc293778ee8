# src/combo_snake/events.py
from __future__ import annotations
import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=Callable[..., None])


class Subscribers(Generic[C]):
    """
    Per-instance list of callbacks.

    add() hands back a disposer; notify() delivers to every callback in
    subscription order and logs (never re-raises) a failing callback so the
    rest still get the event.
    """

    def __init__(self, name: str = "event"):
        self.name = name
        self._callbacks: List[C] = []

    def add(self, callback: C) -> Callable[[], None]:
        self._callbacks.append(callback)

        def dispose() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return dispose

    def notify(self, *args) -> None:
        # Copy so a callback may unsubscribe itself mid-delivery
        for callback in list(self._callbacks):
            try:
                callback(*args)
            except Exception:
                logger.exception("Error in %s callback %r", self.name, callback)

    def clear(self) -> None:
        self._callbacks.clear()

    def __len__(self) -> int:
        return len(self._callbacks)
