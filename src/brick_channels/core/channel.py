"""In-process pub/sub for channel events."""

import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E")
Listener = Callable[[E], None]


class EventChannel(Generic[E]):
    """Listener registry plus an append-only, process-lifetime event log.

    Emission is synchronous. A listener that raises is logged and skipped;
    the exception never reaches the producer or the other listeners.
    """

    def __init__(self, name: str):
        self.name = name
        self._listeners: List[Listener] = []
        self._log: List[E] = []

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """Register a listener and return its unsubscribe function."""
        self._listeners.append(callback)
        subscribed = True

        def unsubscribe() -> None:
            nonlocal subscribed
            if not subscribed:
                return
            subscribed = False
            self._listeners.remove(callback)

        return unsubscribe

    def emit(self, event: E) -> None:
        """Append an event to the log and notify every current listener."""
        self._log.append(event)
        # Snapshot so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Error in %s listener %r", self.name, listener)

    def history(self) -> List[E]:
        """Get a copy of every event emitted so far."""
        return list(self._log)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def __len__(self) -> int:
        return len(self._log)
