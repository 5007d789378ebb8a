"""Sync results and the observer interface for sync events."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataSynced:
    """A push completed and the pushed records were marked synced."""

    loans_count: int
    notifications_count: int
    synced_at: datetime


@dataclass(frozen=True)
class SyncFailed:
    """A push failed; every unsynced record stays unsynced."""

    error: Exception
    attempt: int = 1


SyncEvent = Union[DataSynced, SyncFailed]
Subscriber = Callable[[SyncEvent], None]


@dataclass
class SyncResult:
    """Outcome of one sync cycle."""

    loans_count: int = 0
    notifications_count: int = 0
    synced_at: datetime | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        """Whether the cycle finished without error."""
        return self.error is None


class SyncEventBus:
    """Fan sync events out to subscribers.

    Subscribers run on the thread that finished the sync cycle, which is the
    background worker when the store has been started.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback and return a function that unregisters it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: SyncEvent) -> None:
        """Deliver an event to every subscriber."""
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("Sync event subscriber %r failed", callback)
