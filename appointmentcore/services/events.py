"""
Optional change channel for keeping calendars live.

Listeners are told that a service's schedule changed on some dates and are
expected to re-fetch available slots. The channel is a convenience only:
conflict detection never relies on it.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_UPDATED = "booking_updated"
    BLOCK_ADDED = "block_added"
    BLOCK_REMOVED = "block_removed"


@dataclass(frozen=True)
class ScheduleChange:
    """A committed change affecting availability on the given dates."""
    kind: ChangeKind
    dates: Tuple[date, ...]
    service_id: Optional[str] = None  # None when every service is affected


ChangeListener = Callable[[ScheduleChange], None]


class ChangeFeed:
    """Fan-out of schedule changes to subscribed listeners."""

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: List[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, change: ScheduleChange) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(change)
            except Exception:
                logger.exception("Schedule change listener failed for %s", change.kind.value)
