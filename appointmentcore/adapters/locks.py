"""
Process-local keyed locks serializing writes per ``(service, date)``.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Dict, Iterable, Iterator, List

from ..domain.exceptions import StoreBusy

logger = logging.getLogger(__name__)


def slot_key(service_id: str, day: date) -> str:
    """Lock key for one service on one calendar date."""
    return f"{service_id}@{day.isoformat()}"


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0  # holders plus waiters


class KeyedLocks:
    """
    A set of locks, one per key, that exist only while someone uses them.

    Keys are always acquired in sorted order so two writers touching the same
    keys cannot deadlock. Acquisition gives up after ``timeout`` seconds.
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[str, _KeyLock] = {}

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.users += 1
            return entry.lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, keys: Iterable[str]) -> Iterator[List[str]]:
        """Hold every lock in ``keys`` for the duration of the block."""
        ordered = sorted(set(keys))
        acquired: List[str] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                if not lock.acquire(timeout=self.timeout):
                    self._checkin(key)
                    logger.warning("Timed out waiting for scheduling lock %s", key)
                    raise StoreBusy(f"Timed out waiting for the schedule of {key}.")
                acquired.append(key)
            yield ordered
        finally:
            for key in reversed(acquired):
                with self._guard:
                    lock = self._locks[key].lock
                lock.release()
                self._checkin(key)
