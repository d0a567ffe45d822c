"""
In-memory scheduling store for tests and mock mode.

Changes made inside a transaction are staged and applied together when the
block exits cleanly; an exception discards them all.
"""

import dataclasses
import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Dict, Iterable, Iterator, List, Optional, Set

import pendulum

from ..domain.models import BlockedRange, Booking, BookingStatus, new_record_id
from .locks import KeyedLocks

logger = logging.getLogger(__name__)


def _sort_blocks(ranges: Iterable[BlockedRange]) -> List[BlockedRange]:
    return sorted(ranges, key=lambda r: (r.date, r.start_time, r.id or ""))


def _sort_bookings(bookings: Iterable[Booking]) -> List[Booking]:
    return sorted(bookings, key=lambda b: (b.scheduled_date, b.scheduled_time, b.id or ""))


class MemoryTransaction:
    """Unit of work over a ``MemoryStore``."""

    def __init__(self, store: "MemoryStore"):
        self._store = store
        self._bookings: Dict[str, Booking] = {}
        self._added_blocks: Dict[str, BlockedRange] = {}
        self._deleted_blocks: Set[str] = set()

    # Reads

    def get_blocked_range(self, range_id: str) -> Optional[BlockedRange]:
        if range_id in self._deleted_blocks:
            return None
        if range_id in self._added_blocks:
            return self._added_blocks[range_id]
        with self._store._mutex:
            return self._store._blocked.get(range_id)

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        if booking_id in self._bookings:
            return self._bookings[booking_id]
        with self._store._mutex:
            return self._store._bookings.get(booking_id)

    def list_bookings(
        self,
        service_id: Optional[str] = None,
        day: Optional[date] = None,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        wanted = set(statuses) if statuses is not None else None
        with self._store._mutex:
            merged = dict(self._store._bookings)
        merged.update(self._bookings)
        return _sort_bookings(
            booking for booking in merged.values()
            if (service_id is None or booking.service_id == service_id)
            and (day is None or booking.scheduled_date == day)
            and (wanted is None or booking.status in wanted)
        )

    def list_blocked_ranges(
        self,
        day: Optional[date] = None,
        from_date: Optional[date] = None,
    ) -> List[BlockedRange]:
        with self._store._mutex:
            merged = dict(self._store._blocked)
        merged.update(self._added_blocks)
        return _sort_blocks(
            blocked for key, blocked in merged.items()
            if key not in self._deleted_blocks
            and (day is None or blocked.date == day)
            and (from_date is None or blocked.date >= from_date)
        )

    # Writes

    def add_booking(self, booking: Booking) -> Booking:
        now = pendulum.now("UTC")
        stored = dataclasses.replace(
            booking,
            id=booking.id or new_record_id(),
            created_at=booking.created_at or now,
            updated_at=booking.updated_at or now,
        )
        self._bookings[stored.id] = stored
        return stored

    def save_booking(self, booking: Booking) -> Booking:
        if booking.id is None or self.get_booking(booking.id) is None:
            raise KeyError(f"Unknown booking: {booking.id}")
        self._bookings[booking.id] = booking
        return booking

    def add_blocked_ranges(self, ranges: Iterable[BlockedRange]) -> List[BlockedRange]:
        stored = [dataclasses.replace(r, id=r.id or new_record_id()) for r in ranges]
        for blocked in stored:
            self._added_blocks[blocked.id] = blocked
        return stored

    def delete_blocked_range(self, range_id: str) -> bool:
        if range_id in self._deleted_blocks:
            return False
        if range_id in self._added_blocks:
            del self._added_blocks[range_id]
            return True
        with self._store._mutex:
            exists = range_id in self._store._blocked
        if exists:
            self._deleted_blocks.add(range_id)
        return exists

    def commit(self) -> None:
        with self._store._mutex:
            self._store._bookings.update(self._bookings)
            self._store._blocked.update(self._added_blocks)
            for range_id in self._deleted_blocks:
                self._store._blocked.pop(range_id, None)


class MemoryStore:
    """
    Thread-safe in-memory store of bookings and blocked ranges.

    ``transaction(keys)`` serializes writers on the given lock keys; reads via
    ``reader()`` take no scheduling locks.
    """

    def __init__(self, lock_timeout: float = 10.0):
        self._mutex = threading.RLock()
        self._locks = KeyedLocks(timeout=lock_timeout)
        self._bookings: Dict[str, Booking] = {}
        self._blocked: Dict[str, BlockedRange] = {}

    @contextmanager
    def transaction(self, keys: Iterable[str] = ()) -> Iterator[MemoryTransaction]:
        with self._locks.hold(keys):
            tx = MemoryTransaction(self)
            yield tx
            tx.commit()

    @contextmanager
    def reader(self) -> Iterator[MemoryTransaction]:
        # Writes made through a reader are never committed
        yield MemoryTransaction(self)
