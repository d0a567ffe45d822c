"""
Commit-time guard against unavailable or double-booked appointments.
"""

import logging
from typing import Iterable, List, Optional

from pendulum import DateTime

from .exceptions import SlotConflict, SlotUnavailable
from .interval_math import contains, overlaps
from .models import Booking, TimeRange

logger = logging.getLogger(__name__)


class BookingConflictChecker:
    """
    Validates a target interval against freshly read availability and bookings.

    Must run inside the write transaction even when the slot was displayed as
    free moments earlier: what the customer saw may already be stale.
    """

    def __init__(self, timezone: str = "Europe/Budapest"):
        self.timezone = timezone

    def check(
        self,
        target: TimeRange,
        open_intervals: Iterable[TimeRange],
        bookings: Iterable[Booking],
        exclude_booking_id: Optional[str] = None,
        not_before: Optional[DateTime] = None,
    ) -> None:
        """
        Accept the target interval or raise.

        Args:
            target: The interval to be committed
            open_intervals: Open intervals of the target date
            bookings: Bookings of the same service on the target date
            exclude_booking_id: Booking being moved, which never conflicts with itself
            not_before: Earliest acceptable start (usually "now")

        Raises:
            SlotUnavailable: If the target starts in the past or is not inside an open interval
            SlotConflict: If the target overlaps another pending or confirmed booking
        """
        if not_before is not None and target.start < not_before:
            raise SlotUnavailable(f"{target} is in the past.")

        if not any(contains(interval, target) for interval in open_intervals):
            raise SlotUnavailable(f"{target} is outside the available hours.")

        clashing = self.conflicting_bookings(target, bookings, exclude_booking_id)
        if clashing:
            logger.info(
                "Rejected %s: overlaps booking(s) %s",
                target, ", ".join(str(b.id) for b in clashing),
            )
            raise SlotConflict(f"{target} overlaps an existing booking.")

    def conflicting_bookings(
        self,
        target: TimeRange,
        bookings: Iterable[Booking],
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """Active bookings, other than the excluded one, overlapping ``target``."""
        return [
            booking for booking in bookings
            if booking.is_active
            and (exclude_booking_id is None or booking.id != exclude_booking_id)
            and overlaps(target, booking.time_range(self.timezone))
        ]
