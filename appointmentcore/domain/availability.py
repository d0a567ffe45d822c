"""
Resolution of the weekly availability template into open intervals for a day.

Pure domain logic: the caller supplies the windows and blocked ranges it read
from configuration and storage.
"""

import logging
from datetime import date
from typing import Iterable, List

from .interval_math import subtract
from .models import AvailabilityWindow, BlockedRange, Service, TimeRange, weekday_index

logger = logging.getLogger(__name__)


class AvailabilityWindowResolver:
    """
    Computes the open (bookable) intervals of one calendar date.

    Algorithm:
    1. Keep the available windows for the date's day of week
    2. If any blocked range for the date is all-day, nothing is open
    3. Subtract every partial-day blocked range from each window
    4. Return the pieces sorted by start time

    Windows are treated independently: overlapping or adjacent pieces from
    different windows are not merged. An empty result means the date has no
    availability, which is a normal outcome.
    """

    def __init__(self, timezone: str = "Europe/Budapest"):
        self.timezone = timezone

    def resolve(
        self,
        service: Service,
        day: date,
        windows: Iterable[AvailabilityWindow],
        blocked_ranges: Iterable[BlockedRange],
    ) -> List[TimeRange]:
        """
        Return the open intervals for ``service`` on ``day``.

        Args:
            service: The service being booked
            day: Calendar date to resolve
            windows: The weekly availability template (any days)
            blocked_ranges: Blocked ranges (any dates; others are ignored)

        Returns:
            Open intervals sorted by start time, possibly empty
        """
        if not service.active:
            return []

        day_windows = self.windows_for(day, windows)
        if not day_windows:
            return []

        day_blocks = [blocked for blocked in blocked_ranges if blocked.date == day]

        if any(blocked.all_day for blocked in day_blocks):
            logger.debug("All-day block on %s, no open intervals", day)
            return []

        blocked_intervals = [blocked.time_range(self.timezone) for blocked in day_blocks]

        open_intervals: List[TimeRange] = []

        for window in day_windows:
            pieces = [window.time_range(day, self.timezone)]

            for blocked in blocked_intervals:
                pieces = [
                    piece
                    for current in pieces
                    for piece in subtract(current, blocked)
                ]
                if not pieces:
                    break

            open_intervals.extend(pieces)

        return sorted(open_intervals, key=lambda r: (r.start, r.end))

    @staticmethod
    def windows_for(day: date, windows: Iterable[AvailabilityWindow]) -> List[AvailabilityWindow]:
        """Available windows whose day of week matches ``day``."""
        dow = weekday_index(day)
        return [
            window for window in windows
            if window.day_of_week == dow and window.is_available
        ]
