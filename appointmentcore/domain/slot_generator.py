"""
Discretization of open intervals into fixed-size candidate slots.

This is pure domain logic: bookings are passed in as a list read by the
caller, so the same inputs always produce the same slots.
"""

import heapq
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from pendulum import DateTime

from .interval_math import contains, overlaps
from .models import Booking, SlotState, TimeRange, TimeSlot

DEFAULT_GRANULARITY_MINUTES = 30


class SlotSequence:
    """
    A lazy, finite, restartable sequence of time slots in chronological order.

    Every call to ``iter()`` regenerates the slots from the captured inputs;
    there is no hidden iteration state.
    """

    def __init__(
        self,
        sources: Sequence[TimeRange],
        duration_minutes: int,
        granularity_minutes: int,
        booked: Sequence[TimeRange],
        open_intervals: Sequence[TimeRange],
        not_before: Optional[DateTime] = None,
        include_unavailable: bool = False,
    ):
        self._sources: Tuple[TimeRange, ...] = tuple(sources)
        self._duration = duration_minutes
        self._granularity = granularity_minutes
        self._booked: Tuple[TimeRange, ...] = tuple(booked)
        self._open: Tuple[TimeRange, ...] = tuple(open_intervals)
        self._not_before = not_before
        self._include_unavailable = include_unavailable

    def __iter__(self) -> Iterator[TimeSlot]:
        merged = heapq.merge(
            *(self._candidates(source) for source in self._sources),
            key=lambda candidate: (candidate.start, candidate.end),
        )

        previous: Optional[TimeRange] = None
        for candidate in merged:
            # Overlapping windows can propose the same start twice
            if candidate == previous:
                continue
            previous = candidate

            state = self._classify(candidate)
            if state is SlotState.FREE or self._include_unavailable:
                yield TimeSlot(time_range=candidate, state=state)

    def _candidates(self, source: TimeRange) -> Iterator[TimeRange]:
        start = source.start
        while start.add(minutes=self._duration) <= source.end:
            yield TimeRange(start=start, end=start.add(minutes=self._duration))
            start = start.add(minutes=self._granularity)

    def _classify(self, candidate: TimeRange) -> SlotState:
        if self._not_before is not None and candidate.start < self._not_before:
            return SlotState.BLOCKED
        if not any(contains(interval, candidate) for interval in self._open):
            return SlotState.BLOCKED
        if any(overlaps(candidate, booked) for booked in self._booked):
            return SlotState.TAKEN
        return SlotState.FREE


class SlotGenerator:
    """
    Builds slot sequences from open intervals and existing bookings.

    Candidates start at each interval's start and advance by the granularity,
    stopping once a slot of the service's duration would run past the
    interval's end. A candidate overlapping an active booking is dropped.
    """

    def __init__(
        self,
        granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
        timezone: str = "Europe/Budapest",
    ):
        if granularity_minutes <= 0:
            raise ValueError(f"Slot granularity must be positive, got {granularity_minutes}")
        self.granularity_minutes = granularity_minutes
        self.timezone = timezone

    def generate(
        self,
        open_intervals: Iterable[TimeRange],
        duration_minutes: int,
        bookings: Iterable[Booking],
        not_before: Optional[DateTime] = None,
    ) -> SlotSequence:
        """
        Free slots within the open intervals.

        Args:
            open_intervals: Output of the availability resolver for one date
            duration_minutes: The service's duration
            bookings: Bookings of the service on that date (inactive ones are ignored)
            not_before: Drop slots starting before this instant (usually "now")

        Returns:
            A restartable sequence of free slots
        """
        intervals = list(open_intervals)
        return SlotSequence(
            sources=intervals,
            duration_minutes=self._check_duration(duration_minutes),
            granularity_minutes=self.granularity_minutes,
            booked=self._booked_ranges(bookings),
            open_intervals=intervals,
            not_before=not_before,
        )

    def grid(
        self,
        window_ranges: Iterable[TimeRange],
        open_intervals: Iterable[TimeRange],
        duration_minutes: int,
        bookings: Iterable[Booking],
        not_before: Optional[DateTime] = None,
    ) -> SlotSequence:
        """
        Every grid slot of the day's availability windows, classified.

        Slots outside the open intervals (blocked or in the past) are marked
        blocked, slots overlapping a booking are marked taken.
        """
        return SlotSequence(
            sources=list(window_ranges),
            duration_minutes=self._check_duration(duration_minutes),
            granularity_minutes=self.granularity_minutes,
            booked=self._booked_ranges(bookings),
            open_intervals=list(open_intervals),
            not_before=not_before,
            include_unavailable=True,
        )

    def _booked_ranges(self, bookings: Iterable[Booking]) -> List[TimeRange]:
        return [
            booking.time_range(self.timezone)
            for booking in bookings
            if booking.is_active
        ]

    @staticmethod
    def _check_duration(duration_minutes: int) -> int:
        if duration_minutes <= 0:
            raise ValueError(f"Service duration must be positive, got {duration_minutes}")
        return duration_minutes
