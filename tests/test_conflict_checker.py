"""
Tests for the commit-time booking conflict checker.
"""

import dataclasses

import pendulum
import pytest
from datetime import date, time

from appointmentcore.domain.conflict_checker import BookingConflictChecker
from appointmentcore.domain.exceptions import SlotConflict, SlotUnavailable
from appointmentcore.domain.models import Booking, BookingStatus, TimeRange


def span(start: str, end: str) -> TimeRange:
    return TimeRange(
        start=pendulum.parse(f"2024-03-12 {start}", tz="Europe/Budapest"),
        end=pendulum.parse(f"2024-03-12 {end}", tz="Europe/Budapest"),
    )


class TestBookingConflictChecker:
    """Tests for BookingConflictChecker."""

    def setup_method(self):
        self.checker = BookingConflictChecker(timezone="Europe/Budapest")
        self.open_intervals = [span("09:00", "12:00"), span("13:00", "17:00")]
        self.existing = Booking(
            id="existing",
            service_id="coaching",
            scheduled_date=date(2024, 3, 12),
            scheduled_time=time(10, 0),
            duration_minutes=60,
            status=BookingStatus.CONFIRMED,
        )

    def test_free_slot_accepted(self):
        self.checker.check(span("09:00", "10:00"), self.open_intervals, [self.existing])

    def test_slot_outside_open_intervals(self):
        with pytest.raises(SlotUnavailable):
            self.checker.check(span("11:30", "12:30"), self.open_intervals, [])

    def test_slot_in_the_past(self):
        with pytest.raises(SlotUnavailable, match="in the past"):
            self.checker.check(
                span("09:00", "10:00"),
                self.open_intervals,
                [],
                not_before=pendulum.parse("2024-03-12 09:05", tz="Europe/Budapest"),
            )

    def test_overlapping_booking_conflicts(self):
        with pytest.raises(SlotConflict) as exc_info:
            self.checker.check(span("10:30", "11:30"), self.open_intervals, [self.existing])

        assert exc_info.value.code == "slot_conflict"

    def test_booking_does_not_conflict_with_itself(self):
        self.checker.check(
            span("10:30", "11:30"),
            self.open_intervals,
            [self.existing],
            exclude_booking_id="existing",
        )

    def test_cancelled_booking_releases_slot(self):
        cancelled = dataclasses.replace(self.existing, status=BookingStatus.CANCELLED)

        self.checker.check(span("10:00", "11:00"), self.open_intervals, [cancelled])

    def test_conflicting_bookings(self):
        clashing = self.checker.conflicting_bookings(span("09:30", "10:30"), [self.existing])

        assert clashing == [self.existing]
        assert self.checker.conflicting_bookings(span("11:00", "12:00"), [self.existing]) == []
