"""
Tests for slot generation.
"""

import pendulum
import pytest
from datetime import date, time

from appointmentcore.domain.models import Booking, BookingStatus, SlotState, TimeRange
from appointmentcore.domain.slot_generator import SlotGenerator


def local(value: str):
    return pendulum.parse(value, tz="Europe/Budapest")


def span(start: str, end: str) -> TimeRange:
    return TimeRange(start=local(f"2024-03-12 {start}"), end=local(f"2024-03-12 {end}"))


def booking_at(start: time, duration: int = 60, status=BookingStatus.CONFIRMED) -> Booking:
    return Booking(
        id=f"booking-{start.isoformat()}",
        service_id="coaching",
        scheduled_date=date(2024, 3, 12),
        scheduled_time=start,
        duration_minutes=duration,
        status=status,
    )


class TestSlotGenerator:
    """Tests for SlotGenerator."""

    def setup_method(self):
        self.generator = SlotGenerator(granularity_minutes=30, timezone="Europe/Budapest")

    def test_slots_step_by_granularity(self):
        slots = list(self.generator.generate([span("09:00", "12:00")], 60, []))

        assert [slot.label for slot in slots] == ["09:00", "09:30", "10:00", "10:30", "11:00"]
        assert all(slot.duration_minutes == 60 for slot in slots)
        assert all(slot.state is SlotState.FREE for slot in slots)

    def test_last_slot_ends_at_interval_end(self):
        slots = list(self.generator.generate([span("09:00", "10:15")], 30, []))

        assert [slot.label for slot in slots] == ["09:00", "09:30"]

    def test_slots_are_contained_in_intervals(self):
        intervals = [span("09:00", "12:00"), span("13:00", "17:00")]

        slots = list(self.generator.generate(intervals, 30, []))

        assert len(slots) == 14
        assert all(
            any(i.start <= s.time_range.start and s.time_range.end <= i.end for i in intervals)
            for s in slots
        )
        assert not any(slot.label.startswith("12:") for slot in slots)

    def test_booked_slots_are_dropped(self):
        slots = list(self.generator.generate([span("09:00", "12:00")], 60, [booking_at(time(10, 0))]))

        # Anything overlapping 10:00-11:00 is gone
        assert [slot.label for slot in slots] == ["09:00", "11:00"]

    def test_cancelled_bookings_are_ignored(self):
        cancelled = booking_at(time(10, 0), status=BookingStatus.CANCELLED)

        slots = list(self.generator.generate([span("09:00", "12:00")], 60, [cancelled]))

        assert len(slots) == 5

    def test_sequence_is_restartable(self):
        sequence = self.generator.generate([span("09:00", "12:00")], 30, [booking_at(time(10, 0))])

        assert list(sequence) == list(sequence)
        assert next(iter(sequence)).label == "09:00"

    def test_overlapping_intervals_do_not_repeat_slots(self):
        intervals = [span("09:00", "11:00"), span("10:00", "12:00")]

        labels = [slot.label for slot in self.generator.generate(intervals, 60, [])]

        assert labels == ["09:00", "09:30", "10:00", "10:30", "11:00"]
        assert labels == sorted(labels)

    def test_not_before_drops_past_slots(self):
        slots = list(
            self.generator.generate([span("09:00", "12:00")], 60, [], not_before=local("2024-03-12 10:10"))
        )

        assert [slot.label for slot in slots] == ["10:30", "11:00"]

    def test_grid_classifies_every_slot(self):
        grid = list(
            self.generator.grid(
                [span("09:00", "11:00")],
                [span("09:00", "10:00")],
                30,
                [booking_at(time(9, 30), duration=30)],
            )
        )

        states = {slot.label: slot.state for slot in grid}

        assert states == {
            "09:00": SlotState.FREE,
            "09:30": SlotState.TAKEN,
            "10:00": SlotState.BLOCKED,
            "10:30": SlotState.BLOCKED,
        }

    def test_invalid_granularity_rejected(self):
        with pytest.raises(ValueError):
            SlotGenerator(granularity_minutes=0)

    def test_invalid_duration_rejected(self):
        with pytest.raises(ValueError):
            self.generator.generate([span("09:00", "12:00")], 0, [])
