"""
Tests for domain models.
"""

import dataclasses

import pendulum
import pytest
from datetime import date, time
from pydantic import ValidationError

from appointmentcore.domain.models import (
    AvailabilityWindow,
    BlockedRange,
    Booking,
    BookingStatus,
    CustomerInfo,
    Service,
    TimeRange,
    TimeSlot,
    weekday_index,
)


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_valid_time_range(self):
        """Test creating a valid time range."""
        start = pendulum.parse("2024-03-12 09:00", tz="Europe/Budapest")
        end = pendulum.parse("2024-03-12 10:00", tz="Europe/Budapest")

        time_range = TimeRange(start=start, end=end)

        assert time_range.start == start
        assert time_range.end == end
        assert time_range.duration_minutes() == 60

    def test_invalid_time_range(self):
        """Test that end before start raises error."""
        start = pendulum.parse("2024-03-12 10:00", tz="Europe/Budapest")
        end = pendulum.parse("2024-03-12 09:00", tz="Europe/Budapest")

        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            TimeRange(start=start, end=end)

    def test_empty_time_range_rejected(self):
        """Zero-length ranges are not valid."""
        instant = pendulum.parse("2024-03-12 09:00", tz="Europe/Budapest")

        with pytest.raises(ValueError):
            TimeRange(start=instant, end=instant)

    def test_on_date(self):
        """Test building a range from wall-clock times."""
        time_range = TimeRange.on_date(date(2024, 3, 12), time(9, 0), time(12, 30), "Europe/Budapest")

        assert time_range.start == pendulum.parse("2024-03-12 09:00", tz="Europe/Budapest")
        assert time_range.duration_minutes() == 210

    def test_starting_at(self):
        """Test building a range from a start and a duration."""
        time_range = TimeRange.starting_at(date(2024, 3, 12), time(16, 30), 60, "Europe/Budapest")

        assert time_range.end == pendulum.parse("2024-03-12 17:30", tz="Europe/Budapest")


class TestWeekdayIndex:
    """Day-of-week numbering starts at Sunday."""

    def test_sunday_is_zero(self):
        assert weekday_index(date(2024, 3, 10)) == 0

    def test_tuesday_is_two(self):
        assert weekday_index(date(2024, 3, 12)) == 2

    def test_saturday_is_six(self):
        assert weekday_index(date(2024, 3, 16)) == 6


class TestServiceAndWindows:
    """Tests for Service and AvailabilityWindow."""

    def test_free_service(self):
        assert Service(id="intro", name="Intro", duration_minutes=30).is_free
        assert not Service(id="paid", name="Paid", duration_minutes=30, price=5000).is_free

    def test_window_time_range(self):
        window = AvailabilityWindow(day_of_week=2, start_time=time(9, 0), end_time=time(17, 0))

        time_range = window.time_range(date(2024, 3, 12), "Europe/Budapest")

        assert time_range.duration_minutes() == 480


class TestBlockedRange:
    """Tests for BlockedRange."""

    def test_all_day_has_no_interval(self):
        blocked = BlockedRange(date=date(2024, 3, 11), all_day=True)

        assert blocked.time_range("Europe/Budapest") is None
        assert blocked.describe() == "2024-03-11 (all day)"

    def test_partial_day_interval(self):
        blocked = BlockedRange(date=date(2024, 3, 12), start_time=time(12, 0), end_time=time(13, 0))

        time_range = blocked.time_range("Europe/Budapest")

        assert time_range.duration_minutes() == 60
        assert blocked.describe() == "2024-03-12 12:00-13:00"


class TestBooking:
    """Tests for Booking."""

    def test_time_range_uses_stored_duration(self):
        booking = Booking(
            service_id="coaching",
            scheduled_date=date(2024, 3, 12),
            scheduled_time=time(10, 0),
            duration_minutes=60,
        )

        assert booking.time_range("Europe/Budapest").end == pendulum.parse(
            "2024-03-12 11:00", tz="Europe/Budapest"
        )

    def test_active_statuses(self):
        booking = Booking(
            service_id="coaching",
            scheduled_date=date(2024, 3, 12),
            scheduled_time=time(10, 0),
            duration_minutes=60,
        )

        assert booking.is_active
        assert not dataclasses.replace(booking, status=BookingStatus.CANCELLED).is_active


class TestTimeSlot:
    """Tests for TimeSlot formatting."""

    def test_format_display(self):
        time_range = TimeRange.starting_at(date(2024, 3, 12), time(9, 30), 30, "Europe/Budapest")
        slot = TimeSlot(time_range=time_range)

        assert slot.label == "09:30"
        assert slot.start_time == time(9, 30)
        assert slot.format_display() == "Tuesday, 2024-03-12 | 09:30 - 10:00 (30 min)"


class TestCustomerInfo:
    """Tests for CustomerInfo validation."""

    def test_normalises_fields(self):
        customer = CustomerInfo(name="  Anna Kovacs ", email="Anna@Example.COM", phone="  ", notes="")

        assert customer.name == "Anna Kovacs"
        assert customer.email == "anna@example.com"
        assert customer.phone is None
        assert customer.notes is None

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError, match="must not be empty"):
            CustomerInfo(name="  ", email="anna@example.com")

    def test_invalid_email_rejected(self):
        with pytest.raises(ValidationError, match="Invalid email"):
            CustomerInfo(name="Anna", email="not-an-email")
