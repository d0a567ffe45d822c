"""
Domain models for services, availability, blocked periods and bookings.
"""

import re
import uuid
from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import FrozenSet, Optional

import pendulum
from pendulum import DateTime
from pydantic import BaseModel, field_validator

START_OF_DAY = time(0, 0, 0)
END_OF_DAY = time(23, 59, 59)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def weekday_index(day: date) -> int:
    """Day of week with 0=Sunday, 6=Saturday."""
    return day.isoweekday() % 7


def at(day: date, clock: time, tz: str) -> DateTime:
    """Combine a calendar date and a wall-clock time in the given timezone."""
    return pendulum.datetime(
        day.year, day.month, day.day,
        clock.hour, clock.minute, clock.second,
        tz=tz,
    )


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range ``[start, end)``.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    @classmethod
    def on_date(cls, day: date, start: time, end: time, tz: str) -> "TimeRange":
        """Build a range from wall-clock times on a single calendar date."""
        return cls(start=at(day, start, tz), end=at(day, end, tz))

    @classmethod
    def starting_at(cls, day: date, start: time, duration_minutes: int, tz: str) -> "TimeRange":
        """Build a range of the given length starting at a wall-clock time."""
        begin = at(day, start, tz)
        return cls(start=begin, end=begin.add(minutes=duration_minutes))

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class Service:
    """A bookable service with a fixed duration."""
    id: str
    name: str
    duration_minutes: int
    price: int = 0
    active: bool = True

    @property
    def is_free(self) -> bool:
        return self.price == 0


@dataclass(frozen=True)
class AvailabilityWindow:
    """
    One entry of the recurring weekly availability template.

    Several windows may exist for the same day (split shifts).
    """
    day_of_week: int  # 0=Sunday, 6=Saturday
    start_time: time
    end_time: time
    is_available: bool = True

    def time_range(self, day: date, tz: str) -> TimeRange:
        return TimeRange.on_date(day, self.start_time, self.end_time, tz)


@dataclass(frozen=True)
class BlockedRange:
    """
    Operator-declared unavailability on exactly one calendar date.

    All-day records ignore their stored times.
    """
    date: date
    start_time: time = START_OF_DAY
    end_time: time = END_OF_DAY
    all_day: bool = False
    reason: Optional[str] = None
    id: Optional[str] = None

    def time_range(self, tz: str) -> Optional[TimeRange]:
        """Blocked interval, or None when the whole date is blocked."""
        if self.all_day:
            return None
        return TimeRange.on_date(self.date, self.start_time, self.end_time, tz)

    def describe(self) -> str:
        if self.all_day:
            return f"{self.date.isoformat()} (all day)"
        return (
            f"{self.date.isoformat()} "
            f"{self.start_time.strftime('%H:%M')}-{self.end_time.strftime('%H:%M')}"
        )


class BookingStatus(str, Enum):
    """Lifecycle states of a booking."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


ACTIVE_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED}
)


@dataclass(frozen=True)
class Booking:
    """
    A customer's appointment for one service.

    ``duration_minutes`` is copied from the service at creation time and never
    changes afterwards. Instances are immutable; transitions produce new ones.
    """
    service_id: str
    scheduled_date: date
    scheduled_time: time
    duration_minutes: int
    status: BookingStatus = BookingStatus.PENDING
    reschedule_count: int = 0
    paid: bool = False
    price: int = 0
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: Optional[str] = None
    billing_address: Optional[str] = None
    notes: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[DateTime] = None
    updated_at: Optional[DateTime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def time_range(self, tz: str) -> TimeRange:
        return TimeRange.starting_at(
            self.scheduled_date, self.scheduled_time, self.duration_minutes, tz
        )


class SlotState(str, Enum):
    FREE = "free"
    TAKEN = "taken"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class TimeSlot:
    """
    A discretized candidate booking start. Derived on demand, never stored.
    """
    time_range: TimeRange
    state: SlotState = SlotState.FREE

    @property
    def date(self) -> date:
        return self.time_range.start.date()

    @property
    def start_time(self) -> time:
        return self.time_range.start.time()

    @property
    def duration_minutes(self) -> int:
        return self.time_range.duration_minutes()

    @property
    def label(self) -> str:
        return self.time_range.start.format("HH:mm")

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, YYYY-MM-DD | HH:MM - HH:MM
        """
        start = self.time_range.start
        end = self.time_range.end
        return (
            f"{start.format('dddd')}, {start.format('YYYY-MM-DD')} | "
            f"{start.format('HH:mm')} - {end.format('HH:mm')} ({self.duration_minutes} min)"
        )


class CustomerInfo(BaseModel):
    """Customer details submitted with a booking form."""
    name: str
    email: str
    phone: Optional[str] = None
    billing_address: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Customer name must not be empty")
        return value

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not _EMAIL_PATTERN.match(value):
            raise ValueError(f"Invalid email address: {value!r}")
        return value

    @field_validator("phone", "billing_address", "notes")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


def new_record_id() -> str:
    """Identifier for newly stored records."""
    return str(uuid.uuid4())


__all__ = [
    "ACTIVE_STATUSES",
    "AvailabilityWindow",
    "BlockedRange",
    "Booking",
    "BookingStatus",
    "CustomerInfo",
    "END_OF_DAY",
    "START_OF_DAY",
    "Service",
    "SlotState",
    "TimeRange",
    "TimeSlot",
    "at",
    "new_record_id",
    "weekday_index",
]
