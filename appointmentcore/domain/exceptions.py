"""
Domain-specific exception hierarchy for the appointment scheduling core.

Every error carries a stable ``code`` so callers can map each rejection to its
own user-facing message.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .models import Booking


class SchedulingError(Exception):
    """Base class for all application-level errors."""

    code = "scheduling_error"
    default_message = "The scheduling request could not be completed."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class InvalidDateRange(SchedulingError):
    """Raised when a block request ends before it starts or spans too many days."""

    code = "invalid_date_range"
    default_message = "The end date must not be earlier than the start date."


class InvalidInterval(SchedulingError):
    """Raised when a time interval does not start before it ends."""

    code = "invalid_interval"
    default_message = "The start time must be earlier than the end time."


class SlotUnavailable(SchedulingError):
    """Raised when the requested time lies outside every open interval."""

    code = "slot_unavailable"
    default_message = "The requested time is not available for booking."


class SlotConflict(SchedulingError):
    """Raised when the requested time overlaps another active booking."""

    code = "slot_conflict"
    default_message = "The requested time has already been booked."


class RescheduleLimitExceeded(SchedulingError):
    """
    Raised by the state machine when a booking has used up its reschedules.

    The booking is not moved; ``booking`` holds its cancelled replacement,
    which the caller is expected to persist.
    """

    code = "reschedule_limit_exceeded"
    default_message = "The reschedule limit was reached; the booking has been cancelled."

    def __init__(self, booking: "Booking", message: Optional[str] = None):
        super().__init__(message)
        self.booking = booking


class InvalidTransition(SchedulingError):
    """Raised when a booking cannot move from its current status."""

    code = "invalid_transition"
    default_message = "The booking cannot be changed in its current status."


class NotFoundError(SchedulingError):
    """Base class for lookups that found nothing."""

    code = "not_found"
    default_message = "The requested record does not exist."


class ServiceNotFound(NotFoundError):
    code = "service_not_found"
    default_message = "The requested service does not exist."


class BookingNotFound(NotFoundError):
    code = "booking_not_found"
    default_message = "The requested booking does not exist."


class BlockedRangeNotFound(NotFoundError):
    code = "blocked_range_not_found"
    default_message = "The requested blocked period does not exist."


class StoreError(SchedulingError):
    """Raised when the persistence layer fails; the caller may retry."""

    code = "store_error"
    default_message = "Something went wrong while saving. Please try again."


class StoreBusy(StoreError):
    """Raised when a scheduling lock could not be acquired in time."""

    code = "store_busy"
