"""
Domain layer - Pure scheduling logic without I/O.
"""

from .availability import AvailabilityWindowResolver
from .blocked_ranges import BlockedRangeExpander, BlockRequest
from .conflict_checker import BookingConflictChecker
from .models import (
    AvailabilityWindow,
    BlockedRange,
    Booking,
    BookingStatus,
    CustomerInfo,
    Service,
    SlotState,
    TimeRange,
    TimeSlot,
)
from .reschedule import BookingTrigger, RescheduleStateMachine
from .slot_generator import SlotGenerator, SlotSequence

__all__ = [
    "AvailabilityWindow",
    "AvailabilityWindowResolver",
    "BlockRequest",
    "BlockedRange",
    "BlockedRangeExpander",
    "Booking",
    "BookingConflictChecker",
    "BookingStatus",
    "BookingTrigger",
    "CustomerInfo",
    "RescheduleStateMachine",
    "Service",
    "SlotGenerator",
    "SlotSequence",
    "SlotState",
    "TimeRange",
    "TimeSlot",
]
