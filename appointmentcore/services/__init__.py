"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .events import ChangeFeed, ChangeKind, ScheduleChange
from .scheduling import (
    NotificationSender,
    RescheduleOutcome,
    RescheduleResult,
    SchedulingService,
    SchedulingStore,
)

__all__ = [
    "ChangeFeed",
    "ChangeKind",
    "NotificationSender",
    "RescheduleOutcome",
    "RescheduleResult",
    "ScheduleChange",
    "SchedulingService",
    "SchedulingStore",
]
