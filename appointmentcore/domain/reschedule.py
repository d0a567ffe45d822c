"""
Finite state machine for the booking lifecycle and the reschedule limit.

States: pending, confirmed(reschedule_count), cancelled, completed.
Terminal states: cancelled, completed.

Usage:
    machine = RescheduleStateMachine(reschedule_limit=2)
    booking = machine.confirm(booking, check=guard)
    booking = machine.reschedule(booking, new_date, new_time, check=guard)
"""

import dataclasses
import logging
from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import pendulum
from pendulum import DateTime

from .exceptions import InvalidTransition, RescheduleLimitExceeded
from .models import Booking, BookingStatus

logger = logging.getLogger(__name__)

# Validates a proposed booking state, raising a SchedulingError to veto it
BookingGuard = Callable[[Booking], None]


class BookingTrigger(str, Enum):
    """Events that cause booking status transitions."""
    CONFIRM = "confirm"
    RESCHEDULE = "reschedule"
    CANCEL = "cancel"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""
    from_status: BookingStatus
    trigger: BookingTrigger
    to_status: BookingStatus


class RescheduleStateMachine:
    """
    Governs how a booking moves between statuses.

    A confirmed booking may be rescheduled ``reschedule_limit`` times. The next
    attempt is not performed as a move: the booking is cancelled instead and
    ``RescheduleLimitExceeded`` is raised so callers can tell the customer
    exactly what happened.
    """

    TRANSITIONS: List[Transition] = [
        Transition(BookingStatus.PENDING, BookingTrigger.CONFIRM, BookingStatus.CONFIRMED),
        Transition(BookingStatus.PENDING, BookingTrigger.CANCEL, BookingStatus.CANCELLED),
        Transition(BookingStatus.CONFIRMED, BookingTrigger.RESCHEDULE, BookingStatus.CONFIRMED),
        Transition(BookingStatus.CONFIRMED, BookingTrigger.CANCEL, BookingStatus.CANCELLED),
        Transition(BookingStatus.CONFIRMED, BookingTrigger.COMPLETE, BookingStatus.COMPLETED),
    ]

    def __init__(self, reschedule_limit: int = 2):
        if reschedule_limit < 0:
            raise ValueError(f"Reschedule limit must not be negative, got {reschedule_limit}")
        self.reschedule_limit = reschedule_limit
        self._table: Dict[Tuple[BookingStatus, BookingTrigger], BookingStatus] = {
            (t.from_status, t.trigger): t.to_status for t in self.TRANSITIONS
        }

    def allowed_triggers(self, booking: Booking) -> List[BookingTrigger]:
        """Triggers accepted from the booking's current status."""
        return [t.trigger for t in self.TRANSITIONS if t.from_status == booking.status]

    def remaining_reschedules(self, booking: Booking) -> int:
        if booking.status is not BookingStatus.CONFIRMED:
            return 0
        return max(self.reschedule_limit - booking.reschedule_count, 0)

    def confirm(
        self,
        booking: Booking,
        check: Optional[BookingGuard] = None,
        now: Optional[DateTime] = None,
    ) -> Booking:
        """Pending -> confirmed(0), after the guard accepts the booking's slot."""
        target = self._target(booking, BookingTrigger.CONFIRM)
        confirmed = self._replace(booking, now, status=target, reschedule_count=0)
        if check is not None:
            check(confirmed)
        return confirmed

    def reschedule(
        self,
        booking: Booking,
        new_date: date,
        new_time: time,
        check: Optional[BookingGuard] = None,
        now: Optional[DateTime] = None,
    ) -> Booking:
        """
        Confirmed(n) -> confirmed(n+1) at the new date and time.

        Raises:
            InvalidTransition: If the booking is not confirmed
            RescheduleLimitExceeded: If the limit is used up; carries the cancelled booking
            SchedulingError: Whatever the guard raises; the booking is left as it was
        """
        self._target(booking, BookingTrigger.RESCHEDULE)

        if booking.reschedule_count >= self.reschedule_limit:
            cancelled = self._replace(booking, now, status=BookingStatus.CANCELLED)
            logger.info(
                "Booking %s reached the reschedule limit (%d), cancelling",
                booking.id, self.reschedule_limit,
            )
            raise RescheduleLimitExceeded(cancelled)

        moved = self._replace(
            booking,
            now,
            scheduled_date=new_date,
            scheduled_time=new_time,
            reschedule_count=booking.reschedule_count + 1,
        )
        if check is not None:
            check(moved)
        return moved

    def cancel(self, booking: Booking, now: Optional[DateTime] = None) -> Booking:
        """Pending or confirmed -> cancelled, independent of the reschedule counter."""
        target = self._target(booking, BookingTrigger.CANCEL)
        return self._replace(booking, now, status=target)

    def complete(self, booking: Booking, now: Optional[DateTime] = None) -> Booking:
        """Confirmed -> completed, once the appointment has taken place."""
        target = self._target(booking, BookingTrigger.COMPLETE)
        return self._replace(booking, now, status=target)

    def _target(self, booking: Booking, trigger: BookingTrigger) -> BookingStatus:
        target = self._table.get((booking.status, trigger))
        if target is None:
            allowed = ", ".join(t.value for t in self.allowed_triggers(booking)) or "none"
            raise InvalidTransition(
                f"Cannot {trigger.value} a {booking.status.value} booking "
                f"(allowed: {allowed})."
            )
        return target

    @staticmethod
    def _replace(booking: Booking, now: Optional[DateTime], **changes) -> Booking:
        return dataclasses.replace(booking, updated_at=now or pendulum.now("UTC"), **changes)
