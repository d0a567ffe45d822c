"""
Notification sender adapters.

Delivery (email, SMS) is handled elsewhere; the scheduling core only needs
something to hand booking events to.
"""

import logging
from typing import List, Tuple

from ..domain.models import Booking

logger = logging.getLogger(__name__)


class LoggingNotificationSender:
    """Default sender that records booking events in the application log."""

    def booking_confirmed(self, booking: Booking) -> None:
        logger.info(
            "Booking %s confirmed for %s on %s at %s",
            booking.id, booking.customer_email,
            booking.scheduled_date, booking.scheduled_time.strftime("%H:%M"),
        )

    def booking_rescheduled(self, booking: Booking) -> None:
        logger.info(
            "Booking %s moved to %s at %s (reschedule %d)",
            booking.id, booking.scheduled_date,
            booking.scheduled_time.strftime("%H:%M"), booking.reschedule_count,
        )

    def booking_cancelled(self, booking: Booking) -> None:
        logger.info("Booking %s cancelled", booking.id)


class RecordingNotificationSender:
    """Sender that keeps every event in memory, for tests and mock mode."""

    def __init__(self):
        self.sent: List[Tuple[str, Booking]] = []

    def booking_confirmed(self, booking: Booking) -> None:
        self.sent.append(("confirmed", booking))

    def booking_rescheduled(self, booking: Booking) -> None:
        self.sent.append(("rescheduled", booking))

    def booking_cancelled(self, booking: Booking) -> None:
        self.sent.append(("cancelled", booking))

    def events(self) -> List[str]:
        return [event for event, _ in self.sent]
