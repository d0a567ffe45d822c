"""
Application service exposing the scheduling operations to callers.

The service reads configuration (services and weekly windows) and persistent
state (bookings and blocked ranges) through a store protocol and delegates all
decisions to the pure domain components. Every write runs inside a store
transaction keyed by ``(service, date)`` and re-validates through the
``BookingConflictChecker`` before it is committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, time, timedelta
from enum import Enum
from typing import (
    Callable,
    ContextManager,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
)

import pendulum
from pendulum import DateTime

from ..adapters.locks import slot_key
from ..adapters.notifications import LoggingNotificationSender
from ..config import AppConfig
from ..domain.availability import AvailabilityWindowResolver
from ..domain.blocked_ranges import BlockedRangeExpander, BlockRequest
from ..domain.conflict_checker import BookingConflictChecker
from ..domain.exceptions import (
    BlockedRangeNotFound,
    BookingNotFound,
    InvalidTransition,
    RescheduleLimitExceeded,
    ServiceNotFound,
    SlotUnavailable,
    StoreBusy,
)
from ..domain.interval_math import overlaps
from ..domain.models import (
    ACTIVE_STATUSES,
    AvailabilityWindow,
    BlockedRange,
    Booking,
    BookingStatus,
    CustomerInfo,
    Service,
    TimeRange,
    TimeSlot,
)
from ..domain.reschedule import BookingGuard, RescheduleStateMachine
from ..domain.slot_generator import SlotGenerator, SlotSequence
from .events import ChangeFeed, ChangeKind, ChangeListener, ScheduleChange

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A booking can move between dates while we wait for its locks
_BOOKING_LOCK_ATTEMPTS = 3


class StoreTransaction(Protocol):
    """Read/write access to bookings and blocked ranges within one transaction."""

    def get_booking(self, booking_id: str) -> Optional[Booking]: ...

    def get_blocked_range(self, range_id: str) -> Optional[BlockedRange]: ...

    def list_bookings(
        self,
        service_id: Optional[str] = None,
        day: Optional[date] = None,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]: ...

    def list_blocked_ranges(
        self,
        day: Optional[date] = None,
        from_date: Optional[date] = None,
    ) -> List[BlockedRange]: ...

    def add_booking(self, booking: Booking) -> Booking: ...

    def save_booking(self, booking: Booking) -> Booking: ...

    def add_blocked_ranges(self, ranges: Iterable[BlockedRange]) -> List[BlockedRange]: ...

    def delete_blocked_range(self, range_id: str) -> bool: ...


class SchedulingStore(Protocol):
    """Protocol describing the persistence behaviour needed by the service."""

    def transaction(self, keys: Iterable[str] = ()) -> ContextManager[StoreTransaction]:
        """Serialize on ``keys`` and commit everything done in the block atomically."""

    def reader(self) -> ContextManager[StoreTransaction]:
        """
        Read access without scheduling locks.

        Consecutive reads are not one point-in-time view; writers re-check
        inside ``transaction`` instead.
        """


class NotificationSender(Protocol):
    """Fire-and-forget recipient of booking lifecycle events."""

    def booking_confirmed(self, booking: Booking) -> None: ...

    def booking_rescheduled(self, booking: Booking) -> None: ...

    def booking_cancelled(self, booking: Booking) -> None: ...


class RescheduleOutcome(str, Enum):
    RESCHEDULED = "rescheduled"
    AUTO_CANCELLED = "auto_cancelled"


@dataclass(frozen=True)
class RescheduleResult:
    """What a reschedule request did to the booking."""
    outcome: RescheduleOutcome
    booking: Booking
    remaining_reschedules: int

    @property
    def auto_cancelled(self) -> bool:
        return self.outcome is RescheduleOutcome.AUTO_CANCELLED

    @property
    def reschedule_count(self) -> int:
        return self.booking.reschedule_count

    @property
    def error_code(self) -> Optional[str]:
        """Error code describing an auto-cancellation, for message lookup."""
        return RescheduleLimitExceeded.code if self.auto_cancelled else None


class SchedulingService:
    """
    Orchestrates availability lookups, bookings and blocked periods.

    Dependency inversion toward protocols makes it easy to plug in the SQL
    store or the in-memory one in tests.
    """

    def __init__(
        self,
        store: SchedulingStore,
        services: Iterable[Service],
        windows: Iterable[AvailabilityWindow],
        *,
        timezone: str = "Europe/Budapest",
        slot_granularity_minutes: int = 30,
        booking_horizon_days: int = 90,
        reschedule_limit: int = 2,
        max_block_days: int = 366,
        notifier: Optional[NotificationSender] = None,
        clock: Optional[Callable[[], DateTime]] = None,
    ) -> None:
        self._store = store
        self._services: Dict[str, Service] = {service.id: service for service in services}
        self._windows: List[AvailabilityWindow] = list(windows)
        self.timezone = timezone
        self.booking_horizon_days = booking_horizon_days
        self._notifier: NotificationSender = notifier or LoggingNotificationSender()
        self._clock = clock or (lambda: pendulum.now(self.timezone))
        self._changes = ChangeFeed()

        self._resolver = AvailabilityWindowResolver(timezone=timezone)
        self._generator = SlotGenerator(granularity_minutes=slot_granularity_minutes, timezone=timezone)
        self._checker = BookingConflictChecker(timezone=timezone)
        self._machine = RescheduleStateMachine(reschedule_limit=reschedule_limit)
        self._expander = BlockedRangeExpander(max_days=max_block_days)

    @classmethod
    def from_config(cls, config: AppConfig, store: SchedulingStore, **kwargs) -> "SchedulingService":
        """Build a service from an ``AppConfig``."""
        defaults = config.scheduling
        return cls(
            store=store,
            services=config.service_catalog().values(),
            windows=config.availability_windows(),
            timezone=config.timezone,
            slot_granularity_minutes=defaults.slot_granularity_minutes,
            booking_horizon_days=defaults.booking_horizon_days,
            reschedule_limit=defaults.reschedule_limit,
            max_block_days=defaults.max_block_days,
            **kwargs,
        )

    # Catalog

    def list_services(self) -> List[Service]:
        return sorted(self._services.values(), key=lambda s: s.name)

    def get_service(self, service_id: str) -> Service:
        service = self._services.get(service_id)
        if service is None:
            raise ServiceNotFound(f"Unknown service: {service_id}")
        return service

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Get told about committed schedule changes; returns an unsubscribe function."""
        return self._changes.subscribe(listener)

    # Availability

    def iter_available_slots(self, service_id: str, day: date) -> SlotSequence:
        """
        Free slots of a service on a date, as a restartable lazy sequence.

        Bookings and blocked ranges are read without locks and not as one
        consistent view, so the result may be stale by the time a customer
        submits. Booking creation re-checks under the slot lock.
        """
        service = self.get_service(service_id)
        now = self._clock()

        with self._store.reader() as tx:
            open_intervals = self._open_intervals(tx, service, day, now)
            bookings = tx.list_bookings(service_id=service.id, day=day, statuses=ACTIVE_STATUSES)

        return self._generator.generate(
            open_intervals,
            service.duration_minutes,
            bookings,
            not_before=now,
        )

    def get_available_slots(self, service_id: str, day: date) -> List[TimeSlot]:
        """Free slots of a service on a date, in chronological order."""
        return list(self.iter_available_slots(service_id, day))

    def get_slot_grid(self, service_id: str, day: date) -> List[TimeSlot]:
        """Every grid slot of the day's windows marked free, taken or blocked."""
        service = self.get_service(service_id)
        now = self._clock()

        with self._store.reader() as tx:
            open_intervals = self._open_intervals(tx, service, day, now)
            bookings = tx.list_bookings(service_id=service.id, day=day, statuses=ACTIVE_STATUSES)

        window_ranges = [
            window.time_range(day, self.timezone)
            for window in self._resolver.windows_for(day, self._windows)
        ]
        return list(
            self._generator.grid(
                window_ranges,
                open_intervals,
                service.duration_minutes,
                bookings,
                not_before=now,
            )
        )

    # Bookings

    def create_booking(
        self,
        service_id: str,
        day: date,
        start_time: time,
        customer: CustomerInfo,
    ) -> Booking:
        """
        Book a slot after re-checking it under the slot lock.

        Free services are confirmed immediately; paid ones stay pending until
        the operator confirms them.

        Raises:
            ServiceNotFound: If the service does not exist
            SlotUnavailable: If the slot is outside the open hours or in the past
            SlotConflict: If another active booking overlaps the slot
        """
        service = self.get_service(service_id)
        status = BookingStatus.CONFIRMED if service.is_free else BookingStatus.PENDING

        booking = Booking(
            service_id=service.id,
            scheduled_date=day,
            scheduled_time=start_time,
            duration_minutes=service.duration_minutes,
            status=status,
            paid=service.is_free,
            price=service.price,
            customer_name=customer.name,
            customer_email=customer.email,
            customer_phone=customer.phone,
            billing_address=customer.billing_address,
            notes=customer.notes,
        )

        with self._store.transaction([slot_key(service.id, day)]) as tx:
            self._guard(tx, service)(booking)
            saved = tx.add_booking(booking)

        logger.info(
            "Created %s booking %s for %s on %s at %s",
            saved.status.value, saved.id, service.id, day, start_time.strftime("%H:%M"),
        )
        self._publish(ChangeKind.BOOKING_CREATED, [day], service.id)
        if saved.status is BookingStatus.CONFIRMED:
            self._notify("booking_confirmed", saved)
        return saved

    def get_booking(self, booking_id: str) -> Booking:
        with self._store.reader() as tx:
            booking = tx.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(f"Unknown booking: {booking_id}")
        return booking

    def list_bookings(
        self,
        service_id: Optional[str] = None,
        day: Optional[date] = None,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        with self._store.reader() as tx:
            return tx.list_bookings(service_id=service_id, day=day, statuses=statuses)

    def confirm_booking(self, booking_id: str) -> Booking:
        """Pending -> confirmed, re-checking that the slot is still bookable."""

        def confirm(tx: StoreTransaction, booking: Booking) -> Booking:
            service = self.get_service(booking.service_id)
            confirmed = self._machine.confirm(
                booking,
                check=self._guard(tx, service, exclude_booking_id=booking.id),
                now=self._clock(),
            )
            return tx.save_booking(confirmed)

        confirmed = self._with_locked_booking(booking_id, confirm)
        logger.info("Confirmed booking %s", confirmed.id)
        self._publish(ChangeKind.BOOKING_UPDATED, [confirmed.scheduled_date], confirmed.service_id)
        self._notify("booking_confirmed", confirmed)
        return confirmed

    def reschedule_booking(self, booking_id: str, new_date: date, new_time: time) -> RescheduleResult:
        """
        Move a confirmed booking, or cancel it once its reschedules are used up.

        Returns:
            A result whose outcome says whether the booking moved or was cancelled

        Raises:
            BookingNotFound: If the booking does not exist
            InvalidTransition: If the booking is not confirmed
            SlotUnavailable / SlotConflict: If the new slot cannot be booked;
                the booking is left unchanged
        """
        previous: Dict[str, Booking] = {}

        def reschedule(tx: StoreTransaction, booking: Booking) -> RescheduleResult:
            previous["booking"] = booking
            service = self.get_service(booking.service_id)
            try:
                moved = self._machine.reschedule(
                    booking,
                    new_date,
                    new_time,
                    check=self._guard(tx, service, exclude_booking_id=booking.id),
                    now=self._clock(),
                )
            except RescheduleLimitExceeded as exc:
                cancelled = tx.save_booking(exc.booking)
                return RescheduleResult(
                    outcome=RescheduleOutcome.AUTO_CANCELLED,
                    booking=cancelled,
                    remaining_reschedules=0,
                )

            saved = tx.save_booking(moved)
            return RescheduleResult(
                outcome=RescheduleOutcome.RESCHEDULED,
                booking=saved,
                remaining_reschedules=self._machine.remaining_reschedules(saved),
            )

        result = self._with_locked_booking(booking_id, reschedule, extra_dates=[new_date])
        booking = result.booking
        old_date = previous["booking"].scheduled_date

        if result.auto_cancelled:
            logger.warning("Booking %s auto-cancelled on reschedule attempt past the limit", booking.id)
            self._publish(ChangeKind.BOOKING_UPDATED, [old_date], booking.service_id)
            self._notify("booking_cancelled", booking)
        else:
            logger.info(
                "Rescheduled booking %s to %s at %s (%d/%d)",
                booking.id, booking.scheduled_date, booking.scheduled_time.strftime("%H:%M"),
                booking.reschedule_count, self._machine.reschedule_limit,
            )
            self._publish(
                ChangeKind.BOOKING_UPDATED, [old_date, booking.scheduled_date], booking.service_id
            )
            self._notify("booking_rescheduled", booking)

        return result

    def cancel_booking(self, booking_id: str) -> Booking:
        """Cancel a pending or confirmed booking; its slot becomes free at once."""

        def cancel(tx: StoreTransaction, booking: Booking) -> Booking:
            return tx.save_booking(self._machine.cancel(booking, now=self._clock()))

        cancelled = self._with_locked_booking(booking_id, cancel)
        logger.info("Cancelled booking %s", cancelled.id)
        self._publish(ChangeKind.BOOKING_UPDATED, [cancelled.scheduled_date], cancelled.service_id)
        self._notify("booking_cancelled", cancelled)
        return cancelled

    def complete_booking(self, booking_id: str) -> Booking:
        """Mark a confirmed booking completed once its appointment has ended."""

        def complete(tx: StoreTransaction, booking: Booking) -> Booking:
            now = self._clock()
            if booking.time_range(self.timezone).end > now:
                raise InvalidTransition(f"Booking {booking.id} has not taken place yet.")
            return tx.save_booking(self._machine.complete(booking, now=now))

        completed = self._with_locked_booking(booking_id, complete)
        logger.info("Completed booking %s", completed.id)
        return completed

    def remaining_reschedules(self, booking: Booking) -> int:
        return self._machine.remaining_reschedules(booking)

    # Blocked ranges

    def block_time_range(self, request: BlockRequest) -> List[BlockedRange]:
        """
        Expand and store a block request as one blocked range per date.

        The rows are inserted as a single batch: either all of them are
        committed or none is.

        Raises:
            InvalidDateRange: If the range ends before it starts
            InvalidInterval: If a partial day does not start before it ends
        """
        ranges = self._expander.expand(request)
        keys = [
            slot_key(service_id, blocked.date)
            for blocked in ranges
            for service_id in self._services
        ]

        with self._store.transaction(keys) as tx:
            saved = tx.add_blocked_ranges(ranges)
            affected = [
                booking
                for blocked in saved
                for booking in tx.list_bookings(day=blocked.date, statuses=ACTIVE_STATUSES)
                if self._block_hits(blocked, booking)
            ]

        for booking in affected:
            logger.warning(
                "Blocked period overlaps active booking %s on %s at %s",
                booking.id, booking.scheduled_date, booking.scheduled_time.strftime("%H:%M"),
            )

        logger.info(
            "Blocked %s..%s (%d day(s))", request.start_date, request.end_date, len(saved)
        )
        self._publish(ChangeKind.BLOCK_ADDED, [blocked.date for blocked in saved])
        return saved

    def delete_blocked_range(self, range_id: str) -> None:
        """
        Remove one blocked range.

        Raises:
            BlockedRangeNotFound: If no blocked range has this identifier
        """
        with self._store.transaction() as tx:
            blocked = tx.get_blocked_range(range_id)
            if blocked is None or not tx.delete_blocked_range(range_id):
                raise BlockedRangeNotFound(f"Unknown blocked range: {range_id}")

        logger.info("Removed blocked range %s (%s)", range_id, blocked.describe())
        self._publish(ChangeKind.BLOCK_REMOVED, [blocked.date])

    def list_blocked_ranges(self, from_date: Optional[date] = None) -> List[BlockedRange]:
        with self._store.reader() as tx:
            return tx.list_blocked_ranges(from_date=from_date)

    # Internals

    def within_horizon(self, day: date, now: Optional[DateTime] = None) -> bool:
        """Whether ``day`` lies between today and the end of the booking horizon."""
        today = (now or self._clock()).date()
        return today <= day <= today + timedelta(days=self.booking_horizon_days)

    def _open_intervals(
        self,
        tx: StoreTransaction,
        service: Service,
        day: date,
        now: DateTime,
    ) -> List[TimeRange]:
        if not self.within_horizon(day, now):
            return []
        return self._resolver.resolve(
            service, day, self._windows, tx.list_blocked_ranges(day=day)
        )

    def _guard(
        self,
        tx: StoreTransaction,
        service: Service,
        exclude_booking_id: Optional[str] = None,
    ) -> BookingGuard:
        """A guard re-deriving availability and bookings from ``tx``."""

        def check(booking: Booking) -> None:
            now = self._clock()
            day = booking.scheduled_date
            if not self.within_horizon(day, now):
                raise SlotUnavailable(f"{day} is outside the booking horizon.")

            self._checker.check(
                booking.time_range(self.timezone),
                self._open_intervals(tx, service, day, now),
                tx.list_bookings(service_id=service.id, day=day, statuses=ACTIVE_STATUSES),
                exclude_booking_id=exclude_booking_id,
                not_before=now,
            )

        return check

    def _with_locked_booking(
        self,
        booking_id: str,
        action: Callable[[StoreTransaction, Booking], T],
        extra_dates: Sequence[date] = (),
    ) -> T:
        """
        Run ``action`` on a fresh copy of the booking while holding its slot locks.

        The booking's date is only known after reading it, so the read is
        repeated under the lock and retried if the booking moved meanwhile.
        """
        for _ in range(_BOOKING_LOCK_ATTEMPTS):
            current = self.get_booking(booking_id)
            dates = {current.scheduled_date, *extra_dates}
            keys = [slot_key(current.service_id, day) for day in dates]

            with self._store.transaction(keys) as tx:
                fresh = tx.get_booking(booking_id)
                if fresh is None:
                    raise BookingNotFound(f"Unknown booking: {booking_id}")
                if fresh.scheduled_date == current.scheduled_date:
                    return action(tx, fresh)

            logger.debug("Booking %s moved while waiting for its lock, retrying", booking_id)

        raise StoreBusy(f"Booking {booking_id} is being changed concurrently.")

    def _block_hits(self, blocked: BlockedRange, booking: Booking) -> bool:
        blocked_range = blocked.time_range(self.timezone)
        if blocked_range is None:
            return True
        return overlaps(blocked_range, booking.time_range(self.timezone))

    def _publish(
        self,
        kind: ChangeKind,
        dates: Iterable[date],
        service_id: Optional[str] = None,
    ) -> None:
        self._changes.publish(
            ScheduleChange(kind=kind, dates=tuple(sorted(set(dates))), service_id=service_id)
        )

    def _notify(self, event: str, booking: Booking) -> None:
        try:
            getattr(self._notifier, event)(booking)
        except Exception as exc:
            logger.warning("Notification %s for booking %s failed: %s", event, booking.id, exc)
