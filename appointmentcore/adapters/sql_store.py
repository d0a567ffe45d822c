"""
SQLAlchemy-backed scheduling store.

Each transaction runs in its own session. Writers take the process-local
keyed locks, then write-lock one ``scheduling_locks`` row per key before they
read anything, so writers in other processes are serialized too: SQLite
hands out its single write lock, other databases lock the rows. Everything is
committed or rolled back as one unit.
"""

import logging
from contextlib import contextmanager
from datetime import date
from typing import Iterable, Iterator, List, Optional

import pendulum
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    String,
    Time,
    create_engine,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..domain.exceptions import StoreBusy, StoreError
from ..domain.models import BlockedRange, Booking, BookingStatus, new_record_id
from .locks import KeyedLocks

logger = logging.getLogger(__name__)

Base = declarative_base()


class BookingRow(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True)
    service_id = Column(String, nullable=False, index=True)
    scheduled_date = Column(Date, nullable=False, index=True)
    scheduled_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=BookingStatus.PENDING.value)
    reschedule_count = Column(Integer, nullable=False, default=0)
    paid = Column(Boolean, nullable=False, default=False)
    price = Column(Integer, nullable=False, default=0)
    customer_name = Column(String, nullable=False, default="")
    customer_email = Column(String, nullable=False, default="")
    customer_phone = Column(String)
    billing_address = Column(String)
    notes = Column(String)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))


class BlockedRangeRow(Base):
    __tablename__ = "blocked_time_slots"

    id = Column(String(36), primary_key=True)
    blocked_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    all_day = Column(Boolean, nullable=False, default=False)
    reason = Column(String)


class SchedulingLockRow(Base):
    __tablename__ = "scheduling_locks"

    key = Column(String, primary_key=True)


def _instant(value):
    if value is None:
        return None
    # SQLite hands back naive datetimes; they were stored as UTC
    return pendulum.instance(value, tz="UTC")


def _utc(value):
    if value is None:
        return None
    return pendulum.instance(value).in_timezone("UTC")


def _booking_from_row(row: BookingRow) -> Booking:
    return Booking(
        id=row.id,
        service_id=row.service_id,
        scheduled_date=row.scheduled_date,
        scheduled_time=row.scheduled_time,
        duration_minutes=row.duration_minutes,
        status=BookingStatus(row.status),
        reschedule_count=row.reschedule_count,
        paid=row.paid,
        price=row.price,
        customer_name=row.customer_name,
        customer_email=row.customer_email,
        customer_phone=row.customer_phone,
        billing_address=row.billing_address,
        notes=row.notes,
        created_at=_instant(row.created_at),
        updated_at=_instant(row.updated_at),
    )


def _copy_booking_to_row(booking: Booking, row: BookingRow) -> BookingRow:
    row.service_id = booking.service_id
    row.scheduled_date = booking.scheduled_date
    row.scheduled_time = booking.scheduled_time
    row.duration_minutes = booking.duration_minutes
    row.status = booking.status.value
    row.reschedule_count = booking.reschedule_count
    row.paid = booking.paid
    row.price = booking.price
    row.customer_name = booking.customer_name
    row.customer_email = booking.customer_email
    row.customer_phone = booking.customer_phone
    row.billing_address = booking.billing_address
    row.notes = booking.notes
    row.created_at = _utc(booking.created_at)
    row.updated_at = _utc(booking.updated_at)
    return row


def _blocked_from_row(row: BlockedRangeRow) -> BlockedRange:
    return BlockedRange(
        id=row.id,
        date=row.blocked_date,
        start_time=row.start_time,
        end_time=row.end_time,
        all_day=row.all_day,
        reason=row.reason,
    )


class SqlTransaction:
    """Unit of work bound to one SQLAlchemy session."""

    def __init__(self, session: Session):
        self._session = session

    def lock_rows(self, keys: Iterable[str]) -> None:
        """
        Take the write lock for each key before anything is read.

        A no-op UPDATE row-locks on servers and makes SQLite open its write
        transaction, which a SELECT ... FOR UPDATE would not.
        """
        for key in keys:
            try:
                self._session.execute(
                    update(SchedulingLockRow)
                    .where(SchedulingLockRow.key == key)
                    .values(key=SchedulingLockRow.key)
                    .execution_options(synchronize_session=False)
                )
            except OperationalError as exc:
                logger.warning("Timed out waiting for database lock %s: %s", key, exc)
                raise StoreBusy(f"Timed out waiting for the schedule of {key}.") from exc

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        row = self._session.get(BookingRow, booking_id)
        return _booking_from_row(row) if row is not None else None

    def get_blocked_range(self, range_id: str) -> Optional[BlockedRange]:
        row = self._session.get(BlockedRangeRow, range_id)
        return _blocked_from_row(row) if row is not None else None

    def list_bookings(
        self,
        service_id: Optional[str] = None,
        day: Optional[date] = None,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        query = self._session.query(BookingRow)
        if service_id is not None:
            query = query.filter(BookingRow.service_id == service_id)
        if day is not None:
            query = query.filter(BookingRow.scheduled_date == day)
        if statuses is not None:
            query = query.filter(BookingRow.status.in_([s.value for s in statuses]))
        rows = query.order_by(
            BookingRow.scheduled_date, BookingRow.scheduled_time, BookingRow.id
        ).all()
        return [_booking_from_row(row) for row in rows]

    def list_blocked_ranges(
        self,
        day: Optional[date] = None,
        from_date: Optional[date] = None,
    ) -> List[BlockedRange]:
        query = self._session.query(BlockedRangeRow)
        if day is not None:
            query = query.filter(BlockedRangeRow.blocked_date == day)
        if from_date is not None:
            query = query.filter(BlockedRangeRow.blocked_date >= from_date)
        rows = query.order_by(
            BlockedRangeRow.blocked_date, BlockedRangeRow.start_time, BlockedRangeRow.id
        ).all()
        return [_blocked_from_row(row) for row in rows]

    def add_booking(self, booking: Booking) -> Booking:
        now = pendulum.now("UTC")
        row = BookingRow(id=booking.id or new_record_id())
        _copy_booking_to_row(booking, row)
        row.created_at = _utc(booking.created_at or now)
        row.updated_at = _utc(booking.updated_at or now)
        self._session.add(row)
        self._session.flush()
        return _booking_from_row(row)

    def save_booking(self, booking: Booking) -> Booking:
        row = self._session.get(BookingRow, booking.id) if booking.id else None
        if row is None:
            raise KeyError(f"Unknown booking: {booking.id}")
        _copy_booking_to_row(booking, row)
        self._session.flush()
        return _booking_from_row(row)

    def add_blocked_ranges(self, ranges: Iterable[BlockedRange]) -> List[BlockedRange]:
        rows = [
            BlockedRangeRow(
                id=blocked.id or new_record_id(),
                blocked_date=blocked.date,
                start_time=blocked.start_time,
                end_time=blocked.end_time,
                all_day=blocked.all_day,
                reason=blocked.reason,
            )
            for blocked in ranges
        ]
        self._session.add_all(rows)
        self._session.flush()
        return [_blocked_from_row(row) for row in rows]

    def delete_blocked_range(self, range_id: str) -> bool:
        row = self._session.get(BlockedRangeRow, range_id)
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True


class SqlStore:
    """
    Scheduling store on any SQLAlchemy-supported database.

    Args:
        database_url: SQLAlchemy URL, e.g. ``sqlite:///appointments.db``
        lock_timeout: Seconds to wait for a scheduling lock, in this process or the database
        echo: Log emitted SQL
    """

    def __init__(self, database_url: str, lock_timeout: float = 10.0, echo: bool = False):
        engine_options = {"echo": echo}
        if database_url.startswith("sqlite"):
            # The driver waits this long for another connection's write lock
            engine_options["connect_args"] = {"check_same_thread": False, "timeout": lock_timeout}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_options["poolclass"] = StaticPool

        self.engine = create_engine(database_url, **engine_options)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self._locks = KeyedLocks(timeout=lock_timeout)
        Base.metadata.create_all(bind=self.engine)

    def _ensure_lock_rows(self, keys: Iterable[str]) -> None:
        for key in keys:
            try:
                with self.engine.begin() as conn:
                    found = conn.execute(
                        select(SchedulingLockRow.key).where(SchedulingLockRow.key == key)
                    ).first()
                    if found is None:
                        conn.execute(insert(SchedulingLockRow).values(key=key))
            except IntegrityError:
                # Another writer created it first
                continue
            except SQLAlchemyError as exc:
                logger.error("Could not prepare scheduling lock %s: %s", key, exc)
                raise StoreError() from exc

    @contextmanager
    def transaction(self, keys: Iterable[str] = ()) -> Iterator[SqlTransaction]:
        with self._locks.hold(keys) as ordered:
            self._ensure_lock_rows(ordered)
            session = self._session_factory()
            try:
                tx = SqlTransaction(session)
                tx.lock_rows(ordered)
                yield tx
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error("Scheduling transaction failed: %s", exc)
                raise StoreError() from exc
            except BaseException:
                session.rollback()
                raise
            finally:
                session.close()

    @contextmanager
    def reader(self) -> Iterator[SqlTransaction]:
        session = self._session_factory()
        try:
            yield SqlTransaction(session)
        except SQLAlchemyError as exc:
            logger.error("Scheduling read failed: %s", exc)
            raise StoreError() from exc
        finally:
            session.rollback()
            session.close()
