"""
Expansion of operator block requests into per-day blocked ranges.
"""

import logging
from dataclasses import dataclass
from datetime import date, time, timedelta
from typing import Iterator, List, Optional

from .exceptions import InvalidDateRange, InvalidInterval
from .models import END_OF_DAY, START_OF_DAY, BlockedRange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockRequest:
    """
    An operator's request to mark time as unavailable.

    Equal start and end dates describe a single-day block. Times are ignored
    when ``all_day`` is set.
    """
    start_date: date
    end_date: date
    start_time: time = START_OF_DAY
    end_time: time = END_OF_DAY
    all_day: bool = False
    reason: Optional[str] = None

    @classmethod
    def single_day(
        cls,
        day: date,
        start_time: time = START_OF_DAY,
        end_time: time = END_OF_DAY,
        all_day: bool = False,
        reason: Optional[str] = None,
    ) -> "BlockRequest":
        return cls(
            start_date=day,
            end_date=day,
            start_time=start_time,
            end_time=end_time,
            all_day=all_day,
            reason=reason,
        )

    @property
    def day_count(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def dates(self) -> Iterator[date]:
        """Every covered date, inclusive of both ends."""
        current = self.start_date
        while current <= self.end_date:
            yield current
            current += timedelta(days=1)


class BlockedRangeExpander:
    """
    Turns a block request into one ``BlockedRange`` per covered date.

    Policy for multi-day requests that are not all-day:
    1. The first day is blocked from the start time to the end of the day
    2. Every interior day is blocked all day
    3. The last day is blocked from the start of the day to the end time

    An all-day request blocks every covered date all day.
    """

    def __init__(self, max_days: int = 366):
        self.max_days = max_days

    def expand(self, request: BlockRequest) -> List[BlockedRange]:
        """
        Expand a request into blocked ranges, in date order.

        Raises:
            InvalidDateRange: If the range ends before it starts or is too long
            InvalidInterval: If a partial day would not start before it ends
        """
        self._validate(request)
        reason = self._normalise_reason(request.reason)

        if request.all_day:
            return [
                BlockedRange(date=day, all_day=True, reason=reason)
                for day in request.dates()
            ]

        if request.day_count == 1:
            return [
                BlockedRange(
                    date=request.start_date,
                    start_time=request.start_time,
                    end_time=request.end_time,
                    reason=reason,
                )
            ]

        ranges: List[BlockedRange] = []

        for day in request.dates():
            if day == request.start_date:
                ranges.append(
                    BlockedRange(
                        date=day,
                        start_time=request.start_time,
                        end_time=END_OF_DAY,
                        reason=reason,
                    )
                )
            elif day == request.end_date:
                ranges.append(
                    BlockedRange(
                        date=day,
                        start_time=START_OF_DAY,
                        end_time=request.end_time,
                        reason=reason,
                    )
                )
            else:
                ranges.append(BlockedRange(date=day, all_day=True, reason=reason))

        logger.debug(
            "Expanded block %s..%s into %d ranges",
            request.start_date, request.end_date, len(ranges),
        )
        return ranges

    def _validate(self, request: BlockRequest) -> None:
        if request.end_date < request.start_date:
            raise InvalidDateRange(
                f"End date {request.end_date} is earlier than start date {request.start_date}."
            )

        if request.day_count > self.max_days:
            raise InvalidDateRange(
                f"A block may cover at most {self.max_days} days, got {request.day_count}."
            )

        if request.all_day:
            return

        if request.day_count == 1:
            if request.start_time >= request.end_time:
                raise InvalidInterval(
                    f"Start time {request.start_time} must be earlier than end time {request.end_time}."
                )
            return

        # Boundary days of a multi-day block must not collapse to nothing
        if request.start_time >= END_OF_DAY:
            raise InvalidInterval(
                f"Start time {request.start_time} leaves nothing to block on {request.start_date}."
            )
        if request.end_time <= START_OF_DAY:
            raise InvalidInterval(
                f"End time {request.end_time} leaves nothing to block on {request.end_date}."
            )

    @staticmethod
    def _normalise_reason(reason: Optional[str]) -> Optional[str]:
        if reason is None:
            return None
        reason = reason.strip()
        return reason or None
