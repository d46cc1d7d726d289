"""Relative reporting windows and calendar helpers."""

from __future__ import annotations

import calendar
from datetime import datetime
from enum import Enum
from typing import Optional


class TimePeriod(str, Enum):
    """Lookback windows understood by the query tools."""

    ALL_TIME = "all time"
    LAST_MONTH = "last month"
    LAST_3_MONTHS = "last 3 months"
    LAST_6_MONTHS = "last 6 months"
    LAST_YEAR = "last year"

    @property
    def months_back(self) -> Optional[int]:
        return _MONTHS_BACK[self]

    def start_from(self, now: datetime) -> Optional[datetime]:
        """Return the window start relative to ``now``; None means unbounded."""
        months = self.months_back
        if months is None:
            return None
        return subtract_months(now, months)


_MONTHS_BACK: dict[TimePeriod, Optional[int]] = {
    TimePeriod.ALL_TIME: None,
    TimePeriod.LAST_MONTH: 1,
    TimePeriod.LAST_3_MONTHS: 3,
    TimePeriod.LAST_6_MONTHS: 6,
    TimePeriod.LAST_YEAR: 12,
}


def subtract_months(instant: datetime, months: int) -> datetime:
    """Move ``instant`` back by whole calendar months.

    The day is clamped to the last day of the target month, so
    March 31st minus one month is February 28th/29th.
    """
    if months < 0:
        raise ValueError(f"months must be non-negative: {months}")
    month_index = instant.year * 12 + (instant.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(instant.day, calendar.monthrange(year, month)[1])
    return instant.replace(year=year, month=month, day=day)


def month_start(instant: datetime) -> datetime:
    """First instant of the calendar month containing ``instant``."""
    return instant.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def next_month_start(instant: datetime) -> datetime:
    start = month_start(instant)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def months_between(start: datetime, end: datetime) -> int:
    """Whole calendar months from ``start`` to ``end`` (year/month difference only)."""
    return (end.year - start.year) * 12 + (end.month - start.month)
