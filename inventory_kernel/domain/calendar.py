"""
Calendar -- settlement windows in the reference time zone.

All functions are pure.  The reference zone is passed in explicitly so
that a month always means the deployment's month, never the host's.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo


@dataclass(frozen=True)
class SettlementWindow:
    """Inclusive calendar-month range, held as aware UTC datetimes."""

    month: int
    year: int
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment.astimezone(timezone.utc) <= self.end


def month_window(month: int, year: int, tz: tzinfo) -> SettlementWindow:
    """
    Compute ``[first day 00:00:00, last day 23:59:59.999999]`` for a month.

    Bounds are built in ``tz`` and converted to UTC for storage comparison.
    """
    last_day = calendar.monthrange(year, month)[1]
    start_local = datetime.combine(date(year, month, 1), time.min, tzinfo=tz)
    end_local = datetime.combine(date(year, month, last_day), time.max, tzinfo=tz)
    return SettlementWindow(
        month=month,
        year=year,
        start=start_local.astimezone(timezone.utc),
        end=end_local.astimezone(timezone.utc),
    )


def previous_month(today: date) -> tuple[int, int]:
    """Return ``(month, year)`` of the calendar month before ``today``."""
    first = today.replace(day=1)
    prior = first - timedelta(days=1)
    return prior.month, prior.year


def localize(moment: datetime, tz: tzinfo) -> datetime:
    """
    Attach or convert to the reference zone.

    Naive input is read as wall-clock time in ``tz``.
    """
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)
