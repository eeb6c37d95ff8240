"""
Pure schedule evaluation functions.

Contract:
    ``should_run_settlement(today, trigger_day)`` and ``previous_period()``
    are PURE -- no I/O, no clock reads.  The scheduler converts its clock
    reading to a local date in the reference zone and passes it in.

Architecture: inventory_jobs/domain.  ZERO I/O.
"""

from __future__ import annotations

from datetime import date, datetime, tzinfo

from inventory_kernel.domain.calendar import previous_month


def local_date(moment: datetime, tz: tzinfo) -> date:
    """The calendar date of ``moment`` in the reference zone."""
    return moment.astimezone(tz).date()


def should_run_settlement(today: date, trigger_day: int) -> bool:
    """True on the trigger day of every month."""
    return today.day == trigger_day


def previous_period(today: date) -> tuple[int, int]:
    """``(month, year)`` to settle when triggered on ``today``.

    January rolls back to December of the prior year.
    """
    return previous_month(today)
