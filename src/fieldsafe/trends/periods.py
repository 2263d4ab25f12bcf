"""Trend period arithmetic."""

import calendar
from datetime import date, timedelta

from fieldsafe.trends.types import PeriodType


def _last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def period_bounds(period_type: PeriodType, as_of: date) -> tuple[date, date]:
    """Get the inclusive period containing a date.

    Weekly periods run Sunday through Saturday. Monthly and quarterly
    periods follow the calendar.

    Args:
        period_type: Bucket size
        as_of: Any date inside the period

    Returns:
        Tuple of (period_start, period_end)
    """
    if period_type == PeriodType.WEEKLY:
        start = as_of - timedelta(days=(as_of.weekday() + 1) % 7)
        return start, start + timedelta(days=6)

    if period_type == PeriodType.MONTHLY:
        return as_of.replace(day=1), _last_day_of_month(as_of.year, as_of.month)

    first_month = 3 * ((as_of.month - 1) // 3) + 1
    return (
        date(as_of.year, first_month, 1),
        _last_day_of_month(as_of.year, first_month + 2),
    )


def next_period_start(period_type: PeriodType, as_of: date) -> date:
    """First day of the period after the one containing ``as_of``."""
    return period_bounds(period_type, as_of)[1] + timedelta(days=1)
