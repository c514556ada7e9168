# backend/fundledger/utils/date_utils.py
"""
Date utility functions.

Snapshot batches are cut into period boundaries by granularity; the helpers
here compute those boundaries so every caller agrees on them.

Usage:
    from fundledger.utils.date_utils import get_period_boundaries

    boundaries = get_period_boundaries(start, end, "MONTHLY")
"""

import calendar
from datetime import date, timedelta

FRIDAY = 4


def get_business_days(start_date: date, end_date: date) -> list[date]:
    """
    Get list of business days (weekdays) in a date range.

    Business days are Monday through Friday (weekday() < 5).
    Market holidays are not taken into account.

    Example:
        >>> get_business_days(date(2024, 1, 1), date(2024, 1, 7))
        [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3),
         date(2024, 1, 4), date(2024, 1, 5)]  # Mon-Fri
    """
    days = []
    current = start_date

    while current <= end_date:
        if current.weekday() < 5:
            days.append(current)
        current += timedelta(days=1)

    return days


def month_end(d: date) -> date:
    """Last calendar day of the month containing d."""
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def get_week_ends(start_date: date, end_date: date) -> list[date]:
    """Fridays within [start_date, end_date]."""
    first = start_date + timedelta(days=(FRIDAY - start_date.weekday()) % 7)
    result = []
    current = first
    while current <= end_date:
        result.append(current)
        current += timedelta(days=7)
    return result


def get_month_ends(start_date: date, end_date: date) -> list[date]:
    """Month-end dates within [start_date, end_date]."""
    result = []
    current = month_end(start_date)
    while current <= end_date:
        result.append(current)
        current = month_end(current + timedelta(days=1))
    return result


def get_period_boundaries(start_date: date, end_date: date, granularity: str) -> list[date]:
    """
    Period-end dates for a snapshot batch.

    - DAILY: every business day in the range
    - WEEKLY: every Friday in the range
    - MONTHLY: every month end in the range

    For WEEKLY and MONTHLY the end date is appended when it does not fall on
    a boundary, so the running period is captured as well.

    Args:
        start_date: First date in range (inclusive)
        end_date: Last date in range (inclusive)
        granularity: DAILY, WEEKLY or MONTHLY (case-insensitive)

    Raises:
        ValueError: If the range is inverted or the granularity is unknown
    """
    if end_date < start_date:
        raise ValueError(f"end_date {end_date} is before start_date {start_date}")

    key = str(granularity).upper()
    if key == "DAILY":
        return get_business_days(start_date, end_date)
    if key == "WEEKLY":
        boundaries = get_week_ends(start_date, end_date)
    elif key == "MONTHLY":
        boundaries = get_month_ends(start_date, end_date)
    else:
        raise ValueError(f"Unknown granularity: '{granularity}'. Valid options: DAILY, WEEKLY, MONTHLY")

    if not boundaries or boundaries[-1] != end_date:
        boundaries.append(end_date)
    return boundaries
