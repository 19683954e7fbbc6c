"""
Calendar arithmetic.

Every function here takes and returns `datetime.date`. Nothing reads the
clock: callers pass `today` explicitly so month-boundary behaviour is the
same in tests and in production.

Month and year steps use dateutil's relativedelta, which clamps to the end
of shorter months (Jan 31 + 1 month = Feb 28, or Feb 29 in leap years).
"""

import calendar
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from finledger.models.ledger import Frequency
from finledger.models.projection import MonthBucket


def add_interval(anchor: date, frequency: Frequency, intervals: int = 1) -> date:
    """Move `anchor` forward (or back, for negative counts) by N frequency steps."""
    if frequency == Frequency.DAILY:
        return anchor + timedelta(days=intervals)
    if frequency == Frequency.WEEKLY:
        return anchor + timedelta(weeks=intervals)
    if frequency == Frequency.BIWEEKLY:
        return anchor + timedelta(weeks=2 * intervals)
    if frequency == Frequency.MONTHLY:
        return anchor + relativedelta(months=intervals)
    if frequency == Frequency.YEARLY:
        return anchor + relativedelta(years=intervals)
    raise ValueError(f"Unknown frequency: {frequency}")


def add_months(day: date, months: int) -> date:
    return day + relativedelta(months=months)


def month_start(day: date) -> date:
    return day.replace(day=1)


def month_end(day: date) -> date:
    return day.replace(day=days_in_month(day.year, day.month))


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, pulling `day` back to the last day of short months."""
    return date(year, month, min(day, days_in_month(year, month)))


def months_between(start: date, end: date) -> int:
    """Whole calendar months from start's month to end's month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def days_between(start: date, end: date) -> int:
    """Signed day count from start to end."""
    return (end - start).days


def month_bucket(month: date, today: date) -> MonthBucket:
    """Classify a month as past, current or future relative to today."""
    first = month_start(month)
    current = month_start(today)
    if first < current:
        return MonthBucket.PAST
    if first > current:
        return MonthBucket.FUTURE
    return MonthBucket.CURRENT


def iter_months(start: date, end: date):
    """Yield the first day of every month from start's month to end's month."""
    current = month_start(start)
    last = month_start(end)
    while current <= last:
        yield current
        current = add_months(current, 1)
