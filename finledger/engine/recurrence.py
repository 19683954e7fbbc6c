"""
Recurrence scheduling.

Every occurrence is computed from the recurrence's start date (occurrence
n = start + n intervals), never by chaining from the previous occurrence.
A monthly series starting on the 31st therefore yields Jan 31, Feb 28,
Mar 31, ... instead of drifting to the 28th forever.

Toggling `is_active` only decides whether future occurrences are produced;
transactions that were already generated are never touched here.
"""

from datetime import date
from typing import Iterable, Optional

from finledger.engine.dates import add_interval, add_months, months_between
from finledger.models.ledger import (
    ExpenseTransaction,
    Frequency,
    IncomeTransaction,
    Recurrence,
    RecurrenceType,
    TransactionStatus,
)


def next_occurrence(anchor: date, frequency: Frequency, intervals: int = 1) -> date:
    """Date `intervals` steps after `anchor`. Biweekly is two weekly steps."""
    return add_interval(anchor, frequency, intervals)


def occurrence_on(recurrence: Recurrence, index: int) -> date:
    """The index-th scheduled date (0 is the start date)."""
    return add_interval(recurrence.start_date, recurrence.frequency, index)


def _index_estimate(recurrence: Recurrence, threshold: date) -> int:
    days = (threshold - recurrence.start_date).days
    if days <= 0:
        return 0
    frequency = recurrence.frequency
    if frequency == Frequency.DAILY:
        return days
    if frequency == Frequency.WEEKLY:
        return days // 7
    if frequency == Frequency.BIWEEKLY:
        return days // 14
    if frequency == Frequency.MONTHLY:
        return months_between(recurrence.start_date, threshold)
    return threshold.year - recurrence.start_date.year


def first_index_on_or_after(recurrence: Recurrence, threshold: date) -> int:
    """Index of the first scheduled date that is >= threshold."""
    index = max(_index_estimate(recurrence, threshold) - 1, 0)
    while occurrence_on(recurrence, index) < threshold:
        index += 1
    return index


def _within_end(recurrence: Recurrence, day: date) -> bool:
    return recurrence.end_date is None or day <= recurrence.end_date


def upcoming(recurrence: Recurrence, count: int, today: date) -> list[date]:
    """
    Preview the next `count` dates.

    Anchored on the cached next_occurrence when there is one, otherwise on
    max(start_date, today). Inactive recurrences have no upcoming dates.
    """
    if not recurrence.is_active or count <= 0:
        return []

    anchor = recurrence.next_occurrence or max(recurrence.start_date, today)
    index = first_index_on_or_after(recurrence, anchor)

    dates = []
    while len(dates) < count:
        day = occurrence_on(recurrence, index)
        if not _within_end(recurrence, day):
            break
        dates.append(day)
        index += 1
    return dates


def consume(recurrence: Recurrence) -> Recurrence:
    """
    Advance next_occurrence by exactly one interval.

    Returns a new Recurrence; the input is left as it was.
    """
    current = recurrence.next_occurrence or recurrence.start_date
    index = first_index_on_or_after(recurrence, current)
    if occurrence_on(recurrence, index) == current:
        advanced = occurrence_on(recurrence, index + 1)
    else:
        # cache was set off-schedule by hand; step from it directly
        advanced = next_occurrence(current, recurrence.frequency)
    return recurrence.model_copy(update={"next_occurrence": advanced})


def occurrences_between(
    recurrence: Recurrence,
    range_start: date,
    range_end: date,
) -> list[date]:
    """Scheduled dates inside [range_start, range_end], both inclusive."""
    if not recurrence.is_active:
        return []
    start = max(range_start, recurrence.start_date)
    if start > range_end:
        return []

    dates = []
    index = first_index_on_or_after(recurrence, start)
    while True:
        day = occurrence_on(recurrence, index)
        if day > range_end or not _within_end(recurrence, day):
            break
        dates.append(day)
        index += 1
    return dates


def due_dates(recurrence: Recurrence, today: date, months_ahead: int = 3) -> list[date]:
    """Every scheduled date from start_date through today + months_ahead."""
    return occurrences_between(
        recurrence,
        recurrence.start_date,
        add_months(today, months_ahead),
    )


def materialize(
    recurrence: Recurrence,
    existing_dates: Iterable[date],
    today: date,
    months_ahead: int = 3,
) -> tuple[list, Optional[date]]:
    """
    Generate the pending transactions a recurrence owes.

    Covers every scheduled date from start_date through today + months_ahead,
    skipping dates that already have a transaction. A recurrence that has
    not started yet generates nothing and keeps next_occurrence at its
    start date.

    Returns (new_transactions, next_occurrence) where next_occurrence is
    the first scheduled date after today, or None once the series ended.
    """
    if not recurrence.is_active:
        return [], recurrence.next_occurrence
    if recurrence.start_date > today:
        return [], recurrence.start_date

    existing = set(existing_dates)
    created = []
    for day in due_dates(recurrence, today, months_ahead):
        if day in existing:
            continue
        created.append(_build_transaction(recurrence, day))

    following = upcoming(
        recurrence.model_copy(update={"next_occurrence": None}),
        1,
        add_interval(today, Frequency.DAILY),
    )
    return created, (following[0] if following else None)


def _build_transaction(recurrence: Recurrence, day: date):
    fields = dict(
        owner_id=recurrence.owner_id,
        status=TransactionStatus.PENDING,
        amount=recurrence.amount,
        date=day,
        description=recurrence.description,
        category=recurrence.category,
        account_id=recurrence.account_id,
        recurrence_id=recurrence.id,
    )
    if recurrence.type == RecurrenceType.INCOME:
        return IncomeTransaction(**fields)
    return ExpenseTransaction(credit_card_id=recurrence.credit_card_id, **fields)
