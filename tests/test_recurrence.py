"""Tests for recurrence scheduling."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from finledger.engine.recurrence import (
    consume,
    due_dates,
    materialize,
    next_occurrence,
    occurrences_between,
    upcoming,
)
from finledger.models import (
    ExpenseTransaction,
    Frequency,
    IncomeTransaction,
    Recurrence,
    RecurrenceType,
    TransactionStatus,
)


OWNER = "user-1"
TODAY = date(2024, 6, 10)


def recurrence(start, frequency=Frequency.MONTHLY, **kwargs):
    fields = dict(
        owner_id=OWNER,
        type=RecurrenceType.EXPENSE,
        description="Rent",
        amount=Decimal("1200"),
        frequency=frequency,
        start_date=start,
        account_id=uuid4(),
    )
    fields.update(kwargs)
    return Recurrence(**fields)


class TestNextOccurrence:
    """Tests for single-step arithmetic."""

    def test_biweekly_is_two_weeks(self):
        """Test biweekly steps 14 days."""
        assert next_occurrence(date(2024, 6, 1), Frequency.BIWEEKLY) == date(2024, 6, 15)

    def test_monthly_end_of_month(self):
        """Test Jan 31 -> Feb 29 in a leap year."""
        assert next_occurrence(date(2024, 1, 31), Frequency.MONTHLY) == date(2024, 2, 29)


class TestUpcoming:
    """Tests for previews."""

    def test_inactive_has_no_upcoming(self):
        """Test that inactive recurrences preview nothing."""
        rec = recurrence(date(2024, 1, 1), is_active=False)
        assert upcoming(rec, 3, TODAY) == []

    def test_keeps_day_of_month(self):
        """Test that a series starting on the 31st does not drift to the 28th."""
        rec = recurrence(date(2024, 1, 31))
        assert upcoming(rec, 3, TODAY) == [
            date(2024, 6, 30),
            date(2024, 7, 31),
            date(2024, 8, 31),
        ]

    def test_anchored_on_cached_next_occurrence(self):
        """Test that the cached next_occurrence is the anchor when present."""
        rec = recurrence(date(2024, 1, 31), next_occurrence=date(2024, 7, 31))
        assert upcoming(rec, 2, TODAY) == [date(2024, 7, 31), date(2024, 8, 31)]

    def test_future_start(self):
        """Test that a not-yet-started series begins at its start date."""
        rec = recurrence(date(2024, 9, 5))
        assert upcoming(rec, 2, TODAY) == [date(2024, 9, 5), date(2024, 10, 5)]

    def test_stops_at_end_date(self):
        """Test that previews stop at end_date."""
        rec = recurrence(date(2024, 6, 1), frequency=Frequency.WEEKLY, end_date=date(2024, 6, 30))
        assert upcoming(rec, 10, TODAY) == [
            date(2024, 6, 15),
            date(2024, 6, 22),
            date(2024, 6, 29),
        ]


class TestConsume:
    """Tests for advancing the cached next occurrence."""

    def test_advances_one_interval(self):
        """Test consume moves next_occurrence exactly one step."""
        rec = recurrence(date(2024, 1, 31), next_occurrence=date(2024, 2, 29))
        advanced = consume(rec)
        assert advanced.next_occurrence == date(2024, 3, 31)
        assert rec.next_occurrence == date(2024, 2, 29)

    def test_consume_from_start(self):
        """Test consume without a cache starts from start_date."""
        rec = recurrence(date(2024, 6, 1), frequency=Frequency.DAILY)
        assert consume(rec).next_occurrence == date(2024, 6, 2)

    def test_consume_keeps_invariant(self):
        """Test next_occurrence never falls before start_date."""
        rec = recurrence(date(2024, 6, 1))
        for _ in range(5):
            rec = consume(rec)
            assert rec.next_occurrence >= rec.start_date


class TestMaterialize:
    """Tests for generating pending transactions."""

    def test_generates_through_horizon(self):
        """Test every scheduled date from start through today + 3 months."""
        rec = recurrence(date(2024, 5, 15))
        assert due_dates(rec, TODAY, 3) == [
            date(2024, 5, 15),
            date(2024, 6, 15),
            date(2024, 7, 15),
            date(2024, 8, 15),
        ]

        created, following = materialize(rec, [], TODAY, 3)
        assert [t.date for t in created] == due_dates(rec, TODAY, 3)
        assert all(isinstance(t, ExpenseTransaction) for t in created)
        assert all(t.status == TransactionStatus.PENDING for t in created)
        assert all(t.recurrence_id == rec.id for t in created)
        assert following == date(2024, 6, 15)

    def test_skips_existing_dates(self):
        """Test that already-materialized dates are not created again."""
        rec = recurrence(date(2024, 5, 15))
        created, _ = materialize(rec, [date(2024, 5, 15), date(2024, 6, 15)], TODAY, 3)
        assert [t.date for t in created] == [date(2024, 7, 15), date(2024, 8, 15)]

    def test_future_start_generates_nothing(self):
        """Test a recurrence starting in the future keeps next_occurrence at start."""
        rec = recurrence(date(2024, 7, 1))
        created, following = materialize(rec, [], TODAY, 3)
        assert created == []
        assert following == date(2024, 7, 1)

    def test_inactive_generates_nothing(self):
        """Test that toggling is_active off stops generation."""
        rec = recurrence(date(2024, 5, 1), is_active=False, next_occurrence=date(2024, 6, 1))
        created, following = materialize(rec, [], TODAY, 3)
        assert created == []
        assert following == date(2024, 6, 1)

    def test_stops_at_end_date(self):
        """Test that a finished series yields no next occurrence."""
        rec = recurrence(date(2024, 4, 1), end_date=date(2024, 5, 31))
        created, following = materialize(rec, [], TODAY, 3)
        assert [t.date for t in created] == [date(2024, 4, 1), date(2024, 5, 1)]
        assert following is None

    def test_income_recurrence(self):
        """Test that income recurrences produce income."""
        rec = recurrence(date(2024, 6, 5), type=RecurrenceType.INCOME, description="Salary")
        created, _ = materialize(rec, [], TODAY, 0)
        assert len(created) == 1
        assert isinstance(created[0], IncomeTransaction)

    def test_card_recurrence(self):
        """Test that card-linked expense recurrences produce card purchases."""
        card_id = uuid4()
        rec = recurrence(date(2024, 6, 5), account_id=None, credit_card_id=card_id)
        created, _ = materialize(rec, [], TODAY, 0)
        assert created[0].credit_card_id == card_id
        assert created[0].account_id is None


class TestOccurrencesBetween:
    """Tests for range queries."""

    def test_inclusive_range(self):
        """Test both ends are inclusive."""
        rec = recurrence(date(2024, 1, 10))
        assert occurrences_between(rec, date(2024, 6, 10), date(2024, 8, 10)) == [
            date(2024, 6, 10),
            date(2024, 7, 10),
            date(2024, 8, 10),
        ]

    def test_range_before_start(self):
        """Test a range entirely before the start is empty."""
        rec = recurrence(date(2024, 9, 1))
        assert occurrences_between(rec, date(2024, 6, 1), date(2024, 6, 30)) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
