"""Tests for month projections and scenario simulation."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from finledger.engine.projection import (
    initial_balance,
    month_view,
    pending_occurrences,
    scenario_impact,
    simulate,
)
from finledger.models import (
    Account,
    ExpenseTransaction,
    Frequency,
    IncomeTransaction,
    MonthBucket,
    Recurrence,
    RecurrenceType,
    ScenarioItem,
    TransactionStatus,
)


OWNER = "user-1"
TODAY = date(2024, 6, 10)
JUNE = date(2024, 6, 1)


class LedgerFixture:
    """One checking account with a small June history."""

    def __init__(self):
        self.account = Account(owner_id=OWNER, name="Checking", opening_balance=Decimal("1000"))
        self.transactions = [
            ExpenseTransaction(
                owner_id=OWNER, account_id=self.account.id, amount=Decimal("200"),
                date=date(2024, 5, 20), status=TransactionStatus.CONFIRMED,
            ),
            IncomeTransaction(
                owner_id=OWNER, account_id=self.account.id, amount=Decimal("500"),
                date=date(2024, 6, 5), status=TransactionStatus.CONFIRMED,
            ),
            ExpenseTransaction(
                owner_id=OWNER, account_id=self.account.id, amount=Decimal("300"),
                date=date(2024, 6, 20), status=TransactionStatus.PENDING,
            ),
        ]

    def view(self, month, recurrences=None, accounts=None):
        return month_view(
            month,
            accounts or [self.account],
            self.transactions,
            [],
            recurrences or [],
            TODAY,
        )


class TestMonthView:
    """Tests for the three month balances."""

    def setup_method(self):
        self.ledger = LedgerFixture()

    def test_current_month(self):
        """Test initial, current and projected balances for the running month."""
        view = self.ledger.view(JUNE)
        assert view.bucket == MonthBucket.CURRENT
        assert view.initial_balance == Decimal("800")
        assert view.current_balance == Decimal("1300")
        assert view.projected_balance == Decimal("1000")

    def test_projected_identity(self):
        """Test projected == liquid + pending income - pending expenses."""
        for month in (date(2024, 5, 1), JUNE, date(2024, 7, 1)):
            view = self.ledger.view(month)
            assert view.projected_balance == (
                view.liquid_balance + view.pending_income - view.pending_expenses
            )

    def test_future_month_current_is_initial(self):
        """Test that a future month has not moved yet."""
        view = self.ledger.view(date(2024, 7, 1))
        assert view.bucket == MonthBucket.FUTURE
        assert view.initial_balance == Decimal("1300")
        assert view.current_balance == view.initial_balance

    def test_past_month_includes_whole_month(self):
        """Test that a past month's current balance covers every day of it."""
        view = self.ledger.view(date(2024, 5, 1))
        assert view.bucket == MonthBucket.PAST
        assert view.initial_balance == Decimal("1000")
        assert view.current_balance == Decimal("800")

    def test_excluded_account_left_out(self):
        """Test that accounts outside the total do not count."""
        hidden = Account(
            owner_id=OWNER, name="Hidden", opening_balance=Decimal("9000"), include_in_total=False
        )
        view = self.ledger.view(JUNE, accounts=[self.ledger.account, hidden])
        assert view.initial_balance == Decimal("800")

    def test_card_purchase_left_out(self):
        """Test card purchases never enter the month's cash flow."""
        self.ledger.transactions.append(ExpenseTransaction(
            owner_id=OWNER, credit_card_id=uuid4(), amount=Decimal("75"),
            date=date(2024, 6, 3), status=TransactionStatus.CONFIRMED,
        ))
        view = self.ledger.view(JUNE)
        assert view.current_balance == Decimal("1300")
        assert len(view.expenses) == 1

    def test_pending_before_count(self):
        """Test overdue pending items before the month are counted."""
        self.ledger.transactions.append(ExpenseTransaction(
            owner_id=OWNER, account_id=self.ledger.account.id, amount=Decimal("10"),
            date=date(2024, 5, 2), status=TransactionStatus.PENDING,
        ))
        assert self.ledger.view(JUNE).pending_before_count == 1

    def test_unmaterialized_recurrence_projected(self):
        """Test a recurrence without a transaction adds to projected flow."""
        rent = Recurrence(
            owner_id=OWNER, type=RecurrenceType.EXPENSE, description="Rent",
            amount=Decimal("900"), frequency=Frequency.MONTHLY, start_date=date(2024, 1, 15),
            account_id=self.ledger.account.id,
        )
        view = self.ledger.view(JUNE, recurrences=[rent])
        assert [o.date for o in view.recurring] == [date(2024, 6, 15)]
        assert view.projected_expenses == Decimal("1200")
        assert view.projected_income == Decimal("500")

    def test_past_month_ignores_recurrences(self):
        """Test recurrences are not projected into past months."""
        rent = Recurrence(
            owner_id=OWNER, type=RecurrenceType.EXPENSE, description="Rent",
            amount=Decimal("900"), frequency=Frequency.MONTHLY, start_date=date(2024, 1, 15),
            account_id=self.ledger.account.id,
        )
        view = self.ledger.view(date(2024, 5, 1), recurrences=[rent])
        assert view.recurring == []


class TestPendingOccurrences:
    """Tests for materialized detection."""

    def test_materialized_date_skipped(self):
        """Test an occurrence with a matching transaction is not projected."""
        account = Account(owner_id=OWNER, name="Checking")
        rec = Recurrence(
            owner_id=OWNER, type=RecurrenceType.INCOME, description="Salary",
            amount=Decimal("3000"), frequency=Frequency.MONTHLY,
            start_date=date(2024, 1, 5), account_id=account.id,
        )
        done = IncomeTransaction(
            owner_id=OWNER, account_id=account.id, amount=Decimal("3000"),
            date=date(2024, 6, 5), recurrence_id=rec.id,
        )
        result = pending_occurrences(
            [rec], [done], date(2024, 6, 1), date(2024, 7, 31), {account.id}
        )
        assert [o.date for o in result] == [date(2024, 7, 5)]


class TestSimulate:
    """Tests for scenario simulation."""

    def setup_method(self):
        self.ledger = LedgerFixture()

    def run(self, items, target=date(2024, 8, 1), max_months=None):
        return simulate(
            JUNE, target, items,
            [self.ledger.account], self.ledger.transactions, [], [], TODAY,
            max_months=max_months,
        )

    def test_expense_compounds_monthly(self):
        """Test a 100 monthly expense lowers month k's final by 100 * k."""
        result = self.run([ScenarioItem(type="expense", amount=Decimal("100"))])
        assert result.is_simulating
        assert [m.delta for m in result.months] == [
            Decimal("-100"), Decimal("-200"), Decimal("-300"),
        ]
        assert result.simulated_projected_balance == result.original_projected_balance - 300

    def test_chain_starts_from_forecast_initial(self):
        """Test the base month starts at its initial balance and chains forward."""
        result = self.run([])
        first, second = result.months[0], result.months[1]
        assert first.original_initial == initial_balance(
            JUNE, [self.ledger.account], self.ledger.transactions, include_pending=True
        )
        assert first.original_final == Decimal("1000")
        assert second.original_initial == first.original_final

    def test_no_items(self):
        """Test an empty scenario is not simulating and changes nothing."""
        result = self.run([])
        assert not result.is_simulating
        assert all(m.delta == 0 for m in result.months)

    def test_target_before_base_clamped(self):
        """Test a target earlier than the base collapses to the base month."""
        result = self.run([], target=date(2024, 3, 1))
        assert result.target_month == JUNE
        assert len(result.months) == 1

    def test_max_months_caps_span(self):
        """Test the simulation never runs past max_months."""
        result = self.run([], target=date(2025, 12, 1), max_months=2)
        assert [m.month for m in result.months] == [JUNE, date(2024, 7, 1)]

    def test_scenario_impact_signs(self):
        """Test income adds and expense subtracts."""
        items = [
            ScenarioItem(type="income", amount=Decimal("250")),
            ScenarioItem(type="expense", amount=Decimal("100")),
        ]
        assert scenario_impact(items) == Decimal("150")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
