"""Tests for alert evaluation."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from finledger.config import AlertSettings
from finledger.engine.alerts import evaluate, low_balance
from finledger.engine.installments import plan_group
from finledger.models import (
    AlertSeverity,
    Budget,
    ExpenseTransaction,
    Frequency,
    IncomeTransaction,
    InstallmentGroupWithChildren,
    InstallmentInput,
    Invoice,
    LedgerSnapshot,
    Recurrence,
    RecurrenceType,
    SavingsGoal,
    TransactionStatus,
)


OWNER = "user-1"
TODAY = date(2024, 6, 10)
ACCOUNT_ID = uuid4()


def snapshot(**kwargs) -> LedgerSnapshot:
    fields = dict(
        owner_id=OWNER,
        today=TODAY,
        liquid_balance=Decimal("10000"),
        savings_total=Decimal("0"),
        month_transactions=[],
        upcoming_transactions=[],
        due_invoices=[],
        budgets=[],
        savings_goals=[],
        recurrences=[],
        installment_groups=[],
    )
    fields.update(kwargs)
    return LedgerSnapshot(**fields)


def run(snap: LedgerSnapshot, **kwargs):
    return evaluate(snap, settings=AlertSettings(), currency="$", **kwargs)


def ids(alerts) -> list[str]:
    return [a.id for a in alerts]


def by_prefix(alerts, prefix):
    return [a for a in alerts if a.id.startswith(prefix)]


def spend(amount, category="food", day=date(2024, 6, 5), status=TransactionStatus.CONFIRMED):
    return ExpenseTransaction(
        owner_id=OWNER, account_id=ACCOUNT_ID, amount=Decimal(amount),
        date=day, category=category, status=status,
    )


def earn(amount, day=date(2024, 6, 5)):
    return IncomeTransaction(
        owner_id=OWNER, account_id=ACCOUNT_ID, amount=Decimal(amount),
        date=day, status=TransactionStatus.CONFIRMED,
    )


def due_soon(amount="20"):
    return [spend(amount, day=date(2024, 6, 12), status=TransactionStatus.PENDING)]


class TestBudgetRules:
    """Tests for budget usage alerts."""

    def setup_method(self):
        self.budget = Budget(
            owner_id=OWNER, category="food", amount=Decimal("1000"),
            period_start=date(2024, 6, 1), period_end=date(2024, 6, 30),
        )

    def alerts_for(self, spent):
        return by_prefix(run(snapshot(budgets=[self.budget], month_transactions=[spend(spent)])), "budget-")

    def test_exceeded_is_critical(self):
        """Test 100% usage raises a critical alert."""
        alerts = self.alerts_for("1000")
        assert ids(alerts) == [f"budget-exceeded-{self.budget.id}"]
        assert alerts[0].severity == AlertSeverity.CRITICAL

    def test_warning_at_85_percent(self):
        """Test usage past the warning line raises a warning."""
        alerts = self.alerts_for("850")
        assert ids(alerts) == [f"budget-warning-{self.budget.id}"]
        assert alerts[0].severity == AlertSeverity.WARNING

    def test_pace_ahead_of_calendar(self):
        """Test 60% used with a third of the window elapsed raises a pace insight."""
        alerts = self.alerts_for("600")
        assert ids(alerts) == [f"budget-pace-{self.budget.id}"]
        assert alerts[0].severity == AlertSeverity.INFO

    def test_pace_needs_twenty_point_lead(self):
        """Test pace fires only when used% exceeds elapsed% + 20."""
        # Jun 6 - Jun 15 with today Jun 10: half the window has elapsed
        budget = self.budget.model_copy(update={
            "period_start": date(2024, 6, 6),
            "period_end": date(2024, 6, 15),
        })

        def pace(spent):
            snap = snapshot(budgets=[budget], month_transactions=[spend(spent, day=date(2024, 6, 7))])
            return by_prefix(run(snap), "budget-pace-")

        assert pace("600") == []
        assert pace("700") == []
        assert ids(pace("710")) == [f"budget-pace-{budget.id}"]

    def test_on_pace_no_alert(self):
        """Test spending in line with the calendar stays quiet."""
        assert self.alerts_for("400") == []

    def test_other_categories_ignored(self):
        """Test only the budget's category counts."""
        snap = snapshot(budgets=[self.budget], month_transactions=[spend("5000", category="rent")])
        assert by_prefix(run(snap), "budget-") == []

    def test_inactive_budget_ignored(self):
        """Test inactive budgets raise nothing."""
        budget = self.budget.model_copy(update={"is_active": False})
        snap = snapshot(budgets=[budget], month_transactions=[spend("5000")])
        assert by_prefix(run(snap), "budget-") == []


class TestBalanceRules:
    """Tests for low balance and upcoming obligations."""

    def test_low_balance_critical(self):
        """Test very low liquid balance with no reserves is critical."""
        alerts = run(snapshot(liquid_balance=Decimal("50"), upcoming_transactions=due_soon()))
        assert alerts[0].id == "low-balance"
        assert alerts[0].severity == AlertSeverity.CRITICAL

    def test_low_balance_warning(self):
        """Test a low but not critical balance is a warning."""
        snap = snapshot(liquid_balance=Decimal("300"), upcoming_transactions=due_soon())
        alert = by_prefix(run(snap), "low-balance")[0]
        assert alert.severity == AlertSeverity.WARNING

    def test_low_balance_covered_by_savings(self):
        """Test savings that cover upcoming obligations soften the alert."""
        snap = snapshot(
            liquid_balance=Decimal("300"),
            savings_total=Decimal("1000"),
            upcoming_transactions=[spend("200", day=date(2024, 6, 12), status=TransactionStatus.PENDING)],
        )
        alerts = by_prefix(run(snap), "low-balance")
        assert ids(alerts) == ["low-balance-covered"]
        assert alerts[0].severity == AlertSeverity.INFO

    def test_upcoming_exceeds_liquid(self):
        """Test obligations above liquid but within assets is a warning."""
        snap = snapshot(
            liquid_balance=Decimal("1000"),
            savings_total=Decimal("500"),
            upcoming_transactions=[spend("1200", day=date(2024, 6, 12), status=TransactionStatus.PENDING)],
        )
        assert ids(by_prefix(run(snap), "upcoming-")) == ["upcoming-exceed-warning"]

    def test_upcoming_exceeds_assets(self):
        """Test obligations above total assets is critical."""
        snap = snapshot(
            liquid_balance=Decimal("1000"),
            savings_total=Decimal("500"),
            upcoming_transactions=[spend("2000", day=date(2024, 6, 12), status=TransactionStatus.PENDING)],
        )
        alert = by_prefix(run(snap), "upcoming-")[0]
        assert alert.id == "upcoming-exceed-critical"
        assert alert.severity == AlertSeverity.CRITICAL

    def test_upcoming_high_share(self):
        """Test obligations above 80% of liquid raise an info alert."""
        snap = snapshot(
            liquid_balance=Decimal("1000"),
            upcoming_transactions=[spend("900", day=date(2024, 6, 12), status=TransactionStatus.PENDING)],
        )
        assert ids(by_prefix(run(snap), "upcoming-")) == ["upcoming-high"]

    def test_due_invoices_count_as_obligations(self):
        """Test open invoice remainders add to upcoming obligations."""
        invoice = Invoice(
            owner_id=OWNER, credit_card_id=uuid4(), reference_month=date(2024, 6, 1),
            due_date=date(2024, 6, 15), total_amount=Decimal("1500"), paid_amount=Decimal("200"),
        )
        snap = snapshot(liquid_balance=Decimal("1000"), savings_total=Decimal("500"), due_invoices=[invoice])
        assert ids(by_prefix(run(snap), "upcoming-")) == ["upcoming-exceed-warning"]


class TestInvoiceRules:
    """Tests for invoices due soon."""

    def invoice(self, due, total="300", paid="0"):
        return Invoice(
            owner_id=OWNER, credit_card_id=self.card_id, reference_month=date(2024, 6, 1),
            due_date=due, total_amount=Decimal(total), paid_amount=Decimal(paid),
        )

    def setup_method(self):
        self.card_id = uuid4()

    def test_due_tomorrow_is_critical(self):
        """Test an invoice due within a day is critical and named after the card."""
        invoice = self.invoice(date(2024, 6, 11))
        snap = snapshot(due_invoices=[invoice], card_names={self.card_id: "Visa"})
        alert = by_prefix(run(snap), "invoice-due-")[0]
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.title == "Invoice due: Visa"
        assert "tomorrow" in alert.message

    def test_due_in_three_days_is_warning(self):
        """Test an invoice due at the edge of the window is a warning."""
        snap = snapshot(due_invoices=[self.invoice(date(2024, 6, 13))])
        assert by_prefix(run(snap), "invoice-due-")[0].severity == AlertSeverity.WARNING

    def test_outside_window_or_settled(self):
        """Test later and fully paid invoices raise nothing."""
        snap = snapshot(due_invoices=[
            self.invoice(date(2024, 6, 14)),
            self.invoice(date(2024, 6, 11), paid="300"),
        ])
        assert by_prefix(run(snap), "invoice-due-") == []


class TestPatternAndSavingsRules:
    """Tests for spending concentration and savings goals."""

    def test_dominant_category(self):
        """Test one category above 40% of five or more transactions."""
        month = [spend("100"), spend("100"), spend("100"), spend("50", "fun"), spend("50", "fun")]
        alerts = by_prefix(run(snapshot(month_transactions=month)), "pattern-")
        assert ids(alerts) == ["pattern-dominant-food"]

    def test_too_few_transactions(self):
        """Test fewer than five transactions never raise a pattern."""
        month = [spend("100"), spend("100"), spend("100"), spend("50", "fun")]
        assert by_prefix(run(snapshot(month_transactions=month)), "pattern-") == []

    def test_goal_almost_reached(self):
        """Test 90-99% progress raises an encouragement."""
        goal = SavingsGoal(
            owner_id=OWNER, name="Trip", current_amount=Decimal("950"),
            target_amount=Decimal("1000"),
        )
        assert ids(by_prefix(run(snapshot(savings_goals=[goal])), "savings-")) == [
            f"savings-almost-{goal.id}"
        ]

    def test_goal_deadline_behind(self):
        """Test a close deadline with low progress raises a warning."""
        goal = SavingsGoal(
            owner_id=OWNER, name="Trip", current_amount=Decimal("500"),
            target_amount=Decimal("1000"), deadline=date(2024, 6, 15),
        )
        alert = by_prefix(run(snapshot(savings_goals=[goal])), "savings-")[0]
        assert alert.id == f"savings-deadline-{goal.id}"
        assert alert.severity == AlertSeverity.WARNING

    def test_completed_goal_ignored(self):
        """Test completed goals are skipped."""
        goal = SavingsGoal(
            owner_id=OWNER, name="Trip", current_amount=Decimal("950"),
            target_amount=Decimal("1000"), is_completed=True,
        )
        assert by_prefix(run(snapshot(savings_goals=[goal])), "savings-") == []


class TestScheduleRules:
    """Tests for recurrence and installment reminders."""

    def test_recurring_expense_soon(self):
        """Test an active expense recurrence due within three days."""
        rec = Recurrence(
            owner_id=OWNER, type=RecurrenceType.EXPENSE, description="Gym",
            amount=Decimal("80"), frequency=Frequency.MONTHLY,
            start_date=date(2024, 1, 12), next_occurrence=date(2024, 6, 12),
            account_id=ACCOUNT_ID,
        )
        income = rec.model_copy(update={"id": uuid4(), "type": RecurrenceType.INCOME})
        alerts = by_prefix(run(snapshot(recurrences=[rec, income])), "recurrence-")
        assert ids(alerts) == [f"recurrence-upcoming-{rec.id}"]
        assert "in 2 days" in alerts[0].message

    def test_installments_ending_and_due(self):
        """Test a group with two pending installments, the next due tomorrow."""
        group, txns = plan_group(InstallmentInput(
            owner_id=OWNER, description="Phone", amount=Decimal("300"),
            total_installments=3, first_date=date(2024, 5, 11), account_id=ACCOUNT_ID,
        ))
        txns[0] = txns[0].model_copy(update={"status": TransactionStatus.CONFIRMED})
        item = InstallmentGroupWithChildren(group=group, transactions=txns)

        alerts = run(snapshot(installment_groups=[item]))

        assert f"installment-ending-{group.id}" in ids(alerts)
        due = by_prefix(alerts, "installment-due-")
        assert ids(due) == [f"installment-due-{txns[1].id}"]
        assert due[0].severity == AlertSeverity.WARNING
        assert due[0].metadata["installment_number"] == 2

    def test_final_installment(self):
        """Test a group with one pending installment."""
        group, txns = plan_group(InstallmentInput(
            owner_id=OWNER, description="Phone", amount=Decimal("300"),
            total_installments=2, first_date=date(2024, 5, 20), account_id=ACCOUNT_ID,
        ))
        txns[0] = txns[0].model_copy(update={"status": TransactionStatus.CONFIRMED})
        item = InstallmentGroupWithChildren(group=group, transactions=txns)
        assert f"installment-final-{group.id}" in ids(run(snapshot(installment_groups=[item])))


class TestPositiveInsights:
    """Tests for the insights that only appear when nothing is wrong."""

    def test_healthy_month(self):
        """Test income above expenses with long coverage yields both insights."""
        snap = snapshot(month_transactions=[earn("3000"), spend("1000")])
        assert ids(run(snap)) == ["healthy-reserves", "positive-balance"]

    def test_suppressed_by_urgent_alert(self):
        """Test a warning or critical alert suppresses the positive insights."""
        snap = snapshot(
            liquid_balance=Decimal("300"),
            upcoming_transactions=due_soon(),
            month_transactions=[earn("3000"), spend("100")],
        )
        result = ids(run(snap))
        assert "healthy-reserves" not in result
        assert "positive-balance" not in result

    def test_short_coverage_not_healthy(self):
        """Test assets covering under three months are not called healthy."""
        snap = snapshot(liquid_balance=Decimal("2000"), month_transactions=[spend("1000")])
        assert "healthy-reserves" not in ids(run(snap))


class TestEvaluation:
    """Tests for rule isolation and output order."""

    def test_sorted_by_severity(self):
        """Test critical alerts come before warnings and warnings before info."""
        card_id = uuid4()
        snap = snapshot(
            liquid_balance=Decimal("50"),
            due_invoices=[Invoice(
                owner_id=OWNER, credit_card_id=card_id, reference_month=date(2024, 6, 1),
                due_date=date(2024, 6, 13), total_amount=Decimal("10"),
            )],
            month_transactions=[spend("10")] * 5,
        )
        alerts = run(snap)
        ranks = [a.severity.rank for a in alerts]
        assert ranks == sorted(ranks)
        assert {a.severity for a in alerts} == set(AlertSeverity)

    def test_same_snapshot_same_ids(self):
        """Test evaluation is deterministic."""
        snap = snapshot(liquid_balance=Decimal("50"), month_transactions=[spend("10")] * 5)
        assert ids(run(snap)) == ids(run(snap))

    def test_failing_rule_isolated(self):
        """Test a rule that raises does not stop the others."""
        def broken(ctx):
            raise RuntimeError("boom")

        alerts = run(
            snapshot(liquid_balance=Decimal("50"), upcoming_transactions=due_soon()),
            rules=[("broken", broken), ("low_balance", low_balance)],
        )
        assert ids(alerts) == ["low-balance"]

    def test_missing_input_skips_rule(self):
        """Test a rule whose input is missing is skipped while others run."""
        budget = Budget(
            owner_id=OWNER, category="food", amount=Decimal("100"),
            period_start=date(2024, 6, 1), period_end=date(2024, 6, 30),
        )
        snap = snapshot(
            liquid_balance=Decimal("50"),
            upcoming_transactions=due_soon(),
            month_transactions=None,
            budgets=[budget],
        )
        result = ids(run(snap))
        assert "low-balance" in result
        assert not any(i.startswith("budget-") for i in result)

    def test_today_defaults_to_snapshot(self):
        """Test the snapshot's date is used when none is given."""
        invoice = Invoice(
            owner_id=OWNER, credit_card_id=uuid4(), reference_month=date(2024, 6, 1),
            due_date=date(2024, 6, 11), total_amount=Decimal("10"),
        )
        snap = snapshot(due_invoices=[invoice], today=date(2024, 6, 1))
        assert by_prefix(run(snap), "invoice-due-") == []
        assert by_prefix(run(snap, today=TODAY), "invoice-due-") != []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
