"""Tests for semantic input validation."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from finledger.engine.installments import plan_group
from finledger.errors import ValidationError
from finledger.models import (
    AmountMode,
    Frequency,
    InstallmentEdit,
    InstallmentInput,
    Recurrence,
    RecurrenceType,
    SavingsGoal,
    ScenarioItem,
)
from finledger.validation import LedgerValidator


OWNER = "user-1"


def purchase(**kwargs) -> InstallmentInput:
    fields = dict(
        owner_id=OWNER,
        description="Laptop",
        amount=Decimal("1200"),
        total_installments=12,
        first_date=date(2024, 6, 1),
        account_id=uuid4(),
    )
    fields.update(kwargs)
    return InstallmentInput(**fields)


class TestInstallmentInput:
    """Tests for new installment purchases."""

    def setup_method(self):
        self.validator = LedgerValidator()

    def fields(self, data):
        return [issue.field for issue in self.validator.validate_installment_input(data)]

    def test_valid_purchase(self):
        """Test a well-formed purchase has no issues."""
        assert self.fields(purchase()) == []

    def test_starting_after_total(self):
        """Test starting installment beyond the total is rejected."""
        assert self.fields(purchase(starting_installment=13)) == ["starting_installment"]

    def test_non_positive_amount(self):
        """Test zero and negative amounts are rejected."""
        assert self.fields(purchase(amount=Decimal("0"))) == ["amount"]
        assert self.fields(purchase(amount=Decimal("-5"))) == ["amount"]

    def test_amount_too_small_to_split(self):
        """Test a total that rounds to zero per installment."""
        assert self.fields(purchase(amount=Decimal("0.05"))) == ["amount"]

    def test_per_installment_not_split(self):
        """Test per-installment amounts are not divided."""
        data = purchase(amount=Decimal("0.05"), amount_mode=AmountMode.PER_INSTALLMENT)
        assert self.fields(data) == []

    def test_account_and_card(self):
        """Test exactly one of account and card is required."""
        assert self.fields(purchase(credit_card_id=uuid4())) == ["credit_card_id"]
        assert self.fields(purchase(account_id=None)) == ["account_id"]

    def test_blank_description(self):
        """Test whitespace-only descriptions are rejected."""
        assert self.fields(purchase(description="   ")) == ["description"]

    def test_every_issue_reported(self):
        """Test several problems are reported together."""
        data = purchase(description="", amount=Decimal("0"), account_id=None)
        assert set(self.fields(data)) == {"description", "amount", "account_id"}


class TestInstallmentEdit:
    """Tests for edits against an existing group."""

    def setup_method(self):
        self.validator = LedgerValidator()
        self.group, _ = plan_group(purchase())

    def fields(self, edit, current_starting=None):
        issues = self.validator.validate_installment_edit(self.group, edit, current_starting)
        return [issue.field for issue in issues]

    def test_new_starting_after_new_total(self):
        """Test the new range must not be inverted."""
        assert self.fields(InstallmentEdit(new_starting=5, new_total=4)) == ["new_starting"]

    def test_starting_checked_against_current(self):
        """Test a shrinking total is checked against the current starting number."""
        assert self.fields(InstallmentEdit(new_total=3), current_starting=4) == ["new_starting"]

    def test_total_out_of_range(self):
        """Test totals above the cap are rejected."""
        assert "new_total" in self.fields(InstallmentEdit(new_total=1000))

    def test_both_links(self):
        """Test an edit cannot link both an account and a card."""
        edit = InstallmentEdit(account_id=uuid4(), credit_card_id=uuid4())
        assert self.fields(edit) == ["credit_card_id"]

    def test_empty_edit_is_valid(self):
        """Test an edit with nothing set passes."""
        assert self.fields(InstallmentEdit()) == []


class TestOtherChecks:
    """Tests for recurrences, goals, payments and scenarios."""

    def setup_method(self):
        self.validator = LedgerValidator()

    def test_income_recurrence_on_card(self):
        """Test income cannot recur on a credit card."""
        rec = Recurrence(
            owner_id=OWNER, type=RecurrenceType.INCOME, description="Salary",
            amount=Decimal("3000"), frequency=Frequency.MONTHLY,
            start_date=date(2024, 1, 5), credit_card_id=uuid4(),
        )
        assert [i.field for i in self.validator.validate_recurrence(rec)] == ["credit_card_id"]

    def test_withdraw_more_than_goal_holds(self):
        """Test a withdrawal beyond the goal balance is an error."""
        goal = SavingsGoal(owner_id=OWNER, name="Trip", current_amount=Decimal("100"))
        issues = self.validator.validate_goal_movement(goal, Decimal("150"), deposit=False)
        assert issues[0].issue_type == "insufficient_funds"
        with pytest.raises(ValidationError):
            self.validator.ensure_valid(issues, "withdrawal")

    def test_deposit_past_target_is_info(self):
        """Test overshooting a target is reported but allowed."""
        goal = SavingsGoal(
            owner_id=OWNER, name="Trip", current_amount=Decimal("90"),
            target_amount=Decimal("100"),
        )
        issues = self.validator.validate_goal_movement(goal, Decimal("50"), deposit=True)
        assert issues[0].severity == "info"
        self.validator.ensure_valid(issues, "deposit")

    def test_payment_bounds(self):
        """Test payments must be positive and at most what is due."""
        assert self.validator.validate_payment(Decimal("50"), Decimal("100")) == []
        assert self.validator.validate_payment(Decimal("0"), Decimal("100"))[0].field == "amount"
        assert self.validator.validate_payment(Decimal("150"), Decimal("100"))[0].issue_type == "out_of_range"

    def test_duplicate_scenario_items(self):
        """Test the same scenario item cannot appear twice."""
        item = ScenarioItem(type="expense", amount=Decimal("10"))
        issues = self.validator.validate_scenario([item, item])
        assert [i.issue_type for i in issues] == ["duplicate"]

    def test_ensure_valid_carries_issues(self):
        """Test ValidationError exposes every failing field."""
        issues = self.validator.validate_installment_input(
            purchase(description="", amount=Decimal("0"))
        )
        with pytest.raises(ValidationError) as exc_info:
            self.validator.ensure_valid(issues, "installment purchase")
        assert set(exc_info.value.fields) == {"description", "amount"}
        assert str(exc_info.value).startswith("Invalid installment purchase:")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
