"""
Input Validation

DESIGN DECISION: Every write operation validates its input before touching
storage. Validation happens in two stages:

STAGE 1 - SHAPE VALIDATION (pydantic):
- Type checking
- Required field presence
- Field-level ranges
This happens when the input model is constructed.

STAGE 2 - SEMANTIC VALIDATION (this module):
- Cross-field rules (starting installment vs. total, account vs. card)
- Rules that need the current record (withdrawals vs. goal balance)
- Amounts that would round away to nothing

WHY TWO STAGES:
1. Separation of concerns (structural vs logical)
2. Better error messages (every semantic issue is reported at once)
3. Stage 2 can look at the stored record being changed

IMPORTANT: Validation NEVER silently fixes issues.
It reports them, and ensure_valid() turns errors into a ValidationError.
"""

from decimal import Decimal
from typing import Iterable, Optional

from finledger.errors import ValidationError
from finledger.models.inputs import AmountMode, InstallmentEdit, InstallmentInput, ScenarioItem
from finledger.models.ledger import CENTS, InstallmentGroup, Recurrence, SavingsGoal, ValidationIssue, quantize


MAX_INSTALLMENTS = 480


class LedgerValidator:
    """
    Semantic checks for ledger writes.

    Every validate_* method returns the full list of issues; callers that
    want to stop on errors use ensure_valid().
    """

    def _link_issues(
        self,
        account_id,
        credit_card_id,
        required: bool = True,
    ) -> list[ValidationIssue]:
        issues = []
        if account_id is not None and credit_card_id is not None:
            issues.append(ValidationIssue(
                field="credit_card_id",
                issue_type="conflict",
                message="Choose either an account or a credit card, not both",
            ))
        elif required and account_id is None and credit_card_id is None:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="missing",
                message="An account or a credit card is required",
            ))
        return issues

    def validate_installment_input(self, data: InstallmentInput) -> list[ValidationIssue]:
        """
        Check a new installment purchase.

        Checks:
        - description present
        - amount positive, and the per-installment share at least one cent
        - 1 <= starting_installment <= total_installments <= 480
        - exactly one of account / credit card
        """
        issues = []

        if not data.description.strip():
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
            ))

        if data.total_installments < 1 or data.total_installments > MAX_INSTALLMENTS:
            issues.append(ValidationIssue(
                field="total_installments",
                issue_type="out_of_range",
                message=f"Total installments must be between 1 and {MAX_INSTALLMENTS}",
            ))

        if data.starting_installment < 1:
            issues.append(ValidationIssue(
                field="starting_installment",
                issue_type="out_of_range",
                message="Starting installment must be at least 1",
            ))
        elif data.starting_installment > data.total_installments:
            issues.append(ValidationIssue(
                field="starting_installment",
                issue_type="out_of_range",
                message=(
                    f"Starting installment ({data.starting_installment}) cannot exceed "
                    f"total installments ({data.total_installments})"
                ),
            ))

        if data.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
            ))
        elif (
            data.amount_mode == AmountMode.TOTAL
            and 1 <= data.starting_installment <= data.total_installments
        ):
            count = data.total_installments - data.starting_installment + 1
            if quantize(data.amount / count) < CENTS:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message=f"Amount is too small to split into {count} installments",
                ))

        issues.extend(self._link_issues(data.account_id, data.credit_card_id))
        return issues

    def validate_installment_edit(
        self,
        group: InstallmentGroup,
        edit: InstallmentEdit,
        current_starting: Optional[int] = None,
    ) -> list[ValidationIssue]:
        """Check an edit against the group it changes."""
        issues = []

        new_total = edit.new_total if edit.new_total is not None else group.total_installments
        new_starting = edit.new_starting
        if new_starting is None:
            new_starting = current_starting or group.starting_installment

        if new_total < 1 or new_total > MAX_INSTALLMENTS:
            issues.append(ValidationIssue(
                field="new_total",
                issue_type="out_of_range",
                message=f"Total installments must be between 1 and {MAX_INSTALLMENTS}",
            ))
        if new_starting < 1:
            issues.append(ValidationIssue(
                field="new_starting",
                issue_type="out_of_range",
                message="Starting installment must be at least 1",
            ))
        elif new_starting > new_total:
            issues.append(ValidationIssue(
                field="new_starting",
                issue_type="out_of_range",
                message=(
                    f"Starting installment ({new_starting}) cannot exceed "
                    f"total installments ({new_total})"
                ),
            ))

        if edit.installment_amount is not None and edit.installment_amount <= 0:
            issues.append(ValidationIssue(
                field="installment_amount",
                issue_type="invalid_value",
                message="Installment amount must be greater than zero",
            ))

        if edit.description is not None and not edit.description.strip():
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description cannot be empty",
            ))

        issues.extend(self._link_issues(edit.account_id, edit.credit_card_id, required=False))
        return issues

    def validate_recurrence(self, recurrence: Recurrence) -> list[ValidationIssue]:
        issues = self._link_issues(recurrence.account_id, recurrence.credit_card_id)
        if recurrence.type.value == "income" and recurrence.credit_card_id is not None:
            issues.append(ValidationIssue(
                field="credit_card_id",
                issue_type="invalid_value",
                message="Income recurrences cannot be linked to a credit card",
            ))
        return issues

    def validate_goal_movement(
        self,
        goal: SavingsGoal,
        amount: Decimal,
        deposit: bool,
    ) -> list[ValidationIssue]:
        """
        Check a deposit into or withdrawal from a savings goal.

        A deposit past the target is allowed but reported as info.
        """
        issues = []
        if amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
            ))
            return issues

        if deposit:
            remaining = goal.remaining_amount
            if remaining is not None and amount > remaining:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="exceeds_target",
                    message="Deposit goes past the goal's target",
                    severity="info",
                ))
        elif amount > goal.current_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="insufficient_funds",
                message=(
                    f"Cannot withdraw {amount} from '{goal.name}', "
                    f"which holds {goal.current_amount}"
                ),
            ))
        return issues

    def validate_payment(self, amount: Decimal, remaining: Decimal) -> list[ValidationIssue]:
        issues = []
        if amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Payment amount must be greater than zero",
            ))
        elif amount > remaining:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="out_of_range",
                message=f"Payment ({amount}) exceeds the amount due ({remaining})",
            ))
        return issues

    def validate_scenario(self, items: Iterable[ScenarioItem]) -> list[ValidationIssue]:
        issues = []
        seen = set()
        for item in items:
            if item.id in seen:
                issues.append(ValidationIssue(
                    field="items",
                    issue_type="duplicate",
                    message=f"Scenario item {item.id} appears twice",
                ))
            seen.add(item.id)
        return issues

    def ensure_valid(self, issues: list[ValidationIssue], context: str) -> None:
        """Raise ValidationError if any issue is an error; warnings pass."""
        errors = [issue for issue in issues if issue.severity == "error"]
        if errors:
            summary = "; ".join(issue.message for issue in errors)
            raise ValidationError(f"Invalid {context}: {summary}", issues)
