"""
Alert Models for finledger

Alerts are derived data: recomputed fresh on every evaluation and never
mutated in place. A new evaluation fully replaces the previous set.

DESIGN DECISION: The alert id is the rule id (plus the record id for
per-record rules, e.g. "budget-exceeded-<budget id>"). Two evaluations over
the same data produce the same ids, so alert sets can be diffed and push
deliveries de-duplicated by id.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from finledger.models.ledger import (
    Budget,
    InstallmentGroup,
    Invoice,
    Recurrence,
    SavingsGoal,
    Transaction,
)


class AlertSeverity(str, Enum):
    """Severity level, most urgent first."""
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER[self]


SEVERITY_ORDER = {
    AlertSeverity.CRITICAL: 0,
    AlertSeverity.WARNING: 1,
    AlertSeverity.INFO: 2,
}


class AlertType(str, Enum):
    """What area of the ledger an alert is about."""
    BALANCE = "balance"
    BUDGET = "budget"
    PATTERN = "pattern"
    INSIGHT = "insight"
    INVOICE = "invoice"
    SAVINGS = "savings"
    RECURRENCE = "recurrence"
    INSTALLMENT = "installment"


class AlertActionKind(str, Enum):
    """Suggested follow-up the UI can offer."""
    REDUCE_SPENDING = "reduce_spending"
    REVIEW_BUDGET = "review_budget"
    ADD_INCOME = "add_income"
    VIEW_DETAILS = "view_details"


class AlertAction(BaseModel):
    """Optional call to action attached to an alert."""

    model_config = ConfigDict(frozen=True)

    label: str
    kind: AlertActionKind = AlertActionKind.VIEW_DETAILS


class Alert(BaseModel):
    """A single evaluated alert."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        description="Stable rule identifier"
    )
    type: AlertType
    severity: AlertSeverity
    title: str = Field(
        ...,
        max_length=200,
    )
    message: str = Field(
        ...,
        max_length=1000,
    )
    action: Optional[AlertAction] = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
    )

    @property
    def is_important(self) -> bool:
        """Critical and warning alerts are pushed; info alerts are not."""
        return self.severity in (AlertSeverity.CRITICAL, AlertSeverity.WARNING)


class InstallmentGroupWithChildren(BaseModel):
    """An installment group together with its child transactions."""

    group: InstallmentGroup
    transactions: list[Transaction] = Field(default_factory=list)

    @property
    def pending(self) -> list[Transaction]:
        return [t for t in self.transactions if t.is_pending]


class LedgerSnapshot(BaseModel):
    """
    Everything the alert rules need, fully fetched up front.

    A field left as None means that input could not be provided; the
    rules that depend on it are skipped while the others still run.
    """

    owner_id: str
    today: date

    liquid_balance: Optional[Decimal] = Field(
        default=None,
        description="Confirmed balance of included accounts minus ring-fenced goals"
    )
    savings_total: Optional[Decimal] = Field(
        default=None,
        description="Sum of all savings goal amounts"
    )
    month_transactions: Optional[list[Transaction]] = None
    upcoming_transactions: Optional[list[Transaction]] = Field(
        default=None,
        description="Pending transactions inside the upcoming window"
    )
    due_invoices: Optional[list[Invoice]] = Field(
        default=None,
        description="Open invoices due inside the upcoming window"
    )
    card_names: dict[UUID, str] = Field(default_factory=dict)
    budgets: Optional[list[Budget]] = None
    savings_goals: Optional[list[SavingsGoal]] = None
    recurrences: Optional[list[Recurrence]] = None
    installment_groups: Optional[list[InstallmentGroupWithChildren]] = None

    @property
    def total_assets(self) -> Optional[Decimal]:
        if self.liquid_balance is None or self.savings_total is None:
            return None
        return self.liquid_balance + self.savings_total


class DeliveryLog(BaseModel):
    """Record of one alert pushed to one user."""

    owner_id: str
    alert_id: str
    alert_type: AlertType
    sent_at: datetime = Field(
        default_factory=datetime.utcnow,
    )


class BatchReport(BaseModel):
    """Outcome of one batch alert dispatch run."""

    users_checked: int = 0
    users_with_alerts: int = 0
    alerts_sent: int = 0
    logs_purged: int = 0
    failures: list[dict] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures
