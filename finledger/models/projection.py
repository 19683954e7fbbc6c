"""
Derived figures produced by the engine.

None of these models are persisted. They are recomputed from the ledger
records every time they are requested.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from finledger.models.inputs import ScenarioItem
from finledger.models.ledger import RecurrenceType, Transaction


class MonthBucket(str, Enum):
    """Where a month sits relative to today."""
    PAST = "past"
    CURRENT = "current"
    FUTURE = "future"


class BalanceResult(BaseModel):
    """Balance of one account."""

    account_id: UUID
    name: str = ""
    include_in_total: bool = True
    balance: Decimal = Field(
        ...,
        description="Confirmed balance as of the requested date"
    )
    balance_with_pending: Decimal = Field(
        ...,
        description="Balance counting pending transactions too"
    )
    reserved: Decimal = Field(
        default=Decimal("0"),
        description="Amount ring-fenced by savings goals linked to this account"
    )

    @property
    def available(self) -> Decimal:
        return self.balance - self.reserved


class CardExposure(BaseModel):
    """How much of a card's limit is in use."""

    credit_card_id: UUID
    reference_month: date = Field(
        ...,
        description="Billing month that contains today"
    )
    current_invoice_amount: Decimal
    total_committed: Decimal = Field(
        ...,
        description="Non-paid invoices plus every orphan transaction, regardless of month"
    )
    credit_limit: Decimal
    available_limit: Decimal
    orphan_count: int = 0

    @property
    def utilization_percent(self) -> Decimal:
        if not self.credit_limit:
            return Decimal("0")
        return self.total_committed / self.credit_limit * 100


class ProjectedOccurrence(BaseModel):
    """A recurrence occurrence that has not been materialized yet."""

    recurrence_id: UUID
    type: RecurrenceType
    description: str
    amount: Decimal
    date: date


class MonthProjection(BaseModel):
    """Month-scoped balances for one user."""

    month: date = Field(
        ...,
        description="First day of the month"
    )
    bucket: MonthBucket

    initial_balance: Decimal
    current_balance: Decimal
    projected_balance: Decimal

    liquid_balance: Decimal = Field(
        ...,
        description="Confirmed balance of included accounts as of today"
    )
    pending_income: Decimal
    pending_expenses: Decimal

    # Full month flow: every income/expense plus recurrences not yet generated
    projected_income: Decimal
    projected_expenses: Decimal

    income: list[Transaction] = Field(default_factory=list)
    expenses: list[Transaction] = Field(default_factory=list)
    recurring: list[ProjectedOccurrence] = Field(default_factory=list)
    pending_before_count: int = Field(
        default=0,
        description="Pending items dated before this month (overdue)"
    )

    @property
    def net_flow(self) -> Decimal:
        return self.projected_income - self.projected_expenses


class SimulatedMonth(BaseModel):
    """One month of a scenario simulation, before and after."""

    month: date
    projected_income: Decimal
    projected_expenses: Decimal
    scenario_impact: Decimal

    original_initial: Decimal
    original_final: Decimal
    simulated_initial: Decimal
    simulated_final: Decimal

    @property
    def delta(self) -> Decimal:
        return self.simulated_final - self.original_final


class SimulatedProjection(BaseModel):
    """Result of simulate_scenario."""

    base_month: date
    target_month: date
    items: list[ScenarioItem] = Field(default_factory=list)
    is_simulating: bool
    scenario_impact: Decimal = Field(
        ...,
        description="Net monthly effect of the scenario items"
    )
    months: list[SimulatedMonth] = Field(default_factory=list)

    @property
    def target(self) -> Optional[SimulatedMonth]:
        return self.months[-1] if self.months else None

    @property
    def original_projected_balance(self) -> Decimal:
        return self.target.original_final if self.target else Decimal("0")

    @property
    def simulated_projected_balance(self) -> Decimal:
        return self.target.simulated_final if self.target else Decimal("0")


class HealthStatus(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class BalanceTrend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class FinancialHealth(BaseModel):
    """Single 0-100 score summarizing the user's finances."""

    score: int = Field(..., ge=0, le=100)
    status: HealthStatus
    months_of_coverage: Decimal
    savings_rate: Decimal
    credit_utilization: Decimal
    trend: BalanceTrend
    total_balance: Decimal
    average_monthly_expenses: Decimal
    total_credit_used: Decimal
    total_credit_limit: Decimal
