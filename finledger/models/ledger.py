"""
Core Ledger Models for finledger

These models define the strict schemas for every record the engine reads
from or writes to storage. They are designed to:
1. Enforce type safety at runtime
2. Make account vs. card vs. savings-goal linkage explicit per variant
3. Be serializable for storage and logging

DESIGN DECISION: Transactions are a closed tagged union discriminated by
`type`. Each variant declares the links it requires, so a transfer without
a source account or an expense with both an account and a card is rejected
at parse time instead of being checked through optional-field presence
deep inside the balance math.

All calendar values are `datetime.date`. Money is `Decimal`.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)


CENTS = Decimal("0.01")


def quantize(amount: Decimal) -> Decimal:
    """Round a derived amount to cents."""
    return Decimal(amount).quantize(CENTS)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """The four transaction variants."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"


class TransactionStatus(str, Enum):
    """
    Settlement state.

    Only CONFIRMED transactions count toward real balances.
    PENDING ones count toward projections.
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"


class Frequency(str, Enum):
    """Step used by recurrences and installment schedules."""
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class InvoiceStatus(str, Enum):
    """Credit card invoice lifecycle."""
    OPEN = "open"
    CLOSED = "closed"
    PAID = "paid"
    OVERDUE = "overdue"


class AdjustmentDirection(str, Enum):
    """Which way a balance adjustment moves the account."""
    INCREASE = "increase"
    DECREASE = "decrease"


class RecurrenceType(str, Enum):
    """Recurrences only ever produce income or expenses."""
    INCOME = "income"
    EXPENSE = "expense"


# =============================================================================
# BASE
# =============================================================================

class LedgerRecord(BaseModel):
    """Fields shared by every persisted record."""

    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique record identifier"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="User that owns the record"
    )


# =============================================================================
# ACCOUNTS, CARDS, INVOICES
# =============================================================================

class Account(LedgerRecord):
    """
    A real account (checking, wallet, savings).

    INVARIANT: archived accounts never contribute to balances or projections.
    """

    name: str = Field(
        default="",
        max_length=200,
    )
    opening_balance: Decimal = Field(
        default=Decimal("0"),
        description="Balance before the first tracked transaction (may be negative)"
    )
    include_in_total: bool = Field(
        default=True,
        description="Whether this account counts toward the liquid total"
    )
    is_archived: bool = False

    @property
    def counts_toward_total(self) -> bool:
        return self.include_in_total and not self.is_archived


class CreditCard(LedgerRecord):
    """
    A credit card.

    The closing day partitions the calendar into non-overlapping billing
    months for this card.
    """

    name: str = Field(
        default="",
        max_length=200,
    )
    closing_day: int = Field(
        ...,
        ge=1,
        le=31,
        description="Day of month the billing cycle closes"
    )
    due_day: int = Field(
        ...,
        ge=1,
        le=31,
        description="Day of month the invoice is due"
    )
    credit_limit: Decimal = Field(
        ...,
        ge=0,
    )
    is_archived: bool = False


class Invoice(LedgerRecord):
    """One invoice per (card, reference month)."""

    credit_card_id: UUID
    reference_month: date = Field(
        ...,
        description="First day of the billing month this invoice covers"
    )
    closing_date: Optional[date] = None
    due_date: date
    status: InvoiceStatus = InvoiceStatus.OPEN
    total_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
    )
    paid_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
    )

    @field_validator('reference_month')
    @classmethod
    def normalize_reference_month(cls, v: date) -> date:
        return v.replace(day=1)

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

    @property
    def remaining_amount(self) -> Decimal:
        return max(self.total_amount - self.paid_amount, Decimal("0"))


# =============================================================================
# TRANSACTIONS - closed tagged union
# =============================================================================

class _TransactionBase(LedgerRecord):
    """Fields every transaction variant carries."""

    status: TransactionStatus = Field(
        default=TransactionStatus.PENDING,
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Always positive; the variant decides the sign"
    )
    date: date
    description: str = Field(
        default="",
        max_length=500,
    )
    category: Optional[str] = Field(
        default=None,
        description="Free-form category name"
    )
    savings_goal_id: Optional[UUID] = Field(
        default=None,
        description="Set on internal movements into or out of a savings goal"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
    )

    @field_validator('description')
    @classmethod
    def strip_description(cls, v: str) -> str:
        return v.strip()

    @property
    def is_confirmed(self) -> bool:
        return self.status == TransactionStatus.CONFIRMED

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING

    @property
    def is_goal_movement(self) -> bool:
        return self.savings_goal_id is not None

    @property
    def is_card_linked(self) -> bool:
        return getattr(self, "credit_card_id", None) is not None


class _CashflowBase(_TransactionBase):
    """Income and expense share schedule links."""

    account_id: Optional[UUID] = None
    recurrence_id: Optional[UUID] = None
    installment_group_id: Optional[UUID] = None
    installment_number: Optional[int] = Field(
        default=None,
        ge=1,
    )

    @model_validator(mode='after')
    def validate_installment_link(self):
        if (self.installment_group_id is None) != (self.installment_number is None):
            raise ValueError(
                "installment_group_id and installment_number must be set together"
            )
        return self


class IncomeTransaction(_CashflowBase):
    """Money arriving in an account."""

    type: Literal["income"] = "income"

    @model_validator(mode='after')
    def validate_account(self):
        if self.account_id is None:
            raise ValueError("Income requires an account")
        return self


class ExpenseTransaction(_CashflowBase):
    """
    Money leaving an account, or a purchase on a credit card.

    Exactly one of account_id / credit_card_id is set. Card expenses belong
    to invoice math, never to account balance math.
    """

    type: Literal["expense"] = "expense"
    credit_card_id: Optional[UUID] = None
    invoice_id: Optional[UUID] = None

    @model_validator(mode='after')
    def validate_source(self):
        if (self.account_id is None) == (self.credit_card_id is None):
            raise ValueError("Expense requires exactly one of account or credit card")
        if self.invoice_id is not None and self.credit_card_id is None:
            raise ValueError("Only card expenses can be attached to an invoice")
        return self


class TransferTransaction(_TransactionBase):
    """
    Movement between two accounts, or between an account and a savings goal.

    A goal movement sets savings_goal_id and leaves destination_account_id
    empty; it never changes the liquid total because the goal is a
    ring-fenced part of its linked account.
    """

    type: Literal["transfer"] = "transfer"
    account_id: UUID = Field(
        ...,
        description="Source account"
    )
    destination_account_id: Optional[UUID] = None

    @model_validator(mode='after')
    def validate_destination(self):
        if self.destination_account_id is None and self.savings_goal_id is None:
            raise ValueError("Transfer requires a destination account or savings goal")
        if self.destination_account_id == self.account_id:
            raise ValueError("Transfer source and destination must differ")
        return self


class AdjustmentTransaction(_TransactionBase):
    """Manual correction of an account balance."""

    type: Literal["adjustment"] = "adjustment"
    account_id: UUID
    direction: AdjustmentDirection


Transaction = Annotated[
    Union[
        IncomeTransaction,
        ExpenseTransaction,
        TransferTransaction,
        AdjustmentTransaction,
    ],
    Field(discriminator="type"),
]

TransactionAdapter = TypeAdapter(Transaction)


def parse_transaction(data: dict) -> Transaction:
    """Parse a raw record into the matching transaction variant."""
    return TransactionAdapter.validate_python(data)


# =============================================================================
# SCHEDULES
# =============================================================================

class InstallmentGroup(LedgerRecord):
    """
    One purchase split into dated, individually confirmable installments.

    INVARIANTS:
    - total_amount == sum of the amounts of the existing child transactions
    - child installment numbers are unique and contiguous over
      [starting_installment, total_installments]
    - numbers below starting_installment were paid before the group was
      recorded and carry no transaction
    """

    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
    )
    installment_amount: Decimal = Field(
        ...,
        gt=0,
    )
    total_amount: Decimal = Field(
        ...,
        ge=0,
    )
    total_installments: int = Field(
        ...,
        ge=1,
        le=480,
    )
    starting_installment: int = Field(
        default=1,
        ge=1,
    )
    first_installment_date: date
    frequency: Frequency = Frequency.MONTHLY
    account_id: Optional[UUID] = None
    credit_card_id: Optional[UUID] = None
    category: Optional[str] = None

    @model_validator(mode='after')
    def validate_range(self):
        if self.starting_installment > self.total_installments:
            raise ValueError("Starting installment cannot exceed total installments")
        return self

    @property
    def tracked_count(self) -> int:
        return self.total_installments - self.starting_installment + 1


class Recurrence(LedgerRecord):
    """
    Template that produces one new transaction per interval.

    INVARIANT: next_occurrence >= start_date.
    """

    type: RecurrenceType
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
    )
    amount: Decimal = Field(
        ...,
        gt=0,
    )
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True
    next_occurrence: Optional[date] = Field(
        default=None,
        description="Cached date of the next not-yet-consumed occurrence"
    )
    account_id: Optional[UUID] = None
    credit_card_id: Optional[UUID] = None
    category: Optional[str] = None

    @model_validator(mode='after')
    def validate_dates(self):
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        if self.next_occurrence and self.next_occurrence < self.start_date:
            raise ValueError("Next occurrence cannot be before start date")
        return self


# =============================================================================
# SAVINGS AND BUDGETS
# =============================================================================

class SavingsGoal(LedgerRecord):
    """
    A ring-fenced sub-balance ("cofrinho").

    current_amount only changes through deposit/withdraw, which also move
    the linked account.
    """

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    current_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
    )
    target_amount: Optional[Decimal] = Field(
        default=None,
        gt=0,
    )
    deadline: Optional[date] = None
    account_id: Optional[UUID] = None
    is_completed: bool = False

    @property
    def progress_percent(self) -> Optional[Decimal]:
        if not self.target_amount:
            return None
        return self.current_amount / self.target_amount * 100

    @property
    def remaining_amount(self) -> Optional[Decimal]:
        if not self.target_amount:
            return None
        return max(self.target_amount - self.current_amount, Decimal("0"))


class Budget(LedgerRecord):
    """Spending cap for one category over a period window."""

    category: str = Field(
        ...,
        min_length=1,
    )
    amount: Decimal = Field(
        ...,
        gt=0,
    )
    period_start: date
    period_end: date
    is_active: bool = True

    @model_validator(mode='after')
    def validate_period(self):
        if self.period_end < self.period_start:
            raise ValueError("Budget period end cannot be before start")
        return self

    def covers(self, day: date) -> bool:
        return self.period_start <= day <= self.period_end


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
