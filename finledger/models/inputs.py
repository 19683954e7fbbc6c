"""
Caller-supplied inputs for write operations and simulations.

These are checked by pydantic for shape and by LedgerValidator for the
cross-field rules before anything is written.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Literal, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finledger.models.ledger import Frequency


class AmountMode(str, Enum):
    """How the amount of an installment purchase is given."""
    TOTAL = "total"
    PER_INSTALLMENT = "per_installment"


class InstallmentInput(BaseModel):
    """Request to create an installment group."""

    owner_id: str
    description: str = Field(
        ...,
        max_length=400,
    )
    amount_mode: AmountMode = AmountMode.TOTAL
    amount: Decimal = Field(
        ...,
        description="Total purchase amount or per-installment amount, per amount_mode"
    )
    total_installments: int
    starting_installment: int = 1
    frequency: Frequency = Frequency.MONTHLY
    first_date: date = Field(
        ...,
        description="Date of the first tracked installment"
    )
    account_id: Optional[UUID] = None
    credit_card_id: Optional[UUID] = None
    category: Optional[str] = None
    group_id: UUID = Field(
        default_factory=uuid4,
        description="Supplied by retrying callers so a retry hits the same conflict keys"
    )


class InstallmentEdit(BaseModel):
    """Changes to an existing installment group. None means unchanged."""

    description: Optional[str] = Field(default=None, max_length=400)
    installment_amount: Optional[Decimal] = None
    category: Optional[str] = None
    account_id: Optional[UUID] = None
    credit_card_id: Optional[UUID] = None
    new_starting: Optional[int] = None
    new_total: Optional[int] = None
    update_future_transactions: bool = False


class ScenarioItem(BaseModel):
    """
    Hypothetical monthly income or expense.

    Lives only for the duration of a simulation; never persisted.
    """

    id: UUID = Field(default_factory=uuid4)
    type: Literal["income", "expense"]
    description: str = ""
    amount: Decimal = Field(..., gt=0)

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type == "income" else -self.amount
