"""
Change Models for finledger

Every write the engine performs is described by a LedgerChange that names
the derived views it makes stale.

DESIGN DECISION: Instead of refetching everything after any write, each
write declares its invalidation list explicitly. Callers (UI caches,
scheduled jobs) subscribe to the views they hold and recompute only those.

Changes are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class DerivedView(str, Enum):
    """Derived data a write can make stale."""
    BALANCES = "balances"
    CARD_EXPOSURE = "card_exposure"
    INVOICES = "invoices"
    PROJECTIONS = "projections"
    ALERTS = "alerts"
    INSTALLMENTS = "installments"
    RECURRENCES = "recurrences"
    SAVINGS_GOALS = "savings_goals"
    HEALTH = "health"


class ChangeType(str, Enum):
    """Kinds of writes the engine performs."""
    TRANSACTIONS_CONFIRMED = "transactions_confirmed"
    INSTALLMENT_GROUP_CREATED = "installment_group_created"
    INSTALLMENT_GROUP_EDITED = "installment_group_edited"
    INSTALLMENT_GROUP_DELETED = "installment_group_deleted"
    INSTALLMENT_DUPLICATE_RECOVERED = "installment_duplicate_recovered"
    RECURRENCE_MATERIALIZED = "recurrence_materialized"
    SAVINGS_DEPOSIT = "savings_deposit"
    SAVINGS_WITHDRAWAL = "savings_withdrawal"
    INVOICE_PAID = "invoice_paid"
    INVOICES_RECONCILED = "invoices_reconciled"
    ALERTS_DISPATCHED = "alerts_dispatched"


class ChangeSeverity(str, Enum):
    """Severity level for change log entries."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# Any write that moves money touches balances and everything derived from them
_MONEY_VIEWS = frozenset({
    DerivedView.BALANCES,
    DerivedView.PROJECTIONS,
    DerivedView.ALERTS,
    DerivedView.HEALTH,
})

INVALIDATIONS: dict[ChangeType, frozenset[DerivedView]] = {
    ChangeType.TRANSACTIONS_CONFIRMED: _MONEY_VIEWS | {
        DerivedView.INSTALLMENTS,
        DerivedView.CARD_EXPOSURE,
    },
    ChangeType.INSTALLMENT_GROUP_CREATED: _MONEY_VIEWS | {
        DerivedView.INSTALLMENTS,
        DerivedView.CARD_EXPOSURE,
    },
    ChangeType.INSTALLMENT_GROUP_EDITED: _MONEY_VIEWS | {
        DerivedView.INSTALLMENTS,
        DerivedView.CARD_EXPOSURE,
    },
    ChangeType.INSTALLMENT_GROUP_DELETED: _MONEY_VIEWS | {
        DerivedView.INSTALLMENTS,
        DerivedView.CARD_EXPOSURE,
    },
    ChangeType.INSTALLMENT_DUPLICATE_RECOVERED: frozenset({DerivedView.INSTALLMENTS}),
    ChangeType.RECURRENCE_MATERIALIZED: frozenset({
        DerivedView.PROJECTIONS,
        DerivedView.ALERTS,
        DerivedView.RECURRENCES,
        DerivedView.CARD_EXPOSURE,
    }),
    ChangeType.SAVINGS_DEPOSIT: _MONEY_VIEWS | {DerivedView.SAVINGS_GOALS},
    ChangeType.SAVINGS_WITHDRAWAL: _MONEY_VIEWS | {DerivedView.SAVINGS_GOALS},
    ChangeType.INVOICE_PAID: _MONEY_VIEWS | {
        DerivedView.INVOICES,
        DerivedView.CARD_EXPOSURE,
    },
    ChangeType.INVOICES_RECONCILED: frozenset({
        DerivedView.INVOICES,
        DerivedView.CARD_EXPOSURE,
        DerivedView.ALERTS,
    }),
    ChangeType.ALERTS_DISPATCHED: frozenset(),
}


class LedgerChange(BaseModel):
    """
    A single write, with the views it invalidates.
    """

    # Identity
    change_id: UUID = Field(
        default_factory=uuid4,
        description="Unique change identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the change happened (UTC)"
    )

    change_type: ChangeType
    severity: ChangeSeverity = ChangeSeverity.INFO
    owner_id: str

    entity_type: str = Field(
        ...,
        description="Type of entity (e.g., 'transaction', 'installment_group')"
    )
    entity_id: Optional[UUID] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Groups the changes of one logical operation"
    )

    description: str = Field(
        ...,
        max_length=500,
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
    )
    invalidates: frozenset[DerivedView] = Field(
        default_factory=frozenset,
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "change_id": str(self.change_id),
            "timestamp": self.timestamp.isoformat(),
            "change_type": self.change_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "invalidates": sorted(view.value for view in self.invalidates),
        }


class LedgerChangeBuilder:
    """
    Helper class to build changes with their standard invalidation lists.

    Usage:
        change = LedgerChangeBuilder.installment_group_created(group, 10, cid)
    """

    @staticmethod
    def _build(
        change_type: ChangeType,
        owner_id: str,
        entity_type: str,
        entity_id: Optional[UUID],
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
        severity: ChangeSeverity = ChangeSeverity.INFO,
    ) -> LedgerChange:
        return LedgerChange(
            change_type=change_type,
            severity=severity,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
            invalidates=INVALIDATIONS[change_type],
        )

    @staticmethod
    def installment_group_created(
        owner_id: str,
        group_id: UUID,
        description: str,
        transactions_created: int,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerChange:
        return LedgerChangeBuilder._build(
            ChangeType.INSTALLMENT_GROUP_CREATED,
            owner_id=owner_id,
            entity_type="installment_group",
            entity_id=group_id,
            description=f"Installment group created: {description}",
            details={"transactions_created": transactions_created},
            correlation_id=correlation_id,
        )

    @staticmethod
    def installment_group_edited(
        owner_id: str,
        group_id: UUID,
        deleted: int,
        updated: int,
        inserted: int,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerChange:
        return LedgerChangeBuilder._build(
            ChangeType.INSTALLMENT_GROUP_EDITED,
            owner_id=owner_id,
            entity_type="installment_group",
            entity_id=group_id,
            description=(
                f"Installment group edited: {deleted} deleted, "
                f"{updated} updated, {inserted} inserted"
            ),
            details={"deleted": deleted, "updated": updated, "inserted": inserted},
            correlation_id=correlation_id,
        )

    @staticmethod
    def installment_group_deleted(
        owner_id: str,
        group_id: UUID,
        transactions_deleted: int,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerChange:
        return LedgerChangeBuilder._build(
            ChangeType.INSTALLMENT_GROUP_DELETED,
            owner_id=owner_id,
            entity_type="installment_group",
            entity_id=group_id,
            description=f"Installment group deleted with {transactions_deleted} transactions",
            details={"transactions_deleted": transactions_deleted},
            correlation_id=correlation_id,
        )

    @staticmethod
    def installment_duplicate_recovered(
        owner_id: str,
        group_id: UUID,
        installment_number: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerChange:
        return LedgerChangeBuilder._build(
            ChangeType.INSTALLMENT_DUPLICATE_RECOVERED,
            owner_id=owner_id,
            entity_type="installment_group",
            entity_id=group_id,
            description=f"Duplicate installment {installment_number} treated as already created",
            details={
                "installment_number": installment_number,
                "error_message": error_message,
            },
            correlation_id=correlation_id,
            severity=ChangeSeverity.WARNING,
        )

    @staticmethod
    def recurrence_materialized(
        owner_id: str,
        recurrence_id: UUID,
        created: int,
        next_occurrence: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerChange:
        return LedgerChangeBuilder._build(
            ChangeType.RECURRENCE_MATERIALIZED,
            owner_id=owner_id,
            entity_type="recurrence",
            entity_id=recurrence_id,
            description=f"Recurrence generated {created} pending transactions",
            details={"created": created, "next_occurrence": next_occurrence},
            correlation_id=correlation_id,
        )

    @staticmethod
    def savings_movement(
        owner_id: str,
        goal_id: UUID,
        amount: str,
        deposit: bool,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerChange:
        change_type = (
            ChangeType.SAVINGS_DEPOSIT if deposit else ChangeType.SAVINGS_WITHDRAWAL
        )
        verb = "Deposited" if deposit else "Withdrew"
        return LedgerChangeBuilder._build(
            change_type,
            owner_id=owner_id,
            entity_type="savings_goal",
            entity_id=goal_id,
            description=f"{verb} {amount} {'into' if deposit else 'from'} savings goal",
            details={"amount": amount},
            correlation_id=correlation_id,
        )

    @staticmethod
    def invoice_paid(
        owner_id: str,
        invoice_id: UUID,
        amount: str,
        fully_paid: bool,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerChange:
        return LedgerChangeBuilder._build(
            ChangeType.INVOICE_PAID,
            owner_id=owner_id,
            entity_type="invoice",
            entity_id=invoice_id,
            description=f"Invoice payment of {amount}",
            details={"amount": amount, "fully_paid": fully_paid},
            correlation_id=correlation_id,
        )

    @staticmethod
    def alerts_dispatched(
        owner_id: str,
        alert_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerChange:
        return LedgerChangeBuilder._build(
            ChangeType.ALERTS_DISPATCHED,
            owner_id=owner_id,
            entity_type="alert",
            entity_id=None,
            description=f"Pushed {len(alert_ids)} alerts",
            details={"alert_ids": alert_ids},
            correlation_id=correlation_id,
        )

    @staticmethod
    def transactions_confirmed(
        owner_id: str,
        transaction_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerChange:
        return LedgerChangeBuilder._build(
            ChangeType.TRANSACTIONS_CONFIRMED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_ids[0] if len(transaction_ids) == 1 else None,
            description=f"Confirmed {len(transaction_ids)} pending transactions",
            details={"transaction_ids": [str(t) for t in transaction_ids]},
            correlation_id=correlation_id,
        )

    @staticmethod
    def invoices_reconciled(
        owner_id: str,
        credit_card_id: UUID,
        invoices_created: int,
        transactions_attached: int,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerChange:
        return LedgerChangeBuilder._build(
            ChangeType.INVOICES_RECONCILED,
            owner_id=owner_id,
            entity_type="credit_card",
            entity_id=credit_card_id,
            description=(
                f"Attached {transactions_attached} card purchases, "
                f"{invoices_created} new invoices"
            ),
            details={
                "invoices_created": invoices_created,
                "transactions_attached": transactions_attached,
            },
            correlation_id=correlation_id,
        )
