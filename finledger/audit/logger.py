"""
Change Logger

DESIGN DECISION: Every write the engine performs is logged as a
LedgerChange carrying the derived views it invalidates. This provides:
1. Complete traceability of writes
2. Targeted recomputation (subscribers refresh only the stale views)
3. A single place where structlog is configured for the package

The change logger:
- Is async so it can sit in the write path without blocking it
- Never lets a failing listener break the write that triggered it
- Supports correlation IDs to trace the writes of one logical operation
"""

import logging
from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog

from finledger.models.changes import DerivedView, LedgerChange, LedgerChangeBuilder


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_log_level(level: str) -> None:
    """Route stdlib logging (and therefore structlog) at the given level."""
    logging.basicConfig(format="%(message)s", level=level.upper())
    logging.getLogger("finledger").setLevel(level.upper())


InvalidationListener = Callable[[LedgerChange], None]


class ChangeLogger:
    """
    Central change log.

    Logs each change to the structured log and notifies every listener
    whose views intersect the change's invalidation list.
    """

    def __init__(self):
        self._logger = structlog.get_logger(__name__)
        self._listeners: list[tuple[Optional[frozenset[DerivedView]], InvalidationListener]] = []

    def subscribe(
        self,
        listener: InvalidationListener,
        views: Optional[set[DerivedView]] = None,
    ) -> None:
        """
        Register a listener.

        Args:
            listener: Called with the LedgerChange
            views: Only call when one of these views is invalidated.
                   None means every change.
        """
        self._listeners.append((frozenset(views) if views else None, listener))

    async def log(self, change: LedgerChange) -> None:
        """Log a change and fan it out to interested listeners."""
        log_dict = change.to_log_dict()

        if change.severity.value == "error":
            self._logger.error("ledger_change", **log_dict)
        elif change.severity.value == "warning":
            self._logger.warning("ledger_change", **log_dict)
        else:
            self._logger.info("ledger_change", **log_dict)

        for views, listener in self._listeners:
            if views is not None and not (views & change.invalidates):
                continue
            try:
                listener(change)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "invalidation_listener_failed",
                    error=str(e),
                    change_id=str(change.change_id),
                )

    async def log_installment_group_created(
        self,
        owner_id: str,
        group_id: UUID,
        description: str,
        transactions_created: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(LedgerChangeBuilder.installment_group_created(
            owner_id=owner_id,
            group_id=group_id,
            description=description,
            transactions_created=transactions_created,
            correlation_id=correlation_id,
        ))

    async def log_installment_group_edited(
        self,
        owner_id: str,
        group_id: UUID,
        deleted: int,
        updated: int,
        inserted: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(LedgerChangeBuilder.installment_group_edited(
            owner_id=owner_id,
            group_id=group_id,
            deleted=deleted,
            updated=updated,
            inserted=inserted,
            correlation_id=correlation_id,
        ))

    async def log_installment_group_deleted(
        self,
        owner_id: str,
        group_id: UUID,
        transactions_deleted: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(LedgerChangeBuilder.installment_group_deleted(
            owner_id=owner_id,
            group_id=group_id,
            transactions_deleted=transactions_deleted,
            correlation_id=correlation_id,
        ))

    async def log_installment_duplicate(
        self,
        owner_id: str,
        group_id: UUID,
        installment_number: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(LedgerChangeBuilder.installment_duplicate_recovered(
            owner_id=owner_id,
            group_id=group_id,
            installment_number=installment_number,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_recurrence_materialized(
        self,
        owner_id: str,
        recurrence_id: UUID,
        created: int,
        next_occurrence: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(LedgerChangeBuilder.recurrence_materialized(
            owner_id=owner_id,
            recurrence_id=recurrence_id,
            created=created,
            next_occurrence=next_occurrence,
            correlation_id=correlation_id,
        ))

    async def log_savings_movement(
        self,
        owner_id: str,
        goal_id: UUID,
        amount: str,
        deposit: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(LedgerChangeBuilder.savings_movement(
            owner_id=owner_id,
            goal_id=goal_id,
            amount=amount,
            deposit=deposit,
            correlation_id=correlation_id,
        ))

    async def log_invoice_paid(
        self,
        owner_id: str,
        invoice_id: UUID,
        amount: str,
        fully_paid: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(LedgerChangeBuilder.invoice_paid(
            owner_id=owner_id,
            invoice_id=invoice_id,
            amount=amount,
            fully_paid=fully_paid,
            correlation_id=correlation_id,
        ))

    async def log_alerts_dispatched(
        self,
        owner_id: str,
        alert_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(LedgerChangeBuilder.alerts_dispatched(
            owner_id=owner_id,
            alert_ids=alert_ids,
            correlation_id=correlation_id,
        ))

    async def log_transactions_confirmed(
        self,
        owner_id: str,
        transaction_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(LedgerChangeBuilder.transactions_confirmed(
            owner_id=owner_id,
            transaction_ids=transaction_ids,
            correlation_id=correlation_id,
        ))

    async def log_invoices_reconciled(
        self,
        owner_id: str,
        credit_card_id: UUID,
        invoices_created: int,
        transactions_attached: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(LedgerChangeBuilder.invoices_reconciled(
            owner_id=owner_id,
            credit_card_id=credit_card_id,
            invoices_created=invoices_created,
            transactions_attached=transactions_attached,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related changes.

    Use this at the start of a logical operation (e.g., an installment edit).
    Pass it through all subsequent writes.
    """
    return uuid4()
