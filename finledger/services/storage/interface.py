"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the engine decoupled from the storage implementation

The interface is intentionally simple - we're not building a full ORM.
Filtered CRUD per table, one upsert with an explicit conflict key, and the
store's own balance function for cross-checks.

UPSERT CONTRACT: upsert(table, record, conflict_key) means "insert if no
row with the same values for conflict_key exists, else do nothing". It
returns True when a row was inserted. A backend that cannot enforce the
key raises ConstraintUnavailableError and the caller decides how to
degrade.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from finledger.errors import ConflictError, NotFoundError, UpstreamError
from finledger.models.alerts import DeliveryLog
from finledger.models.ledger import (
    Account,
    Budget,
    CreditCard,
    InstallmentGroup,
    Invoice,
    Recurrence,
    SavingsGoal,
    TransactionAdapter,
)


class Table(str, Enum):
    """Ledger tables."""
    ACCOUNTS = "accounts"
    TRANSACTIONS = "transactions"
    CREDIT_CARDS = "credit_cards"
    INVOICES = "invoices"
    INSTALLMENT_GROUPS = "installment_groups"
    RECURRENCES = "recurrences"
    SAVINGS_GOALS = "savings_goals"
    BUDGETS = "budgets"


# Date column used for range filters on each table
DATE_FIELDS = {
    Table.TRANSACTIONS: "date",
    Table.INVOICES: "due_date",
    Table.INSTALLMENT_GROUPS: "first_installment_date",
    Table.RECURRENCES: "start_date",
    Table.BUDGETS: "period_start",
}

INSTALLMENT_CONFLICT_KEY = ("owner_id", "installment_group_id", "installment_number")
INVOICE_CONFLICT_KEY = ("owner_id", "credit_card_id", "reference_month")


_RECORD_MODELS = {
    Table.ACCOUNTS: Account,
    Table.CREDIT_CARDS: CreditCard,
    Table.INVOICES: Invoice,
    Table.INSTALLMENT_GROUPS: InstallmentGroup,
    Table.RECURRENCES: Recurrence,
    Table.SAVINGS_GOALS: SavingsGoal,
    Table.BUDGETS: Budget,
}


def parse_record(table: Table, data: dict) -> Any:
    """Turn a stored payload back into its pydantic model."""
    if table == Table.TRANSACTIONS:
        return TransactionAdapter.validate_python(data)
    return _RECORD_MODELS[table].model_validate(data)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def insert(self, table: Table, record: Any) -> Any:
        """
        Insert a new record.

        Raises:
            ConflictError: If a record with the same id (or unique key) exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def upsert(
        self,
        table: Table,
        record: Any,
        conflict_key: tuple[str, ...],
    ) -> bool:
        """
        Insert the record unless one with the same conflict key exists.

        Returns:
            True if inserted, False if it already existed (no-op)

        Raises:
            ConstraintUnavailableError: If the backend cannot enforce the key
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(self, table: Table, record: Any) -> Any:
        """
        Replace an existing record.

        Raises:
            RecordNotFoundError: If the record doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, table: Table, record_id: UUID) -> bool:
        """
        Delete a record by id.

        Returns:
            True if a record was deleted, False if none existed
        """
        pass

    @abstractmethod
    async def get(self, table: Table, record_id: UUID) -> Optional[Any]:
        """
        Retrieve a record by id.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def query(
        self,
        table: Table,
        owner_id: str,
        filters: Optional[dict[str, Any]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Any]:
        """
        List an owner's records.

        Args:
            table: Table to read
            owner_id: Only this owner's records are returned
            filters: Field equality filters ({"status": "pending"});
                     a None value matches records where the field is empty
            date_from: Inclusive lower bound on the table's date column
            date_to: Inclusive upper bound on the table's date column

        Raises:
            StorageError: If the read fails. Reads never return partial data.
        """
        pass

    @abstractmethod
    async def account_balance(
        self,
        account_id: UUID,
        as_of: date,
        include_pending: bool = False,
    ) -> Decimal:
        """
        The store's own balance function.

        Only used to cross-check the engine's calculation.
        """
        pass


class DeliveryLogInterface(ABC):
    """
    Log of alerts pushed to users.

    One row per (owner, alert id); re-sending an alert refreshes sent_at.
    """

    @abstractmethod
    async def recent_alert_ids(self, owner_id: str, since: datetime) -> set[str]:
        """Alert ids pushed to `owner_id` at or after `since`."""
        pass

    @abstractmethod
    async def record(self, log: DeliveryLog) -> None:
        """Upsert a delivery on (owner_id, alert_id)."""
        pass

    @abstractmethod
    async def purge_before(self, cutoff: datetime) -> int:
        """Delete deliveries older than `cutoff`. Returns how many were removed."""
        pass


class StorageError(UpstreamError):
    """Base exception for storage operations."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class ConstraintUnavailableError(StorageError):
    """The backend cannot enforce the requested unique key."""
    pass


class RecordNotFoundError(NotFoundError):
    """Entity not found in storage."""
    pass


class DuplicateKeyError(ConflictError):
    """Attempted to insert a duplicate entity."""
    pass
