"""
Table-backed storage base.

Both shipped backends keep each table as a flat list of JSON payloads
(one per record). Filtering, unique-key checks and parsing are written
once here; a backend only provides the four row primitives.

Unlike a lenient reader, a malformed row is an error: the engine must
never compute a balance from a partially readable table.
"""

from abc import abstractmethod
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from finledger.engine.balance import balance
from finledger.services.storage.interface import (
    DATE_FIELDS,
    INSTALLMENT_CONFLICT_KEY,
    INVOICE_CONFLICT_KEY,
    ConstraintUnavailableError,
    DuplicateKeyError,
    LedgerStorageInterface,
    RecordNotFoundError,
    StorageError,
    Table,
    parse_record,
)


UNIQUE_KEYS: dict[Table, tuple[tuple[str, ...], ...]] = {
    Table.TRANSACTIONS: (INSTALLMENT_CONFLICT_KEY,),
    Table.INVOICES: (INVOICE_CONFLICT_KEY,),
}


def to_payload(record: Any) -> dict:
    return record.model_dump(mode="json")


def json_value(value: Any) -> Any:
    """Normalize a filter value to how it appears in a JSON payload."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def _key_of(payload: dict, key: tuple[str, ...]) -> Optional[tuple]:
    values = tuple(payload.get(field) for field in key)
    if any(v is None for v in values):
        return None
    return values


class TableStorage(LedgerStorageInterface):
    """
    Shared query and constraint logic over JSON rows.

    Subclasses set:
        supports_unique_constraints: whether upsert can be honoured
        enforce_unique_keys: whether insert rejects duplicate unique keys
    """

    supports_unique_constraints: bool = True
    enforce_unique_keys: bool = True

    # --- row primitives -------------------------------------------------

    @abstractmethod
    async def _rows(self, table: Table) -> list[dict]:
        pass

    @abstractmethod
    async def _append(self, table: Table, payload: dict) -> None:
        pass

    @abstractmethod
    async def _replace(self, table: Table, record_id: str, payload: dict) -> bool:
        pass

    @abstractmethod
    async def _remove(self, table: Table, record_id: str) -> bool:
        pass

    # --- helpers --------------------------------------------------------

    def _parse(self, table: Table, payload: dict) -> Any:
        try:
            return parse_record(table, payload)
        except ValueError as e:
            raise StorageError(
                f"Malformed row {payload.get('id')!r} in {table.value}: {e}"
            ) from e

    def _find_by_key(
        self,
        rows: list[dict],
        payload: dict,
        key: tuple[str, ...],
    ) -> Optional[dict]:
        wanted = _key_of(payload, key)
        if wanted is None:
            return None
        for row in rows:
            if _key_of(row, key) == wanted:
                return row
        return None

    # --- interface ------------------------------------------------------

    async def insert(self, table: Table, record: Any) -> Any:
        payload = to_payload(record)
        rows = await self._rows(table)

        if any(row.get("id") == payload["id"] for row in rows):
            raise DuplicateKeyError(
                f"{table.value} record already exists: {payload['id']}",
                key=("id", payload["id"]),
            )
        if self.enforce_unique_keys:
            for key in UNIQUE_KEYS.get(table, ()):
                if self._find_by_key(rows, payload, key) is not None:
                    raise DuplicateKeyError(
                        f"Duplicate {table.value} key {key}",
                        key=_key_of(payload, key),
                    )

        await self._append(table, payload)
        return record

    async def upsert(
        self,
        table: Table,
        record: Any,
        conflict_key: tuple[str, ...],
    ) -> bool:
        if not self.supports_unique_constraints:
            raise ConstraintUnavailableError(
                f"{type(self).__name__} cannot enforce {conflict_key} on {table.value}"
            )
        payload = to_payload(record)
        rows = await self._rows(table)
        if any(row.get("id") == payload["id"] for row in rows):
            return False
        if self._find_by_key(rows, payload, conflict_key) is not None:
            return False
        await self._append(table, payload)
        return True

    async def update(self, table: Table, record: Any) -> Any:
        payload = to_payload(record)
        if not await self._replace(table, payload["id"], payload):
            raise RecordNotFoundError(table.value, record.id)
        return record

    async def delete(self, table: Table, record_id: UUID) -> bool:
        return await self._remove(table, str(record_id))

    async def get(self, table: Table, record_id: UUID) -> Optional[Any]:
        wanted = str(record_id)
        for row in await self._rows(table):
            if row.get("id") == wanted:
                return self._parse(table, row)
        return None

    async def query(
        self,
        table: Table,
        owner_id: str,
        filters: Optional[dict[str, Any]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Any]:
        wanted = {field: json_value(value) for field, value in (filters or {}).items()}
        date_field = DATE_FIELDS.get(table)
        if (date_from or date_to) and date_field is None:
            raise ValueError(f"{table.value} has no date column to filter on")

        records = []
        for row in await self._rows(table):
            if row.get("owner_id") != owner_id:
                continue
            if any(row.get(field) != value for field, value in wanted.items()):
                continue
            if date_field and (date_from or date_to):
                day = date.fromisoformat(row[date_field])
                if date_from and day < date_from:
                    continue
                if date_to and day > date_to:
                    continue
            records.append(self._parse(table, row))
        return records

    async def account_balance(
        self,
        account_id: UUID,
        as_of: date,
        include_pending: bool = False,
    ) -> Decimal:
        account = await self.get(Table.ACCOUNTS, account_id)
        if account is None:
            raise RecordNotFoundError("account", account_id)
        transactions = await self.query(Table.TRANSACTIONS, account.owner_id)
        return balance(account, transactions, as_of, include_pending)
