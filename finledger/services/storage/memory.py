"""
In-memory storage.

Used by the test suite and by callers that compute over records they
already hold. Behaves like a store with real unique constraints unless
told otherwise.
"""

from datetime import datetime
from typing import Optional

from finledger.models.alerts import DeliveryLog
from finledger.services.storage.interface import DeliveryLogInterface, Table
from finledger.services.storage.tables import TableStorage


class InMemoryLedgerStorage(TableStorage):
    """
    Dict-backed ledger storage.

    Args:
        supports_unique_constraints: False makes upsert raise
            ConstraintUnavailableError, like a store without the index.
        enforce_unique_keys: False lets duplicate installment numbers in.
    """

    def __init__(
        self,
        supports_unique_constraints: bool = True,
        enforce_unique_keys: bool = True,
    ):
        self.supports_unique_constraints = supports_unique_constraints
        self.enforce_unique_keys = enforce_unique_keys
        self._tables: dict[Table, dict[str, dict]] = {table: {} for table in Table}

    async def _rows(self, table: Table) -> list[dict]:
        return [dict(row) for row in self._tables[table].values()]

    async def _append(self, table: Table, payload: dict) -> None:
        self._tables[table][payload["id"]] = dict(payload)

    async def _replace(self, table: Table, record_id: str, payload: dict) -> bool:
        if record_id not in self._tables[table]:
            return False
        self._tables[table][record_id] = dict(payload)
        return True

    async def _remove(self, table: Table, record_id: str) -> bool:
        return self._tables[table].pop(record_id, None) is not None

    def count(self, table: Table) -> int:
        return len(self._tables[table])


class InMemoryDeliveryLog(DeliveryLogInterface):
    """Dict-backed push delivery log keyed on (owner_id, alert_id)."""

    def __init__(self):
        self._logs: dict[tuple[str, str], DeliveryLog] = {}

    async def recent_alert_ids(self, owner_id: str, since: datetime) -> set[str]:
        return {
            log.alert_id for (owner, _), log in self._logs.items()
            if owner == owner_id and log.sent_at >= since
        }

    async def record(self, log: DeliveryLog) -> None:
        self._logs[(log.owner_id, log.alert_id)] = log

    async def purge_before(self, cutoff: datetime) -> int:
        stale = [key for key, log in self._logs.items() if log.sent_at < cutoff]
        for key in stale:
            del self._logs[key]
        return len(stale)

    def get(self, owner_id: str, alert_id: str) -> Optional[DeliveryLog]:
        return self._logs.get((owner_id, alert_id))
