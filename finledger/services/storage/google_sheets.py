"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is a supported backend because:
1. Non-technical users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions and no unique indexes. upsert() therefore raises
  ConstraintUnavailableError and callers fall back to check-then-insert
- Limited query capabilities (we filter in Python, in TableStorage)

Each ledger table is one worksheet with the columns
[id, owner_id, payload_json, updated_at]; the payload is the record's
JSON dump, so adding a field to a model never needs a sheet migration.
"""

import json
from datetime import datetime
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from finledger.config import get_settings
from finledger.models.alerts import AlertType, DeliveryLog
from finledger.services.storage.interface import (
    DeliveryLogInterface,
    StorageConnectionError,
    StorageError,
    Table,
)
from finledger.services.storage.tables import TableStorage


LEDGER_COLUMNS = [
    "id",
    "owner_id",
    "payload_json",
    "updated_at",
]

DELIVERY_COLUMNS = [
    "owner_id",
    "alert_id",
    "alert_type",
    "sent_at",
]

DELIVERY_SHEET = "push_delivery_logs"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError as e:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound as e:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def get_sheet(self, name: str, columns: list[str]) -> gspread.Worksheet:
        """Get or create a worksheet with a header row."""
        title = f"{self._settings.worksheet_prefix}{name}"
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=self._settings.worksheet_rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        self._worksheets[title] = sheet
        return sheet


class GoogleSheetsLedgerStorage(TableStorage):
    """
    Google Sheets implementation of ledger storage.

    Inserts still scan for duplicate unique keys (installment numbers,
    invoice months), but the scan is not atomic with the append.
    """

    supports_unique_constraints = False
    enforce_unique_keys = True

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self, table: Table) -> gspread.Worksheet:
        return self._client.get_sheet(table.value, LEDGER_COLUMNS)

    def _find_row_index(self, sheet: gspread.Worksheet, record_id: str) -> Optional[int]:
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):  # row 1 is header
            if row and row[0] == record_id:
                return idx
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _rows(self, table: Table) -> list[dict]:
        try:
            values = self._sheet(table).get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to read {table.value}: {e}") from e

        rows = []
        for row in values:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                rows.append(json.loads(row[2]))
            except (IndexError, json.JSONDecodeError) as e:
                raise StorageError(f"Malformed row {row[0]!r} in {table.value}") from e
        return rows

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _append(self, table: Table, payload: dict) -> None:
        try:
            self._sheet(table).append_row(
                self._to_row(payload),
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to write {table.value}: {e}") from e

    async def _replace(self, table: Table, record_id: str, payload: dict) -> bool:
        try:
            sheet = self._sheet(table)
            idx = self._find_row_index(sheet, record_id)
            if idx is None:
                return False
            for col_idx, value in enumerate(self._to_row(payload), start=1):
                sheet.update_cell(idx, col_idx, value)
            return True
        except Exception as e:
            raise StorageError(f"Failed to update {table.value}: {e}") from e

    async def _remove(self, table: Table, record_id: str) -> bool:
        try:
            sheet = self._sheet(table)
            idx = self._find_row_index(sheet, record_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete from {table.value}: {e}") from e

    @staticmethod
    def _to_row(payload: dict) -> list:
        return [
            payload["id"],
            payload["owner_id"],
            json.dumps(payload, sort_keys=True),
            datetime.utcnow().isoformat(),
        ]


class GoogleSheetsDeliveryLog(DeliveryLogInterface):
    """
    Google Sheets implementation of the push delivery log.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_sheet(DELIVERY_SHEET, DELIVERY_COLUMNS)

    def _row_to_log(self, row: list) -> DeliveryLog:
        return DeliveryLog(
            owner_id=row[0],
            alert_id=row[1],
            alert_type=AlertType(row[2]),
            sent_at=datetime.fromisoformat(row[3]),
        )

    async def recent_alert_ids(self, owner_id: str, since: datetime) -> set[str]:
        try:
            rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to read delivery logs: {e}") from e

        return {
            log.alert_id
            for log in (self._row_to_log(row) for row in rows if row and row[0])
            if log.owner_id == owner_id and log.sent_at >= since
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def record(self, log: DeliveryLog) -> None:
        row = [log.owner_id, log.alert_id, log.alert_type.value, log.sent_at.isoformat()]
        try:
            sheet = self._sheet()
            for idx, existing in enumerate(sheet.get_all_values()[1:], start=2):
                if existing[:2] == row[:2]:
                    sheet.update_cell(idx, 4, row[3])
                    return
            sheet.append_row(row, value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to record delivery: {e}") from e

    async def purge_before(self, cutoff: datetime) -> int:
        try:
            sheet = self._sheet()
            rows = sheet.get_all_values()[1:]
            stale = [
                idx for idx, row in enumerate(rows, start=2)
                if row and row[0] and datetime.fromisoformat(row[3]) < cutoff
            ]
            # bottom-up so earlier indexes stay valid
            for idx in reversed(stale):
                sheet.delete_rows(idx)
            return len(stale)
        except Exception as e:
            raise StorageError(f"Failed to purge delivery logs: {e}") from e
