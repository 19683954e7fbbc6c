"""
Storage Services Package

Provides the abstract storage interface and two implementations:
in-memory (tests, precomputed records) and Google Sheets.
"""

from finledger.services.storage.interface import (
    INSTALLMENT_CONFLICT_KEY,
    INVOICE_CONFLICT_KEY,
    ConstraintUnavailableError,
    DeliveryLogInterface,
    DuplicateKeyError,
    LedgerStorageInterface,
    RecordNotFoundError,
    StorageConnectionError,
    StorageError,
    Table,
)
from finledger.services.storage.memory import (
    InMemoryDeliveryLog,
    InMemoryLedgerStorage,
)
from finledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsDeliveryLog,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "DeliveryLogInterface",
    "LedgerStorageInterface",
    "Table",
    "INSTALLMENT_CONFLICT_KEY",
    "INVOICE_CONFLICT_KEY",
    # Exceptions
    "ConstraintUnavailableError",
    "DuplicateKeyError",
    "RecordNotFoundError",
    "StorageConnectionError",
    "StorageError",
    # Implementations
    "InMemoryDeliveryLog",
    "InMemoryLedgerStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDeliveryLog",
    "GoogleSheetsLedgerStorage",
]
