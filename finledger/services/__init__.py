"""Services package."""

from finledger.services.insights import (
    GeminiInsightGenerator,
    InsightFormatError,
    InsightGenerator,
    InsightKind,
    InsightUnavailableError,
)
from finledger.services.notifications import (
    InMemoryPushDispatcher,
    PushDeliveryError,
    PushDispatcherInterface,
    PushNotification,
)
from finledger.services.storage import (
    ConstraintUnavailableError,
    DeliveryLogInterface,
    DuplicateKeyError,
    GoogleSheetsClient,
    GoogleSheetsDeliveryLog,
    GoogleSheetsLedgerStorage,
    InMemoryDeliveryLog,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    RecordNotFoundError,
    StorageConnectionError,
    StorageError,
    Table,
)

__all__ = [
    # Insight services
    "GeminiInsightGenerator",
    "InsightFormatError",
    "InsightGenerator",
    "InsightKind",
    "InsightUnavailableError",
    # Push services
    "InMemoryPushDispatcher",
    "PushDeliveryError",
    "PushDispatcherInterface",
    "PushNotification",
    # Storage services
    "ConstraintUnavailableError",
    "DeliveryLogInterface",
    "DuplicateKeyError",
    "GoogleSheetsClient",
    "GoogleSheetsDeliveryLog",
    "GoogleSheetsLedgerStorage",
    "InMemoryDeliveryLog",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "RecordNotFoundError",
    "StorageConnectionError",
    "StorageError",
    "Table",
]
