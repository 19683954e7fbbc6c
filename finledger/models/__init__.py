"""
Data Models Package

This package contains all Pydantic models used by finledger.
All data flowing through the engine must conform to these schemas.
"""

from finledger.models.ledger import (
    Account,
    AdjustmentDirection,
    AdjustmentTransaction,
    Budget,
    CreditCard,
    ExpenseTransaction,
    Frequency,
    IncomeTransaction,
    InstallmentGroup,
    Invoice,
    InvoiceStatus,
    Recurrence,
    RecurrenceType,
    SavingsGoal,
    Transaction,
    TransactionAdapter,
    TransactionStatus,
    TransactionType,
    TransferTransaction,
    ValidationIssue,
    parse_transaction,
    quantize,
)
from finledger.models.inputs import (
    AmountMode,
    InstallmentEdit,
    InstallmentInput,
    ScenarioItem,
)
from finledger.models.projection import (
    BalanceResult,
    BalanceTrend,
    CardExposure,
    FinancialHealth,
    HealthStatus,
    MonthBucket,
    MonthProjection,
    ProjectedOccurrence,
    SimulatedMonth,
    SimulatedProjection,
)
from finledger.models.alerts import (
    Alert,
    AlertAction,
    AlertActionKind,
    AlertSeverity,
    AlertType,
    BatchReport,
    DeliveryLog,
    InstallmentGroupWithChildren,
    LedgerSnapshot,
)
from finledger.models.changes import (
    ChangeSeverity,
    ChangeType,
    DerivedView,
    LedgerChange,
    LedgerChangeBuilder,
)

__all__ = [
    # Ledger records
    "Account",
    "AdjustmentDirection",
    "AdjustmentTransaction",
    "Budget",
    "CreditCard",
    "ExpenseTransaction",
    "Frequency",
    "IncomeTransaction",
    "InstallmentGroup",
    "Invoice",
    "InvoiceStatus",
    "Recurrence",
    "RecurrenceType",
    "SavingsGoal",
    "Transaction",
    "TransactionAdapter",
    "TransactionStatus",
    "TransactionType",
    "TransferTransaction",
    "ValidationIssue",
    "parse_transaction",
    "quantize",
    # Inputs
    "AmountMode",
    "InstallmentEdit",
    "InstallmentInput",
    "ScenarioItem",
    # Derived figures
    "BalanceResult",
    "BalanceTrend",
    "CardExposure",
    "FinancialHealth",
    "HealthStatus",
    "MonthBucket",
    "MonthProjection",
    "ProjectedOccurrence",
    "SimulatedMonth",
    "SimulatedProjection",
    # Alerts
    "Alert",
    "AlertAction",
    "AlertActionKind",
    "AlertSeverity",
    "AlertType",
    "BatchReport",
    "DeliveryLog",
    "InstallmentGroupWithChildren",
    "LedgerSnapshot",
    # Changes
    "ChangeSeverity",
    "ChangeType",
    "DerivedView",
    "LedgerChange",
    "LedgerChangeBuilder",
]
