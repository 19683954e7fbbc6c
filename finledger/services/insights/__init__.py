"""AI insight generation."""

from finledger.services.insights.gemini import GeminiInsightGenerator, parse_insight
from finledger.services.insights.interface import (
    INSIGHT_SCHEMAS,
    AccountAnalysis,
    Insight,
    InsightFormatError,
    InsightGenerator,
    InsightKind,
    InsightUnavailableError,
    InvoiceAnalysis,
    SavingsGoalFeedback,
    WeeklySummary,
)

__all__ = [
    "INSIGHT_SCHEMAS",
    "AccountAnalysis",
    "GeminiInsightGenerator",
    "Insight",
    "InsightFormatError",
    "InsightGenerator",
    "InsightKind",
    "InsightUnavailableError",
    "InvoiceAnalysis",
    "SavingsGoalFeedback",
    "WeeklySummary",
    "parse_insight",
]
