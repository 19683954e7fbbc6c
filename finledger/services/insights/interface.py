"""
Abstract Insight Generator Interface

DESIGN DECISION: AI text is advisory only. The generator receives figures
the engine already computed and returns a typed object; it never reads
storage and nothing it returns feeds back into balances or alerts.

Model output is untrusted: it is parsed as JSON and validated against the
pydantic schema for the requested kind. Anything that does not fit the
schema is rejected, never patched up.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from finledger.errors import UpstreamError, ValidationError


class InsightKind(str, Enum):
    """Insight flavours the generator can produce."""
    ACCOUNT_ANALYSIS = "account_analysis"
    INVOICE_ANALYSIS = "invoice_analysis"
    SAVINGS_GOAL_FEEDBACK = "savings_goal_feedback"
    WEEKLY_SUMMARY = "weekly_summary"


class AccountAnalysis(BaseModel):
    """Commentary on one account's recent movement."""

    summary: str = Field(..., min_length=1, max_length=600)
    insights: list[str] = Field(default_factory=list, max_length=5)
    alerts: list[str] = Field(default_factory=list, max_length=5)
    suggestions: list[str] = Field(default_factory=list, max_length=5)


class InvoiceAnalysis(BaseModel):
    """Commentary on one credit card invoice."""

    summary: str = Field(..., min_length=1, max_length=600)
    insights: list[str] = Field(default_factory=list, max_length=5)
    alerts: list[str] = Field(default_factory=list, max_length=5)
    suggestions: list[str] = Field(default_factory=list, max_length=5)


class SavingsGoalFeedback(BaseModel):
    """Encouragement and tips for a savings goal."""

    message: str = Field(..., min_length=1, max_length=800)
    tips: list[str] = Field(default_factory=list, max_length=3)
    celebration: Optional[str] = None
    alert_level: Literal["none", "info", "warning"] = "none"


class WeeklySummary(BaseModel):
    """Short digest of the past week."""

    headline: str = Field(..., min_length=1, max_length=200)
    highlights: list[str] = Field(default_factory=list, max_length=5)
    tips: list[str] = Field(default_factory=list, max_length=3)


Insight = Union[AccountAnalysis, InvoiceAnalysis, SavingsGoalFeedback, WeeklySummary]

INSIGHT_SCHEMAS: dict[InsightKind, type[BaseModel]] = {
    InsightKind.ACCOUNT_ANALYSIS: AccountAnalysis,
    InsightKind.INVOICE_ANALYSIS: InvoiceAnalysis,
    InsightKind.SAVINGS_GOAL_FEEDBACK: SavingsGoalFeedback,
    InsightKind.WEEKLY_SUMMARY: WeeklySummary,
}


class InsightGenerator(ABC):
    """
    Abstract interface for AI insight generation.

    Implementations must return an instance of INSIGHT_SCHEMAS[kind].
    """

    @abstractmethod
    async def generate(self, kind: InsightKind, context: dict[str, Any]) -> Insight:
        """
        Produce an insight from precomputed figures.

        Raises:
            InsightUnavailableError: The model could not be reached
            InsightFormatError: The model answered with the wrong shape
        """
        pass


class InsightUnavailableError(UpstreamError):
    """The AI collaborator failed or could not be reached."""
    pass


class InsightFormatError(ValidationError):
    """The AI collaborator answered, but not with the expected JSON shape."""
    pass
