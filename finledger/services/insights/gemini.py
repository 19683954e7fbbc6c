"""
Gemini Insight Generator

The LLM is a WRITER, not a CALCULATOR. Every figure in the prompt was
computed by the engine; the model only turns those figures into short
advice in a fixed JSON shape.

BOUNDARIES:
- CAN: Summarize, highlight, suggest
- CANNOT: Compute balances or invent figures that are not in the context
- MUST: Answer with JSON only; anything else is rejected

No retries here: a failed call surfaces as InsightUnavailableError and
the caller decides whether to try again.
"""

import json
from typing import Any, Optional

import google.generativeai as genai
import pydantic
import structlog

from finledger.config import get_settings
from finledger.models.ledger import ValidationIssue
from finledger.services.insights.interface import (
    INSIGHT_SCHEMAS,
    Insight,
    InsightFormatError,
    InsightGenerator,
    InsightKind,
    InsightUnavailableError,
)


logger = structlog.get_logger(__name__)


_SHAPES = {
    InsightKind.ACCOUNT_ANALYSIS: (
        '{"summary": "1-2 sentence overview", "insights": ["..."], '
        '"alerts": ["..."], "suggestions": ["..."]}'
    ),
    InsightKind.INVOICE_ANALYSIS: (
        '{"summary": "1-2 sentence overview of the invoice", "insights": ["..."], '
        '"alerts": ["important alert, e.g. a category with unusually high spending"], '
        '"suggestions": ["short suggestion"]}'
    ),
    InsightKind.SAVINGS_GOAL_FEEDBACK: (
        '{"message": "2-4 encouraging, personal sentences", "tips": ["practical tip"], '
        '"celebration": "milestone message or null", "alert_level": "none|info|warning"}'
    ),
    InsightKind.WEEKLY_SUMMARY: (
        '{"headline": "one line", "highlights": ["..."], "tips": ["..."]}'
    ),
}

_TASKS = {
    InsightKind.ACCOUNT_ANALYSIS: "Analyze the recent movement of this account.",
    InsightKind.INVOICE_ANALYSIS: "Analyze this credit card invoice and its spending by category.",
    InsightKind.SAVINGS_GOAL_FEEDBACK: "Give feedback on the user's progress toward this savings goal.",
    InsightKind.WEEKLY_SUMMARY: "Summarize the user's finances over the past week.",
}


def build_prompt(kind: InsightKind, context: dict[str, Any], currency: str) -> str:
    figures = json.dumps(context, indent=2, default=str, sort_keys=True)
    return f"""You are a personal finance assistant.

{_TASKS[kind]}

Figures (already calculated, amounts in {currency}):
{figures}

Important:
- Use ONLY the figures above; never invent amounts
- Keep every item short and practical

Respond with ONLY a JSON object in this exact format:
{_SHAPES[kind]}"""


def strip_fences(text: str) -> str:
    """Remove a ```json ... ``` wrapper if the model added one."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_insight(kind: InsightKind, text: str) -> Insight:
    """
    Validate raw model output against the schema for `kind`.

    Raises:
        InsightFormatError: Not JSON, or JSON of the wrong shape
    """
    schema = INSIGHT_SCHEMAS[kind]
    try:
        data = json.loads(strip_fences(text))
    except json.JSONDecodeError as e:
        issue = ValidationIssue(
            field="response",
            issue_type="invalid_json",
            message=f"Model output is not JSON: {e.msg}",
        )
        raise InsightFormatError(issue.message, [issue]) from e

    try:
        return schema.model_validate(data)
    except pydantic.ValidationError as e:
        issues = [
            ValidationIssue(
                field=".".join(str(part) for part in err["loc"]) or "response",
                issue_type=err["type"],
                message=err["msg"],
            )
            for err in e.errors()
        ]
        raise InsightFormatError(
            f"Model output does not match {schema.__name__}",
            issues,
        ) from e


class GeminiInsightGenerator(InsightGenerator):
    """Insight generator backed by Google Gemini."""

    def __init__(self, model: Optional[Any] = None, currency: Optional[str] = None):
        """
        Args:
            model: Preconfigured model exposing generate_content_async.
                   If None, one is built from GeminiSettings.
            currency: Currency symbol for prompts; defaults to AppSettings
        """
        self._currency = currency or get_settings().app.currency_symbol
        self._model = model or self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        settings = get_settings().gemini
        genai.configure(api_key=settings.api_key)
        return genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
            }
        )

    async def generate(self, kind: InsightKind, context: dict[str, Any]) -> Insight:
        prompt = build_prompt(kind, context, self._currency)
        try:
            response = await self._model.generate_content_async(prompt)
            text = response.text
        except Exception as e:
            logger.error("insight_generation_failed", kind=kind.value, error=str(e))
            raise InsightUnavailableError(f"Gemini call failed for {kind.value}: {e}") from e

        insight = parse_insight(kind, text)
        logger.info("insight_generated", kind=kind.value)
        return insight
