"""Tests for AI insight generation with a fake model."""

import asyncio

import pytest

from finledger.errors import UpstreamError, ValidationError
from finledger.services.insights import (
    AccountAnalysis,
    GeminiInsightGenerator,
    InsightFormatError,
    InsightKind,
    InsightUnavailableError,
    SavingsGoalFeedback,
    parse_insight,
)
from finledger.services.insights.gemini import build_prompt, strip_fences


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    """Records prompts and answers with canned text."""

    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.prompts = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.text)


class TestParseInsight:
    """Tests for validating model output."""

    def test_plain_json(self):
        """Test a well-formed answer parses into its schema."""
        insight = parse_insight(
            InsightKind.ACCOUNT_ANALYSIS,
            '{"summary": "Spending is steady.", "insights": ["Groceries dominate"]}',
        )
        assert isinstance(insight, AccountAnalysis)
        assert insight.insights == ["Groceries dominate"]
        assert insight.alerts == []

    def test_fenced_json(self):
        """Test a ```json fence around the answer is tolerated."""
        text = '```json\n{"message": "Nice progress!", "alert_level": "info"}\n```'
        insight = parse_insight(InsightKind.SAVINGS_GOAL_FEEDBACK, text)
        assert isinstance(insight, SavingsGoalFeedback)
        assert insight.alert_level == "info"

    def test_not_json(self):
        """Test prose instead of JSON is rejected."""
        with pytest.raises(InsightFormatError) as exc_info:
            parse_insight(InsightKind.WEEKLY_SUMMARY, "Here is your summary!")
        assert exc_info.value.fields == ["response"]

    def test_wrong_shape(self):
        """Test JSON of the wrong shape is rejected with field issues."""
        with pytest.raises(InsightFormatError) as exc_info:
            parse_insight(InsightKind.SAVINGS_GOAL_FEEDBACK, '{"message": "Hi", "alert_level": "panic"}')
        assert "alert_level" in exc_info.value.fields

    def test_format_error_is_validation_error(self):
        """Test callers can catch format errors as ValidationError."""
        assert issubclass(InsightFormatError, ValidationError)
        assert issubclass(InsightUnavailableError, UpstreamError)

    def test_strip_fences(self):
        """Test fence stripping leaves bare JSON untouched."""
        assert strip_fences("```\n{}\n```") == "{}"
        assert strip_fences('  {"a": 1} ') == '{"a": 1}'


class TestGeminiInsightGenerator:
    """Tests for the generator around a fake model."""

    def test_generate(self):
        """Test the prompt carries the figures and the answer is parsed."""
        model = FakeModel('{"headline": "A calm week", "highlights": ["No card spending"]}')
        generator = GeminiInsightGenerator(model=model, currency="$")

        insight = asyncio.run(generator.generate(
            InsightKind.WEEKLY_SUMMARY, {"total_expenses": "120.50"}
        ))

        assert insight.headline == "A calm week"
        assert '"total_expenses": "120.50"' in model.prompts[0]
        assert "amounts in $" in model.prompts[0]

    def test_model_failure(self):
        """Test a failed call surfaces as InsightUnavailableError with its cause."""
        boom = ConnectionError("network down")
        generator = GeminiInsightGenerator(model=FakeModel(error=boom), currency="$")
        with pytest.raises(InsightUnavailableError) as exc_info:
            asyncio.run(generator.generate(InsightKind.ACCOUNT_ANALYSIS, {}))
        assert exc_info.value.__cause__ is boom

    def test_bad_answer(self):
        """Test a malformed answer raises InsightFormatError."""
        generator = GeminiInsightGenerator(model=FakeModel("sorry"), currency="$")
        with pytest.raises(InsightFormatError):
            asyncio.run(generator.generate(InsightKind.INVOICE_ANALYSIS, {}))

    def test_prompt_shape_per_kind(self):
        """Test every kind has a task and an answer shape."""
        for kind in InsightKind:
            prompt = build_prompt(kind, {"a": 1}, "$")
            assert "Respond with ONLY a JSON object" in prompt


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
