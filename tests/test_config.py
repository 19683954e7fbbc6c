"""Tests for environment-driven settings."""

import pytest
from decimal import Decimal

from finledger.config import (
    AlertSettings,
    AppSettings,
    GeminiSettings,
    ProjectionSettings,
    get_settings,
    validate_all_settings,
)
from finledger.orchestrator import validate_gemini_configured


class TestSettingsSections:
    """Tests for individual settings sections."""

    def test_alert_defaults(self):
        """Test the alert thresholds ship with their documented defaults."""
        s = AlertSettings()
        assert s.low_balance_threshold == Decimal("500")
        assert s.critical_balance_floor == Decimal("100")
        assert s.upcoming_window_days == 7
        assert s.invoice_due_window_days == 3

    def test_env_override(self, monkeypatch):
        """Test prefixed environment variables override defaults."""
        monkeypatch.setenv("ALERTS_LOW_BALANCE_THRESHOLD", "750")
        monkeypatch.setenv("PROJECTION_RECURRENCE_MONTHS_AHEAD", "6")
        assert AlertSettings().low_balance_threshold == Decimal("750")
        assert ProjectionSettings().recurrence_months_ahead == 6

    def test_log_level_normalized(self, monkeypatch):
        """Test the log level is upper-cased and checked."""
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert AppSettings().log_level == "DEBUG"
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        with pytest.raises(ValueError):
            AppSettings()

    def test_dispatch_defaults(self):
        """Test the push dedupe and retention windows."""
        s = AppSettings()
        assert s.delivery_dedupe_hours == 4
        assert s.delivery_retention_days == 7


class TestSettingsValidation:
    """Tests for the startup checks."""

    def setup_method(self):
        get_settings.cache_clear()

    def teardown_method(self):
        get_settings.cache_clear()

    def test_missing_gemini_key(self, monkeypatch):
        """Test a missing Gemini key is reported without failing the rest."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        results = validate_all_settings()
        assert results["gemini"] is False
        assert "gemini_error" in results
        assert results["alerts"] is True
        assert not validate_gemini_configured()

    def test_gemini_configured(self, monkeypatch):
        """Test a present key enables insights."""
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        assert GeminiSettings().api_key == "test-key"
        assert validate_gemini_configured()

    def test_settings_cached(self):
        """Test get_settings returns the same object until cleared."""
        assert get_settings() is get_settings()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
