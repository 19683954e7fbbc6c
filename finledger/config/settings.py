"""
Configuration Management for finledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every alert threshold and scheduling horizon is a setting rather than a
literal in the engine, so tuning never requires a code change.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet per ledger table: "<prefix><table>"
    worksheet_prefix: str = Field(
        default="",
        description="Prefix prepended to every worksheet name"
    )
    worksheet_rows: int = Field(
        default=1000,
        ge=10,
        description="Initial row count for newly created worksheets"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration for insight generation."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class AlertSettings(BaseSettings):
    """Thresholds used by the alert rules."""

    model_config = SettingsConfigDict(
        env_prefix="ALERTS_",
        extra="ignore"
    )

    # Balance rules
    low_balance_threshold: Decimal = Field(default=Decimal("500"))
    critical_balance_floor: Decimal = Field(default=Decimal("100"))
    critical_assets_floor: Decimal = Field(default=Decimal("500"))
    upcoming_window_days: int = Field(default=7, ge=1)
    upcoming_high_ratio: Decimal = Field(
        default=Decimal("0.8"),
        description="Obligations above this share of liquid balance raise an info alert"
    )

    # Budget rules (percentages)
    budget_warning_percent: Decimal = Field(default=Decimal("80"))
    budget_exceeded_percent: Decimal = Field(default=Decimal("100"))
    budget_pace_margin_percent: Decimal = Field(default=Decimal("20"))

    # Invoices
    invoice_due_window_days: int = Field(default=3, ge=0)
    invoice_critical_days: int = Field(default=1, ge=0)

    # Spending concentration
    pattern_min_transactions: int = Field(default=5, ge=1)
    pattern_dominant_percent: Decimal = Field(default=Decimal("40"))

    # Savings goals
    savings_almost_percent: Decimal = Field(default=Decimal("90"))
    savings_deadline_days: int = Field(default=7, ge=1)
    savings_deadline_progress_percent: Decimal = Field(default=Decimal("80"))

    # Recurrences and installments
    recurrence_window_days: int = Field(default=3, ge=0)
    installment_window_days: int = Field(default=3, ge=0)
    installment_warning_days: int = Field(default=1, ge=0)

    # Positive insights
    healthy_coverage_months: Decimal = Field(default=Decimal("3"))
    positive_max_alerts: int = Field(
        default=3,
        description="Positive-balance insight only when fewer alerts than this exist"
    )


class ProjectionSettings(BaseSettings):
    """Horizons for recurrence generation and scenario simulation."""

    model_config = SettingsConfigDict(
        env_prefix="PROJECTION_",
        extra="ignore"
    )

    recurrence_months_ahead: int = Field(
        default=3,
        ge=0,
        le=24,
        description="How far ahead recurrences are materialized"
    )
    max_simulation_months: int = Field(
        default=24,
        ge=1,
        le=120,
        description="Upper bound on months covered by one scenario simulation"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )
    currency_symbol: str = Field(
        default="R$",
        description="Symbol used in alert and insight messages"
    )

    # Batch alert dispatch
    batch_concurrency: int = Field(
        default=5,
        ge=1,
        le=100,
        description="How many users are evaluated at once"
    )
    delivery_dedupe_hours: int = Field(
        default=4,
        ge=0,
        description="An alert already pushed within this window is not pushed again"
    )
    delivery_retention_days: int = Field(
        default=7,
        ge=1,
        description="Delivery logs older than this are purged after each run"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Loaded lazily so a missing Gemini key does not block pure computation

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def alerts(self) -> AlertSettings:
        return AlertSettings()

    @property
    def projection(self) -> ProjectionSettings:
        return ProjectionSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    "<name>_error" entry for every section that failed.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("google_sheets", "gemini", "alerts", "projection", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
