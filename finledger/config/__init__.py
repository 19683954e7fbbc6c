"""Configuration package."""

from finledger.config.settings import (
    AlertSettings,
    AppSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    ProjectionSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AlertSettings",
    "AppSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "ProjectionSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
