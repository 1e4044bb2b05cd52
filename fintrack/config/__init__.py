"""Configuration package."""

from fintrack.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    RecurringSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "RecurringSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
