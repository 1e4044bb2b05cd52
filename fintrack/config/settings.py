"""
Configuration Management for the Finance Tracker

Every tunable value comes from environment variables (or a .env file)
through pydantic-settings. Sub-settings are built on first access, so the
app runs in memory without any Google Sheets variables set.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Where the spreadsheet lives and what its worksheets are called."""

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

    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for transactions"
    )
    recurring_sheet_name: str = Field(
        default="Recurring",
        description="Name of the sheet for recurring transaction definitions"
    )
    watermarks_sheet_name: str = Field(
        default="Watermarks",
        description="Name of the sheet for per-definition progress markers"
    )
    budgets_sheet_name: str = Field(
        default="Budgets",
        description="Name of the sheet for category budgets"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """The file may be mounted after startup, so a missing file only warns."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Google Sheets storage will not connect until it exists."
            )
        return v


class RecurringSettings(BaseSettings):
    """Recurring transaction materialization settings."""

    model_config = SettingsConfigDict(
        env_prefix="RECURRING_",
        extra="ignore"
    )

    max_iterations_per_definition: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Upper bound on occurrences examined per definition in one pass"
    )
    default_currency: str = Field(
        default="EUR",
        min_length=3,
        max_length=3,
        description="Currency recorded on new definitions and transactions"
    )


class AppSettings(BaseSettings):
    """
    General application settings and validation thresholds.
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

    # Sign-in is handled outside this package; the UI falls back to this owner
    default_owner_id: str = Field(
        default="local",
        min_length=1,
        description="Owner identifier used when no signed-in user is available"
    )

    # Validation thresholds
    max_amount: float = Field(
        default=100000.0,
        gt=0,
        description="Maximum reasonable recurring amount (for sanity checking)"
    )
    future_start_tolerance_days: int = Field(
        default=366,
        ge=0,
        description="How far in the future a recurring definition may start"
    )
    budget_warning_percent: float = Field(
        default=80.0,
        gt=0,
        le=100,
        description="Share of a budget spent before it is flagged as nearly used up"
    )


class Settings(BaseSettings):
    """
    Root settings container; each section is read when first used.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def recurring(self) -> RecurringSettings:
        return RecurringSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Process-wide settings. Tests call get_settings.cache_clear() to reload.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to load every settings section.

    Returns a dict of {setting_name: is_valid}, plus a
    "<setting_name>_error" entry for each failure.
    """
    results = {}

    settings = get_settings()

    for name in ("google_sheets", "recurring", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
