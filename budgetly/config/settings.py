"""
Configuration Management for Budgetly

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
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

    # Sheet names within the spreadsheet
    accounts_sheet_name: str = Field(
        default="Accounts",
        description="Name of the sheet holding one row per user account"
    )
    suggestions_sheet_name: str = Field(
        default="Suggestions",
        description="Name of the sheet for purchase suggestions"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
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
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    # The scoring request is answered to a waiting user
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Upper bound for a single assistant call"
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

    # Suggestion history
    default_suggestion_limit: int = Field(
        default=10,
        ge=1,
        description="How many suggestions list_suggestions returns by default"
    )
    max_suggestion_limit: int = Field(
        default=100,
        ge=1,
        description="Upper bound for a caller-supplied suggestion limit"
    )

    # Ledger write-back
    ledger_write_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Read-modify-write attempts before a version conflict surfaces"
    )

    # One-time purchase thresholds
    good_savings_share: float = Field(
        default=0.10,
        gt=0.0,
        le=1.0,
        description="Largest share of savings a 'Good' purchase may take"
    )
    moderate_savings_share: float = Field(
        default=0.30,
        gt=0.0,
        le=1.0,
        description="Largest share of savings a 'Moderate' purchase may take"
    )
    good_expense_ratio: float = Field(
        default=70.0,
        ge=0.0,
        description="Highest expense ratio (%) for a 'Good' score"
    )
    moderate_expense_ratio: float = Field(
        default=80.0,
        ge=0.0,
        description="Highest expense ratio (%) for a 'Moderate' score"
    )

    @model_validator(mode='after')
    def validate_thresholds(self) -> 'AppSettings':
        """Moderate bands must be at least as wide as the Good bands."""
        if self.moderate_savings_share < self.good_savings_share:
            raise ValueError("moderate_savings_share cannot be below good_savings_share")
        if self.moderate_expense_ratio < self.good_expense_ratio:
            raise ValueError("moderate_expense_ratio cannot be below good_expense_ratio")
        if self.default_suggestion_limit > self.max_suggestion_limit:
            raise ValueError("default_suggestion_limit cannot exceed max_suggestion_limit")
        return self


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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

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

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries holding the failure message.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("google_sheets", "gemini", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
