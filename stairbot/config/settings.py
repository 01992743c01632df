"""
Configuration Management for Stairbot

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what the bot depends on and
ensures all configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from stairbot.dates import is_valid_key


CHART_DAYS_MIN = 7
CHART_DAYS_MAX = 365
CHART_DAYS_DEFAULT = 30


class StorageSettings(BaseSettings):
    """Snapshot file and audit trail locations."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    data_file: Path = Field(
        default=Path("./data/users.json"),
        validation_alias=AliasChoices("data_file", "LEDGER_DATA_FILE", "DATA_FILE"),
        description="Path to the JSON ledger snapshot"
    )
    write_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per snapshot write before giving up"
    )
    audit_file: Optional[Path] = Field(
        default=None,
        description="Optional JSONL audit trail; unset disables it"
    )


class ChartSettings(BaseSettings):
    """Daily chart window."""

    model_config = SettingsConfigDict(
        env_prefix="CHART_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    days: int = Field(
        default=CHART_DAYS_DEFAULT,
        description="How many days the default chart shows (clamped to 7..365)"
    )
    start: Optional[str] = Field(
        default=None,
        description="Fixed chart start (YYYY-MM-DD), used with end"
    )
    end: Optional[str] = Field(
        default=None,
        description="Fixed chart end (YYYY-MM-DD), used with start"
    )

    @field_validator("days", mode="before")
    @classmethod
    def clamp_days(cls, v) -> int:
        """Out-of-range values are clamped; garbage falls back to the default."""
        try:
            days = int(v)
        except (TypeError, ValueError):
            return CHART_DAYS_DEFAULT
        if days == 0:
            return CHART_DAYS_DEFAULT
        return max(CHART_DAYS_MIN, min(CHART_DAYS_MAX, days))

    @field_validator("start", "end")
    @classmethod
    def ignore_invalid_dates(cls, v: Optional[str]) -> Optional[str]:
        """A malformed fixed date is treated as not set."""
        return v if is_valid_key(v) else None

    @property
    def fixed_range(self) -> Optional[tuple[str, str]]:
        """(start, end) when both are configured, else None."""
        if self.start and self.end:
            return self.start, self.end
        return None


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
        description="Minimum level for the structured log"
    )
    default_user_name: str = Field(
        default="unnamed",
        min_length=1,
        max_length=40,
        description="Name for users who log stairs before registering"
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
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

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def chart(self) -> ChartSettings:
        return ChartSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    "<name>_error" entries for the ones that failed.
    """
    results = {}
    settings = get_settings()

    for name in ("storage", "chart", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
