"""Configuration package."""

from stairbot.config.settings import (
    AppSettings,
    ChartSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "ChartSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
