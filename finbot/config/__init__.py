"""Configuration package."""

from finbot.config.settings import (
    AppSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    ServerSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "ServerSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
