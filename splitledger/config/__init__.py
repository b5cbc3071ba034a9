"""Configuration package."""

from splitledger.config.settings import (
    CloudinarySettings,
    GeminiSettings,
    GoogleSheetsSettings,
    LedgerSettings,
    MindeeSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "CloudinarySettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "LedgerSettings",
    "MindeeSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
