"""Configuration package."""

from astra_ledger.config.settings import (
    FIREBASE_API_KEY_PLACEHOLDER,
    AppSettings,
    FirebaseSettings,
    GeminiSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "FIREBASE_API_KEY_PLACEHOLDER",
    "AppSettings",
    "FirebaseSettings",
    "GeminiSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
