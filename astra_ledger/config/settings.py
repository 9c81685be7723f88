"""
Configuration Management for Astra Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The presence of Firebase credentials decides, once at startup, whether the
ledger runs in cloud mode (Firestore + anonymous auth) or local mode
(JSON file + placeholder identity). There is no runtime switch.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Placeholder shipped in .env templates; means "Firebase not configured".
FIREBASE_API_KEY_PLACEHOLDER = "YOUR_FIREBASE_API_KEY"


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: Optional[str] = Field(
        default=None,
        description="Gemini API key (agents fall back to static replies without it)"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


class FirebaseSettings(BaseSettings):
    """Firebase (Firestore + anonymous auth) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        default=FIREBASE_API_KEY_PLACEHOLDER,
        description="Firebase web API key, used for anonymous sign-in"
    )
    project_id: Optional[str] = Field(
        default=None,
        description="Google Cloud project hosting Firestore"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description="Path to a service account JSON with Firestore access"
    )
    auth_endpoint: str = Field(
        default="https://identitytoolkit.googleapis.com/v1",
        description="Identity Toolkit base URL"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: Optional[str]) -> Optional[str]:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if v and not Path(v).exists():
            import warnings
            warnings.warn(
                f"Firebase credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v

    @property
    def is_configured(self) -> bool:
        """True when a real API key (not the placeholder) is present."""
        key = (self.api_key or "").strip()
        return bool(key) and key != FIREBASE_API_KEY_PLACEHOLDER


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

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Root log level"
    )
    json_logs: bool = Field(
        default=True,
        description="Render logs as JSON (console renderer otherwise)"
    )

    # Ledger identity
    app_id: str = Field(
        default="astra-ledger-v1",
        description="Application identifier used in storage paths and keys"
    )
    currency_symbol: str = Field(
        default="₹",
        description="Currency symbol shown in replies and prompts"
    )

    # Local mode
    local_data_dir: str = Field(
        default=".astra_ledger",
        description="Directory holding the local JSON ledger"
    )
    local_identity_delay_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Delay before the placeholder identity is announced"
    )

    # Snapshot caps sent to the remote agents
    memory_context_limit: int = Field(
        default=50,
        ge=1,
        description="Distinct item labels included in the parsing memory"
    )
    summary_snapshot_limit: int = Field(
        default=100,
        ge=1,
        description="Records sent with a question to the summary agent"
    )
    advisor_snapshot_limit: int = Field(
        default=30,
        ge=1,
        description="Records sent to the advisor agent"
    )

    # File upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt upload size in MB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp",
        description="Comma-separated list of supported image formats"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def local_data_path(self) -> Path:
        return Path(self.local_data_dir)


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
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def firebase(self) -> FirebaseSettings:
        return FirebaseSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()

    @property
    def cloud_mode(self) -> bool:
        """Whether storage and identity should use Firebase."""
        return self.firebase.is_configured


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results: dict[str, object] = {}

    settings = get_settings()

    try:
        results["gemini"] = settings.gemini.is_configured
    except Exception as e:
        results["gemini"] = False
        results["gemini_error"] = str(e)

    try:
        results["firebase"] = settings.firebase.is_configured
    except Exception as e:
        results["firebase"] = False
        results["firebase_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
