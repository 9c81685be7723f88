"""Tests for environment-driven settings."""

from astra_ledger.config import (
    FIREBASE_API_KEY_PLACEHOLDER,
    AppSettings,
    FirebaseSettings,
    get_settings,
)


class TestAppSettings:

    def test_defaults(self, app_settings):
        assert app_settings.log_level == "INFO"
        assert app_settings.currency_symbol == "₹"
        assert app_settings.max_upload_size_bytes == 10 * 1024 * 1024
        assert app_settings.supported_formats_list == ["jpg", "jpeg", "png", "webp"]

    def test_unused_environment_switches_are_not_settings(self, monkeypatch):
        monkeypatch.setenv("APP_ENVIRONMENT", "production")
        monkeypatch.setenv("DEBUG_MODE", "true")

        settings = AppSettings()

        assert "app_environment" not in AppSettings.model_fields
        assert "debug_mode" not in AppSettings.model_fields
        assert not hasattr(settings, "debug_mode")


class TestFirebaseSettings:

    def test_placeholder_key_means_local_mode(self, monkeypatch):
        monkeypatch.setenv("FIREBASE_API_KEY", FIREBASE_API_KEY_PLACEHOLDER)
        assert not FirebaseSettings().is_configured
        assert not get_settings().cloud_mode

    def test_real_key_means_cloud_mode(self, monkeypatch):
        monkeypatch.setenv("FIREBASE_API_KEY", "AIza-test-key")
        assert FirebaseSettings().is_configured
        assert get_settings().cloud_mode

    def test_blank_key_is_not_configured(self, monkeypatch):
        monkeypatch.setenv("FIREBASE_API_KEY", "   ")
        assert not FirebaseSettings().is_configured
