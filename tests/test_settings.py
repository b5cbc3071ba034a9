"""
Tests for configuration loading.
"""

import pytest

from splitledger.config import LedgerSettings, get_settings, validate_all_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # No .env file and no service credentials
    monkeypatch.chdir(tmp_path)
    for name in (
        "CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET",
        "MINDEE_API_KEY", "GEMINI_API_KEY",
        "GOOGLE_SHEETS_CREDENTIALS_PATH", "GOOGLE_SHEETS_SPREADSHEET_ID",
        "SELF_MEMBER_NAME", "SUPPORTED_IMAGE_FORMATS",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestLedgerSettings:
    """The core ledger works with no configuration at all."""

    def test_defaults(self):
        settings = LedgerSettings()

        assert settings.self_member_name == "Me"
        assert settings.min_receipt_confidence == 0.5
        assert settings.supported_formats_list == ["jpg", "jpeg", "png", "webp"]
        assert settings.max_upload_size_bytes == 10 * 1024 * 1024

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SELF_MEMBER_NAME", "Jordan")
        monkeypatch.setenv("SUPPORTED_IMAGE_FORMATS", "PNG, Jpeg")

        settings = LedgerSettings()

        assert settings.self_member_name == "Jordan"
        assert settings.supported_formats_list == ["png", "jpeg"]


class TestValidateAllSettings:
    """Tests for validate_all_settings."""

    def test_missing_services_are_reported(self):
        results = validate_all_settings()

        assert results["ledger"] is True
        assert results["cloudinary"] is False
        assert results["mindee"] is False
        assert "mindee_error" in results
        assert "ledger_error" not in results

    def test_configured_service(self, monkeypatch):
        monkeypatch.setenv("MINDEE_API_KEY", "test-key")

        results = validate_all_settings()

        assert results["mindee"] is True
        assert get_settings().mindee.api_key == "test-key"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
