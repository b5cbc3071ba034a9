"""
Configuration Management for SplitLedger

Typed configuration read from the environment with pydantic-settings.

All configuration is centralized here so it is easy to see which external
services the ledger talks to. Only the core ledger settings have full
defaults; the external services are validated lazily, when first used.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CloudinarySettings(BaseSettings):
    """Cloudinary receipt image hosting configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        extra="ignore"
    )

    cloud_name: str = Field(
        ...,
        description="Cloudinary account (cloud) name"
    )
    api_key: str = Field(
        ...,
        description="Cloudinary key used for signed uploads"
    )
    api_secret: str = Field(
        ...,
        description="Cloudinary secret used for signed uploads"
    )
    receipts_folder: str = Field(
        default="splitledger/receipts",
        description="Folder that receipt images are uploaded into"
    )


class MindeeSettings(BaseSettings):
    """Mindee receipt OCR configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MINDEE_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Mindee API key"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets ledger storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Service account JSON file used to reach Sheets"
    )
    spreadsheet_id: str = Field(
        ...,
        description="Spreadsheet that holds the ledger worksheets"
    )

    # One worksheet per entity
    groups_sheet_name: str = Field(default="Groups")
    members_sheet_name: str = Field(default="Members")
    expenses_sheet_name: str = Field(default="Expenses")
    shares_sheet_name: str = Field(default="ExpenseShares")
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Worksheet that receives audit rows"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn when the service account file is missing; it may be mounted at runtime."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"No service account file at {v}. "
                "Sheets storage will fail to connect until it is in place."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini configuration for spoken-expense parsing."""

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
        description="Gemini model that parses spoken expenses"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Upper bound on reply tokens"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sampling temperature; kept low for stable JSON"
    )


class LedgerSettings(BaseSettings):
    """
    Core ledger settings.

    Read from the environment, falling back to a local .env file.
    Every field has a default so the engine works with no configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Deployment environment name"
    )
    debug_mode: bool = Field(
        default=False,
        description="Verbose logging"
    )

    # Name given to the member that represents the current user
    self_member_name: str = Field(
        default="Me",
        min_length=1,
        max_length=100,
        description="Display name of the member created for the current user"
    )

    # Receipt uploads
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt image size in MB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp",
        description="Comma-separated receipt image formats accepted for upload"
    )
    min_receipt_confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Minimum OCR confidence before a scanned total is trusted"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Accepted receipt image formats, lowercased."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Upload limit in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Sub-settings are loaded lazily to allow partial configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

    @property
    def mindee(self) -> MindeeSettings:
        return MindeeSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Process-wide settings, built once.

    Tests clear the cache with get_settings.cache_clear().
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to load every settings section.

    Returns a dict of {setting_name: is_valid}, with a
    "<name>_error" entry for every failing section.
    """
    results = {}
    settings = get_settings()

    sections = {
        "cloudinary": lambda: settings.cloudinary,
        "mindee": lambda: settings.mindee,
        "google_sheets": lambda: settings.google_sheets,
        "gemini": lambda: settings.gemini,
        "ledger": lambda: settings.ledger,
    }

    for name, load in sections.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
