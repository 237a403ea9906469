"""
Configuration Management for FinBot Ledger

Every knob is read from the environment (or a local .env) through
pydantic-settings.

DESIGN DECISION: one module owns configuration.
Every external collaborator (Gemini, Google Sheets, the data directory,
the HTTP server) has its own settings section with its own env prefix.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini access for the advisor and entry agents."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="API key from Google AI Studio"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Model used for advice, OCR and parsing"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Upper bound on answer length"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Sampling temperature; low keeps JSON answers stable"
    )


class StorageSettings(BaseSettings):
    """Local ledger storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINBOT_STORAGE_",
        extra="ignore"
    )

    backend: Literal["memory", "file", "sheets"] = Field(
        default="file",
        description="Blob backend holding the ledger collections"
    )
    data_dir: str = Field(
        default="./finbot_data",
        description="Directory for the file backend (one JSON file per collection)"
    )

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets backup configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Service account JSON used for the backup sheet"
    )
    spreadsheet_id: str = Field(
        ...,
        description="Spreadsheet receiving the ledger backup"
    )
    blobs_sheet_name: str = Field(
        default="Ledger",
        description="Name of the sheet holding one row per collection"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Only warn on a missing file; backup is optional and may be mounted later."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Service account file {v} does not exist yet; "
                "Sheets backup will fail until it is provided."
            )
        return v


class ServerSettings(BaseSettings):
    """REST backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINBOT_SERVER_",
        extra="ignore"
    )

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=4000, ge=1, le=65535)
    data_file: str = Field(
        default="data.json",
        description="JSON document holding all server state"
    )
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins"
    )

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


class AppSettings(BaseSettings):
    """Ledger-wide behaviour without an env prefix."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="development, staging or production"
    )
    debug_mode: bool = Field(
        default=False,
        description="Verbose server logging"
    )

    storage_currency: str = Field(
        default="RUB",
        description="Currency every amount is persisted in"
    )

    # Sanity thresholds
    max_entry_amount: float = Field(
        default=100_000_000.0,
        description="Amounts above this are flagged as suspicious"
    )
    big_purchase_threshold: float = Field(
        default=10_000.0,
        description="Single expense that unlocks the big purchase badge"
    )
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt image size in MB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp",
        description="Comma-separated list of supported receipt image formats"
    )
    activity_log_limit: int = Field(
        default=100,
        ge=1,
        description="Newest activity events kept in storage; each backs up as one Sheets cell"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Lowercased receipt image subtypes."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Receipt size limit in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """Entry point to every settings section."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sections are built on access so a missing Gemini key does not break storage

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def server(self) -> ServerSettings:
        return ServerSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings; tests call get_settings.cache_clear()."""
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to build every section.

    Returns a dict of {setting_name: is_valid}, plus a
    `<name>_error` entry for every section that failed.
    """
    results = {}
    settings = get_settings()

    for name in ("gemini", "storage", "google_sheets", "server", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
