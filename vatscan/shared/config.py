"""Shared configuration management for the receipt VAT engine.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from decimal import Decimal
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'VATSCAN_'.
    Example: VATSCAN_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="VATSCAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    service_name: str = Field(
        default="vatscan",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Locale
    default_language: str = Field(
        default="en",
        description="Term dictionary used when no language can be detected",
    )
    default_country: str = Field(
        default="IS",
        description="Country whose common VAT rates seed the rate table when nothing is detected",
    )
    term_dictionary_path: Path | None = Field(
        default=None,
        description="Optional JSON file merged over the built-in term dictionaries",
    )

    # Extraction heuristics
    plausible_tax_ratio: Decimal = Field(
        default=Decimal("0.6"),
        gt=0,
        le=1,
        description="Largest share of the biggest number on a rate line a tax amount may have",
    )
    restrict_to_common_rates: bool = Field(
        default=False,
        description="Drop VAT rates that are not common for the detected country",
    )

    # Implausible tax correction
    vat_correction_enabled: bool = Field(
        default=True,
        description="Replace implausible tax values with a value derived from the total",
    )
    vat_correction_min_total: Decimal = Field(
        default=Decimal("100"),
        ge=0,
        description="Totals at or below this value are never corrected",
    )
    vat_correction_min_tax: Decimal = Field(
        default=Decimal("10"),
        ge=0,
        description="Tax below this value is considered a misread",
    )
    vat_correction_max_tax_ratio: Decimal = Field(
        default=Decimal("0.5"),
        gt=0,
        le=1,
        description="Tax above this share of the total is considered a misread",
    )
    vat_correction_fallback_rate: Decimal = Field(
        default=Decimal("24"),
        gt=0,
        le=100,
        description="VAT rate (percent) assumed when recomputing an implausible tax",
    )

    # Tax recovery for receipts with a total but no tax line
    tax_recovery_enabled: bool = Field(
        default=False,
        description="Take a printed number close to the expected VAT share of the total as the tax",
    )
    tax_recovery_min_amount: Decimal = Field(
        default=Decimal("1000"),
        ge=0,
        description="Totals and tax candidates at or below this value are not used for recovery",
    )
    tax_recovery_tolerance: Decimal = Field(
        default=Decimal("0.1"),
        gt=0,
        lt=1,
        description="Largest relative distance from the expected tax a candidate may have",
    )

    # OCR configuration
    ocr_mode: Literal["auto", "tesseract", "paddleocr"] = Field(
        default="auto",
        description="auto runs both engines concurrently and arbitrates their results",
    )
    ocr_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Per-engine OCR timeout; a timed-out engine is treated as absent",
    )
    ocr_region: Literal["iceland", "nordic", "european", "global"] = Field(
        default="iceland",
        description="Invoice region, selects Tesseract language packs and the fallback country",
    )
    paddle_lang: str = Field(
        default="latin",
        description="PaddleOCR recognition language",
    )

    # Record store
    records_db_path: str = Field(
        default="records.db",
        description="SQLite database file for invoice records",
    )

    # Storage configuration (S3-compatible object storage for receipt images)
    storage_enabled: bool = Field(
        default=False,
        description="Enable receipt image upload to S3-compatible storage (MinIO)",
    )
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="S3-compatible storage endpoint (host:port)",
    )
    storage_access_key: str = Field(
        default="",
        description="Storage access key (use env var VATSCAN_STORAGE_ACCESS_KEY)",
    )
    storage_secret_key: str = Field(
        default="",
        description="Storage secret key (use env var VATSCAN_STORAGE_SECRET_KEY)",
    )
    storage_bucket: str = Field(
        default="receipts",
        description="Default bucket name for receipt images",
    )
    storage_secure: bool = Field(
        default=False,
        description="Use HTTPS for storage connections",
    )

    # Export
    export_language: Literal["is", "en"] = Field(
        default="is",
        description="Language of the CSV export header row",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
