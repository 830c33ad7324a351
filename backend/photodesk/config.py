"""
PhotoDesk Backend: Application Configuration
==============================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by every module that needs configuration values.
When:  Loaded once at module import time; validated before app starts.

Directory Layout (all derived from PUBLIC_ROOT unless overridden):
    public/
    ├── uploads/
    │   └── fotograflar/<photographer>/foto_<suffix>.jpeg
    ├── temp/                     staged uploads, always cleaned up
    └── data/
        ├── photographers.json
        ├── photo-records.json
        └── print-history.json
"""

from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from photodesk.schemas.photo import PhotoStandard

SUPPORTED_OUTPUT_FORMATS = {"jpeg", "png", "webp"}


def _split_csv(value: str) -> List[str]:
    return [item.strip().lower() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development. Attributes are
    grouped by concern.
    """

    # ── File Storage ──────────────────────────────────────────────────────
    # What: Root of the served/public tree; uploads, temp and data live below it
    public_root: str = Field(default="./public")
    uploads_dir: Optional[str] = Field(default=None)
    temp_dir: Optional[str] = Field(default=None)
    data_dir: Optional[str] = Field(default=None)

    # ── Photo Standard ────────────────────────────────────────────────────
    # What: Output canvas for every ingested photo. 240x320 tiles fit a 3x3
    # grid on the lower half of a portrait A4 certificate.
    photo_width: int = Field(default=240, ge=16, le=4000)
    photo_height: int = Field(default=320, ge=16, le=4000)
    photo_quality: int = Field(default=90, ge=1, le=100)
    photo_format: str = Field(default="jpeg")
    allowed_extensions: str = Field(default="jpg,jpeg,png")
    allowed_media_types: str = Field(default="image/jpeg,image/jpg,image/png")

    # Default: 10MB = 10 * 1024 * 1024 = 10485760
    max_file_size: int = Field(default=10_485_760, ge=1_024, le=52_428_800)
    max_files_per_request: int = Field(default=50, ge=1, le=500)

    # ── CORS ──────────────────────────────────────────────────────────────
    # Format: Comma-separated URLs, or "*" for any origin
    cors_origins: str = Field(default="http://localhost:3000,http://localhost:5173")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=3001, ge=1024, le=65535)

    # What: Absolute base used when building proxy/image URLs for clients.
    # When unset, the incoming request's base URL is used.
    public_base_url: Optional[str] = Field(default=None)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("photo_format")
    @classmethod
    def validate_photo_format(cls, v: str) -> str:
        """Output format must be one Pillow can encode for us."""
        lower = v.lower().lstrip(".")
        if lower == "jpg":
            lower = "jpeg"
        if lower not in SUPPORTED_OUTPUT_FORMATS:
            raise ValueError(
                f"Invalid photo_format '{v}'. Must be one of: {sorted(SUPPORTED_OUTPUT_FORMATS)}"
            )
        return lower

    @field_validator("allowed_extensions", "allowed_media_types")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not _split_csv(v):
            raise ValueError("At least one value is required")
        return v

    # ── Image Proxy (scrape + relay) ──────────────────────────────────────
    # What: Fixed bound for every outbound call to the scraped site
    proxy_timeout: float = Field(default=10.0, gt=0, le=120)
    proxy_user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    )
    # What: Hosts (and their subdomains) the scraper and image relay may contact
    proxy_allowed_hosts: str = Field(default="trakel.org")
    scrape_image_selector: str = Field(default="img.tur")

    @property
    def proxy_allowed_hosts_list(self) -> List[str]:
        return _split_csv(self.proxy_allowed_hosts)

    # ── Retry Configuration ───────────────────────────────────────────────
    # What: Tenacity retry settings for outbound proxy calls
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_min_wait: float = Field(default=1, ge=0, le=30)
    retry_max_wait: float = Field(default=8, ge=0, le=120)
    retry_jitter: float = Field(default=1, ge=0, le=10)

    # ── Circuit Breaker ───────────────────────────────────────────────────
    # How: After N consecutive failures, stop trying for M seconds
    cb_failure_threshold: int = Field(default=5, ge=1, le=20)
    cb_recovery_timeout: int = Field(default=60, ge=0, le=300)

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # What: Per-IP sliding window rate limit
    rate_limit_requests: int = Field(default=600, ge=10, le=100000)
    rate_limit_window: int = Field(default=3600, ge=60, le=86400)  # seconds

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    # ── Derived Paths ─────────────────────────────────────────────────────

    @property
    def public_path(self) -> Path:
        return Path(self.public_root).resolve()

    @property
    def uploads_root(self) -> Path:
        """Directory holding one sub-directory per photographer."""
        if self.uploads_dir:
            return Path(self.uploads_dir).resolve()
        return self.public_path / "uploads" / "fotograflar"

    @property
    def staging_root(self) -> Path:
        if self.temp_dir:
            return Path(self.temp_dir).resolve()
        return self.public_path / "temp"

    @property
    def data_root(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir).resolve()
        return self.public_path / "data"

    @property
    def photographers_file(self) -> Path:
        return self.data_root / "photographers.json"

    @property
    def photo_records_file(self) -> Path:
        return self.data_root / "photo-records.json"

    @property
    def print_history_file(self) -> Path:
        return self.data_root / "print-history.json"

    @property
    def photo_standard(self) -> PhotoStandard:
        """
        Build the immutable PhotoStandard every upload is validated and
        normalized against.
        """
        return PhotoStandard(
            width=self.photo_width,
            height=self.photo_height,
            quality=self.photo_quality,
            format=self.photo_format,
            allowed_extensions=tuple(_split_csv(self.allowed_extensions)),
            allowed_media_types=tuple(_split_csv(self.allowed_media_types)),
            max_file_size=self.max_file_size,
        )

    def ensure_directories(self) -> None:
        """
        Create the uploads, staging and data directories.

        When:  Called during app startup (lifespan).
        Raises OSError if any directory cannot be created; the caller logs it.
        """
        for directory in (self.uploads_root, self.staging_root, self.data_root):
            directory.mkdir(parents=True, exist_ok=True)


# Singleton instance imported throughout the application
settings = Settings()
