"""Application configuration via environment variables."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Transit Schedule API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Static GTFS feed
    gtfs_static_url: str = Field(
        default="https://data.trilliumtransit.com/gtfs/caltrain-ca-us/caltrain-ca-us.zip",
        validation_alias=AliasChoices("STATIC_GTFS_URL", "GTFS_STATIC_URL"),
    )
    agency_timezone: str = "America/Los_Angeles"
    feed_max_age_hours: float = Field(default=24.0, gt=0)
    refresh_on_startup: bool = False
    scratch_dir: Optional[str] = None

    # Fetcher
    gtfs_fetch_timeout_sec: int = 120
    gtfs_fetch_max_retries: int = Field(default=3, ge=1)
    gtfs_fetch_backoff_base: float = 2.0
    gtfs_max_download_bytes: int = Field(default=200_000_000, ge=1)

    # Archive extraction limits
    max_entry_size_bytes: int = Field(default=50_000_000, ge=1)
    max_compression_ratio: float = Field(default=100.0, gt=0)

    # Queries
    arrival_match_window_minutes: int = Field(default=2, ge=0)
    owl_service_cutoff_hour: int = Field(default=5, ge=0, le=23)
    default_departure_count: int = Field(default=3, ge=1, le=50)
    direction_labels: dict[int, str] = Field(default_factory=lambda: {0: "North", 1: "South"})

    def missing_required_env(self) -> list[str]:
        """Return required environment variables that are missing or empty."""
        missing: list[str] = []

        if not self.gtfs_static_url:
            missing.append("GTFS_STATIC_URL")

        return missing


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
