"""
Centralized Settings Configuration

Uses Pydantic Settings to load configuration from environment variables
with validation and type coercion.
"""

from typing import Optional
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///no_fc_tracker.db"

    # osu! API (v1)
    # Get a key at https://osu.ppy.sh/home/account/edit#legacy-api
    osu_api_key: Optional[SecretStr] = None
    osu_api_base_url: str = "https://osu.ppy.sh/api"
    osu_web_base_url: str = "https://osu.ppy.sh"
    osu_assets_base_url: str = "https://assets.ppy.sh"

    # Ingestion
    ingest_chunk_size: int = 15
    score_window: int = 50
    fetch_workers: int = 15
    api_rate_limit_per_minute: int = 600
    api_rate_limit_per_second: int = 30
    api_rate_limit_max_wait_seconds: int = 60

    # Record lifecycle
    archive_after_days: int = 30

    # Daily schedule
    timezone: str = "America/New_York"
    refresh_hour: int = 23
    discover_hour: int = 0
    scheduler_enabled: bool = True

    # Exclusive access to the record tables
    run_lock_ttl_seconds: int = 3600

    # Resilience
    retry_max_attempts: int = 3
    retry_base_delay: float = 2.0
    retry_max_delay: float = 30.0
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout: int = 60
    http_timeout: int = 30

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"
    service_name: str = "no-fc-tracker"

    # Command API auth
    pipeline_api_token: Optional[SecretStr] = None
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return upper_v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is either json or console."""
        lower_v = v.lower()
        if lower_v not in {"json", "console"}:
            raise ValueError("log_format must be 'json' or 'console'")
        return lower_v

    @field_validator("ingest_chunk_size", "score_window", "fetch_workers")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v


def get_settings() -> Settings:
    """
    Get application settings.

    This function creates a new Settings instance each time,
    allowing for testing with different configurations.
    """
    return Settings()


def require_api_key(config: Settings) -> str:
    """
    Return the osu! API key or fail startup.

    Called once by every entry point before any work is done. The returned
    value is passed explicitly to the extractor; nothing caches it globally.

    Raises:
        ConfigurationError: If OSU_API_KEY is not configured
    """
    if config.osu_api_key is None or not config.osu_api_key.get_secret_value().strip():
        raise ConfigurationError(
            "OSU_API_KEY is not set. Export OSU_API_KEY or add it to .env "
            "(get a key at https://osu.ppy.sh/home/account/edit#legacy-api)."
        )
    return config.osu_api_key.get_secret_value().strip()


# Default settings instance for convenience
# Import this for quick access: from core.settings import settings
settings = Settings()
