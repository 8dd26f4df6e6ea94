"""Engine configuration using pydantic-settings.

All tunables of the offline queue (retry ceiling, sweep interval, probe
thresholds, remote endpoints) are read through the settings object rather
than hard-coded, so tests and terminals can override them per instance.
Environment variables use the ``OFFLINE_POS_`` prefix.
"""

import warnings
from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Offline engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="OFFLINE_POS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Local durable store
    database_url: str = "sqlite:///./data/offline_pos.db"

    # Remote POS API
    api_base_url: str = "http://localhost:3000"
    api_token: Optional[str] = None
    sale_endpoint: str = "/api/pos/create-sale"
    catalog_endpoint: str = "/api/pos/products"
    health_endpoint: str = "/api/health"
    request_timeout_seconds: float = 10.0

    # Retry policy
    max_sync_attempts: int = 5

    # Scheduling (seconds)
    sync_interval_seconds: float = 300.0  # periodic sweep while online
    reconnect_sync_delay_seconds: float = 1.0  # let connectivity settle
    immediate_sync_delay_seconds: float = 0.1
    probe_interval_seconds: float = 30.0

    # Connection quality
    slow_connection_threshold_ms: float = 3000.0

    # Catalog
    refresh_catalog_on_reconnect: bool = False

    # Terminal identity, used in logs only
    terminal_id: str = "terminal-1"

    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("max_sync_attempts")
    @classmethod
    def validate_max_sync_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_sync_attempts must be at least 1")
        return v

    @field_validator(
        "request_timeout_seconds",
        "sync_interval_seconds",
        "probe_interval_seconds",
        "slow_connection_threshold_ms",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("reconnect_sync_delay_seconds", "immediate_sync_delay_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_probe_against_timeout(self) -> "Settings":
        """A probe that outlives its own interval would overlap the next one."""
        if self.request_timeout_seconds > self.probe_interval_seconds:
            warnings.warn(
                "request_timeout_seconds exceeds probe_interval_seconds; "
                "connection probes may overlap.",
                UserWarning,
                stacklevel=2,
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
