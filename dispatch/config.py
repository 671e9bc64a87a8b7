"""Configuration management for the dispatch service."""

import re
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Messaging gateway
    bot_token: str = Field(..., description="Messaging gateway bot credential")
    admin_id: int | None = Field(default=None, description="Operator user id")
    gateway_url: str = Field(
        default="http://localhost:8081",
        description="Base URL of the outbound messaging gateway",
    )
    gateway_timeout: float = Field(default=10.0, description="Gateway request timeout")

    # Persistence
    data_file: Path = Field(default=Path("data.json"), description="Durable document")
    lock_dir: Path = Field(default=Path("locks"), description="Assignment lock directory")

    # Live-location sessions
    session_ttl_seconds: int = Field(default=1800, description="Sliding session window")
    forward_interval_seconds: int = Field(
        default=15, description="Cadence for re-sending the last location"
    )
    arrival_radius_m: float = Field(default=40.0, description="Auto-arrival geofence")
    default_speed_kmph: float = Field(default=30.0, description="Speed used for ETAs")
    scheduler_poll_seconds: float = Field(
        default=0.5, description="Max sleep of the timer loop"
    )

    # Orders
    archive_days: int = Field(default=7, description="Default archival window")

    # Kept for settings compatibility with older deployments
    group_log_rotate_bytes: int = Field(default=5 * 1024 * 1024)

    # API Configuration
    api_port: int = Field(default=8000, description="API server port")
    api_host: str = Field(default="0.0.0.0", description="API server host")

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "text"] = Field(default="json", description="Log format")

    @field_validator("admin_id", mode="before")
    @classmethod
    def normalize_admin_id(cls, v: object) -> int | None:
        """Accept plain numbers or values like ``$env:12345``."""
        if v is None or isinstance(v, int):
            return v
        digits = re.sub(r"\D", "", str(v))
        return int(digits) if digits else None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v_upper


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
