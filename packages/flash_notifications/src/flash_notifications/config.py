"""
Settings for the notification scheduling engine.
"""

import zoneinfo
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationSettings(BaseSettings):
    """
    Runtime settings for flash_notifications.

    Values come from the environment or a local ``.env`` file, so a host
    application can point the engine at its own database without code changes.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    # --- Basic Environment ---
    DEBUG: bool = True
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # --- Persistence ---
    # None selects the in-memory store (nothing survives a restart).
    DATABASE_URL: str | None = None
    DB_ECHO: bool = False

    # --- Scheduling ---
    DEFAULT_TIMEZONE: str = "UTC"
    # Seconds to wait for in-flight sink deliveries on shutdown.
    SINK_SHUTDOWN_TIMEOUT: float = 5.0

    # --- Query Limits ---
    DEFAULT_QUERY_LIMIT: int = 50
    MAX_QUERY_LIMIT: int = 500

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None

    @field_validator("DEFAULT_TIMEZONE")
    @classmethod
    def validate_default_timezone(cls, v: str) -> str:
        try:
            zoneinfo.ZoneInfo(v)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError) as z:
            msg = f"Invalid timezone name: {v}"
            raise ValueError(msg) from z
        return v

    @model_validator(mode="after")
    def validate_limits(self) -> "NotificationSettings":
        """Keeps the default page size inside the hard limit."""
        if self.MAX_QUERY_LIMIT < 1:
            raise ValueError("MAX_QUERY_LIMIT must be at least 1.")
        if self.DEFAULT_QUERY_LIMIT > self.MAX_QUERY_LIMIT:
            raise ValueError("DEFAULT_QUERY_LIMIT cannot exceed MAX_QUERY_LIMIT.")
        return self

    def is_development(self) -> bool:
        return self.DEBUG or self.ENVIRONMENT == "development"

    def is_persistent(self) -> bool:
        return bool(self.DATABASE_URL)


# Singleton instance for package-wide use
notification_settings = NotificationSettings()
