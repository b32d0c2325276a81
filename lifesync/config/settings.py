"""
Configuration Management for LifeSync

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every component also accepts an explicit settings object, so tests and
embedding applications never depend on process environment.
"""

import logging
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Synchronization layer configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LIFESYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Remote request limits
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Upper bound for a single create/update/delete request"
    )

    # Live query establishment
    subscribe_retry_attempts: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Attempts to establish a live query (1 = no retry)"
    )
    subscribe_retry_min_wait_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum backoff between establishment attempts"
    )
    subscribe_retry_max_wait_seconds: float = Field(
        default=8.0,
        ge=0.0,
        description="Maximum backoff between establishment attempts"
    )

    # Mutations
    optimistic_updates: bool = Field(
        default=False,
        description="Apply updates/deletes locally before the remote confirms"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Only accept standard logging level names."""
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode='after')
    def validate_backoff(self) -> 'SyncSettings':
        """Backoff window must not be inverted."""
        if self.subscribe_retry_max_wait_seconds < self.subscribe_retry_min_wait_seconds:
            raise ValueError("Retry max wait cannot be below retry min wait")
        return self


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.sync
        results["sync"] = True
    except Exception as e:
        results["sync"] = False
        results["sync_error"] = str(e)

    return results
