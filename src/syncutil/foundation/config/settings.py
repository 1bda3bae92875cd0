"""Environment-based configuration using pydantic-settings.

Settings are read from environment variables (and an optional .env file)
with the SYNCUTIL_ prefix.

Example:
    >>> from syncutil.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.check_invariants
    False
    >>> settings.logging.level
    'INFO'

    # Or with environment variables:
    # SYNCUTIL_CHECK_INVARIANTS=true
    # SYNCUTIL_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseSettings):
    """Logging configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="SYNCUTIL_LOG_",
        extra="ignore",
    )
    
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"
    colors: bool | None = Field(default=None, description="Force console colors on/off (None = auto-detect)")
    
    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class InvariantSettings(BaseSettings):
    """The invariant-checking toggle on its own.
    
    Resolving the toggle validates only this field, so a malformed
    SYNCUTIL_LOG_LEVEL cannot break a mutex.
    """
    
    model_config = SettingsConfigDict(
        env_prefix="SYNCUTIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
    
    check_invariants: bool = False


class SyncutilSettings(BaseSettings):
    """Root settings for syncutil.
    
    Example environment variables:
        SYNCUTIL_CHECK_INVARIANTS=true
        SYNCUTIL_LOG_LEVEL=DEBUG
        SYNCUTIL_LOG_FORMAT=json
    
    The --syncutil.check_invariants command-line flag takes precedence over
    SYNCUTIL_CHECK_INVARIANTS; see syncutil.foundation.config.flags.
    """
    
    model_config = SettingsConfigDict(
        env_prefix="SYNCUTIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )
    
    check_invariants: bool = Field(
        default=False,
        description="Crash when registered invariants are violated",
    )
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> SyncutilSettings:
    """Get the global settings instance (cached)."""
    return SyncutilSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).
    
    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()
