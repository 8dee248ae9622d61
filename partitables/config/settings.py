"""
Library settings read from PARTITABLES_* environment variables.

Covers batch limits, snapshot pruning, the store retry policy, logging
and the Redis connection.
"""

from typing import Optional
from enum import Enum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from partitables.config.constants import (
    MAX_BATCH_SIZE,
    MAX_ROW_KEY_BYTES,
    DEFAULT_STORE_MAX_RETRIES,
    DEFAULT_STORE_RETRY_BACKOFF_SECONDS,
)


class Environment(str, Enum):
    """Runtime environment options."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Library settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="PARTITABLES_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment Configuration
    ENVIRONMENT: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Runtime environment"
    )

    # Logging Configuration
    LOG_LEVEL: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level"
    )
    LOG_FORMAT: str = Field(
        default="json",
        pattern=r"^(json|text)$",
        description="Log output format"
    )

    # Batch Configuration
    MAX_BATCH_SIZE: int = Field(
        default=MAX_BATCH_SIZE,
        ge=1,
        le=MAX_BATCH_SIZE,
        description="Maximum operations per atomic batch"
    )
    MAX_ROW_KEY_BYTES: int = Field(
        default=MAX_ROW_KEY_BYTES,
        ge=1,
        le=MAX_ROW_KEY_BYTES,
        description="Maximum UTF-8 size of a row key"
    )
    PRUNE_REMOVED_ROWS: bool = Field(
        default=True,
        description="Delete rows of loaded entities whose items were removed in memory"
    )

    # Store Resilience Configuration
    STORE_MAX_RETRIES: int = Field(
        default=DEFAULT_STORE_MAX_RETRIES,
        ge=0,
        le=10,
        description="Retries for retryable store errors"
    )
    STORE_RETRY_BACKOFF_SECONDS: float = Field(
        default=DEFAULT_STORE_RETRY_BACKOFF_SECONDS,
        ge=0.0,
        le=30.0,
        description="Base delay for exponential retry backoff"
    )

    # Redis Configuration
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )
    REDIS_KEY_PREFIX: str = Field(
        default="partitables",
        min_length=1,
        max_length=64,
        description="Prefix for all partition hash keys"
    )
    REDIS_MAX_CONNECTIONS: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Redis maximum connections"
    )
    REDIS_SOCKET_TIMEOUT: float = Field(
        default=5.0,
        ge=0.1,
        le=60.0,
        description="Redis socket timeout in seconds"
    )

    @model_validator(mode="after")
    def validate_environment_consistency(self):
        """Validate environment-specific consistency."""
        if self.ENVIRONMENT == Environment.PRODUCTION:
            if self.LOG_LEVEL == LogLevel.DEBUG:
                raise ValueError("Debug logging should not be enabled in production")

        elif self.ENVIRONMENT == Environment.TESTING:
            self.STORE_RETRY_BACKOFF_SECONDS = 0.0

        return self

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == Environment.PRODUCTION

    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.ENVIRONMENT == Environment.TESTING

    def get_partition_hash_key(self, table_name: str, partition_key: str) -> str:
        """Get the Redis hash key holding one partition of a table."""
        return f"{self.REDIS_KEY_PREFIX}:{table_name}:{partition_key}"


# Global settings instance with caching
_settings: Optional[Settings] = None


@lru_cache()
def get_settings() -> Settings:
    """
    Get library settings (cached singleton).

    Returns:
        Settings: Configured settings instance

    Note:
        Settings are cached using functools.lru_cache to avoid
        re-parsing environment variables on every call.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """
    Force reload of library settings.

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = None
    get_settings.cache_clear()
    return get_settings()
