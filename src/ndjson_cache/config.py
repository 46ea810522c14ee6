"""Cache configuration using pydantic-settings.

Environment variables are read once, when a ``CacheSettings`` is built.
ObjectCache receives the resulting object and never touches ``os.environ``.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REGION = "eu-west-1"
DEFAULT_LOG_PREFIX = "[S3 cache]"


class Verbosity(str, Enum):
    """Log verbosity of a cache instance, most to least verbose."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    SILENT = "SILENT"


class CacheSettings(BaseSettings):
    """Cache configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Storage
    NDJSON_CACHE_BUCKET: Optional[str] = None
    NDJSON_CACHE_ENDPOINT_URL: Optional[str] = None
    AWS_REGION: str = DEFAULT_REGION

    # Logging
    NDJSON_CACHE_VERBOSITY: Verbosity = Verbosity.ERROR
    NDJSON_CACHE_LOG_PREFIX: str = DEFAULT_LOG_PREFIX

    @field_validator("NDJSON_CACHE_BUCKET", "NDJSON_CACHE_ENDPOINT_URL", mode="before")
    @classmethod
    def _empty_as_unset(cls, value: Any) -> Any:
        return value or None

    @field_validator("AWS_REGION", mode="before")
    @classmethod
    def _default_region(cls, value: Any) -> Any:
        return value or DEFAULT_REGION

    @field_validator("NDJSON_CACHE_LOG_PREFIX", mode="before")
    @classmethod
    def _default_log_prefix(cls, value: Any) -> Any:
        return value or DEFAULT_LOG_PREFIX

    @field_validator("NDJSON_CACHE_VERBOSITY", mode="before")
    @classmethod
    def _known_verbosity(cls, value: Any) -> Verbosity:
        """Fall back to ERROR for anything but an exact level name."""
        if isinstance(value, Verbosity):
            return value
        if isinstance(value, str) and value in Verbosity.__members__:
            return Verbosity(value)
        return Verbosity.ERROR

    def client_defaults(self) -> dict:
        """Default keyword arguments for the S3 client.

        Returns:
            Dict with ``region_name`` and, when configured, ``endpoint_url``
        """
        defaults = {"region_name": self.AWS_REGION}
        if self.NDJSON_CACHE_ENDPOINT_URL:
            defaults["endpoint_url"] = self.NDJSON_CACHE_ENDPOINT_URL
        return defaults
