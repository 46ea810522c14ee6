"""Cache exceptions.

Transport failures are not wrapped: botocore's ``ClientError`` and
``BotoCoreError`` reach the caller as raised by the SDK.
"""

from typing import Optional


class CacheError(Exception):
    """Base exception for cache related errors."""

    pass


class ConfigurationError(CacheError, ValueError):
    """Exception raised when the cache cannot be configured."""

    pass


class SerializationError(CacheError, TypeError):
    """Exception raised when a record cannot be written as JSON."""

    pass


class ParseError(CacheError, ValueError):
    """Exception raised when a cached object contains a malformed line.

    Attributes:
        record_index: Zero-based index of the record that failed to parse
    """

    def __init__(self, message: str, record_index: Optional[int] = None):
        super().__init__(message)
        self.record_index = record_index
