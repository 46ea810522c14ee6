"""ndjson-cache - A key-value cache of JSON records stored in S3.

This package provides:
- ObjectCache: store, retrieve and flush record arrays as NDJSON objects
- CacheSettings: environment-driven defaults for bucket, region and logging
- An ``ndjson-cache`` command line for ad-hoc cache operations
"""

__version__ = "0.1.0"

from .cache import ObjectCache
from .config import CacheSettings, Verbosity
from .errors import CacheError, ConfigurationError, ParseError, SerializationError

__all__ = [
    "ObjectCache",
    "CacheSettings",
    "Verbosity",
    "CacheError",
    "ConfigurationError",
    "ParseError",
    "SerializationError",
]
