"""Logging configuration for ndjson-cache.

Every cache instance logs through its own adapter, which prepends the
configured prefix and applies the instance's verbosity threshold. The
package logger itself is left open at DEBUG so that the threshold is the
only filter. Handlers are the application's business; the CLI attaches a
console handler through ``setup_logging``.
"""

import logging
import sys
from typing import Any, MutableMapping, Optional, TextIO, Tuple

from .config import DEFAULT_LOG_PREFIX, Verbosity

PACKAGE_LOGGER = "ndjson_cache"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s"

# SILENT sits above CRITICAL so nothing passes
VERBOSITY_LEVELS = {
    Verbosity.DEBUG: logging.DEBUG,
    Verbosity.INFO: logging.INFO,
    Verbosity.WARNING: logging.WARNING,
    Verbosity.ERROR: logging.ERROR,
    Verbosity.SILENT: logging.CRITICAL + 10,
}

_HANDLER_NAME = "ndjson_cache.console"


class CacheLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter with a message prefix and a per-instance threshold."""

    def __init__(self, logger: logging.Logger, verbosity: Verbosity, prefix: str):
        super().__init__(logger, {"prefix": prefix})
        self.verbosity = verbosity
        self.threshold = VERBOSITY_LEVELS[verbosity]
        self.prefix = prefix

    def isEnabledFor(self, level: int) -> bool:
        return level >= self.threshold and self.logger.isEnabledFor(level)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"{self.prefix} {msg}", kwargs


def setup_logging(stream: Optional[TextIO] = None) -> logging.Logger:
    """Attach a console handler to the package logger.

    Calling this more than once keeps a single handler.

    Args:
        stream: Stream to write to (default: stderr)

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG)

    if any(handler.get_name() == _HANDLER_NAME for handler in logger.handlers):
        return logger

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)

    return logger


def get_logger(
    name: str,
    verbosity: Verbosity = Verbosity.ERROR,
    prefix: str = DEFAULT_LOG_PREFIX,
) -> CacheLoggerAdapter:
    """Get a level-gated logger for a specific module.

    Args:
        name: Module name (usually __name__)
        verbosity: Lowest verbosity that is emitted
        prefix: Text prepended to every message

    Returns:
        Logger adapter bound to ``verbosity`` and ``prefix``
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if package_logger.level == logging.NOTSET:
        package_logger.setLevel(logging.DEBUG)

    if not name.startswith(PACKAGE_LOGGER):
        name = f"{PACKAGE_LOGGER}.{name}"
    return CacheLoggerAdapter(logging.getLogger(name), verbosity, prefix)
