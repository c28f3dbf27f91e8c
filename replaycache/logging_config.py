"""
Structured logging configuration for the replay cache.

Components never log through a module-level function; they receive a logger
(a LoggerAdapter carrying the partition key) and fall back to null_logger()
when none is injected.

Environment Variables:
    REPLAYCACHE_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR) - default: INFO
    REPLAYCACHE_LOG_FORMAT: Log format (json, text) - default: json

Usage:
    from replaycache.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__, partition="2024-01-01")
    logger.info("pre-loading data chunk 1/3")
"""

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

LOGGER_NAME = "replaycache"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure root logger with structured logging.

    Reads configuration from environment variables unless given explicitly:
    - REPLAYCACHE_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    - REPLAYCACHE_LOG_FORMAT: json, text (default: json)
    """
    log_level = (level or os.getenv("REPLAYCACHE_LOG_LEVEL", "INFO")).upper()
    fmt = (log_format or os.getenv("REPLAYCACHE_LOG_FORMAT", "json")).lower()
    resolved = _LEVELS.get(log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved)

    if fmt == "json":
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s %(partition)s",
            rename_fields={
                "asctime": "timestamp",
                "name": "logger",
                "levelname": "level",
            },
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s [partition=%(partition)s]",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    handler.addFilter(PartitionFilter())
    root_logger.addHandler(handler)

    # Silence noisy libraries
    logging.getLogger("redis").setLevel(logging.WARNING)


def get_logger(name: str = LOGGER_NAME, partition: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Get a logger carrying the partition key being processed.

    Args:
        name: Logger name (typically __name__)
        partition: Partition key for correlating logs

    Returns:
        LoggerAdapter with partition in extra fields
    """
    logger = logging.getLogger(name)
    return logging.LoggerAdapter(logger, {"partition": partition or "N/A"})


def with_partition(logger: logging.LoggerAdapter, partition: str) -> logging.LoggerAdapter:
    """Derive an adapter for the same logger bound to another partition."""
    if isinstance(logger, _NullAdapter):
        return logger
    return logging.LoggerAdapter(logger.logger, {**(logger.extra or {}), "partition": partition})


class _NullAdapter(logging.LoggerAdapter):
    def isEnabledFor(self, level: int) -> bool:
        return False

    def log(self, level, msg, *args, **kwargs) -> None:
        return None


_NULL_LOGGER = logging.getLogger(f"{LOGGER_NAME}.null")
_NULL_LOGGER.addHandler(logging.NullHandler())
_NULL_LOGGER.propagate = False


def null_logger() -> logging.LoggerAdapter:
    """Logger that discards everything (used when no logger is injected)."""
    return _NullAdapter(_NULL_LOGGER, {"partition": "N/A"})


class PartitionFilter(logging.Filter):
    """
    Logging filter that adds partition to all log records.

    Ensures all records have a partition field, even if not set via LoggerAdapter.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "partition"):
            record.partition = "N/A"  # type: ignore
        return True
