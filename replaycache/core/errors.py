"""
Exception types for the partition replay cache.
"""

from typing import Dict, Optional


class ReplayCacheError(Exception):
    """Base class for all replay cache failures."""
    pass


class ConfigurationError(ReplayCacheError):
    """Raised when the cache is misconfigured (no splitter, no partitions, bad option)."""
    pass


class SourceError(ReplayCacheError):
    """
    Raised when the data source cursor fails while a partition is generated.

    Entries appended before the failure stay in the log store.
    """

    def __init__(self, message: str, partition_key: Optional[str] = None) -> None:
        super().__init__(message)
        self.partition_key = partition_key


class WriteError(ReplayCacheError):
    """Raised when the backing store fails to persist or read data."""
    pass


class ConnectionFailed(WriteError):
    """Raised when the shared backend connection cannot be established."""
    pass


class GenerationError(ReplayCacheError):
    """
    Raised after generation when one or more partitions failed.

    Fields:
        errors: partition key -> exception raised for that partition
    """

    def __init__(self, errors: Dict[str, Exception]) -> None:
        keys = ", ".join(errors)
        super().__init__(f"{len(errors)} partition(s) failed: {keys}")
        self.errors = errors


class ReplayCancelled(ReplayCacheError):
    """Raised when a replay pass is cancelled by its caller."""
    pass


class ReplayWarning(UserWarning):
    """Unexpected transform result; the chunk is skipped and replay continues."""
    pass
