"""
Partition log storage.

This module provides:
- LogStore: Abstract interface for per-partition append-only logs
- FileLogStore: One newline-delimited file per partition, tombstone removal
- StreamLogStore: One Redis stream per partition, native expiry removal
- LazyConnection: Shared lazily established backend connection
"""

from .store import LogStore
from .file_store import FileLogStore
from .stream_store import StreamLogStore
from .connection import LazyConnection, redis_factory

__all__ = [
    "LogStore",
    "FileLogStore",
    "StreamLogStore",
    "LazyConnection",
    "redis_factory",
]
