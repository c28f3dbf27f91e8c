"""
Core primitives of the replay cache.

This module provides:
- Canonical: deterministic serialization and content hashing (cache keys)
- Records: Partition, LogEntry, ChunkDescriptor
- Reducer: field-level merge of chunk results
- Clock: time source for TTL eviction
- Ports: DataSource / QueryEngine interfaces
"""

from .canonical import canonicalize, canonical_json_bytes, canonical_json_str, content_hash
from .clock import SystemClock, ManualClock
from .records import Partition, LogEntry, ChunkDescriptor
from .reducer import MergeReducer, Reduction, group_key
from .ports import DataSource, QueryEngine, Splitter, as_source, as_query_engine
from .errors import (
    ReplayCacheError,
    ConfigurationError,
    SourceError,
    WriteError,
    ConnectionFailed,
    GenerationError,
    ReplayCancelled,
    ReplayWarning,
)

__all__ = [
    "canonicalize",
    "canonical_json_bytes",
    "canonical_json_str",
    "content_hash",
    "SystemClock",
    "ManualClock",
    "Partition",
    "LogEntry",
    "ChunkDescriptor",
    "MergeReducer",
    "Reduction",
    "group_key",
    "DataSource",
    "QueryEngine",
    "Splitter",
    "as_source",
    "as_query_engine",
    "ReplayCacheError",
    "ConfigurationError",
    "SourceError",
    "WriteError",
    "ConnectionFailed",
    "GenerationError",
    "ReplayCancelled",
    "ReplayWarning",
]
