"""
Data model shared by generation and replay.

Partitions come from the caller's splitter, log entries from the log store,
chunk descriptors only exist to derive memo keys.
"""

from dataclasses import dataclass
from typing import Any, Union

from .canonical import content_hash
from .errors import ConfigurationError

SequenceId = Union[int, str]


def validate_key(key: str) -> str:
    """
    Check that a partition key can name a file and a stream.

    Raises:
        ConfigurationError: If key is empty, contains a path separator or
            newline, or ends with a reserved suffix
    """
    if not isinstance(key, str) or not key:
        raise ConfigurationError(f"partition key must be a non-empty string, got {key!r}")
    if "/" in key or "\\" in key or "\n" in key or key in (".", ".."):
        raise ConfigurationError(f"invalid partition key: {key!r}")
    # would collide with tombstone and memo file names
    if key.endswith((".remove", ".layer")):
        raise ConfigurationError(f"reserved partition key suffix: {key!r}")
    return key


@dataclass(frozen=True)
class Partition:
    """
    Immutable slice of the overall query.

    Fields:
        key: Stable identity of the partition (log store key)
        source_query: Opaque query handed to the data source
        cacheable: Keep the raw log across cycles; otherwise it is marked for removal
        kind: Label used in progress logs (e.g. "data", "layer")
    """
    key: str
    source_query: Any = None
    cacheable: bool = False
    kind: str = "data"

    def __post_init__(self) -> None:
        validate_key(self.key)


@dataclass(frozen=True)
class LogEntry:
    """
    One raw record in a partition log.

    Fields:
        sequence_id: Position in the log (line offset or stream id)
        payload: Serialized record bytes
    """
    sequence_id: SequenceId
    payload: bytes

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass(frozen=True)
class ChunkDescriptor:
    """
    Position/size signature of a replay chunk.

    Only used to derive the memo key of the chunk result.
    """
    batch_index: int
    record_count: int
    byte_count: int
    transform_pipeline: Any = None

    def cache_key(self) -> str:
        return content_hash(
            {
                "query": self.transform_pipeline,
                "batch_index": self.batch_index,
                "byte_count": self.byte_count,
            }
        )
