"""
Replay runner: rebuild an aggregated view from stored partition logs.

Raw records are read partition by partition in key order and cut into
chunks bounded by record count and byte size. Chunk boundaries ignore
partition boundaries: they only control throughput and memoization.
"""

import json
import logging
import threading
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.canonical import dumps_record, loads_record
from ..core.errors import ReplayCancelled, ReplayWarning
from ..core.ports import QueryEngine
from ..core.records import ChunkDescriptor
from ..core.reducer import MergeReducer
from ..log.store import LogStore
from ..logging_config import null_logger, with_partition
from ..memo.chunk_cache import ChunkCache
from ..metrics import track_chunk, track_replay_duration


@dataclass(frozen=True)
class ReplayResult:
    """
    Result of a replay pass.

    Fields:
        records: Merged group values, or flat chunk results in encounter order
        chunks: Number of chunks flushed
        cache_hits: Chunks served from the memo
        skipped: Chunks dropped because of an unexpected transform result
        raw_records: Raw log entries read
    """
    records: List[Any]
    chunks: int = 0
    cache_hits: int = 0
    skipped: int = 0
    raw_records: int = 0


@dataclass
class ChunkBuffer:
    """Raw payloads accumulated for the next chunk."""

    lines: List[bytes] = field(default_factory=list)
    byte_count: int = 0

    def add(self, payload: bytes) -> None:
        self.lines.append(payload)
        self.byte_count += len(payload)

    def __len__(self) -> int:
        return len(self.lines)


def parse_timestamp(value: Any) -> Any:
    """
    Convert a stored timestamp to datetime.

    Strings are read as ISO-8601, numbers as epoch milliseconds. Values that
    cannot be converted are returned unchanged.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return value
    return value


class ReplayEngine:
    """
    Chunked replay of partition logs through the query engine.

    Usage:
        engine = ReplayEngine(store, chunk_cache, query_engine)
        result = engine.replay(keys, pipeline, chunk_bytes_limit=1 << 24,
                               chunk_record_limit=10000, merge_fields=["count"])
    """

    def __init__(
        self,
        store: LogStore,
        chunk_cache: ChunkCache,
        query_engine: QueryEngine,
        ttl: Optional[int] = None,
        timestamp_field: Optional[str] = "timestamp",
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        """
        Initialize replay engine.

        Args:
            store: Log store holding the raw partitions
            chunk_cache: Memo of chunk results
            query_engine: Transform applied to each chunk
            ttl: Memo TTL passed on put (None = chunk cache default)
            timestamp_field: Field converted to datetime before transform (None = off)
            logger: Injected logger (default: null logger)
        """
        self.store = store
        self.chunk_cache = chunk_cache
        self.query_engine = query_engine
        self.ttl = ttl
        self.timestamp_field = timestamp_field
        self.logger = logger or null_logger()

    def replay(
        self,
        keys: Sequence[str],
        transform_pipeline: Any,
        chunk_bytes_limit: int,
        chunk_record_limit: int,
        merge_fields: Sequence[str] = (),
        ignore_fields: Sequence[str] = (),
        cancel: Optional[threading.Event] = None,
    ) -> ReplayResult:
        """
        Replay partitions in order and combine the chunk results.

        Args:
            keys: Partition keys, in replay order
            transform_pipeline: Opaque pipeline handed to the query engine
            chunk_bytes_limit: Flush once the buffered payload bytes reach this
            chunk_record_limit: Flush once this many records are buffered
            merge_fields: Fields combined across records sharing a group key
            ignore_fields: Fields left out of the group key
            cancel: Event checked between records; set it to abort the pass

        Returns:
            ReplayResult with the combined records and chunk counters

        Raises:
            ReplayCancelled: If cancel is set during the pass
        """
        if chunk_record_limit < 1 or chunk_bytes_limit < 1:
            raise ValueError("chunk limits must be positive")

        with track_replay_duration():
            return self._replay(
                keys,
                transform_pipeline,
                chunk_bytes_limit,
                chunk_record_limit,
                MergeReducer(merge_fields=merge_fields, ignore_fields=ignore_fields),
                cancel,
            )

    def _replay(
        self,
        keys: Sequence[str],
        transform_pipeline: Any,
        chunk_bytes_limit: int,
        chunk_record_limit: int,
        reducer: MergeReducer,
        cancel: Optional[threading.Event],
    ) -> ReplayResult:
        # purge stale memos before any lookup of this pass
        self.chunk_cache.sweep_expired()

        stats = {"chunks": 0, "cache_hits": 0, "skipped": 0, "raw_records": 0}
        buffer = ChunkBuffer()

        for key in keys:
            log = with_partition(self.logger, key)
            log.debug("replaying partition %s", key)
            for entry in self.store.read_range(key):
                if cancel is not None and cancel.is_set():
                    raise ReplayCancelled(f"replay cancelled in partition {key}")
                buffer.add(entry.payload)
                stats["raw_records"] += 1
                if len(buffer) >= chunk_record_limit or buffer.byte_count >= chunk_bytes_limit:
                    self._flush(buffer, transform_pipeline, reducer, stats, cancel)
                    buffer = ChunkBuffer()

        if len(buffer):
            self._flush(buffer, transform_pipeline, reducer, stats, cancel)

        self.logger.debug("%d combined entries processed...", len(reducer))
        return ReplayResult(records=reducer.result(), **stats)

    def _flush(
        self,
        buffer: ChunkBuffer,
        pipeline: Any,
        reducer: MergeReducer,
        stats: Dict[str, int],
        cancel: Optional[threading.Event],
    ) -> None:
        stats["chunks"] += 1
        descriptor = ChunkDescriptor(
            batch_index=stats["chunks"],
            record_count=len(buffer),
            byte_count=buffer.byte_count,
            transform_pipeline=pipeline,
        )
        result = self.load_chunk(buffer.lines, descriptor, cancel)
        if result is None:
            stats["skipped"] += 1
            track_chunk("skipped")
            return
        hit, records = result
        if hit:
            stats["cache_hits"] += 1
        track_chunk("hit" if hit else "miss")
        reducer.accept(records)

    def load_chunk(
        self,
        lines: Sequence[bytes],
        descriptor: ChunkDescriptor,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[Tuple[bool, List[Any]]]:
        """
        Return (cache_hit, records) for a chunk, or None when it is skipped.

        On a memo hit the stored result is returned without parsing the raw
        lines. On a miss the lines are parsed, transformed and memoized.
        """
        key = descriptor.cache_key()
        cached = self.chunk_cache.get(key)
        if cached:
            try:
                memo = loads_record(cached)
            except ValueError:
                memo = None
            if isinstance(memo, list):
                self.logger.debug(
                    "loading batch %d :: %d bytes processed (%d records)...",
                    descriptor.batch_index,
                    descriptor.byte_count,
                    descriptor.record_count,
                )
                return True, memo

        if cancel is not None and cancel.is_set():
            raise ReplayCancelled(f"replay cancelled before batch {descriptor.batch_index}")

        self.logger.debug(
            "processing batch %d :: %d bytes processed (%d records)...",
            descriptor.batch_index,
            descriptor.byte_count,
            descriptor.record_count,
        )
        records = self.parse_records(lines)
        try:
            result = self.query_engine.apply(records, descriptor.transform_pipeline)
        except Exception as ex:
            self.logger.error("transform failed for batch %d: %s", descriptor.batch_index, ex)
            return None

        if not isinstance(result, list):
            message = f"unexpected result processing batch {descriptor.batch_index}"
            self.logger.warning(message)
            warnings.warn(message, ReplayWarning, stacklevel=2)
            return None

        data = dumps_record(result)
        self.chunk_cache.put(key, data, self.ttl)
        # callers see the memoized form on hits, so hand out the same form now
        return False, loads_record(data)

    def parse_records(self, lines: Sequence[bytes]) -> List[Dict[str, Any]]:
        """
        Decode raw lines, dropping empty or malformed records.
        """
        records = []
        for line in lines:
            try:
                data = json.loads(line)
            except ValueError:
                continue
            if not isinstance(data, dict) or not data:
                continue
            field_name = self.timestamp_field
            if field_name and data.get(field_name):
                data[field_name] = parse_timestamp(data[field_name])
            records.append(data)
        return records
