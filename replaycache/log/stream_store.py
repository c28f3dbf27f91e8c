"""
Redis-stream partition log store.

Each partition is an append-only stream "{prefix}:{key}" whose entries carry
the raw record in a "json" field. Removal is a native EXPIRE on the stream:
streams are shared and may still be read by other consumers until then.
"""

import logging
from typing import Any, Iterable, Iterator, List, Optional

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from ..core.errors import WriteError
from ..core.records import LogEntry, SequenceId, validate_key
from ..logging_config import null_logger
from .connection import LazyConnection
from .store import LogStore, Record, to_bytes

PAYLOAD_FIELD = "json"
APPEND_BATCH = 500


def _text(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


def _payload(fields: Any) -> bytes:
    value = fields.get(PAYLOAD_FIELD.encode("utf-8"))
    if value is None:
        value = fields.get(PAYLOAD_FIELD, b"")
    return to_bytes(value)


def next_stream_id(stream_id: str) -> str:
    """Smallest stream id strictly greater than stream_id."""
    ms, _, seq = stream_id.partition("-")
    return f"{ms}-{int(seq or 0) + 1}"


class StreamLogStore(LogStore):
    """
    Redis stream partition log store.

    Storage format: one stream per partition, entries {"json": <record>}
    Sequence ids are stream ids ("<ms>-<n>").

    Reads page through XRANGE batch_read_size entries at a time.
    """

    def __init__(
        self,
        connection: LazyConnection,
        key_prefix: str = "CG",
        ttl: int = 3600,
        batch_read_size: int = 10000,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        """
        Initialize stream log store.

        Args:
            connection: Shared lazy Redis connection
            key_prefix: Namespace prefix of stream keys
            ttl: Expiry (seconds) set on streams marked for removal
            batch_read_size: Entries fetched per XRANGE call
            logger: Injected logger (default: null logger)
        """
        self.connection = connection
        self.key_prefix = key_prefix
        self.ttl = int(ttl)
        self.batch_read_size = batch_read_size
        self.logger = logger or null_logger()

    @property
    def client(self) -> Any:
        return self.connection.get()

    def stream_key(self, partition_key: str) -> str:
        return f"{self.key_prefix}:{validate_key(partition_key)}"

    def _fail(self, action: str, ex: RedisError) -> WriteError:
        if isinstance(ex, RedisConnectionError):
            self.connection.reset()
        self.logger.error("%s failed: %s", action, ex)
        err = WriteError(f"{action} failed: {ex}")
        err.__cause__ = ex
        return err

    def exists(self, partition_key: str) -> bool:
        key = self.stream_key(partition_key)
        try:
            return bool(self.client.xrange(key, "-", "+", count=1))
        except RedisError as ex:
            raise self._fail(f"exists {key}", ex)

    def append(self, partition_key: str, record: Record) -> LogEntry:
        key = self.stream_key(partition_key)
        data = to_bytes(record)
        try:
            entry_id = self.client.xadd(key, {PAYLOAD_FIELD: data})
        except RedisError as ex:
            raise self._fail(f"append to {key}", ex)
        return LogEntry(sequence_id=_text(entry_id), payload=data)

    def append_many(self, partition_key: str, records: Iterable[Record]) -> int:
        """
        Append records with pipelined XADD batches.

        The pending batch is flushed before an exception from records
        propagates, so everything produced so far is committed.
        """
        key = self.stream_key(partition_key)
        client = self.client
        count = 0
        pending = 0
        try:
            pipe = client.pipeline(transaction=False)
            try:
                for record in records:
                    pipe.xadd(key, {PAYLOAD_FIELD: to_bytes(record)})
                    pending += 1
                    count += 1
                    if pending >= APPEND_BATCH:
                        pipe.execute()
                        pending = 0
            finally:
                if pending:
                    pipe.execute()
        except RedisError as ex:
            raise self._fail(f"append to {key}", ex)
        return count

    def read_range(
        self, partition_key: str, from_cursor: Optional[SequenceId] = None
    ) -> Iterator[LogEntry]:
        key = self.stream_key(partition_key)
        start = "-" if from_cursor is None else next_stream_id(str(from_cursor))
        while True:
            try:
                entries = self.client.xrange(key, start, "+", count=self.batch_read_size)
            except RedisError as ex:
                raise self._fail(f"read {key}", ex)
            for entry_id, fields in entries:
                yield LogEntry(sequence_id=_text(entry_id), payload=_payload(fields))
            if len(entries) < self.batch_read_size:
                return
            start = next_stream_id(_text(entries[-1][0]))

    def mark_for_removal(self, partition_key: str) -> None:
        key = self.stream_key(partition_key)
        try:
            self.client.expire(key, self.ttl)
        except RedisError as ex:
            raise self._fail(f"expire {key}", ex)

    def is_marked_for_removal(self, partition_key: str) -> bool:
        key = self.stream_key(partition_key)
        try:
            return self.client.ttl(key) > 0
        except RedisError as ex:
            raise self._fail(f"ttl {key}", ex)

    def sweep_removals(self) -> int:
        """
        Nothing to purge: marked streams expire natively.

        Returns:
            Always 0
        """
        return 0

    def partitions(self) -> List[str]:
        prefix = f"{self.key_prefix}:"
        keys = []
        try:
            client = self.client
            for raw in client.scan_iter(match=f"{prefix}*"):
                name = _text(raw)
                if _text(client.type(raw)) != "stream":
                    continue
                keys.append(name[len(prefix) :])
        except RedisError as ex:
            raise self._fail("scan streams", ex)
        return sorted(keys)

    def count(self, partition_key: str) -> int:
        key = self.stream_key(partition_key)
        try:
            return int(self.client.xlen(key))
        except RedisError as ex:
            raise self._fail(f"xlen {key}", ex)

    def clear(self, partition_key: str) -> None:
        key = self.stream_key(partition_key)
        try:
            self.client.delete(key)
        except RedisError as ex:
            raise self._fail(f"delete {key}", ex)

    def close(self) -> None:
        self.connection.close()
