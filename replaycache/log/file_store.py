"""
File-based partition log store.

One append-only file per partition ("{prefix}_{key}.tmp", one record per
line) under a root directory. A zero-byte sibling "{prefix}_{key}.remove.tmp"
marks the partition for removal.
"""

import logging
import os
from typing import Iterable, Iterator, List, Optional, Tuple

from ..core.clock import SystemClock, is_expired
from ..core.errors import WriteError
from ..core.records import LogEntry, SequenceId, validate_key
from ..logging_config import null_logger
from .store import LogStore, Record, to_bytes

try:
    import fcntl
except ImportError:  # Windows or unsupported platform
    fcntl = None

LOG_SUFFIX = ".tmp"
TOMBSTONE_SUFFIX = ".remove.tmp"
MEMO_SUFFIX = ".layer.tmp"


class FileLogStore(LogStore):
    """
    File-based append-only partition log store.

    Storage format: newline-delimited records, one file per partition.
    Sequence ids are 0-based line offsets.

    Guarantees:
    - Append-only (no mutations)
    - Fsync after each append batch (durability)
    - Removal deferred until the raw file's age exceeds the TTL
    """

    def __init__(
        self,
        root: str,
        key_prefix: str = "CG",
        ttl: float = 3600,
        clock=None,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        """
        Initialize file log store.

        Args:
            root: Directory holding partition files
            key_prefix: Namespace prefix of every file name
            ttl: Seconds a tombstoned partition is kept after its last write
            clock: Time source with now() (default: system clock)
            logger: Injected logger (default: null logger)
        """
        self.root = root
        self.key_prefix = key_prefix
        self.ttl = ttl
        self.clock = clock or SystemClock()
        self.logger = logger or null_logger()

        try:
            os.makedirs(root, exist_ok=True)
        except OSError as ex:
            raise WriteError(f"cannot create store directory {root}: {ex}") from ex

    def _base(self, partition_key: str) -> str:
        return os.path.join(self.root, f"{self.key_prefix}_{validate_key(partition_key)}")

    def log_path(self, partition_key: str) -> str:
        return self._base(partition_key) + LOG_SUFFIX

    def tombstone_path(self, partition_key: str) -> str:
        return self._base(partition_key) + TOMBSTONE_SUFFIX

    def exists(self, partition_key: str) -> bool:
        path = self.log_path(partition_key)
        try:
            return os.path.getsize(path) > 0
        except OSError:
            return False

    def append(self, partition_key: str, record: Record) -> LogEntry:
        data = to_bytes(record)
        offset, _ = self._append(partition_key, [data], count_lines=True)
        return LogEntry(sequence_id=offset, payload=data)

    def append_many(self, partition_key: str, records: Iterable[Record]) -> int:
        """
        Append records under an exclusive file lock.

        Each record is written as soon as the iterable produces it, so a
        failing iterable leaves the records before it in the file.

        Raises:
            WriteError: If the file cannot be written or a record spans lines
        """
        _, count = self._append(partition_key, records)
        return count

    def _append(
        self, partition_key: str, records: Iterable[Record], count_lines: bool = False
    ) -> Tuple[int, int]:
        """Write records under the lock; returns (line offset of the first, count)."""
        path = self.log_path(partition_key)
        offset = -1
        count = 0
        try:
            with open(path, "a+b") as f:
                if fcntl:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    if count_lines:
                        f.seek(0)
                        offset = sum(1 for _ in f)
                    for record in records:
                        data = to_bytes(record)
                        if b"\n" in data:
                            raise WriteError(
                                f"record for partition {partition_key} contains a newline"
                            )
                        f.write(data + b"\n")
                        count += 1
                finally:
                    f.flush()
                    os.fsync(f.fileno())
                    if fcntl:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as ex:
            self.logger.error("append to %s failed: %s", path, ex)
            raise WriteError(str(ex)) from ex
        return offset, count

    def read_range(
        self, partition_key: str, from_cursor: Optional[SequenceId] = None
    ) -> Iterator[LogEntry]:
        """
        Read entries of a partition.

        Args:
            partition_key: Partition to read
            from_cursor: Last line offset already seen (None = from the start)

        Yields:
            LogEntry for every non-blank line after from_cursor
        """
        path = self.log_path(partition_key)
        start = -1 if from_cursor is None else int(from_cursor)
        try:
            f = open(path, "rb")
        except FileNotFoundError:
            return
        except OSError as ex:
            raise WriteError(str(ex)) from ex

        with f:
            for idx, line in enumerate(f):
                if idx <= start:
                    continue
                payload = line.rstrip(b"\r\n")
                if not payload.strip():
                    continue
                yield LogEntry(sequence_id=idx, payload=payload)

    def mark_for_removal(self, partition_key: str) -> None:
        path = self.tombstone_path(partition_key)
        try:
            with open(path, "wb"):
                pass
        except OSError as ex:
            raise WriteError(str(ex)) from ex

    def is_marked_for_removal(self, partition_key: str) -> bool:
        return os.path.exists(self.tombstone_path(partition_key))

    def sweep_removals(self) -> int:
        """
        Delete tombstoned partitions whose raw file is older than the TTL.

        Younger partitions keep both files until a later sweep. A tombstone
        without its raw file is dropped.

        Returns:
            Number of partitions purged
        """
        now = self.clock.now()
        purged = 0
        prefix = f"{self.key_prefix}_"
        for name in sorted(os.listdir(self.root)):
            if not (name.startswith(prefix) and name.endswith(TOMBSTONE_SUFFIX)):
                continue
            tombstone = os.path.join(self.root, name)
            raw = tombstone[: -len(TOMBSTONE_SUFFIX)] + LOG_SUFFIX
            try:
                if not os.path.exists(raw):
                    os.remove(tombstone)
                    continue
                if not is_expired(os.path.getmtime(raw), self.ttl, now):
                    continue
                os.remove(raw)
                os.remove(tombstone)
                purged += 1
            except OSError as ex:
                self.logger.error("cannot remove %s: %s", name, ex)
        self.logger.info("%d total cache(s) cleared...", purged)
        return purged

    def partitions(self) -> List[str]:
        prefix = f"{self.key_prefix}_"
        keys = []
        for name in os.listdir(self.root):
            if not (name.startswith(prefix) and name.endswith(LOG_SUFFIX)):
                continue
            if name.endswith(TOMBSTONE_SUFFIX) or name.endswith(MEMO_SUFFIX):
                continue
            keys.append(name[len(prefix) : -len(LOG_SUFFIX)])
        return sorted(keys)

    def count(self, partition_key: str) -> int:
        return sum(1 for _ in self.read_range(partition_key))

    def clear(self, partition_key: str) -> None:
        for path in (self.log_path(partition_key), self.tombstone_path(partition_key)):
            try:
                os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as ex:
                raise WriteError(str(ex)) from ex
