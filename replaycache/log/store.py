"""
LogStore abstract interface.

Defines the contract for per-partition raw record logs.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Iterator, List, Optional, Union

from ..core.records import LogEntry, SequenceId

Record = Union[bytes, str]


def to_bytes(record: Record) -> bytes:
    if isinstance(record, bytes):
        return record
    if isinstance(record, str):
        return record.encode("utf-8")
    raise TypeError(f"log records must be bytes or str, got {type(record).__name__}")


class LogStore(ABC):
    """
    Abstract partition log storage.

    All implementations must guarantee:
    - Append-only (entries never mutated; deleted only on eviction)
    - Ordered reads within a partition
    - Re-invocable reads from a cursor (exclusive)
    """

    @abstractmethod
    def exists(self, partition_key: str) -> bool:
        """Return True when the partition holds at least one entry."""
        ...

    @abstractmethod
    def append(self, partition_key: str, record: Record) -> LogEntry:
        """
        Append one raw record to a partition log.

        Returns:
            LogEntry with the assigned sequence id

        Raises:
            WriteError: If the backend fails
        """
        ...

    def append_many(self, partition_key: str, records: Iterable[Record]) -> int:
        """
        Append records in order, committing each as it arrives.

        Exceptions raised by the records iterable propagate unchanged; entries
        appended before them stay committed.

        Returns:
            Number of records appended
        """
        count = 0
        for record in records:
            self.append(partition_key, record)
            count += 1
        return count

    @abstractmethod
    def read_range(
        self, partition_key: str, from_cursor: Optional[SequenceId] = None
    ) -> Iterator[LogEntry]:
        """
        Read entries of a partition.

        Args:
            partition_key: Partition to read
            from_cursor: Last sequence id already seen (None = from the start)

        Yields:
            LogEntry in log order, strictly after from_cursor
        """
        ...

    @abstractmethod
    def mark_for_removal(self, partition_key: str) -> None:
        """Schedule a partition for deletion on a later sweep or by expiry."""
        ...

    @abstractmethod
    def sweep_removals(self) -> int:
        """
        Purge partitions marked for removal whose data has aged out.

        Returns:
            Number of partitions purged
        """
        ...

    @abstractmethod
    def partitions(self) -> List[str]:
        """Sorted keys of the partitions currently stored."""
        ...

    @abstractmethod
    def count(self, partition_key: str) -> int:
        """Number of entries in a partition (0 if missing)."""
        ...

    @abstractmethod
    def clear(self, partition_key: str) -> None:
        """Drop a partition and its removal mark immediately."""
        ...

    @abstractmethod
    def is_marked_for_removal(self, partition_key: str) -> bool:
        ...

    def close(self) -> None:
        """
        Release backend resources.

        Implementations may override. Default does nothing.
        """
        return None
