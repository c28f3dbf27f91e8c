"""
Generation runner: drain data source cursors into the log store.

Each partition is generated at most once unless regeneration is forced;
non-cacheable partitions are marked for removal once drained.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from ..core.canonical import dumps_record
from ..core.errors import GenerationError, ReplayCacheError, SourceError
from ..core.ports import DataSource
from ..core.records import Partition
from ..log.store import LogStore
from ..logging_config import null_logger, with_partition
from ..metrics import track_partition

GENERATED = "generated"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass(frozen=True)
class GenerationResult:
    """
    Result of a generation pass.

    Fields:
        keys: Every partition key, in input order, whatever happened to it
        generated: Keys drained from the source
        skipped: Keys already cached (no source read)
        errors: key -> SourceError / WriteError for partitions that failed
        records: Number of records appended
    """
    keys: List[str]
    generated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: Dict[str, Exception] = field(default_factory=dict)
    records: int = 0


def encode_record(record: Any) -> bytes:
    """Serialize a source record for the log store."""
    if isinstance(record, bytes):
        return record
    if isinstance(record, str):
        return record.encode("utf-8")
    return dumps_record(record)


class GenerationEngine:
    """
    Populate the log store from the data source, one partition at a time.

    Usage:
        engine = GenerationEngine(store, source)
        result = engine.generate(partitions)
        replay_engine.replay(result.keys, pipeline, ...)
    """

    def __init__(
        self,
        store: LogStore,
        source: DataSource,
        force_regenerate: bool = False,
        source_timeout: Optional[float] = None,
        workers: int = 1,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        """
        Initialize generation engine.

        Args:
            store: Log store receiving raw records
            source: Data source opened per partition
            force_regenerate: Re-drain partitions that are already stored
            source_timeout: Seconds a partition drain may take, checked between
                records (None = unbounded)
            workers: Partitions drained concurrently (1 = sequential)
            logger: Injected logger (default: null logger)
        """
        self.store = store
        self.source = source
        self.force_regenerate = force_regenerate
        self.source_timeout = source_timeout
        self.workers = max(1, int(workers))
        self.logger = logger or null_logger()

    def generate(
        self, partitions: Sequence[Partition], raise_errors: bool = False
    ) -> GenerationResult:
        """
        Generate every partition in order.

        A failing partition keeps the entries appended before the failure and
        does not stop the remaining partitions.

        Args:
            partitions: Ordered partitions from the splitter
            raise_errors: Raise GenerationError after the pass if any failed

        Returns:
            GenerationResult whose keys list every partition

        Raises:
            GenerationError: If raise_errors and at least one partition failed
        """
        total = len(partitions)
        jobs = [(step, total, p) for step, p in enumerate(partitions, start=1)]

        if self.workers > 1 and total > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                outcomes = list(pool.map(self._run, jobs))
        else:
            outcomes = [self._run(job) for job in jobs]

        generated: List[str] = []
        skipped: List[str] = []
        errors: Dict[str, Exception] = {}
        records = 0
        for partition, (status, count, error) in zip(partitions, outcomes):
            if status == GENERATED:
                generated.append(partition.key)
            elif status == SKIPPED:
                skipped.append(partition.key)
            else:
                errors[partition.key] = error
            records += count

        result = GenerationResult(
            keys=[p.key for p in partitions],
            generated=generated,
            skipped=skipped,
            errors=errors,
            records=records,
        )

        if raise_errors and result.errors:
            raise GenerationError(result.errors)
        return result

    def _run(self, job: Tuple[int, int, Partition]) -> Tuple[str, int, Optional[Exception]]:
        step, total, partition = job
        log = with_partition(self.logger, partition.key)
        try:
            outcome = self._generate_one(partition, step, total, log)
        except ReplayCacheError as ex:
            log.error("partition %s failed: %s", partition.key, ex)
            track_partition(FAILED)
            return FAILED, 0, ex
        track_partition(outcome[0], outcome[1])
        return outcome

    def _generate_one(
        self, partition: Partition, step: int, total: int, log: logging.LoggerAdapter
    ) -> Tuple[str, int, Optional[Exception]]:
        key = partition.key
        if not self.force_regenerate and self.store.exists(key):
            log.debug("pre-loading %s chunk %d/%d...", partition.kind, step, total)
            return SKIPPED, 0, None

        if self.force_regenerate:
            self.store.clear(key)

        log.debug("pre-processing %s chunk %d/%d...", partition.kind, step, total)
        try:
            count = self.store.append_many(key, self._drain(partition))
        finally:
            # partial logs of a failed drain are swept like complete ones
            if not partition.cacheable:
                self.store.mark_for_removal(key)
        log.debug("partition %s: %d record(s) stored", key, count)
        return GENERATED, count, None

    def _drain(self, partition: Partition) -> Iterator[bytes]:
        """
        Yield encoded records from the partition's cursor.

        Raises:
            SourceError: If the cursor fails or the drain times out
        """
        started = time.monotonic()
        try:
            cursor = iter(self.source.open(partition.source_query))
        except Exception as ex:
            raise SourceError(
                f"cannot open source for partition {partition.key}: {ex}", partition.key
            ) from ex

        try:
            while True:
                try:
                    record = next(cursor)
                except StopIteration:
                    return
                except Exception as ex:
                    raise SourceError(
                        f"aggregation stream error in partition {partition.key}: {ex}",
                        partition.key,
                    ) from ex
                if self.source_timeout is not None and (
                    time.monotonic() - started > self.source_timeout
                ):
                    raise SourceError(
                        f"partition {partition.key} exceeded {self.source_timeout}s",
                        partition.key,
                    )
                yield encode_record(record)
        finally:
            close = getattr(cursor, "close", None)
            if close is not None:
                close()
