"""
CachePipeline: split, generate, replay and post-process in one object.

Usage:
    pipeline = CachePipeline(CacheConfig.from_env(), source, engine)
    pipeline.set_splitter(split_by_day)
    pipeline.split({"from": "2024-01-01", "to": "2024-01-31"})
    keys = pipeline.generate().keys
    rows = pipeline.aggregate(keys, [{"$group": ...}], merge_fields=["count"])
"""

import logging
import threading
from typing import Any, List, Optional, Sequence, Tuple

from .config import CacheConfig, build_stores
from .core.errors import ConfigurationError
from .core.ports import Splitter, as_query_engine, as_source
from .core.records import Partition
from .generate.runner import GenerationEngine, GenerationResult
from .log.store import LogStore
from .logging_config import LOGGER_NAME, get_logger, null_logger
from .memo.chunk_cache import ChunkCache
from .metrics import init_metrics
from .replay.runner import ReplayEngine, ReplayResult


class CachePipeline:
    """
    Facade over generation and replay for one configured backend.

    The log store and chunk cache are chosen once from the config unless
    injected. Generation and replay share them.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        data_source: Any = None,
        query_engine: Any = None,
        log_store: Optional[LogStore] = None,
        chunk_cache: Optional[ChunkCache] = None,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        """
        Initialize pipeline.

        Args:
            config: Cache configuration (default: from environment)
            data_source: DataSource, or callable query -> records
            query_engine: QueryEngine, or callable (records, pipeline) -> results
            log_store: Override the configured log store
            chunk_cache: Override the configured chunk cache
            logger: Injected logger (default: package logger when verbose,
                otherwise null logger)
        """
        self.config = config or CacheConfig.from_env()
        init_metrics()
        if logger is None:
            logger = get_logger(LOGGER_NAME) if self.config.verbose else null_logger()
        self.logger = logger
        if log_store is None or chunk_cache is None:
            built_store, built_cache = build_stores(self.config, logger=self.logger)
            log_store = log_store or built_store
            chunk_cache = chunk_cache or built_cache
        self.log_store = log_store
        self.chunk_cache = chunk_cache
        self.data_source = as_source(data_source) if data_source is not None else None
        self.query_engine = as_query_engine(query_engine) if query_engine is not None else None
        self.splitter: Optional[Splitter] = None
        self.partitions: List[Partition] = []

    def __enter__(self) -> "CachePipeline":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def set_splitter(self, splitter: Splitter) -> None:
        self.splitter = splitter
        self.logger.debug("splitter function set.")

    def split(self, request: Any) -> List[Partition]:
        """
        Carve a request into partitions with the splitter.

        Raises:
            ConfigurationError: If no splitter is set or it returns no partitions
        """
        if self.splitter is None:
            raise ConfigurationError("Splitter function is not set.")
        partitions = list(self.splitter(request))
        if not partitions:
            raise ConfigurationError("No batches created from the splitter function.")
        for p in partitions:
            if not isinstance(p, Partition):
                raise ConfigurationError(f"splitter returned {type(p).__name__}, expected Partition")
        self.partitions = partitions
        return partitions

    def generate(
        self, partitions: Optional[Sequence[Partition]] = None, raise_errors: bool = False
    ) -> GenerationResult:
        """
        Populate the log store for the split partitions.

        Raises:
            ConfigurationError: If there is nothing to generate or no data source
        """
        todo = list(partitions) if partitions is not None else self.partitions
        if not todo:
            raise ConfigurationError("no partitions to generate; call split() first")
        if self.data_source is None:
            raise ConfigurationError("no data source configured")
        engine = GenerationEngine(
            self.log_store,
            self.data_source,
            force_regenerate=self.config.force_regenerate,
            source_timeout=self.config.source_timeout,
            workers=self.config.workers,
            logger=self.logger,
        )
        return engine.generate(todo, raise_errors=raise_errors)

    def replay(
        self,
        keys: Sequence[str],
        pipeline: Any,
        merge_fields: Sequence[str] = (),
        ignore_fields: Sequence[str] = (),
        cancel: Optional[threading.Event] = None,
    ) -> ReplayResult:
        """Replay keys with the configured chunk limits; see ReplayEngine.replay."""
        if self.query_engine is None:
            raise ConfigurationError("no query engine configured")
        engine = ReplayEngine(
            self.log_store,
            self.chunk_cache,
            self.query_engine,
            ttl=self.config.ttl,
            timestamp_field=self.config.timestamp_field,
            logger=self.logger,
        )
        return engine.replay(
            keys,
            pipeline,
            chunk_bytes_limit=self.config.chunk_bytes_limit,
            chunk_record_limit=self.config.chunk_record_limit,
            merge_fields=merge_fields,
            ignore_fields=ignore_fields,
            cancel=cancel,
        )

    def aggregate(
        self,
        keys: Sequence[str],
        pipeline: Any,
        merge_fields: Sequence[str] = (),
        ignore_fields: Sequence[str] = (),
        cancel: Optional[threading.Event] = None,
    ) -> List[Any]:
        """
        Replay keys and return the combined records.

        Unless the config is persistent, tombstoned partitions that aged out
        are swept afterwards.
        """
        result = self.replay(keys, pipeline, merge_fields, ignore_fields, cancel)
        if not self.config.persistent:
            self.log_store.sweep_removals()
        return result.records

    def post_process(self, records: List[Any], pipeline: Any) -> Any:
        """Run the query engine over already combined records."""
        if self.query_engine is None:
            raise ConfigurationError("no query engine configured")
        return self.query_engine.apply(records, pipeline)

    def clear(self) -> Tuple[int, int]:
        """
        Purge tombstoned partitions and expired chunk memos.

        Returns:
            (partitions purged, memos purged)
        """
        return self.log_store.sweep_removals(), self.chunk_cache.sweep_expired()

    def close(self) -> None:
        self.log_store.close()
        self.chunk_cache.close()
