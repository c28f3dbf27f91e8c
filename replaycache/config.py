"""
Configuration of the replay cache.

Values come from REPLAYCACHE_* environment variables and can be overridden
per call. build_stores() picks the backend once, at construction time.

Environment Variables:
    REPLAYCACHE_BACKEND: file or stream (default: file)
    REPLAYCACHE_REDIS_URL: Redis URL for the stream backend
    REPLAYCACHE_ROOT: Directory of the file backend (default: ./tmp)
    REPLAYCACHE_KEY_PREFIX: Namespace of every file/stream/memo (default: CG)
    REPLAYCACHE_CHUNK_RECORDS: Records per replay chunk (default: 10000)
    REPLAYCACHE_CHUNK_BYTES: Bytes per replay chunk (default: 16792600)
    REPLAYCACHE_TTL: Seconds before eviction (default: 3600)
    REPLAYCACHE_FORCE_REGENERATE: Re-drain cached partitions (default: false)
    REPLAYCACHE_PERSISTENT: Keep tombstoned logs after replay (default: false)
    REPLAYCACHE_VERBOSE: Progress logging (default: false)
    REPLAYCACHE_TIMESTAMP_FIELD: Field converted to datetime on replay
    REPLAYCACHE_SOURCE_TIMEOUT: Seconds a partition drain may take
    REPLAYCACHE_WORKERS: Partitions generated concurrently (default: 1)
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional, Tuple

from .core.errors import ConfigurationError
from .log.connection import LazyConnection, redis_factory
from .log.file_store import FileLogStore
from .log.store import LogStore
from .log.stream_store import StreamLogStore
from .memo.chunk_cache import ChunkCache, FileChunkCache, StreamChunkCache

ENV_PREFIX = "REPLAYCACHE_"
BACKENDS = ("file", "stream")

# BSON documents top out at 16 MiB; leave room for the wrapping pipeline
DEFAULT_CHUNK_BYTES = 16792600

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


@dataclass(frozen=True)
class CacheConfig:
    """
    Recognized options.

    Fields:
        backend: "file" (one file per partition) or "stream" (Redis streams)
        redis_url: Connection URL of the stream backend
        root: Directory of the file backend
        key_prefix: Namespace of every stored key
        chunk_record_limit: Records per replay chunk
        chunk_bytes_limit: Payload bytes per replay chunk
        ttl: Eviction age in seconds
        force_regenerate: Re-drain partitions already stored
        persistent: Keep tombstoned file logs after replay instead of sweeping
        verbose: Progress logging
        timestamp_field: Field converted to datetime before transform
        source_timeout: Seconds a partition drain may take (None = unbounded)
        workers: Partitions generated concurrently
    """
    backend: str = "file"
    redis_url: str = "redis://127.0.0.1:6379/0"
    root: str = "./tmp"
    key_prefix: str = "CG"
    chunk_record_limit: int = 10000
    chunk_bytes_limit: int = DEFAULT_CHUNK_BYTES
    ttl: int = 3600
    force_regenerate: bool = False
    persistent: bool = False
    verbose: bool = False
    timestamp_field: Optional[str] = "timestamp"
    source_timeout: Optional[float] = None
    workers: int = 1

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"unknown backend {self.backend!r} (expected one of {', '.join(BACKENDS)})"
            )
        if self.chunk_record_limit < 1:
            raise ConfigurationError("chunk_record_limit must be positive")
        if self.chunk_bytes_limit < 1:
            raise ConfigurationError("chunk_bytes_limit must be positive")
        if self.ttl < 0:
            raise ConfigurationError("ttl must not be negative")
        if self.workers < 1:
            raise ConfigurationError("workers must be positive")
        if not self.key_prefix:
            raise ConfigurationError("key_prefix must not be empty")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CacheConfig":
        """
        Build a config from REPLAYCACHE_* variables.

        Raises:
            ConfigurationError: If a variable has an invalid value
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        def get(name: str) -> Optional[str]:
            val = env.get(ENV_PREFIX + name)
            return val.strip() if val is not None else None

        for name, attr in (
            ("BACKEND", "backend"),
            ("REDIS_URL", "redis_url"),
            ("ROOT", "root"),
            ("KEY_PREFIX", "key_prefix"),
        ):
            val = get(name)
            if val:
                values[attr] = val.lower() if attr == "backend" else val

        for name, attr in (
            ("CHUNK_RECORDS", "chunk_record_limit"),
            ("CHUNK_BYTES", "chunk_bytes_limit"),
            ("TTL", "ttl"),
            ("WORKERS", "workers"),
        ):
            val = get(name)
            if val:
                values[attr] = _parse_int(name, val)

        for name, attr in (
            ("FORCE_REGENERATE", "force_regenerate"),
            ("PERSISTENT", "persistent"),
            ("VERBOSE", "verbose"),
        ):
            val = get(name)
            if val is not None:
                values[attr] = _parse_bool(name, val)

        ts_field = get("TIMESTAMP_FIELD")
        if ts_field is not None:
            values["timestamp_field"] = ts_field or None

        timeout = get("SOURCE_TIMEOUT")
        if timeout:
            try:
                values["source_timeout"] = float(timeout)
            except ValueError as ex:
                raise ConfigurationError(
                    f"{ENV_PREFIX}SOURCE_TIMEOUT must be a number, got {timeout!r}"
                ) from ex

        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "CacheConfig":
        """Return a copy with the given non-None fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(f"unknown option(s): {', '.join(sorted(unknown))}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _parse_int(name: str, val: str) -> int:
    try:
        return int(val)
    except ValueError as ex:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {val!r}") from ex


def _parse_bool(name: str, val: str) -> bool:
    lowered = val.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"{ENV_PREFIX}{name} must be a boolean, got {val!r}")


def build_stores(
    config: CacheConfig,
    logger: Optional[logging.LoggerAdapter] = None,
    connection: Optional[LazyConnection] = None,
    clock=None,
) -> Tuple[LogStore, ChunkCache]:
    """
    Create the log store and chunk cache of the configured backend.

    Both stream-backed stores share one lazy connection.

    Args:
        config: Cache configuration
        logger: Logger injected into the stores
        connection: Shared connection for the stream backend (default: Redis at redis_url)
        clock: Time source for file TTL checks (default: system clock)

    Returns:
        (log_store, chunk_cache) tuple
    """
    if config.backend == "stream":
        conn = connection or LazyConnection(redis_factory(config.redis_url), logger=logger)
        store: LogStore = StreamLogStore(
            conn,
            key_prefix=config.key_prefix,
            ttl=config.ttl,
            batch_read_size=config.chunk_record_limit,
            logger=logger,
        )
        cache: ChunkCache = StreamChunkCache(
            conn, key_prefix=config.key_prefix, ttl=config.ttl, logger=logger
        )
        return store, cache

    store = FileLogStore(
        config.root, key_prefix=config.key_prefix, ttl=config.ttl, clock=clock, logger=logger
    )
    cache = FileChunkCache(
        config.root, key_prefix=config.key_prefix, ttl=config.ttl, clock=clock, logger=logger
    )
    return store, cache
