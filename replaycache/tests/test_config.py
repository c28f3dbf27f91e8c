"""
Tests for configuration loading and backend selection.
"""

import pytest

from replaycache.config import DEFAULT_CHUNK_BYTES, CacheConfig, build_stores
from replaycache.core.errors import ConfigurationError
from replaycache.log.connection import LazyConnection
from replaycache.log.file_store import FileLogStore
from replaycache.log.stream_store import StreamLogStore
from replaycache.memo.chunk_cache import FileChunkCache, StreamChunkCache


def test_defaults():
    cfg = CacheConfig.from_env({})

    assert cfg.backend == "file"
    assert cfg.root == "./tmp"
    assert cfg.key_prefix == "CG"
    assert cfg.chunk_record_limit == 10000
    assert cfg.chunk_bytes_limit == DEFAULT_CHUNK_BYTES
    assert cfg.ttl == 3600
    assert not cfg.force_regenerate
    assert not cfg.persistent
    assert cfg.timestamp_field == "timestamp"


def test_from_env_reads_variables():
    cfg = CacheConfig.from_env(
        {
            "REPLAYCACHE_BACKEND": "Stream",
            "REPLAYCACHE_KEY_PREFIX": "JOBS",
            "REPLAYCACHE_CHUNK_RECORDS": "500",
            "REPLAYCACHE_TTL": "60",
            "REPLAYCACHE_PERSISTENT": "yes",
            "REPLAYCACHE_TIMESTAMP_FIELD": "",
            "REPLAYCACHE_SOURCE_TIMEOUT": "2.5",
            "REPLAYCACHE_WORKERS": "4",
        }
    )

    assert cfg.backend == "stream"
    assert cfg.key_prefix == "JOBS"
    assert cfg.chunk_record_limit == 500
    assert cfg.ttl == 60
    assert cfg.persistent
    assert cfg.timestamp_field is None
    assert cfg.source_timeout == 2.5
    assert cfg.workers == 4


@pytest.mark.parametrize(
    "env",
    [
        {"REPLAYCACHE_TTL": "soon"},
        {"REPLAYCACHE_VERBOSE": "maybe"},
        {"REPLAYCACHE_BACKEND": "mongo"},
        {"REPLAYCACHE_CHUNK_RECORDS": "0"},
        {"REPLAYCACHE_SOURCE_TIMEOUT": "never"},
    ],
)
def test_invalid_values_rejected(env):
    with pytest.raises(ConfigurationError):
        CacheConfig.from_env(env)


def test_with_overrides_ignores_none():
    cfg = CacheConfig().with_overrides(ttl=10, root=None)

    assert cfg.ttl == 10
    assert cfg.root == "./tmp"


def test_with_overrides_rejects_unknown():
    with pytest.raises(ConfigurationError):
        CacheConfig().with_overrides(colour="blue")


def test_build_file_stores(tmp_path):
    store, cache = build_stores(CacheConfig(root=str(tmp_path), key_prefix="T"))

    assert isinstance(store, FileLogStore)
    assert isinstance(cache, FileChunkCache)
    assert store.key_prefix == "T"


def test_build_stream_stores_share_connection():
    def factory():
        raise AssertionError("must not connect eagerly")

    conn = LazyConnection(factory)
    store, cache = build_stores(CacheConfig(backend="stream"), connection=conn)

    assert isinstance(store, StreamLogStore)
    assert isinstance(cache, StreamChunkCache)
    assert store.connection is cache.connection is conn
