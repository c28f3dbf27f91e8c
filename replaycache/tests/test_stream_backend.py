"""
Generation and replay over the Redis stream backend, using fakeredis.

Both backends must behave the same: idempotent generation, chunks that cross
partition boundaries (with XRANGE paging inside a partition), and memo hits
on a second pass.
"""

import json

import pytest

try:
    import fakeredis
except ImportError:
    fakeredis = None

from replaycache.core.records import Partition
from replaycache.generate.runner import GenerationEngine
from replaycache.log.connection import LazyConnection
from replaycache.log.stream_store import StreamLogStore
from replaycache.memo.chunk_cache import StreamChunkCache
from replaycache.replay.runner import ReplayEngine

from .fakes import ListSource, RecordingEngine

pytestmark = pytest.mark.skipif(fakeredis is None, reason="fakeredis not installed")

BIG = 1 << 30

DATA = {
    "q1": [{"site": "a", "hits": 1}, {"site": "b", "hits": 2}],
    "q2": [{"site": "a", "hits": 3}],
}


def _backend(engine=None, batch_read_size=2):
    client = fakeredis.FakeRedis()
    conn = LazyConnection(lambda: client)
    store = StreamLogStore(conn, key_prefix="T", batch_read_size=batch_read_size)
    cache = StreamChunkCache(conn, key_prefix="T")
    engine = engine or RecordingEngine()
    return store, cache, engine, ReplayEngine(store, cache, engine)


def _fill(store, key, records):
    store.append_many(key, [json.dumps(r).encode() for r in records])


def test_stream_generation_is_idempotent():
    store, _, _, _ = _backend()
    source = ListSource(DATA)
    partitions = [
        Partition(key="p1", source_query="q1", cacheable=True),
        Partition(key="p2", source_query="q2", cacheable=True),
    ]
    engine = GenerationEngine(store, source)

    first = engine.generate(partitions)
    second = engine.generate(partitions)

    assert first.generated == ["p1", "p2"]
    assert second.skipped == ["p1", "p2"]
    assert second.generated == []
    assert source.opened == ["q1", "q2"]
    assert [json.loads(e.payload) for e in store.read_range("p1")] == DATA["q1"]


def test_stream_chunks_span_partitions():
    store, _, engine, replay = _backend()
    _fill(store, "a", [{"n": 1}, {"n": 2}])
    _fill(store, "b", [{"n": 3}, {"n": 4}, {"n": 5}])

    result = replay.replay(["a", "b"], ["pipe"], chunk_bytes_limit=BIG, chunk_record_limit=3)

    assert [len(batch) for batch in engine.batches] == [3, 2]
    assert result.chunks == 2
    assert result.raw_records == 5
    assert result.records == [{"n": i} for i in range(1, 6)]


def test_stream_second_pass_served_from_memo():
    store, _, engine, replay = _backend()
    _fill(store, "a", [{"n": 1}, {"n": 2}, {"n": 3}])

    first = replay.replay(["a"], ["pipe"], chunk_bytes_limit=BIG, chunk_record_limit=2)
    calls = engine.calls
    second = replay.replay(["a"], ["pipe"], chunk_bytes_limit=BIG, chunk_record_limit=2)

    assert calls == 2
    assert engine.calls == calls
    assert first.cache_hits == 0
    assert second.cache_hits == 2
    assert second.records == first.records
