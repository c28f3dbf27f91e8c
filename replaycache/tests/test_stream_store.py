"""
Unit tests for StreamLogStore using fakeredis.

Test coverage:
- Append + read roundtrip with stream ids
- Paging through XRANGE
- Expiry-based removal
- Partition listing
- Connection failures surface as WriteError
"""

import pytest

try:
    import fakeredis
except ImportError:
    fakeredis = None

from replaycache.core.errors import ConnectionFailed, WriteError
from replaycache.log.connection import LazyConnection
from replaycache.log.stream_store import StreamLogStore, next_stream_id

# Skip all tests if fakeredis not installed
pytestmark = pytest.mark.skipif(fakeredis is None, reason="fakeredis not installed")


def _store(client=None, **kw):
    client = client or fakeredis.FakeRedis()
    return StreamLogStore(LazyConnection(lambda: client), key_prefix="T", **kw), client


def test_next_stream_id():
    assert next_stream_id("1700000000000-0") == "1700000000000-1"
    assert next_stream_id("5-41") == "5-42"


def test_append_read_roundtrip():
    store, client = _store()
    store.append("p1", b'{"n":1}')
    store.append("p1", '{"n":2}')

    entries = list(store.read_range("p1"))

    assert [e.payload for e in entries] == [b'{"n":1}', b'{"n":2}']
    assert all("-" in e.sequence_id for e in entries)
    assert client.type("T:p1") == b"stream"
    assert store.exists("p1")
    assert store.count("p1") == 2


def test_read_from_cursor_is_exclusive():
    store, _ = _store()
    store.append_many("p1", [b"a", b"b", b"c"])
    first = next(iter(store.read_range("p1")))

    rest = list(store.read_range("p1", from_cursor=first.sequence_id))

    assert [e.payload for e in rest] == [b"b", b"c"]


def test_read_pages_through_stream():
    store, _ = _store(batch_read_size=2)
    store.append_many("p1", [str(i).encode() for i in range(5)])

    payloads = [e.payload for e in store.read_range("p1")]

    assert payloads == [b"0", b"1", b"2", b"3", b"4"]


def test_missing_partition():
    store, _ = _store()

    assert not store.exists("nope")
    assert list(store.read_range("nope")) == []
    assert store.count("nope") == 0


def test_append_many_commits_before_failure():
    def records():
        yield b"one"
        raise RuntimeError("source broke")

    store, _ = _store()

    with pytest.raises(RuntimeError):
        store.append_many("p1", records())

    assert [e.payload for e in store.read_range("p1")] == [b"one"]


def test_mark_for_removal_sets_expiry():
    store, client = _store(ttl=120)
    store.append("p1", b"x")

    assert not store.is_marked_for_removal("p1")
    store.mark_for_removal("p1")

    assert store.is_marked_for_removal("p1")
    assert 0 < client.ttl("T:p1") <= 120
    # still readable until it expires
    assert store.exists("p1")
    assert store.sweep_removals() == 0


def test_partitions_lists_streams_only():
    store, client = _store()
    store.append("b", b"x")
    store.append("a", b"x")
    client.set("T:not-a-stream", b"1")
    client.xadd("OTHER:c", {"json": b"x"})

    assert store.partitions() == ["a", "b"]


def test_clear_deletes_stream():
    store, _ = _store()
    store.append("p1", b"x")

    store.clear("p1")

    assert not store.exists("p1")


def test_connection_failure_is_write_error():
    def factory():
        raise OSError("connection refused")

    store = StreamLogStore(LazyConnection(factory))

    with pytest.raises(ConnectionFailed):
        store.append("p1", b"x")
    with pytest.raises(WriteError):
        store.exists("p1")


def test_append_returns_stream_id():
    store, _ = _store()

    entry = store.append("p1", b"x")

    assert entry.payload == b"x"
    assert [e.sequence_id for e in store.read_range("p1")] == [entry.sequence_id]
