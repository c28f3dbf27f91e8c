"""
Tests for FileLogStore.

Test coverage:
- Append + read roundtrip, exclusive cursor
- Newline-delimited storage with file naming
- Tombstones and TTL sweep
- Partition listing
"""

import os
import tempfile
import time

import pytest

from replaycache.core.clock import ManualClock
from replaycache.core.errors import ConfigurationError, WriteError
from replaycache.log.file_store import FileLogStore


def _store(tmpdir, **kw):
    return FileLogStore(tmpdir, key_prefix="T", **kw)


def test_append_read_roundtrip():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _store(tmpdir)
        store.append("p1", b'{"n":1}')
        store.append("p1", '{"n":2}')

        entries = list(store.read_range("p1"))

        assert [e.sequence_id for e in entries] == [0, 1]
        assert [e.payload for e in entries] == [b'{"n":1}', b'{"n":2}']
        assert os.path.exists(os.path.join(tmpdir, "T_p1.tmp"))


def test_read_from_cursor_is_exclusive():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _store(tmpdir)
        store.append_many("p1", [b"a", b"b", b"c"])

        entries = list(store.read_range("p1", from_cursor=0))

        assert [e.payload for e in entries] == [b"b", b"c"]
        assert list(store.read_range("p1", from_cursor=2)) == []


def test_missing_partition_reads_empty():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _store(tmpdir)

        assert list(store.read_range("nope")) == []
        assert not store.exists("nope")
        assert store.count("nope") == 0


def test_exists_requires_content():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _store(tmpdir)
        open(store.log_path("empty"), "wb").close()

        assert not store.exists("empty")
        store.append("empty", b"x")
        assert store.exists("empty")


def test_record_with_newline_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _store(tmpdir)

        with pytest.raises(WriteError):
            store.append("p1", b"a\nb")


def test_failing_iterable_keeps_earlier_records():
    def records():
        yield b"one"
        yield b"two"
        raise RuntimeError("source broke")

    with tempfile.TemporaryDirectory() as tmpdir:
        store = _store(tmpdir)

        with pytest.raises(RuntimeError):
            store.append_many("p1", records())

        assert [e.payload for e in store.read_range("p1")] == [b"one", b"two"]


def test_blank_lines_skipped():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _store(tmpdir)
        with open(store.log_path("p1"), "wb") as f:
            f.write(b"a\n\n  \nb\n")

        entries = list(store.read_range("p1"))

        assert [e.payload for e in entries] == [b"a", b"b"]
        assert [e.sequence_id for e in entries] == [0, 3]


def test_invalid_key_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _store(tmpdir)

        with pytest.raises(ConfigurationError):
            store.append("../escape", b"x")


def test_sweep_waits_for_ttl():
    with tempfile.TemporaryDirectory() as tmpdir:
        clock = ManualClock(time.time())
        store = _store(tmpdir, ttl=60, clock=clock)
        store.append("p1", b"x")
        store.mark_for_removal("p1")

        assert store.is_marked_for_removal("p1")
        assert os.path.getsize(store.tombstone_path("p1")) == 0
        assert store.sweep_removals() == 0
        assert store.exists("p1")

        clock.advance(120)
        assert store.sweep_removals() == 1
        assert not os.path.exists(store.log_path("p1"))
        assert not os.path.exists(store.tombstone_path("p1"))


def test_sweep_keeps_unmarked_partitions():
    with tempfile.TemporaryDirectory() as tmpdir:
        clock = ManualClock(time.time())
        store = _store(tmpdir, ttl=60, clock=clock)
        store.append("keep", b"x")

        clock.advance(3600)

        assert store.sweep_removals() == 0
        assert store.exists("keep")


def test_sweep_drops_orphan_tombstone():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _store(tmpdir)
        store.mark_for_removal("ghost")

        assert store.sweep_removals() == 0
        assert not store.is_marked_for_removal("ghost")


def test_partitions_lists_logs_only():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _store(tmpdir)
        store.append("b", b"x")
        store.append("a", b"x")
        store.mark_for_removal("a")
        open(os.path.join(tmpdir, "T_abc.layer.tmp"), "wb").close()
        open(os.path.join(tmpdir, "OTHER_c.tmp"), "wb").close()

        assert store.partitions() == ["a", "b"]


def test_clear_removes_log_and_tombstone():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _store(tmpdir)
        store.append("p1", b"x")
        store.mark_for_removal("p1")

        store.clear("p1")
        store.clear("p1")

        assert not store.exists("p1")
        assert not store.is_marked_for_removal("p1")


def test_append_returns_entry_with_line_offset():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _store(tmpdir)
        store.append_many("p1", [b"a", b"b"])

        entry = store.append("p1", "c")

        assert entry.sequence_id == 2
        assert entry.payload == b"c"
        assert [e.payload for e in store.read_range("p1", from_cursor=1)] == [b"c"]
