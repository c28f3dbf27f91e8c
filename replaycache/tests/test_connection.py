"""
Tests for the lazily established shared connection.

Goal: concurrent first use opens exactly one connection, and a failed
attempt is retried on the next call.
"""

import threading
import time

import pytest

from replaycache.core.errors import ConnectionFailed, WriteError
from replaycache.log.connection import LazyConnection


def test_concurrent_callers_share_one_connection():
    calls = []
    client = object()

    def factory():
        calls.append(1)
        time.sleep(0.05)
        return client

    conn = LazyConnection(factory)
    results = []

    def worker():
        results.append(conn.get(timeout=5))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert len(results) == 8
    assert all(r is client for r in results)
    assert conn.connected


def test_failed_connection_is_retried():
    attempts = []

    def factory():
        attempts.append(1)
        if len(attempts) == 1:
            raise OSError("connection refused")
        return "client"

    conn = LazyConnection(factory)

    with pytest.raises(ConnectionFailed) as excinfo:
        conn.get()
    assert isinstance(excinfo.value, WriteError)
    assert isinstance(excinfo.value.__cause__, OSError)
    assert not conn.connected

    assert conn.get() == "client"
    assert len(attempts) == 2


def test_reset_forces_reconnect():
    attempts = []

    def factory():
        attempts.append(1)
        return object()

    conn = LazyConnection(factory)
    first = conn.get()
    assert conn.get() is first

    conn.reset()

    assert conn.get() is not first
    assert len(attempts) == 2


def test_close_closes_client():
    class Client:
        closed = False

        def close(self):
            self.closed = True

    client = Client()
    conn = LazyConnection(lambda: client)
    conn.get()

    conn.close()
    conn.close()

    assert client.closed
    assert not conn.connected
