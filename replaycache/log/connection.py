"""
Lazily established shared backend connection.

The first caller connects; concurrent callers wait on the same in-flight
future instead of opening their own connection. A failed attempt clears the
shared future so the next call retries.
"""

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

import redis

from ..core.errors import ConnectionFailed
from ..logging_config import null_logger


class LazyConnection:
    """
    Guarded single connection future.

    Usage:
        conn = LazyConnection(lambda: redis.Redis.from_url(url))
        client = conn.get()
    """

    def __init__(
        self,
        factory: Callable[[], Any],
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        """
        Initialize lazy connection.

        Args:
            factory: Creates and verifies a client; may raise on failure
            logger: Injected logger (default: null logger)
        """
        self._factory = factory
        self._lock = threading.Lock()
        self._future: Optional[Future] = None
        self.logger = logger or null_logger()

    @property
    def connected(self) -> bool:
        future = self._future
        return future is not None and future.done() and future.exception() is None

    def get(self, timeout: Optional[float] = None) -> Any:
        """
        Return the shared client, connecting on first use.

        Raises:
            ConnectionFailed: If the connection attempt failed
        """
        with self._lock:
            future = self._future
            owner = future is None
            if owner:
                future = Future()
                self._future = future

        if owner:
            self._connect(future)
        return future.result(timeout)

    def _connect(self, future: Future) -> None:
        self.logger.debug("connecting to backend...")
        try:
            client = self._factory()
        except Exception as ex:
            with self._lock:
                if self._future is future:
                    self._future = None
            self.logger.error("backend connection failed: %s", ex)
            err = ConnectionFailed(f"backend connection failed: {ex}")
            err.__cause__ = ex
            future.set_exception(err)
            return
        self.logger.debug("backend connected")
        future.set_result(client)

    def reset(self) -> None:
        """Forget the current connection so the next get() reconnects."""
        with self._lock:
            self._future = None

    def close(self) -> None:
        """Close the client if connected."""
        with self._lock:
            future = self._future
            self._future = None
        if future is None or not future.done() or future.exception() is not None:
            return
        client = future.result()
        close = getattr(client, "close", None)
        if close is not None:
            close()
        self.logger.debug("backend client closed")


def redis_factory(url: str) -> Callable[[], Any]:
    """Build a factory creating a verified Redis client for url."""

    def factory() -> Any:
        client = redis.Redis.from_url(url, decode_responses=False)
        client.ping()
        return client

    return factory
