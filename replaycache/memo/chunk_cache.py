"""
Memo of per-chunk replay results.

Entries are keyed by the content hash of a chunk descriptor and expire on a
rolling TTL measured from their last write.
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Any, Optional

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from ..core.clock import SystemClock, is_expired
from ..core.errors import WriteError
from ..log.connection import LazyConnection
from ..logging_config import null_logger

MEMO_SUFFIX = ".layer.tmp"
MEMO_FIELD = "LAYER"


class ChunkCache(ABC):
    """
    Abstract chunk result memo.

    sweep_expired() is called at the start of each replay pass so that a
    long idle cache never serves expired results during that pass.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the memoized value, or None on a miss."""
        ...

    @abstractmethod
    def put(self, key: str, value: bytes, ttl: Optional[int] = None) -> None:
        """
        Store a value.

        Raises:
            WriteError: If the backend fails
        """
        ...

    @abstractmethod
    def sweep_expired(self) -> int:
        """
        Remove entries older than their TTL.

        Returns:
            Number of entries removed
        """
        ...

    def close(self) -> None:
        return None


class FileChunkCache(ChunkCache):
    """
    One memo file per key: "{prefix}_{key}.layer.tmp" under root.

    Expiry compares the file's last-modified time with the cache TTL; the
    per-put ttl only exists for parity with the stream variant.
    """

    def __init__(
        self,
        root: str,
        key_prefix: str = "CG",
        ttl: float = 3600,
        clock=None,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.root = root
        self.key_prefix = key_prefix
        self.ttl = ttl
        self.clock = clock or SystemClock()
        self.logger = logger or null_logger()
        try:
            os.makedirs(root, exist_ok=True)
        except OSError as ex:
            raise WriteError(f"cannot create memo directory {root}: {ex}") from ex

    def memo_path(self, key: str) -> str:
        return os.path.join(self.root, f"{self.key_prefix}_{key}{MEMO_SUFFIX}")

    def get(self, key: str) -> Optional[bytes]:
        try:
            with open(self.memo_path(key), "rb") as f:
                data = f.read()
        except FileNotFoundError:
            return None
        except OSError as ex:
            raise WriteError(str(ex)) from ex
        return data or None

    def put(self, key: str, value: bytes, ttl: Optional[int] = None) -> None:
        path = self.memo_path(key)
        try:
            fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".memo-")
            with os.fdopen(fd, "wb") as f:
                f.write(value)
            os.replace(tmp, path)
        except OSError as ex:
            self.logger.error("memo write %s failed: %s", path, ex)
            raise WriteError(str(ex)) from ex

    def sweep_expired(self) -> int:
        now = self.clock.now()
        removed = 0
        prefix = f"{self.key_prefix}_"
        for name in sorted(os.listdir(self.root)):
            if not (name.startswith(prefix) and name.endswith(MEMO_SUFFIX)):
                continue
            path = os.path.join(self.root, name)
            try:
                if is_expired(os.path.getmtime(path), self.ttl, now):
                    os.remove(path)
                    removed += 1
            except FileNotFoundError:
                continue
            except OSError as ex:
                self.logger.error("cannot remove %s: %s", name, ex)
        self.logger.info("%d total cache layer(s) cleared...", removed)
        return removed


class StreamChunkCache(ChunkCache):
    """
    One Redis hash per key ("{prefix}_{key}", field "LAYER") with native EXPIRE.
    """

    def __init__(
        self,
        connection: LazyConnection,
        key_prefix: str = "CG",
        ttl: int = 3600,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.connection = connection
        self.key_prefix = key_prefix
        self.ttl = int(ttl)
        self.logger = logger or null_logger()

    def memo_key(self, key: str) -> str:
        return f"{self.key_prefix}_{key}"

    def _fail(self, action: str, ex: RedisError) -> WriteError:
        if isinstance(ex, RedisConnectionError):
            self.connection.reset()
        self.logger.error("%s failed: %s", action, ex)
        err = WriteError(f"{action} failed: {ex}")
        err.__cause__ = ex
        return err

    def get(self, key: str) -> Optional[bytes]:
        name = self.memo_key(key)
        try:
            value: Any = self.connection.get().hget(name, MEMO_FIELD)
        except RedisError as ex:
            raise self._fail(f"memo read {name}", ex)
        if value is None:
            return None
        return value.encode("utf-8") if isinstance(value, str) else value

    def put(self, key: str, value: bytes, ttl: Optional[int] = None) -> None:
        name = self.memo_key(key)
        try:
            pipe = self.connection.get().pipeline(transaction=True)
            pipe.hset(name, MEMO_FIELD, value)
            pipe.expire(name, int(ttl if ttl is not None else self.ttl))
            pipe.execute()
        except RedisError as ex:
            raise self._fail(f"memo write {name}", ex)

    def sweep_expired(self) -> int:
        """
        Nothing to purge: memo hashes expire natively.

        Returns:
            Always 0
        """
        return 0

    def close(self) -> None:
        self.connection.close()
