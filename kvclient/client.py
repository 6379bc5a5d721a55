"""
Store client: one configured connection pool and a narrow set of key operations.

The client is safe to share between threads. Every operation checks a
connection out of the pool, runs one command and returns the connection;
checkout blocks for at most `pool_timeout` seconds. Nothing is retried.
"""
import logging
import threading
from typing import Iterator, List, Optional, Set, Tuple

from kvclient.backends.base import StoreBackend
from kvclient.backends.redis_backend import RedisBackend
from kvclient.config import StoreConfig, default_config
from kvclient.errors import ClientClosedError, KeyNotFoundError, StoreOperationError
from kvclient.metrics import operation_duration, operations_total
from kvclient.models import PoolStats

logger = logging.getLogger(__name__)


class StoreClient:
    def __init__(self, backend: StoreBackend, config: Optional[StoreConfig] = None):
        self.config = config
        self._backend = backend
        self._closed = False
        self._lock = threading.Lock()

    def __enter__(self) -> "StoreClient":
        return self

    def __exit__(self, *exc_info):
        if not self._closed:
            self.close()

    @property
    def backend(self) -> StoreBackend:
        return self._backend

    @property
    def closed(self) -> bool:
        return self._closed

    def _call(self, operation: str, func, *args, miss_on_none: bool = False):
        """Run one backend call with the closed check, metrics and logging"""
        if self._closed:
            raise ClientClosedError()

        with operation_duration.labels(operation=operation).time():
            try:
                result = func(*args)
            except StoreOperationError as exc:
                operations_total.labels(operation=operation, status="error").inc()
                logger.warning(f"StoreClient.{operation}: {exc}")
                raise

        status = "miss" if miss_on_none and result is None else "ok"
        operations_total.labels(operation=operation, status=status).inc()
        logger.debug(f"StoreClient.{operation}: {status}")
        return result

    def ping(self) -> str:
        """Round-trip a no-op; returns the store's liveness reply ("PONG")."""
        return self._call("ping", self._backend.ping)

    def set(self, key: str, value: str) -> bool:
        """Store value under key with no expiration."""
        self._call("set", self._backend.set, key, value)
        return True

    def get(self, key: str) -> str:
        """
        Get the value stored under key.
        Raises KeyNotFoundError if the store does not hold the key.
        """
        value = self._call("get", self._backend.get, key, miss_on_none=True)
        if value is None:
            raise KeyNotFoundError(key)
        return value

    def delete(self, key: str) -> bool:
        """Remove key. Deleting a missing key also succeeds."""
        self._call("delete", self._backend.delete, key)
        return True

    def exists(self, key: str) -> bool:
        return self._call("exists", self._backend.exists, key) > 0

    def ttl(self, key: str) -> int:
        """
        Remaining time to live in seconds.
        Returns TTL_NO_EXPIRY (-1) if the key has no expiration and
        TTL_KEY_MISSING (-2) if it does not exist.
        """
        return self._call("ttl", self._backend.ttl, key)

    def expire(self, key: str, seconds: int) -> bool:
        """
        Set or overwrite key's time to live.
        Returns False without error when the key does not exist.
        """
        return self._call("expire", self._backend.expire, key, seconds)

    def keys(self, pattern: str = "*") -> Set[str]:
        """
        All keys matching a glob-style pattern.
        Blocks the store while it walks the whole keyspace; prefer scan()
        on large databases.
        """
        return self._call("keys", self._backend.keys, pattern)

    def scan(self, cursor: int = 0, pattern: str = "*", count: int = 10) -> Tuple[List[str], int]:
        """
        One page of a cursor-based scan: (keys, next_cursor).

        Start with cursor 0 and call again with the returned cursor until it
        is 0. Keys present for the whole pass are returned at least once; keys
        added or removed during it may or may not be.
        """
        return self._call("scan", self._backend.scan, cursor, pattern, count)

    def scan_iter(self, pattern: str = "*", count: int = 10) -> Iterator[str]:
        """Iterate every key matching pattern over one full scan pass."""
        cursor = 0
        while True:
            keys, cursor = self.scan(cursor, pattern, count)
            yield from keys
            if cursor == 0:
                break

    def count_matching(self, pattern: str = "*") -> int:
        """Number of keys matching pattern; same cost as keys()."""
        return len(self.keys(pattern))

    def pool_stats(self) -> PoolStats:
        if self._closed:
            raise ClientClosedError()
        return self._backend.pool_stats()

    def close(self) -> None:
        """Release the connection pool. A closed client cannot be reopened."""
        with self._lock:
            if self._closed:
                raise ClientClosedError("store client is already closed")
            self._closed = True

        self._backend.close()
        logger.info("StoreClient.close: connection pool released")


def connect(config: Optional[StoreConfig] = None, backend: Optional[StoreBackend] = None) -> StoreClient:
    """
    Create a store client. No connection is opened until the first operation.

    Without a backend, a Redis backend is built from `config`
    (default_config() when omitted).
    """
    if backend is None:
        if config is None:
            config = default_config()
        backend = RedisBackend.from_config(config)
        logger.info(f"connect: store client for {config.addr} db={config.db} (pool_size={config.pool_size})")
    else:
        logger.info(f"connect: store client on {type(backend).__name__}")
    return StoreClient(backend, config)
