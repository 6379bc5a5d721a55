"""Redis backend over a managed connection pool"""
import logging
from contextlib import contextmanager
from typing import List, Optional, Set, Tuple

import redis
from redis.backoff import NoBackoff
from redis.retry import Retry

from kvclient.backends.base import StoreBackend
from kvclient.config import StoreConfig
from kvclient.errors import StoreOperationError
from kvclient.models import PoolStats
from kvclient.pool import ManagedConnectionPool, PoolReaper

logger = logging.getLogger(__name__)


def _liveness_reply(response, **options):
    # Keep PING's reply instead of redis-py's True
    if isinstance(response, bytes):
        return response.decode()
    return response


@contextmanager
def translate_errors(operation: str):
    """Re-raise redis-py errors as StoreOperationError"""
    try:
        yield
    except redis.RedisError as exc:
        raise StoreOperationError(f"store operation {operation} failed: {exc}", cause=exc) from exc


class RedisBackend(StoreBackend):
    def __init__(self, client: redis.Redis, pool: ManagedConnectionPool,
                 reaper: Optional[PoolReaper] = None):
        self._client = client
        self._pool = pool
        self._reaper = reaper

    @classmethod
    def from_config(cls, config: StoreConfig) -> "RedisBackend":
        """Build the pool and client. Connections are opened on first use."""
        # Callers own retry policy
        no_retry = Retry(NoBackoff(), 0)

        pool = ManagedConnectionPool(
            max_connections=config.pool_size,
            timeout=config.pool_timeout,
            max_conn_age=config.max_conn_age,
            idle_timeout=config.idle_timeout,
            min_idle_conns=config.min_idle_conns,
            host=config.host,
            port=config.port,
            db=config.db,
            username=config.username,
            password=config.password,
            socket_timeout=config.socket_timeout,
            socket_connect_timeout=config.socket_connect_timeout,
            retry_on_timeout=False,
            retry_on_error=[],
            retry=no_retry,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=pool, retry=no_retry)
        client.set_response_callback("PING", _liveness_reply)

        reaper = None
        recycling = config.idle_timeout > 0 or config.max_conn_age > 0 or config.min_idle_conns > 0
        if config.idle_check_interval > 0 and recycling:
            reaper = PoolReaper(pool, config.idle_check_interval)
            reaper.start()

        logger.debug(
            f"RedisBackend.from_config: pool for {config.addr} db={config.db} "
            f"(size={config.pool_size}, timeout={config.pool_timeout}s, reaper={reaper is not None})"
        )
        return cls(client, pool, reaper)

    @property
    def pool(self) -> ManagedConnectionPool:
        return self._pool

    def ping(self) -> str:
        with translate_errors("ping"):
            return self._client.ping()

    def set(self, key: str, value: str) -> None:
        with translate_errors("set"):
            self._client.set(key, value)

    def get(self, key: str) -> Optional[str]:
        with translate_errors("get"):
            return self._client.get(key)

    def delete(self, key: str) -> int:
        with translate_errors("delete"):
            return self._client.delete(key)

    def exists(self, key: str) -> int:
        with translate_errors("exists"):
            return self._client.exists(key)

    def ttl(self, key: str) -> int:
        with translate_errors("ttl"):
            return int(self._client.ttl(key))

    def expire(self, key: str, seconds: int) -> bool:
        with translate_errors("expire"):
            return bool(self._client.expire(key, seconds))

    def keys(self, pattern: str) -> Set[str]:
        with translate_errors("keys"):
            return set(self._client.keys(pattern))

    def scan(self, cursor: int, pattern: str, count: int) -> Tuple[List[str], int]:
        with translate_errors("scan"):
            next_cursor, keys = self._client.scan(cursor=cursor, match=pattern, count=count)
        return list(keys), int(next_cursor)

    def pool_stats(self) -> PoolStats:
        return self._pool.stats()

    def close(self) -> None:
        if self._reaper is not None:
            self._reaper.stop()
        try:
            self._client.close()
        finally:
            self._pool.disconnect()
