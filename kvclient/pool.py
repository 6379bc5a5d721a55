"""
Bounded, blocking Redis connection pool with age and idle recycling.

redis-py's BlockingConnectionPool caps the number of connections and makes
callers wait up to `timeout` seconds for a free one. It has no notion of
connection age or idleness, so this subclass stamps connections as they
are (re)connected and released:

- on checkout, a connection older than `max_conn_age` or idle longer than
  `idle_timeout` is reconnected before it is handed out;
- reap() closes stale idle connections, keeping `min_idle_conns` open;
- fill_idle() opens connections until `min_idle_conns` are idle;
- PoolReaper runs both periodically in a daemon thread.
"""
import logging
import threading
import time
from queue import Empty, Full

import redis

from kvclient.metrics import connections_opened_total, connections_reaped_total
from kvclient.models import PoolStats

logger = logging.getLogger(__name__)


class ManagedConnectionPool(redis.BlockingConnectionPool):
    def __init__(self, max_conn_age: float = 0, idle_timeout: float = 0,
                 min_idle_conns: int = 0, **kwargs):
        # reset() runs inside the parent constructor and needs these
        self.max_conn_age = max_conn_age
        self.idle_timeout = idle_timeout
        self.min_idle_conns = min_idle_conns
        self._stamp_lock = threading.Lock()
        self._connected_at = {}
        self._released_at = {}
        self._in_use = set()
        self._used = False
        super().__init__(**kwargs)

    def reset(self):
        super().reset()
        with self._stamp_lock:
            self._connected_at.clear()
            self._released_at.clear()
            self._in_use.clear()

    def get_connection(self, *args, **kwargs):
        connection = super().get_connection(*args, **kwargs)
        now = time.monotonic()
        with self._stamp_lock:
            self._in_use.add(connection)
            self._used = True
            fresh = connection not in self._connected_at
            stale = not fresh and self._is_stale(connection, now)
            self._released_at.pop(connection, None)

        try:
            if stale:
                logger.debug("ManagedConnectionPool.get_connection: recycling stale connection")
                connection.disconnect()
                connection.connect()
        except BaseException:
            self._forget(connection)
            self.release(connection)
            raise

        if fresh or stale:
            with self._stamp_lock:
                self._connected_at[connection] = now
        return connection

    def release(self, connection):
        with self._stamp_lock:
            self._in_use.discard(connection)
            if getattr(connection, "_sock", None) is None:
                # redis-py disconnects a connection whose command failed
                self._connected_at.pop(connection, None)
                self._released_at.pop(connection, None)
            elif connection in self._connected_at:
                self._released_at[connection] = time.monotonic()
        super().release(connection)

    def disconnect(self, *args, **kwargs):
        super().disconnect(*args, **kwargs)
        with self._stamp_lock:
            self._connected_at.clear()
            self._released_at.clear()

    def is_stale(self, connection, now: float = None) -> bool:
        """True if the connection has outlived max_conn_age or idle_timeout."""
        if now is None:
            now = time.monotonic()
        with self._stamp_lock:
            return self._is_stale(connection, now)

    def _is_stale(self, connection, now: float) -> bool:
        return self._too_old(connection, now) or self._too_idle(connection, now)

    def _too_old(self, connection, now: float) -> bool:
        connected_at = self._connected_at.get(connection)
        if not self.max_conn_age or connected_at is None:
            return False
        return now - connected_at >= self.max_conn_age

    def _too_idle(self, connection, now: float) -> bool:
        released_at = self._released_at.get(connection)
        if not self.idle_timeout or released_at is None:
            return False
        return now - released_at >= self.idle_timeout

    def _forget(self, connection):
        with self._stamp_lock:
            self._connected_at.pop(connection, None)
            self._released_at.pop(connection, None)

    def _drain(self) -> list:
        """Take every queued slot without blocking, most recently released first."""
        drained = []
        while True:
            try:
                drained.append(self.pool.get_nowait())
            except Empty:
                break
        return drained

    def _restore(self, drained: list):
        for connection in reversed(drained):
            try:
                self.pool.put_nowait(connection)
            except Full:
                pass

    def reap(self, now: float = None) -> int:
        """
        Close idle connections past max_conn_age, and those past
        idle_timeout beyond the first min_idle_conns.
        Returns the number of connections closed.
        """
        if now is None:
            now = time.monotonic()

        # Connections taken off the queue cannot be checked out meanwhile
        drained = self._drain()
        reaped = 0
        kept = 0
        try:
            for connection in drained:
                if connection is None:
                    continue
                with self._stamp_lock:
                    if connection not in self._connected_at:
                        continue
                    too_old = self._too_old(connection, now)
                    too_idle = self._too_idle(connection, now)
                if too_old or (too_idle and kept >= self.min_idle_conns):
                    self._forget(connection)
                    connection.disconnect()
                    reaped += 1
                else:
                    kept += 1
        finally:
            self._restore(drained)

        if reaped:
            connections_reaped_total.inc(reaped)
            logger.debug(f"ManagedConnectionPool.reap: closed {reaped} connection(s), kept {kept} idle")
        return reaped

    def fill_idle(self) -> int:
        """
        Open connections in free slots until min_idle_conns are idle.
        Does nothing before the pool's first checkout.
        Returns the number of connections opened.
        """
        if not self.min_idle_conns or not self._used:
            return 0

        drained = self._drain()
        opened = 0
        try:
            with self._stamp_lock:
                idle = sum(1 for c in drained if c is not None and c in self._connected_at)
                free = [i for i, c in enumerate(drained) if c is None or c not in self._connected_at]

            for index in free[:max(self.min_idle_conns - idle, 0)]:
                connection = drained[index]
                if connection is None:
                    connection = drained[index] = self.make_connection()
                try:
                    connection.connect()
                except redis.RedisError as exc:
                    logger.warning(f"ManagedConnectionPool.fill_idle: could not open connection: {exc}")
                    break
                stamp = time.monotonic()
                with self._stamp_lock:
                    self._connected_at[connection] = stamp
                    self._released_at[connection] = stamp
                opened += 1
        finally:
            self._restore(drained)

        if opened:
            connections_opened_total.inc(opened)
            logger.debug(f"ManagedConnectionPool.fill_idle: opened {opened} connection(s)")
        return opened

    def stats(self) -> PoolStats:
        with self._stamp_lock:
            connected = len(self._connected_at)
            in_use = len(self._in_use)
        return PoolStats(
            max_connections=self.max_connections,
            connected=connected,
            in_use=in_use,
            idle=max(connected - in_use, 0),
        )


class PoolReaper(threading.Thread):
    """
    Daemon thread calling pool.reap() then pool.fill_idle() every
    `interval` seconds until stopped.
    """

    def __init__(self, pool: ManagedConnectionPool, interval: float):
        super().__init__(name="kvclient-pool-reaper", daemon=True)
        self.pool = pool
        self.interval = interval
        self._stopped = threading.Event()

    def run(self):
        while not self._stopped.wait(self.interval):
            try:
                self.pool.reap()
                self.pool.fill_idle()
            except Exception:
                logger.exception("PoolReaper.run: reap pass failed")

    def stop(self, timeout: float = None):
        self._stopped.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout)
