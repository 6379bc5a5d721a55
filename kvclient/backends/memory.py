"""
In-process store backend.

Mirrors the observable behavior of the Redis backend (TTL sentinels,
glob-style patterns, cursor scans) so the client can run without a server.
"""
import itertools
import re
import threading
import time
from bisect import bisect_right
from collections import OrderedDict
from functools import lru_cache
from typing import Callable, Dict, List, Optional, Set, Tuple

from kvclient.backends.base import StoreBackend
from kvclient.errors import StoreOperationError
from kvclient.models import PoolStats, TTL_KEY_MISSING, TTL_NO_EXPIRY

PONG = "PONG"

# Open scan cursors remembered per backend; the oldest are forgotten first
MAX_CURSORS = 1024


def _char_class(pattern: str, i: int) -> Tuple[str, int]:
    """
    Regex for the bracket expression starting after the "[" at pattern[i - 1].
    Returns the regex and the index just past the closing "]".

    Like the server: a reversed range such as [c-a] matches c..a swapped,
    [^] matches any single character, [] matches nothing and an unclosed
    bracket runs to the end of the pattern.
    """
    n = len(pattern)
    negate = i < n and pattern[i] == "^"
    if negate:
        i += 1

    parts = []
    while i < n:
        c = pattern[i]
        if c == "]":
            i += 1
            break
        if c == "\\" and i + 1 < n:
            parts.append(re.escape(pattern[i + 1]))
            i += 2
        elif i + 2 < n and pattern[i + 1] == "-":
            lo, hi = sorted((c, pattern[i + 2]))
            parts.append(f"{re.escape(lo)}-{re.escape(hi)}")
            i += 3
        else:
            parts.append(re.escape(c))
            i += 1

    if not parts:
        return ("." if negate else "(?!)"), i
    return "[" + ("^" if negate else "") + "".join(parts) + "]", i


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> "re.Pattern":
    """
    Translate a Redis glob-style pattern to a regex.
    Supports *, ?, [abc], [^abc], [a-z] and backslash escapes.
    """
    out = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        i += 1
        if c == "*":
            out.append(".*")
        elif c == "?":
            out.append(".")
        elif c == "\\" and i < n:
            out.append(re.escape(pattern[i]))
            i += 1
        elif c == "[":
            regex, i = _char_class(pattern, i)
            out.append(regex)
        else:
            out.append(re.escape(c))
    return re.compile("".join(out), re.DOTALL)


def match_pattern(pattern: str, key: str) -> bool:
    return compile_pattern(pattern).fullmatch(key) is not None


def _matcher(operation: str, pattern: str) -> "re.Pattern":
    try:
        return compile_pattern(pattern)
    except re.error as exc:
        raise StoreOperationError(
            f"store operation {operation} failed: bad pattern {pattern!r}: {exc}", cause=exc
        ) from exc


class MemoryBackend(StoreBackend):
    """
    Dictionary-backed store with lazy expiration.

    Internal storage: key -> (value, expires_at), expires_at = 0 means no
    expiration. Timestamps come from `clock` (time.monotonic by default).
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.RLock()
        # scan cursor -> last key examined by the call that returned it
        self._cursors: "OrderedDict[int, str]" = OrderedDict()
        self._cursor_ids = itertools.count(1)

    def _live(self, key: str, now: float) -> Optional[Tuple[str, float]]:
        """Entry for key, dropping it if expired. Caller holds the lock."""
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] and entry[1] <= now:
            del self._data[key]
            return None
        return entry

    def _live_keys(self) -> List[str]:
        now = self._clock()
        with self._lock:
            return sorted(k for k in list(self._data) if self._live(k, now) is not None)

    def ping(self) -> str:
        return PONG

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = (value, 0)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._live(key, self._clock())
        return entry[0] if entry else None

    def delete(self, key: str) -> int:
        with self._lock:
            if self._live(key, self._clock()) is None:
                return 0
            del self._data[key]
            return 1

    def exists(self, key: str) -> int:
        with self._lock:
            return 0 if self._live(key, self._clock()) is None else 1

    def ttl(self, key: str) -> int:
        now = self._clock()
        with self._lock:
            entry = self._live(key, now)
        if entry is None:
            return TTL_KEY_MISSING
        if not entry[1]:
            return TTL_NO_EXPIRY
        # Rounded like the server does
        return int(entry[1] - now + 0.5)

    def expire(self, key: str, seconds: int) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._live(key, now)
            if entry is None:
                return False
            if seconds <= 0:
                del self._data[key]
            else:
                self._data[key] = (entry[0], now + seconds)
            return True

    def keys(self, pattern: str) -> Set[str]:
        regex = _matcher("keys", pattern)
        return {k for k in self._live_keys() if regex.fullmatch(k)}

    def scan(self, cursor: int, pattern: str, count: int) -> Tuple[List[str], int]:
        """
        Walks the sorted live keys, examining `count` keys per call.

        A cursor remembers the last key it examined, so the next call resumes
        just after it. Keys present for the whole pass are returned even when
        others are deleted or added between calls.
        """
        if count < 1:
            raise StoreOperationError("store operation scan failed: count must be positive")
        regex = _matcher("scan", pattern)

        with self._lock:
            last = self._cursors.get(cursor) if cursor else None
            if cursor and last is None:
                raise StoreOperationError("store operation scan failed: invalid cursor")
            keys = self._live_keys()
            start = 0 if last is None else bisect_right(keys, last)

            page = keys[start:start + count]
            if start + count >= len(keys):
                next_cursor = 0
            else:
                next_cursor = next(self._cursor_ids)
                self._cursors[next_cursor] = page[-1]
                while len(self._cursors) > MAX_CURSORS:
                    self._cursors.popitem(last=False)

        return [k for k in page if regex.fullmatch(k)], next_cursor

    def pool_stats(self) -> PoolStats:
        return PoolStats(max_connections=0, connected=0, in_use=0, idle=0)

    def close(self) -> None:
        with self._lock:
            self._data.clear()
            self._cursors.clear()
