"""
Store backend interface.
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Set, Tuple

from kvclient.models import PoolStats


class StoreBackend(ABC):
    """
    Narrow capability the store client needs from a key-value store.

    get() returns None for a missing key. Communication or protocol
    failures are raised as StoreOperationError.
    """

    @abstractmethod
    def ping(self) -> str:
        """Round-trip a no-op and return the store's liveness reply."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value with no expiration."""
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Get a value by key."""
        pass

    @abstractmethod
    def delete(self, key: str) -> int:
        """Delete a key, returning how many keys were removed."""
        pass

    @abstractmethod
    def exists(self, key: str) -> int:
        """Count of the given keys that exist."""
        pass

    @abstractmethod
    def ttl(self, key: str) -> int:
        """Remaining seconds to live, -1 without expiration, -2 if absent."""
        pass

    @abstractmethod
    def expire(self, key: str, seconds: int) -> bool:
        """Set a key's time to live; False if the key does not exist."""
        pass

    @abstractmethod
    def keys(self, pattern: str) -> Set[str]:
        """All keys matching a glob-style pattern."""
        pass

    @abstractmethod
    def scan(self, cursor: int, pattern: str, count: int) -> Tuple[List[str], int]:
        """One page of a cursor-based scan: (keys, next cursor)."""
        pass

    @abstractmethod
    def pool_stats(self) -> PoolStats:
        """Connection pool bookkeeping."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release every connection held by the backend."""
        pass
