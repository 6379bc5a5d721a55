"""
kvclient: a thin, pooled client for a remote key-value store.

    from kvclient import connect, default_config

    with connect(default_config(addr="localhost:6379")) as client:
        client.set("greeting", "hello")
        client.get("greeting")
"""
from .backends import MemoryBackend, RedisBackend, StoreBackend
from .client import StoreClient, connect
from .config import StoreConfig, default_config, parse_addr
from .errors import (
    ClientClosedError,
    KeyNotFoundError,
    StoreClientError,
    StoreOperationError,
)
from .models import PoolStats, TTL_KEY_MISSING, TTL_NO_EXPIRY

__all__ = [
    # Client
    "StoreClient",
    "connect",
    # Configuration
    "StoreConfig",
    "default_config",
    "parse_addr",
    # Backends
    "StoreBackend",
    "MemoryBackend",
    "RedisBackend",
    # Errors
    "StoreClientError",
    "StoreOperationError",
    "ClientClosedError",
    "KeyNotFoundError",
    # Models
    "PoolStats",
    "TTL_NO_EXPIRY",
    "TTL_KEY_MISSING",
]

__version__ = "1.0.0"
