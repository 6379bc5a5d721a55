"""Store backend implementations."""
from .base import StoreBackend
from .memory import MemoryBackend
from .redis_backend import RedisBackend

__all__ = [
    "StoreBackend",
    "MemoryBackend",
    "RedisBackend",
]
