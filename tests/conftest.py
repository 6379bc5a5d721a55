"""Pytest configuration for kvclient"""
import os
import uuid

import pytest
import redis
from redis.backoff import NoBackoff
from redis.retry import Retry

from kvclient import MemoryBackend, StoreConfig, connect


def redis_test_config(**overrides) -> StoreConfig:
    """Config for the live test server, from TEST_REDIS_ADDR / TEST_REDIS_PASSWORD"""
    options = {
        "addr": os.getenv("TEST_REDIS_ADDR", "localhost:6379"),
        "password": os.getenv("TEST_REDIS_PASSWORD") or None,
        "db": 0,
        "pool_size": 5,
        "idle_check_interval": 0,
    }
    options.update(overrides)
    return StoreConfig(**options)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep KVSTORE_* variables from leaking into configs built by tests"""
    for name in list(os.environ):
        if name.startswith("KVSTORE_"):
            monkeypatch.delenv(name)


@pytest.fixture(scope="session")
def redis_available():
    """Whether a Redis server answers at TEST_REDIS_ADDR"""
    config = redis_test_config()
    ping_client = redis.Redis(
        host=config.host,
        port=config.port,
        password=config.password,
        socket_connect_timeout=1,
        socket_timeout=1,
        retry=Retry(NoBackoff(), 0),
    )
    try:
        return ping_client.ping()
    except redis.RedisError:
        return False
    finally:
        ping_client.close()


@pytest.fixture
def live_redis(redis_available):
    if not redis_available:
        pytest.skip("Redis not reachable at TEST_REDIS_ADDR")


@pytest.fixture
def ns():
    """Unique key prefix so tests never collide on a shared server"""
    return f"kvtest:{uuid.uuid4().hex[:12]}:"


@pytest.fixture(params=["memory", pytest.param("redis", marks=pytest.mark.redis)])
def client(request, ns):
    """Store client over each backend; the Redis one is skipped without a server"""
    if request.param == "memory":
        store = connect(backend=MemoryBackend())
    else:
        request.getfixturevalue("live_redis")
        store = connect(redis_test_config())

    yield store

    if not store.closed:
        # Cleanup
        for key in list(store.scan_iter(ns + "*", count=100)):
            store.delete(key)
        store.close()
