import concurrent.futures
import time

import pytest

from kvclient import (
    ClientClosedError,
    KeyNotFoundError,
    MemoryBackend,
    PoolStats,
    StoreConfig,
    StoreOperationError,
    TTL_KEY_MISSING,
    TTL_NO_EXPIRY,
    connect,
)


def test_ping(client):
    """Test ping returns the store's liveness reply"""
    assert client.ping() == "PONG"

def test_missing_key(client, ns):
    """Test a key that was never set neither exists nor reads"""
    key = ns + "missing"
    assert client.exists(key) is False
    with pytest.raises(KeyNotFoundError) as excinfo:
        client.get(key)
    assert excinfo.value.key == key

def test_set_and_get(client, ns):
    """Test setting and getting a value"""
    key = ns + "test_key"
    assert client.set(key, "test_value") is True
    assert client.get(key) == "test_value"
    assert client.exists(key) is True

def test_set_overwrites(client, ns):
    """Test overwriting an existing value"""
    key = ns + "overwrite"
    client.set(key, "first")
    client.set(key, "second")
    assert client.get(key) == "second"

def test_delete(client, ns):
    """Test delete removes the key"""
    key = ns + "del_key"
    client.set(key, "value")
    assert client.delete(key) is True
    assert client.exists(key) is False

def test_delete_missing_key(client, ns):
    """Test deleting a key that does not exist still succeeds"""
    key = ns + "never_set"
    assert client.delete(key) is True
    assert client.exists(key) is False

def test_ttl_without_expiration(client, ns):
    """Test TTL of a plainly set key is the no-expiry sentinel"""
    key = ns + "ttl_key"
    client.set(key, "value")
    assert client.ttl(key) == TTL_NO_EXPIRY == -1

def test_ttl_missing_key(client, ns):
    """Test TTL of an absent key is the missing-key sentinel"""
    assert client.ttl(ns + "absent") == TTL_KEY_MISSING == -2

def test_expire_sets_ttl(client, ns):
    """Test expire gives the key a TTL in (0, 10]"""
    key = ns + "ttl_key"
    client.set(key, "value")
    assert client.expire(key, 10) is True

    ttl = client.ttl(key)
    assert 0 < ttl <= 10

def test_expire_honored(client, ns):
    """Test an expired key disappears"""
    key = ns + "expire_key"
    client.set(key, "value")
    client.expire(key, 1)

    time.sleep(1.1)

    assert client.exists(key) is False
    assert client.ttl(key) == TTL_KEY_MISSING

def test_set_clears_expiration(client, ns):
    """Test a plain set discards an earlier TTL"""
    key = ns + "reset_ttl"
    client.set(key, "value")
    client.expire(key, 100)
    client.set(key, "new value")
    assert client.ttl(key) == TTL_NO_EXPIRY

def test_expire_nonexistent_key(client, ns):
    """Test expire on a missing key reports False instead of raising"""
    client.set(ns + "a", "1")
    assert client.expire(ns + "nonexistent_key", 5) is False

def test_keys(client, ns):
    """Test keys matches the glob pattern only"""
    prefix = ns + "test_keys_"
    client.set(prefix + "1", "value1")
    client.set(prefix + "2", "value2")
    client.set(ns + "other_key", "value3")

    assert client.keys(prefix + "*") == {prefix + "1", prefix + "2"}

def test_count_matching(client, ns):
    """Test count_matching agrees with keys"""
    prefix = ns + "test_count_"
    client.set(prefix + "1", "value1")
    client.set(prefix + "2", "value2")
    client.set(ns + "other_key", "value3")

    assert client.count_matching(prefix + "*") == 2
    for pattern in (prefix + "*", ns + "*", ns + "nothing*"):
        assert client.count_matching(pattern) == len(client.keys(pattern))

def test_scan(client, ns):
    """Test scanning 10 keys in batches of 5 yields all of them"""
    prefix = ns + "prefix_"
    for i in range(10):
        client.set(f"{prefix}{i}", f"value{i}")

    cursor = 0
    all_keys = []
    while True:
        keys, cursor = client.scan(cursor, prefix + "*", 5)
        all_keys.extend(keys)
        if cursor == 0:
            break

    assert set(all_keys) == {f"{prefix}{i}" for i in range(10)}

def test_scan_iter(client, ns):
    """Test scan_iter covers every matching key once the pass completes"""
    prefix = ns + "iter_"
    expected = {f"{prefix}{i}" for i in range(25)}
    for key in expected:
        client.set(key, "v")
    client.set(ns + "unrelated", "v")

    assert set(client.scan_iter(prefix + "*", count=7)) == expected

def test_scan_and_delete(client, ns):
    """Test deleting each scanned page still visits every key"""
    prefix = ns + "purge_"
    expected = {f"{prefix}{i}" for i in range(10)}
    for key in expected:
        client.set(key, "v")

    seen = set()
    cursor = 0
    while True:
        keys, cursor = client.scan(cursor, prefix + "*", 5)
        seen.update(keys)
        for key in keys:
            client.delete(key)
        if cursor == 0:
            break

    assert seen == expected
    assert client.count_matching(prefix + "*") == 0

def test_reversed_range_pattern(client, ns):
    """Test a reversed character range matches like its ordered form"""
    for suffix in "abcd":
        client.set(ns + suffix, "v")
    assert client.keys(ns + "[c-a]") == {ns + "a", ns + "b", ns + "c"}

def test_pool_stats(client):
    """Test pool statistics are reported"""
    client.ping()
    stats = client.pool_stats()
    assert isinstance(stats, PoolStats)
    assert stats.in_use == 0

def test_operations_after_close():
    """Test a closed client fails deterministically"""
    store = connect(backend=MemoryBackend())
    store.close()

    assert store.closed is True
    with pytest.raises(ClientClosedError):
        store.get("key")
    with pytest.raises(ClientClosedError):
        store.set("key", "value")
    with pytest.raises(ClientClosedError):
        store.ping()
    with pytest.raises(ClientClosedError):
        store.pool_stats()

def test_close_twice():
    """Test closing an already closed client raises"""
    store = connect(backend=MemoryBackend())
    store.close()
    with pytest.raises(ClientClosedError):
        store.close()

def test_closed_error_is_operation_error():
    """Test callers catching StoreOperationError also see closed-client errors"""
    store = connect(backend=MemoryBackend())
    store.close()
    with pytest.raises(StoreOperationError):
        store.exists("key")

def test_context_manager():
    """Test the client closes when the with-block exits"""
    with connect(backend=MemoryBackend()) as store:
        store.set("key", "value")
    assert store.closed is True

def test_connect_does_no_io():
    """Test connect against an unreachable address succeeds until first use"""
    config = StoreConfig(addr="127.0.0.1:1", socket_connect_timeout=1, idle_check_interval=0)
    store = connect(config)
    try:
        assert store.config is config
        with pytest.raises(StoreOperationError) as excinfo:
            store.ping()
        assert excinfo.value.cause is not None
        assert excinfo.value.__cause__ is excinfo.value.cause
    finally:
        store.close()

def test_concurrent_access(client, ns):
    """Test concurrent set/get through one shared client"""
    def write_and_read(i):
        key = f"{ns}concurrent_{i}"
        client.set(key, str(i))
        return client.get(key) == str(i)

    with concurrent.futures.ThreadPoolExecutor(max_workers=20) as executor:
        results = list(executor.map(write_and_read, range(50)))

    assert all(results)
    assert client.count_matching(ns + "concurrent_*") == 50
