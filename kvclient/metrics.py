"""Prometheus metrics"""
from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client import CollectorRegistry

# Create registry
registry = CollectorRegistry()

# Operation metrics
operations_total = Counter(
    'kvstore_operations_total',
    'Total store operations',
    ['operation', 'status'],
    registry=registry
)

operation_duration = Histogram(
    'kvstore_operation_duration_seconds',
    'Store operation latency',
    ['operation'],
    registry=registry
)

# Pool metrics
connections_reaped_total = Counter(
    'kvstore_connections_reaped_total',
    'Pooled connections closed by the idle reaper',
    registry=registry
)

connections_opened_total = Counter(
    'kvstore_connections_opened_total',
    'Idle connections opened to reach min_idle_conns',
    registry=registry
)

def get_metrics() -> bytes:
    """Render the kvclient registry in the Prometheus text format"""
    return generate_latest(registry)
