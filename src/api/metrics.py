"""
Prometheus metrics for monitoring the Redis connection.
"""
from prometheus_client import Counter, Gauge

# Connection metrics
redis_connection_up = Gauge(
    'redis_connection_up',
    'Whether the last Redis connection attempt succeeded (1) or not (0)'
)

redis_connection_attempts_total = Counter(
    'redis_connection_attempts_total',
    'Total Redis connection attempts',
    ['status']
)

redis_connection_errors_total = Counter(
    'redis_connection_errors_total',
    'Total Redis connection errors by classification',
    ['kind']
)
