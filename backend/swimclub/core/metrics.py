"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Reservation metrics
reservation_attempts = Counter(
    'reservation_attempts_total',
    'Reservation attempts by operation and outcome',
    ['operation', 'status']  # status: success, conflict, invalid, error
)

batch_latency = Histogram(
    'batch_reservation_latency_seconds',
    'Batch reservation latency (validation, locking and commit)',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

day_locks = Counter(
    'day_availability_locks_total',
    'Per-day write locks taken before counting and inserting reservations'
)

day_cancellations = Counter(
    'day_cancellations_total',
    'Days closed by administrators'
)

refunds_created = Counter(
    'cancellation_refunds_created_total',
    'Cancellation refunds created by day cancellations'
)

# Notification metrics
notifications = Counter(
    'notifications_total',
    'Notifications sent to members',
    ['kind', 'result']  # kind: batch, release; result: sent, failed
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_reservation_attempt(operation: str, status: str):
    """Record reservation attempt. Status: success, conflict, invalid, error"""
    reservation_attempts.labels(operation=operation, status=status).inc()


def record_notification(kind: str, sent: bool):
    notifications.labels(kind=kind, result="sent" if sent else "failed").inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
