"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking attempts',
    ['status']  # success, invalid, not_found, conflict, error
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking transaction latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

booking_cancellations = Counter(
    'booking_cancellations_total',
    'Bookings cancelled by their buyer'
)

stock_restorations = Counter(
    'stock_restorations_total',
    'Inventory restorations after cancellation',
    ['result']  # restored, skipped, failed
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Booking transaction retries due to storage conflicts'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

# Notification metrics
notifications_sent = Counter(
    'notifications_total',
    'Notification send attempts',
    ['result']  # sent, failed
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )

# Convenience functions for instrumentation
def record_booking_attempt(status: str):
    """Record booking attempt. Status: success, invalid, not_found, conflict, error"""
    booking_attempts.labels(status=status).inc()

def record_stock_restoration(result: str):
    """Record a cancellation restore. Result: restored, skipped, failed"""
    stock_restorations.labels(result=result).inc()

def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()

def record_notification(sent: bool):
    notifications_sent.labels(result="sent" if sent else "failed").inc()
