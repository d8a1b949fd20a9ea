"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'park_booking_attempts_total',
    'Total booking attempts',
    ['status']  # success, rejected, error
)

booking_latency = Histogram(
    'park_booking_latency_seconds',
    'Booking transaction latency',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

capacity_rejections = Counter(
    'park_capacity_rejections_total',
    'Capacity reservations refused because the event was full'
)

reference_collisions = Counter(
    'park_booking_reference_collisions_total',
    'Booking reference uniqueness collisions that forced a retry'
)

# Gate metrics
redemption_attempts = Counter(
    'park_redemption_attempts_total',
    'Ticket redemption attempts at the gate',
    ['result']  # redeemed, or the error code
)

# Cancellation metrics
cancellations = Counter(
    'park_cancellations_total',
    'Booking cancellation attempts',
    ['result']  # cancelled, or the error code
)

# Cache metrics
cache_operations = Counter(
    'park_cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(status: str):
    """Record booking attempt. Status: success, rejected, error"""
    booking_attempts.labels(status=status).inc()


def record_redemption(result: str):
    redemption_attempts.labels(result=result).inc()


def record_cancellation(result: str):
    cancellations.labels(result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
