"""
Prometheus metrics for monitoring
"""
import logging
import time
from functools import wraps

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

# ==================== Booking Metrics ====================

bookings_created_total = Counter(
    'bookings_created_total',
    'Total bookings created in PENDING state'
)

seat_conflicts_total = Counter(
    'seat_conflicts_total',
    'Booking attempts rejected because a seat was already held'
)

bookings_transitioned_total = Counter(
    'bookings_transitioned_total',
    'Booking lifecycle transitions out of PENDING',
    ['status']  # PAID, EXPIRED, CANCELLED
)

booking_creation_duration_seconds = Histogram(
    'booking_creation_duration_seconds',
    'Time to create a booking',
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0]
)

# ==================== Sweep Metrics ====================

sweep_duration_seconds = Histogram(
    'sweep_duration_seconds',
    'Time spent in one expiration sweep',
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0]
)

sweep_failures_total = Counter(
    'sweep_failures_total',
    'Bookings the sweeper failed to expire'
)

# ==================== Payment Metrics ====================

checkouts_created_total = Counter(
    'checkouts_created_total',
    'Payment intents created'
)

payments_finalized_total = Counter(
    'payments_finalized_total',
    'Payment confirmations applied',
    ['status']  # PAID, FAILED, EXPIRED
)

voucher_redemptions_total = Counter(
    'voucher_redemptions_total',
    'Voucher usages consumed by a paid booking'
)

notifications_failed_total = Counter(
    'notifications_failed_total',
    'Fire-and-forget notifications that raised',
    ['template']
)


# ==================== Helper Functions ====================

def track_time(metric: Histogram):
    """Decorator to track execution time"""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                return await func(*args, **kwargs)
            finally:
                metric.observe(time.time() - start_time)
        return wrapper
    return decorator


def record_transition(status) -> None:
    """Count a booking leaving PENDING"""
    bookings_transitioned_total.labels(status=getattr(status, "value", status)).inc()


def get_metrics():
    """Get current metrics in Prometheus format"""
    return generate_latest(), CONTENT_TYPE_LATEST
