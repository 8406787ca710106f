"""
Prometheus metrics for the booking engine.

Service timings come from ``BaseService.measure_operation``; the domain
counters below are fed directly by the allocator, lifecycle manager, ledger
and retry helper. Everything lives in a private registry served at /metrics.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

http_request_duration_seconds = Histogram(
    "consultbook_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_total = Counter(
    "consultbook_http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

http_requests_in_progress = Gauge(
    "consultbook_http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method", "endpoint"],
    registry=REGISTRY,
)

service_operation_duration_seconds = Histogram(
    "consultbook_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "consultbook_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "consultbook_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

# Domain counters
booking_outcomes_total = Counter(
    "consultbook_booking_outcomes_total",
    "Booking allocation and transition outcomes",
    ["operation", "outcome"],  # outcome: ok or an error code such as SlotFull
    registry=REGISTRY,
)

busy_retries_total = Counter(
    "consultbook_busy_retries_total",
    "Retries caused by row lock contention",
    ["operation"],
    registry=REGISTRY,
)

ledger_movements_total = Counter(
    "consultbook_ledger_movements_total",
    "Sessions moved in or out of user packages",
    ["movement"],  # purchase | reserve | restore | deactivate
    registry=REGISTRY,
)

slots_created_total = Counter(
    "consultbook_slots_created_total",
    "Schedule slots created, and duplicates skipped",
    ["result"],  # created | skipped
    registry=REGISTRY,
)

CACHE_TTL_SECONDS = 1.0


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None

    @staticmethod
    def record_http_request(method: str, endpoint: str, duration: float, status_code: int) -> None:
        labels = {"method": method, "endpoint": endpoint, "status_code": str(status_code)}

        http_request_duration_seconds.labels(**labels).observe(duration)
        http_requests_total.labels(**labels).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def track_http_request_start(method: str, endpoint: str) -> None:
        http_requests_in_progress.labels(method=method, endpoint=endpoint).inc()

    @staticmethod
    def track_http_request_end(method: str, endpoint: str) -> None:
        http_requests_in_progress.labels(method=method, endpoint=endpoint).dec()

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from the @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingAllocator')
            operation: Operation/method name (e.g., 'create_booking')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()

        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_booking_outcome(operation: str, outcome: str) -> None:
        booking_outcomes_total.labels(operation=operation, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_busy_retry(operation: str) -> None:
        busy_retries_total.labels(operation=operation).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_ledger_movement(movement: str, amount: int = 1) -> None:
        ledger_movements_total.labels(movement=movement).inc(amount)
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_slots_created(created: int, skipped: int) -> None:
        if created:
            slots_created_total.labels(result="created").inc(created)
        if skipped:
            slots_created_total.labels(result="skipped").inc(skipped)
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts

        if payload is not None and ts is not None and (now - ts) <= CACHE_TTL_SECONDS:
            return payload

        with PrometheusMetrics._cache_lock:
            payload = PrometheusMetrics._cache_payload
            ts = PrometheusMetrics._cache_ts
            if payload is None or ts is None or (now - ts) > CACHE_TTL_SECONDS:
                PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
                PrometheusMetrics._cache_ts = monotonic()
                payload = PrometheusMetrics._cache_payload

        return cast(bytes, payload)

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


# Singleton instance
prometheus_metrics = PrometheusMetrics()
