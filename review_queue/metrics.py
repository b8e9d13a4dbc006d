"""
Prometheus metrics for the review queue API.

This module provides:
- HTTP request counter (method, path, status)
- Queue operation outcome counter (operation, result)
- Request latency histogram (method, path)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# operation: enqueue, claim, list, remove, admit
# result: created, duplicate, failed, claimed, none, ok, removed, admitted, rejected
queue_operations_total = Counter(
    "queue_operations_total",
    "Total queue and event-lock operation outcomes",
    labelnames=["operation", "result"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    # Per-user paths would explode label cardinality
    normalized_path = path.split("?")[0]
    if normalized_path.startswith("/score/"):
        normalized_path = "/score/{user}"

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_queue_outcome(operation: str, result: str) -> None:
    """Count one outcome of a queue or locker operation."""
    queue_operations_total.labels(operation=operation, result=result).inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """Content type for Prometheus exposition format."""
    return CONTENT_TYPE_LATEST
