"""
Prometheus metrics for the media links API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Token operation counter (operation, result)
- Cascade deletion counter (result)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

# HTTP request counter with labels for method, path, and status code
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Request latency histogram in seconds
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# operation: issue, extend, revoke, verify
# result: ok, or the error kind that ended the operation
token_operations_total = Counter(
    "token_operations_total",
    "Token authority outcomes",
    labelnames=["operation", "result"]
)

# Individual media deletions performed while deleting an account
# result: succeeded, failed
cascade_deletions_total = Counter(
    "cascade_deletions_total",
    "Media records removed by account cascade deletes",
    labelnames=["result"]
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
    # Normalize path to avoid high-cardinality labels
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_token_operation(operation: str, result: str) -> None:
    token_operations_total.labels(operation=operation, result=result).inc()


def record_cascade_outcome(succeeded: int, failed: int) -> None:
    """Add one cascade run's per-record outcomes to the deletion counter."""
    if succeeded:
        cascade_deletions_total.labels(result="succeeded").inc(succeeded)
    if failed:
        cascade_deletions_total.labels(result="failed").inc(failed)


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
