"""
Prometheus metrics for the command service and the relay.

This module provides:
- HTTP request counter (service, method, path, status)
- Request latency histogram (service, method, path)
- SOS ingestion outcome counter (result)
- Relay forward outcome counter (outcome) and retry queue size gauge

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["service", "method", "path", "status"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["service", "method", "path"]
)

# result: ok, validation_error, error
sos_requests_total = Counter(
    "sos_requests_total",
    "Total SOS ingestion outcomes at the command service",
    labelnames=["result"]
)

# outcome: forwarded, queued, retried, failed
relay_forward_total = Counter(
    "relay_forward_total",
    "Relay forward attempt outcomes",
    labelnames=["outcome"]
)

relay_queue_size = Gauge(
    "relay_queue_size",
    "Number of alerts waiting in the relay retry queue"
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(service: str, method: str, path: str, status: int, latency_seconds: float) -> None:
    """Count the request and observe its latency. service is "command" or "relay"."""
    labels = {"service": service, "method": method, "path": path.split("?")[0]}
    http_requests_total.labels(status=str(status), **labels).inc()
    request_latency_seconds.labels(**labels).observe(latency_seconds)


def record_sos_outcome(result: str) -> None:
    """Record a /sos processing outcome (ok, validation_error, error)."""
    sos_requests_total.labels(result=result).inc()


def record_forward_outcome(outcome: str) -> None:
    """
    Record a relay forward outcome.

    Args:
        outcome: one of
            - "forwarded": delivered (immediately or from the queue)
            - "queued": immediate attempt failed, alert queued
            - "retried": a queued attempt failed and will be retried
            - "failed": dead-lettered after the configured attempt cap
    """
    relay_forward_total.labels(outcome=outcome).inc()


def set_queue_size(size: int) -> None:
    relay_queue_size.set(size)


def get_metrics() -> bytes:
    """Generate Prometheus exposition format metrics."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
