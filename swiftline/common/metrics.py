"""Prometheus metric definitions for the client engine."""

from prometheus_client import Counter, Histogram, generate_latest


http_requests_total = Counter(
    "swiftline_http_requests_total",
    "Total HTTP requests issued by the transport",
    ["service", "method", "outcome"],
)
http_request_duration_seconds = Histogram(
    "swiftline_http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "method"],
)
token_refresh_total = Counter(
    "swiftline_token_refresh_total",
    "Access-token refresh calls by result",
    ["service", "result"],
)
session_expired_total = Counter(
    "swiftline_session_expired_total",
    "Sessions destroyed after an unrecoverable auth failure",
    ["service"],
)
payment_status_checks_total = Counter(
    "swiftline_payment_status_checks_total",
    "Payment status polls by result",
    ["service", "result"],
)
payment_attempts_total = Counter(
    "swiftline_payment_attempts_total",
    "Payment attempts by outcome",
    ["service", "outcome"],
)
live_updates_total = Counter(
    "swiftline_live_updates_total",
    "Live order updates received by result",
    ["service", "result"],
)


def render_metrics() -> bytes:
    """Expose all registered Prometheus metrics in text format."""

    return generate_latest()
