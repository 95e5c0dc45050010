"""Prometheus metrics for the orders and payments services."""

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response


payment_urls_built_total = Counter(
    "payment_urls_built_total",
    "Signed gateway redirect URLs handed out",
    ["service"],
)
checkout_rejected_total = Counter(
    "checkout_rejected_total",
    "Checkout attempts refused before a URL was built",
    ["service", "reason"],
)
callbacks_total = Counter(
    "gateway_callbacks_total",
    "Gateway callbacks handled, by outcome",
    ["service", "channel", "outcome"],
)
store_call_seconds = Histogram(
    "order_store_call_seconds",
    "Latency of order store calls made by the payment flow",
    ["service", "operation"],
)
order_transitions_total = Counter(
    "order_transitions_total",
    "Order state transitions applied",
    ["service", "to_state"],
)
order_transition_conflicts_total = Counter(
    "order_transition_conflicts_total",
    "Conditional transitions that lost to a concurrent writer",
    ["service", "to_state"],
)
expiry_sweep_seconds = Histogram(
    "order_expiry_sweep_seconds",
    "Duration of one expiry sweep pass",
    ["service"],
)
outbox_pending_total = Gauge(
    "outbox_pending_total",
    "Current count of outbox events not yet sent",
    ["service"],
)
outbox_oldest_pending_age_seconds = Gauge(
    "outbox_oldest_pending_age_seconds",
    "Age in seconds of the oldest pending outbox event",
    ["service"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
