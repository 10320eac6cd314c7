"""Prometheus metric definitions shared across components."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


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
bank_requests_total = Counter(
    "bank_requests_total",
    "Calls made to the acquiring bank",
    ["operation", "outcome"],
)
bank_latency_seconds = Histogram("bank_latency_seconds", "Acquiring bank call latency seconds", ["operation"])
registrations_total = Counter("registrations_total", "Payment registrations by outcome", ["outcome"])
reconciliations_total = Counter("reconciliations_total", "Return reconciliations by terminal state", ["state"])
vouchers_issued_total = Counter("vouchers_issued_total", "Vouchers issued", ["artifact"])
voucher_access_total = Counter("voucher_access_total", "Voucher download attempts", ["outcome"])
side_effect_failures_total = Counter(
    "side_effect_failures_total",
    "Best-effort fulfillment side effects that failed",
    ["channel"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
