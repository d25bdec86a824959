"""Prometheus metrics for HTTP routes and downstream calls."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest

registry = CollectorRegistry()

HTTP_REQUESTS = Counter(
    "lesson_graph_http_requests",
    "HTTP requests served",
    ["method", "route", "status"],
    registry=registry,
)
HTTP_DURATION = Histogram(
    "lesson_graph_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "route"],
    registry=registry,
)
DOWNSTREAM_REQUESTS = Counter(
    "lesson_graph_downstream_requests",
    "Downstream call attempts",
    ["service", "operation", "status"],
    registry=registry,
)
DOWNSTREAM_DURATION = Histogram(
    "lesson_graph_downstream_request_duration_seconds",
    "Downstream call attempt latency",
    ["service", "operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
    registry=registry,
)


def record_http(method: str, route: str, status_code: int, latency_s: float) -> None:
    route = route or "UNKNOWN"
    HTTP_REQUESTS.labels(method, route, str(status_code)).inc()
    HTTP_DURATION.labels(method, route).observe(latency_s)


def record_downstream(service: str, operation: str, status_code: int, latency_s: float) -> None:
    # status 0 means the request never produced a response
    service = service or "unknown"
    operation = operation or "unknown"
    DOWNSTREAM_REQUESTS.labels(service, operation, str(status_code)).inc()
    DOWNSTREAM_DURATION.labels(service, operation).observe(latency_s)


def downstream_count(service: str, operation: str) -> int:
    value = registry.get_sample_value(
        "lesson_graph_downstream_request_duration_seconds_count",
        {"service": service, "operation": operation},
    )
    return int(value or 0)


def render() -> tuple[bytes, str]:
    return generate_latest(registry), CONTENT_TYPE_LATEST
