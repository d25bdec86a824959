from __future__ import annotations

from lesson_graph.observability import downstream_count, record_downstream, record_http, registry, render
from lesson_graph.tracing import bind_trace_id, current_trace_id, resolve_trace_id, trace_headers


def _sample(name: str, **labels: str) -> float:
    return registry.get_sample_value(name, labels) or 0.0


def test_http_requests_are_counted_by_route_and_status():
    route = "/api/v1/knowledge/graph"
    ok_before = _sample("lesson_graph_http_requests_total", method="GET", route=route, status="200")
    err_before = _sample("lesson_graph_http_requests_total", method="GET", route=route, status="502")
    hist_before = _sample("lesson_graph_http_request_duration_seconds_count", method="GET", route=route)

    record_http("GET", route, 200, 0.010)
    record_http("GET", route, 502, 0.030)

    assert _sample("lesson_graph_http_requests_total", method="GET", route=route, status="200") == ok_before + 1
    assert _sample("lesson_graph_http_requests_total", method="GET", route=route, status="502") == err_before + 1
    assert _sample("lesson_graph_http_request_duration_seconds_count", method="GET", route=route) == hist_before + 2


def test_downstream_attempts_without_response_use_status_zero():
    before = downstream_count("agent", "build_graph")
    failed_before = _sample(
        "lesson_graph_downstream_requests_total", service="agent", operation="build_graph", status="0"
    )

    record_downstream("agent", "build_graph", 0, 0.5)

    assert downstream_count("agent", "build_graph") == before + 1
    assert (
        _sample("lesson_graph_downstream_requests_total", service="agent", operation="build_graph", status="0")
        == failed_before + 1
    )
    assert downstream_count("agent", "never_called") == 0


def test_render_exposition_format():
    record_http("GET", "/health", 200, 0.001)
    payload, content_type = render()
    assert content_type.startswith("text/plain")
    assert b"lesson_graph_http_requests_total" in payload


def test_trace_binding():
    assert resolve_trace_id({"X-Trace-ID": " t1 ", "X-Request-ID": "r1"}) == "t1"
    assert resolve_trace_id({"X-Request-ID": "r1"}) == "r1"
    assert resolve_trace_id({}) != resolve_trace_id(None)

    assert current_trace_id() is None
    assert trace_headers() == {}
    with bind_trace_id("abc"):
        assert trace_headers() == {"X-Trace-ID": "abc", "X-Request-ID": "abc"}
    assert current_trace_id() is None
