"""Trace id propagation.

The HTTP layer binds a trace id per request; downstream calls read it back and
forward it so logs can be correlated across services.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Mapping

TRACE_ID_HEADER = "X-Trace-ID"
REQUEST_ID_HEADER = "X-Request-ID"

_trace_id: ContextVar[str | None] = ContextVar("lesson_graph_trace_id", default=None)


def generate_trace_id() -> str:
    return str(uuid.uuid4())


def resolve_trace_id(headers: Mapping[str, str] | None) -> str:
    """Prefer X-Trace-ID, accept X-Request-ID, otherwise mint a new id."""
    if headers:
        for name in (TRACE_ID_HEADER, REQUEST_ID_HEADER):
            value = (headers.get(name) or "").strip()
            if value:
                return value
    return generate_trace_id()


def current_trace_id() -> str | None:
    return _trace_id.get()


@contextmanager
def bind_trace_id(trace_id: str) -> Iterator[str]:
    token = _trace_id.set(trace_id)
    try:
        yield trace_id
    finally:
        _trace_id.reset(token)


def trace_headers() -> dict[str, str]:
    trace_id = current_trace_id()
    if not trace_id:
        return {}
    return {TRACE_ID_HEADER: trace_id, REQUEST_ID_HEADER: trace_id}
