from __future__ import annotations


class LessonGraphError(Exception):
    """Base class for all errors raised by lesson_graph."""


class DownstreamError(LessonGraphError):
    """A call to a downstream HTTP service failed."""


class DownstreamStatusError(DownstreamError):
    """Retries were exhausted on a retryable HTTP status (429 or 5xx)."""

    def __init__(self, status_code: int, body: bytes = b"", *, operation: str = ""):
        self.status_code = status_code
        self.body = body
        self.operation = operation
        super().__init__(f"{operation or 'downstream'} returned status {status_code}")


class AgentError(LessonGraphError):
    """The agent service rejected a request or answered with a non-success status."""


class AgentResponseError(AgentError):
    """The agent service answered with a body that could not be parsed."""


class DocumentNotFound(LessonGraphError):
    """The document does not exist or is not owned by the caller."""


class InvalidStatusTransition(LessonGraphError):
    def __init__(self, document_id: str, current: str, target: str):
        self.document_id = document_id
        self.current = current
        self.target = target
        super().__init__(f"document {document_id}: cannot move from {current} to {target}")


class InvalidDocument(LessonGraphError):
    """An uploaded document failed validation."""


class GraphRetrievalError(LessonGraphError):
    """The graph store could not answer a read query."""
