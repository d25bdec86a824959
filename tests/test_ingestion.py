from __future__ import annotations

import asyncio

import httpx
import pytest

from lesson_graph.agent import BuildGraphRequest, BuildGraphResult
from lesson_graph.documents.models import DocumentStatus, KnowledgeDocument
from lesson_graph.documents.repository import InMemoryDocumentRepository
from lesson_graph.errors import AgentError, DocumentNotFound
from lesson_graph.ingestion import INTERNAL_ERROR_MSG, IngestionPipeline
from lesson_graph.tasks import TaskSpawner

from conftest import agent_for

PENDING, PROCESSING, COMPLETED, FAILED = (
    DocumentStatus.PENDING,
    DocumentStatus.PROCESSING,
    DocumentStatus.COMPLETED,
    DocumentStatus.FAILED,
)


class FakeAgent:
    def __init__(self, result=None, *, error: Exception | None = None, delay_s: float = 0.0):
        self.result = result or BuildGraphResult(success=True, entity_count=5, relation_count=3)
        self.error = error
        self.delay_s = delay_s
        self.requests: list[BuildGraphRequest] = []
        self.deleted: list[str] = []
        self.delete_error: Exception | None = None
        self.running = 0
        self.peak = 0

    async def build_graph(self, request: BuildGraphRequest) -> BuildGraphResult:
        self.requests.append(request)
        self.running += 1
        self.peak = max(self.peak, self.running)
        try:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            if self.error is not None:
                raise self.error
            return self.result
        finally:
            self.running -= 1

    async def delete_document_nodes(self, document_id: str) -> None:
        self.deleted.append(document_id)
        if self.delete_error is not None:
            raise self.delete_error


def _doc(user_id: str = "user-a", **kw) -> KnowledgeDocument:
    kw.setdefault("title", "Fractions")
    kw.setdefault("content", "A fraction is a part of a whole.")
    return KnowledgeDocument(user_id=user_id, **kw)


async def _ingest(agent, *, ingest_timeout_s: float = 600.0, repo=None):
    repo = repo or InMemoryDocumentRepository()
    spawner = TaskSpawner(max_concurrency=4)
    pipeline = IngestionPipeline(repo, agent, spawner, ingest_timeout_s=ingest_timeout_s)
    stored = await pipeline.submit(_doc(subject="math", grade="Grade 5"))
    assert stored.status is PENDING
    await spawner.drain()
    return repo, await repo.get(stored.id, "user-a")


def test_successful_ingestion_records_counts():
    agent = FakeAgent()
    repo, doc = asyncio.run(_ingest(agent))
    assert doc.status is COMPLETED
    assert (doc.entity_count, doc.relation_count) == (5, 3)
    assert repo.history[doc.id] == [PENDING, PROCESSING, COMPLETED]
    request = agent.requests[0]
    assert (request.document_id, request.user_id, request.subject, request.grade) == (
        doc.id,
        "user-a",
        "math",
        "Grade 5",
    )


def test_agent_reported_failure_keeps_its_message():
    agent = FakeAgent(BuildGraphResult(success=False, message="document too short"))
    repo, doc = asyncio.run(_ingest(agent))
    assert doc.status is FAILED
    assert doc.error_msg == "document too short"
    assert repo.history[doc.id] == [PENDING, PROCESSING, FAILED]


def test_agent_error_marks_failed():
    agent = FakeAgent(error=AgentError("agent processing failed (status 400)"))
    _, doc = asyncio.run(_ingest(agent))
    assert doc.status is FAILED
    assert doc.error_msg == "agent processing failed (status 400)"


def test_timeout_marks_failed():
    agent = FakeAgent(delay_s=5)
    _, doc = asyncio.run(_ingest(agent, ingest_timeout_s=0.01))
    assert doc.status is FAILED
    assert "timed out" in doc.error_msg


def test_unexpected_error_still_reaches_terminal_state():
    agent = FakeAgent(error=RuntimeError("boom"))
    repo, doc = asyncio.run(_ingest(agent))
    assert doc.status is FAILED
    assert doc.error_msg == INTERNAL_ERROR_MSG
    assert repo.history[doc.id] == [PENDING, PROCESSING, FAILED]


@pytest.mark.parametrize(
    "status_code, body, message",
    [
        (400, b"nope", "agent processing failed (status 400)"),
        (200, b"not json", "failed to parse agent response"),
        (503, b"", "agent service call failed: build_graph returned status 503"),
    ],
)
def test_agent_http_failures(status_code, body, message):
    async def main():
        agent = agent_for(lambda _request: httpx.Response(status_code, content=body))
        try:
            return await _ingest(agent)
        finally:
            await agent.aclose()

    _, doc = asyncio.run(main())
    assert doc.status is FAILED
    assert doc.error_msg == message


class _StuckRepository(InMemoryDocumentRepository):
    async def update_status(self, document_id, status, **kw):
        if status is PROCESSING:
            raise ConnectionError("database unavailable")
        await super().update_status(document_id, status, **kw)


def test_processing_write_failure_leaves_document_pending():
    agent = FakeAgent()
    repo, doc = asyncio.run(_ingest(agent, repo=_StuckRepository()))
    assert doc.status is PENDING
    assert agent.requests == []
    assert repo.history[doc.id] == [PENDING]


def test_concurrent_ingestions_are_bounded():
    async def main():
        agent = FakeAgent(delay_s=0.01)
        repo = InMemoryDocumentRepository()
        spawner = TaskSpawner(max_concurrency=2)
        pipeline = IngestionPipeline(repo, agent, spawner)
        docs = [await pipeline.submit(_doc(title=f"doc {i}")) for i in range(6)]
        await spawner.drain()
        return agent, [await repo.get(d.id, "user-a") for d in docs]

    agent, docs = asyncio.run(main())
    assert agent.peak <= 2
    assert all(d.status is COMPLETED for d in docs)


def _pipeline(agent):
    repo = InMemoryDocumentRepository()
    spawner = TaskSpawner()
    return repo, spawner, IngestionPipeline(repo, agent, spawner)


def test_delete_checks_ownership_first():
    async def main():
        agent = FakeAgent()
        repo, spawner, pipeline = _pipeline(agent)
        stored = await repo.create(_doc())
        with pytest.raises(DocumentNotFound):
            await pipeline.delete(stored.id, "user-b")
        await spawner.drain()
        return agent, await repo.get(stored.id, "user-a")

    agent, doc = asyncio.run(main())
    assert doc is not None
    assert agent.deleted == []


def test_delete_removes_record_and_schedules_node_cleanup():
    async def main():
        agent = FakeAgent()
        agent.delete_error = AgentError("node deletion returned status 500")
        repo, spawner, pipeline = _pipeline(agent)
        stored = await repo.create(_doc())
        await pipeline.delete(stored.id, "user-a")
        await spawner.drain()
        with pytest.raises(DocumentNotFound):
            await pipeline.get(stored.id, "user-a")
        return agent, stored

    agent, stored = asyncio.run(main())
    assert agent.deleted == [stored.id]


def test_reads_are_owner_scoped():
    async def main():
        _, _, pipeline = _pipeline(FakeAgent())
        stored = await pipeline.documents.create(_doc())
        await pipeline.documents.create(_doc(user_id="user-b"))
        docs, total = await pipeline.list_documents("user-a")
        status = await pipeline.status(stored.id, "user-a")
        with pytest.raises(DocumentNotFound):
            await pipeline.status(stored.id, "user-b")
        return docs, total, status

    docs, total, status = asyncio.run(main())
    assert total == 1 and docs[0].user_id == "user-a"
    assert status.status is PENDING
