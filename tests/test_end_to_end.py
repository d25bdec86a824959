from __future__ import annotations

import asyncio

from lesson_graph.agent import BuildGraphRequest, BuildGraphResult
from lesson_graph.documents.models import DocumentStatus, KnowledgeDocument
from lesson_graph.documents.repository import InMemoryDocumentRepository
from lesson_graph.ingestion import IngestionPipeline
from lesson_graph.knowledge_graph.memory_store import InMemoryGraphStore
from lesson_graph.knowledge_graph.models import KnowledgePoint, Relation
from lesson_graph.knowledge_graph.query_engine import GraphQueryEngine
from lesson_graph.tasks import TaskSpawner


class ExtractingAgent:
    """Writes a fixed five-node, three-edge graph for every document it sees."""

    def __init__(self, store: InMemoryGraphStore):
        self.store = store

    async def build_graph(self, request: BuildGraphRequest) -> BuildGraphResult:
        names = ["Fractions", "Numerator", "Denominator", "Equivalent fractions", "Mixed numbers"]
        points = [
            KnowledgePoint(
                id=f"{request.document_id}-{i}",
                name=name,
                user_id=request.user_id,
                document_id=request.document_id,
                subject=request.subject,
                grade=request.grade,
            )
            for i, name in enumerate(names)
        ]
        ids = [p.id for p in points]
        relations = [
            Relation(ids[1], ids[0], "PART_OF", {"strength": 0.9}),
            Relation(ids[2], ids[0], "PART_OF", {"strength": 0.9}),
            Relation(ids[3], ids[0], "DEPENDS_ON", {}),
        ]
        await self.store.upsert(points=points, relations=relations)
        return BuildGraphResult(success=True, message="ok", entity_count=5, relation_count=3)

    async def delete_document_nodes(self, document_id: str) -> None:
        await self.store.delete_document_nodes(document_id)


def test_upload_extract_and_view_graph():
    async def main():
        store = InMemoryGraphStore()
        repo = InMemoryDocumentRepository()
        spawner = TaskSpawner(max_concurrency=2)
        pipeline = IngestionPipeline(repo, ExtractingAgent(store), spawner)
        engine = GraphQueryEngine(store)

        doc = await pipeline.submit(
            KnowledgeDocument(user_id="owner-u", title="Fractions", content="...", subject="math", grade="Grade 4")
        )
        await spawner.drain()
        status = await pipeline.status(doc.id, "owner-u")
        graph = await engine.get_graph(owner_id="owner-u", scope="one_hop")
        stranger = await engine.get_graph(owner_id="owner-v", scope="one_hop")

        await pipeline.delete(doc.id, "owner-u")
        await spawner.drain()
        after = await engine.get_graph(owner_id="owner-u")
        return repo.history[doc.id], status, graph, stranger, after

    history, status, graph, stranger, after = asyncio.run(main())
    assert history == [DocumentStatus.PENDING, DocumentStatus.PROCESSING, DocumentStatus.COMPLETED]
    assert (status.status, status.entity_count, status.relation_count) == (DocumentStatus.COMPLETED, 5, 3)

    assert graph.total_nodes == 5
    assert graph.total_edges <= 3
    assert len({n.id for n in graph.nodes}) == 5
    ids = {n.id for n in graph.nodes}
    assert all(e.source in ids and e.target in ids for e in graph.edges)
    assert all(n.subject == "math" for n in graph.nodes)

    assert stranger.total_nodes == 0
    assert after.total_nodes == 0
