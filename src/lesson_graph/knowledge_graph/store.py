from __future__ import annotations

from typing import Protocol

from .models import GraphRecord, KnowledgePoint, Relation, TraversalQuery


class GraphStore(Protocol):
    """Abstraction for the backing property-graph database.

    Every read that takes an `owner_id` must only return nodes owned by it.
    """

    async def ensure_schema(self) -> None: ...

    async def upsert(self, *, points: list[KnowledgePoint], relations: list[Relation]) -> None: ...

    async def delete_document_nodes(self, document_id: str) -> int: ...

    async def traverse(self, query: TraversalQuery) -> list[GraphRecord]: ...

    async def text_search(self, text: str, limit: int, *, owner_id: str) -> list[KnowledgePoint]: ...

    async def vector_search(
        self, embedding: list[float], limit: int, *, owner_id: str
    ) -> list[KnowledgePoint]: ...

    async def close(self) -> None: ...
