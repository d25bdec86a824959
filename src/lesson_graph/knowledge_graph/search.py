from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from ..errors import GraphRetrievalError
from .models import KnowledgePoint, SearchResult
from .schema import clamp_limit
from .store import GraphStore

logger = logging.getLogger(__name__)

VECTOR_SOURCE = "vector_search"
TEXT_SOURCE = "text_search"


class Embedder(Protocol):
    async def embedding(self, text: str) -> list[float]: ...


def rank_score(rank: int) -> float:
    # Rank-based proxy: the vector index does not expose a uniform similarity scale.
    return 0.9 - 0.05 * rank


@dataclass(slots=True)
class SemanticSearchService:
    """Vector search over knowledge points, degrading to text search.

    A failing embedding provider never fails the search itself.
    """

    store: GraphStore
    embedder: Embedder

    async def search(self, query: str, limit: int = 10, *, owner_id: str) -> list[SearchResult]:
        if not owner_id:
            raise ValueError("owner_id is required")
        limit = clamp_limit(limit, 10)
        try:
            vector = await self.embedder.embedding(query)
        except Exception as e:
            logger.warning("embedding failed, falling back to text search: %s", e)
            points = await self._fetch(self.store.text_search(query, limit, owner_id=owner_id))
            return [_result(p, 1.0, TEXT_SOURCE) for p in points]

        points = await self._fetch(self.store.vector_search(vector, limit, owner_id=owner_id))
        return [_result(p, rank_score(i), VECTOR_SOURCE) for i, p in enumerate(points[:limit])]

    @staticmethod
    async def _fetch(pending) -> list[KnowledgePoint]:
        try:
            return await pending
        except Exception as e:
            raise GraphRetrievalError("knowledge search failed") from e


def _result(point: KnowledgePoint, score: float, source: str) -> SearchResult:
    return SearchResult(
        id=point.id,
        name=point.name,
        content=point.description,
        relevance_score=score,
        source=source,
    )
