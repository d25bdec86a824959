from __future__ import annotations

import dataclasses
import math
from typing import Any

from .models import GraphRecord, KnowledgePoint, Relation, TraversalQuery
from .schema import RELATION_TYPES, Scope


def _cosine(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        return -1.0
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    if not na or not nb:
        return -1.0
    return dot / (na * nb)


class InMemoryGraphStore:
    """Process-local graph store.

    Mirrors the Neo4j query contracts (ownership, subject/grade filters, topic
    matching, hop expansion) so the service runs without a database and tests
    can exercise traversal semantics directly.
    """

    def __init__(self) -> None:
        # insertion order doubles as the store's natural scan order
        self._nodes: dict[str, KnowledgePoint] = {}
        self._relations: dict[tuple[str, str, str], Relation] = {}

    async def ensure_schema(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def upsert(self, *, points: list[KnowledgePoint], relations: list[Relation]) -> None:
        for p in points:
            self._nodes[p.id] = dataclasses.replace(p, keywords=list(p.keywords))
        for r in relations:
            if r.rel_type not in RELATION_TYPES:
                continue
            if r.src_id in self._nodes and r.dst_id in self._nodes:
                self._relations[(r.src_id, r.dst_id, r.rel_type)] = r

    async def delete_document_nodes(self, document_id: str) -> int:
        ids = {n.id for n in self._nodes.values() if n.document_id == document_id}
        self._detach(ids)
        return len(ids)

    def _detach(self, ids: set[str]) -> None:
        for node_id in ids:
            self._nodes.pop(node_id, None)
        for key in [k for k in self._relations if k[0] in ids or k[1] in ids]:
            del self._relations[key]

    def _neighbors(self, node_id: str) -> list[tuple[str, Relation]]:
        out = []
        for (src, dst, _), rel in self._relations.items():
            if src == node_id:
                out.append((dst, rel))
            elif dst == node_id:
                out.append((src, rel))
        return out

    @staticmethod
    def _passes(node: KnowledgePoint, q: TraversalQuery) -> bool:
        if node.user_id != q.owner_id:
            return False
        if q.subject and node.subject and node.subject != q.subject:
            return False
        if q.grade and node.grade and q.grade not in node.grade:
            return False
        return True

    @staticmethod
    def _matches_topic(node: KnowledgePoint, topic: str) -> bool:
        needle = topic.lower()
        if needle in (node.name or "").lower():
            return True
        return any(needle in str(kw).lower() for kw in node.keywords)

    async def traverse(self, query: TraversalQuery) -> list[GraphRecord]:
        candidates = [n for n in self._nodes.values() if self._passes(n, query)]
        if not query.topic:
            selected = candidates[: query.limit]
        else:
            seeds = [n for n in candidates if self._matches_topic(n, query.topic)][: query.limit]
            selected = seeds if query.scope is Scope.MATCHED else self._expand(seeds, query)

        ids = {n.id for n in selected}
        records = []
        for node in selected:
            rels: list[dict[str, Any]] = []
            for other, rel in self._neighbors(node.id):
                if other not in ids:
                    continue
                edge = {"source": node.id, "target": other, "type": rel.rel_type, "weight": rel.weight}
                if edge not in rels:
                    rels.append(edge)
            records.append(GraphRecord(node=node.to_props(), relations=rels))
        return records

    def _expand(self, seeds: list[KnowledgePoint], query: TraversalQuery) -> list[KnowledgePoint]:
        """Breadth-first expansion; every reached node must pass the filters itself."""
        visited = {n.id for n in seeds}
        ordered = list(seeds)
        frontier = list(seeds)
        for _ in range(query.scope.depth):
            next_frontier = []
            for node in frontier:
                for other, _rel in self._neighbors(node.id):
                    if other in visited:
                        continue
                    candidate = self._nodes[other]
                    if not self._passes(candidate, query):
                        continue
                    visited.add(other)
                    ordered.append(candidate)
                    next_frontier.append(candidate)
            frontier = next_frontier
        return ordered

    async def text_search(self, text: str, limit: int, *, owner_id: str) -> list[KnowledgePoint]:
        needle = text.lower()
        out = []
        for node in self._nodes.values():
            if node.user_id != owner_id:
                continue
            if needle in node.name.lower() or needle in node.description.lower():
                out.append(dataclasses.replace(node))
                if len(out) >= limit:
                    break
        return out

    async def vector_search(
        self, embedding: list[float], limit: int, *, owner_id: str
    ) -> list[KnowledgePoint]:
        scored = []
        for node in self._nodes.values():
            if not node.embedding:
                continue
            if node.user_id != owner_id:
                continue
            scored.append((_cosine(embedding, node.embedding), node))
        scored.sort(key=lambda x: x[0], reverse=True)
        return [dataclasses.replace(n) for _, n in scored[:limit]]
