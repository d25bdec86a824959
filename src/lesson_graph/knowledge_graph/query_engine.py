from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from ..errors import GraphRetrievalError
from .models import GraphEdge, GraphNode, GraphRecord, KnowledgeGraph, TraversalQuery
from .schema import (
    DEFAULT_DIFFICULTY,
    DEFAULT_EDGE_WEIGHT,
    DEFAULT_IMPORTANCE,
    Scope,
    as_float,
    clamp_limit,
    normalize_node_type,
    normalize_scope,
)
from .store import GraphStore

logger = logging.getLogger(__name__)


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def build_graph(records: Iterable[GraphRecord], *, owner_id: str, subject: str = "") -> KnowledgeGraph:
    """Normalize raw traversal rows into a node/edge response.

    Nodes are deduplicated by id (first wins), edges by unordered endpoint
    pair, and any edge whose endpoints are not both in the node set is
    dropped, since a `limit` cut can remove one side.
    """
    graph = KnowledgeGraph()
    node_ids: set[str] = set()
    seen_pairs: set[frozenset[str]] = set()
    edges: list[GraphEdge] = []

    for record in records:
        props = record.node
        node_id = _as_str(props.get("id"))
        if not node_id or node_id in node_ids:
            continue
        owner = props.get("userId")
        if owner is not None and owner != owner_id:
            logger.error("graph store returned node %s of another user; dropped", node_id)
            continue
        node_ids.add(node_id)

        graph.nodes.append(
            GraphNode(
                id=node_id,
                label=_as_str(props.get("name")),
                type=normalize_node_type(_as_str(props.get("type"))),
                subject=_as_str(props.get("subject")) or subject,
                grade=_as_str(props.get("grade")),
                difficulty=_as_str(props.get("difficulty")) or DEFAULT_DIFFICULTY,
                importance=as_float(props.get("importance"), DEFAULT_IMPORTANCE),
            )
        )

        for rel in record.relations:
            target = _as_str(rel.get("target"))
            if not target:
                continue
            pair = frozenset((node_id, target))
            if pair in seen_pairs:
                continue
            seen_pairs.add(pair)
            edges.append(
                GraphEdge(
                    source=node_id,
                    target=target,
                    type=_as_str(rel.get("type")),
                    weight=as_float(rel.get("weight"), DEFAULT_EDGE_WEIGHT),
                )
            )

    graph.edges = [e for e in edges if e.source in node_ids and e.target in node_ids]
    return graph


@dataclass(slots=True)
class GraphQueryEngine:
    """Scoped graph retrieval for visualization.

    With no topic, returns up to `limit` of the owner's nodes. With a topic,
    starts from the nodes whose name or keywords contain it and widens by
    `scope`: matched (0 hops), one_hop, two_hop.
    """

    store: GraphStore
    default_limit: int = 200

    async def get_graph(
        self,
        *,
        owner_id: str,
        subject: str = "",
        grade: str = "",
        topic: str = "",
        scope: str | Scope | None = Scope.ONE_HOP,
        limit: int | None = None,
    ) -> KnowledgeGraph:
        if not owner_id:
            raise ValueError("owner_id is required")
        query = TraversalQuery(
            owner_id=owner_id,
            subject=(subject or "").strip(),
            grade=(grade or "").strip(),
            topic=(topic or "").strip(),
            scope=normalize_scope(scope),
            limit=clamp_limit(limit, self.default_limit),
        )
        try:
            records = await self.store.traverse(query)
        except Exception as e:
            logger.error("graph traversal failed for %s: %s", owner_id, e)
            raise GraphRetrievalError("failed to load knowledge graph") from e

        graph = build_graph(records, owner_id=owner_id, subject=query.subject)
        logger.debug(
            "graph for %s (topic=%r scope=%s): %d nodes, %d edges",
            owner_id,
            query.topic,
            query.scope.value,
            graph.total_nodes,
            graph.total_edges,
        )
        return graph
