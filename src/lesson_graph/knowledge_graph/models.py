from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from .schema import DEFAULT_EDGE_WEIGHT, DEFAULT_NODE_TYPE, Scope, as_float


@dataclass(slots=True)
class KnowledgePoint:
    """A concept extracted from one document and owned by one user.

    `id` is stable within its source document and is the graph node key.
    """

    id: str
    name: str
    user_id: str
    type: str = DEFAULT_NODE_TYPE
    subject: str = ""
    grade: str = ""
    description: str = ""
    keywords: list[str] = field(default_factory=list)
    embedding: list[float] | None = None
    document_id: str | None = None
    difficulty: str | None = None
    importance: float | None = None

    def to_props(self) -> dict[str, Any]:
        """Property map as stored on the graph node (camelCase keys)."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "subject": self.subject or None,
            "grade": self.grade or None,
            "description": self.description,
            "keywords": list(self.keywords),
            "embedding": self.embedding,
            "userId": self.user_id,
            "documentId": self.document_id,
            "difficulty": self.difficulty,
            "importance": self.importance,
        }

    @classmethod
    def from_props(cls, props: dict[str, Any]) -> "KnowledgePoint":
        return cls(
            id=str(props.get("id") or ""),
            name=str(props.get("name") or ""),
            user_id=str(props.get("userId") or ""),
            type=str(props.get("type") or DEFAULT_NODE_TYPE),
            subject=str(props.get("subject") or ""),
            grade=str(props.get("grade") or ""),
            description=str(props.get("description") or ""),
            keywords=[str(k) for k in props.get("keywords") or []],
            embedding=[float(x) for x in props["embedding"]] if props.get("embedding") else None,
            document_id=props.get("documentId"),
            difficulty=props.get("difficulty"),
            importance=props.get("importance"),
        )


@dataclass(frozen=True, slots=True)
class Relation:
    """A directed, typed edge between two knowledge points."""

    src_id: str
    dst_id: str
    rel_type: str
    props: dict[str, Any] = field(default_factory=dict)

    @property
    def weight(self) -> float:
        for key in ("strength", "similarity"):
            value = self.props.get(key)
            if value is not None:
                return as_float(value, DEFAULT_EDGE_WEIGHT)
        return DEFAULT_EDGE_WEIGHT


@dataclass(frozen=True, slots=True)
class TraversalQuery:
    owner_id: str
    subject: str = ""
    grade: str = ""
    topic: str = ""
    scope: Scope = Scope.ONE_HOP
    limit: int = 200


@dataclass(slots=True)
class GraphRecord:
    """One raw row of a traversal: a node's properties plus its candidate edges."""

    node: dict[str, Any]
    relations: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class GraphNode:
    id: str
    label: str
    type: str
    subject: str
    grade: str
    difficulty: str
    importance: float


@dataclass(slots=True)
class GraphEdge:
    source: str
    target: str
    type: str
    weight: float


@dataclass(slots=True)
class KnowledgeGraph:
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    @property
    def total_nodes(self) -> int:
        return len(self.nodes)

    @property
    def total_edges(self) -> int:
        return len(self.edges)

    @property
    def type_counts(self) -> dict[str, int]:
        return dict(Counter(n.type for n in self.nodes))


@dataclass(frozen=True, slots=True)
class SearchResult:
    id: str
    name: str
    content: str
    relevance_score: float
    source: str
