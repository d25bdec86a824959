"""Static vocabularies of the knowledge graph: node types, relation types, scopes."""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType

NODE_LABEL = "KnowledgePoint"

NODE_TYPES = (
    "Subject",
    "Chapter",
    "KnowledgePoint",
    "Skill",
    "Concept",
    "Principle",
    "Formula",
    "Example",
)
DEFAULT_NODE_TYPE = "KnowledgePoint"

# Keys are matched after lower-casing the raw type.
NODE_TYPE_ALIASES = MappingProxyType(
    {
        "subject": "Subject",
        "学科": "Subject",
        "chapter": "Chapter",
        "章节": "Chapter",
        "knowledgepoint": "KnowledgePoint",
        "knowledge_point": "KnowledgePoint",
        "knowledge": "KnowledgePoint",
        "知识点": "KnowledgePoint",
        "skill": "Skill",
        "技能": "Skill",
        "concept": "Concept",
        "概念": "Concept",
        "principle": "Principle",
        "原理": "Principle",
        "formula": "Formula",
        "公式": "Formula",
        "example": "Example",
        "示例": "Example",
        "例题": "Example",
    }
)

RELATION_TYPES = ("DEPENDS_ON", "RELATES_TO", "SIMILAR_TO", "PART_OF")

DEFAULT_DIFFICULTY = "medium"
DEFAULT_IMPORTANCE = 0.5
DEFAULT_EDGE_WEIGHT = 1.0

MAX_LIMIT = 1000


class Scope(str, Enum):
    """Traversal radius around the nodes matching a topic."""

    MATCHED = "matched"
    ONE_HOP = "one_hop"
    TWO_HOP = "two_hop"

    @property
    def depth(self) -> int:
        return _SCOPE_DEPTH[self]


_SCOPE_DEPTH = MappingProxyType({Scope.MATCHED: 0, Scope.ONE_HOP: 1, Scope.TWO_HOP: 2})


def normalize_scope(raw: str | Scope | None) -> Scope:
    """Unknown or empty scopes fall back to one_hop rather than erroring."""
    if isinstance(raw, Scope):
        return raw
    try:
        return Scope((raw or "").strip().lower())
    except ValueError:
        return Scope.ONE_HOP


def normalize_node_type(raw: str | None) -> str:
    value = (raw or "").strip()
    if not value:
        return DEFAULT_NODE_TYPE
    if value in NODE_TYPES:
        return value
    return NODE_TYPE_ALIASES.get(value.lower(), DEFAULT_NODE_TYPE)


def clamp_limit(limit: int | None, default: int = 200) -> int:
    if limit is None or limit <= 0:
        limit = default
    return max(1, min(int(limit), MAX_LIMIT))


def as_float(value: object, default: float) -> float:
    """Numeric property value, or `default` for missing, boolean or non-numeric input."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)
