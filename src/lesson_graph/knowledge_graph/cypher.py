"""Parameterized Cypher templates for graph traversal.

Only module constants and a validated hop depth are ever formatted into query
text; every user-supplied value travels as a query parameter.
"""

from __future__ import annotations

from typing import Any

from .models import TraversalQuery
from .schema import NODE_LABEL, RELATION_TYPES, Scope

REL_PATTERN = "|".join(RELATION_TYPES)

_NODE_FILTER = """{v}.userId = $userId
  AND ($subject = '' OR {v}.subject = $subject OR {v}.subject IS NULL)
  AND ($grade = '' OR {v}.grade CONTAINS $grade OR {v}.grade IS NULL)"""

_TOPIC_FILTER = """(
    toLower(coalesce({v}.name, '')) CONTAINS toLower($topic)
    OR any(kw IN coalesce({v}.keywords, []) WHERE toLower(toString(kw)) CONTAINS toLower($topic))
  )"""

# Edges among the collected node set; dangling ones are pruned again in Python.
_EDGES_WITHIN = f"""
WITH collect(k) AS nodes, collect(k.id) AS nodeIds
UNWIND nodes AS k
OPTIONAL MATCH (k)-[rel:{REL_PATTERN}]-(related:{NODE_LABEL})
WHERE related.id IN nodeIds
RETURN k, collect(DISTINCT {{
  source: k.id,
  target: related.id,
  type: type(rel),
  weight: coalesce(rel.strength, rel.similarity, 1.0)
}}) AS relations
"""

ALL_NODES = f"""
MATCH (k:{NODE_LABEL})
WHERE {_NODE_FILTER.format(v="k")}
WITH k LIMIT $limit
{_EDGES_WITHIN}
"""

MATCHED_NODES = f"""
MATCH (seed:{NODE_LABEL})
WHERE {_NODE_FILTER.format(v="seed")}
  AND {_TOPIC_FILTER.format(v="seed")}
WITH seed LIMIT $limit
WITH seed AS k
{_EDGES_WITHIN}
"""

# {depth} is the only placeholder left; it is filled by expand_template().
_EXPANDED_NODES = f"""
MATCH (seed:{NODE_LABEL})
WHERE {_NODE_FILTER.format(v="seed")}
  AND {_TOPIC_FILTER.format(v="seed")}
WITH seed LIMIT $limit
WITH collect(seed) AS seeds
UNWIND seeds AS s
OPTIONAL MATCH p = (s)-[:{REL_PATTERN}*1..{{depth}}]-(related:{NODE_LABEL})
WHERE all(n IN nodes(p) WHERE {_NODE_FILTER.format(v="n")})
WITH seeds, collect(DISTINCT related) AS reached
UNWIND seeds + reached AS k
WITH DISTINCT k WHERE k IS NOT NULL
{_EDGES_WITHIN}
"""

_EXPANDED_BY_DEPTH = {depth: _EXPANDED_NODES.replace("{depth}", str(depth)) for depth in (1, 2)}


def expand_template(depth: int) -> str:
    if depth not in _EXPANDED_BY_DEPTH:
        raise ValueError(f"unsupported hop depth: {depth!r}")
    return _EXPANDED_BY_DEPTH[depth]


def build_traversal_query(query: TraversalQuery) -> tuple[str, dict[str, Any]]:
    params: dict[str, Any] = {
        "userId": query.owner_id,
        "subject": query.subject,
        "grade": query.grade,
        "topic": query.topic,
        "limit": int(query.limit),
    }
    if not query.topic:
        return ALL_NODES, params
    if query.scope is Scope.MATCHED:
        return MATCHED_NODES, params
    return expand_template(query.scope.depth), params


TEXT_SEARCH = f"""
MATCH (k:{NODE_LABEL})
WHERE k.userId = $userId
  AND (toLower(coalesce(k.name, '')) CONTAINS toLower($query)
       OR toLower(coalesce(k.description, '')) CONTAINS toLower($query))
RETURN k
LIMIT $limit
"""

VECTOR_SEARCH = """
CALL db.index.vector.queryNodes('knowledge_embedding', $candidates, $embedding)
YIELD node, score
WHERE node.userId = $userId
RETURN node AS k, score
ORDER BY score DESC
LIMIT $limit
"""
