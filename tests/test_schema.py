from __future__ import annotations

import pytest

from lesson_graph.knowledge_graph.cypher import (
    ALL_NODES,
    MATCHED_NODES,
    build_traversal_query,
    expand_template,
)
from lesson_graph.knowledge_graph.models import Relation, TraversalQuery
from lesson_graph.knowledge_graph.schema import (
    MAX_LIMIT,
    Scope,
    clamp_limit,
    normalize_node_type,
    normalize_scope,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Concept", "Concept"),
        ("concept", "Concept"),
        ("KNOWLEDGE_POINT", "KnowledgePoint"),
        ("公式", "Formula"),
        ("例题", "Example"),
        ("", "KnowledgePoint"),
        (None, "KnowledgePoint"),
        ("theorem", "KnowledgePoint"),
    ],
)
def test_normalize_node_type(raw, expected):
    assert normalize_node_type(raw) == expected


def test_normalize_scope():
    assert normalize_scope("matched") is Scope.MATCHED
    assert normalize_scope(" TWO_HOP ") is Scope.TWO_HOP
    assert normalize_scope("") is Scope.ONE_HOP
    assert normalize_scope("three_hop") is Scope.ONE_HOP
    assert normalize_scope(None) is Scope.ONE_HOP
    assert [s.depth for s in Scope] == [0, 1, 2]


def test_clamp_limit():
    assert clamp_limit(None) == 200
    assert clamp_limit(0, 50) == 50
    assert clamp_limit(-3) == 200
    assert clamp_limit(10) == 10
    assert clamp_limit(10_000) == MAX_LIMIT


def test_relation_weight_prefers_strength_then_similarity():
    assert Relation("a", "b", "RELATES_TO", {"strength": 0.7, "similarity": 0.2}).weight == 0.7
    assert Relation("a", "b", "SIMILAR_TO", {"similarity": 0.2}).weight == 0.2
    assert Relation("a", "b", "PART_OF").weight == 1.0


def test_non_numeric_weights_fall_back_to_default():
    assert Relation("a", "b", "RELATES_TO", {"strength": "high"}).weight == 1.0
    assert Relation("a", "b", "RELATES_TO", {"strength": True}).weight == 1.0
    assert Relation("a", "b", "SIMILAR_TO", {"similarity": "0.3"}).weight == 1.0
    assert Relation("a", "b", "DEPENDS_ON", {"strength": 2}).weight == 2.0


def test_traversal_query_selection():
    q, params = build_traversal_query(TraversalQuery(owner_id="u", subject="math", limit=50))
    assert q == ALL_NODES
    assert params == {"userId": "u", "subject": "math", "grade": "", "topic": "", "limit": 50}

    q, _ = build_traversal_query(TraversalQuery(owner_id="u", topic="fractions", scope=Scope.MATCHED))
    assert q == MATCHED_NODES

    q, _ = build_traversal_query(TraversalQuery(owner_id="u", topic="fractions", scope=Scope.TWO_HOP))
    assert q == expand_template(2)


def test_user_values_never_enter_query_text():
    topic = "x' OR 1=1 //"
    q, params = build_traversal_query(TraversalQuery(owner_id="u", topic=topic, scope=Scope.ONE_HOP))
    assert topic not in q
    assert params["topic"] == topic


def test_expand_template_depths():
    assert "*1..1]" in expand_template(1)
    assert "*1..2]" in expand_template(2)
    assert "{depth}" not in expand_template(2)
    for bad in (0, 3, -1):
        with pytest.raises(ValueError):
            expand_template(bad)
