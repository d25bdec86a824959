from __future__ import annotations

from typing import Callable

import httpx
import pytest

from lesson_graph.agent import AgentClient
from lesson_graph.http import DownstreamClient, HttpClientFactory
from lesson_graph.knowledge_graph.models import KnowledgePoint, Relation

AGENT_URL = "http://agent.test"


async def no_sleep(_delay: float) -> None:
    return None


def downstream_for(handler: Callable, *, sleep=no_sleep) -> DownstreamClient:
    client = HttpClientFactory.client(base_url=AGENT_URL, transport=httpx.MockTransport(handler))
    return DownstreamClient(client, service="agent", sleep=sleep)


def agent_for(handler: Callable) -> AgentClient:
    return AgentClient(downstream_for(handler))


def point(node_id: str, name: str, user_id: str = "user-a", **kw) -> KnowledgePoint:
    return KnowledgePoint(id=node_id, name=name, user_id=user_id, **kw)


@pytest.fixture()
def curriculum() -> tuple[list[KnowledgePoint], list[Relation]]:
    """Small math graph owned by user-a, with one physics node and one foreign node.

    A(Fractions) -DEPENDS_ON-> B(Decimals) -RELATES_TO-> C(Percentages)
    A -RELATES_TO-> D(Ratios, physics)
    A -SIMILAR_TO-> E(Fractions, user-b)
    """
    points = [
        point("A", "Fractions", subject="math", grade="Grade 5", type="Concept", keywords=["part of whole"]),
        point("B", "Decimals", subject="math", grade="Grade 5", type="skill", difficulty="hard", importance=0.9),
        point("C", "Percentages", subject="math", grade="Grade 6", type="概念", keywords=["percent"]),
        point("D", "Ratios", subject="physics", grade="Grade 5"),
        point("E", "Fractions", user_id="user-b", subject="math", grade="Grade 5"),
    ]
    relations = [
        Relation("A", "B", "DEPENDS_ON", {"strength": 0.8}),
        Relation("B", "C", "RELATES_TO", {}),
        Relation("A", "D", "RELATES_TO", {"similarity": 0.4}),
        Relation("A", "E", "SIMILAR_TO", {}),
    ]
    return points, relations
