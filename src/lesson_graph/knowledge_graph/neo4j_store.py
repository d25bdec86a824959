from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from neo4j import AsyncGraphDatabase

from . import cypher
from .models import GraphRecord, KnowledgePoint, Relation, TraversalQuery
from .schema import NODE_LABEL, RELATION_TYPES

logger = logging.getLogger(__name__)


def batched(it: Iterable, batch_size: int) -> Iterable[list]:
    batch: list = []
    for x in it:
        batch.append(x)
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


@dataclass(slots=True)
class Neo4jConfig:
    uri: str
    user: str
    password: str
    database: str = "neo4j"
    embedding_dim: int = 1536
    # ingestion performance
    batch_size: int = 500


def _relation_union() -> str:
    # Relationship types cannot be parameterized; one branch per allowed type.
    branches = []
    for rel_type in RELATION_TYPES:
        branches.append(
            f"""
          WITH a,b,row
          WITH a,b,row WHERE row.type = '{rel_type}'
          MERGE (a)-[r:{rel_type}]->(b)
          SET r += row.props
          RETURN 1 as _"""
        )
    return "\n          UNION".join(branches)


_UPSERT_NODES = f"""
UNWIND $rows as row
MERGE (n:{NODE_LABEL} {{id: row.id}})
SET n += row.props
RETURN count(*) as n
"""

_UPSERT_RELS = f"""
UNWIND $rows as row
MATCH (a:{NODE_LABEL} {{id: row.src}})
MATCH (b:{NODE_LABEL} {{id: row.dst}})
CALL {{{_relation_union()}
}}
RETURN count(*) as n
"""


class Neo4jGraphStore:
    """Neo4j-backed graph store.

    Uses UNWIND for bulk upserts and keeps the id constraint, lookup indexes
    and the `knowledge_embedding` vector index in place.

    Dependency: neo4j>=5 (async driver).
    """

    def __init__(self, cfg: Neo4jConfig):
        self.cfg = cfg
        # Driver is safe to share; sessions are lightweight.
        self._driver = AsyncGraphDatabase.driver(cfg.uri, auth=(cfg.user, cfg.password))

    async def close(self) -> None:
        await self._driver.close()

    async def ensure_schema(self) -> None:
        stmts = [
            f"CREATE CONSTRAINT knowledge_point_id IF NOT EXISTS FOR (n:{NODE_LABEL}) REQUIRE n.id IS UNIQUE",
            f"CREATE INDEX knowledge_point_name IF NOT EXISTS FOR (n:{NODE_LABEL}) ON (n.name)",
            f"CREATE INDEX knowledge_point_user IF NOT EXISTS FOR (n:{NODE_LABEL}) ON (n.userId)",
            f"CREATE INDEX knowledge_point_document IF NOT EXISTS FOR (n:{NODE_LABEL}) ON (n.documentId)",
            f"CREATE INDEX knowledge_point_subject IF NOT EXISTS FOR (n:{NODE_LABEL}) ON (n.subject)",
            f"CREATE INDEX knowledge_point_grade IF NOT EXISTS FOR (n:{NODE_LABEL}) ON (n.grade)",
            f"""
            CREATE VECTOR INDEX knowledge_embedding IF NOT EXISTS
            FOR (n:{NODE_LABEL}) ON (n.embedding)
            OPTIONS {{indexConfig: {{
              `vector.dimensions`: {int(self.cfg.embedding_dim)},
              `vector.similarity_function`: 'cosine'
            }}}}
            """,
        ]
        async with self._driver.session(database=self.cfg.database) as s:
            for q in stmts:
                await s.run(q)

    async def upsert(self, *, points: list[KnowledgePoint], relations: list[Relation]) -> None:
        if not points and not relations:
            return

        async with self._driver.session(database=self.cfg.database) as s:
            for batch in batched(points, self.cfg.batch_size):
                rows = [{"id": p.id, "props": p.to_props()} for p in batch]
                await s.execute_write(self._write_tx, _UPSERT_NODES, {"rows": rows})
            for batch in batched(relations, self.cfg.batch_size):
                rows = [
                    {"src": r.src_id, "dst": r.dst_id, "type": r.rel_type, "props": r.props or {}}
                    for r in batch
                    if r.rel_type in RELATION_TYPES
                ]
                if rows:
                    await s.execute_write(self._write_tx, _UPSERT_RELS, {"rows": rows})

    @staticmethod
    async def _write_tx(tx, query: str, params: dict[str, Any]) -> None:
        result = await tx.run(query, params)
        await result.consume()

    @staticmethod
    async def _read_tx(tx, query: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        result = await tx.run(query, params)
        return await result.data()

    async def query(self, query: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        async with self._driver.session(database=self.cfg.database) as s:
            return await s.execute_read(self._read_tx, query, params or {})

    async def delete_document_nodes(self, document_id: str) -> int:
        async with self._driver.session(database=self.cfg.database) as s:
            rows = await s.execute_write(
                self._read_tx,
                f"""
                MATCH (k:{NODE_LABEL} {{documentId: $documentId}})
                DETACH DELETE k
                RETURN count(*) AS deleted
                """,
                {"documentId": document_id},
            )
        deleted = int(rows[0]["deleted"]) if rows else 0
        logger.info("deleted %d nodes of document %s", deleted, document_id)
        return deleted

    async def traverse(self, query: TraversalQuery) -> list[GraphRecord]:
        q, params = cypher.build_traversal_query(query)
        rows = await self.query(q, params)
        return [GraphRecord(node=r["k"] or {}, relations=list(r["relations"] or [])) for r in rows]

    async def text_search(self, text: str, limit: int, *, owner_id: str) -> list[KnowledgePoint]:
        rows = await self.query(cypher.TEXT_SEARCH, {"query": text, "limit": int(limit), "userId": owner_id})
        return [KnowledgePoint.from_props(r["k"]) for r in rows]

    async def vector_search(
        self, embedding: list[float], limit: int, *, owner_id: str
    ) -> list[KnowledgePoint]:
        # The index is global; over-fetch so the owner filter still fills `limit`.
        candidates = min(int(limit) * 5, 1000)
        rows = await self.query(
            cypher.VECTOR_SEARCH,
            {"embedding": embedding, "candidates": candidates, "limit": int(limit), "userId": owner_id},
        )
        return [KnowledgePoint.from_props(r["k"]) for r in rows]
