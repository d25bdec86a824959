from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from ..agent import AgentClient
from ..documents.repository import DocumentRepository, InMemoryDocumentRepository
from ..ingestion import IngestionPipeline
from ..knowledge_graph.memory_store import InMemoryGraphStore
from ..knowledge_graph.query_engine import GraphQueryEngine
from ..knowledge_graph.search import SemanticSearchService
from ..knowledge_graph.store import GraphStore
from ..settings import LessonGraphSettings
from ..tasks import TaskSpawner

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the HTTP layer needs, wired once per process."""

    settings: LessonGraphSettings
    documents: DocumentRepository
    graph_store: GraphStore
    agent: AgentClient
    spawner: TaskSpawner
    pipeline: IngestionPipeline
    graph: GraphQueryEngine
    search: SemanticSearchService
    _closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)

    @classmethod
    def assemble(
        cls,
        cfg: LessonGraphSettings,
        *,
        documents: DocumentRepository,
        graph_store: GraphStore,
        agent: AgentClient,
    ) -> "Services":
        spawner = TaskSpawner(max_concurrency=cfg.max_concurrent_ingestions)
        pipeline = IngestionPipeline(
            documents,
            agent,
            spawner,
            ingest_timeout_s=cfg.ingest_timeout_s,
            delete_timeout_s=cfg.delete_nodes_timeout_s,
        )
        return cls(
            settings=cfg,
            documents=documents,
            graph_store=graph_store,
            agent=agent,
            spawner=spawner,
            pipeline=pipeline,
            graph=GraphQueryEngine(graph_store, default_limit=cfg.graph_default_limit),
            search=SemanticSearchService(graph_store, agent),
        )

    async def aclose(self) -> None:
        await self.spawner.aclose()
        for close in reversed(self._closers):
            try:
                await close()
            except Exception:
                logger.exception("error while closing %r", close)


async def build_services(cfg: LessonGraphSettings) -> Services:
    closers: list[Callable[[], Awaitable[None]]] = []

    documents: DocumentRepository
    if cfg.document_backend == "memory":
        documents = InMemoryDocumentRepository()
    else:
        from ..documents.postgres import PostgresDocumentRepository

        pg = await PostgresDocumentRepository.connect(cfg.postgres_dsn)
        await pg.ensure_schema()
        documents = pg
        closers.append(pg.close)

    graph_store: GraphStore
    if cfg.graph_backend == "memory":
        graph_store = InMemoryGraphStore()
    else:
        from ..knowledge_graph.neo4j_store import Neo4jConfig, Neo4jGraphStore

        if not cfg.neo4j_password:
            raise RuntimeError("Neo4j not configured. Set LESSON_GRAPH_NEO4J_URI/USER/PASSWORD.")
        graph_store = Neo4jGraphStore(
            Neo4jConfig(
                uri=cfg.neo4j_uri,
                user=cfg.neo4j_user,
                password=cfg.neo4j_password,
                database=cfg.neo4j_database,
                embedding_dim=cfg.embedding_dim,
            )
        )
    closers.append(graph_store.close)

    agent = AgentClient.from_settings(cfg)
    closers.append(agent.aclose)

    services = Services.assemble(cfg, documents=documents, graph_store=graph_store, agent=agent)
    services._closers = closers
    logger.info(
        "services ready (documents=%s, graph=%s, agent=%s)",
        cfg.document_backend,
        cfg.graph_backend,
        cfg.agent_url,
    )
    return services
