"""Document ingestion pipeline.

submit() stores the document and returns at once; extraction runs in a
background task that walks the document through
pending -> processing -> completed | failed.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from .agent import AgentClient, BuildGraphRequest
from .documents.models import DocumentStatus, KnowledgeDocument
from .documents.repository import DocumentRepository
from .errors import AgentError, AgentResponseError, DocumentNotFound, DownstreamError, InvalidStatusTransition
from .tasks import TaskSpawner

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MSG = "internal error: document processing aborted unexpectedly"


class IngestionPipeline:
    def __init__(
        self,
        documents: DocumentRepository,
        agent: AgentClient,
        spawner: TaskSpawner,
        *,
        ingest_timeout_s: float = 600.0,
        delete_timeout_s: float = 120.0,
    ):
        self.documents = documents
        self.agent = agent
        self.spawner = spawner
        self.ingest_timeout_s = ingest_timeout_s
        self.delete_timeout_s = delete_timeout_s

    async def submit(self, doc: KnowledgeDocument) -> KnowledgeDocument:
        stored = await self.documents.create(doc)
        self.spawner.spawn(
            f"ingest:{stored.id}",
            lambda: self.process(stored),
            on_error=lambda exc: self._fail_unfinished(stored.id, exc),
        )
        return stored

    async def process(self, doc: KnowledgeDocument) -> None:
        try:
            await self.documents.update_status(doc.id, DocumentStatus.PROCESSING)
        except Exception:
            # nothing has started yet, the document simply stays pending
            logger.exception("failed to mark document %s as processing", doc.id)
            return

        request = BuildGraphRequest(
            document_id=doc.id,
            user_id=doc.user_id,
            content=doc.content,
            title=doc.title,
            subject=doc.subject,
            grade=doc.grade,
        )
        try:
            async with asyncio.timeout(self.ingest_timeout_s):
                result = await self.agent.build_graph(request)
        except TimeoutError:
            await self._mark_failed(doc.id, f"agent call timed out after {self.ingest_timeout_s:g}s")
            return
        except AgentResponseError:
            await self._mark_failed(doc.id, "failed to parse agent response")
            return
        except AgentError as e:
            await self._mark_failed(doc.id, str(e))
            return
        except (DownstreamError, httpx.HTTPError) as e:
            logger.error("agent call for document %s failed: %s", doc.id, e)
            await self._mark_failed(doc.id, f"agent service call failed: {e}")
            return

        if not result.success:
            await self._mark_failed(doc.id, result.message or "agent reported failure")
            return

        await self.documents.update_status(
            doc.id,
            DocumentStatus.COMPLETED,
            entity_count=result.entity_count,
            relation_count=result.relation_count,
        )
        logger.info(
            "document %s processed: %d entities, %d relations",
            doc.id,
            result.entity_count,
            result.relation_count,
        )

    async def _mark_failed(self, document_id: str, message: str) -> None:
        logger.warning("document %s failed: %s", document_id, message)
        await self.documents.update_status(document_id, DocumentStatus.FAILED, error_msg=message)

    async def _fail_unfinished(self, document_id: str, exc: BaseException) -> None:
        try:
            await self.documents.update_status(document_id, DocumentStatus.FAILED, error_msg=INTERNAL_ERROR_MSG)
        except InvalidStatusTransition as e:
            logger.info("document %s left as %s after task error %r", document_id, e.current, exc)

    async def delete(self, document_id: str, owner_id: str) -> None:
        doc = await self.documents.get(document_id, owner_id)
        if doc is None:
            raise DocumentNotFound(document_id)

        self.spawner.spawn(
            f"delete-nodes:{document_id}",
            lambda: self.agent.delete_document_nodes(document_id),
            timeout_s=self.delete_timeout_s,
        )

        if not await self.documents.delete(document_id, owner_id):
            raise DocumentNotFound(document_id)

    async def get(self, document_id: str, owner_id: str) -> KnowledgeDocument:
        doc = await self.documents.get(document_id, owner_id)
        if doc is None:
            raise DocumentNotFound(document_id)
        return doc

    async def list_documents(self, owner_id: str, *, page: int = 1, page_size: int = 20) -> tuple[list[KnowledgeDocument], int]:
        return await self.documents.list_by_user(owner_id, page=page, page_size=page_size)

    async def status(self, document_id: str, owner_id: str) -> KnowledgeDocument:
        return await self.get(document_id, owner_id)
