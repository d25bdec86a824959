from __future__ import annotations

import asyncio
import dataclasses
from typing import Protocol

from ..errors import DocumentNotFound, InvalidStatusTransition
from .models import DocumentStatus, KnowledgeDocument, _utcnow


class DocumentRepository(Protocol):
    """Durable record of uploaded documents.

    Reads and deletes are always scoped by owner; status updates are keyed by
    document id only because they come from the pipeline, not from a user.
    """

    async def create(self, doc: KnowledgeDocument) -> KnowledgeDocument: ...

    async def get(self, document_id: str, user_id: str) -> KnowledgeDocument | None: ...

    async def list_by_user(self, user_id: str, *, page: int = 1, page_size: int = 20) -> tuple[list[KnowledgeDocument], int]: ...

    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        entity_count: int = 0,
        relation_count: int = 0,
        error_msg: str = "",
    ) -> None: ...

    async def delete(self, document_id: str, user_id: str) -> bool: ...


class InMemoryDocumentRepository:
    """Process-local repository for development and tests."""

    def __init__(self) -> None:
        self._docs: dict[str, KnowledgeDocument] = {}
        self._lock = asyncio.Lock()
        # every status written, in order, per document
        self.history: dict[str, list[DocumentStatus]] = {}

    async def create(self, doc: KnowledgeDocument) -> KnowledgeDocument:
        async with self._lock:
            stored = dataclasses.replace(doc, status=DocumentStatus.PENDING)
            self._docs[stored.id] = stored
            self.history[stored.id] = [DocumentStatus.PENDING]
            return dataclasses.replace(stored)

    async def get(self, document_id: str, user_id: str) -> KnowledgeDocument | None:
        async with self._lock:
            doc = self._docs.get(document_id)
            if doc is None or doc.user_id != user_id:
                return None
            return dataclasses.replace(doc)

    async def list_by_user(self, user_id: str, *, page: int = 1, page_size: int = 20) -> tuple[list[KnowledgeDocument], int]:
        page = max(1, page)
        page_size = max(1, page_size)
        async with self._lock:
            owned = [d for d in self._docs.values() if d.user_id == user_id]
        owned.sort(key=lambda d: d.created_at, reverse=True)
        start = (page - 1) * page_size
        return [dataclasses.replace(d) for d in owned[start : start + page_size]], len(owned)

    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        entity_count: int = 0,
        relation_count: int = 0,
        error_msg: str = "",
    ) -> None:
        async with self._lock:
            doc = self._docs.get(document_id)
            if doc is None:
                raise DocumentNotFound(document_id)
            if not doc.status.can_transition_to(status):
                raise InvalidStatusTransition(document_id, doc.status.value, status.value)
            doc.status = status
            doc.entity_count = entity_count
            doc.relation_count = relation_count
            doc.error_msg = error_msg
            doc.updated_at = _utcnow()
            self.history[document_id].append(status)

    async def delete(self, document_id: str, user_id: str) -> bool:
        async with self._lock:
            doc = self._docs.get(document_id)
            if doc is None or doc.user_id != user_id:
                return False
            del self._docs[document_id]
            return True
