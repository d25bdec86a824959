from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

import asyncpg

from ..errors import DocumentNotFound, InvalidDocument, InvalidStatusTransition
from .models import DocumentStatus, KnowledgeDocument

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS knowledge_documents (
    id UUID PRIMARY KEY,
    user_id UUID NOT NULL,
    title VARCHAR(255) NOT NULL,
    file_name VARCHAR(255) NOT NULL,
    file_type VARCHAR(50) NOT NULL,
    file_size BIGINT NOT NULL,
    content TEXT,
    status VARCHAR(50) NOT NULL DEFAULT 'pending',
    error_msg TEXT NOT NULL DEFAULT '',
    entity_count INTEGER NOT NULL DEFAULT 0,
    relation_count INTEGER NOT NULL DEFAULT 0,
    subject VARCHAR(100) NOT NULL DEFAULT '',
    grade VARCHAR(50) NOT NULL DEFAULT '',
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS knowledge_documents_user_id ON knowledge_documents(user_id);
"""

_COLUMNS = """
id::text, user_id::text, title, file_name, file_type, file_size, content, status,
error_msg, entity_count, relation_count, subject, grade, created_at, updated_at
"""


def _as_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _row_to_document(row: Any) -> KnowledgeDocument:
    return KnowledgeDocument(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        content=row["content"] or "",
        file_name=row["file_name"],
        file_type=row["file_type"],
        file_size=int(row["file_size"]),
        subject=row["subject"] or "",
        grade=row["grade"] or "",
        status=DocumentStatus(row["status"]),
        entity_count=int(row["entity_count"] or 0),
        relation_count=int(row["relation_count"] or 0),
        error_msg=row["error_msg"] or "",
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


@dataclass
class PostgresDocumentRepository:
    pool: asyncpg.Pool

    @classmethod
    async def connect(cls, dsn: str) -> "PostgresDocumentRepository":
        pool = await asyncpg.create_pool(dsn=dsn, min_size=1, max_size=10)
        return cls(pool=pool)

    async def close(self) -> None:
        await self.pool.close()

    async def ensure_schema(self) -> None:
        async with self.pool.acquire() as con:
            await con.execute(SCHEMA_SQL)

    async def create(self, doc: KnowledgeDocument) -> KnowledgeDocument:
        if _as_uuid(doc.user_id) is None:
            raise InvalidDocument("user id must be a UUID")
        q = f"""
        INSERT INTO knowledge_documents(
            id, user_id, title, file_name, file_type, file_size, content,
            status, subject, grade
        )
        VALUES($1::uuid,$2::uuid,$3,$4,$5,$6,$7,$8,$9,$10)
        RETURNING {_COLUMNS}
        """
        async with self.pool.acquire() as con:
            row = await con.fetchrow(
                q,
                doc.id,
                doc.user_id,
                doc.title,
                doc.file_name,
                doc.file_type,
                doc.file_size,
                doc.content,
                DocumentStatus.PENDING.value,
                doc.subject,
                doc.grade,
            )
            return _row_to_document(row)

    async def get(self, document_id: str, user_id: str) -> KnowledgeDocument | None:
        doc_id, owner = _as_uuid(document_id), _as_uuid(user_id)
        if doc_id is None or owner is None:
            return None
        q = f"SELECT {_COLUMNS} FROM knowledge_documents WHERE id=$1 AND user_id=$2"
        async with self.pool.acquire() as con:
            row = await con.fetchrow(q, doc_id, owner)
            return _row_to_document(row) if row else None

    async def list_by_user(self, user_id: str, *, page: int = 1, page_size: int = 20) -> tuple[list[KnowledgeDocument], int]:
        owner = _as_uuid(user_id)
        if owner is None:
            return [], 0
        page = max(1, page)
        page_size = max(1, page_size)
        async with self.pool.acquire() as con:
            total = await con.fetchval("SELECT count(*) FROM knowledge_documents WHERE user_id=$1", owner)
            rows = await con.fetch(
                f"""
                SELECT {_COLUMNS} FROM knowledge_documents
                WHERE user_id=$1
                ORDER BY created_at DESC
                OFFSET $2 LIMIT $3
                """,
                owner,
                (page - 1) * page_size,
                page_size,
            )
            return [_row_to_document(r) for r in rows], int(total or 0)

    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        entity_count: int = 0,
        relation_count: int = 0,
        error_msg: str = "",
    ) -> None:
        # The WHERE clause enforces the state machine in a single statement.
        allowed_from = [s.value for s in status.allowed_predecessors()]
        q = """
        UPDATE knowledge_documents
        SET status=$2, entity_count=$3, relation_count=$4, error_msg=$5, updated_at=now()
        WHERE id=$1::uuid AND status = ANY($6::text[])
        RETURNING id
        """
        async with self.pool.acquire() as con:
            updated = await con.fetchval(
                q, document_id, status.value, entity_count, relation_count, error_msg, allowed_from
            )
            if updated is not None:
                return
            current = await con.fetchval(
                "SELECT status FROM knowledge_documents WHERE id=$1::uuid", document_id
            )
        if current is None:
            raise DocumentNotFound(document_id)
        raise InvalidStatusTransition(document_id, current, status.value)

    async def delete(self, document_id: str, user_id: str) -> bool:
        doc_id, owner = _as_uuid(document_id), _as_uuid(user_id)
        if doc_id is None or owner is None:
            return False
        async with self.pool.acquire() as con:
            result = await con.execute(
                "DELETE FROM knowledge_documents WHERE id=$1 AND user_id=$2", doc_id, owner
            )
        # asyncpg returns the command tag, e.g. "DELETE 1"
        return result.rsplit(" ", 1)[-1] != "0"
