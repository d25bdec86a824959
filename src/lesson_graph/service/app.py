from __future__ import annotations

import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import PurePath

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .. import __version__
from ..documents.models import KnowledgeDocument
from ..errors import DocumentNotFound, GraphRetrievalError, InvalidDocument
from ..knowledge_graph.models import KnowledgeGraph, SearchResult
from ..observability import record_http, render
from ..tracing import REQUEST_ID_HEADER, TRACE_ID_HEADER, bind_trace_id, resolve_trace_id
from .auth import api_key_guard, current_user_id
from .container import Services

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".txt", ".md"}
MAX_UPLOAD_BYTES = 5 * 1024 * 1024


class _Out(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DocumentOut(_Out):
    id: str
    user_id: str
    title: str
    file_name: str
    file_type: str
    file_size: int
    content: str
    status: str
    error_msg: str = ""
    entity_count: int = 0
    relation_count: int = 0
    subject: str = ""
    grade: str = ""
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, doc: KnowledgeDocument) -> "DocumentOut":
        return cls(
            id=doc.id,
            user_id=doc.user_id,
            title=doc.title,
            file_name=doc.file_name,
            file_type=doc.file_type,
            file_size=doc.file_size,
            content=doc.content,
            status=doc.status.value,
            error_msg=doc.error_msg,
            entity_count=doc.entity_count,
            relation_count=doc.relation_count,
            subject=doc.subject,
            grade=doc.grade,
            created_at=doc.created_at,
            updated_at=doc.updated_at,
        )


class DocumentListOut(_Out):
    items: list[DocumentOut] = Field(default_factory=list)
    total: int = 0


class UploadOut(_Out):
    id: str
    title: str
    file_name: str
    status: str
    message: str = "document uploaded, processing in background"


class StatusOut(_Out):
    id: str
    status: str
    entity_count: int
    relation_count: int
    error_msg: str = ""


class GraphNodeOut(_Out):
    id: str
    label: str
    type: str
    subject: str
    grade: str
    difficulty: str
    importance: float


class GraphEdgeOut(_Out):
    source: str
    target: str
    type: str
    weight: float


class GraphOut(_Out):
    nodes: list[GraphNodeOut] = Field(default_factory=list)
    edges: list[GraphEdgeOut] = Field(default_factory=list)
    total_nodes: int = 0
    total_edges: int = 0
    type_counts: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_graph(cls, graph: KnowledgeGraph) -> "GraphOut":
        return cls(
            nodes=[GraphNodeOut.model_validate(n, from_attributes=True) for n in graph.nodes],
            edges=[GraphEdgeOut.model_validate(e, from_attributes=True) for e in graph.edges],
            total_nodes=graph.total_nodes,
            total_edges=graph.total_edges,
            type_counts=graph.type_counts,
        )


class SearchHitOut(_Out):
    id: str
    name: str
    content: str
    relevance_score: float
    source: str

    @classmethod
    def from_result(cls, r: SearchResult) -> "SearchHitOut":
        return cls(
            id=r.id, name=r.name, content=r.content, relevance_score=r.relevance_score, source=r.source
        )


class SearchOut(_Out):
    query: str
    count: int
    results: list[SearchHitOut] = Field(default_factory=list)


def _checked_document_id(document_id: str) -> str:
    try:
        return str(uuid.UUID(document_id))
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid document id")


async def read_upload(
    file: UploadFile, *, user_id: str, title: str, subject: str, grade: str
) -> KnowledgeDocument:
    name = file.filename or ""
    ext = PurePath(name).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise InvalidDocument("only .txt and .md files are supported")

    data = await file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise InvalidDocument("file must not exceed 5MB")
    try:
        content = data.decode("utf-8")
    except UnicodeDecodeError:
        raise InvalidDocument("file must be UTF-8 text")

    return KnowledgeDocument(
        user_id=user_id,
        title=title.strip() or PurePath(name).stem,
        content=content,
        file_name=name,
        file_type=ext.lstrip("."),
        file_size=len(data),
        subject=subject.strip(),
        grade=grade.strip(),
    )


def build_knowledge_router(services: Services) -> APIRouter:
    guard = api_key_guard(services.settings.api_key)
    r = APIRouter(prefix="/api/v1/knowledge", tags=["knowledge"], dependencies=[Depends(guard)])

    @r.post("/documents", response_model=UploadOut)
    async def upload_document(
        file: UploadFile = File(...),
        title: str = Form(default=""),
        subject: str = Form(default=""),
        grade: str = Form(default=""),
        user_id: str = Depends(current_user_id),
    ):
        doc = await read_upload(file, user_id=user_id, title=title, subject=subject, grade=grade)
        stored = await services.pipeline.submit(doc)
        logger.info("document %s uploaded by %s (%d bytes)", stored.id, user_id, stored.file_size)
        return UploadOut(id=stored.id, title=stored.title, file_name=stored.file_name, status=stored.status.value)

    @r.get("/documents", response_model=DocumentListOut)
    async def list_documents(
        page: int = Query(default=1, ge=1),
        page_size: int = Query(default=100, ge=1, le=100),
        user_id: str = Depends(current_user_id),
    ):
        docs, total = await services.pipeline.list_documents(user_id, page=page, page_size=page_size)
        return DocumentListOut(items=[DocumentOut.from_document(d) for d in docs], total=total)

    @r.get("/documents/{document_id}", response_model=DocumentOut)
    async def get_document(document_id: str, user_id: str = Depends(current_user_id)):
        doc = await services.pipeline.get(_checked_document_id(document_id), user_id)
        return DocumentOut.from_document(doc)

    @r.get("/documents/{document_id}/status", response_model=StatusOut)
    async def get_document_status(document_id: str, user_id: str = Depends(current_user_id)):
        doc = await services.pipeline.status(_checked_document_id(document_id), user_id)
        return StatusOut(
            id=doc.id,
            status=doc.status.value,
            entity_count=doc.entity_count,
            relation_count=doc.relation_count,
            error_msg=doc.error_msg,
        )

    @r.delete("/documents/{document_id}")
    async def delete_document(document_id: str, user_id: str = Depends(current_user_id)):
        await services.pipeline.delete(_checked_document_id(document_id), user_id)
        return {"message": "document deleted"}

    @r.get("/graph", response_model=GraphOut)
    async def get_graph(
        subject: str = "",
        grade: str = "",
        topic: str = "",
        scope: str = "one_hop",
        limit: int | None = Query(default=None, ge=1, le=1000),
        user_id: str = Depends(current_user_id),
    ):
        graph = await services.graph.get_graph(
            owner_id=user_id, subject=subject, grade=grade, topic=topic, scope=scope, limit=limit
        )
        return GraphOut.from_graph(graph)

    @r.get("/search", response_model=SearchOut)
    async def search(
        query: str = Query(..., min_length=1),
        limit: int = Query(default=10, ge=1, le=100),
        user_id: str = Depends(current_user_id),
    ):
        hits = await services.search.search(query, limit, owner_id=user_id)
        return SearchOut(query=query, count=len(hits), results=[SearchHitOut.from_result(h) for h in hits])

    return r


def create_app(services: Services, *, close_on_shutdown: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        if close_on_shutdown:
            await services.aclose()

    app = FastAPI(title="Lesson Graph - Knowledge Service", version=__version__, lifespan=lifespan)

    @app.middleware("http")
    async def trace_and_measure(request: Request, call_next):
        trace_id = resolve_trace_id(request.headers)
        start = time.perf_counter()
        status_code = 500
        with bind_trace_id(trace_id):
            try:
                response = await call_next(request)
                status_code = response.status_code
            finally:
                route = request.scope.get("route")
                record_http(
                    request.method,
                    getattr(route, "path", request.url.path),
                    status_code,
                    time.perf_counter() - start,
                )
        response.headers[TRACE_ID_HEADER] = trace_id
        response.headers[REQUEST_ID_HEADER] = trace_id
        return response

    @app.exception_handler(DocumentNotFound)
    async def _not_found(_request: Request, _exc: DocumentNotFound):
        return JSONResponse(status_code=404, content={"detail": "document not found"})

    @app.exception_handler(InvalidDocument)
    async def _invalid(_request: Request, exc: InvalidDocument):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(GraphRetrievalError)
    async def _retrieval(_request: Request, exc: GraphRetrievalError):
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.get("/health")
    async def health():
        return {"ok": True, "host": os.uname().nodename}

    @app.get("/metrics", dependencies=[Depends(api_key_guard(services.settings.api_key))])
    async def metrics():
        payload, content_type = render()
        return Response(content=payload, media_type=content_type)

    app.include_router(build_knowledge_router(services))
    return app
