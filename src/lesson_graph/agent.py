"""Client for the agent service that runs extraction and embedding models."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .errors import AgentError, AgentResponseError
from .http import DownstreamClient, HttpClientFactory
from .settings import LessonGraphSettings

logger = logging.getLogger(__name__)

BUILD_GRAPH_PATH = "/api/build-graph"
DELETE_DOCUMENT_NODES_PATH = "/api/delete-document-nodes"
EMBEDDING_PATH = "/api/embedding"


class _AgentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BuildGraphRequest(_AgentModel):
    document_id: str
    user_id: str
    content: str
    title: str
    subject: str = ""
    grade: str = ""


class BuildGraphResult(_AgentModel):
    success: bool = False
    message: str = ""
    entity_count: int = 0
    relation_count: int = 0


class EmbeddingResult(_AgentModel):
    embedding: list[float] = Field(default_factory=list)


class AgentClient:
    """Typed wrapper over the three agent endpoints.

    All calls go through the shared DownstreamClient so they get the same
    retry, trace and observation behaviour.
    """

    def __init__(self, downstream: DownstreamClient):
        self._downstream = downstream

    @classmethod
    def from_settings(cls, cfg: LessonGraphSettings) -> "AgentClient":
        headers = {}
        if cfg.agent_api_key:
            headers["Authorization"] = f"Bearer {cfg.agent_api_key}"
        client = HttpClientFactory.client(
            base_url=cfg.agent_url.rstrip("/"), headers=headers, timeout_s=cfg.agent_timeout_s
        )
        return cls(DownstreamClient(client, service="agent"))

    async def aclose(self) -> None:
        await self._downstream.aclose()

    async def build_graph(self, request: BuildGraphRequest) -> BuildGraphResult:
        resp = await self._downstream.post_json(
            BUILD_GRAPH_PATH, request.model_dump(by_alias=True), operation="build_graph"
        )
        if resp.status_code != 200:
            logger.error(
                "agent build-graph for %s returned %s: %s",
                request.document_id,
                resp.status_code,
                resp.body[:500].decode("utf-8", errors="replace"),
            )
            raise AgentError(f"agent processing failed (status {resp.status_code})")
        try:
            return BuildGraphResult.model_validate_json(resp.body)
        except ValidationError as e:
            raise AgentResponseError("could not parse agent response") from e

    async def delete_document_nodes(self, document_id: str) -> None:
        resp = await self._downstream.post_json(
            DELETE_DOCUMENT_NODES_PATH, {"documentId": document_id}, operation="delete_document_nodes"
        )
        if not resp.ok:
            raise AgentError(f"node deletion for {document_id} returned status {resp.status_code}")

    async def embedding(self, text: str) -> list[float]:
        resp = await self._downstream.post_json(EMBEDDING_PATH, {"text": text}, operation="embedding")
        if resp.status_code != 200:
            raise AgentError(f"embedding API returned status {resp.status_code}")
        try:
            result = EmbeddingResult.model_validate_json(resp.body)
        except ValidationError as e:
            raise AgentResponseError("could not parse embedding response") from e
        if not result.embedding:
            raise AgentResponseError("embedding response contained no vector")
        return result.embedding
