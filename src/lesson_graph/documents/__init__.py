"""Document store: uploaded documents and their processing status."""

from .models import DocumentStatus, KnowledgeDocument
from .repository import DocumentRepository, InMemoryDocumentRepository

__all__ = ["DocumentStatus", "KnowledgeDocument", "DocumentRepository", "InMemoryDocumentRepository"]
