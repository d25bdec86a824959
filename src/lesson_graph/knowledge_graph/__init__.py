"""Knowledge graph subsystem.

This module provides:
- Node/edge models and the static type/scope vocabularies
- A graph store abstraction with Neo4j and in-memory implementations
- A query engine for scoped traversals
- Semantic search with a text-search fallback
"""

from .models import KnowledgeGraph, KnowledgePoint, Relation, SearchResult
from .query_engine import GraphQueryEngine
from .search import SemanticSearchService
from .store import GraphStore

__all__ = [
    "KnowledgeGraph",
    "KnowledgePoint",
    "Relation",
    "SearchResult",
    "GraphQueryEngine",
    "SemanticSearchService",
    "GraphStore",
]
