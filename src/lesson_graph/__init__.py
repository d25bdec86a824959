"""Lesson Graph.

Personal knowledge-graph construction and retrieval for lesson planning:
- asynchronous document ingestion through the agent service
- scoped multi-hop graph traversal for visualization
- semantic search with a text-search fallback
"""

__version__ = "0.1.0"
