"""HTTP API over the ingestion pipeline, graph query engine and search."""
