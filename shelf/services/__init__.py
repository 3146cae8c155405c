"""Service layer for search and embedding backfill."""

from shelf.services.embedding_service import EmbeddingService, embedding_text
from shelf.services.search_service import SearchError, SearchService

__all__ = [
    "EmbeddingService",
    "SearchError",
    "SearchService",
    "embedding_text",
]
