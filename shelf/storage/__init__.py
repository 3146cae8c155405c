"""Storage boundary: provider contracts and the in-memory store."""

from shelf.storage.memory_store import BookmarkStore
from shelf.storage.providers import BookmarkProvider, EmbeddingProvider, QueryEmbedder

__all__ = [
    "BookmarkProvider",
    "BookmarkStore",
    "EmbeddingProvider",
    "QueryEmbedder",
]
