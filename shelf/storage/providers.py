"""Boundary contracts for the bookmark collection, embeddings and query embedding."""

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from shelf.models.bookmark import Bookmark, Embedding

# Async function turning query text into an embedding vector
QueryEmbedder = Callable[[str], Awaitable[list[float]]]


@runtime_checkable
class BookmarkProvider(Protocol):
    """Full-snapshot read access to the bookmark collection."""

    async def get_all(self) -> list[Bookmark]: ...


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Read access to all stored bookmark embeddings."""

    async def get_all_vectors(self) -> list[Embedding]: ...
