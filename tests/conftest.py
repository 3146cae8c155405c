"""Pytest configuration and shared fixtures."""

import pytest

from shelf.config import Settings
from shelf.models.bookmark import Bookmark, Embedding
from shelf.storage.memory_store import BookmarkStore

# Fixed clock for date filters and recency: 2026-01-15 00:00:00 UTC
NOW = 1768435200.0
DAY = 24 * 3600


class FakeEmbedder:
    """Deterministic query embedder recording the texts it was asked to embed."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, default=None, error=None):
        self.vectors = vectors or {}
        self.default = default or [0.0, 0.0, 1.0]
        self.error = error
        self.calls: list[str] = []

    async def __call__(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.vectors.get(text, self.default)


async def make_store(
    bookmarks: list[Bookmark],
    vectors: dict[int, list[float]] | None = None,
) -> BookmarkStore:
    """Populate an in-memory store; vectors are keyed by 1-based insertion id."""
    store = BookmarkStore()
    await store.add_bookmarks(bookmarks)
    if vectors:
        await store.put_embeddings(
            Embedding(bookmark_id=bookmark_id, vector=vector, model_name="test-model")
            for bookmark_id, vector in vectors.items()
        )
    return store


@pytest.fixture
def settings():
    """Default settings isolated from .env files."""
    return Settings(_env_file=None)


@pytest.fixture
def pasta_bookmark():
    """The creamy garlic pasta bookmark."""
    return Bookmark(
        url="https://bonappetit.com/pasta",
        title="Creamy Garlic Pasta",
        domain="bonappetit.com",
        folder_path="Recipes",
    )


@pytest.fixture
def now():
    """Fixed epoch-seconds clock value."""
    return NOW


@pytest.fixture
def store_factory():
    """Async factory building a populated BookmarkStore."""
    return make_store


@pytest.fixture
def embedder_factory():
    """Factory for deterministic query embedders."""
    return FakeEmbedder
