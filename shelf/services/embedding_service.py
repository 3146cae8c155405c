"""Backfill of bookmark embeddings through an embedding client."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from shelf.logging_config import get_logger
from shelf.models.bookmark import Bookmark, Embedding
from shelf.storage.memory_store import BookmarkStore

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 24


class BatchEmbedder(Protocol):
    async def embed_batch(self, texts: list[str]) -> list[list[float]]: ...


@dataclass
class IndexingProgress:
    done: int
    total: int


def embedding_text(bookmark: Bookmark) -> str:
    """Text embedded for a bookmark: title | domain | folder, else the URL."""
    parts = [p for p in (bookmark.title, bookmark.domain, bookmark.folder_path) if p]
    return " | ".join(parts) or bookmark.url


class EmbeddingService:
    """Generates vectors for bookmarks that do not have one yet."""

    def __init__(
        self,
        store: BookmarkStore,
        embedder: BatchEmbedder,
        model_name: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.store = store
        self.embedder = embedder
        self.model_name = model_name
        self.batch_size = batch_size

    async def index_missing(
        self,
        on_progress: Callable[[IndexingProgress], None] | None = None,
    ) -> int:
        """Embed and store every bookmark lacking a vector.

        Args:
            on_progress: Called after each stored batch

        Returns:
            Number of bookmarks embedded
        """
        bookmarks = await self.store.get_all()
        existing = {e.bookmark_id for e in await self.store.get_all_vectors()}
        pending = [b for b in bookmarks if b.id is not None and b.id not in existing]

        total = len(pending)
        if total == 0:
            logger.info("All bookmarks already have embeddings")
            return 0

        logger.info(f"Embedding {total} bookmarks in batches of {self.batch_size}")
        done = 0
        for start in range(0, total, self.batch_size):
            batch = pending[start:start + self.batch_size]
            vectors = await self.embedder.embed_batch([embedding_text(b) for b in batch])
            done += await self.store.put_embeddings(
                Embedding(bookmark_id=b.id, vector=v, model_name=self.model_name)
                for b, v in zip(batch, vectors)
            )
            if on_progress is not None:
                on_progress(IndexingProgress(done=done, total=total))

        logger.info(f"Embedded {done} bookmarks")
        return done
