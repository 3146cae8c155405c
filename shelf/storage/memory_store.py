"""In-memory bookmark and embedding store with write-batch invalidation hooks."""

import logging
from collections.abc import Callable, Iterable

from shelf.models.bookmark import Bookmark, Embedding

logger = logging.getLogger(__name__)

WriteHook = Callable[[], None]


class BookmarkStore:
    """Reference implementation of the bookmark and embedding providers.

    Every bookmark-mutating method is one write batch: hooks registered
    with ``add_write_hook`` (typically ``LexicalIndexCache.invalidate``)
    run exactly once after the whole batch has been applied, never once
    per record. Embedding writes do not touch indexed fields and do not
    fire hooks.
    """

    def __init__(self):
        """Initialize empty store."""
        self._bookmarks: dict[int, Bookmark] = {}
        self._embeddings: dict[int, Embedding] = {}
        self._next_id = 1
        self._write_hooks: list[WriteHook] = []

    def add_write_hook(self, hook: WriteHook) -> None:
        """Register a callback to run after each bookmark write batch."""
        self._write_hooks.append(hook)

    def _committed(self, operation: str, count: int) -> None:
        logger.info(f"{operation}: {count} bookmarks affected")
        for hook in self._write_hooks:
            hook()

    async def get_all(self) -> list[Bookmark]:
        """Snapshot of all bookmarks in insertion order."""
        return list(self._bookmarks.values())

    async def get_all_vectors(self) -> list[Embedding]:
        """Snapshot of all active embeddings."""
        return list(self._embeddings.values())

    async def get(self, bookmark_id: int) -> Bookmark | None:
        return self._bookmarks.get(bookmark_id)

    def _find_by_url(self, url: str) -> Bookmark | None:
        for bookmark in self._bookmarks.values():
            if bookmark.url == url:
                return bookmark
        return None

    async def add_bookmarks(self, bookmarks: Iterable[Bookmark]) -> list[int]:
        """Bulk import; bookmarks whose URL already exists are skipped.

        Returns:
            Ids assigned to the newly added bookmarks
        """
        added: list[int] = []
        for bookmark in bookmarks:
            if self._find_by_url(bookmark.url) is not None:
                logger.debug(f"Skipping duplicate URL: {bookmark.url}")
                continue
            bookmark_id = self._next_id
            self._next_id += 1
            self._bookmarks[bookmark_id] = bookmark.model_copy(update={"id": bookmark_id})
            added.append(bookmark_id)

        self._committed("Import", len(added))
        return added

    def _put_by_url(self, bookmark: Bookmark) -> tuple[int, bool]:
        existing = self._find_by_url(bookmark.url)
        if existing is None:
            bookmark_id = self._next_id
            self._next_id += 1
            self._bookmarks[bookmark_id] = bookmark.model_copy(update={"id": bookmark_id})
            return bookmark_id, False

        created_at = existing.created_at or bookmark.created_at
        self._bookmarks[existing.id] = bookmark.model_copy(
            update={"id": existing.id, "created_at": created_at}
        )
        return existing.id, True

    async def upsert_bookmark(self, bookmark: Bookmark) -> int:
        """Insert or replace a bookmark matched by URL; keeps the original id."""
        bookmark_id, _ = self._put_by_url(bookmark)
        self._committed("Upsert", 1)
        return bookmark_id

    async def delete_bookmarks(self, bookmark_ids: Iterable[int]) -> int:
        """Delete bookmarks and their embeddings.

        Returns:
            Number of bookmarks removed
        """
        removed = 0
        for bookmark_id in bookmark_ids:
            if self._bookmarks.pop(bookmark_id, None) is not None:
                self._embeddings.pop(bookmark_id, None)
                removed += 1

        self._committed("Delete", removed)
        return removed

    async def apply_deltas(
        self,
        upserts: Iterable[Bookmark] = (),
        removed_urls: Iterable[str] = (),
    ) -> int:
        """Apply an incremental sync batch of upserts and URL removals.

        Upserted bookmarks that already existed lose their embedding so the
        next backfill re-embeds the changed text.

        Returns:
            Number of upserts and removals applied
        """
        applied = 0
        for bookmark in upserts:
            bookmark_id, replaced = self._put_by_url(bookmark)
            if replaced:
                self._embeddings.pop(bookmark_id, None)
            applied += 1

        for url in removed_urls:
            existing = self._find_by_url(url)
            if existing is None:
                continue
            del self._bookmarks[existing.id]
            self._embeddings.pop(existing.id, None)
            applied += 1

        self._committed("Delta sync", applied)
        return applied

    async def clear(self) -> None:
        """Remove every bookmark and embedding."""
        count = len(self._bookmarks)
        self._bookmarks.clear()
        self._embeddings.clear()
        self._committed("Clear", count)

    async def put_embeddings(self, embeddings: Iterable[Embedding]) -> int:
        """Store embeddings, replacing any previous vector for the bookmark.

        Embeddings for unknown bookmarks are ignored.

        Returns:
            Number of embeddings stored
        """
        stored = 0
        for embedding in embeddings:
            if embedding.bookmark_id not in self._bookmarks:
                logger.warning(f"Ignoring embedding for unknown bookmark {embedding.bookmark_id}")
                continue
            self._embeddings[embedding.bookmark_id] = embedding
            stored += 1
        return stored
