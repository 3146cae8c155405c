#!/usr/bin/env python3
"""Run sample queries against a JSON bookmark export and print top results.

Usage:
    python scripts/search_harness.py bookmarks.json [query ...]

When OPENAI_API_KEY is configured, bookmarks are embedded first and the
hybrid path is exercised; otherwise searches are lexical only.
"""

import asyncio
import json
import sys
from pathlib import Path

from shelf.clients.openai_client import OpenAIEmbeddingClient
from shelf.config import get_settings
from shelf.logging_config import setup_logging
from shelf.models.bookmark import Bookmark
from shelf.retrieval.lexical_index import LexicalIndexCache
from shelf.services.embedding_service import EmbeddingService
from shelf.services.search_service import SearchService
from shelf.storage.memory_store import BookmarkStore

SAMPLE_QUERIES = [
    "react hooks",
    '"design system"',
    "site:github.com shelf",
    'folder:"Bookmarks Bar/Work"',
    "how to set up vite project",
]


def print_results(query: str, results: list) -> None:
    """Print the top results of one query."""
    print(f"\nQuery: {query}")
    print("-" * 80)
    if not results:
        print("  (no results)")
        return
    for i, result in enumerate(results[:5], 1):
        row = result.to_dict()
        tier = f" [{row['tier']}]" if row["tier"] else ""
        print(f"  {i}. {row['score']:.3f}{tier} {row['title']}")
        print(f"     {row['url']}")
        print(f"     {row['why_matched']}")


async def main():
    """Main function."""
    if len(sys.argv) < 2:
        print("Usage: python scripts/search_harness.py <bookmarks.json> [query ...]")
        sys.exit(1)

    setup_logging()
    settings = get_settings()

    records = json.loads(Path(sys.argv[1]).read_text(encoding="utf-8"))
    store = BookmarkStore()
    index_cache = LexicalIndexCache(store, settings)
    await store.add_bookmarks(Bookmark.model_validate(r) for r in records)

    client = None
    if settings.openai_api_key:
        client = OpenAIEmbeddingClient(
            api_key=settings.openai_api_key,
            embedding_model=settings.openai_embedding_model,
            timeout=settings.embedding_timeout,
            max_retries=settings.embedding_max_retries,
        )
        embedder = EmbeddingService(store, client, settings.openai_embedding_model)
        await embedder.index_missing(
            on_progress=lambda p: print(f"Embedded {p.done}/{p.total}")
        )

    service = SearchService(
        store,
        store,
        embed_query=client.embed_text if client else None,
        index_cache=index_cache,
        settings=settings,
    )

    queries = sys.argv[2:] or SAMPLE_QUERIES
    try:
        for query in queries:
            print_results(query, await service.search(query))
    finally:
        if client is not None:
            await client.close()


if __name__ == "__main__":
    asyncio.run(main())
