"""Global lexical (BM25) index over bookmark fields with fuzzy/prefix matching."""

import asyncio
import logging
import re
from collections import defaultdict
from collections.abc import Iterable

from rank_bm25 import BM25Plus
from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

from shelf.config import Settings, get_settings
from shelf.models.bookmark import Bookmark
from shelf.models.search import LexicalHit
from shelf.storage.providers import BookmarkProvider

logger = logging.getLogger(__name__)

INDEXED_FIELDS = ("title", "domain", "folder_path", "url")

DEFAULT_BOOSTS = {
    "title": 2.0,
    "domain": 1.5,
    "folder_path": 1.0,
    "url": 0.8,
}

# Score multipliers for non-exact term expansions
PREFIX_WEIGHT = 0.375
FUZZY_WEIGHT = 0.45
MAX_FUZZY_DISTANCE = 6

_TOKEN_SPLIT_RE = re.compile(r"[\W_]+")


def tokenize_field(text: str) -> list[str]:
    """Lowercase and split on whitespace and punctuation."""
    return [t for t in _TOKEN_SPLIT_RE.split(text.lower()) if t]


class IndexBuildError(Exception):
    """Raised when the lexical index cannot be built."""

    pass


class LexicalIndex:
    """Immutable full-text index with one document per bookmark.

    Each field (title, domain, folder_path, url) gets its own BM25 model so
    per-field boosts can be applied. Query terms are expanded against the
    index vocabulary by exact, prefix and fuzzy (edit distance) matching.
    """

    def __init__(
        self,
        doc_ids: list[int],
        field_tokens: dict[str, list[list[str]]],
        boosts: dict[str, float] | None = None,
        fuzzy: float = 0.15,
        prefix: bool = True,
        k1: float = 1.2,
        b: float = 0.7,
    ):
        """Initialize lexical index from tokenized fields.

        Args:
            doc_ids: Bookmark id for each document position
            field_tokens: Field name -> per-document token lists
            boosts: Per-field boost weights
            fuzzy: Max edit distance as a fraction of term length
            prefix: Whether query terms also match as prefixes
            k1: BM25 k1 parameter (term frequency saturation)
            b: BM25 b parameter (length normalization)
        """
        self.doc_ids = doc_ids
        self.boosts = dict(boosts or DEFAULT_BOOSTS)
        self.fuzzy = fuzzy
        self.prefix = prefix

        self._bm25: dict[str, BM25Plus] = {}
        self._postings: dict[str, dict[str, list[int]]] = {}
        vocabulary: set[str] = set()

        for field_name in INDEXED_FIELDS:
            corpus = field_tokens.get(field_name) or [[] for _ in doc_ids]
            postings: dict[str, list[int]] = defaultdict(list)
            for position, tokens in enumerate(corpus):
                for token in dict.fromkeys(tokens):
                    postings[token].append(position)
            self._postings[field_name] = dict(postings)
            vocabulary.update(postings)
            if postings:
                self._bm25[field_name] = BM25Plus(corpus, k1=k1, b=b, delta=0.5)

        self.vocabulary = sorted(vocabulary)
        self._vocabulary_set = vocabulary

        logger.debug(
            f"Built LexicalIndex: {len(doc_ids)} documents, {len(self.vocabulary)} terms"
        )

    @classmethod
    def from_bookmarks(
        cls,
        bookmarks: Iterable[Bookmark],
        **kwargs,
    ) -> "LexicalIndex":
        """Build an index from bookmark records, skipping records without an id."""
        doc_ids: list[int] = []
        field_tokens: dict[str, list[list[str]]] = {name: [] for name in INDEXED_FIELDS}

        for bookmark in bookmarks:
            if bookmark.id is None:
                continue
            doc_ids.append(bookmark.id)
            for field_name in INDEXED_FIELDS:
                field_tokens[field_name].append(tokenize_field(getattr(bookmark, field_name) or ""))

        return cls(doc_ids, field_tokens, **kwargs)

    def __len__(self) -> int:
        return len(self.doc_ids)

    def expand_term(self, term: str) -> dict[str, float]:
        """Map a query term to matching vocabulary terms and their weights.

        Exact matches weigh 1. Prefix and fuzzy matches are discounted by
        how much longer or how many edits away the indexed term is.
        """
        expansions: dict[str, float] = {}
        length = len(term)

        if self.prefix:
            for candidate in self.vocabulary:
                if candidate.startswith(term) and candidate != term:
                    extra = len(candidate) - length
                    expansions[candidate] = PREFIX_WEIGHT * length / (length + 0.3 * extra)

        max_distance = min(MAX_FUZZY_DISTANCE, int(length * self.fuzzy + 0.5))
        if max_distance > 0:
            matches = process.extract(
                term,
                self.vocabulary,
                scorer=Levenshtein.distance,
                score_cutoff=max_distance,
                limit=None,
            )
            for candidate, distance, _ in matches:
                if distance == 0:
                    continue
                weight = FUZZY_WEIGHT * length / (length + distance)
                expansions[candidate] = max(weight, expansions.get(candidate, 0.0))

        if term in self._vocabulary_set:
            expansions[term] = 1.0

        return expansions

    def search(self, query: str) -> list[LexicalHit]:
        """Search all fields and return scored hits.

        Args:
            query: Query text (typically ParsedQuery.search_text)

        Returns:
            LexicalHit list sorted by score descending; documents with equal
            scores keep index order
        """
        if not self.doc_ids:
            return []

        scores: dict[int, float] = defaultdict(float)
        for term in dict.fromkeys(tokenize_field(query)):
            for expanded, weight in self.expand_term(term).items():
                for field_name, bm25 in self._bm25.items():
                    positions = self._postings[field_name].get(expanded)
                    if not positions:
                        continue
                    boost = self.boosts.get(field_name, 1.0)
                    field_scores = bm25.get_batch_scores([expanded], positions)
                    for position, score in zip(positions, field_scores):
                        scores[position] += weight * boost * float(score)

        ranked = sorted(
            (position for position, score in scores.items() if score > 0),
            key=lambda position: (-scores[position], position),
        )
        return [LexicalHit(bookmark_id=self.doc_ids[p], score=scores[p]) for p in ranked]


class LexicalIndexCache:
    """Lazily built, explicitly invalidated holder for the global LexicalIndex.

    Concurrent ``get_index()`` calls share a single in-flight build.
    ``invalidate()`` drops both the cached index and the in-flight build
    reference; an orphaned build still completes for its awaiting callers
    but its result is never cached. Providers that expose
    ``add_write_hook`` get ``invalidate`` registered so each write batch
    drops the index.
    """

    def __init__(
        self,
        bookmark_provider: BookmarkProvider,
        settings: Settings | None = None,
    ):
        """Initialize index cache.

        Args:
            bookmark_provider: Source of the full bookmark collection
            settings: Settings for fuzzy/prefix/boost/BM25 parameters
        """
        self.bookmark_provider = bookmark_provider
        self.settings = settings or get_settings()

        self._index: LexicalIndex | None = None
        self._build_task: asyncio.Task | None = None
        self.build_count = 0

        add_write_hook = getattr(bookmark_provider, "add_write_hook", None)
        if add_write_hook is not None:
            add_write_hook(self.invalidate)

    @property
    def is_cached(self) -> bool:
        return self._index is not None

    async def get_index(self) -> LexicalIndex:
        """Return the cached index, joining or starting a build as needed.

        Raises:
            IndexBuildError: If reading the collection or building fails
        """
        if self._index is not None:
            return self._index

        task = self._build_task
        if task is None:
            task = asyncio.ensure_future(self._build())
            task.add_done_callback(self._on_build_done)
            self._build_task = task

        return await asyncio.shield(task)

    def invalidate(self) -> None:
        """Drop the cached index; the next get_index() rebuilds."""
        if self._index is not None or self._build_task is not None:
            logger.info("Lexical index invalidated")
        self._index = None
        self._build_task = None

    async def _build(self) -> LexicalIndex:
        self.build_count += 1
        try:
            bookmarks = await self.bookmark_provider.get_all()
            index = LexicalIndex.from_bookmarks(
                bookmarks,
                boosts=self.settings.field_boosts,
                fuzzy=self.settings.lexical_fuzzy,
                prefix=self.settings.lexical_prefix,
                k1=self.settings.bm25_k1,
                b=self.settings.bm25_b,
            )
        except Exception as e:
            logger.error(f"Lexical index build FAILED: {e}")
            raise IndexBuildError(f"Failed to build lexical index: {e}") from e

        logger.info(f"Built lexical index with {len(index)} bookmarks")
        return index

    def _on_build_done(self, task: asyncio.Task) -> None:
        if task is not self._build_task:
            # Orphaned by invalidate(); result is discarded
            if not task.cancelled():
                task.exception()
            return

        self._build_task = None
        if task.cancelled() or task.exception() is not None:
            return
        self._index = task.result()
