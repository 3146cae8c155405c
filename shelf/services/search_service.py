"""Search service fusing lexical and semantic retrieval into ranked bookmarks."""

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from shelf.config import Settings, get_settings
from shelf.logging_config import clear_search_id, get_logger, set_search_id
from shelf.models.bookmark import Bookmark, Embedding
from shelf.models.query import ParsedQuery, SearchFilters
from shelf.models.search import (
    KeywordHit,
    LexicalHit,
    MatchSignals,
    MatchTier,
    SearchResult,
    SemanticHit,
)
from shelf.retrieval.explain import (
    FILTERED_TEXT,
    SEMANTIC_REASON,
    build_reasons,
    format_reasons,
)
from shelf.retrieval.lexical_index import IndexBuildError, LexicalIndexCache
from shelf.retrieval.match_signals import (
    infer_match_signals,
    is_junk_title,
    is_recent,
    matches_exclude,
    matches_or_group,
    to_epoch_seconds,
)
from shelf.retrieval.query_parser import parse_query
from shelf.retrieval.semantic import semantic_top_k
from shelf.storage.providers import BookmarkProvider, EmbeddingProvider, QueryEmbedder

logger = get_logger(__name__)

# Ranking constants
ALPHA = 0.55
MIN_COMBINED_SCORE = 0.2
RELATED_SEMANTIC_FLOOR = 0.15
PHRASE_BOOST_STEP = 0.07
PHRASE_BOOST_CAP = 0.2
JUNK_PENALTY = 0.15
RECENCY_BOOST = 0.05
RECENCY_MAX_QUERY_PARTS = 2


class SearchError(Exception):
    """Raised when a search invocation fails.

    ``recoverable`` is True when retrying the same search may succeed,
    such as after a failed query embedding; cached state is unaffected.
    """

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


@dataclass
class CandidateUniverse:
    """Bookmarks and embeddings that survived the active filters."""

    bookmarks: list[Bookmark] = field(default_factory=list)
    embeddings: list[Embedding] = field(default_factory=list)
    by_id: dict[int, Bookmark] = field(default_factory=dict)


def merge_filters(parsed: ParsedQuery, ui_filters: SearchFilters) -> SearchFilters:
    """Query operators override UI-selected folder/domain filters."""
    return SearchFilters(
        folder=parsed.folder or ui_filters.folder,
        domain=parsed.domain or ui_filters.domain,
        date_range=ui_filters.date_range,
    )


def filter_universe(
    bookmarks: list[Bookmark],
    embeddings: list[Embedding],
    filters: SearchFilters,
    now: float,
) -> CandidateUniverse:
    """Apply folder, domain and add-date filters with AND semantics."""
    days = filters.date_range.days
    cutoff = now - days * 24 * 3600 if days is not None else None
    domain = filters.domain.lower() if filters.domain else None

    universe = CandidateUniverse()
    for bookmark in bookmarks:
        if bookmark.id is None:
            continue
        if filters.folder and bookmark.folder_path != filters.folder:
            continue
        if domain and (bookmark.domain or "").lower() != domain:
            continue
        if cutoff is not None:
            added = to_epoch_seconds(bookmark.add_date)
            if added is None or added < cutoff:
                continue
        universe.bookmarks.append(bookmark)
        universe.by_id[bookmark.id] = bookmark

    universe.embeddings = [e for e in embeddings if e.bookmark_id in universe.by_id]
    return universe


def filter_only_results(universe: CandidateUniverse, limit: int) -> list[SearchResult]:
    """Filtered bookmarks, newest first, without relevance scoring."""

    def added_at(bookmark: Bookmark) -> float:
        return (
            to_epoch_seconds(bookmark.add_date)
            or to_epoch_seconds(bookmark.created_at)
            or 0.0
        )

    ordered = sorted(universe.bookmarks, key=added_at, reverse=True)
    return [
        SearchResult(bookmark=b, score=1.0, why_matched=FILTERED_TEXT)
        for b in ordered[:limit]
    ]


def collect_keyword_hits(
    raw_hits: list[LexicalHit],
    parsed: ParsedQuery,
    universe: CandidateUniverse,
) -> list[KeywordHit]:
    """Validate raw lexical hits against filters, exclusions and OR-groups."""
    keyword_hits = []
    for hit in raw_hits:
        bookmark = universe.by_id.get(hit.bookmark_id)
        if bookmark is None:
            continue
        if matches_exclude(bookmark, parsed.exclude_terms):
            continue
        if len(parsed.or_groups) > 1 and not any(
            matches_or_group(bookmark, group) for group in parsed.or_groups
        ):
            continue
        keyword_hits.append(
            KeywordHit(
                bookmark_id=hit.bookmark_id,
                score=hit.score,
                signals=infer_match_signals(bookmark, parsed),
            )
        )
    return keyword_hits


def _max_keyword_score(keyword_hits: list[KeywordHit]) -> float:
    top = max((kh.score for kh in keyword_hits), default=1.0)
    return top if top > 0 else 1.0


def combined_score(
    semantic: float,
    keyword: float,
    signals: MatchSignals | None,
    bookmark: Bookmark,
    parsed: ParsedQuery,
    now: float,
) -> float:
    """Weighted blend plus phrase/junk/recency adjustments, clamped to [0, 1]."""
    phrase_count = len(signals.matched_phrases) if signals else 0
    phrase_boost = min(PHRASE_BOOST_CAP, PHRASE_BOOST_STEP * phrase_count)
    junk_penalty = JUNK_PENALTY if is_junk_title(bookmark.title) else 0.0
    recency_boost = 0.0
    if len(parsed.terms) + len(parsed.phrases) <= RECENCY_MAX_QUERY_PARTS and is_recent(
        bookmark, now
    ):
        recency_boost = RECENCY_BOOST

    score = ALPHA * semantic + (1 - ALPHA) * keyword + phrase_boost - junk_penalty + recency_boost
    return min(1.0, max(0.0, score))


def rank_keyword_only(
    keyword_hits: list[KeywordHit],
    parsed: ParsedQuery,
    universe: CandidateUniverse,
    limit: int,
    now: float,
) -> list[SearchResult]:
    """Score lexical hits alone; no thresholding is applied."""
    max_keyword = _max_keyword_score(keyword_hits)
    results = []
    for kh in keyword_hits:
        bookmark = universe.by_id[kh.bookmark_id]
        reasons = build_reasons(kh.signals, has_semantic_score=False)
        results.append(
            SearchResult(
                bookmark=bookmark,
                score=combined_score(0.0, kh.score / max_keyword, kh.signals, bookmark, parsed, now),
                why_matched=format_reasons(reasons),
                reasons=reasons,
                matched_terms=kh.signals.matched_terms or None,
            )
        )
    results.sort(key=lambda r: r.score, reverse=True)
    return results[:limit]


def rank_hybrid(
    keyword_hits: list[KeywordHit],
    semantic_hits: list[SemanticHit],
    parsed: ParsedQuery,
    universe: CandidateUniverse,
    limit: int,
    now: float,
) -> list[SearchResult]:
    """Fuse lexical and semantic candidates and keep the strong ones.

    Candidates are discovered lexical-first, then semantic; the stable sort
    keeps that order for equal scores.
    """
    keyword_by_id = {kh.bookmark_id: kh for kh in keyword_hits}
    semantic_by_id = {sh.bookmark_id: sh.score for sh in semantic_hits}
    max_keyword = _max_keyword_score(keyword_hits)

    candidate_ids = dict.fromkeys(
        [kh.bookmark_id for kh in keyword_hits] + [sh.bookmark_id for sh in semantic_hits]
    )

    candidates = []
    for bookmark_id in candidate_ids:
        bookmark = universe.by_id.get(bookmark_id)
        if bookmark is None:
            continue
        semantic = semantic_by_id.get(bookmark_id, 0.0)
        kh = keyword_by_id.get(bookmark_id)
        keyword = kh.score / max_keyword if kh else 0.0
        signals = kh.signals if kh else None

        score = combined_score(semantic, keyword, signals, bookmark, parsed, now)
        logger.debug(
            f"    candidate={bookmark_id} semantic={semantic:.4f} "
            f"keyword={keyword:.4f} final={score:.4f}"
        )
        if score < MIN_COMBINED_SCORE:
            continue

        reasons = build_reasons(signals, has_semantic_score=semantic > 0)
        candidates.append(
            SearchResult(
                bookmark=bookmark,
                score=score,
                why_matched=format_reasons(reasons),
                reasons=reasons,
                matched_terms=(signals.matched_terms or None) if signals else None,
                tier=MatchTier.STRONG,
            )
        )

    candidates.sort(key=lambda r: r.score, reverse=True)
    return candidates[:limit]


def backfill_related(
    strong: list[SearchResult],
    semantic_hits: list[SemanticHit],
    universe: CandidateUniverse,
    limit: int,
) -> list[SearchResult]:
    """Top up a short strong list with semantic-only related results."""
    if len(strong) >= limit or not semantic_hits:
        return strong[:limit]

    taken = {r.bookmark.id for r in strong}
    related = []
    for sh in semantic_hits:
        if len(strong) + len(related) >= limit:
            break
        if sh.score < RELATED_SEMANTIC_FLOOR or sh.bookmark_id in taken:
            continue
        bookmark = universe.by_id.get(sh.bookmark_id)
        if bookmark is None:
            continue
        related.append(
            SearchResult(
                bookmark=bookmark,
                score=min(1.0, sh.score),
                why_matched=format_reasons([SEMANTIC_REASON]),
                reasons=[SEMANTIC_REASON],
                tier=MatchTier.RELATED,
            )
        )

    merged = strong + related
    merged.sort(key=lambda r: r.score, reverse=True)
    return merged[:limit]


class SearchService:
    """Service running the hybrid bookmark search pipeline.

    Pipeline per call:
    1. Parse the query and merge operator filters over UI filters
    2. Load and filter the bookmark/embedding universe
    3. Filter-only short-circuit when there is no search text
    4. Lexical candidates validated against exclusions and OR-groups
    5. Keyword-only ranking when no embeddings are available
    6. Hybrid fusion with the strong threshold
    7. Related backfill from semantic-only hits
    """

    def __init__(
        self,
        bookmark_provider: BookmarkProvider,
        embedding_provider: EmbeddingProvider,
        embed_query: QueryEmbedder | None = None,
        index_cache: LexicalIndexCache | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize search service.

        Args:
            bookmark_provider: Full bookmark collection snapshot
            embedding_provider: Stored bookmark embeddings
            embed_query: Async query embedding function; when None the
                service ranks lexically only
            index_cache: Shared lexical index cache
            settings: Result sizes and lexical tuning
            clock: Time source in epoch seconds
        """
        self.settings = settings or get_settings()
        self.bookmark_provider = bookmark_provider
        self.embedding_provider = embedding_provider
        self.embed_query = embed_query
        self.index_cache = index_cache or LexicalIndexCache(bookmark_provider, self.settings)
        self.clock = clock

        logger.info(
            f"SearchService initialized: semantic={'on' if embed_query else 'off'}, "
            f"result_limit={self.settings.result_limit}"
        )

    async def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
    ) -> list[SearchResult]:
        """Search bookmarks.

        Args:
            query: Raw query text, possibly with operators
            filters: UI filters; folder/domain are overridden by operators

        Returns:
            At most ``result_limit`` results, highest score first

        Raises:
            SearchError: If the lexical index cannot be built or the query
                embedding fails
        """
        set_search_id(uuid.uuid4().hex[:8])
        try:
            return await self._search(query, filters or SearchFilters())
        finally:
            clear_search_id()

    async def _search(self, query: str, ui_filters: SearchFilters) -> list[SearchResult]:
        limit = self.settings.result_limit
        now = self.clock()

        parsed = parse_query(query)
        effective = merge_filters(parsed, ui_filters)
        logger.info(f"→ Search START: query={query!r} search_text={parsed.search_text!r}")

        if not parsed.search_text and not (parsed.has_operator_filter or ui_filters.is_active):
            logger.info("✓ Search COMPLETE: empty query")
            return []

        bookmarks, embeddings = await asyncio.gather(
            self.bookmark_provider.get_all(),
            self.embedding_provider.get_all_vectors(),
        )
        universe = filter_universe(bookmarks, embeddings, effective, now)
        logger.info(
            f"  Universe: {len(universe.bookmarks)}/{len(bookmarks)} bookmarks, "
            f"{len(universe.embeddings)} embeddings"
        )

        if not parsed.search_text:
            results = filter_only_results(universe, self.settings.filter_only_limit)
            logger.info(f"✓ Search COMPLETE (filter-only): {len(results)} results")
            return results

        try:
            index = await self.index_cache.get_index()
        except IndexBuildError as e:
            raise SearchError(f"Search failed: {e}") from e

        keyword_hits = collect_keyword_hits(index.search(parsed.search_text), parsed, universe)
        logger.info(f"  Lexical: {len(keyword_hits)} validated hits")

        if not universe.embeddings or self.embed_query is None:
            results = rank_keyword_only(keyword_hits, parsed, universe, limit, now)
            logger.info(f"✓ Search COMPLETE (keyword-only): {len(results)} results")
            return results

        try:
            query_vector = await self.embed_query(parsed.search_text or " ")
        except Exception as e:
            logger.error(f"  Query embedding FAILED: {e}")
            raise SearchError("Search failed, try again") from e

        semantic_hits = semantic_top_k(universe.embeddings, query_vector, self.settings.semantic_top_k)
        strong = rank_hybrid(keyword_hits, semantic_hits, parsed, universe, limit, now)
        results = backfill_related(strong, semantic_hits, universe, limit)

        logger.info(
            f"✓ Search COMPLETE (hybrid): {len(keyword_hits)} keyword + "
            f"{len(semantic_hits)} semantic → {len(strong)} strong → {len(results)} results"
        )
        return results

    async def get_filter_options(self) -> dict[str, list[str]]:
        """Distinct folders and domains for filter dropdowns."""
        bookmarks = await self.bookmark_provider.get_all()
        return {
            "folders": sorted({b.folder_path for b in bookmarks if b.folder_path}),
            "domains": sorted({b.domain for b in bookmarks if b.domain}),
        }
