"""Tests for SearchService and its ranking stages.

Covers the filter-only path, keyword-only ranking, hybrid fusion with the
strong threshold and related backfill, operator handling, failure modes
and index invalidation through store write hooks.
"""

import asyncio

import pytest
from hypothesis import given, settings as hypothesis_settings
from hypothesis import strategies as st

from shelf.config import Settings
from shelf.models.bookmark import Bookmark, Embedding
from shelf.models.query import DateRange, ParsedQuery, SearchFilters
from shelf.models.search import MatchReason, MatchSignals, MatchTier, PhraseMatch, ReasonKind
from shelf.retrieval.lexical_index import LexicalIndexCache
from shelf.retrieval.query_parser import parse_query
from shelf.services import search_service
from shelf.services.search_service import (
    SearchError,
    SearchService,
    combined_score,
)
from shelf.storage.memory_store import BookmarkStore

NOW = 1768435200.0
DAY = 24 * 3600


def _service(store, embedder=None, settings=None, **kwargs):
    return SearchService(
        store,
        store,
        embed_query=embedder,
        settings=settings or Settings(_env_file=None),
        clock=lambda: NOW,
        **kwargs,
    )


def _ids(results):
    return [r.bookmark.id for r in results]


@pytest.fixture
def recipe_bookmarks():
    return [
        Bookmark(url="https://a.com/soup", title="Tomato Soup", domain="a.com",
                 folder_path="Recipes", add_date=int(NOW - 3 * DAY)),
        Bookmark(url="https://b.com/bread", title="Sourdough Bread", domain="b.com",
                 folder_path="Recipes", add_date=int(NOW - DAY)),
        Bookmark(url="https://c.com/cake", title="Lemon Cake", domain="c.com",
                 folder_path="Recipes", created_at=int((NOW - 10 * DAY) * 1000)),
        Bookmark(url="https://d.com/jobs", title="Job board", domain="d.com",
                 folder_path="Work", add_date=int(NOW - 40 * DAY)),
    ]


class FailingProvider:
    """Bookmark provider whose scans always fail."""

    async def get_all(self):
        raise OSError("disk unavailable")


class TestKeywordOnlySearch:
    """Searches with no stored embeddings rank by lexical score alone."""

    @pytest.mark.asyncio
    async def test_round_trip(self, pasta_bookmark, store_factory, embedder_factory):
        store = await store_factory([pasta_bookmark])
        embedder = embedder_factory()

        results = await _service(store, embedder).search("pasta recipe")

        assert len(results) == 1
        result = results[0]
        assert result.bookmark.id == 1
        assert result.matched_terms == ["pasta"]
        assert result.reasons == [
            MatchReason(kind=ReasonKind.KEYWORD, field="title", terms=("pasta",))
        ]
        assert result.why_matched == "Matches in title: 'pasta'"
        assert result.score > 0
        assert result.tier is None
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_phrase_boost(self, pasta_bookmark, store_factory):
        store = await store_factory([pasta_bookmark])

        results = await _service(store).search('"Creamy Garlic"')

        assert len(results) == 1
        # 0.45 * normalized keyword score of 1 plus one phrase boost
        assert results[0].score == pytest.approx(0.52)
        assert results[0].why_matched.startswith("Phrase match: Creamy Garlic")
        assert results[0].matched_terms is None

    @pytest.mark.asyncio
    async def test_exclude_removes_hit(self, pasta_bookmark, store_factory):
        store = await store_factory([pasta_bookmark])

        assert await _service(store).search("pasta -bonappetit") == []

    @pytest.mark.asyncio
    async def test_url_only_match_explained_as_site(self, store_factory):
        store = await store_factory([
            Bookmark(url="https://trello.com/b/kanban", title="Project board", domain="trello.com"),
        ])

        results = await _service(store).search("kanban")

        assert _ids(results) == [1]
        assert results[0].why_matched == "Matches in site: 'kanban'"

    @pytest.mark.asyncio
    async def test_or_groups(self, store_factory):
        store = await store_factory([
            Bookmark(url="https://example.com/1", title="React hooks guide"),
            Bookmark(url="https://example.com/2", title="Vue basics"),
            Bookmark(url="https://example.com/3", title="React tutorial"),
            Bookmark(url="https://example.com/4", title="Angular hooks"),
        ])

        results = await _service(store).search("react hooks OR vue")

        assert sorted(_ids(results)) == [1, 2]

    @pytest.mark.asyncio
    async def test_result_limit(self, store_factory):
        store = await store_factory([
            Bookmark(url=f"https://tips.dev/{n}", title=f"Python tip {n}") for n in range(25)
        ])

        results = await _service(store).search("python")

        assert len(results) == 10

    @pytest.mark.asyncio
    async def test_embedder_ignored_without_stored_vectors(self, pasta_bookmark, store_factory,
                                                           embedder_factory):
        store = await store_factory([pasta_bookmark])
        embedder = embedder_factory(error=RuntimeError("should not be called"))

        results = await _service(store, embedder).search("pasta")

        assert _ids(results) == [1]
        assert embedder.calls == []


class TestEmptyAndFilterOnly:
    """Empty search text with and without filters."""

    @pytest.mark.asyncio
    async def test_empty_query_returns_nothing(self, recipe_bookmarks, store_factory):
        service = _service(await store_factory(recipe_bookmarks))

        assert await service.search("") == []
        assert await service.search("   ") == []

    @pytest.mark.asyncio
    async def test_folder_operator_only(self, recipe_bookmarks, store_factory, embedder_factory):
        store = await store_factory(recipe_bookmarks, {1: [1.0, 0.0], 2: [0.0, 1.0]})
        embedder = embedder_factory()

        results = await _service(store, embedder).search("folder:Recipes")

        assert _ids(results) == [2, 1, 3]
        assert all(r.score == 1.0 for r in results)
        assert all(r.why_matched == "Filtered results" for r in results)
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_ui_folder_filter_only(self, recipe_bookmarks, store_factory):
        service = _service(await store_factory(recipe_bookmarks))

        results = await service.search("", SearchFilters(folder="Recipes"))

        assert _ids(results) == [2, 1, 3]

    @pytest.mark.asyncio
    async def test_date_range_filter(self, recipe_bookmarks, store_factory):
        service = _service(await store_factory(recipe_bookmarks))

        recent = await service.search("", SearchFilters(date_range=DateRange.LAST_7_DAYS))
        month = await service.search("", SearchFilters(date_range=DateRange.LAST_30_DAYS))

        # bookmark 3 has no add date, only a creation time
        assert _ids(recent) == [2, 1]
        assert _ids(month) == [2, 1]

    @pytest.mark.asyncio
    async def test_operator_overrides_ui_domain(self, store_factory):
        store = await store_factory([
            Bookmark(url="https://a.com/pasta", title="Pasta A", domain="a.com"),
            Bookmark(url="https://b.com/pasta", title="Pasta B", domain="b.com"),
        ])
        service = _service(store)

        overridden = await service.search("site:a.com pasta", SearchFilters(domain="b.com"))
        ui_only = await service.search("pasta", SearchFilters(domain="b.com"))
        mixed_case = await service.search("site:A.COM pasta")

        assert _ids(overridden) == [1]
        assert _ids(ui_only) == [2]
        assert _ids(mixed_case) == [1]


class TestHybridSearch:
    """Fusion of semantic and lexical candidates."""

    async def _populate(self, store_factory):
        return await store_factory(
            [
                Bookmark(url=f"https://site{n}.org/", title=title, domain=f"site{n}.org")
                for n, title in enumerate(
                    ["Garden planning", "Soil chemistry", "Bird watching", "Tide charts"], start=1
                )
            ],
            {
                1: [1.0, 0.0, 0.0],
                2: [0.8, 0.6, 0.0],
                3: [0.1, 0.0, 0.995],
                4: [0.2, 0.98, 0.0],
            },
        )

    @pytest.mark.asyncio
    async def test_strong_then_related(self, store_factory, embedder_factory):
        store = await self._populate(store_factory)
        embedder = embedder_factory(default=[1.0, 0.0, 0.0])

        results = await _service(store, embedder).search("quokka")

        assert _ids(results) == [1, 2, 4]
        assert [r.tier for r in results] == [MatchTier.STRONG, MatchTier.STRONG, MatchTier.RELATED]
        assert results[0].score == pytest.approx(0.55)
        assert results[1].score == pytest.approx(0.44)
        assert results[2].score == pytest.approx(0.2 / (0.2**2 + 0.98**2) ** 0.5)
        assert all(r.why_matched == "Relevant to your query" for r in results)
        assert embedder.calls == ["quokka"]

    @pytest.mark.asyncio
    async def test_keyword_and_semantic_reasons(self, store_factory, embedder_factory):
        store = await self._populate(store_factory)
        embedder = embedder_factory(default=[1.0, 0.0, 0.0])

        results = await _service(store, embedder).search("soil")

        assert results[0].bookmark.id == 2
        assert results[0].tier is MatchTier.STRONG
        # semantic 0.8 * 0.55 + keyword 1.0 * 0.45
        assert results[0].score == pytest.approx(0.89)
        assert results[0].why_matched == "Relevant to your query · Matches in title: 'soil'"

    @pytest.mark.asyncio
    async def test_keyword_only_without_embedder(self, store_factory):
        store = await self._populate(store_factory)

        results = await _service(store).search("soil")

        assert _ids(results) == [2]
        assert results[0].tier is None

    @pytest.mark.asyncio
    async def test_embedding_failure_is_recoverable(self, store_factory, embedder_factory):
        store = await self._populate(store_factory)
        embedder = embedder_factory(default=[1.0, 0.0, 0.0], error=RuntimeError("model crashed"))
        service = _service(store, embedder)

        with pytest.raises(SearchError) as exc_info:
            await service.search("quokka")
        assert exc_info.value.recoverable
        assert str(exc_info.value) == "Search failed, try again"

        embedder.error = None
        assert _ids(await service.search("quokka")) == [1, 2, 4]
        assert service.index_cache.build_count == 1

    @pytest.mark.asyncio
    async def test_equal_scores_keep_lexical_hits_first(
        self, monkeypatch, store_factory, embedder_factory
    ):
        store = await store_factory(
            [
                Bookmark(url="https://tides.org/", title="Ocean tides", domain="tides.org"),
                Bookmark(url="https://animals.org/quokka", title="Quokka facts",
                         domain="animals.org"),
            ],
            {1: [1.0, 0.0], 2: [0.0, 1.0]},
        )
        monkeypatch.setattr(search_service, "ALPHA", 0.5)

        results = await _service(store, embedder_factory(default=[1.0, 0.0])).search("quokka")

        # 2 is a keyword-only hit, 1 a semantic-only hit, both scoring exactly 0.5
        assert _ids(results) == [2, 1]
        assert [r.score for r in results] == [0.5, 0.5]
        assert [r.tier for r in results] == [MatchTier.STRONG, MatchTier.STRONG]
        assert [r.kind for r in results[0].reasons] == [ReasonKind.KEYWORD]
        assert results[1].why_matched == "Relevant to your query"

    @pytest.mark.asyncio
    async def test_deterministic(self, store_factory, embedder_factory):
        store = await self._populate(store_factory)
        service = _service(store, embedder_factory(default=[0.6, 0.8, 0.0]))

        first = await service.search("soil charts")
        second = await service.search("soil charts")

        assert [(r.bookmark.id, r.score, r.why_matched) for r in first] == [
            (r.bookmark.id, r.score, r.why_matched) for r in second
        ]


class TestFailuresAndInvalidation:
    """Index build errors and store-driven index invalidation."""

    @pytest.mark.asyncio
    async def test_index_build_failure(self, pasta_bookmark, store_factory, settings):
        store = await store_factory([pasta_bookmark])
        service = _service(store, index_cache=LexicalIndexCache(FailingProvider(), settings))

        with pytest.raises(SearchError) as exc_info:
            await service.search("pasta")
        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_store_writes_invalidate_default_index(self, pasta_bookmark, store_factory):
        store = await store_factory([pasta_bookmark])
        service = SearchService(store, store, settings=Settings(_env_file=None), clock=lambda: NOW)

        assert await service.search("rust") == []
        await store.add_bookmarks([Bookmark(url="https://rust-lang.org/book", title="Rust book")])
        results = await service.search("rust")

        assert _ids(results) == [2]
        assert service.index_cache.build_count == 2

    @pytest.mark.asyncio
    async def test_filter_options(self, recipe_bookmarks, store_factory):
        service = _service(await store_factory(recipe_bookmarks))

        options = await service.get_filter_options()

        assert options == {
            "folders": ["Recipes", "Work"],
            "domains": ["a.com", "b.com", "c.com", "d.com"],
        }


class TestCombinedScore:
    """Unit tests for combined_score adjustments."""

    def test_weighted_blend(self):
        bookmark = Bookmark(url="https://x.org", title="Plain title")
        parsed = ParsedQuery(terms=["a", "b", "c"])

        assert combined_score(0.5, 0.5, None, bookmark, parsed, NOW) == pytest.approx(0.5)

    def test_junk_penalty(self):
        bookmark = Bookmark(url="https://x.org", title="Home")
        parsed = ParsedQuery(terms=["a", "b", "c"])

        assert combined_score(1.0, 1.0, None, bookmark, parsed, NOW) == pytest.approx(0.85)

    def test_recency_only_for_short_queries(self):
        bookmark = Bookmark(url="https://x.org", title="Plain title", add_date=int(NOW - DAY))

        short = combined_score(0.5, 0.0, None, bookmark, ParsedQuery(terms=["a"]), NOW)
        long = combined_score(0.5, 0.0, None, bookmark, ParsedQuery(terms=["a", "b", "c"]), NOW)

        assert short == pytest.approx(0.325)
        assert long == pytest.approx(0.275)

    def test_phrase_boost_capped(self):
        bookmark = Bookmark(url="https://x.org", title="Plain title")
        signals = MatchSignals(
            matched_phrases=[PhraseMatch(phrase=p, field="title") for p in ("a", "b", "c", "d")]
        )
        parsed = ParsedQuery(terms=["a", "b", "c"])

        assert combined_score(0.0, 0.0, signals, bookmark, parsed, NOW) == pytest.approx(0.2)

    def test_clamped(self):
        fresh = Bookmark(url="https://x.org", title="Plain title", add_date=int(NOW))
        junk = Bookmark(url="https://x.org", title="abc")
        signals = MatchSignals(matched_phrases=[PhraseMatch(phrase="p", field="title")])

        assert combined_score(1.0, 1.0, signals, fresh, ParsedQuery(terms=["a"]), NOW) == 1.0
        assert combined_score(0.0, 0.0, None, junk, ParsedQuery(), NOW) == 0.0


PROPERTY_BOOKMARKS = [
    Bookmark(url="https://a.com/pasta", title="Creamy Garlic Pasta", domain="a.com",
             folder_path="Recipes", add_date=int(NOW - DAY)),
    Bookmark(url="https://b.com/", title="Home", domain="b.com", add_date=int(NOW)),
    Bookmark(url="https://c.com/rust", title="Rust book", domain="c.com", folder_path="Dev"),
    Bookmark(url="https://d.com/python", title="Python garlic tips", domain="d.com"),
]

QUERY_PARTS = ["pasta", "garlic", "rust", "home", "-pasta", '"creamy garlic"',
               "site:a.com", "folder:Dev", "OR", "pyth"]


class TestSearchProperties:
    """Property-based tests for score bounds and result sizes."""

    @hypothesis_settings(deadline=None, max_examples=40)
    @given(parts=st.lists(st.sampled_from(QUERY_PARTS), min_size=1, max_size=5))
    def test_scores_bounded(self, parts):
        async def run():
            store = BookmarkStore()
            await store.add_bookmarks(PROPERTY_BOOKMARKS)
            await store.put_embeddings(
                Embedding(bookmark_id=i, vector=[float(i), 1.0, 0.5]) for i in range(1, 5)
            )

            async def embed(text):
                return [1.0, 0.0, 0.0]

            service = _service(store, embed)
            return await service.search(" ".join(parts))

        results = asyncio.run(run())

        assert len(results) <= 50
        if parse_query(" ".join(parts)).search_text:
            assert len(results) <= 10
        assert all(0.0 <= r.score <= 1.0 for r in results)
        assert all(r.why_matched for r in results)
