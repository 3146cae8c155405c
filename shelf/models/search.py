"""Per-query hit and result models used across the retrieval pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from shelf.models.bookmark import Bookmark


@dataclass(frozen=True)
class LexicalHit:
    """Raw hit from the lexical index: bookmark id and relevance score."""

    bookmark_id: int
    score: float


@dataclass(frozen=True)
class SemanticHit:
    """Cosine similarity of a bookmark's embedding to the query vector."""

    bookmark_id: int
    score: float


@dataclass(frozen=True)
class PhraseMatch:
    """A quoted phrase and the first field that contained it."""

    phrase: str
    field: str


@dataclass
class MatchSignals:
    """Literal match evidence for one (bookmark, query) pair.

    Attributes:
        matched_terms: Query terms that whole-word matched any field
        matched_in: Fields with at least one term match, in field order
        matched_phrases: Phrases found in the bookmark
    """

    matched_terms: list[str] = field(default_factory=list)
    matched_in: list[str] = field(default_factory=list)
    matched_phrases: list[PhraseMatch] = field(default_factory=list)


@dataclass
class KeywordHit:
    """Lexical hit that survived exclude/OR validation, with its match signals."""

    bookmark_id: int
    score: float
    signals: MatchSignals = field(default_factory=MatchSignals)


class ReasonKind(str, Enum):
    """Kind of "why matched" reason."""

    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    PHRASE = "phrase"


@dataclass(frozen=True)
class MatchReason:
    """One retrieval-grounded reason a result surfaced.

    ``field`` is a display label (title, folder, site) for keyword reasons.
    """

    kind: ReasonKind
    field: str | None = None
    terms: tuple[str, ...] = ()
    phrase: str | None = None


class MatchTier(str, Enum):
    """Strong results cleared the combined threshold; related ones are backfill."""

    STRONG = "strong"
    RELATED = "related"


@dataclass
class SearchResult:
    """Ranked bookmark returned by the search engine.

    Attributes:
        bookmark: Source bookmark record
        score: Final normalized score in [0, 1]
        why_matched: Human-readable explanation
        reasons: Structured reasons behind ``why_matched``
        matched_terms: Query terms found literally in the bookmark
        tier: Strong or related, None for keyword-only and filter-only results
    """

    bookmark: Bookmark
    score: float
    why_matched: str
    reasons: list[MatchReason] = field(default_factory=list)
    matched_terms: list[str] | None = None
    tier: MatchTier | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.bookmark.id,
            "title": self.bookmark.title,
            "url": self.bookmark.url,
            "score": round(self.score, 3),
            "why_matched": self.why_matched,
            "matched_terms": self.matched_terms,
            "tier": self.tier.value if self.tier else None,
            "reasons": [reason.kind.value for reason in self.reasons],
        }
