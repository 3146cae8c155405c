"""Pydantic and dataclass models for the bookmark search engine."""

from shelf.models.bookmark import Bookmark, Embedding
from shelf.models.query import DateRange, ParsedQuery, SearchFilters
from shelf.models.search import (
    KeywordHit,
    LexicalHit,
    MatchReason,
    MatchSignals,
    MatchTier,
    PhraseMatch,
    ReasonKind,
    SearchResult,
    SemanticHit,
)

__all__ = [
    # Record models
    "Bookmark",
    "Embedding",
    # Query models
    "ParsedQuery",
    "SearchFilters",
    "DateRange",
    # Hit and result models
    "LexicalHit",
    "SemanticHit",
    "KeywordHit",
    "MatchSignals",
    "PhraseMatch",
    "MatchReason",
    "ReasonKind",
    "MatchTier",
    "SearchResult",
]
