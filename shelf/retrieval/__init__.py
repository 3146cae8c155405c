"""Retrieval components: query parsing, lexical and semantic search, explanations."""

from shelf.retrieval.explain import build_reasons, format_reasons
from shelf.retrieval.lexical_index import IndexBuildError, LexicalIndex, LexicalIndexCache
from shelf.retrieval.match_signals import (
    infer_match_signals,
    is_junk_title,
    is_recent,
    matches_exclude,
    matches_or_group,
)
from shelf.retrieval.query_parser import parse_query
from shelf.retrieval.semantic import cosine_similarity, semantic_top_k

__all__ = [
    "IndexBuildError",
    "LexicalIndex",
    "LexicalIndexCache",
    "build_reasons",
    "cosine_similarity",
    "format_reasons",
    "infer_match_signals",
    "is_junk_title",
    "is_recent",
    "matches_exclude",
    "matches_or_group",
    "parse_query",
    "semantic_top_k",
]
