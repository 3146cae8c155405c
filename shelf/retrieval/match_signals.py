"""Match-signal inference and field predicates for "why matched" explanations.

Signals are derived by re-reading bookmark field text against the parsed
query, independent of the score a lexical backend produced, so hits that
surfaced through fuzzy or prefix matching can still be explained.
"""

import re
import time
from dataclasses import dataclass
from functools import lru_cache

from shelf.models.bookmark import Bookmark
from shelf.models.query import ParsedQuery
from shelf.models.search import MatchSignals, PhraseMatch
from shelf.retrieval.query_parser import MIN_TERM_LENGTH

RECENT_WINDOW_SECONDS = 7 * 24 * 3600
JUNK_TITLES = {"home", "untitled"}
MIN_TITLE_LENGTH = 4

# Values above this are epoch milliseconds
_MS_THRESHOLD = 10**12


def to_epoch_seconds(value: float | int | None) -> float | None:
    """Normalize an epoch timestamp in seconds or milliseconds to seconds."""
    if value is None or value <= 0:
        return None
    return value / 1000 if value > _MS_THRESHOLD else float(value)


@lru_cache(maxsize=1024)
def _word_pattern(term: str) -> re.Pattern:
    return re.compile(rf"\b{re.escape(term)}\b")


@dataclass(frozen=True)
class FieldBag:
    """Lowercased searchable fields of one bookmark, computed once per call."""

    title: str
    url: str
    folder_path: str
    domain: str

    FIELD_ORDER = ("title", "url", "folder_path", "domain")

    @classmethod
    def of(cls, bookmark: Bookmark) -> "FieldBag":
        return cls(
            title=(bookmark.title or "").lower(),
            url=(bookmark.url or "").lower(),
            folder_path=(bookmark.folder_path or "").lower(),
            domain=(bookmark.domain or "").lower(),
        )

    def items(self) -> list[tuple[str, str]]:
        return [(name, getattr(self, name)) for name in self.FIELD_ORDER]

    def fields_with_word(self, term: str) -> list[str]:
        """Fields in which the term appears as a whole word."""
        term = term.lower()
        if len(term) < MIN_TERM_LENGTH:
            return []
        pattern = _word_pattern(term)
        return [name for name, text in self.items() if pattern.search(text)]

    def has_word(self, term: str) -> bool:
        return bool(self.fields_with_word(term))


def infer_match_signals(bookmark: Bookmark, query: ParsedQuery) -> MatchSignals:
    """Derive matched terms, fields and phrases for a bookmark.

    Terms match case-insensitively on word boundaries. Phrases match as
    case-insensitive substrings; each phrase records only the first field
    (title, url, folder_path, domain) that contains it.
    """
    bag = FieldBag.of(bookmark)
    signals = MatchSignals()

    for term in query.terms:
        fields = bag.fields_with_word(term)
        if not fields:
            continue
        if term not in signals.matched_terms:
            signals.matched_terms.append(term)
        for name in fields:
            if name not in signals.matched_in:
                signals.matched_in.append(name)
    signals.matched_in.sort(key=FieldBag.FIELD_ORDER.index)

    for phrase in query.phrases:
        needle = phrase.lower()
        if not needle:
            continue
        for name, text in bag.items():
            if needle in text:
                signals.matched_phrases.append(PhraseMatch(phrase=phrase, field=name))
                break

    return signals


def matches_exclude(bookmark: Bookmark, exclude_terms: list[str]) -> bool:
    """True if any exclude term whole-word matches any field."""
    if not exclude_terms:
        return False
    bag = FieldBag.of(bookmark)
    return any(bag.has_word(term) for term in exclude_terms)


def matches_or_group(bookmark: Bookmark, group_terms: list[str]) -> bool:
    """True only if every term of the group whole-word matches some field."""
    if not group_terms:
        return False
    bag = FieldBag.of(bookmark)
    return all(bag.has_word(term) for term in group_terms)


def is_junk_title(title: str | None) -> bool:
    """Titles that carry no information, like "Home" or "Untitled"."""
    stripped = (title or "").strip()
    return len(stripped) < MIN_TITLE_LENGTH or stripped.lower() in JUNK_TITLES


def is_recent(bookmark: Bookmark, now: float | None = None) -> bool:
    """True if the bookmark was added within the last 7 days and not in the future."""
    added = to_epoch_seconds(bookmark.add_date)
    if added is None:
        return False
    now = time.time() if now is None else now
    return 0 <= now - added <= RECENT_WINDOW_SECONDS
