"""Query operator parsing: site:, folder:, quoted phrases, -exclusions and OR."""

import logging
import re

from shelf.models.query import ParsedQuery

logger = logging.getLogger(__name__)

MIN_TERM_LENGTH = 2

_SITE_RE = re.compile(r"\b(?:site|domain):(\S+)", re.IGNORECASE)
_FOLDER_RE = re.compile(r'\bfolder:(?:"([^"]*)"|(\S+))', re.IGNORECASE)
_PHRASE_RE = re.compile(r'"([^"]+)"')
_EXCLUDE_RE = re.compile(r"(?:^|\s)-([a-zA-Z0-9]+)(?=\s|$)")
_OR_RE = re.compile(r"\s+OR\s+", re.IGNORECASE)
_NON_WORD_RE = re.compile(r"\W+")
_SPACE_RE = re.compile(r"\s+")


def tokenize(text: str) -> list[str]:
    """Lowercase and split on non-word characters, dropping short tokens."""
    return [t for t in _NON_WORD_RE.split(text.lower()) if len(t) >= MIN_TERM_LENGTH]


def _squash(text: str) -> str:
    return _SPACE_RE.sub(" ", text).strip()


def _cut(text: str, match: re.Match) -> str:
    """Remove a single regex match from the working text."""
    return _squash(f"{text[:match.start()]} {text[match.end():]}")


def _parse(trimmed: str) -> ParsedQuery:
    rest = trimmed
    domain: str | None = None
    folder: str | None = None

    m = _SITE_RE.search(rest)
    if m:
        domain = m.group(1)
        rest = _cut(rest, m)

    m = _FOLDER_RE.search(rest)
    if m:
        value = m.group(1) if m.group(1) is not None else m.group(2)
        folder = value.strip() or None
        rest = _cut(rest, m)

    phrases = [p.strip() for p in _PHRASE_RE.findall(rest) if p.strip()]
    rest = _squash(_PHRASE_RE.sub(" ", rest))

    exclude_terms = [
        t.lower() for t in _EXCLUDE_RE.findall(rest) if len(t) >= MIN_TERM_LENGTH
    ]
    rest = _squash(_EXCLUDE_RE.sub(" ", rest))

    groups = [g for g in (tokenize(part) for part in _OR_RE.split(rest)) if g]
    if len(groups) == 1:
        terms = groups[0]
    else:
        terms = [t for g in groups for t in g]

    return ParsedQuery(
        terms=terms,
        exclude_terms=exclude_terms,
        phrases=phrases,
        domain=domain,
        folder=folder,
        or_groups=groups if len(groups) > 1 else [],
        search_text=" ".join(dict.fromkeys([*terms, *phrases])),
    )


def parse_query(raw: str) -> ParsedQuery:
    """Parse raw query text into terms, phrases, operators and OR-groups.

    Operators are consumed in a fixed order: ``site:``/``domain:``,
    ``folder:``, quoted phrases, ``-exclude`` tokens, then ``OR`` groups.
    Never raises; any internal failure degrades to a flat bag of tokens.

    Args:
        raw: Query text as typed by the user

    Returns:
        ParsedQuery for this search call
    """
    trimmed = (raw or "").strip()
    if not trimmed:
        return ParsedQuery()

    try:
        return _parse(trimmed)
    except Exception as e:
        logger.warning(f"Query parse failed, falling back to plain tokens: {e}")
        return ParsedQuery(terms=tokenize(trimmed), search_text=trimmed)
