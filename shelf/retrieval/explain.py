"""Human-readable "why matched" reasons built from retrieval signals."""

from shelf.models.search import MatchReason, MatchSignals, ReasonKind

MAX_REASONS = 2
SEMANTIC_TEXT = "Relevant to your query"
FILTERED_TEXT = "Filtered results"
REASON_SEPARATOR = " · "

# Keyword reason field priority and display labels
_FIELD_PRIORITY = ("title", "folder_path", "domain", "url")
_FIELD_LABELS = {
    "title": "title",
    "folder_path": "folder",
    "domain": "site",
    "url": "site",
}

SEMANTIC_REASON = MatchReason(kind=ReasonKind.SEMANTIC)


def build_reasons(
    signals: MatchSignals | None,
    has_semantic_score: bool,
) -> list[MatchReason]:
    """Select up to two reasons: semantic, then phrase, then keyword.

    Args:
        signals: Literal match signals for the hit, if it had a lexical hit
        has_semantic_score: Whether the hit had a nonzero semantic score

    Returns:
        One or two reasons; falls back to a generic semantic reason
    """
    reasons: list[MatchReason] = []

    if has_semantic_score:
        reasons.append(SEMANTIC_REASON)

    if signals is not None:
        if signals.matched_phrases and len(reasons) < MAX_REASONS:
            reasons.append(
                MatchReason(kind=ReasonKind.PHRASE, phrase=signals.matched_phrases[0].phrase)
            )

        if len(reasons) < MAX_REASONS and signals.matched_terms and signals.matched_in:
            for field_name in _FIELD_PRIORITY:
                if field_name in signals.matched_in:
                    reasons.append(
                        MatchReason(
                            kind=ReasonKind.KEYWORD,
                            field=_FIELD_LABELS[field_name],
                            terms=tuple(signals.matched_terms),
                        )
                    )
                    break

    return reasons or [SEMANTIC_REASON]


def format_reason(reason: MatchReason) -> str:
    if reason.kind is ReasonKind.PHRASE:
        return f"Phrase match: {reason.phrase}"
    if reason.kind is ReasonKind.KEYWORD:
        quoted = ", ".join(f"'{term}'" for term in reason.terms)
        return f"Matches in {reason.field}: {quoted}"
    return SEMANTIC_TEXT


def format_reasons(reasons: list[MatchReason]) -> str:
    """Render reasons as one line joined by a middle dot."""
    if not reasons:
        return SEMANTIC_TEXT
    return REASON_SEPARATOR.join(format_reason(r) for r in reasons)
