"""Query-related models: parsed query and search filters."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ParsedQuery(BaseModel):
    """Structured form of a raw search query.

    ``or_groups`` is only populated when the query holds two or more
    groups joined by ``OR``; a single implicit group is represented as an
    empty list, meaning no OR logic is in effect.
    """

    model_config = ConfigDict(frozen=True)

    terms: list[str] = Field(default_factory=list)
    exclude_terms: list[str] = Field(default_factory=list)
    phrases: list[str] = Field(default_factory=list)
    domain: str | None = None
    folder: str | None = None
    or_groups: list[list[str]] = Field(default_factory=list)
    search_text: str = Field(default="", description="Text handed to lexical and semantic backends")

    @property
    def has_operator_filter(self) -> bool:
        """True when a site:/domain:/folder: operator was extracted."""
        return bool(self.domain) or bool(self.folder)


class DateRange(str, Enum):
    """Add-date window filter."""

    ANY = "any"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"

    @property
    def days(self) -> int | None:
        if self is DateRange.LAST_7_DAYS:
            return 7
        if self is DateRange.LAST_30_DAYS:
            return 30
        return None


class SearchFilters(BaseModel):
    """UI-supplied search filters (folder/domain dropdowns and date range)."""

    folder: str | None = None
    domain: str | None = None
    date_range: DateRange = DateRange.ANY

    @property
    def is_active(self) -> bool:
        """True when any filter narrows the collection."""
        return bool(self.folder) or bool(self.domain) or self.date_range is not DateRange.ANY
