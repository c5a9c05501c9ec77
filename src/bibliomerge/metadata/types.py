# ABOUTME: Core record types exchanged between providers, the aggregator, and reconcilers.
# ABOUTME: MetadataRecord is one provider's immutable view of one bibliographic entity.

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True)
class SeriesInfo:
    """Series membership as reported by a provider."""

    name: str
    volume: float | None = None


@dataclass(frozen=True)
class CoverImage:
    """Cover image reference with optional pixel dimensions."""

    url: str
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True)
class PhysicalDimensions:
    """Physical size of a printed edition, in the given unit."""

    width: float | None = None
    height: float | None = None
    depth: float | None = None
    unit: str = "mm"
    raw: str | None = None


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class MetadataRecord:
    """One provider's view of one bibliographic entity.

    Records are immutable once produced. Sequence fields passed as lists are
    frozen into tuples so records can be shared between concurrent tasks and
    merged without aliasing surprises. ``provider`` is attribution set by the
    aggregator; ``merged_from`` holds the constituents of a merged record so
    merging stays associative.
    """

    id: str
    source: str
    confidence: float
    timestamp: datetime = field(default_factory=_utcnow)
    title: str | None = None
    authors: tuple[str, ...] = ()
    isbn: tuple[str, ...] = ()
    publisher: str | None = None
    publication_date: str | None = None
    publication_place: str | None = None
    language: str | None = None
    page_count: int | None = None
    subjects: tuple[str, ...] = ()
    description: str | None = None
    series: SeriesInfo | None = None
    cover_image: CoverImage | None = None
    edition: str | None = None
    physical_dimensions: PhysicalDimensions | None = None
    provider: str | None = None
    provider_data: dict[str, Any] = field(default_factory=dict, compare=False)
    merged_from: tuple["MetadataRecord", ...] = field(default=(), compare=False, repr=False)

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            msg = f"confidence must be between 0.0 and 1.0, got {self.confidence}"
            raise ValueError(msg)
        for name in ("authors", "isbn", "subjects", "merged_from"):
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))

    @property
    def author(self) -> str:
        """Convenience property: joined author string for display."""
        return ", ".join(self.authors) if self.authors else ""
