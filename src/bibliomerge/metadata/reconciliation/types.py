# ABOUTME: Value types shared by the domain reconcilers: sources, conflicts, reconciled fields.
# ABOUTME: Also defines the structured bibliographic entities (series, works, editions, etc.).

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from bibliomerge.metadata.dates import PublicationDate
from bibliomerge.metadata.normalization import normalize_publisher_name

T = TypeVar("T")
V = TypeVar("V")

_LEADING_ARTICLE_RE = re.compile(r"^(?:the|a|an)\s+", re.IGNORECASE)
_NON_WORD_RE = re.compile(r"[^\w\s]")
_SERIES_SUFFIX_RE = re.compile(r"\s+(?:series|saga|cycle)$", re.IGNORECASE)
_SERIES_SPECIAL_RE = re.compile(r"[^\w\s\-&']")
_WHITESPACE_RE = re.compile(r"\s+")


class ReconciliationError(Exception):
    """Raised when a reconciler is called without any inputs."""


def _utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_work_title(title: str) -> str:
    """Lowercase, drop a leading English article, and blank out punctuation."""
    if not title:
        return ""
    text = _LEADING_ARTICLE_RE.sub("", title.lower())
    text = _NON_WORD_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_series_name(name: str) -> str:
    """Comparison key for a series name ("The Expanse Series" -> "expanse")."""
    if not name:
        return ""
    text = _LEADING_ARTICLE_RE.sub("", name.strip())
    text = _SERIES_SUFFIX_RE.sub("", text)
    text = _SERIES_SPECIAL_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip().lower()


@dataclass(frozen=True)
class MetadataSource:
    """Where a value came from and how much that source is trusted (0..1)."""

    name: str
    reliability: float
    timestamp: datetime = field(default_factory=_utcnow, compare=False)


@dataclass(frozen=True)
class SourcedValue(Generic[V]):
    """One source's raw value for a single field."""

    value: V
    source: MetadataSource


@dataclass(frozen=True)
class Conflict:
    """Disagreement between sources on one field, and how it was resolved."""

    field: str
    values: tuple[SourcedValue[Any], ...]
    resolution: str


@dataclass(frozen=True)
class ReconciledField(Generic[T]):
    """Uniform output of every reconciler.

    ``reasoning`` is a human-readable audit string and never drives logic.
    """

    value: T
    confidence: float
    sources: tuple[MetadataSource, ...] = ()
    conflicts: tuple[Conflict, ...] = ()
    reasoning: str = ""


@dataclass(frozen=True)
class Publisher:
    name: str
    canonical: str | None = None
    location: str | None = None
    normalized: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "normalized", normalize_publisher_name(self.name))


@dataclass(frozen=True)
class PublicationPlace:
    """Where an edition was published; ``normalized`` is the canonical city key."""

    name: str
    normalized: str = ""
    country: str | None = None


@dataclass(frozen=True)
class Identifier:
    """A typed external identifier; ``normalized`` and ``valid`` are set on reconciliation."""

    type: str
    value: str
    normalized: str | None = None
    valid: bool = False


@dataclass(frozen=True)
class Series:
    name: str
    volume: float | None = None
    position: int | None = None
    total_volumes: int | None = None
    series_type: str = "unknown"
    description: str | None = None
    identifiers: tuple[Identifier, ...] = ()
    raw: str | None = None
    normalized: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "normalized", normalize_series_name(self.name))


@dataclass(frozen=True)
class FormatInfo:
    binding: str | None = None
    format: str | None = None
    medium: str | None = None
    raw: str | None = None


@dataclass(frozen=True)
class Work:
    title: str
    id: str | None = None
    type: str = "other"
    original_language: str | None = None
    first_published: PublicationDate | None = None
    authors: tuple[str, ...] = ()
    identifiers: tuple[Identifier, ...] = ()
    normalized: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "normalized", normalize_work_title(self.title))


@dataclass(frozen=True)
class Edition:
    id: str | None = None
    work_id: str | None = None
    title: str | None = None
    format: FormatInfo | None = None
    language: str | None = None
    publication_date: PublicationDate | None = None
    publisher: Publisher | None = None
    isbn: tuple[str, ...] = ()
    page_count: int | None = None
    identifiers: tuple[Identifier, ...] = ()


@dataclass(frozen=True)
class RelatedWork:
    """A work linked to the reconciled one (sequel, prequel, part_of, ...)."""

    title: str
    relationship_type: str
    work_id: str | None = None
    description: str | None = None
    confidence: float | None = None
    source: str | None = None


@dataclass(frozen=True)
class CollectionContent:
    title: str
    type: str | None = None
    authors: tuple[str, ...] = ()
    page_range: tuple[int | None, int | None] | None = None
    position: int | None = None


@dataclass(frozen=True)
class Collection:
    name: str
    type: str = "other"
    contents: tuple[CollectionContent, ...] = ()
    editors: tuple[str, ...] = ()
    description: str | None = None
    total_works: int | None = None
    normalized: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "normalized", normalize_work_title(self.name))


@dataclass(frozen=True)
class Subject:
    name: str
    normalized: str | None = None
    scheme: str | None = None
    code: str | None = None
    hierarchy: tuple[str, ...] = ()
    type: str | None = None


@dataclass(frozen=True)
class Description:
    text: str
    type: str | None = None
    length: str | None = None
    quality: float | None = None
    language: str | None = None
    source: str | None = None
    raw: str | None = None


@dataclass(frozen=True)
class CoverImageChoice:
    """A candidate cover image with quality hints."""

    url: str
    width: int | None = None
    height: int | None = None
    format: str | None = None
    size: int | None = None
    quality: str | None = None
    aspect_ratio: float | None = None
    source: str | None = None
    verified: bool = False


@dataclass(frozen=True)
class LanguageInfo:
    code: str
    name: str | None = None
    script: str | None = None
    region: str | None = None
    confidence: float | None = None
    raw: str | None = None
