# ABOUTME: MetadataProvider protocol defining the contract every metadata source satisfies.
# ABOUTME: Also holds the query shapes, rate/timeout settings, and default field reliabilities.

import asyncio
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol, runtime_checkable

from bibliomerge.metadata.types import MetadataRecord


class MetadataType(StrEnum):
    """Metadata fields a provider may supply."""

    TITLE = "title"
    AUTHORS = "authors"
    ISBN = "isbn"
    PUBLICATION_DATE = "publicationDate"
    SUBJECTS = "subjects"
    DESCRIPTION = "description"
    LANGUAGE = "language"
    PUBLISHER = "publisher"
    SERIES = "series"
    EDITION = "edition"
    PAGE_COUNT = "pageCount"
    PHYSICAL_DIMENSIONS = "physicalDimensions"
    COVER_IMAGE = "coverImage"


# Reliability a provider claims per field unless it knows better.
DEFAULT_FIELD_RELIABILITY: dict[MetadataType, float] = {
    MetadataType.TITLE: 0.8,
    MetadataType.AUTHORS: 0.7,
    MetadataType.ISBN: 0.9,
    MetadataType.PUBLICATION_DATE: 0.6,
    MetadataType.SUBJECTS: 0.5,
    MetadataType.DESCRIPTION: 0.4,
    MetadataType.LANGUAGE: 0.7,
    MetadataType.PUBLISHER: 0.6,
    MetadataType.SERIES: 0.5,
    MetadataType.EDITION: 0.5,
    MetadataType.PAGE_COUNT: 0.6,
    MetadataType.PHYSICAL_DIMENSIONS: 0.3,
    MetadataType.COVER_IMAGE: 0.4,
}

BASIC_DATA_TYPES: frozenset[MetadataType] = frozenset(
    {
        MetadataType.TITLE,
        MetadataType.AUTHORS,
        MetadataType.ISBN,
        MetadataType.PUBLICATION_DATE,
        MetadataType.SUBJECTS,
        MetadataType.DESCRIPTION,
        MetadataType.LANGUAGE,
    }
)


@dataclass(frozen=True)
class RateLimitConfig:
    """Request budget for a provider. Intervals are in seconds."""

    max_requests: int = 100
    window: float = 60.0
    request_delay: float = 0.1


@dataclass(frozen=True)
class TimeoutConfig:
    """Per-request and per-operation time limits, in seconds."""

    request_timeout: float = 10.0
    operation_timeout: float = 30.0


@dataclass(frozen=True)
class TitleQuery:
    title: str
    exact_match: bool = False
    fuzzy: bool = False


@dataclass(frozen=True)
class CreatorQuery:
    name: str
    role: str = "author"
    fuzzy: bool = False


@dataclass(frozen=True)
class MultiCriteriaQuery:
    """Any combination of criteria; unset fields are ignored by providers."""

    title: str | None = None
    authors: tuple[str, ...] = ()
    isbn: str | None = None
    language: str | None = None
    subjects: tuple[str, ...] = ()
    publisher: str | None = None
    year_range: tuple[int, int] | None = None
    fuzzy: bool = False


@runtime_checkable
class MetadataProvider(Protocol):
    """Protocol for bibliographic metadata sources.

    Implementations answer each search with a list of MetadataRecords and
    must raise on failure rather than return an empty sentinel; the
    aggregator relies on the exception to record the failure. ``cancel`` is
    set by the aggregator when its global timeout fires so well-behaved
    providers can stop early.
    """

    @property
    def name(self) -> str: ...

    @property
    def priority(self) -> int: ...

    @property
    def rate_limit(self) -> RateLimitConfig: ...

    @property
    def timeout(self) -> TimeoutConfig: ...

    async def search_by_isbn(
        self, isbn: str, *, cancel: asyncio.Event | None = None
    ) -> list[MetadataRecord]: ...

    async def search_by_title(
        self, query: TitleQuery, *, cancel: asyncio.Event | None = None
    ) -> list[MetadataRecord]: ...

    async def search_by_creator(
        self, query: CreatorQuery, *, cancel: asyncio.Event | None = None
    ) -> list[MetadataRecord]: ...

    async def search_multi_criteria(
        self, query: MultiCriteriaQuery, *, cancel: asyncio.Event | None = None
    ) -> list[MetadataRecord]: ...

    def get_reliability_score(self, data_type: MetadataType) -> float: ...

    def supports_data_type(self, data_type: MetadataType) -> bool: ...
