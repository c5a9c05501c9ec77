# ABOUTME: DuplicateDetector compares a looked-up book against library entries by weighted field similarity.
# ABOUTME: Classifies each candidate as exact, likely, possible, different edition or related work.

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from bibliomerge.metadata.dates import parse_date_string
from bibliomerge.metadata.preview import LibraryEntry
from bibliomerge.metadata.reconciliation.types import Series
from bibliomerge.metadata.similarity import (
    array_similarity,
    date_similarity,
    isbn_similarity,
    string_similarity,
)
from bibliomerge.metadata.types import MetadataRecord

logger = logging.getLogger(__name__)

DUPLICATE_FIELD_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        "title": 0.3,
        "authors": 0.25,
        "isbn": 0.2,
        "publication_date": 0.1,
        "publisher": 0.1,
        "series": 0.05,
    }
)

_SERIES_NAME_WEIGHT = 0.8
_SERIES_VOLUME_WEIGHT = 0.2


@dataclass(frozen=True)
class DuplicateDetectorConfig:
    min_similarity: float = 0.3
    field_weights: Mapping[str, float] = field(default_factory=lambda: DUPLICATE_FIELD_WEIGHTS)


@dataclass(frozen=True)
class DuplicateMatchField:
    name: str
    similarity: float
    new_value: Any
    existing_value: Any
    weight: float


@dataclass(frozen=True)
class DuplicateMatch:
    """How closely one library entry resembles the proposed book."""

    existing_entry: LibraryEntry
    similarity: float
    match_type: str
    matching_fields: tuple[DuplicateMatchField, ...]
    confidence: float
    recommendation: str
    explanation: str


def series_similarity(left: Sequence[Series], right: Sequence[Series]) -> float:
    """Best pairwise series score: name similarity 0.8, equal volume 0.2."""
    best = 0.0
    for a in left:
        for b in right:
            score = string_similarity(a.name, b.name) * _SERIES_NAME_WEIGHT
            if a.volume == b.volume:
                score += _SERIES_VOLUME_WEIGHT
            best = max(best, score)
    return best


def entry_from_record(record: MetadataRecord) -> LibraryEntry:
    """Describe a looked-up record in the shape of a library entry."""
    series = (Series(name=record.series.name, volume=record.series.volume),) if record.series else ()
    return LibraryEntry(
        title=record.title or "",
        authors=record.authors,
        series=series,
        isbn=record.isbn,
        publication_date=parse_date_string(record.publication_date) if record.publication_date else None,
        publisher=record.publisher,
    )


def _classify(overall: float, isbn: float, title: float, authors: float) -> tuple[str, str, str]:
    if overall >= 0.9:
        return "exact", "skip", "This appears to be an exact duplicate of an existing entry."
    if overall >= 0.7:
        return (
            "likely",
            "review_manually",
            "This is likely a duplicate but may have some differences worth reviewing.",
        )
    if overall >= 0.5:
        return (
            "possible",
            "review_manually",
            "This might be a duplicate or a different edition of the same work.",
        )
    if isbn > 0.8 or (title > 0.8 and authors > 0.8):
        return "different_edition", "add_as_new", "This appears to be a different edition of an existing work."
    return "related_work", "add_as_new", "This appears to be related but distinct from existing entries."


class DuplicateDetector:
    """Finds library entries that may already hold the proposed book.

    Title and authors always count toward the weighted similarity; ISBN,
    date, publisher and series count only when they score above zero, so a
    missing field never drags a match down.
    """

    def __init__(self, config: DuplicateDetectorConfig | None = None) -> None:
        self.config = config or DuplicateDetectorConfig()

    def detect_duplicates(
        self, proposed: LibraryEntry, library: Sequence[LibraryEntry]
    ) -> list[DuplicateMatch]:
        """Matches above the configured threshold, most similar first."""
        matches = [self.calculate_match(proposed, existing) for existing in library]
        matches = [m for m in matches if m.similarity > self.config.min_similarity]
        matches.sort(key=lambda m: -m.similarity)
        logger.debug("Found %d possible duplicate(s) among %d entries", len(matches), len(library))
        return matches

    def calculate_match(self, proposed: LibraryEntry, existing: LibraryEntry) -> DuplicateMatch:
        weights = self.config.field_weights
        fields: list[DuplicateMatchField] = []

        def score(name: str, similarity: float, new: Any, old: Any, always: bool = False) -> None:
            if always or similarity > 0:
                fields.append(DuplicateMatchField(name, similarity, new, old, weights[name]))

        title = string_similarity(proposed.title, existing.title)
        authors = array_similarity(proposed.authors, existing.authors)
        isbn = isbn_similarity(proposed.isbn, existing.isbn)
        score("title", title, proposed.title, existing.title, always=True)
        score("authors", authors, proposed.authors, existing.authors, always=True)
        score("isbn", isbn, proposed.isbn, existing.isbn)
        score(
            "publication_date",
            date_similarity(proposed.publication_date, existing.publication_date),
            proposed.publication_date,
            existing.publication_date,
        )
        score(
            "publisher",
            string_similarity(proposed.publisher, existing.publisher),
            proposed.publisher,
            existing.publisher,
        )
        score("series", series_similarity(proposed.series, existing.series), proposed.series, existing.series)

        total_weight = sum(f.weight for f in fields)
        overall = sum(f.similarity * f.weight for f in fields) / total_weight if total_weight else 0.0
        match_type, recommendation, explanation = _classify(overall, isbn, title, authors)
        return DuplicateMatch(
            existing_entry=existing,
            similarity=overall,
            match_type=match_type,
            matching_fields=tuple(fields),
            confidence=min(overall + 0.1, 1.0),
            recommendation=recommendation,
            explanation=explanation,
        )


def detect_duplicates(
    proposed: LibraryEntry,
    library: Sequence[LibraryEntry],
    config: DuplicateDetectorConfig | None = None,
) -> list[DuplicateMatch]:
    return DuplicateDetector(config).detect_duplicates(proposed, library)
