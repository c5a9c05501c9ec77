# ABOUTME: Builds a field-by-field preview of reconciled metadata with source attribution.
# ABOUTME: Also selects the best edition and relates a book to series entries already in a library.

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any

from bibliomerge.metadata.conflicts import (
    ConflictDetector,
    ConflictSummary,
    raw_values_from_records,
)
from bibliomerge.metadata.dates import PublicationDate, parse_date_string
from bibliomerge.metadata.normalization import normalize_language_code
from bibliomerge.metadata.reconciliation.coordinator import ReconciledMetadata
from bibliomerge.metadata.reconciliation.physical import parse_format
from bibliomerge.metadata.reconciliation.types import (
    Conflict,
    Edition,
    MetadataSource,
    Publisher,
    ReconciledField,
    RelatedWork,
    Series,
)
from bibliomerge.metadata.similarity import string_similarity
from bibliomerge.metadata.types import MetadataRecord, SeriesInfo

logger = logging.getLogger(__name__)

PREVIEW_FIELDS = (
    "title",
    "authors",
    "isbn",
    "publication_date",
    "publication_place",
    "publisher",
    "subjects",
    "description",
    "language",
    "series",
    "identifiers",
    "page_count",
    "cover_image",
)
CORE_PREVIEW_FIELDS = frozenset({"title", "authors", "isbn", "publication_date"})

_EMPTY_CONFIDENCE = 0.1
_EXCELLENT_QUALITY = 0.9
_FAIR_QUALITY = 0.5


@dataclass(frozen=True)
class PreviewConfig:
    high_confidence_threshold: float = 0.8
    good_quality_threshold: float = 0.7
    max_sources_per_field: int = 5
    enable_conflict_detection: bool = True


@dataclass(frozen=True)
class SourceAttribution:
    """How much one source contributed to a field."""

    source: MetadataSource
    original_value: Any
    weight: float
    is_primary: bool


@dataclass(frozen=True)
class FieldQuality:
    score: float
    level: str
    suggestions: tuple[str, ...] = ()


@dataclass(frozen=True)
class PreviewField:
    name: str
    value: Any
    confidence: float
    sources: tuple[SourceAttribution, ...]
    conflicts: tuple[Conflict, ...]
    reasoning: str
    is_high_confidence: bool
    quality: FieldQuality

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def has_value(self) -> bool:
        return self.value is not None


@dataclass(frozen=True)
class PreviewSummary:
    fields_with_data: int
    total_fields: int
    completeness: float
    high_confidence_fields: int
    conflicted_fields: int
    most_reliable_source: MetadataSource | None
    least_reliable_source: MetadataSource | None
    overall_quality: FieldQuality
    strengths: tuple[str, ...]
    weaknesses: tuple[str, ...]


@dataclass(frozen=True)
class MetadataPreview:
    fields: dict[str, PreviewField]
    overall_confidence: float
    sources: tuple[MetadataSource, ...]
    summary: PreviewSummary
    conflict_analysis: ConflictSummary | None = None

    def __getitem__(self, name: str) -> PreviewField:
        return self.fields[name]


def quality_level(score: float, good_threshold: float) -> str:
    if score >= _EXCELLENT_QUALITY:
        return "excellent"
    if score >= good_threshold:
        return "good"
    if score >= _FAIR_QUALITY:
        return "fair"
    return "poor"


def _source_of(record: MetadataRecord) -> MetadataSource:
    return MetadataSource(
        name=record.provider or record.source,
        reliability=record.confidence,
        timestamp=record.timestamp,
    )


def _raw_value(record: MetadataRecord, name: str) -> Any:
    value = getattr(record, name, None)
    if value in ("", ()):
        return None
    return value


class PreviewGenerator:
    """Turns reconciled metadata and its raw records into a reviewable preview.

    Fields the coordinator reconciled are taken as-is; the rest fall back to
    the value from the most reliable record. Overall confidence weights the
    core identification fields twice.
    """

    def __init__(
        self,
        config: PreviewConfig | None = None,
        *,
        conflict_detector: ConflictDetector | None = None,
    ) -> None:
        self.config = config or PreviewConfig()
        self.conflict_detector = conflict_detector or ConflictDetector()

    def generate_preview(
        self,
        records: Sequence[MetadataRecord],
        reconciled: ReconciledMetadata | None = None,
    ) -> MetadataPreview:
        records = [part for r in records for part in (r.merged_from or (r,))]
        sources = self._extract_sources(records)
        given = _reconciled_fields(reconciled) if reconciled is not None else {}

        reconciled_fields: dict[str, ReconciledField[Any]] = {}
        for name in PREVIEW_FIELDS:
            candidate = given.get(name)
            if candidate is None or candidate.confidence <= 0:
                candidate = self._fallback_field(name, records)
            reconciled_fields[name] = candidate

        fields = {
            name: self._preview_field(name, rf, records) for name, rf in reconciled_fields.items()
        }

        conflict_analysis = None
        if self.config.enable_conflict_detection:
            conflict_analysis = self.conflict_detector.analyze_all_conflicts(
                reconciled_fields, raw_values_from_records(records)
            )

        preview = MetadataPreview(
            fields=fields,
            overall_confidence=self.calculate_overall_confidence(fields),
            sources=tuple(sources),
            summary=self._summarize(fields, sources),
            conflict_analysis=conflict_analysis,
        )
        logger.debug(
            "Preview from %d source(s): %d/%d fields, confidence %.3f",
            len(sources),
            preview.summary.fields_with_data,
            preview.summary.total_fields,
            preview.overall_confidence,
        )
        return preview

    @staticmethod
    def calculate_overall_confidence(fields: dict[str, PreviewField]) -> float:
        weighted = 0.0
        total = 0
        for name, item in fields.items():
            if not item.has_value:
                continue
            weight = 2 if name in CORE_PREVIEW_FIELDS else 1
            weighted += item.confidence * weight
            total += weight
        return weighted / total if total else _EMPTY_CONFIDENCE

    @staticmethod
    def _extract_sources(records: Sequence[MetadataRecord]) -> list[MetadataSource]:
        seen: dict[str, MetadataSource] = {}
        for record in records:
            source = _source_of(record)
            seen.setdefault(source.name, source)
        return list(seen.values())

    @staticmethod
    def _fallback_field(name: str, records: Sequence[MetadataRecord]) -> ReconciledField[Any]:
        values = [(_raw_value(r, name), _source_of(r)) for r in records]
        values = [(v, s) for v, s in values if v is not None]
        if not values:
            return ReconciledField(
                value=None,
                confidence=_EMPTY_CONFIDENCE,
                reasoning=f"No {name} data available from any source",
            )
        value, best = max(values, key=lambda pair: pair[1].reliability)
        return ReconciledField(
            value=value,
            confidence=best.reliability,
            sources=tuple(s for _, s in values),
            reasoning=f"Using {name} from most reliable source: {best.name}",
        )

    def _preview_field(
        self, name: str, reconciled: ReconciledField[Any], records: Sequence[MetadataRecord]
    ) -> PreviewField:
        attributions = self._attributions(name, reconciled, records)
        return PreviewField(
            name=name,
            value=reconciled.value,
            confidence=reconciled.confidence,
            sources=attributions,
            conflicts=reconciled.conflicts,
            reasoning=reconciled.reasoning
            or f"Reconciled {name} from {len(attributions)} source(s)",
            is_high_confidence=reconciled.confidence >= self.config.high_confidence_threshold,
            quality=self._field_quality(reconciled),
        )

    def _attributions(
        self, name: str, reconciled: ReconciledField[Any], records: Sequence[MetadataRecord]
    ) -> tuple[SourceAttribution, ...]:
        sources = reconciled.sources
        if not sources:
            return ()
        total = sum(s.reliability for s in sources)
        primary = max(sources, key=lambda s: s.reliability)
        by_name = {_source_of(r).name: r for r in reversed(records)}
        attributions = [
            SourceAttribution(
                source=s,
                original_value=_raw_value(by_name[s.name], name) if s.name in by_name else None,
                weight=s.reliability / total if total else 0.0,
                is_primary=s is primary,
            )
            for s in sources
        ]
        attributions.sort(key=lambda a: -a.weight)
        return tuple(attributions[: self.config.max_sources_per_field])

    def _field_quality(self, reconciled: ReconciledField[Any]) -> FieldQuality:
        if reconciled.value is None:
            return FieldQuality(score=0.0, level="poor", suggestions=("Find a source for this field",))
        score = reconciled.confidence
        suggestions = []
        if len(reconciled.sources) > 1:
            score += 0.1
        else:
            suggestions.append("Confirm with a second source")
        if reconciled.conflicts:
            score -= 0.1 * len(reconciled.conflicts)
            suggestions.append("Review conflicting values")
        score = max(0.0, min(1.0, score))
        return FieldQuality(
            score=score,
            level=quality_level(score, self.config.good_quality_threshold),
            suggestions=tuple(suggestions),
        )

    def _summarize(
        self, fields: dict[str, PreviewField], sources: Sequence[MetadataSource]
    ) -> PreviewSummary:
        total = len(fields)
        with_data = sum(1 for f in fields.values() if f.has_value)
        high = sum(1 for f in fields.values() if f.is_high_confidence and f.has_value)
        conflicted = sum(1 for f in fields.values() if f.has_conflicts)
        completeness = with_data / total if total else 0.0
        ranked = sorted(sources, key=lambda s: -s.reliability)

        score = sum(f.quality.score for f in fields.values()) / total if total else 0.0
        strengths = []
        weaknesses = []
        if completeness > 0.7:
            strengths.append("Good data completeness")
        if with_data and high / with_data > 0.6:
            strengths.append("High confidence in most fields")
        if len(sources) > 2:
            strengths.append("Multiple sources provide good coverage")
        if completeness < 0.5:
            weaknesses.append("Many fields are missing data")
        if conflicted:
            weaknesses.append(f"{conflicted} field(s) have conflicts")
        if len(sources) < 2:
            weaknesses.append("Limited number of sources")

        return PreviewSummary(
            fields_with_data=with_data,
            total_fields=total,
            completeness=completeness,
            high_confidence_fields=high,
            conflicted_fields=conflicted,
            most_reliable_source=ranked[0] if ranked else None,
            least_reliable_source=ranked[-1] if ranked else None,
            overall_quality=FieldQuality(
                score=score, level=quality_level(score, self.config.good_quality_threshold)
            ),
            strengths=tuple(strengths),
            weaknesses=tuple(weaknesses),
        )


def _reconciled_fields(reconciled: ReconciledMetadata) -> dict[str, ReconciledField[Any]]:
    languages = reconciled.physical.languages
    language = replace(
        languages,
        value=languages.value[0].code if languages.value else None,
    )
    description = reconciled.content.description
    cover = reconciled.content.cover_image
    place = reconciled.publication_place
    return {
        "publication_date": reconciled.publication_date,
        "publisher": reconciled.publisher,
        "publication_place": replace(place, value=place.value.name or None),
        "authors": reconciled.authors,
        "series": reconciled.series,
        "identifiers": reconciled.identifiers,
        "subjects": reconciled.subjects,
        "page_count": reconciled.physical.page_count,
        "language": language,
        "description": replace(description, value=description.value.text or None),
        "cover_image": replace(cover, value=cover.value.url or None),
    }


# Editions


@dataclass(frozen=True)
class EditionAlternative:
    edition: Edition
    reason: str
    confidence: float
    advantages: tuple[str, ...]


@dataclass(frozen=True)
class EditionSelection:
    selected: Edition
    available: tuple[Edition, ...]
    reason: str
    confidence: float
    alternatives: tuple[EditionAlternative, ...]


def edition_from_record(record: MetadataRecord) -> Edition:
    return Edition(
        id=record.id,
        title=record.title,
        format=parse_format(record.edition) if record.edition else None,
        language=record.language,
        publication_date=parse_date_string(record.publication_date)
        if record.publication_date
        else None,
        publisher=Publisher(name=record.publisher) if record.publisher else None,
        isbn=record.isbn,
        page_count=record.page_count,
    )


def _binding(edition: Edition) -> str | None:
    return edition.format.binding if edition.format else None


def _year(edition: Edition) -> int | None:
    return edition.publication_date.year if edition.publication_date else None


class EditionSelector:
    """Scores candidate editions and picks the most complete, recent one."""

    def __init__(self, recent_edition_years: int = 5, max_alternatives: int = 3) -> None:
        self.recent_edition_years = recent_edition_years
        self.max_alternatives = max_alternatives

    def select_best_edition(
        self,
        preview: MetadataPreview,
        records: Sequence[MetadataRecord],
        today: date | None = None,
    ) -> EditionSelection:
        editions = [edition_from_record(r) for r in records]
        if not editions:
            editions = [self._default_edition(preview)]
        current_year = (today or date.today()).year
        language = preview["language"].value

        scored = sorted(
            ((self.score_edition(e, language, current_year), i, e) for i, e in enumerate(editions)),
            key=lambda item: (-item[0], item[1]),
        )
        best_score, _, selected = scored[0]
        alternatives = tuple(
            EditionAlternative(
                edition=edition,
                reason=_alternative_reason(edition, selected),
                confidence=score,
                advantages=_advantages(edition, selected),
            )
            for score, _, edition in scored[1 : self.max_alternatives + 1]
        )
        return EditionSelection(
            selected=selected,
            available=tuple(editions),
            reason=_selection_reason(selected, best_score),
            confidence=best_score,
            alternatives=alternatives,
        )

    def score_edition(self, edition: Edition, language: str | None, current_year: int) -> float:
        score = 0.5
        if edition.isbn:
            score += 0.1
        if edition.publication_date:
            score += 0.1
        if edition.publisher:
            score += 0.1
        if edition.page_count:
            score += 0.05
        if edition.format:
            score += 0.05

        year = _year(edition)
        if year:
            age = current_year - year
            if age < self.recent_edition_years:
                score += 0.1
            elif age < self.recent_edition_years * 2:
                score += 0.05

        binding = _binding(edition)
        if binding == "hardcover":
            score += 0.05
        elif binding == "paperback":
            score += 0.03

        if language and edition.language:
            if normalize_language_code(edition.language) == normalize_language_code(language):
                score += 0.1
        return min(score, 1.0)

    @staticmethod
    def _default_edition(preview: MetadataPreview) -> Edition:
        publication_date = preview["publication_date"].value
        publisher = preview["publisher"].value
        return Edition(
            title=preview["title"].value,
            language=preview["language"].value,
            publication_date=publication_date
            if isinstance(publication_date, PublicationDate)
            else None,
            publisher=publisher if isinstance(publisher, Publisher) else None,
            isbn=tuple(preview["isbn"].value or ()),
            page_count=preview["page_count"].value,
        )


def _selection_reason(edition: Edition, score: float) -> str:
    reasons = []
    if edition.isbn:
        reasons.append("has ISBN information")
    if edition.publication_date:
        reasons.append("has a publication date")
    if edition.publisher:
        reasons.append("has publisher information")
    if score > 0.8:
        reasons.append("has the most complete metadata")
    if not reasons:
        return "Selected as the most suitable edition based on available data"
    return f"Selected because it {', '.join(reasons)}"


def _alternative_reason(alternative: Edition, selected: Edition) -> str:
    if _binding(alternative) == "hardcover" and _binding(selected) != "hardcover":
        return "Hardcover edition might be preferred"
    alt_year, sel_year = _year(alternative), _year(selected)
    if alt_year and sel_year:
        if alt_year > sel_year:
            return "More recent edition"
        if alt_year < sel_year:
            return "Original or earlier edition"
    return "Alternative edition with different characteristics"


def _advantages(alternative: Edition, selected: Edition) -> tuple[str, ...]:
    advantages = []
    if _binding(alternative) == "hardcover" and _binding(selected) != "hardcover":
        advantages.append("Hardcover binding")
    if alternative.page_count and selected.page_count and alternative.page_count > selected.page_count:
        advantages.append("More pages (possibly unabridged)")
    alt_year, sel_year = _year(alternative), _year(selected)
    if alt_year and sel_year and alt_year > sel_year:
        advantages.append("More recent publication")
    return tuple(advantages)


# Series relationships


@dataclass(frozen=True)
class LibraryEntry:
    """A book already in the caller's library."""

    title: str
    authors: tuple[str, ...] = ()
    series: tuple[Series, ...] = ()
    isbn: tuple[str, ...] = ()
    publication_date: PublicationDate | None = None
    publisher: str | None = None


@dataclass(frozen=True)
class SeriesRelationship:
    series: Series
    position: float
    previous_work: RelatedWork | None
    next_work: RelatedWork | None
    related_works: tuple[RelatedWork, ...]
    confidence: float
    is_series_complete: bool
    missing_works: tuple[RelatedWork, ...] = field(default=())


class SeriesAnalyzer:
    """Places a previewed book within series already present in a library."""

    def __init__(self, min_series_name_similarity: float = 0.8, default_confidence: float = 0.8) -> None:
        self.min_series_name_similarity = min_series_name_similarity
        self.default_confidence = default_confidence

    def detect_series_relationships(
        self, preview: MetadataPreview, library: Sequence[LibraryEntry]
    ) -> list[SeriesRelationship]:
        series_list = preview["series"].value or ()
        if isinstance(series_list, SeriesInfo):
            series_list = (Series(name=series_list.name, volume=series_list.volume),)
        title = preview["title"].value
        return [self.analyze_series_relationship(s, title, library) for s in series_list]

    def analyze_series_relationship(
        self, series: Series, title: str | None, library: Sequence[LibraryEntry]
    ) -> SeriesRelationship:
        members = [
            (entry, match)
            for entry in library
            for match in entry.series
            if string_similarity(match.name, series.name) >= self.min_series_name_similarity
        ]

        previous_work = next_work = None
        if series.volume is not None:
            for entry, match in members:
                if match.volume == series.volume - 1 and previous_work is None:
                    previous_work = RelatedWork(
                        title=entry.title, relationship_type="prequel", confidence=0.9
                    )
                if match.volume == series.volume + 1 and next_work is None:
                    next_work = RelatedWork(
                        title=entry.title, relationship_type="sequel", confidence=0.9
                    )

        related = tuple(
            RelatedWork(
                title=entry.title,
                relationship_type="part_of",
                confidence=self.default_confidence,
                description=f"Part of the {series.name} series",
            )
            for entry, _ in members
            if entry.title != title
        )
        owned_volumes = {match.volume for _, match in members if match.volume is not None}
        return SeriesRelationship(
            series=series,
            position=series.volume or series.position or 0,
            previous_work=previous_work,
            next_work=next_work,
            related_works=related,
            confidence=self.default_confidence,
            is_series_complete=bool(series.total_volumes) and len(members) >= series.total_volumes,
            missing_works=_missing_volumes(series, owned_volumes),
        )


def _missing_volumes(series: Series, owned: set[float]) -> tuple[RelatedWork, ...]:
    if not series.total_volumes or series.volume is None:
        return ()
    return tuple(
        RelatedWork(
            title=f"{series.name} Volume {number}",
            relationship_type="part_of",
            confidence=0.7,
            description=f"Missing volume {number} of {series.name}",
        )
        for number in range(1, series.total_volumes + 1)
        if number != series.volume and number not in owned
    )
