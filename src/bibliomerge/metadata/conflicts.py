# ABOUTME: ConflictDetector classifies per-field disagreements between sources by type and severity.
# ABOUTME: Summaries group conflicts and split them into auto-resolvable and manual-review sets.

import dataclasses
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from bibliomerge.metadata.dates import PublicationDate, parse_date_string
from bibliomerge.metadata.names import are_names_equivalent
from bibliomerge.metadata.normalization import (
    clean_isbn,
    normalize_for_comparison,
    normalize_isbn,
)
from bibliomerge.metadata.reconciliation.types import (
    Conflict,
    MetadataSource,
    Publisher,
    ReconciledField,
    SourcedValue,
)
from bibliomerge.metadata.similarity import string_similarity
from bibliomerge.metadata.types import MetadataRecord

logger = logging.getLogger(__name__)

CORE_FIELDS = frozenset({"title", "authors", "isbn", "publication_date"})
_LIST_FIELDS = frozenset({"authors", "subjects", "identifiers"})

_HIGH_RELIABILITY = 0.8
_LOW_RELIABILITY = 0.5
_RELIABILITY_SPREAD = 0.3
_CRITICAL_DISTANCE = 0.5
_MAJOR_YEAR_SPAN = 5
_CRITICAL_YEAR_SPAN = 20
_INFORMATIONAL_DELTA = 0.01
_MAJOR_NUMERIC_DELTA = 0.25
_PROBLEMATIC_FIELD_LIMIT = 5


class ConflictType(StrEnum):
    VALUE_MISMATCH = "value_mismatch"
    FORMAT_DIFFERENCE = "format_difference"
    PRECISION_DIFFERENCE = "precision_difference"
    COMPLETENESS_DIFFERENCE = "completeness_difference"
    QUALITY_DIFFERENCE = "quality_difference"


class ConflictSeverity(StrEnum):
    """Ordered from most to least serious."""

    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    INFORMATIONAL = "informational"


SEVERITY_WEIGHTS: dict[ConflictSeverity, float] = {
    ConflictSeverity.CRITICAL: 1.0,
    ConflictSeverity.MAJOR: 0.7,
    ConflictSeverity.MINOR: 0.4,
    ConflictSeverity.INFORMATIONAL: 0.1,
}


@dataclass(frozen=True)
class ConflictDetectorConfig:
    """Thresholds for deciding when two values disagree."""

    numeric_threshold: float = 0.05
    string_similarity_threshold: float = 0.8
    year_tolerance: int = 1
    detect_minor_conflicts: bool = True
    max_conflicts_per_field: int = 10


@dataclass(frozen=True)
class ConflictImpact:
    score: float
    affected_areas: tuple[str, ...]
    description: str
    affects_core_metadata: bool


@dataclass(frozen=True)
class DetailedConflict(Conflict):
    """A Conflict annotated with its type, severity and suggested handling."""

    type: ConflictType
    severity: ConflictSeverity
    confidence: float
    explanation: str
    suggestions: tuple[str, ...]
    impact: ConflictImpact
    auto_resolvable: bool
    detection_method: str
    context: dict[str, Any] = field(default_factory=dict, compare=False)
    detected_at: datetime = field(default_factory=lambda: datetime.now(UTC), compare=False)


@dataclass(frozen=True)
class ConflictSummary:
    total_conflicts: int
    by_severity: dict[ConflictSeverity, list[DetailedConflict]]
    by_type: dict[ConflictType, list[DetailedConflict]]
    by_field: dict[str, list[DetailedConflict]]
    overall_score: float
    problematic_fields: list[str]
    recommendations: list[str]
    auto_resolvable_conflicts: list[DetailedConflict]
    manual_conflicts: list[DetailedConflict]


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _as_date(value: Any) -> PublicationDate | None:
    if isinstance(value, PublicationDate):
        return value
    if isinstance(value, str):
        return parse_date_string(value)
    return None


def _text(value: Any) -> str:
    """Flatten a value into comparable text."""
    if isinstance(value, str):
        return value
    if isinstance(value, Publisher):
        return value.name
    if isinstance(value, PublicationDate):
        return value.key
    if isinstance(value, list | tuple):
        return " ".join(_text(v) for v in value)
    return str(value)


def _relative_delta(values: Sequence[float]) -> float:
    low, high = min(values), max(values)
    mean = (low + high) / 2
    if mean == 0:
        return 0.0 if high == low else 1.0
    return (high - low) / mean


class ConflictDetector:
    """Finds and classifies disagreements in raw per-source field values.

    Detection never alters the values it describes; it only reports.
    """

    def __init__(self, config: ConflictDetectorConfig | None = None) -> None:
        self.config = config or ConflictDetectorConfig()

    def detect_field_conflicts(
        self,
        field_name: str,
        raw_values: Sequence[SourcedValue[Any]],
        resolution: str = "Used most reliable source",
    ) -> list[DetailedConflict]:
        """Return the conflicts found among one field's raw values."""
        values = [v for v in raw_values if v.value is not None and v.value != "" and v.value != ()]
        if len(values) < 2:
            return []

        conflicts: list[DetailedConflict] = []
        groups = self._group_similar(values, field_name)
        if len(groups) > 1:
            conflicts.append(self._value_mismatch(field_name, groups, resolution))

        if self.config.detect_minor_conflicts:
            conflicts.extend(self._format_differences(field_name, values))
            conflicts.extend(self._precision_differences(field_name, values))
        conflicts.extend(self._completeness_differences(field_name, values))
        conflicts.extend(self._quality_differences(field_name, values))
        return conflicts[: self.config.max_conflicts_per_field]

    def analyze_all_conflicts(
        self,
        fields: Mapping[str, ReconciledField[Any]],
        raw_values: Mapping[str, Sequence[SourcedValue[Any]]],
    ) -> ConflictSummary:
        """Detect conflicts for every reconciled field and summarize them."""
        conflicts: list[DetailedConflict] = []
        for name, reconciled in fields.items():
            resolution = reconciled.reasoning or "Used most reliable source"
            conflicts.extend(self.detect_field_conflicts(name, raw_values.get(name, ()), resolution))
        return summarize_conflicts(conflicts)

    def analyze_records(self, records: Sequence[MetadataRecord]) -> ConflictSummary:
        """Detect conflicts directly from provider records.

        Merged records are expanded into the records they were built from.
        """
        expanded = [part for r in records for part in (r.merged_from or (r,))]
        conflicts: list[DetailedConflict] = []
        for name, values in raw_values_from_records(expanded).items():
            conflicts.extend(self.detect_field_conflicts(name, values))
        summary = summarize_conflicts(conflicts)
        logger.debug(
            "Found %d conflict(s) across %d record(s)", summary.total_conflicts, len(expanded)
        )
        return summary

    # Similarity

    def _similar(self, a: Any, b: Any, field_name: str) -> bool:
        if a == b:
            return True
        if a is None or b is None:
            return False
        if field_name == "isbn" and isinstance(a, str) and isinstance(b, str):
            left, right = normalize_isbn(a, True), normalize_isbn(b, True)
            return left is not None and left == right
        if field_name == "authors" and isinstance(a, str) and isinstance(b, str):
            return are_names_equivalent(a, b)
        if isinstance(a, str) and isinstance(b, str):
            return (
                string_similarity(normalize_for_comparison(a), normalize_for_comparison(b))
                >= self.config.string_similarity_threshold
            )
        if _is_number(a) and _is_number(b):
            return _relative_delta([a, b]) <= self.config.numeric_threshold
        if isinstance(a, PublicationDate) and isinstance(b, PublicationDate):
            if a.year and b.year:
                return abs(a.year - b.year) <= self.config.year_tolerance
            return a.key == b.key
        if isinstance(a, Publisher) and isinstance(b, Publisher):
            return (
                string_similarity(a.normalized or a.name, b.normalized or b.name)
                >= self.config.string_similarity_threshold
            )
        if field_name == "isbn" and isinstance(a, list | tuple) and isinstance(b, list | tuple):
            return any(self._similar(x, y, field_name) for x in a for y in b)
        if isinstance(a, list | tuple) and isinstance(b, list | tuple):
            if len(a) != len(b):
                return False
            return all(any(self._similar(x, y, field_name) for y in b) for x in a) and all(
                any(self._similar(y, x, field_name) for x in a) for y in b
            )
        if dataclasses.is_dataclass(a) and type(a) is type(b):
            return all(
                self._similar(getattr(a, f.name), getattr(b, f.name), f.name)
                for f in dataclasses.fields(a)
                if f.compare
            )
        return False

    def _group_similar(
        self, values: Sequence[SourcedValue[Any]], field_name: str
    ) -> list[list[SourcedValue[Any]]]:
        groups: list[list[SourcedValue[Any]]] = []
        for item in values:
            for group in groups:
                if self._similar(item.value, group[0].value, field_name):
                    group.append(item)
                    break
            else:
                groups.append([item])
        return groups

    # Value mismatches

    def _value_mismatch(
        self, field_name: str, groups: list[list[SourcedValue[Any]]], resolution: str
    ) -> DetailedConflict:
        flat = [item for group in groups for item in group]
        severity = self._severity(field_name, groups)
        return DetailedConflict(
            field=field_name,
            values=tuple(flat),
            resolution=resolution,
            type=ConflictType.VALUE_MISMATCH,
            severity=severity,
            confidence=_mismatch_confidence(groups),
            explanation=(
                f"Found {len(groups)} different values for '{field_name}' across "
                f"{len(flat)} sources."
            ),
            suggestions=_mismatch_suggestions(field_name),
            impact=_mismatch_impact(field_name, len(groups)),
            auto_resolvable=_clear_winner(flat) and severity is not ConflictSeverity.CRITICAL,
            detection_method="value_grouping",
            context={"group_count": len(groups), "total_values": len(flat)},
        )

    def _severity(self, field_name: str, groups: list[list[SourcedValue[Any]]]) -> ConflictSeverity:
        flat = [item for group in groups for item in group]
        high = any(item.source.reliability > _HIGH_RELIABILITY for item in flat)
        representatives = [group[0].value for group in groups]

        dates = [_as_date(v) for v in representatives]
        if field_name == "publication_date" and all(d is not None and d.year for d in dates):
            span = max(d.year for d in dates) - min(d.year for d in dates)
            if span >= _CRITICAL_YEAR_SPAN:
                return ConflictSeverity.CRITICAL
            if span >= _MAJOR_YEAR_SPAN:
                return ConflictSeverity.MAJOR
            return ConflictSeverity.MINOR

        if all(_is_number(v) for v in representatives):
            if _relative_delta(representatives) >= _MAJOR_NUMERIC_DELTA:
                return ConflictSeverity.MAJOR
            return ConflictSeverity.MINOR

        if field_name in CORE_FIELDS:
            if high and (len(groups) > 2 or self._max_distance(representatives) >= _CRITICAL_DISTANCE):
                return ConflictSeverity.CRITICAL
            return ConflictSeverity.MAJOR

        if len(groups) > 2 or high:
            return ConflictSeverity.MINOR
        return ConflictSeverity.INFORMATIONAL

    @staticmethod
    def _max_distance(values: Sequence[Any]) -> float:
        texts = [normalize_for_comparison(_text(v)) for v in values]
        return max(
            (1.0 - string_similarity(a, b) for i, a in enumerate(texts) for b in texts[i + 1 :]),
            default=0.0,
        )

    # Minor differences

    def _format_differences(
        self, field_name: str, values: Sequence[SourcedValue[Any]]
    ) -> list[DetailedConflict]:
        if field_name != "isbn":
            return []
        by_isbn: dict[str, list[tuple[str, SourcedValue[Any]]]] = {}
        for item in values:
            raw_isbns = item.value if isinstance(item.value, list | tuple) else [item.value]
            for raw in raw_isbns:
                if not isinstance(raw, str):
                    continue
                key = normalize_isbn(raw, True) or clean_isbn(raw)
                by_isbn.setdefault(key, []).append((raw, item))

        conflicts = []
        for key, entries in by_isbn.items():
            formats = list(dict.fromkeys(raw for raw, _ in entries))
            if len(entries) < 2 or len(formats) < 2:
                continue
            conflicts.append(
                DetailedConflict(
                    field="isbn",
                    values=tuple(item for _, item in entries),
                    resolution="Normalized to ISBN-13",
                    type=ConflictType.FORMAT_DIFFERENCE,
                    severity=ConflictSeverity.MINOR,
                    confidence=0.9,
                    explanation=f"Same ISBN found in different formats: {', '.join(formats)}",
                    suggestions=(
                        "Normalize all ISBNs to ISBN-13",
                        "Remove hyphens for consistent formatting",
                    ),
                    impact=ConflictImpact(
                        score=0.2,
                        affected_areas=("identification", "deduplication"),
                        description="Formatting inconsistency that could affect identification",
                        affects_core_metadata=False,
                    ),
                    auto_resolvable=True,
                    detection_method="isbn_format_analysis",
                    context={"isbn": key, "format_count": len(formats)},
                )
            )
        return conflicts

    def _precision_differences(
        self, field_name: str, values: Sequence[SourcedValue[Any]]
    ) -> list[DetailedConflict]:
        if all(_is_number(item.value) for item in values):
            return self._numeric_precision(field_name, values)
        if field_name != "publication_date":
            return []

        by_year: dict[int, list[tuple[str, SourcedValue[Any]]]] = {}
        for item in values:
            parsed = _as_date(item.value)
            if parsed is not None and parsed.year:
                by_year.setdefault(parsed.year, []).append((parsed.precision, item))

        conflicts = []
        for year, entries in by_year.items():
            precisions = list(dict.fromkeys(p for p, _ in entries))
            if len(precisions) < 2:
                continue
            conflicts.append(
                DetailedConflict(
                    field=field_name,
                    values=tuple(item for _, item in entries),
                    resolution="Used the most precise date available",
                    type=ConflictType.PRECISION_DIFFERENCE,
                    severity=ConflictSeverity.MINOR,
                    confidence=0.8,
                    explanation=(
                        f"Same publication year ({year}) found with different precision: "
                        f"{', '.join(precisions)}"
                    ),
                    suggestions=("Use the most precise date available",),
                    impact=ConflictImpact(
                        score=0.3,
                        affected_areas=("chronology", "sorting"),
                        description="Different date precision may affect chronological ordering",
                        affects_core_metadata=False,
                    ),
                    auto_resolvable=True,
                    detection_method="date_precision_analysis",
                    context={"year": year, "precision_count": len(precisions)},
                )
            )
        return conflicts

    def _numeric_precision(
        self, field_name: str, values: Sequence[SourcedValue[Any]]
    ) -> list[DetailedConflict]:
        numbers = [item.value for item in values]
        if len(set(numbers)) < 2:
            return []
        delta = _relative_delta(numbers)
        if delta > self.config.numeric_threshold:
            return []
        severity = (
            ConflictSeverity.INFORMATIONAL if delta <= _INFORMATIONAL_DELTA else ConflictSeverity.MINOR
        )
        return [
            DetailedConflict(
                field=field_name,
                values=tuple(values),
                resolution="Used the value from the most reliable source",
                type=ConflictType.PRECISION_DIFFERENCE,
                severity=severity,
                confidence=0.7,
                explanation=(
                    f"Values for '{field_name}' differ by {delta:.1%} "
                    f"({min(numbers)} to {max(numbers)})"
                ),
                suggestions=("Use the value from the most reliable source",),
                impact=ConflictImpact(
                    score=0.1,
                    affected_areas=("accuracy",),
                    description=f"Small numeric difference in '{field_name}'",
                    affects_core_metadata=False,
                ),
                auto_resolvable=True,
                detection_method="numeric_delta_analysis",
                context={"relative_delta": delta},
            )
        ]

    def _completeness_differences(
        self, field_name: str, values: Sequence[SourcedValue[Any]]
    ) -> list[DetailedConflict]:
        if field_name not in _LIST_FIELDS:
            return []
        lengths = [len(v.value) if isinstance(v.value, list | tuple) else 1 for v in values]
        low, high = min(lengths), max(lengths)
        if high <= low * 2:
            return []
        return [
            DetailedConflict(
                field=field_name,
                values=tuple(values),
                resolution="Combined data from all sources",
                type=ConflictType.COMPLETENESS_DIFFERENCE,
                severity=ConflictSeverity.MINOR,
                confidence=0.7,
                explanation=f"Sources report between {low} and {high} items",
                suggestions=(
                    "Merge data from all sources",
                    "Prioritize sources with more complete information",
                ),
                impact=ConflictImpact(
                    score=0.4,
                    affected_areas=("completeness", "discovery"),
                    description="Some sources provide significantly more complete data",
                    affects_core_metadata=False,
                ),
                auto_resolvable=True,
                detection_method="completeness_analysis",
                context={"min_length": low, "max_length": high},
            )
        ]

    def _quality_differences(
        self, field_name: str, values: Sequence[SourcedValue[Any]]
    ) -> list[DetailedConflict]:
        reliabilities = [v.source.reliability for v in values]
        low, high = min(reliabilities), max(reliabilities)
        if high - low <= _RELIABILITY_SPREAD:
            return []
        if high <= _HIGH_RELIABILITY or low >= _LOW_RELIABILITY:
            return []
        return [
            DetailedConflict(
                field=field_name,
                values=tuple(values),
                resolution="Prioritized data from more reliable sources",
                type=ConflictType.QUALITY_DIFFERENCE,
                severity=ConflictSeverity.MINOR,
                confidence=0.8,
                explanation=f"Source reliability ranges from {low:.2f} to {high:.2f}",
                suggestions=(
                    "Weight values by source reliability",
                    "Use low-reliability sources only to fill gaps",
                ),
                impact=ConflictImpact(
                    score=0.3,
                    affected_areas=("accuracy", "confidence"),
                    description="Quality differences between sources may affect accuracy",
                    affects_core_metadata=False,
                ),
                auto_resolvable=True,
                detection_method="quality_analysis",
                context={"reliability_spread": high - low},
            )
        ]


def _mismatch_confidence(groups: list[list[SourcedValue[Any]]]) -> float:
    flat = [item for group in groups for item in group]
    average = sum(item.source.reliability for item in flat) / len(flat)
    return min(1.0, 0.5 + min(0.3, (len(groups) - 1) * 0.1) + average * 0.2)


def _mismatch_suggestions(field_name: str) -> tuple[str, ...]:
    suggestions = [
        "Review source reliability and prioritize the most trustworthy source",
        "Verify the conflicting values manually",
        "Look for additional sources to break the tie",
    ]
    if field_name == "title":
        suggestions.append("Check for alternate titles or editions")
    return tuple(suggestions)


def _mismatch_impact(field_name: str, group_count: int) -> ConflictImpact:
    core = field_name in CORE_FIELDS
    score = 0.1
    areas: list[str] = []
    if core:
        score += 0.4
        areas.extend(["identification", "search", "cataloging"])
    if group_count > 2:
        score += 0.2
        areas.append("data_quality")
    areas.extend(
        {
            "title": ["display"],
            "authors": ["attribution", "discovery"],
            "isbn": ["deduplication", "external_linking"],
        }.get(field_name, [])
    )
    if core:
        description = (
            f"Conflict in core field '{field_name}' with {group_count} different values "
            "may affect book identification"
        )
    else:
        description = (
            f"Conflict in '{field_name}' with {group_count} different values "
            "may affect data accuracy"
        )
    return ConflictImpact(
        score=min(1.0, score),
        affected_areas=tuple(areas),
        description=description,
        affects_core_metadata=core,
    )


def _clear_winner(values: Sequence[SourcedValue[Any]]) -> bool:
    best = max(item.source.reliability for item in values)
    leaders = [item for item in values if item.source.reliability == best]
    return len(leaders) == 1 and best > _HIGH_RELIABILITY


def summarize_conflicts(conflicts: Sequence[DetailedConflict]) -> ConflictSummary:
    """Group conflicts by severity, type and field, and recommend next steps."""
    by_severity: dict[ConflictSeverity, list[DetailedConflict]] = {s: [] for s in ConflictSeverity}
    by_type: dict[ConflictType, list[DetailedConflict]] = {t: [] for t in ConflictType}
    by_field: dict[str, list[DetailedConflict]] = {}
    for conflict in conflicts:
        by_severity[conflict.severity].append(conflict)
        by_type[conflict.type].append(conflict)
        by_field.setdefault(conflict.field, []).append(conflict)

    weighted = sum(SEVERITY_WEIGHTS[c.severity] for c in conflicts)
    field_scores = {
        name: sum(SEVERITY_WEIGHTS[c.severity] for c in items) for name, items in by_field.items()
    }
    problematic = sorted(field_scores, key=lambda name: -field_scores[name])[
        :_PROBLEMATIC_FIELD_LIMIT
    ]
    auto = [c for c in conflicts if c.auto_resolvable]
    manual = [c for c in conflicts if not c.auto_resolvable]

    recommendations = []
    if by_severity[ConflictSeverity.CRITICAL]:
        recommendations.append(
            f"Address {len(by_severity[ConflictSeverity.CRITICAL])} critical conflict(s) "
            "in core metadata first"
        )
    if by_severity[ConflictSeverity.MAJOR]:
        recommendations.append(
            f"Review {len(by_severity[ConflictSeverity.MAJOR])} major conflict(s) "
            "that may affect data quality"
        )
    if auto:
        recommendations.append(f"{len(auto)} conflict(s) can be resolved automatically")
    if manual:
        recommendations.append(f"{len(manual)} conflict(s) require manual review")
    if not conflicts:
        recommendations.append("No conflicts detected; sources agree")

    return ConflictSummary(
        total_conflicts=len(conflicts),
        by_severity=by_severity,
        by_type=by_type,
        by_field=by_field,
        overall_score=min(1.0, weighted / 10),
        problematic_fields=problematic,
        recommendations=recommendations,
        auto_resolvable_conflicts=auto,
        manual_conflicts=manual,
    )


def raw_values_from_records(
    records: Sequence[MetadataRecord],
) -> dict[str, list[SourcedValue[Any]]]:
    """Collect each record's value per field, tagged with its source."""
    raw: dict[str, list[SourcedValue[Any]]] = {}

    def add(name: str, value: Any, source: MetadataSource) -> None:
        if value is None or value == "" or value == ():
            return
        raw.setdefault(name, []).append(SourcedValue(value, source))

    for record in records:
        source = MetadataSource(
            name=record.provider or record.source,
            reliability=record.confidence,
            timestamp=record.timestamp,
        )
        add("title", record.title, source)
        add("authors", record.authors, source)
        add("isbn", record.isbn, source)
        if record.publication_date:
            add("publication_date", parse_date_string(record.publication_date), source)
        if record.publisher:
            add("publisher", Publisher(name=record.publisher), source)
        add("page_count", record.page_count, source)
        add("language", record.language, source)
        add("subjects", record.subjects, source)
    return raw
