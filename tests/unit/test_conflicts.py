# ABOUTME: Unit tests for ConflictDetector classification and conflict summaries.
# ABOUTME: Covers value mismatches, format, precision, completeness and quality differences.

import pytest

from bibliomerge.metadata.aggregator import merge_records
from bibliomerge.metadata.conflicts import (
    ConflictDetector,
    ConflictDetectorConfig,
    ConflictSeverity,
    ConflictType,
    summarize_conflicts,
)
from bibliomerge.metadata.dates import parse_date_string
from bibliomerge.metadata.reconciliation import MetadataSource, SourcedValue
from tests.fixtures.providers import full_record

LIBRARY = MetadataSource(name="library", reliability=0.9)
SHOP = MetadataSource(name="shop", reliability=0.8)
CATALOG = MetadataSource(name="catalog", reliability=0.8)
FORUM = MetadataSource(name="forum", reliability=0.4)


def _dates(*values: str) -> list[SourcedValue]:
    sources = [SHOP, CATALOG]
    return [SourcedValue(parse_date_string(v), s) for v, s in zip(values, sources, strict=True)]


class TestValueMismatch:
    """Tests for value mismatch detection and severity."""

    def test_different_titles_are_critical(self) -> None:
        """Disjoint titles from a highly reliable source are critical and need review."""
        conflicts = ConflictDetector().detect_field_conflicts(
            "title",
            [SourcedValue("The Name of the Rose", LIBRARY), SourcedValue("Foucault's Pendulum", MetadataSource("x", 0.7))],
        )
        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.type is ConflictType.VALUE_MISMATCH
        assert conflict.severity is ConflictSeverity.CRITICAL
        assert not conflict.auto_resolvable
        assert conflict.impact.affects_core_metadata
        assert "Check for alternate titles or editions" in conflict.suggestions

    def test_similar_titles_do_not_conflict(self) -> None:
        """Case and punctuation differences are not mismatches."""
        conflicts = ConflictDetector().detect_field_conflicts(
            "title", [SourcedValue("The Name of the Rose", SHOP), SourcedValue("the name of the rose!", CATALOG)]
        )
        assert conflicts == []

    @pytest.mark.parametrize(
        ("other", "severity"),
        [("2010", ConflictSeverity.CRITICAL), ("1990", ConflictSeverity.MAJOR), ("1986", ConflictSeverity.MINOR)],
    )
    def test_date_severity_by_year_span(self, other: str, severity: ConflictSeverity) -> None:
        """The year span between dates sets the severity."""
        conflicts = ConflictDetector().detect_field_conflicts("publication_date", _dates("1983", other))
        mismatches = [c for c in conflicts if c.type is ConflictType.VALUE_MISMATCH]
        assert [c.severity for c in mismatches] == [severity]

    def test_adjacent_years_are_tolerated(self) -> None:
        """Dates one year apart fall within the year tolerance."""
        conflicts = ConflictDetector().detect_field_conflicts("publication_date", _dates("1983", "1984"))
        assert conflicts == []

    def test_large_numeric_delta_is_major(self) -> None:
        """Page counts differing by a quarter or more are major."""
        conflicts = ConflictDetector().detect_field_conflicts(
            "page_count", [SourcedValue(320, SHOP), SourcedValue(500, CATALOG)]
        )
        assert [(c.type, c.severity) for c in conflicts] == [
            (ConflictType.VALUE_MISMATCH, ConflictSeverity.MAJOR)
        ]

    def test_different_authors_mismatch(self) -> None:
        """Different author sets mismatch; equivalent spellings do not."""
        detector = ConflictDetector()
        assert detector.detect_field_conflicts(
            "authors", [SourcedValue(("Umberto Eco",), SHOP), SourcedValue(("Eco, Umberto",), CATALOG)]
        ) == []
        conflicts = detector.detect_field_conflicts(
            "authors", [SourcedValue(("Umberto Eco",), SHOP), SourcedValue(("Italo Calvino",), CATALOG)]
        )
        assert conflicts[0].severity is ConflictSeverity.MAJOR


class TestMinorDifferences:
    """Tests for format, precision, completeness and quality differences."""

    def test_isbn_format_difference(self) -> None:
        """Hyphenated and plain forms of one ISBN are a format difference only."""
        conflicts = ConflictDetector().detect_field_conflicts(
            "isbn", [SourcedValue(("978-0-15-600131-1",), SHOP), SourcedValue(("9780156001311",), CATALOG)]
        )
        assert len(conflicts) == 1
        assert conflicts[0].type is ConflictType.FORMAT_DIFFERENCE
        assert conflicts[0].auto_resolvable

    def test_date_precision_difference(self) -> None:
        """The same year at different precision is a precision difference."""
        conflicts = ConflictDetector().detect_field_conflicts("publication_date", _dates("1983", "1983-10-01"))
        assert len(conflicts) == 1
        assert conflicts[0].type is ConflictType.PRECISION_DIFFERENCE
        assert conflicts[0].context["year"] == 1983

    @pytest.mark.parametrize(
        ("a", "b", "severity"),
        [(320, 324, ConflictSeverity.MINOR), (500, 502, ConflictSeverity.INFORMATIONAL)],
    )
    def test_small_numeric_difference(self, a: int, b: int, severity: ConflictSeverity) -> None:
        """Small numeric deltas are precision differences, not mismatches."""
        conflicts = ConflictDetector().detect_field_conflicts(
            "page_count", [SourcedValue(a, SHOP), SourcedValue(b, CATALOG)]
        )
        assert [(c.type, c.severity) for c in conflicts] == [(ConflictType.PRECISION_DIFFERENCE, severity)]

    def test_minor_detection_can_be_disabled(self) -> None:
        """Format and precision checks are skipped when turned off."""
        detector = ConflictDetector(ConflictDetectorConfig(detect_minor_conflicts=False))
        assert detector.detect_field_conflicts(
            "page_count", [SourcedValue(320, SHOP), SourcedValue(324, CATALOG)]
        ) == []

    def test_completeness_difference(self) -> None:
        """One source listing far more items is a completeness difference."""
        conflicts = ConflictDetector().detect_field_conflicts(
            "subjects",
            [SourcedValue(("Fiction",), SHOP), SourcedValue(("Fiction", "Mystery", "Italy"), CATALOG)],
        )
        assert ConflictType.COMPLETENESS_DIFFERENCE in {c.type for c in conflicts}

    def test_quality_difference(self) -> None:
        """A wide reliability spread between sources is reported."""
        conflicts = ConflictDetector().detect_field_conflicts(
            "title", [SourcedValue("Dune", LIBRARY), SourcedValue("Dune", FORUM)]
        )
        assert [c.type for c in conflicts] == [ConflictType.QUALITY_DIFFERENCE]

    def test_single_value_has_no_conflicts(self) -> None:
        """Fewer than two values never conflict."""
        assert ConflictDetector().detect_field_conflicts("title", [SourcedValue("Dune", SHOP)]) == []
        assert ConflictDetector().detect_field_conflicts("title", [SourcedValue("Dune", SHOP), SourcedValue("", CATALOG)]) == []


class TestSummaries:
    """Tests for conflict summaries."""

    def test_summary_groups_and_scores(self) -> None:
        """Conflicts are grouped and weighted by severity."""
        detector = ConflictDetector()
        conflicts = [
            *detector.detect_field_conflicts(
                "title", [SourcedValue("The Name of the Rose", LIBRARY), SourcedValue("Foucault's Pendulum", SHOP)]
            ),
            *detector.detect_field_conflicts(
                "isbn", [SourcedValue(("978-0-15-600131-1",), SHOP), SourcedValue(("9780156001311",), CATALOG)]
            ),
        ]
        summary = summarize_conflicts(conflicts)

        assert summary.total_conflicts == 2
        assert len(summary.by_severity[ConflictSeverity.CRITICAL]) == 1
        assert len(summary.by_type[ConflictType.FORMAT_DIFFERENCE]) == 1
        assert summary.problematic_fields == ["title", "isbn"]
        assert summary.overall_score == pytest.approx((1.0 + 0.4) / 10)
        assert len(summary.auto_resolvable_conflicts) == 1
        assert len(summary.manual_conflicts) == 1
        assert summary.recommendations[0].startswith("Address 1 critical")

    def test_agreeing_records(self) -> None:
        """Identical records produce an empty summary."""
        summary = ConflictDetector().analyze_records([full_record("a"), full_record("b")])
        assert summary.total_conflicts == 0
        assert summary.recommendations == ["No conflicts detected; sources agree"]

    def test_merged_records_are_expanded(self) -> None:
        """A merged record is analyzed through its constituents."""
        merged = merge_records(
            [full_record("a", 0.9), full_record("b", 0.7, title="Il nome della rosa")]
        )
        summary = ConflictDetector().analyze_records([merged])
        assert "title" in summary.by_field
