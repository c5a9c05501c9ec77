# ABOUTME: Unit tests for the date, publisher, author, identifier and subject reconcilers.
# ABOUTME: Each reconciler is fed SourcedValues from sources of differing reliability.

import pytest

from bibliomerge.metadata.reconciliation import (
    AuthorReconciler,
    DateReconciler,
    IdentifierReconciler,
    MetadataSource,
    PublisherReconciler,
    ReconciliationError,
    SourcedValue,
    SubjectReconciler,
)
from bibliomerge.metadata.reconciliation.identifiers import IdentifierInput, detect_identifier_type
from bibliomerge.metadata.reconciliation.publishers import canonical_publisher
from bibliomerge.metadata.reconciliation.subjects import (
    SubjectInput,
    build_hierarchy,
    detect_scheme,
    normalize_subject_name,
)

LIBRARY = MetadataSource(name="library", reliability=0.9)
SHOP = MetadataSource(name="shop", reliability=0.7)


class TestDateReconciler:
    """Tests for DateReconciler."""

    def test_prefers_most_precise_date(self) -> None:
        """A day-precision date beats a more reliable bare year."""
        result = DateReconciler().reconcile(
            [SourcedValue("1983", LIBRARY), SourcedValue("1983-10-01", SHOP)]
        )
        assert result.value.key == "1983-10-01"
        assert result.confidence == pytest.approx(0.7)
        assert result.sources == (SHOP,)
        assert len(result.conflicts) == 1

    def test_same_date_has_no_conflict(self) -> None:
        """Agreeing dates produce no conflict."""
        result = DateReconciler().reconcile(
            [SourcedValue("1983-10-01", LIBRARY), SourcedValue("1983/10/1", SHOP)]
        )
        assert result.conflicts == ()
        assert result.sources == (LIBRARY,)

    def test_single_source_scaled_by_precision(self) -> None:
        """A year-only date from one source keeps 80% of its reliability."""
        result = DateReconciler().reconcile([SourcedValue("1983", LIBRARY)])
        assert result.confidence == pytest.approx(0.72)
        assert result.reasoning == "Single source"

    def test_all_unknown(self) -> None:
        """Unparseable dates fall back to the first with low confidence."""
        result = DateReconciler().reconcile(
            [SourcedValue("someday", LIBRARY), SourcedValue("n.d.", SHOP)]
        )
        assert result.value.precision == "unknown"
        assert result.confidence == pytest.approx(0.1)

    def test_empty_raises(self) -> None:
        """No inputs is an error."""
        with pytest.raises(ReconciliationError):
            DateReconciler().reconcile([])


class TestPublisherReconciler:
    """Tests for PublisherReconciler."""

    def test_imprints_share_parent(self) -> None:
        """Imprints of one parent publisher resolve to the same canonical name."""
        assert canonical_publisher("Random House") == "penguin random house"
        assert canonical_publisher("Bantam Books") == "penguin random house"
        assert canonical_publisher("Harcourt") is None

    def test_same_parent_is_not_a_conflict(self) -> None:
        """Two imprints of one parent group together."""
        result = PublisherReconciler().reconcile(
            [SourcedValue("Penguin Books", LIBRARY), SourcedValue("Random House", SHOP)]
        )
        assert result.conflicts == ()
        assert result.value.name == "Penguin Books"
        assert set(result.sources) == {LIBRARY, SHOP}

    def test_disagreement_is_reported(self) -> None:
        """Unrelated publishers produce a conflict and the heavier group wins."""
        result = PublisherReconciler().reconcile(
            [SourcedValue("Harcourt", LIBRARY), SourcedValue("Secker & Warburg", SHOP)]
        )
        assert result.value.name == "Harcourt"
        assert len(result.conflicts) == 1

    def test_single_source_confidence(self) -> None:
        """An unrecognized publisher keeps its source reliability."""
        result = PublisherReconciler().reconcile([SourcedValue("Harcourt", LIBRARY)])
        assert result.confidence == pytest.approx(0.9)

    def test_blank_names_give_empty_result(self) -> None:
        """Only blank names yields an empty low-confidence publisher."""
        result = PublisherReconciler().reconcile(
            [SourcedValue("  ", LIBRARY), SourcedValue("\t", SHOP), SourcedValue(None, SHOP)]
        )
        assert result.value.name == ""
        assert result.confidence == pytest.approx(0.1)
        assert result.conflicts == ()
        assert result.reasoning == "No valid publisher information found"

    def test_no_inputs_raise(self) -> None:
        """Zero inputs is an error."""
        with pytest.raises(ReconciliationError):
            PublisherReconciler().reconcile([])


class TestAuthorReconciler:
    """Tests for AuthorReconciler."""

    def test_unions_equivalence_classes(self) -> None:
        """Name variants collapse and extra authors are kept."""
        result = AuthorReconciler().reconcile(
            [
                SourcedValue(("Umberto Eco",), LIBRARY),
                SourcedValue(("Eco, Umberto", "William Weaver"), MetadataSource("shop", 0.6)),
            ]
        )
        assert result.value == ("Umberto Eco", "William Weaver")
        assert result.confidence == pytest.approx((1.0 + 0.4) / 2)
        assert len(result.conflicts) == 1

    def test_full_agreement_has_no_conflict(self) -> None:
        """Sources naming the same people do not conflict."""
        result = AuthorReconciler().reconcile(
            [SourcedValue(("Umberto Eco",), LIBRARY), SourcedValue(("Eco, Umberto",), SHOP)]
        )
        assert result.value == ("Umberto Eco",)
        assert result.conflicts == ()
        assert result.confidence == pytest.approx(1.0)

    def test_no_authors(self) -> None:
        """Empty author lists reconcile to an empty tuple with low confidence."""
        result = AuthorReconciler().reconcile([SourcedValue((), LIBRARY), SourcedValue(("  ",), SHOP)])
        assert result.value == ()
        assert result.confidence == pytest.approx(0.1)


class TestIdentifierReconciler:
    """Tests for identifier typing and reconciliation."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("978-0-15-600131-1", "isbn"),
            ("080442957X", "isbn"),
            ("10.1000/xyz123", "doi"),
            ("https://www.goodreads.com/book/show/119073", "goodreads"),
            ("B00ABCDEFG", "amazon"),
            ("ocm12345678", "oclc"),
            ("n79021164", "lccn"),
            ("something", "other"),
        ],
    )
    def test_detects_type(self, value: str, expected: str) -> None:
        """Identifier types are detected from their shape."""
        assert detect_identifier_type(value) == expected

    def test_normalizes_isbn10_to_13(self) -> None:
        """ISBN-10 identifiers normalize to a valid ISBN-13."""
        identifier = IdentifierReconciler().normalize_identifier("0-15-600131-4")
        assert identifier.type == "isbn"
        assert identifier.normalized == "9780156001311"
        assert identifier.valid

    def test_deduplicates_across_sources(self) -> None:
        """The same ISBN from two sources is kept once, from the more reliable one."""
        result = IdentifierReconciler().reconcile(
            [
                IdentifierInput(source=SHOP, identifiers=("978-0-15-600131-1", "doi:10.1000/XYZ")),
                IdentifierInput(source=LIBRARY, isbn=("0156001314",)),
            ]
        )
        assert [i.type for i in result.value] == ["isbn", "doi"]
        assert result.value[0].normalized == "9780156001311"
        assert result.sources[0] == LIBRARY
        assert len(result.conflicts) == 1
        assert result.conflicts[0].field == "identifier_isbn"
        assert result.confidence == pytest.approx((0.9 + 0.7) / 2 * 0.9 + 0.1)

    def test_invalid_identifiers_sort_last(self) -> None:
        """Checksum failures are kept but ordered after valid identifiers."""
        result = IdentifierReconciler().reconcile(
            [IdentifierInput(source=LIBRARY, isbn=("9780156001312",), doi=("10.1000/xyz",))]
        )
        assert [i.valid for i in result.value] == [True, False]

    def test_nothing_reported(self) -> None:
        """Inputs without identifiers reconcile to an empty tuple."""
        result = IdentifierReconciler().reconcile([IdentifierInput(source=LIBRARY)])
        assert result.value == ()
        assert result.confidence == pytest.approx(0.1)


class TestSubjectReconciler:
    """Tests for subject normalization and reconciliation."""

    def test_normalizes_genre_variants(self) -> None:
        """Synonyms and genre variants fold to canonical genres."""
        assert normalize_subject_name("Sci-Fi") == "science fiction"
        assert normalize_subject_name("Novels") == "fiction"
        assert normalize_subject_name("Detective") == "mystery"

    @pytest.mark.parametrize(
        ("value", "scheme"),
        [("FIC022000", "bisac"), ("853.914", "dewey"), ("PQ4865", "lcc"), ("Italy -- History", "lcsh")],
    )
    def test_detects_scheme(self, value: str, scheme: str) -> None:
        """Classification codes and headings are recognized."""
        assert detect_scheme(value) == scheme

    def test_dewey_hierarchy(self) -> None:
        """Dewey codes expand into broader headings."""
        hierarchy = build_hierarchy("Italian fiction", "dewey", "823.914")
        assert hierarchy[0] == "literature"
        assert "english literature" in hierarchy

    def test_equivalent_subjects_merge(self) -> None:
        """Variant spellings from two sources collapse without conflict."""
        result = SubjectReconciler().reconcile(
            [
                SubjectInput(source=LIBRARY, subjects=("Fiction", "Mystery")),
                SubjectInput(source=SHOP, subjects=("novels", "Detective")),
            ]
        )
        assert [s.name for s in result.value] == ["Fiction", "Mystery"]
        assert result.conflicts == ()

    def test_different_subjects_conflict(self) -> None:
        """Sources with different subject sets are reported."""
        result = SubjectReconciler().reconcile(
            [
                SubjectInput(source=LIBRARY, subjects=("Fiction",)),
                SubjectInput(source=SHOP, subjects=("History",)),
            ]
        )
        assert len(result.value) == 2
        assert len(result.conflicts) == 1

    def test_orders_by_subject_type(self) -> None:
        """Full subjects come before genres, keywords and tags."""
        result = SubjectReconciler().reconcile(
            [
                SubjectInput(
                    source=LIBRARY,
                    subjects=(
                        "Italy",
                        "Medieval monasteries",
                        "Fiction",
                        "Monasticism and religious orders in medieval Italy",
                    ),
                )
            ]
        )
        assert [s.type for s in result.value] == ["subject", "genre", "keyword", "tag"]

    def test_no_subjects(self) -> None:
        """Blank subject lists reconcile to an empty tuple."""
        result = SubjectReconciler().reconcile([SubjectInput(source=LIBRARY, subjects=("",))])
        assert result.value == ()
        assert result.confidence == pytest.approx(0.1)
