# ABOUTME: Unit tests for personal-name parsing, equivalence and display formatting.
# ABOUTME: Also covers the string, set, ISBN and date similarity measures.

import pytest

from bibliomerge.metadata.dates import parse_date_string
from bibliomerge.metadata.names import (
    are_names_equivalent,
    convert_to_first_last_format,
    format_author_name,
    get_preferred_name_format,
    is_last_first_format,
    parse_name_components,
)
from bibliomerge.metadata.similarity import (
    array_similarity,
    date_similarity,
    isbn_similarity,
    levenshtein_distance,
    string_similarity,
)

_NAME_PAIRS = [
    ("Umberto Eco", "Eco, Umberto"),
    ("J. R. R. Tolkien", "John Ronald Reuel Tolkien"),
    ("Smith John", "John Smith"),
    ("Stephen King", "Stephen Fry"),
    ("Dr. Jane Goodall", "Jane Goodall"),
    ("Ludwig van Beethoven", "Beethoven, Ludwig van"),
    ("Ursula K. Le Guin", "U. Le Guin"),
    ("Anonymous", "Umberto Eco"),
]


class TestParseNameComponents:
    """Tests for splitting names into parts."""

    def test_first_last(self) -> None:
        """A plain two-part name splits into first and last."""
        parts = parse_name_components("Umberto Eco")
        assert parts.first == "Umberto"
        assert parts.last == "Eco"
        assert parts.middle == ()

    def test_last_comma_first(self) -> None:
        """'Last, First Middle' is understood."""
        parts = parse_name_components("Tolkien, John Ronald")
        assert parts.first == "John"
        assert parts.middle == ("Ronald",)
        assert parts.last == "Tolkien"

    def test_particles_stay_with_surname(self) -> None:
        """Surname particles are kept with the last name."""
        parts = parse_name_components("Ludwig van Beethoven")
        assert parts.first == "Ludwig"
        assert parts.last == "van Beethoven"

    def test_prefix_and_suffix(self) -> None:
        """Honorifics and suffixes are peeled off."""
        parts = parse_name_components("Dr. Martin Luther King Jr.")
        assert parts.prefixes == ("Dr.",)
        assert parts.suffixes == ("Jr.",)
        assert parts.first == "Martin"
        assert parts.last == "King"

    def test_single_token(self) -> None:
        """A mononym is a first name only."""
        parts = parse_name_components("Voltaire")
        assert parts.first == "Voltaire"
        assert parts.last == ""


class TestAreNamesEquivalent:
    """Tests for author equivalence."""

    def test_last_first_matches_first_last(self) -> None:
        """'Eco, Umberto' and 'Umberto Eco' are the same person."""
        assert are_names_equivalent("Umberto Eco", "Eco, Umberto")

    def test_initials_match_full_name(self) -> None:
        """Initials line up with the full first name."""
        assert are_names_equivalent("J. R. R. Tolkien", "John Ronald Reuel Tolkien")

    def test_mirrored_order(self) -> None:
        """'Smith John' mirrors 'John Smith'."""
        assert are_names_equivalent("Smith John", "John Smith")

    def test_different_people(self) -> None:
        """Different surnames never match."""
        assert not are_names_equivalent("Stephen King", "Stephen Fry")

    def test_empty_never_matches(self) -> None:
        """An empty name is not equivalent to anything."""
        assert not are_names_equivalent("", "Umberto Eco")
        assert not are_names_equivalent("", "")

    @pytest.mark.parametrize(("a", "b"), _NAME_PAIRS)
    def test_symmetric(self, a: str, b: str) -> None:
        """Equivalence does not depend on argument order."""
        assert are_names_equivalent(a, b) == are_names_equivalent(b, a)


class TestNameFormatting:
    """Tests for display-format helpers."""

    def test_convert_last_first(self) -> None:
        """'Last, First M.' is rewritten in display order."""
        assert convert_to_first_last_format("Tolkien, J. R. R.") == "J. R. R. Tolkien"

    def test_is_last_first_format(self) -> None:
        """Only two non-empty comma parts count as 'Last, First'."""
        assert is_last_first_format("Eco, Umberto")
        assert not is_last_first_format("Umberto Eco")
        assert not is_last_first_format("Eco,")

    def test_format_author_name(self) -> None:
        """Whitespace is collapsed and 'Last, First' flipped."""
        assert format_author_name("  Eco,   Umberto ") == "Umberto Eco"

    def test_preferred_format_favors_full_display_name(self) -> None:
        """Comma-free names with fewer initials are preferred."""
        assert get_preferred_name_format(["Tolkien, J.R.R.", "J. R. R. Tolkien"]) == "J. R. R. Tolkien"

    def test_preferred_format_empty(self) -> None:
        """No variants yields an empty string."""
        assert get_preferred_name_format([]) == ""


class TestSimilarity:
    """Tests for the shared similarity measures."""

    def test_levenshtein(self) -> None:
        """Classic kitten/sitting distance is 3."""
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3

    def test_string_similarity(self) -> None:
        """Similarity is 1 - distance/maxLen, case-insensitive."""
        assert string_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)
        assert string_similarity("Dune", "dune") == 1.0

    def test_string_similarity_empty(self) -> None:
        """Missing input scores zero."""
        assert string_similarity("", "dune") == 0.0
        assert string_similarity(None, "dune") == 0.0

    def test_array_similarity(self) -> None:
        """Jaccard similarity over case-folded items."""
        assert array_similarity(["Fiction", "Mystery"], ["fiction", "History"]) == pytest.approx(1 / 3)

    def test_isbn_similarity(self) -> None:
        """Any shared ISBN after stripping hyphens is a full match."""
        assert isbn_similarity(["978-0-15-600131-1"], ["9780156001311", "x"]) == 1.0
        assert isbn_similarity(["9780156001311"], ["9780151446476"]) == 0.0

    def test_date_similarity(self) -> None:
        """Dates score by how far their components agree."""
        day = parse_date_string("1983-10-01")
        assert date_similarity(day, parse_date_string("1983-10-01")) == 1.0
        assert date_similarity(day, parse_date_string("1983-10")) == 0.9
        assert date_similarity(day, parse_date_string("1983")) == 0.8
        assert date_similarity(day, parse_date_string("1984")) == 0.6
        assert date_similarity(day, parse_date_string("1990")) == 0.0


class TestCatalogNameForms:
    """Equivalence for name forms seen in library catalogs."""

    def test_initials_with_last_first(self) -> None:
        """Run-together initials match across 'Last, First' order."""
        assert are_names_equivalent("J.R.R. Tolkien", "Tolkien, J.R.R.")

    def test_unrelated_people(self) -> None:
        """Different first and last names never match."""
        assert not are_names_equivalent("John Smith", "Jane Doe")
