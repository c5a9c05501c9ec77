# ABOUTME: Unit tests for ISBN, title, creator, publisher and language normalization.
# ABOUTME: Covers ISBN checksum validation and 10/13 conversion round trips.

import pytest

from bibliomerge.metadata.normalization import (
    clean_isbn,
    isbn10_to_isbn13,
    isbn13_to_isbn10,
    is_valid_isbn10,
    is_valid_isbn13,
    normalize_creator_name,
    normalize_doi,
    normalize_isbn,
    normalize_language_code,
    normalize_publisher_name,
    normalize_title,
)


class TestIsbnValidation:
    """Tests for ISBN cleaning and checksum validation."""

    def test_clean_strips_label_and_hyphens(self) -> None:
        """Labels, hyphens and spaces are removed."""
        assert clean_isbn("ISBN-13: 978-0-15-600131-1") == "9780156001311"
        assert clean_isbn(" 0 15 600131 4 ") == "0156001314"

    def test_valid_isbn10(self) -> None:
        """A correct ISBN-10 checksum validates."""
        assert is_valid_isbn10("0156001314")

    def test_isbn10_with_x_check_digit(self) -> None:
        """An X check digit counts as 10, in either case."""
        assert is_valid_isbn10("080442957X")
        assert is_valid_isbn10("080442957x")

    def test_invalid_isbn10_checksum(self) -> None:
        """A wrong ISBN-10 check digit fails validation."""
        assert not is_valid_isbn10("0156001315")

    def test_valid_isbn13(self) -> None:
        """A correct ISBN-13 checksum validates."""
        assert is_valid_isbn13("978-0-15-600131-1")

    def test_invalid_isbn13_checksum(self) -> None:
        """A wrong ISBN-13 check digit fails validation."""
        assert not is_valid_isbn13("9780156001312")

    def test_isbn13_needs_bookland_prefix(self) -> None:
        """A 13-digit EAN outside 978/979 is not an ISBN even with a good checksum."""
        assert not is_valid_isbn13("1234567890128")

    def test_placeholder_isbns_rejected(self) -> None:
        """All-zero placeholders and stray characters do not validate."""
        assert not is_valid_isbn10("0000000000")
        assert normalize_isbn("0000000000") is None
        assert not is_valid_isbn10("015600131A")


class TestIsbnConversion:
    """Tests for ISBN-10 / ISBN-13 conversion."""

    def test_isbn10_to_isbn13(self) -> None:
        """ISBN-10 converts to the 978-prefixed ISBN-13."""
        assert isbn10_to_isbn13("0156001314") == "9780156001311"

    def test_isbn13_to_isbn10(self) -> None:
        """A 978 ISBN-13 converts back to ISBN-10."""
        assert isbn13_to_isbn10("9780156001311") == "0156001314"

    def test_979_prefix_has_no_isbn10(self) -> None:
        """979-prefixed ISBN-13s have no ISBN-10 form."""
        assert isbn13_to_isbn10("9791032305690") is None

    def test_invalid_input_converts_to_none(self) -> None:
        """Invalid ISBNs are not converted."""
        assert isbn10_to_isbn13("0156001315") is None
        assert isbn13_to_isbn10("9780156001312") is None

    @pytest.mark.parametrize("isbn10", ["0156001314", "080442957X", "0316129089"])
    def test_round_trip(self, isbn10: str) -> None:
        """Converting a valid ISBN-10 to 13 and back is the identity."""
        isbn13 = isbn10_to_isbn13(isbn10)
        assert isbn13 is not None
        assert is_valid_isbn13(isbn13)
        assert isbn13_to_isbn10(isbn13) == isbn10

    def test_normalize_isbn_to_13(self) -> None:
        """normalize_isbn cleans, validates and converts to ISBN-13 by default."""
        assert normalize_isbn("0-15-600131-4") == "9780156001311"
        assert normalize_isbn("ISBN 978-0-15-600131-1") == "9780156001311"

    def test_normalize_isbn_keeps_10_when_asked(self) -> None:
        """With to_13=False a valid ISBN-10 stays ISBN-10."""
        assert normalize_isbn("0-15-600131-4", to_13=False) == "0156001314"

    def test_normalize_isbn_rejects_garbage(self) -> None:
        """Invalid or empty input normalizes to None."""
        assert normalize_isbn("") is None
        assert normalize_isbn("not-an-isbn") is None
        assert normalize_isbn("9780156001312") is None


class TestNormalizeTitle:
    """Tests for title comparison keys."""

    def test_lowercases_and_strips_punctuation(self) -> None:
        """Case and punctuation do not affect the key."""
        assert normalize_title("The Name of the Rose!") == "the name of the rose"

    def test_removes_leading_article(self) -> None:
        """A leading article is dropped when requested."""
        assert normalize_title("The Name of the Rose", remove_articles=True) == "name of the rose"

    def test_strips_diacritics(self) -> None:
        """Accented letters compare equal to their base letters."""
        assert normalize_title("Café Society") == "cafe society"

    def test_collapses_whitespace(self) -> None:
        """Runs of whitespace collapse to one space."""
        assert normalize_title("  Dune   Messiah ") == "dune messiah"


class TestNormalizeCreatorName:
    """Tests for creator comparison keys."""

    def test_flips_last_first(self) -> None:
        """'Last, First' becomes 'first last'."""
        assert normalize_creator_name("Eco, Umberto") == "umberto eco"

    def test_removes_titles_and_suffixes(self) -> None:
        """Honorifics and a trailing suffix are removed."""
        assert normalize_creator_name("Dr. Martin Luther King Jr.") == "martin luther king"

    def test_collapses_initials(self) -> None:
        """Spaced initials collapse into one token."""
        assert normalize_creator_name("J. K. Rowling") == "jk rowling"

    def test_empty(self) -> None:
        """Empty input yields an empty key."""
        assert normalize_creator_name("") == ""


class TestNormalizePublisherName:
    """Tests for publisher comparison keys."""

    def test_removes_business_suffixes(self) -> None:
        """Suffixes like Press and Inc are dropped."""
        assert normalize_publisher_name("The Penguin Press, Inc.") == "penguin"

    def test_ampersand_and_and_match(self) -> None:
        """'&' and 'and' produce the same key."""
        assert normalize_publisher_name("Simon & Schuster") == normalize_publisher_name(
            "Simon and Schuster"
        )

    def test_removes_parentheticals(self) -> None:
        """Parenthetical locations are dropped."""
        assert normalize_publisher_name("Harcourt (New York)") == "harcourt"


class TestNormalizeLanguageCode:
    """Tests for language code mapping."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("eng", "en"), ("English", "en"), ("EN", "en"), ("fre", "fr"), ("deu", "de")],
    )
    def test_maps_to_iso_639_1(self, value: str, expected: str) -> None:
        """Three-letter codes and names map to two-letter codes."""
        assert normalize_language_code(value) == expected

    def test_undetermined_is_empty(self) -> None:
        """'und' means no language."""
        assert normalize_language_code("und") == ""

    def test_unknown_three_letter_passes_through(self) -> None:
        """Unknown three-letter codes are kept."""
        assert normalize_language_code("xyz") == "xyz"

    def test_garbage_is_empty(self) -> None:
        """Free text that is not a code or known name yields an empty string."""
        assert normalize_language_code("english language") == ""


class TestNormalizeDoi:
    """Tests for DOI normalization."""

    def test_strips_resolver_prefix(self) -> None:
        """Resolver URLs and doi: labels are removed and the DOI lowercased."""
        assert normalize_doi("https://doi.org/10.1000/XYZ") == "10.1000/xyz"
        assert normalize_doi("doi: 10.1000/abc") == "10.1000/abc"


class TestIsbnCanonicalForm:
    """Every spelling of one ISBN normalizes to the same canonical string."""

    @pytest.mark.parametrize(
        "isbn",
        ["978-0-14-028329-7", "9780140283297", "0-14-028329-3", "0140283293", "ISBN 978 0 14 028329 7"],
    )
    def test_variants_share_canonical_form(self, isbn: str) -> None:
        """Hyphen, space, label and ISBN-10 variants all normalize alike."""
        assert normalize_isbn(isbn, True) == "9780140283297"

    @pytest.mark.parametrize("isbn", ["978-0-14-028329-7", "0-14-028329-3", "080442957X"])
    def test_normalize_is_idempotent(self, isbn: str) -> None:
        """Normalizing a normalized ISBN changes nothing."""
        once = normalize_isbn(isbn, True)
        assert once is not None
        assert normalize_isbn(once, True) == once


class TestCatalogNameKeys:
    """Creator and publisher keys for names as catalogs commonly print them."""

    def test_creator_suffix_without_comma(self) -> None:
        """A trailing 'Jr.' is dropped without a comma too."""
        assert normalize_creator_name("Martin Luther King Jr.") == "martin luther king"

    def test_publisher_group_suffixes(self) -> None:
        """Stacked business suffixes are all removed."""
        assert normalize_publisher_name("The Penguin Publishing Group, Inc.") == "penguin"
