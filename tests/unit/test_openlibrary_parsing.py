# ABOUTME: Unit tests for Open Library API response parsing functions.
# ABOUTME: Validates conversion from OL JSON structures to MetadataRecord.

import pytest

from bibliomerge.metadata.openlibrary_parser import (
    build_cover_url,
    parse_author_name,
    parse_isbn_response,
    parse_search_results,
    parse_works_response,
    parse_works_subjects,
    select_best_edition,
)
from bibliomerge.metadata.types import SeriesInfo
from tests.fixtures.openlibrary_responses import (
    AUTHOR_RESPONSE,
    EDITIONS_RESPONSE,
    EDITIONS_RESPONSE_NO_ISBN,
    ISBN_RESPONSE,
    ISBN_RESPONSE_WITH_SUBTITLE,
    SEARCH_RESPONSE,
    SEARCH_RESPONSE_EMPTY,
    SEARCH_RESPONSE_MINIMAL,
    WORKS_RESPONSE_DICT_DESCRIPTION,
    WORKS_RESPONSE_STR_DESCRIPTION,
)


class TestParseIsbnResponse:
    """Tests for parse_isbn_response."""

    def test_extracts_edition_fields(self) -> None:
        """Title, publisher, date, pages and format come from the edition."""
        record = parse_isbn_response(ISBN_RESPONSE, "9780156001311")
        assert record.id == "openlibrary:/books/OL7353617M"
        assert record.source == "openlibrary"
        assert record.confidence == 0.95
        assert record.title == "The Name of the Rose"
        assert record.publisher == "Harcourt"
        assert record.publication_date == "October 1, 1983"
        assert record.page_count == 512
        assert record.edition == "Paperback"
        assert record.physical_dimensions is not None

    def test_publish_place(self) -> None:
        """The first publish place is kept, whether a string or a named object."""
        record = parse_isbn_response(ISBN_RESPONSE, "9780156001311")
        assert record.publication_place == "San Diego"
        named = parse_isbn_response({"publish_places": [{"name": "London"}]}, "0140283293")
        assert named.publication_place == "London"
        assert parse_isbn_response({}, "0140283293").publication_place is None

    def test_isbn13_listed_first(self) -> None:
        """ISBN-13s precede ISBN-10s."""
        record = parse_isbn_response(ISBN_RESPONSE, "9780156001311")
        assert record.isbn == ("9780156001311", "0156001314")

    def test_language_from_key(self) -> None:
        """The language code is taken from the language reference key."""
        record = parse_isbn_response(ISBN_RESPONSE, "9780156001311")
        assert record.language == "eng"

    def test_provider_keys(self) -> None:
        """Work, edition and author keys are kept for follow-up requests."""
        record = parse_isbn_response(ISBN_RESPONSE, "9780156001311")
        assert record.provider_data["work_key"] == "/works/OL456W"
        assert record.provider_data["edition_key"] == "/books/OL7353617M"
        assert record.provider_data["author_keys"] == ["/authors/OL123A"]

    def test_cover_from_cover_id(self) -> None:
        """The first cover id becomes a large cover URL."""
        record = parse_isbn_response(ISBN_RESPONSE, "9780156001311")
        assert record.cover_image.url == "https://covers.openlibrary.org/b/id/240727-L.jpg"

    def test_subtitle_and_series(self) -> None:
        """Subtitles are appended and series strings are parsed."""
        record = parse_isbn_response(ISBN_RESPONSE_WITH_SUBTITLE, "9780316129084")
        assert record.title == "Leviathan Wakes: The Expanse, Book 1"
        assert record.series == SeriesInfo(name="The Expanse", volume=1.0)

    def test_missing_fields_handled(self) -> None:
        """A minimal response falls back to the queried ISBN."""
        record = parse_isbn_response({"title": "Bare Minimum"}, "0140283293", confidence=0.7)
        assert record.title == "Bare Minimum"
        assert record.isbn == ("0140283293",)
        assert record.id == "openlibrary:isbn:0140283293"
        assert record.publisher is None
        assert record.cover_image is None
        assert record.confidence == 0.7


class TestParseWorksResponse:
    """Tests for parse_works_response and parse_works_subjects."""

    def test_string_description(self) -> None:
        """Description as plain string is returned."""
        assert parse_works_response(WORKS_RESPONSE_STR_DESCRIPTION) == (
            "A mystery set in a medieval Italian monastery."
        )

    def test_dict_description(self) -> None:
        """Description as {type, value} dict extracts the value."""
        assert parse_works_response(WORKS_RESPONSE_DICT_DESCRIPTION) == (
            "A mystery set in a medieval Italian monastery."
        )

    def test_missing_description(self) -> None:
        """Returns None when description is absent."""
        assert parse_works_response({"key": "/works/OL1W"}) is None

    def test_subjects(self) -> None:
        """Work subjects are returned in order."""
        assert parse_works_subjects(WORKS_RESPONSE_STR_DESCRIPTION) == ("Mystery", "Historical fiction")


class TestParseAuthorName:
    """Tests for parse_author_name."""

    def test_extracts_name(self) -> None:
        """Author name is extracted from author response."""
        assert parse_author_name(AUTHOR_RESPONSE) == "Umberto Eco"

    def test_missing_name_returns_unknown(self) -> None:
        """Returns 'Unknown' when name field is absent."""
        assert parse_author_name({"key": "/authors/OL123A"}) == "Unknown"


class TestParseSearchResults:
    """Tests for parse_search_results."""

    def test_parses_multiple_results(self) -> None:
        """Each search doc becomes a record keyed by its work."""
        results = parse_search_results(SEARCH_RESPONSE)
        assert [r.title for r in results] == [
            "The Name of the Rose",
            "The Name of the Rose: including Postscript",
        ]
        assert results[0].id == "openlibrary:/works/OL456W"
        assert results[0].provider_data == {"work_key": "/works/OL456W"}

    def test_extracts_search_fields(self) -> None:
        """Authors, ISBNs, year and cover are taken from the doc."""
        first = parse_search_results(SEARCH_RESPONSE)[0]
        assert first.authors == ("Umberto Eco",)
        assert first.isbn == ("9780156001311", "0156001314")
        assert first.publication_date == "1980"
        assert first.page_count == 536
        assert first.language == "eng"
        assert first.cover_image.url.endswith("/id/240727-L.jpg")

    def test_empty_search(self) -> None:
        """Empty search returns empty list."""
        assert parse_search_results(SEARCH_RESPONSE_EMPTY) == []

    def test_minimal_search_result(self) -> None:
        """Search result with only title and key still parses."""
        [record] = parse_search_results(SEARCH_RESPONSE_MINIMAL)
        assert record.title == "Minimal Book"
        assert record.authors == ()
        assert record.cover_image is None


class TestSelectBestEdition:
    """Tests for select_best_edition."""

    def test_prefers_hardcover_with_isbn(self) -> None:
        """Physical formats beat audio and electronic editions."""
        best = select_best_edition(EDITIONS_RESPONSE["entries"])
        assert best == {"isbn": "0156001314", "publisher": "Harcourt"}

    def test_no_isbn_editions(self) -> None:
        """Editions without an ISBN are unusable."""
        assert select_best_edition(EDITIONS_RESPONSE_NO_ISBN["entries"]) is None


class TestBuildCoverUrl:
    """Tests for build_cover_url."""

    @pytest.mark.parametrize(
        ("args", "expected"),
        [
            (("9780156001311",), "https://covers.openlibrary.org/b/isbn/9780156001311-L.jpg"),
            (("9780156001311", "M"), "https://covers.openlibrary.org/b/isbn/9780156001311-M.jpg"),
            (("240727", "S", "id"), "https://covers.openlibrary.org/b/id/240727-S.jpg"),
        ],
    )
    def test_cover_url(self, args: tuple[str, ...], expected: str) -> None:
        """Cover URLs are built from a key, value and size."""
        assert build_cover_url(*args) == expected
