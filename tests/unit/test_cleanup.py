# ABOUTME: Unit tests for mangled-metadata cleanup and query building.
# ABOUTME: Covers detection, word splitting, author extraction and structural title patterns.

import pytest

from bibliomerge.metadata.cleanup import (
    clean_record,
    needs_cleanup,
    query_from_record,
    split_concatenated,
)
from bibliomerge.metadata.provider import MultiCriteriaQuery
from bibliomerge.metadata.types import SeriesInfo
from tests.fixtures.providers import make_record


class TestNeedsCleanup:
    """Tests for needs_cleanup."""

    @pytest.mark.parametrize(
        "text",
        ["SteveBerry-TheTemplarLegacy", "the_templar_legacy", "TheTemplarLegacy", "thetemplarlegacy"],
    )
    def test_mangled(self, text: str) -> None:
        """CamelCase, underscores and long spaceless runs are mangled."""
        assert needs_cleanup(text)

    @pytest.mark.parametrize("text", ["Dune", "1984", "The Name of the Rose", "", "Catch-22"])
    def test_clean(self, text: str) -> None:
        """Ordinary titles are left alone."""
        assert not needs_cleanup(text)


class TestSplitConcatenated:
    """Tests for split_concatenated."""

    def test_camel_case(self) -> None:
        """CamelCase boundaries become spaces."""
        assert split_concatenated("TheTemplarLegacy") == "The Templar Legacy"

    def test_hyphen_segments(self) -> None:
        """Hyphen-separated segments are split independently."""
        assert split_concatenated("SteveBerry-TheTemplarLegacy") == "Steve Berry The Templar Legacy"

    def test_letters_and_digits(self) -> None:
        """Digits are separated from letters."""
        assert split_concatenated("Fahrenheit451") == "Fahrenheit 451"

    def test_lowercase_run_uses_word_model(self) -> None:
        """Long lowercase runs are split into dictionary words."""
        assert split_concatenated("thenameoftherose") == "the name of the rose"

    def test_clean_text_unchanged(self) -> None:
        """Text that needs no cleanup is returned as-is."""
        assert split_concatenated("The Name of the Rose") == "The Name of the Rose"


class TestCleanRecord:
    """Tests for clean_record."""

    def test_author_lifted_from_mangled_title(self) -> None:
        """A leading person name in a mangled title becomes the author."""
        result = clean_record(make_record(title="SteveBerry-TheTemplarLegacy"))
        assert result.was_modified
        assert result.cleaned.title == "The Templar Legacy"
        assert result.cleaned.authors == ("Steve Berry",)

    def test_placeholder_authors_dropped(self) -> None:
        """'Unknown' authors are discarded before the title is examined."""
        result = clean_record(make_record(title="SteveBerry-TheTemplarLegacy", authors=("Unknown",)))
        assert result.cleaned.authors == ("Steve Berry",)

    def test_author_dash_title(self) -> None:
        """'Author - Title' is split when no author is known."""
        result = clean_record(make_record(title="Steve Berry - The Templar Legacy"))
        assert result.cleaned.title == "The Templar Legacy"
        assert result.cleaned.authors == ("Steve Berry",)

    def test_author_series_title(self) -> None:
        """A bracketed series between author and title is extracted."""
        result = clean_record(make_record(title="Steve Berry - [Cotton Malone 1] - The Templar Legacy"))
        assert result.cleaned.title == "The Templar Legacy"
        assert result.cleaned.series == SeriesInfo("Cotton Malone", 1.0)

    def test_title_by_author(self) -> None:
        """'Title by Author' is split when no author is known."""
        result = clean_record(make_record(title="The Templar Legacy by Steve Berry"))
        assert result.cleaned.title == "The Templar Legacy"
        assert result.cleaned.authors == ("Steve Berry",)

    def test_known_author_keeps_title(self) -> None:
        """Titles containing 'by' are kept when the author is already known."""
        record = make_record(title="Stand by Me", authors=("Ben E. King",))
        result = clean_record(record)
        assert not result.was_modified
        assert result.cleaned is record

    def test_original_is_preserved(self) -> None:
        """The input record is never modified."""
        record = make_record(title="TheTemplarLegacy", authors=("Steve Berry",))
        result = clean_record(record)
        assert result.original is record
        assert record.title == "TheTemplarLegacy"
        assert result.cleaned.title == "The Templar Legacy"


class TestQueryFromRecord:
    """Tests for query_from_record."""

    def test_isbn_preferred(self) -> None:
        """A record with an ISBN is queried by it alone."""
        record = make_record(title="Whatever", isbn=("9780156001311", "0156001314"))
        assert query_from_record(record) == MultiCriteriaQuery(isbn="9780156001311")

    def test_cleaned_title_and_author(self) -> None:
        """Without an ISBN the cleaned title, first author and language are used."""
        record = make_record(title="SteveBerry-TheTemplarLegacy", language="en")
        assert query_from_record(record) == MultiCriteriaQuery(
            title="The Templar Legacy", authors=("Steve Berry",), language="en"
        )
