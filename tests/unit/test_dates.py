# ABOUTME: Unit tests for loose publication-date parsing and validation.
# ABOUTME: Checks precision detection, out-of-range components and year extraction.

from datetime import date

from bibliomerge.metadata.dates import (
    PublicationDate,
    extract_year,
    is_plausible_year,
    parse_date_string,
    precision_rank,
    validate_publication_date,
)


class TestParseDateString:
    """Tests for parse_date_string."""

    def test_iso_day(self) -> None:
        """YYYY-MM-DD parses at day precision."""
        parsed = parse_date_string("2001-04-07")
        assert parsed.precision == "day"
        assert (parsed.year, parsed.month, parsed.day) == (2001, 4, 7)
        assert parsed.key == "2001-04-07"

    def test_iso_with_time(self) -> None:
        """A trailing time component is ignored."""
        assert parse_date_string("2001-04-07T10:00:00Z").key == "2001-04-07"

    def test_slash_day(self) -> None:
        """YYYY/M/D parses at day precision."""
        assert parse_date_string("2001/4/7").key == "2001-04-07"

    def test_year_month(self) -> None:
        """YYYY-MM parses at month precision."""
        parsed = parse_date_string("2001-04")
        assert parsed.precision == "month"
        assert parsed.key == "2001-04"

    def test_year(self) -> None:
        """A bare year parses at year precision."""
        parsed = parse_date_string("1983")
        assert parsed.precision == "year"
        assert parsed.year == 1983

    def test_embedded_year(self) -> None:
        """A 19xx/20xx year inside free text is found."""
        parsed = parse_date_string("October 1, 1983")
        assert parsed.precision == "year"
        assert parsed.year == 1983
        assert parsed.raw == "October 1, 1983"

    def test_garbage_is_unknown(self) -> None:
        """Unparseable text degrades to unknown precision."""
        parsed = parse_date_string("someday")
        assert parsed.precision == "unknown"
        assert parsed.year is None
        assert parsed.key == "unknown"

    def test_none_is_unknown(self) -> None:
        """None is treated as an empty string."""
        parsed = parse_date_string(None)
        assert parsed.precision == "unknown"
        assert parsed.raw == ""

    def test_invalid_day_drops_to_month(self) -> None:
        """A day past the month's end is dropped."""
        parsed = parse_date_string("2001-02-30")
        assert parsed.precision == "month"
        assert parsed.day is None

    def test_invalid_month_drops_to_year(self) -> None:
        """A month outside 1..12 is dropped."""
        parsed = parse_date_string("2001-13-01")
        assert parsed.precision == "year"
        assert parsed.month is None


class TestValidation:
    """Tests for year plausibility and validation."""

    def test_plausible_range(self) -> None:
        """Years run from 1000 to ten years past today."""
        today = date(2024, 6, 1)
        assert is_plausible_year(1000, today)
        assert is_plausible_year(2034, today)
        assert not is_plausible_year(2035, today)
        assert not is_plausible_year(999, today)
        assert not is_plausible_year(None, today)

    def test_implausible_year_becomes_unknown(self) -> None:
        """An implausible year is removed along with finer components."""
        validated = validate_publication_date(
            PublicationDate(raw="0200-01-01", precision="day", year=200, month=1, day=1)
        )
        assert validated.precision == "unknown"
        assert validated.year is None
        assert validated.raw == "0200-01-01"

    def test_precision_rank_orders_finer_first(self) -> None:
        """Day outranks month, month outranks year, year outranks unknown."""
        ranks = [precision_rank(p) for p in ("day", "month", "year", "unknown")]
        assert ranks == sorted(ranks, reverse=True)


class TestExtractYear:
    """Tests for extract_year."""

    def test_finds_year(self) -> None:
        """The first four-digit plausible year is returned."""
        assert extract_year("Published 1983 by Harcourt") == 1983

    def test_no_year(self) -> None:
        """No four-digit number yields None."""
        assert extract_year("n.d.") is None
        assert extract_year(None) is None
