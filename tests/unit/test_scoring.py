# ABOUTME: Unit tests for provider match scoring.
# ABOUTME: Validates weighted field comparisons, normalization, completeness bonus and clamping.

import pytest

from bibliomerge.metadata.scoring import completeness_bonus, score_match
from tests.fixtures.providers import make_record


class TestScoreMatch:
    """Tests for score_match."""

    def test_identical_metadata_scores_high(self) -> None:
        """Matching title, author, ISBN and language scores close to 1.0."""
        record = make_record(
            title="The Name of the Rose",
            authors=("Umberto Eco",),
            isbn=("9780156001311",),
            language="en",
        )
        score = score_match(
            record,
            title="The Name of the Rose",
            authors=("Umberto Eco",),
            isbn="9780156001311",
            language="en",
        )
        assert score >= 0.95

    def test_completely_different_scores_low(self) -> None:
        """Unrelated metadata scores near zero."""
        record = make_record(title="Kokoro", authors=("Natsume Soseki",), language="ja")
        score = score_match(record, title="War and Peace", authors=("Leo Tolstoy",), language="en")
        assert score < 0.3

    def test_title_has_highest_weight(self) -> None:
        """A title match alone outweighs a mismatched title."""
        match = make_record(title="The Name of the Rose")
        no_match = make_record(title="Completely Different Book")
        assert score_match(match, title="The Name of the Rose") > score_match(
            no_match, title="The Name of the Rose"
        )

    def test_case_insensitive_comparison(self) -> None:
        """Title and author comparisons ignore case."""
        record = make_record(title="The Name of the Rose", authors=("Umberto Eco",))
        score = score_match(record, title="the name of the rose", authors=("UMBERTO ECO",))
        assert score >= 0.7

    def test_author_last_first_order(self) -> None:
        """'Last, First' matches 'First Last'."""
        record = make_record(authors=("Eco, Umberto",))
        assert score_match(record, authors=("Umberto Eco",)) == pytest.approx(0.3 + 0.1 * 0.15)

    def test_missing_author_scores_nothing(self) -> None:
        """An author query against a record with no authors adds nothing."""
        assert score_match(make_record(), authors=("Umberto Eco",)) == 0.0

    def test_isbn10_matches_isbn13(self) -> None:
        """ISBN-10 and ISBN-13 forms of one book match."""
        record = make_record(isbn=("9780140283297",))
        assert score_match(record, isbn="0-14-028329-3") == pytest.approx(0.2 + 0.1 * 0.25)

    def test_language_codes_are_normalized(self) -> None:
        """Three-letter and two-letter codes for one language match."""
        record = make_record(language="eng")
        assert score_match(record, language="en") == pytest.approx(0.1 + 0.1 * 0.10)

    def test_no_query_terms(self) -> None:
        """With no query terms only the completeness bonus remains."""
        record = make_record(title="Dune", description="Spice.")
        assert score_match(record) == pytest.approx(completeness_bonus(record))

    def test_score_is_clamped(self) -> None:
        """Scores never exceed 1.0 even with a full completeness bonus."""
        record = make_record(
            title="Dune",
            authors=("Frank Herbert",),
            isbn=("9780441172719",),
            language="en",
            description="Spice.",
            publication_date="1965",
            publisher="Chilton",
        )
        score = score_match(
            record, title="Dune", authors=("Frank Herbert",), isbn="9780441172719", language="en"
        )
        assert score == 1.0


class TestCompletenessBonus:
    """Tests for completeness_bonus."""

    def test_empty_record(self) -> None:
        """A record with no scored fields earns no bonus."""
        assert completeness_bonus(make_record(title="Dune")) == 0.0

    def test_full_record(self) -> None:
        """Every scored field filled earns the full bonus."""
        record = make_record(
            authors=("Frank Herbert",),
            isbn=("9780441172719",),
            language="en",
            description="Spice.",
            publication_date="1965",
            publisher="Chilton",
        )
        assert completeness_bonus(record) == pytest.approx(0.1)

    def test_richer_record_scores_higher(self) -> None:
        """A description counts for more than a publisher."""
        assert completeness_bonus(make_record(description="Spice.")) > completeness_bonus(
            make_record(publisher="Chilton")
        )
