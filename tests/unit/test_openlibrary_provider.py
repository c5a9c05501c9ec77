# ABOUTME: Unit tests for OpenLibraryProvider.
# ABOUTME: Uses a FakeHttpClient to test ISBN lookup, searches, enrichment, scoring and error handling.

import asyncio
from typing import Any

import pytest

from bibliomerge.metadata.http import MetadataFetchError
from bibliomerge.metadata.openlibrary import OpenLibraryProvider
from bibliomerge.metadata.provider import (
    CreatorQuery,
    MetadataProvider,
    MetadataType,
    MultiCriteriaQuery,
    TitleQuery,
)
from tests.fixtures.openlibrary_responses import (
    AUTHOR_RESPONSE,
    EDITIONS_RESPONSE,
    ISBN_RESPONSE,
    SEARCH_RESPONSE,
    SEARCH_RESPONSE_EMPTY,
    SEARCH_RESPONSE_MINIMAL,
    WORKS_RESPONSE_STR_DESCRIPTION,
)
from tests.fixtures.providers import FakeHttpClient

_DESCRIPTION = "A mystery set in a medieval Italian monastery."


class SequencedHttpClient(FakeHttpClient):
    """FakeHttpClient whose search endpoint answers with successive responses."""

    def __init__(self, searches: list[dict[str, Any]], responses: dict[str, Any] | None = None) -> None:
        super().__init__(responses)
        self._searches = list(searches)

    async def get(
        self,
        url: str,
        params: dict[str, str] | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        if "search.json" in url:
            self.request_log.append(url)
            self.params_log.append(params)
            return self._searches.pop(0)
        return await super().get(url, params, cancel=cancel)


def _isbn_client(**overrides: Any) -> FakeHttpClient:
    responses: dict[str, Any] = {
        "/isbn/": ISBN_RESPONSE,
        "/works/OL456W.json": WORKS_RESPONSE_STR_DESCRIPTION,
        "/authors/": AUTHOR_RESPONSE,
    }
    responses.update(overrides)
    return FakeHttpClient(responses)


class TestOpenLibraryProviderProtocol:
    """Tests that OpenLibraryProvider satisfies MetadataProvider."""

    def test_satisfies_protocol(self) -> None:
        """OpenLibraryProvider implements the MetadataProvider protocol."""
        provider = OpenLibraryProvider(FakeHttpClient())
        assert isinstance(provider, MetadataProvider)

    def test_identity_and_configuration(self) -> None:
        """Name, priority, rate limit and timeouts have catalog defaults."""
        provider = OpenLibraryProvider(FakeHttpClient())
        assert provider.name == "openlibrary"
        assert provider.priority == 80
        assert provider.rate_limit.max_requests == 100
        assert provider.timeout.operation_timeout == 30.0

    def test_reliability_scores(self) -> None:
        """ISBNs are the most reliable field Open Library reports."""
        provider = OpenLibraryProvider(FakeHttpClient())
        assert provider.get_reliability_score(MetadataType.ISBN) == 0.95
        assert provider.get_reliability_score(MetadataType.TITLE) == 0.85
        assert provider.supports_data_type(MetadataType.TITLE)


class TestSearchByIsbn:
    """Tests for ISBN-based lookup."""

    async def test_isbn_lookup_enriches_record(self) -> None:
        """ISBN lookup returns one record enriched from works and authors."""
        client = _isbn_client()
        [record] = await OpenLibraryProvider(client).search_by_isbn("978-0-15-600131-1")

        assert client.request_log[0] == "https://openlibrary.org/isbn/9780156001311.json"
        assert record.title == "The Name of the Rose"
        assert record.authors == ("Umberto Eco",)
        assert record.description == _DESCRIPTION
        assert record.subjects == ("Mystery", "Historical fiction")
        assert record.source == "openlibrary"
        assert record.confidence == 0.95

    async def test_not_found_is_empty(self) -> None:
        """An unknown ISBN (HTTP 404) yields no records."""
        client = FakeHttpClient({"/isbn/": MetadataFetchError("HTTP 404", status_code=404)})
        assert await OpenLibraryProvider(client).search_by_isbn("9780156001311") == []

    async def test_server_error_propagates(self) -> None:
        """Other failures reach the caller."""
        client = FakeHttpClient({"/isbn/": MetadataFetchError("HTTP 500", status_code=500)})
        with pytest.raises(MetadataFetchError):
            await OpenLibraryProvider(client).search_by_isbn("9780156001311")

    async def test_enrichment_failure_keeps_record(self) -> None:
        """A failing works request leaves the edition data intact."""
        client = _isbn_client(**{"/works/OL456W.json": MetadataFetchError("HTTP 503", status_code=503)})
        [record] = await OpenLibraryProvider(client).search_by_isbn("9780156001311")
        assert record.title == "The Name of the Rose"
        assert record.description is None
        assert record.authors == ("Umberto Eco",)

    async def test_cancel_event_is_forwarded(self) -> None:
        """The cancel event reaches the HTTP client."""
        seen: list[object] = []

        class RecordingClient(FakeHttpClient):
            async def get(
                self, url: str, params: dict[str, str] | None = None, *, cancel: asyncio.Event | None = None
            ) -> dict[str, Any]:
                seen.append(cancel)
                return await super().get(url, params, cancel=cancel)

        cancel = asyncio.Event()
        await OpenLibraryProvider(RecordingClient({"/isbn/": ISBN_RESPONSE})).search_by_isbn(
            "9780156001311", cancel=cancel
        )
        assert seen and all(c is cancel for c in seen)


class TestSearchByTitle:
    """Tests for title search."""

    async def test_title_search_scores_and_sorts(self) -> None:
        """Hits are scored against the query and sorted best first."""
        client = FakeHttpClient(
            {"search.json": SEARCH_RESPONSE, "/works/OL456W.json": WORKS_RESPONSE_STR_DESCRIPTION}
        )
        records = await OpenLibraryProvider(client).search_by_title(TitleQuery("The Name of the Rose"))

        assert [r.title for r in records] == [
            "The Name of the Rose",
            "The Name of the Rose: including Postscript",
        ]
        assert records[0].confidence > records[1].confidence
        assert records[0].description == _DESCRIPTION
        assert client.params_log[0] == {"title": "The Name of the Rose", "limit": "5"}

    async def test_subtitle_retry(self) -> None:
        """An empty result is retried without the subtitle."""
        client = SequencedHttpClient([SEARCH_RESPONSE_EMPTY, SEARCH_RESPONSE])
        records = await OpenLibraryProvider(client).search_by_title(
            TitleQuery("The Name of the Rose: A Novel")
        )
        assert records
        assert [p["title"] for p in client.params_log if p] == [
            "The Name of the Rose: A Novel",
            "The Name of the Rose",
        ]

    async def test_exact_match_filters(self) -> None:
        """Exact matching keeps only titles equal to the query."""
        client = FakeHttpClient({"search.json": SEARCH_RESPONSE})
        records = await OpenLibraryProvider(client).search_by_title(
            TitleQuery("the name of the rose", exact_match=True)
        )
        assert [r.id for r in records] == ["openlibrary:/works/OL456W"]

    async def test_no_results(self) -> None:
        """An empty search without a subtitle returns nothing."""
        client = FakeHttpClient({"search.json": SEARCH_RESPONSE_EMPTY})
        assert await OpenLibraryProvider(client).search_by_title(TitleQuery("Nothing")) == []
        assert len(client.request_log) == 1


class TestOtherSearches:
    """Tests for creator and multi-criteria searches."""

    async def test_creator_search(self) -> None:
        """Creator searches use the author parameter."""
        client = FakeHttpClient({"search.json": SEARCH_RESPONSE})
        records = await OpenLibraryProvider(client).search_by_creator(CreatorQuery("Umberto Eco"))
        assert len(records) == 2
        assert client.params_log[0] == {"author": "Umberto Eco", "limit": "5"}

    async def test_multi_criteria_prefers_isbn(self) -> None:
        """An ISBN in the query goes to the ISBN endpoint."""
        client = _isbn_client()
        records = await OpenLibraryProvider(client).search_multi_criteria(
            MultiCriteriaQuery(isbn="9780156001311", title="ignored")
        )
        assert len(records) == 1
        assert "/isbn/" in client.request_log[0]

    async def test_multi_criteria_params_and_year_range(self) -> None:
        """Criteria become search params and the year range filters hits."""
        client = FakeHttpClient({"search.json": SEARCH_RESPONSE})
        records = await OpenLibraryProvider(client).search_multi_criteria(
            MultiCriteriaQuery(
                title="The Name of the Rose",
                authors=("Umberto Eco",),
                language="eng",
                year_range=(1982, 1990),
            )
        )
        assert client.params_log[0] == {
            "title": "The Name of the Rose",
            "author": "Umberto Eco",
            "language": "eng",
            "limit": "5",
        }
        assert [r.publication_date for r in records] == ["1983"]

    async def test_empty_criteria(self) -> None:
        """A query with no criteria sends no request."""
        client = FakeHttpClient()
        assert await OpenLibraryProvider(client).search_multi_criteria(MultiCriteriaQuery()) == []
        assert client.request_log == []

    async def test_editions_fill_missing_isbn(self) -> None:
        """Hits without ISBN or publisher are completed from the best edition."""
        client = FakeHttpClient({"editions.json": EDITIONS_RESPONSE, "search.json": SEARCH_RESPONSE_MINIMAL})
        [record] = await OpenLibraryProvider(client).search_by_title(TitleQuery("Minimal Book"))
        assert record.isbn == ("0156001314",)
        assert record.publisher == "Harcourt"
