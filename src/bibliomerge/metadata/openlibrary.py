# ABOUTME: Open Library metadata provider implementation.
# ABOUTME: Searches openlibrary.org by ISBN, title, creator or combined criteria and returns scored records.

import asyncio
import logging
import re
from dataclasses import replace
from typing import Any

from bibliomerge.metadata.http import HttpClient, MetadataFetchError
from bibliomerge.metadata.normalization import clean_isbn
from bibliomerge.metadata.openlibrary_parser import (
    SOURCE_NAME,
    parse_author_name,
    parse_isbn_response,
    parse_search_results,
    parse_works_response,
    parse_works_subjects,
    select_best_edition,
)
from bibliomerge.metadata.provider import (
    DEFAULT_FIELD_RELIABILITY,
    CreatorQuery,
    MetadataType,
    MultiCriteriaQuery,
    RateLimitConfig,
    TimeoutConfig,
    TitleQuery,
)
from bibliomerge.metadata.scoring import score_match
from bibliomerge.metadata.types import MetadataRecord

logger = logging.getLogger(__name__)

_OL_BASE = "https://openlibrary.org"
_SEARCH_LIMIT = 5
_ENRICH_LIMIT = 3
_ISBN_CONFIDENCE = 0.95

# Matches a colon followed by a space and remaining text (subtitle pattern).
_SUBTITLE_RE = re.compile(r"\s*:\s+.+$")

_RELIABILITY: dict[MetadataType, float] = {
    **DEFAULT_FIELD_RELIABILITY,
    MetadataType.TITLE: 0.85,
    MetadataType.AUTHORS: 0.8,
    MetadataType.ISBN: 0.95,
    MetadataType.PUBLICATION_DATE: 0.7,
    MetadataType.SUBJECTS: 0.7,
    MetadataType.PAGE_COUNT: 0.7,
}


def _strip_subtitle(title: str) -> str | None:
    """Remove subtitle from a title string (text after ": ").

    Returns the stripped title, or None if no subtitle was found or
    stripping would produce an identical or empty string.
    """
    stripped = _SUBTITLE_RE.sub("", title).strip()
    if stripped and stripped != title.strip():
        return stripped
    return None


class OpenLibraryProvider:
    """Metadata provider backed by the Open Library API.

    Supports ISBN lookup (most precise), title, author and combined search.
    Uses a dependency-injected HttpClient for testability. Failed requests
    raise MetadataFetchError so the aggregator records the failure; a
    not-found ISBN (HTTP 404) is an empty result.
    """

    def __init__(
        self,
        http_client: HttpClient,
        *,
        priority: int = 80,
        rate_limit: RateLimitConfig | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> None:
        self._http = http_client
        self._priority = priority
        self._rate_limit = rate_limit or RateLimitConfig(max_requests=100, window=60.0, request_delay=0.1)
        self._timeout = timeout or TimeoutConfig(request_timeout=10.0, operation_timeout=30.0)

    @property
    def name(self) -> str:
        return SOURCE_NAME

    @property
    def priority(self) -> int:
        return self._priority

    @property
    def rate_limit(self) -> RateLimitConfig:
        return self._rate_limit

    @property
    def timeout(self) -> TimeoutConfig:
        return self._timeout

    def get_reliability_score(self, data_type: MetadataType) -> float:
        return _RELIABILITY.get(data_type, 0.5)

    def supports_data_type(self, data_type: MetadataType) -> bool:
        return data_type in _RELIABILITY

    async def search_by_isbn(
        self, isbn: str, *, cancel: asyncio.Event | None = None
    ) -> list[MetadataRecord]:
        """Look up a book by ISBN via the Open Library ISBN endpoint.

        Follows up with works and author endpoints to enrich metadata.
        """
        cleaned = clean_isbn(isbn)
        try:
            data = await self._http.get(f"{_OL_BASE}/isbn/{cleaned}.json", cancel=cancel)
        except MetadataFetchError as exc:
            if exc.status_code == 404:
                logger.info("No Open Library edition for ISBN %s", isbn)
                return []
            raise

        record = parse_isbn_response(data, cleaned, confidence=_ISBN_CONFIDENCE)
        record = await self._enrich_from_works(record, cancel)
        record = await self._enrich_authors(record, cancel)
        return [record]

    async def search_by_title(
        self, query: TitleQuery, *, cancel: asyncio.Event | None = None
    ) -> list[MetadataRecord]:
        """Search Open Library by title.

        If the initial search returns no results and the title contains a
        subtitle (text after ": "), retries with the subtitle stripped unless
        an exact match was requested.
        """
        records = await self._search({"title": query.title}, cancel, title=query.title)
        if not records and not query.exact_match:
            stripped = _strip_subtitle(query.title)
            if stripped:
                records = await self._search({"title": stripped}, cancel, title=stripped)
        if query.exact_match:
            wanted = query.title.strip().lower()
            records = [r for r in records if (r.title or "").strip().lower() == wanted]
        return records

    async def search_by_creator(
        self, query: CreatorQuery, *, cancel: asyncio.Event | None = None
    ) -> list[MetadataRecord]:
        return await self._search({"author": query.name}, cancel, authors=(query.name,))

    async def search_multi_criteria(
        self, query: MultiCriteriaQuery, *, cancel: asyncio.Event | None = None
    ) -> list[MetadataRecord]:
        if query.isbn:
            return await self.search_by_isbn(query.isbn, cancel=cancel)
        params: dict[str, str] = {}
        if query.title:
            params["title"] = query.title
        if query.authors:
            params["author"] = query.authors[0]
        if query.publisher:
            params["publisher"] = query.publisher
        if query.language:
            params["language"] = query.language
        if query.subjects:
            params["subject"] = query.subjects[0]
        if not params:
            return []
        records = await self._search(
            params, cancel, title=query.title, authors=query.authors, language=query.language
        )
        if query.year_range:
            low, high = query.year_range
            records = [
                r
                for r in records
                if not r.publication_date
                or not r.publication_date[:4].isdigit()
                or low <= int(r.publication_date[:4]) <= high
            ]
        return records

    async def _search(
        self,
        params: dict[str, str],
        cancel: asyncio.Event | None,
        *,
        title: str | None = None,
        authors: tuple[str, ...] = (),
        language: str | None = None,
    ) -> list[MetadataRecord]:
        """Execute a single Open Library search query.

        Returns records sorted by confidence descending, with top results
        enriched from the works and editions endpoints.
        """
        data = await self._http.get(
            f"{_OL_BASE}/search.json",
            params={**params, "limit": str(_SEARCH_LIMIT)},
            cancel=cancel,
        )
        records = [
            replace(r, confidence=score_match(r, title=title, authors=authors, language=language))
            for r in parse_search_results(data)
        ]
        records.sort(key=lambda r: r.confidence, reverse=True)

        enriched = []
        for index, record in enumerate(records):
            if index < _ENRICH_LIMIT:
                record = await self._enrich_from_works(record, cancel)
                record = await self._enrich_from_editions(record, cancel)
            enriched.append(record)
        return enriched

    async def _enrich_from_works(
        self, record: MetadataRecord, cancel: asyncio.Event | None
    ) -> MetadataRecord:
        """Fill description and subjects from the works endpoint if available."""
        works_key = record.provider_data.get("work_key")
        if not works_key or (record.description and record.subjects):
            return record
        try:
            works_data = await self._get_optional(f"{_OL_BASE}{works_key}.json", cancel)
        except MetadataFetchError:
            return record
        if works_data is None:
            return record

        updates: dict[str, Any] = {}
        if not record.description:
            updates["description"] = parse_works_response(works_data)
        if not record.subjects:
            updates["subjects"] = parse_works_subjects(works_data)
        if not record.provider_data.get("author_keys"):
            keys = [
                entry.get("author", {}).get("key", "")
                for entry in works_data.get("authors", [])
            ]
            updates["provider_data"] = {**record.provider_data, "author_keys": [k for k in keys if k]}
        return replace(record, **updates)

    async def _enrich_from_editions(
        self, record: MetadataRecord, cancel: asyncio.Event | None
    ) -> MetadataRecord:
        """Fill missing ISBN and publisher from the best available edition."""
        if record.isbn and record.publisher:
            return record
        works_key = record.provider_data.get("work_key")
        if not works_key:
            return record
        try:
            editions_data = await self._get_optional(f"{_OL_BASE}{works_key}/editions.json", cancel)
        except MetadataFetchError:
            return record
        if editions_data is None:
            return record
        best = select_best_edition(editions_data.get("entries", []))
        if not best:
            return record
        updates: dict[str, Any] = {}
        if not record.isbn and best["isbn"]:
            updates["isbn"] = (best["isbn"],)
        if not record.publisher and best["publisher"]:
            updates["publisher"] = best["publisher"]
        return replace(record, **updates)

    async def _enrich_authors(
        self, record: MetadataRecord, cancel: asyncio.Event | None
    ) -> MetadataRecord:
        """Fetch author names from the authors endpoint."""
        authors: list[str] = []
        for author_key in record.provider_data.get("author_keys", []):
            try:
                author_data = await self._get_optional(f"{_OL_BASE}{author_key}.json", cancel)
            except MetadataFetchError:
                continue
            if author_data is not None:
                authors.append(parse_author_name(author_data))
        if authors:
            return replace(record, authors=tuple(authors))
        return record

    async def _get_optional(self, url: str, cancel: asyncio.Event | None) -> dict[str, Any] | None:
        """GET that treats 404 as missing data instead of a failure."""
        try:
            return await self._http.get(url, cancel=cancel)
        except MetadataFetchError as exc:
            if exc.status_code == 404:
                return None
            logger.warning("Enrichment request failed for %s: %s", url, exc)
            raise
