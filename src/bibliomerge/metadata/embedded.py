# ABOUTME: Metadata provider that answers queries from the metadata embedded in a local EPUB.
# ABOUTME: Lets a file's own OPF data take part in aggregation alongside online catalogs.

import asyncio
import logging
from pathlib import Path

from bibliomerge.formats.epub import EMBEDDED_CONFIDENCE, read_epub_metadata
from bibliomerge.metadata.cleanup import clean_record, split_concatenated
from bibliomerge.metadata.names import are_names_equivalent
from bibliomerge.metadata.normalization import normalize_isbn, normalize_title
from bibliomerge.metadata.provider import (
    BASIC_DATA_TYPES,
    DEFAULT_FIELD_RELIABILITY,
    CreatorQuery,
    MetadataType,
    MultiCriteriaQuery,
    RateLimitConfig,
    TimeoutConfig,
    TitleQuery,
)
from bibliomerge.metadata.similarity import string_similarity
from bibliomerge.metadata.types import MetadataRecord

logger = logging.getLogger(__name__)

# Minimum normalized title similarity for a non-exact title query to match the file.
_FUZZY_MATCH_THRESHOLD = 0.8


class EmbeddedMetadataProvider:
    """Provider over one EPUB file.

    The file is read once, lazily, in a worker thread. Read errors propagate
    as EpubReadError so the aggregator records them against this provider.
    Queries that do not describe the file return an empty list.
    """

    def __init__(self, path: Path, *, confidence: float = EMBEDDED_CONFIDENCE) -> None:
        self.path = path
        self._confidence = confidence
        self._record: MetadataRecord | None = None
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return f"epub:{self.path.name}"

    @property
    def priority(self) -> int:
        return 10

    @property
    def rate_limit(self) -> RateLimitConfig:
        return RateLimitConfig(max_requests=1000, window=1.0, request_delay=0.0)

    @property
    def timeout(self) -> TimeoutConfig:
        return TimeoutConfig(request_timeout=5.0, operation_timeout=10.0)

    def get_reliability_score(self, data_type: MetadataType) -> float:
        return DEFAULT_FIELD_RELIABILITY.get(data_type, 0.5) * self._confidence

    def supports_data_type(self, data_type: MetadataType) -> bool:
        return data_type in BASIC_DATA_TYPES or data_type in {
            MetadataType.PUBLISHER,
            MetadataType.SERIES,
        }

    async def record(self) -> MetadataRecord:
        async with self._lock:
            if self._record is None:
                self._record = await asyncio.to_thread(
                    read_epub_metadata, self.path, self._confidence
                )
                logger.debug("Loaded embedded metadata from %s", self.path)
            return self._record

    async def search_by_isbn(
        self, isbn: str, *, cancel: asyncio.Event | None = None
    ) -> list[MetadataRecord]:
        record = await self.record()
        wanted = normalize_isbn(isbn, True)
        if wanted and wanted in {normalize_isbn(i, True) for i in record.isbn}:
            return [record]
        return []

    async def search_by_title(
        self, query: TitleQuery, *, cancel: asyncio.Event | None = None
    ) -> list[MetadataRecord]:
        record = await self.record()
        if not record.title:
            return []
        wanted = normalize_title(query.title)
        # Mangled embedded titles also match by their split and cleaned forms.
        candidates = {
            normalize_title(record.title),
            normalize_title(split_concatenated(record.title)),
            normalize_title(clean_record(record).cleaned.title or record.title),
        }
        if wanted in candidates:
            return [record]
        if query.exact_match:
            return []
        if any(string_similarity(have, wanted) >= _FUZZY_MATCH_THRESHOLD for have in candidates):
            return [record]
        return []

    async def search_by_creator(
        self, query: CreatorQuery, *, cancel: asyncio.Event | None = None
    ) -> list[MetadataRecord]:
        record = await self.record()
        if any(are_names_equivalent(query.name, author) for author in record.authors):
            return [record]
        return []

    async def search_multi_criteria(
        self, query: MultiCriteriaQuery, *, cancel: asyncio.Event | None = None
    ) -> list[MetadataRecord]:
        if query.isbn:
            return await self.search_by_isbn(query.isbn, cancel=cancel)
        if query.title:
            return await self.search_by_title(
                TitleQuery(title=query.title, fuzzy=query.fuzzy), cancel=cancel
            )
        if query.authors:
            return await self.search_by_creator(CreatorQuery(name=query.authors[0]), cancel=cancel)
        return []
