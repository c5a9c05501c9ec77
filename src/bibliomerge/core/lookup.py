# ABOUTME: Lookup pipeline: fan a query out to providers, then reconcile, check conflicts and preview.
# ABOUTME: Glues the aggregator to the reconciliation engine for the CLI and other callers.

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from bibliomerge.metadata.aggregator import AggregatedResult, AggregatorOptions, MetadataAggregator
from bibliomerge.metadata.cleanup import needs_cleanup, split_concatenated
from bibliomerge.metadata.conflicts import ConflictDetector, ConflictSummary
from bibliomerge.metadata.duplicates import DuplicateDetector, DuplicateMatch, entry_from_record
from bibliomerge.metadata.embedded import EmbeddedMetadataProvider
from bibliomerge.metadata.http import HttpClient
from bibliomerge.metadata.normalization import normalize_isbn
from bibliomerge.metadata.openlibrary import OpenLibraryProvider
from bibliomerge.metadata.preview import LibraryEntry, MetadataPreview, PreviewGenerator
from bibliomerge.metadata.provider import MetadataProvider, MultiCriteriaQuery, TitleQuery
from bibliomerge.metadata.reconciliation import ReconciledMetadata, ReconciliationCoordinator
from bibliomerge.metadata.types import MetadataRecord

logger = logging.getLogger(__name__)


@dataclass
class LookupResult:
    """Everything one lookup produced.

    ``selected`` is the best aggregated result; the reconciliation, conflict
    and preview fields describe the records merged into it and are None when
    no provider returned anything. ``duplicates`` lists library entries that
    may already hold the selected book.
    """

    aggregated: AggregatedResult
    selected: MetadataRecord | None = None
    reconciled: ReconciledMetadata | None = None
    conflicts: ConflictSummary | None = None
    preview: MetadataPreview | None = None
    duplicates: list[DuplicateMatch] = field(default_factory=list)


def build_providers(
    *,
    http_client: HttpClient | None = None,
    epub_paths: Sequence[Path] = (),
) -> list[MetadataProvider]:
    """Build the provider set for a lookup.

    Open Library is registered first when an HTTP client is given, so it
    wins registration-order tie-breaks over embedded metadata.
    """
    providers: list[MetadataProvider] = []
    if http_client is not None:
        providers.append(OpenLibraryProvider(http_client))
    providers.extend(EmbeddedMetadataProvider(path) for path in epub_paths)
    return providers


def is_isbn_query(text: str) -> bool:
    return normalize_isbn(text.strip(), True) is not None


def clean_title_query(text: str) -> str:
    """Split mangled titles ("TheTemplarLegacy") into words; leave clean ones alone."""
    text = text.strip()
    if needs_cleanup(text):
        cleaned = split_concatenated(text)
        logger.info("Cleaned title query %r -> %r", text, cleaned)
        return cleaned
    return text


def select_result(results: Sequence[MetadataRecord]) -> MetadataRecord | None:
    """Highest-confidence result; the earliest wins ties."""
    best: MetadataRecord | None = None
    for record in results:
        if best is None or record.confidence > best.confidence:
            best = record
    return best


class LookupService:
    """Runs aggregation and the reconciliation stages over its result."""

    def __init__(
        self,
        providers: Sequence[MetadataProvider],
        *,
        options: AggregatorOptions | None = None,
        coordinator: ReconciliationCoordinator | None = None,
        conflict_detector: ConflictDetector | None = None,
        preview_generator: PreviewGenerator | None = None,
        library: Sequence[LibraryEntry] = (),
        duplicate_detector: DuplicateDetector | None = None,
    ) -> None:
        self.aggregator = MetadataAggregator(providers, options=options)
        self.coordinator = coordinator or ReconciliationCoordinator()
        self.conflict_detector = conflict_detector or ConflictDetector()
        self.preview_generator = preview_generator or PreviewGenerator(
            conflict_detector=self.conflict_detector
        )
        self.library = list(library)
        self.duplicate_detector = duplicate_detector or DuplicateDetector()

    async def lookup(self, query: str | MultiCriteriaQuery) -> LookupResult:
        """Look a work up by ISBN, title or combined criteria.

        A plain string that validates as an ISBN is an ISBN search; any other
        string is a title search after mangled-title cleanup.

        Raises:
            InsufficientProvidersError: If fewer providers answered than
                the aggregator's quorum.
        """
        if isinstance(query, MultiCriteriaQuery):
            aggregated = await self.aggregator.search_multi_criteria(query)
        elif is_isbn_query(query):
            aggregated = await self.aggregator.search_by_isbn(query.strip())
        else:
            aggregated = await self.aggregator.search_by_title(
                TitleQuery(title=clean_title_query(query))
            )
        return self.reconcile(aggregated)

    def reconcile(self, aggregated: AggregatedResult) -> LookupResult:
        selected = select_result(aggregated.results)
        if selected is None:
            logger.info("No provider returned a record")
            return LookupResult(aggregated=aggregated)

        records = list(selected.merged_from or (selected,))
        reconciled = self.coordinator.reconcile(records)
        conflicts = self.conflict_detector.analyze_records(records)
        preview = self.preview_generator.generate_preview(records, reconciled)
        duplicates = (
            self.duplicate_detector.detect_duplicates(entry_from_record(selected), self.library)
            if self.library
            else []
        )
        logger.debug(
            "Reconciled %d record(s): confidence %.3f, %d conflict(s)",
            len(records),
            reconciled.overall_confidence,
            conflicts.total_conflicts,
        )
        return LookupResult(
            aggregated=aggregated,
            selected=selected,
            reconciled=reconciled,
            conflicts=conflicts,
            preview=preview,
            duplicates=duplicates,
        )
