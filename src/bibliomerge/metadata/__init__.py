# ABOUTME: Metadata package for bibliographic aggregation, reconciliation, and representation.
# ABOUTME: Exports the record type, the provider contract, the aggregator, and the conflict/preview stages.

from bibliomerge.metadata.aggregator import (
    AggregatedResult,
    AggregatorOptions,
    InsufficientProvidersError,
    MetadataAggregator,
    ProviderTimeoutError,
    deduplicate_records,
    merge_records,
)
from bibliomerge.metadata.cleanup import CleanupResult, clean_record
from bibliomerge.metadata.confidence import calculate_aggregated_confidence
from bibliomerge.metadata.conflicts import ConflictDetector, ConflictSummary
from bibliomerge.metadata.duplicates import DuplicateDetector, DuplicateMatch
from bibliomerge.metadata.preview import MetadataPreview, PreviewGenerator
from bibliomerge.metadata.provider import (
    CreatorQuery,
    MetadataProvider,
    MetadataType,
    MultiCriteriaQuery,
    TitleQuery,
)
from bibliomerge.metadata.types import MetadataRecord

__all__ = [
    "AggregatedResult",
    "AggregatorOptions",
    "CleanupResult",
    "ConflictDetector",
    "ConflictSummary",
    "DuplicateDetector",
    "DuplicateMatch",
    "CreatorQuery",
    "InsufficientProvidersError",
    "MetadataAggregator",
    "MetadataPreview",
    "MetadataProvider",
    "MetadataRecord",
    "MetadataType",
    "MultiCriteriaQuery",
    "PreviewGenerator",
    "ProviderTimeoutError",
    "TitleQuery",
    "calculate_aggregated_confidence",
    "clean_record",
    "deduplicate_records",
    "merge_records",
]
