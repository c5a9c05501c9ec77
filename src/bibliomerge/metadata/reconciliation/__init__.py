# ABOUTME: Domain reconcilers that merge one semantic field reported by many sources.
# ABOUTME: Exports each reconciler, the shared value types, and the coordinator.

from bibliomerge.metadata.reconciliation.authors import AuthorReconciler
from bibliomerge.metadata.reconciliation.content import ContentReconciler
from bibliomerge.metadata.reconciliation.coordinator import (
    CoordinatorConfig,
    ReconciledMetadata,
    ReconciliationCoordinator,
    reconcile_records,
)
from bibliomerge.metadata.reconciliation.dates import DateReconciler
from bibliomerge.metadata.reconciliation.identifiers import IdentifierReconciler
from bibliomerge.metadata.reconciliation.physical import PhysicalReconciler
from bibliomerge.metadata.reconciliation.places import PlaceReconciler
from bibliomerge.metadata.reconciliation.publication import (
    PublicationInput,
    PublicationReconciler,
    ReconciledPublication,
)
from bibliomerge.metadata.reconciliation.publishers import PublisherReconciler
from bibliomerge.metadata.reconciliation.series import SeriesReconciler
from bibliomerge.metadata.reconciliation.subjects import SubjectReconciler
from bibliomerge.metadata.reconciliation.types import (
    Conflict,
    MetadataSource,
    PublicationPlace,
    ReconciledField,
    ReconciliationError,
    SourcedValue,
)

__all__ = [
    "AuthorReconciler",
    "Conflict",
    "ContentReconciler",
    "CoordinatorConfig",
    "DateReconciler",
    "IdentifierReconciler",
    "MetadataSource",
    "PhysicalReconciler",
    "PlaceReconciler",
    "PublicationInput",
    "PublicationPlace",
    "PublicationReconciler",
    "PublisherReconciler",
    "ReconciledField",
    "ReconciledMetadata",
    "ReconciledPublication",
    "ReconciliationCoordinator",
    "ReconciliationError",
    "SeriesReconciler",
    "SourcedValue",
    "SubjectReconciler",
    "reconcile_records",
]
