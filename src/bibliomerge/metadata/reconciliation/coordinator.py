# ABOUTME: ReconciliationCoordinator turns provider MetadataRecords into per-domain reconciler inputs.
# ABOUTME: Runs each enabled reconciler and reports overall confidence and reconciliation stats.

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from bibliomerge.metadata.dates import PublicationDate
from bibliomerge.metadata.reconciliation.authors import AuthorReconciler
from bibliomerge.metadata.reconciliation.content import ContentInput, ContentReconciler, ReconciledContent
from bibliomerge.metadata.reconciliation.identifiers import IdentifierInput, IdentifierReconciler
from bibliomerge.metadata.reconciliation.physical import PhysicalInput, PhysicalReconciler, ReconciledPhysical
from bibliomerge.metadata.reconciliation.publication import PublicationInput, PublicationReconciler
from bibliomerge.metadata.reconciliation.series import SeriesReconciler
from bibliomerge.metadata.reconciliation.subjects import SubjectInput, SubjectReconciler
from bibliomerge.metadata.reconciliation.types import (
    CoverImageChoice,
    Description,
    FormatInfo,
    Identifier,
    MetadataSource,
    Publisher,
    PublicationPlace,
    ReconciledField,
    Series,
    SourcedValue,
    Subject,
)
from bibliomerge.metadata.types import MetadataRecord, PhysicalDimensions

logger = logging.getLogger(__name__)

_SOURCE_BONUS_STEP = 0.02
_SOURCE_BONUS_CAP = 0.1


@dataclass(frozen=True)
class CoordinatorConfig:
    """Which domain reconcilers run."""

    reconcile_dates: bool = True
    reconcile_publishers: bool = True
    reconcile_places: bool = True
    reconcile_authors: bool = True
    reconcile_series: bool = True
    reconcile_identifiers: bool = True
    reconcile_subjects: bool = True
    reconcile_physical: bool = True
    reconcile_content: bool = True


@dataclass(frozen=True)
class ReconciliationStats:
    total_sources: int
    fields_reconciled: int
    conflicts_detected: int
    conflicts_resolved: int
    processing_time: float


@dataclass(frozen=True)
class ReconciledMetadata:
    """Every reconciled field for one work, plus overall confidence and stats."""

    publication_date: ReconciledField[PublicationDate]
    publisher: ReconciledField[Publisher]
    publication_place: ReconciledField[PublicationPlace]
    authors: ReconciledField[tuple[str, ...]]
    series: ReconciledField[tuple[Series, ...]]
    identifiers: ReconciledField[tuple[Identifier, ...]]
    subjects: ReconciledField[tuple[Subject, ...]]
    physical: ReconciledPhysical
    content: ReconciledContent
    overall_confidence: float
    stats: ReconciliationStats


def _empty(value: object) -> ReconciledField:
    return ReconciledField(value=value, confidence=0.0, reasoning="No data available")


def _empty_physical() -> ReconciledPhysical:
    return ReconciledPhysical(
        page_count=_empty(0),
        dimensions=_empty(PhysicalDimensions()),
        format=_empty(FormatInfo()),
        languages=_empty(()),
        weight=_empty(0),
    )


def _empty_content() -> ReconciledContent:
    return ReconciledContent(
        description=_empty(Description(text="")),
        cover_image=_empty(CoverImageChoice(url="")),
    )


def calculate_overall_confidence(confidences: Sequence[float]) -> float:
    """Mean of the positive confidences plus a small bonus per contributing field."""
    valid = [c for c in confidences if c > 0]
    if not valid:
        return 0.0
    bonus = min(_SOURCE_BONUS_CAP, len(valid) * _SOURCE_BONUS_STEP)
    return min(1.0, sum(valid) / len(valid) + bonus)


class ReconciliationCoordinator:
    """Runs every enabled domain reconciler over a set of provider records.

    Each record becomes one MetadataSource whose reliability is the record's
    own confidence. Reconcilers are stateless and shared between calls.
    """

    def __init__(self, config: CoordinatorConfig | None = None) -> None:
        self.config = config or CoordinatorConfig()
        self._publication = PublicationReconciler()
        self._authors = AuthorReconciler()
        self._series = SeriesReconciler()
        self._identifiers = IdentifierReconciler()
        self._subjects = SubjectReconciler()
        self._physical = PhysicalReconciler()
        self._content = ContentReconciler()

    def reconcile(self, records: Sequence[MetadataRecord]) -> ReconciledMetadata:
        started = time.monotonic()
        config = self.config
        pairs = [(record, _source_for(record)) for record in records]

        publication = [
            PublicationInput(
                source=s,
                date=r.publication_date if config.reconcile_dates else None,
                publisher=r.publisher if config.reconcile_publishers else None,
                place=r.publication_place if config.reconcile_places else None,
            )
            for r, s in pairs
        ]
        authors = [SourcedValue(r.authors, s) for r, s in pairs if r.authors]
        series = [
            SourcedValue((Series(name=r.series.name, volume=r.series.volume),), s)
            for r, s in pairs
            if r.series and r.series.name
        ]
        identifiers = [IdentifierInput(source=s, isbn=r.isbn) for r, s in pairs if r.isbn]
        subjects = [SubjectInput(source=s, subjects=r.subjects) for r, s in pairs if r.subjects]
        physical = [
            PhysicalInput(
                source=s,
                page_count=r.page_count,
                dimensions=r.physical_dimensions,
                format=r.edition,
                languages=r.language,
            )
            for r, s in pairs
        ]
        content = [
            ContentInput(
                source=s,
                descriptions=(r.description,) if r.description else (),
                cover_images=(_cover_choice(r),) if r.cover_image else (),
            )
            for r, s in pairs
            if r.description or r.cover_image
        ]

        if publication:
            result_publication = self._publication.reconcile(publication)
            result_date = result_publication.date
            result_publisher = result_publication.publisher
            result_place = result_publication.place
        else:
            result_date = _empty(PublicationDate(raw=""))
            result_publisher = _empty(Publisher(name=""))
            result_place = _empty(PublicationPlace(name=""))
        result_authors = self._authors.reconcile(authors) if config.reconcile_authors and authors else _empty(())
        result_series = self._series.reconcile(series) if config.reconcile_series and series else _empty(())
        result_identifiers = (
            self._identifiers.reconcile(identifiers)
            if config.reconcile_identifiers and identifiers
            else _empty(())
        )
        result_subjects = (
            self._subjects.reconcile(subjects) if config.reconcile_subjects and subjects else _empty(())
        )
        result_physical = (
            self._physical.reconcile(physical) if config.reconcile_physical and physical else _empty_physical()
        )
        result_content = (
            self._content.reconcile(content) if config.reconcile_content and content else _empty_content()
        )

        overall = calculate_overall_confidence(
            [
                result_publisher.confidence,
                result_date.confidence,
                result_place.confidence,
                result_authors.confidence,
                result_subjects.confidence,
                result_identifiers.confidence,
                result_physical.page_count.confidence,
                result_content.description.confidence,
            ]
        )

        fields = [
            result_date,
            result_publisher,
            result_place,
            result_authors,
            result_series,
            result_identifiers,
            result_subjects,
            *_physical_fields(result_physical),
            result_content.description,
            result_content.cover_image,
        ]
        conflicts = [conflict for f in fields for conflict in f.conflicts]
        stats = ReconciliationStats(
            total_sources=len(records),
            fields_reconciled=sum(1 for f in fields if f.confidence > 0),
            conflicts_detected=len(conflicts),
            conflicts_resolved=sum(1 for c in conflicts if c.resolution),
            processing_time=time.monotonic() - started,
        )
        logger.debug(
            "Reconciled %d field(s) from %d record(s), %d conflict(s), overall %.3f",
            stats.fields_reconciled,
            stats.total_sources,
            stats.conflicts_detected,
            overall,
        )
        return ReconciledMetadata(
            publication_date=result_date,
            publisher=result_publisher,
            publication_place=result_place,
            authors=result_authors,
            series=result_series,
            identifiers=result_identifiers,
            subjects=result_subjects,
            physical=result_physical,
            content=result_content,
            overall_confidence=overall,
            stats=stats,
        )


def _physical_fields(physical: ReconciledPhysical) -> list[ReconciledField]:
    return [physical.page_count, physical.dimensions, physical.format, physical.languages, physical.weight]


def _source_for(record: MetadataRecord) -> MetadataSource:
    return MetadataSource(
        name=record.provider or record.source,
        reliability=record.confidence,
        timestamp=record.timestamp,
    )


def _cover_choice(record: MetadataRecord) -> CoverImageChoice:
    cover = record.cover_image
    return CoverImageChoice(url=cover.url, width=cover.width, height=cover.height, source=record.source)


def reconcile_records(records: Sequence[MetadataRecord], config: CoordinatorConfig | None = None) -> ReconciledMetadata:
    """Reconcile records with a one-off coordinator."""
    return ReconciliationCoordinator(config).reconcile(records)
