# ABOUTME: PublicationReconciler reconciles date, publisher and place of publication together.
# ABOUTME: Each part runs through its own reconciler; missing parts come back empty at zero confidence.

from collections.abc import Sequence
from dataclasses import dataclass

from bibliomerge.metadata.dates import PublicationDate
from bibliomerge.metadata.reconciliation.dates import DateReconciler
from bibliomerge.metadata.reconciliation.places import PlaceReconciler
from bibliomerge.metadata.reconciliation.publishers import PublisherReconciler
from bibliomerge.metadata.reconciliation.types import (
    Conflict,
    MetadataSource,
    Publisher,
    PublicationPlace,
    ReconciledField,
    ReconciliationError,
    SourcedValue,
)

_DATE_WEIGHT = 0.4
_PUBLISHER_WEIGHT = 0.4
_PLACE_WEIGHT = 0.2


@dataclass(frozen=True)
class PublicationInput:
    """Publication details one source reported."""

    source: MetadataSource
    date: str | PublicationDate | None = None
    publisher: str | Publisher | None = None
    place: str | PublicationPlace | None = None


@dataclass(frozen=True)
class ReconciledPublication:
    date: ReconciledField[PublicationDate]
    publisher: ReconciledField[Publisher]
    place: ReconciledField[PublicationPlace]

    @property
    def overall_confidence(self) -> float:
        """Date and publisher weigh 0.4 each, place 0.2."""
        weighted = (
            self.date.confidence * _DATE_WEIGHT
            + self.publisher.confidence * _PUBLISHER_WEIGHT
            + self.place.confidence * _PLACE_WEIGHT
        )
        return max(0.0, min(1.0, weighted))

    @property
    def conflicts(self) -> tuple[Conflict, ...]:
        return (*self.date.conflicts, *self.publisher.conflicts, *self.place.conflicts)

    @property
    def sources(self) -> tuple[MetadataSource, ...]:
        """Every contributing source once, by name, in first-seen order."""
        seen: dict[str, MetadataSource] = {}
        for item in (self.date, self.publisher, self.place):
            for source in item.sources:
                seen.setdefault(source.name, source)
        return tuple(seen.values())


def _present(value: object) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, PublicationDate):
        return bool(value.raw.strip()) or value.year is not None
    if isinstance(value, (Publisher, PublicationPlace)):
        return bool(value.name.strip())
    return value is not None


def _missing(value: object, part: str) -> ReconciledField:
    return ReconciledField(value=value, confidence=0.0, reasoning=f"No {part} information available")


class PublicationReconciler:
    """Runs the date, publisher and place reconcilers over one set of sources."""

    def __init__(self) -> None:
        self.dates = DateReconciler()
        self.publishers = PublisherReconciler()
        self.places = PlaceReconciler()

    def reconcile(self, inputs: Sequence[PublicationInput]) -> ReconciledPublication:
        """Reconcile each publication part independently.

        Raises:
            ReconciliationError: If inputs is empty.
        """
        if not inputs:
            raise ReconciliationError("No publication information to reconcile")

        dates = [SourcedValue(i.date, i.source) for i in inputs if _present(i.date)]
        publishers = [SourcedValue(i.publisher, i.source) for i in inputs if _present(i.publisher)]
        places = [SourcedValue(i.place, i.source) for i in inputs if _present(i.place)]

        return ReconciledPublication(
            date=self.dates.reconcile(dates) if dates else _missing(PublicationDate(raw=""), "date"),
            publisher=(
                self.publishers.reconcile(publishers) if publishers else _missing(Publisher(name=""), "publisher")
            ),
            place=self.places.reconcile(places) if places else _missing(PublicationPlace(name=""), "place"),
        )
