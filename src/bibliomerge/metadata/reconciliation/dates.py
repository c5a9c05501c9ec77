# ABOUTME: DateReconciler picks the most precise, most reliable publication date across sources.
# ABOUTME: Confidence scales source reliability by date precision and year plausibility.

import logging
from collections.abc import Sequence

from bibliomerge.metadata.dates import (
    PublicationDate,
    is_plausible_year,
    parse_date_string,
    precision_rank,
    validate_publication_date,
)
from bibliomerge.metadata.reconciliation.types import (
    Conflict,
    MetadataSource,
    ReconciledField,
    ReconciliationError,
    SourcedValue,
)

logger = logging.getLogger(__name__)

_PRECISION_FACTORS = {"day": 1.0, "month": 0.9, "year": 0.8, "unknown": 0.3}
_IMPLAUSIBLE_YEAR_FACTOR = 0.5
_ALL_UNKNOWN_CONFIDENCE = 0.1


class DateReconciler:
    """Reconciles publication dates reported by several sources."""

    def normalize_date(self, value: str | PublicationDate | None) -> PublicationDate:
        """Parse a raw string, or validate an already-structured date."""
        if isinstance(value, PublicationDate):
            return validate_publication_date(value)
        return parse_date_string(value)

    def calculate_confidence(self, value: PublicationDate, source: MetadataSource) -> float:
        """Reliability x precision factor x plausibility factor, clamped to [0, 1]."""
        confidence = source.reliability * _PRECISION_FACTORS[value.precision]
        if not is_plausible_year(value.year):
            confidence *= _IMPLAUSIBLE_YEAR_FACTOR
        return max(0.0, min(1.0, confidence))

    def reconcile(
        self, inputs: Sequence[SourcedValue[str | PublicationDate | None]]
    ) -> ReconciledField[PublicationDate]:
        """Choose the finest-precision date, breaking ties by source reliability.

        Raises:
            ReconciliationError: If inputs is empty.
        """
        if not inputs:
            raise ReconciliationError("No publication dates to reconcile")

        if len(inputs) == 1:
            only = inputs[0]
            value = self.normalize_date(only.value)
            return ReconciledField(
                value=value,
                confidence=self.calculate_confidence(value, only.source),
                sources=(only.source,),
                reasoning="Single source",
            )

        normalized = [
            SourcedValue(self.normalize_date(item.value), item.source) for item in inputs
        ]
        candidates = sorted(
            (item for item in normalized if item.value.precision != "unknown"),
            key=lambda item: (-precision_rank(item.value.precision), -item.source.reliability),
        )

        if not candidates:
            return ReconciledField(
                value=normalized[0].value,
                confidence=_ALL_UNKNOWN_CONFIDENCE,
                sources=(normalized[0].source,),
                reasoning="All dates have unknown precision, using first available",
            )

        # One representative per distinct date, keeping the most reliable source.
        distinct: dict[str, SourcedValue[PublicationDate]] = {}
        for candidate in candidates:
            key = candidate.value.key
            existing = distinct.get(key)
            if existing is None or existing.source.reliability < candidate.source.reliability:
                distinct[key] = candidate

        conflicts: tuple[Conflict, ...] = ()
        if len(distinct) > 1:
            conflicts = (
                Conflict(
                    field="publication_date",
                    values=tuple(distinct.values()),
                    resolution="Preferred most specific date from most reliable source",
                ),
            )
            logger.debug("Date conflict across %d distinct values", len(distinct))

        best = candidates[0]
        if conflicts:
            reasoning = "Resolved conflict by preferring most specific date from most reliable source"
        else:
            reasoning = "Selected most specific date from most reliable source"

        return ReconciledField(
            value=best.value,
            confidence=self.calculate_confidence(best.value, best.source),
            sources=(best.source,),
            conflicts=conflicts,
            reasoning=reasoning,
        )
