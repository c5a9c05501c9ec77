# ABOUTME: AuthorReconciler clusters author name variants into equivalence classes across sources.
# ABOUTME: Each class is represented by its preferred display form in the reconciled list.

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from bibliomerge.metadata.names import are_names_equivalent, get_preferred_name_format
from bibliomerge.metadata.reconciliation.types import (
    Conflict,
    MetadataSource,
    ReconciledField,
    ReconciliationError,
    SourcedValue,
)

logger = logging.getLogger(__name__)

_EMPTY_CONFIDENCE = 0.1


@dataclass
class _NameClass:
    variants: list[str] = field(default_factory=list)
    sources: list[MetadataSource] = field(default_factory=list)

    def matches(self, name: str) -> bool:
        return any(are_names_equivalent(name, variant) for variant in self.variants)

    def add(self, name: str, source: MetadataSource) -> None:
        if name not in self.variants:
            self.variants.append(name)
        if source not in self.sources:
            self.sources.append(source)


class AuthorReconciler:
    """Reconciles author lists reported by several sources."""

    def reconcile(self, inputs: Sequence[SourcedValue[Sequence[str]]]) -> ReconciledField[tuple[str, ...]]:
        """Union the author equivalence classes of every source.

        Names from more reliable sources are placed first so they seed the
        classes and fix the output order. A class's confidence is the share
        of total source reliability that reported it; the field confidence
        is the mean over classes.

        Raises:
            ReconciliationError: If inputs is empty.
        """
        if not inputs:
            raise ReconciliationError("No author lists to reconcile")

        reporting = [
            SourcedValue(tuple(n.strip() for n in item.value if n and n.strip()), item.source)
            for item in inputs
            if item.value
        ]
        reporting = [item for item in reporting if item.value]
        if not reporting:
            return ReconciledField(
                value=(),
                confidence=_EMPTY_CONFIDENCE,
                sources=tuple(item.source for item in inputs),
                reasoning="No author information available",
            )

        if len(reporting) == 1:
            only = reporting[0]
            classes = self._classify([only])
            return ReconciledField(
                value=tuple(get_preferred_name_format(c.variants) for c in classes),
                confidence=only.source.reliability,
                sources=(only.source,),
                reasoning="Single source author list",
            )

        ranked = sorted(reporting, key=lambda item: -item.source.reliability)
        classes = self._classify(ranked)
        total_reliability = sum(item.source.reliability for item in ranked)
        if total_reliability > 0:
            support = [sum(s.reliability for s in c.sources) / total_reliability for c in classes]
        else:
            support = [len(c.sources) / len(ranked) for c in classes]
        confidence = max(0.0, min(1.0, sum(support) / len(support)))

        conflicts: tuple[Conflict, ...] = ()
        class_sets = {
            frozenset(i for i, c in enumerate(classes) if item.source in c.sources) for item in ranked
        }
        if len(class_sets) > 1:
            conflicts = (
                Conflict(
                    field="authors",
                    values=tuple(ranked),
                    resolution="Included the union of all author equivalence classes",
                ),
            )

        logger.debug("Reconciled %d author(s) from %d source(s)", len(classes), len(ranked))
        return ReconciledField(
            value=tuple(get_preferred_name_format(c.variants) for c in classes),
            confidence=confidence,
            sources=tuple(item.source for item in ranked),
            conflicts=conflicts,
            reasoning=f"Merged {len(classes)} author(s) from {len(ranked)} sources",
        )

    def _classify(self, inputs: Sequence[SourcedValue[tuple[str, ...]]]) -> list[_NameClass]:
        classes: list[_NameClass] = []
        for item in inputs:
            for name in item.value:
                for name_class in classes:
                    if name_class.matches(name):
                        name_class.add(name, item.source)
                        break
                else:
                    new_class = _NameClass()
                    new_class.add(name, item.source)
                    classes.append(new_class)
        return classes
