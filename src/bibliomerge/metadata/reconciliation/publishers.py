# ABOUTME: PublisherReconciler groups publisher names by normalized form or parent-publisher alias.
# ABOUTME: Picks the most reliable name from the heaviest group and reports disagreements.

import logging
import re
from collections.abc import Sequence

from bibliomerge.metadata.normalization import normalize_publisher_name
from bibliomerge.metadata.reconciliation.types import (
    Conflict,
    MetadataSource,
    Publisher,
    ReconciledField,
    ReconciliationError,
    SourcedValue,
)
from bibliomerge.metadata.similarity import string_similarity

logger = logging.getLogger(__name__)

# Parent publisher -> imprints and spelling variants.
PUBLISHER_VARIATIONS: dict[str, tuple[str, ...]] = {
    "penguin random house": (
        "penguin",
        "random house",
        "bantam",
        "dell",
        "doubleday",
        "knopf",
        "pantheon",
        "vintage",
    ),
    "harpercollins": ("harper", "collins", "harper & row", "harper collins", "harpercollins publishers"),
    "simon & schuster": ("simon and schuster", "simon schuster", "scribner", "atria", "pocket books"),
    "macmillan": ("macmillan publishers", "st. martins press", "farrar straus giroux", "henry holt", "tor"),
    "hachette": ("hachette book group", "little brown", "grand central", "orbit", "yen press"),
    "oxford university press": ("oxford", "oup", "oxford univ press", "oxford university"),
    "cambridge university press": ("cambridge", "cup", "cambridge univ press", "cambridge university"),
    "harvard university press": ("harvard", "harvard univ press", "harvard university"),
    "yale university press": ("yale", "yale univ press", "yale university"),
    "princeton university press": ("princeton", "princeton univ press", "princeton university"),
    "university of chicago press": ("chicago", "univ of chicago", "university chicago"),
    "mit press": ("massachusetts institute of technology", "mit", "mass inst tech"),
    "norton": ("w. w. norton", "ww norton", "norton & company"),
    "wiley": ("john wiley", "wiley & sons", "wiley-blackwell", "jossey-bass"),
    "springer": ("springer-verlag", "springer nature", "springer science"),
    "elsevier": ("elsevier science", "academic press", "morgan kaufmann"),
    "pearson": ("pearson education", "addison-wesley", "prentice hall", "benjamin cummings"),
    "mcgraw-hill": ("mcgraw hill", "mcgraw-hill education", "mcgraw hill education"),
    "cengage": ("cengage learning", "thomson", "wadsworth", "brooks/cole"),
    "sage": ("sage publications", "sage publishing"),
    "routledge": ("taylor & francis", "taylor and francis", "crc press"),
    "bloomsbury": ("bloomsbury publishing", "bloomsbury academic"),
    "scholastic": ("scholastic inc", "scholastic press", "scholastic corporation"),
}

_ALIAS_SIMILARITY = 0.8
_SHORT_NAME_LENGTH = 3
_EMPTY_CONFIDENCE = 0.1


def _alias_patterns() -> list[tuple[str, re.Pattern[str], str]]:
    patterns = []
    for canonical, variations in PUBLISHER_VARIATIONS.items():
        for variation in (canonical, *variations):
            key = normalize_publisher_name(variation)
            if key:
                patterns.append((canonical, re.compile(rf"(?:^|\s){re.escape(key)}(?:\s|$)"), key))
    return patterns


_ALIASES = _alias_patterns()


def canonical_publisher(name: str) -> str | None:
    """Return the parent publisher for a known imprint or variant, if any.

    Matches a normalized alias as a whole-word run inside the normalized
    name, or by Levenshtein similarity above 0.8.
    """
    normalized = normalize_publisher_name(name)
    if not normalized:
        return None
    for canonical, pattern, key in _ALIASES:
        if pattern.search(normalized) or string_similarity(normalized, key) > _ALIAS_SIMILARITY:
            return canonical
    return None


class PublisherReconciler:
    """Reconciles publisher names reported by several sources."""

    def normalize_publisher(self, value: str | Publisher) -> Publisher:
        """Build a Publisher carrying its canonical parent where one is known."""
        if isinstance(value, Publisher):
            if value.canonical is not None:
                return value
            return Publisher(
                name=value.name,
                canonical=canonical_publisher(value.name),
                location=value.location,
            )
        return Publisher(name=value.strip(), canonical=canonical_publisher(value))

    def calculate_confidence(self, publisher: Publisher, source: MetadataSource) -> float:
        """Reliability adjusted for name quality and recognized parents, clamped to [0, 1]."""
        confidence = source.reliability
        name = publisher.name.strip()
        if not name:
            confidence *= 0.1
        elif len(name) < _SHORT_NAME_LENGTH:
            confidence *= 0.5
        elif publisher.canonical and publisher.canonical != name.lower():
            confidence *= 1.1

        if publisher.canonical in PUBLISHER_VARIATIONS:
            confidence *= 1.2
        return max(0.0, min(1.0, confidence))

    def reconcile(self, inputs: Sequence[SourcedValue[str | Publisher | None]]) -> ReconciledField[Publisher]:
        """Group publishers and pick the most reliable name from the heaviest group.

        Publishers group together when their normalized names match or when
        they resolve to the same parent publisher. The group with the largest
        total reliability wins, with group size breaking ties.

        Raises:
            ReconciliationError: If inputs is empty.
        """
        if not inputs:
            raise ReconciliationError("No publishers to reconcile")

        candidates = [
            SourcedValue(self.normalize_publisher(item.value), item.source)
            for item in inputs
            if _publisher_text(item.value)
        ]
        if not candidates:
            return ReconciledField(
                value=Publisher(name=""),
                confidence=_EMPTY_CONFIDENCE,
                sources=tuple(item.source for item in inputs),
                reasoning="No valid publisher information found",
            )

        if len(candidates) == 1:
            only = candidates[0]
            return ReconciledField(
                value=only.value,
                confidence=self.calculate_confidence(only.value, only.source),
                sources=(only.source,),
                reasoning="Single source publisher",
            )

        groups: dict[str, list[SourcedValue[Publisher]]] = {}
        for candidate in candidates:
            key = candidate.value.canonical or candidate.value.normalized or candidate.value.name.lower()
            groups.setdefault(key, []).append(candidate)

        conflicts: tuple[Conflict, ...] = ()
        if len(groups) > 1:
            conflicts = (
                Conflict(
                    field="publisher",
                    values=tuple(candidates),
                    resolution="Selected publisher from the best-supported group's most reliable source",
                ),
            )

        heaviest = max(
            groups.values(),
            key=lambda group: (sum(item.source.reliability for item in group), len(group)),
        )
        best = max(heaviest, key=lambda item: item.source.reliability)
        logger.debug(
            "Publisher %r chosen from %d group(s) over %d source(s)",
            best.value.name,
            len(groups),
            len(candidates),
        )

        if conflicts:
            reasoning = "Resolved conflict by selecting publisher from most reliable source in largest group"
        else:
            reasoning = "Selected publisher from most reliable source"

        return ReconciledField(
            value=best.value,
            confidence=self.calculate_confidence(best.value, best.source),
            sources=tuple(item.source for item in heaviest),
            conflicts=conflicts,
            reasoning=reasoning,
        )


def _publisher_text(value: str | Publisher | None) -> str:
    if isinstance(value, Publisher):
        return value.name.strip()
    return (value or "").strip()
