# ABOUTME: SeriesReconciler parses free-text series strings and merges series, works and editions.
# ABOUTME: Also reconciles related works and collection membership across sources.

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, replace

from bibliomerge.metadata.reconciliation.types import (
    Collection,
    CollectionContent,
    Conflict,
    Edition,
    Identifier,
    MetadataSource,
    ReconciledField,
    ReconciliationError,
    RelatedWork,
    Series,
    SourcedValue,
    Work,
    normalize_series_name,
    normalize_work_title,
)
from bibliomerge.metadata.similarity import string_similarity

logger = logging.getLogger(__name__)

_MARKER = r"(?:book|vol\.?|volume|part|pt\.?|no\.?|number|#)"
_ORDINAL_WORDS = r"first|second|third|fourth|fifth|sixth|seventh|eighth|ninth|tenth"

# Tried in order; the first match wins.
_SERIES_PATTERNS: tuple[re.Pattern[str], ...] = (
    # "Name, Book 1"
    re.compile(rf"^(?P<name>.+?),\s*{_MARKER}\s*(?P<volume>\d+|[ivx]+)$", re.IGNORECASE),
    # "Name #1", "Name Vol. 2"
    re.compile(
        r"^(?P<name>.+?)\s+(?:#|vol\.?|volume|book|bk\.?|part|pt\.?|no\.?|number)\s*"
        r"(?P<volume>\d+|[ivx]+)$",
        re.IGNORECASE,
    ),
    # "Name (Book 1)"
    re.compile(rf"^(?P<name>.+?)\s*\({_MARKER}\s*(?P<volume>\d+|[ivx]+)\)$", re.IGNORECASE),
    # "Book 1 of Name"
    re.compile(rf"^{_MARKER}\s*(?P<volume>\d+|[ivx]+)\s+of\s+(?P<name>.+)$", re.IGNORECASE),
    # "Name Second Book"
    re.compile(
        rf"^(?P<name>.+?)\s+(?P<volume>{_ORDINAL_WORDS}|\d+(?:st|nd|rd|th))\s+(?:book|volume|part)$",
        re.IGNORECASE,
    ),
    # "Name, 2nd Edition"
    re.compile(
        rf"^(?P<name>.+?),\s*(?P<volume>\d+(?:st|nd|rd|th)|{_ORDINAL_WORDS})\s+edition$",
        re.IGNORECASE,
    ),
    # "Name: Book Title"
    re.compile(r"^(?P<name>.+?):\s*.+$"),
    re.compile(r"^(?P<name>.+)$"),
)

_ORDINALS = {
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "sixth": 6,
    "seventh": 7,
    "eighth": 8,
    "ninth": 9,
    "tenth": 10,
}
_ORDINAL_SUFFIX_RE = re.compile(r"^(\d+)(?:st|nd|rd|th)$")
_ROMAN_NUMERALS = {
    "i": 1,
    "ii": 2,
    "iii": 3,
    "iv": 4,
    "v": 5,
    "vi": 6,
    "vii": 7,
    "viii": 8,
    "ix": 9,
    "x": 10,
    "xi": 11,
    "xii": 12,
    "xiii": 13,
    "xiv": 14,
    "xv": 15,
    "xvi": 16,
    "xvii": 17,
    "xviii": 18,
    "xix": 19,
    "xx": 20,
}

_GROUP_SIMILARITY = 0.8
_RELATED_TITLE_SIMILARITY = 0.6
_EMPTY_CONFIDENCE = 0.1
_DEFAULT_RELATION_CONFIDENCE = 0.5


def parse_volume_number(text: str | None) -> int | None:
    """Parse "3", "3rd", "third" or a roman numeral up to XX into an integer."""
    if not text:
        return None
    value = text.strip().lower()
    if value in _ORDINALS:
        return _ORDINALS[value]
    if value.isdigit():
        return int(value)
    match = _ORDINAL_SUFFIX_RE.match(value)
    if match:
        return int(match.group(1))
    return _ROMAN_NUMERALS.get(value)


def extract_series_info(text: str) -> tuple[str, int | None]:
    """Split a free-text series string into (name, volume)."""
    trimmed = (text or "").strip()
    if not trimmed:
        return "", None
    for pattern in _SERIES_PATTERNS:
        match = pattern.match(trimmed)
        if match:
            volume = match.groupdict().get("volume")
            return match.group("name").strip(), parse_volume_number(volume)
    return trimmed, None


def detect_series_type(name: str, volume: float | None = None) -> str:
    """Classify a series as anthology, collection, numbered, chronological or unknown."""
    lower = name.lower()
    if "anthology" in lower:
        return "anthology"
    if any(word in lower for word in ("collection", "omnibus", "complete")):
        return "collection"
    if volume is not None:
        return "numbered"
    if any(word in lower for word in ("chronicles", "saga", "cycle")):
        return "chronological"
    return "unknown"


def series_similarity(name_a: str, name_b: str) -> float:
    """Levenshtein similarity of two series names after normalization."""
    left = normalize_series_name(name_a)
    right = normalize_series_name(name_b)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    return string_similarity(left, right)


def _avg_reliability(sources: Sequence[MetadataSource]) -> float:
    return sum(s.reliability for s in sources) / len(sources) if sources else 0.0


def _clamp(value: float) -> float:
    return max(_EMPTY_CONFIDENCE, min(1.0, value))


def _union(first: Sequence, *others: Sequence) -> tuple:
    merged = list(first)
    for other in others:
        for item in other:
            if item not in merged:
                merged.append(item)
    return tuple(merged)


def _union_identifiers(first: Sequence[Identifier], *others: Sequence[Identifier]) -> tuple[Identifier, ...]:
    merged = list(first)
    seen = {(i.type, i.value) for i in merged}
    for other in others:
        for identifier in other:
            if (identifier.type, identifier.value) not in seen:
                seen.add((identifier.type, identifier.value))
                merged.append(identifier)
    return tuple(merged)


def _by_reliability(items: Sequence[SourcedValue]) -> list[SourcedValue]:
    return sorted(items, key=lambda item: -item.source.reliability)


@dataclass(frozen=True)
class WorkEditionInput:
    """One source's view of the work, the edition, and linked works."""

    source: MetadataSource
    work: Work | None = None
    edition: Edition | None = None
    related_works: tuple[RelatedWork, ...] = ()


@dataclass(frozen=True)
class ReconciledWorkEdition:
    work: ReconciledField[Work]
    edition: ReconciledField[Edition]
    related_works: ReconciledField[tuple[RelatedWork, ...]]


@dataclass(frozen=True)
class CollectionInput:
    source: MetadataSource
    collections: tuple[str | Collection, ...] = ()
    contents: tuple[CollectionContent, ...] = ()


@dataclass(frozen=True)
class ReconciledCollections:
    collections: ReconciledField[tuple[Collection, ...]]
    contents: ReconciledField[tuple[CollectionContent, ...]]


class SeriesReconciler:
    """Reconciles series membership, work/edition data and collections."""

    def normalize_series(self, value: str | Series) -> Series:
        """Parse a series string, or fill in the derived fields of a Series."""
        if isinstance(value, Series):
            if value.series_type != "unknown":
                return value
            return replace(value, series_type=detect_series_type(value.name, value.volume))
        name, volume = extract_series_info(value)
        return Series(
            name=name,
            volume=volume,
            raw=value.strip(),
            series_type=detect_series_type(name, volume),
        )

    def reconcile(self, inputs: Sequence[SourcedValue[Sequence[str | Series]]]) -> ReconciledField[tuple[Series, ...]]:
        """Group similar series across sources and merge each group.

        Each input carries all series strings or objects one source reported.

        Raises:
            ReconciliationError: If inputs is empty.
        """
        if not inputs:
            raise ReconciliationError("No series inputs to reconcile")

        sources = tuple(item.source for item in inputs)
        entries: list[SourcedValue[Series]] = []
        for item in inputs:
            for raw in item.value or ():
                series = self.normalize_series(raw)
                if series.name.strip():
                    entries.append(SourcedValue(series, item.source))

        if not entries:
            return ReconciledField(
                value=(),
                confidence=_EMPTY_CONFIDENCE,
                sources=sources,
                reasoning="No valid series information found",
            )

        groups = self._group(entries)
        reconciled = [self._merge_group(group) for group in groups]
        reconciled.sort(key=lambda s: (s.volume is None, s.volume or 0, s.normalized or s.name))

        conflicts = tuple(
            Conflict(
                field="series",
                values=tuple(group),
                resolution="Used volume information from the most reliable source",
            )
            for group in groups
            if len({g.value.volume for g in group if g.value.volume is not None}) > 1
        )

        if len(inputs) == 1:
            reasoning = f"Single source with {len(reconciled)} series"
        else:
            reasoning = f"Reconciled {len(reconciled)} series from {len(inputs)} sources"

        return ReconciledField(
            value=tuple(reconciled),
            confidence=self.calculate_confidence(reconciled, sources),
            sources=sources,
            conflicts=conflicts,
            reasoning=reasoning,
        )

    def calculate_confidence(self, series: Sequence[Series], sources: Sequence[MetadataSource]) -> float:
        """Average source reliability times average series completeness."""
        if not series:
            return _EMPTY_CONFIDENCE
        completeness = 0.0
        for item in series:
            score = 0.2
            if item.volume is not None:
                score += 0.2
            if item.series_type != "unknown":
                score += 0.2
            if item.total_volumes:
                score += 0.2
            if item.identifiers:
                score += 0.2
            completeness += score
        return _clamp(_avg_reliability(sources) * completeness / len(series))

    def _group(self, entries: list[SourcedValue[Series]]) -> list[list[SourcedValue[Series]]]:
        groups: list[list[SourcedValue[Series]]] = []
        for entry in entries:
            for group in groups:
                if series_similarity(entry.value.name, group[0].value.name) > _GROUP_SIMILARITY:
                    group.append(entry)
                    break
            else:
                groups.append([entry])
        return groups

    def _merge_group(self, group: list[SourcedValue[Series]]) -> Series:
        ranked = _by_reliability(group)
        merged = ranked[0].value
        for other in (item.value for item in ranked[1:]):
            merged = replace(
                merged,
                volume=merged.volume if merged.volume is not None else other.volume,
                position=merged.position or other.position,
                total_volumes=merged.total_volumes or other.total_volumes,
                series_type=other.series_type if merged.series_type == "unknown" else merged.series_type,
                description=merged.description or other.description,
                identifiers=_union_identifiers(merged.identifiers, other.identifiers),
            )
        return merged

    def reconcile_work_edition(self, inputs: Sequence[WorkEditionInput]) -> ReconciledWorkEdition:
        """Merge work, edition and related-work data, highest reliability first.

        Raises:
            ReconciliationError: If inputs is empty.
        """
        if not inputs:
            raise ReconciliationError("No work/edition inputs to reconcile")

        works = [SourcedValue(i.work, i.source) for i in inputs if i.work is not None]
        editions = [SourcedValue(i.edition, i.source) for i in inputs if i.edition is not None]
        related = [SourcedValue(rw, i.source) for i in inputs for rw in i.related_works]

        work = self._reconcile_work(works)
        edition = self._reconcile_edition(editions, work.value)
        return ReconciledWorkEdition(
            work=work,
            edition=edition,
            related_works=self._reconcile_related_works(related),
        )

    def _reconcile_work(self, works: list[SourcedValue[Work]]) -> ReconciledField[Work]:
        if not works:
            return ReconciledField(
                value=Work(title=""),
                confidence=_EMPTY_CONFIDENCE,
                reasoning="No work information available",
            )

        ranked = _by_reliability(works)
        merged = ranked[0].value
        conflicts: list[Conflict] = []
        titles = {w.value.normalized for w in ranked if w.value.normalized}
        if len(titles) > 1:
            conflicts.append(
                Conflict(
                    field="work_title",
                    values=tuple(ranked),
                    resolution="Kept the title from the most reliable source",
                )
            )

        for other in (item.value for item in ranked[1:]):
            merged = replace(
                merged,
                type=other.type if merged.type == "other" else merged.type,
                original_language=merged.original_language or other.original_language,
                first_published=merged.first_published or other.first_published,
                authors=_union(merged.authors, other.authors),
                identifiers=_union_identifiers(merged.identifiers, other.identifiers),
            )

        completeness = 0.2
        if merged.type != "other":
            completeness += 0.2
        if merged.authors:
            completeness += 0.2
        if merged.first_published:
            completeness += 0.2
        if merged.identifiers:
            completeness += 0.2

        sources = tuple(item.source for item in ranked)
        return ReconciledField(
            value=merged,
            confidence=_clamp(_avg_reliability(sources) * completeness),
            sources=sources,
            conflicts=tuple(conflicts),
            reasoning=f"Reconciled work from {len(ranked)} sources",
        )

    def _reconcile_edition(self, editions: list[SourcedValue[Edition]], work: Work) -> ReconciledField[Edition]:
        if not editions:
            return ReconciledField(
                value=Edition(work_id=work.id),
                confidence=_EMPTY_CONFIDENCE,
                reasoning="No edition information available",
            )

        ranked = _by_reliability(editions)
        merged = ranked[0].value
        if merged.work_id is None:
            merged = replace(merged, work_id=work.id)
        for other in (item.value for item in ranked[1:]):
            merged = replace(
                merged,
                format=merged.format or other.format,
                language=merged.language or other.language,
                publication_date=merged.publication_date or other.publication_date,
                publisher=merged.publisher or other.publisher,
                page_count=merged.page_count or other.page_count,
                isbn=_union(merged.isbn, other.isbn),
                identifiers=_union_identifiers(merged.identifiers, other.identifiers),
            )

        completeness = 0.1
        if merged.format:
            completeness += 0.15
        if merged.language:
            completeness += 0.15
        if merged.publication_date:
            completeness += 0.2
        if merged.publisher:
            completeness += 0.15
        if merged.isbn:
            completeness += 0.15
        if merged.page_count:
            completeness += 0.1

        sources = tuple(item.source for item in ranked)
        return ReconciledField(
            value=merged,
            confidence=_clamp(_avg_reliability(sources) * completeness),
            sources=sources,
            reasoning=f"Reconciled edition from {len(ranked)} sources",
        )

    def _reconcile_related_works(
        self, related: list[SourcedValue[RelatedWork]]
    ) -> ReconciledField[tuple[RelatedWork, ...]]:
        if not related:
            return ReconciledField(
                value=(),
                confidence=_EMPTY_CONFIDENCE,
                reasoning="No related works information available",
            )

        # Same relationship type and a similar title share a group.
        groups: list[tuple[str, str, list[SourcedValue[RelatedWork]]]] = []
        for item in related:
            title = normalize_work_title(item.value.title)
            for kind, key_title, group in groups:
                if kind == item.value.relationship_type and (
                    string_similarity(title, key_title) > _RELATED_TITLE_SIMILARITY
                ):
                    group.append(item)
                    break
            else:
                groups.append((item.value.relationship_type, title, [item]))

        reconciled: list[RelatedWork] = []
        for _, _, group in groups:
            ranked = _by_reliability(group)
            avg_confidence = sum(
                g.value.confidence if g.value.confidence is not None else _DEFAULT_RELATION_CONFIDENCE
                for g in group
            ) / len(group)
            reconciled.append(
                replace(ranked[0].value, confidence=avg_confidence, source=ranked[0].source.name)
            )

        sources = tuple(item.source for item in related)
        avg_work_confidence = sum(rw.confidence or _DEFAULT_RELATION_CONFIDENCE for rw in reconciled) / len(
            reconciled
        )
        return ReconciledField(
            value=tuple(reconciled),
            confidence=_clamp(_avg_reliability(sources) * avg_work_confidence),
            sources=sources,
            reasoning=f"Reconciled {len(reconciled)} related works from {len(related)} sources",
        )

    def reconcile_collections(self, inputs: Sequence[CollectionInput]) -> ReconciledCollections:
        """Merge collection membership and collection contents across sources.

        Raises:
            ReconciliationError: If inputs is empty.
        """
        if not inputs:
            raise ReconciliationError("No collection inputs to reconcile")

        collections = [
            SourcedValue(self.normalize_collection(c), i.source) for i in inputs for c in i.collections
        ]
        contents = [SourcedValue(c, i.source) for i in inputs for c in i.contents]
        return ReconciledCollections(
            collections=self._reconcile_collection_list(collections),
            contents=self._reconcile_contents(contents),
        )

    def normalize_collection(self, value: str | Collection) -> Collection:
        if isinstance(value, Collection):
            return value
        return Collection(name=value, type=detect_collection_type(value))

    def _reconcile_collection_list(
        self, collections: list[SourcedValue[Collection]]
    ) -> ReconciledField[tuple[Collection, ...]]:
        if not collections:
            return ReconciledField(
                value=(),
                confidence=_EMPTY_CONFIDENCE,
                reasoning="No collection information available",
            )

        groups: list[list[SourcedValue[Collection]]] = []
        for item in collections:
            for group in groups:
                if string_similarity(item.value.normalized, group[0].value.normalized) > _GROUP_SIMILARITY:
                    group.append(item)
                    break
            else:
                groups.append([item])

        reconciled: list[Collection] = []
        for group in groups:
            ranked = _by_reliability(group)
            primary = ranked[0].value
            longest = primary.name
            for item in group:
                if len(item.value.name) > len(longest):
                    longest = item.value.name
            best_type = next((g.value.type for g in group if g.value.type != "other"), primary.type)

            merged = replace(primary, name=longest, type=best_type)
            for other in (item.value for item in ranked[1:]):
                known_titles = {normalize_work_title(c.title) for c in merged.contents}
                new_contents = tuple(
                    c for c in other.contents if normalize_work_title(c.title) not in known_titles
                )
                merged = replace(
                    merged,
                    description=merged.description or other.description,
                    total_works=merged.total_works or other.total_works,
                    editors=_union(merged.editors, other.editors),
                    contents=merged.contents + new_contents,
                )
            reconciled.append(merged)

        completeness = 0.0
        for collection in reconciled:
            score = 0.2
            if collection.type != "other":
                score += 0.2
            if collection.contents:
                score += 0.3
            if collection.editors:
                score += 0.15
            if collection.description:
                score += 0.15
            completeness += score

        sources = tuple(item.source for item in collections)
        return ReconciledField(
            value=tuple(reconciled),
            confidence=_clamp(_avg_reliability(sources) * completeness / len(reconciled)),
            sources=sources,
            reasoning=f"Reconciled {len(reconciled)} collections from {len(collections)} sources",
        )

    def _reconcile_contents(
        self, contents: list[SourcedValue[CollectionContent]]
    ) -> ReconciledField[tuple[CollectionContent, ...]]:
        if not contents:
            return ReconciledField(
                value=(),
                confidence=_EMPTY_CONFIDENCE,
                reasoning="No collection contents available",
            )

        grouped: dict[str, list[SourcedValue[CollectionContent]]] = {}
        for item in contents:
            grouped.setdefault(normalize_work_title(item.value.title), []).append(item)

        reconciled: list[CollectionContent] = []
        for group in grouped.values():
            ranked = _by_reliability(group)
            merged = ranked[0].value
            for other in (item.value for item in ranked[1:]):
                merged = replace(
                    merged,
                    type=merged.type or other.type,
                    page_range=merged.page_range or other.page_range,
                    position=merged.position if merged.position is not None else other.position,
                    authors=_union(merged.authors, other.authors),
                )
            reconciled.append(merged)

        reconciled.sort(key=lambda c: (c.position is None, c.position or 0, c.title))

        completeness = 0.0
        for content in reconciled:
            score = 0.3
            if content.type:
                score += 0.2
            if content.authors:
                score += 0.2
            if content.page_range:
                score += 0.15
            if content.position is not None:
                score += 0.15
            completeness += score

        sources = tuple(item.source for item in contents)
        return ReconciledField(
            value=tuple(reconciled),
            confidence=_clamp(_avg_reliability(sources) * completeness / len(reconciled)),
            sources=sources,
            reasoning=f"Reconciled {len(reconciled)} collection contents from {len(contents)} sources",
        )


def detect_collection_type(name: str) -> str:
    """Classify a collection name as anthology, omnibus, series_collection or collection."""
    lower = name.lower()
    if "anthology" in lower:
        return "anthology"
    if "omnibus" in lower:
        return "omnibus"
    if "series" in lower and "collection" in lower:
        return "series_collection"
    if "collection" in lower:
        return "collection"
    return "other"
