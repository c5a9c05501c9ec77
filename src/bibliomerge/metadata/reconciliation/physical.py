# ABOUTME: PhysicalReconciler merges page counts, dimensions, formats, languages and weights.
# ABOUTME: Dimension strings are parsed and converted to millimetres before comparison.

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, replace

from bibliomerge.metadata.normalization import normalize_language_code
from bibliomerge.metadata.reconciliation.types import (
    Conflict,
    FormatInfo,
    LanguageInfo,
    MetadataSource,
    ReconciledField,
    ReconciliationError,
    SourcedValue,
)
from bibliomerge.metadata.types import PhysicalDimensions

logger = logging.getLogger(__name__)

_MAX_PAGES = 50000
_MAX_GRAMS = 50000
_PAGE_GROUP_PAGES = 10
_PAGE_GROUP_RATIO = 0.05

_MM_PER_UNIT = {"mm": 1.0, "cm": 10.0, "in": 25.4}
_GRAMS_PER_UNIT = {"g": 1.0, "kg": 1000.0, "lb": 453.592, "oz": 28.3495}

_NUM = r"\d+(?:\.\d+)?"
_UNIT = r"mm|cm|inches|inch|in"
_DIMENSIONS_RE = re.compile(
    rf"(?P<a>{_NUM})\s*[x×]\s*(?P<b>{_NUM})(?:\s*[x×]\s*(?P<c>{_NUM}))?\s*(?P<unit>{_UNIT})\b",
    re.IGNORECASE,
)
_UNIT_EACH_RE = re.compile(
    rf"(?P<a>{_NUM})\s*(?P<unit>{_UNIT})\s*[x×]\s*(?P<b>{_NUM})\s*(?:{_UNIT})"
    rf"(?:\s*[x×]\s*(?P<c>{_NUM})\s*(?:{_UNIT}))?",
    re.IGNORECASE,
)
_LABELLED_RE = {
    "height": re.compile(rf"\bh(?:eight)?:?\s*(?P<value>{_NUM})\s*(?P<unit>{_UNIT})\b", re.IGNORECASE),
    "width": re.compile(rf"\bw(?:idth)?:?\s*(?P<value>{_NUM})\s*(?P<unit>{_UNIT})\b", re.IGNORECASE),
    "depth": re.compile(rf"\bd(?:epth)?:?\s*(?P<value>{_NUM})\s*(?P<unit>{_UNIT})\b", re.IGNORECASE),
}
_PAGE_NUMBERS_RE = re.compile(r"\d+")
_WEIGHT_RE = re.compile(rf"(?P<value>{_NUM})\s*(?P<unit>kg|g|lbs?|oz|ounces?)\b", re.IGNORECASE)
_REGION_RE = re.compile(r"^(?P<lang>[a-z]{2,3})[-_](?P<region>[a-z]{2})$", re.IGNORECASE)

# Checked in order; the first keyword found wins.
_BINDINGS = (
    ("hardcover", ("hardcover", "hardback", "hard cover")),
    ("mass_market", ("mass market", "pocket")),
    ("paperback", ("paperback", "softcover", "soft cover")),
    ("board_book", ("board book", "boardbook")),
    ("spiral", ("spiral", "wire-o", "coil")),
    ("leather", ("leather",)),
    ("cloth", ("cloth",)),
    ("digital", ("digital", "ebook", "e-book")),
    ("audio", ("audio",)),
)
_BINDING_HINTS = (
    ("hardcover", ("hard",)),
    ("paperback", ("paper", "soft")),
    ("mass_market", ("mass",)),
    ("board_book", ("board",)),
    ("spiral", ("spiral", "coil")),
    ("leather", ("leather",)),
    ("cloth", ("cloth",)),
    ("digital", ("digital", "ebook")),
    ("audio", ("audio",)),
)
_FORMATS = (
    ("ebook", "digital", ("ebook", "e-book", "digital")),
    ("audiobook", "audio", ("audiobook", "audio book")),
    ("magazine", "print", ("magazine",)),
    ("journal", "print", ("journal",)),
    ("newspaper", "print", ("newspaper",)),
    ("book", "braille", ("braille",)),
    ("book", "large_print", ("large print",)),
)


@dataclass(frozen=True)
class PhysicalInput:
    """Physical description fields one source reported."""

    source: MetadataSource
    page_count: int | str | None = None
    dimensions: str | PhysicalDimensions | None = None
    format: str | FormatInfo | None = None
    binding: str | None = None
    languages: str | tuple[str | LanguageInfo, ...] | None = None
    weight: float | str | None = None


@dataclass(frozen=True)
class ReconciledPhysical:
    page_count: ReconciledField[int]
    dimensions: ReconciledField[PhysicalDimensions]
    format: ReconciledField[FormatInfo]
    languages: ReconciledField[tuple[LanguageInfo, ...]]
    weight: ReconciledField[int]


def _unit(text: str) -> str:
    lower = text.lower()
    if lower.startswith("in"):
        return "in"
    if lower == "cm":
        return "cm"
    return "mm"


def _to_mm(value: float | None, unit: str) -> float | None:
    if not value:
        return None
    return round(value * _MM_PER_UNIT.get(unit, 1.0), 2)


def normalize_page_count(value: int | str | None) -> int | None:
    """Page count from an int or a string like "xii, 324 p."; None outside 1..49999."""
    if value is None:
        return None
    if isinstance(value, str):
        numbers = [int(n) for n in _PAGE_NUMBERS_RE.findall(value)]
        if not numbers:
            return None
        value = max(numbers)
    count = int(value)
    return count if 0 < count < _MAX_PAGES else None


def parse_dimensions(text: str) -> PhysicalDimensions:
    """Parse "6 x 9 in", "15cm x 23cm" or "H: 24cm W: 16cm" into millimetres.

    Returns a PhysicalDimensions carrying only ``raw`` when nothing parses.
    """
    for pattern in (_DIMENSIONS_RE, _UNIT_EACH_RE):
        match = pattern.search(text)
        if match:
            unit = _unit(match.group("unit"))
            return PhysicalDimensions(
                width=_to_mm(float(match.group("a")), unit),
                height=_to_mm(float(match.group("b")), unit),
                depth=_to_mm(float(match.group("c")), unit) if match.group("c") else None,
                unit="mm",
                raw=text,
            )

    found = {}
    for name, pattern in _LABELLED_RE.items():
        match = pattern.search(text)
        if match:
            found[name] = _to_mm(float(match.group("value")), _unit(match.group("unit")))
    if len(found) >= 2:
        return PhysicalDimensions(unit="mm", raw=text, **found)
    return PhysicalDimensions(raw=text)


def validate_dimensions(dimensions: PhysicalDimensions) -> PhysicalDimensions:
    """Convert to millimetres and drop implausible measurements."""
    unit = dimensions.unit if dimensions.unit in _MM_PER_UNIT else "mm"
    width = _to_mm(dimensions.width, unit)
    height = _to_mm(dimensions.height, unit)
    depth = _to_mm(dimensions.depth, unit)
    if width and not 10 <= width <= 1000:
        width = None
    if height and not 10 <= height <= 1000:
        height = None
    if depth and not 1 <= depth <= 200:
        depth = None
    return replace(dimensions, width=width, height=height, depth=depth, unit="mm")


def _binding_from_hint(hint: str) -> str:
    lower = hint.lower()
    for binding, keywords in _BINDING_HINTS:
        if any(k in lower for k in keywords):
            return binding
    return "other"


def parse_format(text: str, binding_hint: str | None = None) -> FormatInfo:
    """Derive binding, format and medium from a free-text format string."""
    lower = text.lower()
    binding = next((b for b, keywords in _BINDINGS if any(k in lower for k in keywords)), None)
    if binding is None and binding_hint:
        binding = _binding_from_hint(binding_hint)

    for fmt, medium, keywords in _FORMATS:
        if any(k in lower for k in keywords):
            return FormatInfo(binding=binding, format=fmt, medium=medium, raw=text)

    medium = {"digital": "digital", "audio": "audio"}.get(binding or "", "print")
    return FormatInfo(binding=binding, format="book", medium=medium, raw=text)


def parse_language(text: str) -> LanguageInfo | None:
    """Resolve a code or English name to ISO 639-1 with a match confidence."""
    trimmed = text.strip()
    if len(trimmed) < 2:
        return None

    region = None
    base = trimmed
    match = _REGION_RE.match(trimmed)
    if match:
        base = match.group("lang")
        region = match.group("region").upper()

    code = normalize_language_code(base)
    lower = base.lower()
    if code and code != lower:
        confidence = 0.9 if len(lower) == 3 else 0.8
    elif code and len(code) == 2:
        confidence = 0.9
    elif code:
        confidence = 0.5
    else:
        return LanguageInfo(code=lower, name=trimmed, confidence=0.3, raw=text)

    if region:
        confidence = 0.85
    name = trimmed if len(lower) > 3 else None
    return LanguageInfo(code=code, name=name, region=region, confidence=confidence, raw=text)


def normalize_weight(value: float | str | None) -> int | None:
    """Weight in whole grams; strings need a unit (g, kg, lb, oz)."""
    if value is None:
        return None
    if isinstance(value, str):
        match = _WEIGHT_RE.search(value)
        if not match:
            return None
        unit = match.group("unit").lower()
        unit = "lb" if unit.startswith("lb") else "oz" if unit.startswith("o") else unit
        value = float(match.group("value")) * _GRAMS_PER_UNIT[unit]
    grams = round(value)
    return grams if 0 < grams < _MAX_GRAMS else None


class PhysicalReconciler:
    """Reconciles physical description fields reported by several sources."""

    def reconcile(self, inputs: Sequence[PhysicalInput]) -> ReconciledPhysical:
        """Reconcile every physical field independently.

        Raises:
            ReconciliationError: If inputs is empty.
        """
        if not inputs:
            raise ReconciliationError("No physical descriptions to reconcile")
        return ReconciledPhysical(
            page_count=self.reconcile_page_counts(inputs),
            dimensions=self.reconcile_dimensions(inputs),
            format=self.reconcile_formats(inputs),
            languages=self.reconcile_languages(inputs),
            weight=self.reconcile_weights(inputs),
        )

    def reconcile_page_counts(self, inputs: Sequence[PhysicalInput]) -> ReconciledField[int]:
        """Reliability-weighted mean of the best-supported group of close page counts.

        Counts within 10 pages or 5% of a group's first count join that group.
        """
        counts = [
            SourcedValue(count, item.source)
            for item in inputs
            if (count := normalize_page_count(item.page_count)) is not None
        ]
        if not counts:
            return ReconciledField(
                value=0,
                confidence=0.0,
                sources=tuple(item.source for item in inputs),
                reasoning="No valid page counts found",
            )
        if len(counts) == 1:
            return ReconciledField(
                value=counts[0].value,
                confidence=counts[0].source.reliability * 0.8,
                sources=(counts[0].source,),
                reasoning="Single page count source",
            )

        groups: dict[int, list[SourcedValue[int]]] = {}
        for item in counts:
            for key, members in groups.items():
                diff = abs(item.value - key)
                if diff <= _PAGE_GROUP_PAGES or diff / max(item.value, key) <= _PAGE_GROUP_RATIO:
                    members.append(item)
                    break
            else:
                groups[item.value] = [item]

        best = max(groups.values(), key=lambda group: sum(i.source.reliability for i in group))
        best_reliability = sum(i.source.reliability for i in best)
        value = round(sum(i.value * i.source.reliability for i in best) / best_reliability)

        conflicts: tuple[Conflict, ...] = ()
        if len(groups) > 1:
            conflicts = (
                Conflict(
                    field="page_count",
                    values=tuple(SourcedValue(key, members[0].source) for key, members in groups.items()),
                    resolution="Selected page count from most reliable sources",
                ),
            )
            reasoning = (
                f"Reconciled {len(counts)} page counts with conflicts, "
                f"selected from {len(best)} agreeing sources"
            )
        else:
            reasoning = f"Averaged {len(best)} agreeing page counts"

        return ReconciledField(
            value=value,
            confidence=min(0.95, best_reliability / len(counts) * 0.9),
            sources=tuple(i.source for i in best),
            conflicts=conflicts,
            reasoning=reasoning,
        )

    def reconcile_dimensions(self, inputs: Sequence[PhysicalInput]) -> ReconciledField[PhysicalDimensions]:
        """Pick the most complete dimensions, weighted by source reliability."""
        parsed = []
        for item in inputs:
            if item.dimensions is None:
                continue
            if isinstance(item.dimensions, PhysicalDimensions):
                dims = validate_dimensions(item.dimensions)
            else:
                dims = validate_dimensions(parse_dimensions(item.dimensions))
            if dims.width or dims.height:
                parsed.append(SourcedValue(dims, item.source))

        if not parsed:
            return ReconciledField(
                value=PhysicalDimensions(),
                confidence=0.0,
                sources=tuple(item.source for item in inputs),
                reasoning="No valid dimensions found",
            )
        if len(parsed) == 1:
            return ReconciledField(
                value=parsed[0].value,
                confidence=parsed[0].source.reliability * 0.7,
                sources=(parsed[0].source,),
                reasoning="Single dimensions source",
            )

        def score(item: SourcedValue[PhysicalDimensions]) -> float:
            present = sum(1 for d in (item.value.width, item.value.height, item.value.depth) if d)
            return item.source.reliability * present / 3

        best = max(parsed, key=score)
        return ReconciledField(
            value=best.value,
            confidence=score(best) * 0.8,
            sources=(best.source,),
            reasoning=f"Selected most complete dimensions from {len(parsed)} sources",
        )

    def reconcile_formats(self, inputs: Sequence[PhysicalInput]) -> ReconciledField[FormatInfo]:
        formats = []
        for item in inputs:
            if isinstance(item.format, FormatInfo):
                formats.append(SourcedValue(item.format, item.source))
            elif item.format or item.binding:
                formats.append(SourcedValue(parse_format(item.format or "", item.binding), item.source))

        if not formats:
            return ReconciledField(
                value=FormatInfo(format="book", medium="print"),
                confidence=0.3,
                sources=tuple(item.source for item in inputs),
                reasoning="No format information found, defaulting to print book",
            )

        best = max(formats, key=lambda item: item.source.reliability)
        if len(formats) == 1:
            reasoning = "Single format source"
        else:
            reasoning = f"Selected format from most reliable of {len(formats)} sources"
        return ReconciledField(
            value=best.value,
            confidence=best.source.reliability * 0.8,
            sources=(best.source,),
            reasoning=reasoning,
        )

    def reconcile_languages(self, inputs: Sequence[PhysicalInput]) -> ReconciledField[tuple[LanguageInfo, ...]]:
        """Union of languages by code, keeping the most confident match for each."""
        by_code: dict[str, LanguageInfo] = {}
        sources: list[MetadataSource] = []
        for item in inputs:
            raw = item.languages
            if not raw:
                continue
            values = (raw,) if isinstance(raw, str) else raw
            parsed = []
            for value in values:
                info = value if isinstance(value, LanguageInfo) else parse_language(value)
                if info is not None:
                    parsed.append(info)
            if not parsed:
                continue
            sources.append(item.source)
            for info in parsed:
                existing = by_code.get(info.code)
                if existing is None or (info.confidence or 0) > (existing.confidence or 0):
                    by_code[info.code] = info

        if not by_code:
            return ReconciledField(
                value=(),
                confidence=0.0,
                sources=tuple(item.source for item in inputs),
                reasoning="No language information found",
            )

        languages = sorted(by_code.values(), key=lambda info: -(info.confidence or 0))
        avg = sum(info.confidence or 0 for info in languages) / len(languages)
        return ReconciledField(
            value=tuple(languages),
            confidence=min(0.9, avg * 0.9),
            sources=tuple(sources),
            reasoning=f"Reconciled {len(languages)} unique languages from {len(sources)} sources",
        )

    def reconcile_weights(self, inputs: Sequence[PhysicalInput]) -> ReconciledField[int]:
        weights = [
            SourcedValue(grams, item.source)
            for item in inputs
            if (grams := normalize_weight(item.weight)) is not None
        ]
        if not weights:
            return ReconciledField(
                value=0,
                confidence=0.0,
                sources=tuple(item.source for item in inputs),
                reasoning="No weight information found",
            )
        if len(weights) == 1:
            return ReconciledField(
                value=weights[0].value,
                confidence=weights[0].source.reliability * 0.7,
                sources=(weights[0].source,),
                reasoning="Single weight source",
            )

        total = sum(w.source.reliability for w in weights)
        return ReconciledField(
            value=round(sum(w.value * w.source.reliability for w in weights) / total),
            confidence=min(0.8, total / len(weights) * 0.8),
            sources=tuple(w.source for w in weights),
            reasoning=f"Averaged {len(weights)} weight measurements",
        )
