# ABOUTME: IdentifierReconciler detects, normalizes and validates ISBN, DOI, OCLC, LCCN and vendor IDs.
# ABOUTME: Deduplicates by type and normalized value, keeping the most reliable source.

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, replace

from bibliomerge.metadata.normalization import (
    clean_isbn,
    is_valid_isbn13,
    isbn10_to_isbn13,
    normalize_doi,
)
from bibliomerge.metadata.reconciliation.types import (
    Conflict,
    Identifier,
    MetadataSource,
    ReconciledField,
    ReconciliationError,
    SourcedValue,
)

logger = logging.getLogger(__name__)

IDENTIFIER_TYPES = ("isbn", "doi", "oclc", "lccn", "amazon", "goodreads", "google", "other")

# Higher sorts first.
TYPE_PRIORITY = {
    "isbn": 10,
    "doi": 9,
    "oclc": 8,
    "lccn": 7,
    "amazon": 6,
    "goodreads": 5,
    "google": 4,
    "other": 1,
}

_SEPARATORS_RE = re.compile(r"[\s-]")
_DOI_RE = re.compile(r"^10\.\d{4,}/")
_DOI_PREFIX_RE = re.compile(r"^doi:", re.IGNORECASE)
_ISBN13_SHAPE_RE = re.compile(r"^97\d{11}$")
_ISBN10_SHAPE_RE = re.compile(r"^\d{9}[\dX]$")
_ASIN_RE = re.compile(r"^[A-Z0-9]{10}$")
_OCLC_RE = re.compile(r"^(?:ocm|ocn|on)?\d{8,10}$")
_LCCN_NUMERIC_RE = re.compile(r"^\d{10,11}$")
_LCCN_PREFIXED_RE = re.compile(r"^[a-z]{1,3}\d{8,10}$")
_LCCN_VALID_RE = re.compile(r"^[a-z]{0,3}\d{8,10}$")
_BARE_NUMERIC_ID_RE = re.compile(r"^\d{7,10}$")

_OCLC_PREFIX_RE = re.compile(r"^(?:ocm|ocn|on)", re.IGNORECASE)
_GOODREADS_PREFIX_RE = re.compile(r"^goodreads:", re.IGNORECASE)
_GOODREADS_URL_RE = re.compile(r".*/show/(\d+).*")
_NON_DIGIT_RE = re.compile(r"\D")
_AMAZON_PREFIX_RE = re.compile(r"^amazon:", re.IGNORECASE)
_AMAZON_URL_RE = re.compile(r".*/(?:dp|gp/product)/([A-Za-z0-9]{10}).*")
_GOOGLE_PREFIX_RE = re.compile(r"^google:", re.IGNORECASE)
_GOOGLE_URL_RE = re.compile(r".*books\.google\.com.*[?&]id=([^&]+).*")
_VALID_DOI_RE = re.compile(r"^10\.\d{4,}/\S+$")

_EMPTY_CONFIDENCE = 0.1


@dataclass(frozen=True)
class IdentifierInput:
    """Identifiers one source reported, either untyped or by known type."""

    source: MetadataSource
    identifiers: tuple[str | Identifier, ...] = ()
    isbn: tuple[str, ...] = ()
    oclc: tuple[str, ...] = ()
    lccn: tuple[str, ...] = ()
    doi: tuple[str, ...] = ()
    goodreads: tuple[str, ...] = ()
    amazon: tuple[str, ...] = ()
    google: tuple[str, ...] = ()


def detect_identifier_type(value: str) -> str:
    """Guess an identifier's type from its shape.

    DOIs are checked before ISBNs, URLs and explicit prefixes before bare
    number shapes, and leftover 7-10 digit numbers are taken as Goodreads IDs.
    """
    cleaned = _SEPARATORS_RE.sub("", value)
    lowered = cleaned.lower()

    if _DOI_RE.match(value) or _DOI_PREFIX_RE.match(value) or "doi.org" in value:
        return "doi"
    if _ISBN13_SHAPE_RE.match(cleaned) or _ISBN10_SHAPE_RE.match(cleaned):
        return "isbn"
    if _GOODREADS_PREFIX_RE.match(value) or "goodreads.com" in value:
        return "goodreads"
    if _AMAZON_PREFIX_RE.match(value) or "amazon.com" in value or _ASIN_RE.match(cleaned):
        return "amazon"
    if _GOOGLE_PREFIX_RE.match(value) or "books.google.com" in value:
        return "google"
    if _OCLC_RE.match(lowered):
        return "oclc"
    if _LCCN_NUMERIC_RE.match(cleaned) or _LCCN_PREFIXED_RE.match(lowered):
        return "lccn"
    if _BARE_NUMERIC_ID_RE.match(cleaned):
        return "goodreads"
    return "other"


def normalize_identifier_value(value: str, id_type: str) -> str:
    """Canonical form of an identifier value for its type."""
    if id_type == "isbn":
        cleaned = clean_isbn(value)
        if len(cleaned) == 10:
            return isbn10_to_isbn13(cleaned) or cleaned
        return cleaned
    if id_type == "doi":
        return normalize_doi(value)
    if id_type == "oclc":
        return _OCLC_PREFIX_RE.sub("", _SEPARATORS_RE.sub("", value))
    if id_type == "lccn":
        return _SEPARATORS_RE.sub("", value).lower()
    if id_type == "goodreads":
        text = _GOODREADS_PREFIX_RE.sub("", value)
        text = _GOODREADS_URL_RE.sub(r"\1", text)
        return _NON_DIGIT_RE.sub("", text)
    if id_type == "amazon":
        text = _AMAZON_PREFIX_RE.sub("", value)
        text = _AMAZON_URL_RE.sub(r"\1", text)
        return text.upper()
    if id_type == "google":
        text = _GOOGLE_PREFIX_RE.sub("", value)
        return _GOOGLE_URL_RE.sub(r"\1", text)
    return value.strip()


def is_valid_identifier(normalized: str, id_type: str) -> bool:
    if id_type == "isbn":
        return normalized.startswith(("978", "979")) and is_valid_isbn13(normalized)
    if id_type == "doi":
        return bool(_VALID_DOI_RE.match(normalized))
    if id_type == "oclc":
        return normalized.isdigit() and 8 <= len(normalized) <= 10
    if id_type == "lccn":
        return bool(_LCCN_VALID_RE.match(normalized) or _LCCN_NUMERIC_RE.match(normalized))
    if id_type == "goodreads":
        return bool(_BARE_NUMERIC_ID_RE.match(normalized))
    if id_type == "amazon":
        return bool(_ASIN_RE.match(normalized))
    return len(normalized) > 0


class IdentifierReconciler:
    """Reconciles external identifiers reported by several sources."""

    def normalize_identifier(self, value: str | Identifier, id_type: str | None = None) -> Identifier:
        """Type, normalize and validate a raw string or an Identifier."""
        if isinstance(value, Identifier):
            normalized = normalize_identifier_value(value.value, value.type)
            return replace(value, normalized=normalized, valid=is_valid_identifier(normalized, value.type))

        detected = id_type or detect_identifier_type(value)
        normalized = normalize_identifier_value(value, detected)
        return Identifier(
            type=detected,
            value=value,
            normalized=normalized,
            valid=is_valid_identifier(normalized, detected),
        )

    def reconcile(self, inputs: Sequence[IdentifierInput]) -> ReconciledField[tuple[Identifier, ...]]:
        """Deduplicate identifiers across sources and order them by usefulness.

        Output order: valid first, then by type priority, then by source
        reliability. Confidence is the valid share times the mean
        reliability, scaled into [0.1, 1].

        Raises:
            ReconciliationError: If inputs is empty.
        """
        if not inputs:
            raise ReconciliationError("No identifiers to reconcile")

        collected: list[SourcedValue[Identifier]] = []
        for item in inputs:
            for raw in item.identifiers:
                collected.append(SourcedValue(self.normalize_identifier(raw), item.source))
            for id_type in ("isbn", "oclc", "lccn", "doi", "goodreads", "amazon", "google"):
                for raw in getattr(item, id_type):
                    if raw:
                        collected.append(SourcedValue(self.normalize_identifier(raw, id_type), item.source))

        if not collected:
            return ReconciledField(
                value=(),
                confidence=_EMPTY_CONFIDENCE,
                sources=tuple(item.source for item in inputs),
                reasoning="No valid identifiers found",
            )

        unique: dict[str, SourcedValue[Identifier]] = {}
        conflicts: list[Conflict] = []
        for item in collected:
            key = f"{item.value.type}:{item.value.normalized or item.value.value}"
            existing = unique.get(key)
            if existing is None:
                unique[key] = item
                continue
            if existing.source.name != item.source.name:
                conflicts.append(
                    Conflict(
                        field=f"identifier_{item.value.type}",
                        values=(existing, item),
                        resolution="Kept identifier from more reliable source",
                    )
                )
                if item.source.reliability > existing.source.reliability:
                    unique[key] = item

        ordered = sorted(
            unique.values(),
            key=lambda item: (
                not item.value.valid,
                -TYPE_PRIORITY.get(item.value.type, 1),
                -item.source.reliability,
            ),
        )

        valid_count = sum(1 for item in ordered if item.value.valid)
        total = len(ordered)
        avg_reliability = sum(item.source.reliability for item in ordered) / total
        confidence = min(1.0, (valid_count / total) * avg_reliability * 0.9 + 0.1)

        sources: list[MetadataSource] = []
        for item in ordered:
            if item.source not in sources:
                sources.append(item.source)

        if conflicts:
            reasoning = f"Reconciled {total} identifiers with {len(conflicts)} conflicts, {valid_count} valid"
        else:
            reasoning = f"Reconciled {total} identifiers, {valid_count} valid"
        logger.debug(reasoning)

        return ReconciledField(
            value=tuple(item.value for item in ordered),
            confidence=confidence,
            sources=tuple(sources),
            conflicts=tuple(conflicts),
            reasoning=reasoning,
        )
