# ABOUTME: EPUB metadata extraction using ebooklib.
# ABOUTME: Defensive wrapper that turns an EPUB's embedded OPF metadata into a MetadataRecord.

import logging
from pathlib import Path

from ebooklib import epub

from bibliomerge.metadata.normalization import normalize_isbn
from bibliomerge.metadata.types import MetadataRecord, SeriesInfo

logger = logging.getLogger(__name__)

EMBEDDED_SOURCE = "epub"
# Embedded metadata is hand-entered by whoever produced the file.
EMBEDDED_CONFIDENCE = 0.6


class EpubReadError(Exception):
    """Raised when an EPUB file cannot be read or parsed."""


def _get_metadata_value(book: epub.EpubBook, namespace: str, name: str) -> str | None:
    """Extract a single metadata value from an EpubBook, or None if missing."""
    values = book.get_metadata(namespace, name)
    if not values:
        return None
    # Metadata entries are tuples of (value, attributes)
    value = values[0][0]
    return str(value).strip() if value else None


def _get_values(book: epub.EpubBook, name: str) -> list[str]:
    """Extract every non-empty Dublin Core value for a field."""
    entries = book.get_metadata("DC", name)
    return [str(entry[0]).strip() for entry in entries if entry[0]]


def _get_identifiers(book: epub.EpubBook) -> dict[str, str]:
    """Extract all identifiers (ISBN, UUID, etc.) from an EpubBook."""
    identifiers = {}
    entries = book.get_metadata("DC", "identifier")
    for value, attrs in entries:
        if not value:
            continue
        scheme = attrs.get("opf:scheme", attrs.get("scheme", "id"))
        identifiers[scheme.lower()] = str(value).strip()
    return identifiers


def _detect_isbns(identifiers: dict[str, str]) -> tuple[str, ...]:
    """Collect identifiers that are ISBNs by scheme or by checksum."""
    found = []
    for key in ("isbn", "isbn13", "isbn-13", "isbn10", "isbn-10"):
        if key in identifiers:
            found.append(identifiers[key])
    for value in identifiers.values():
        cleaned = value.lower().removeprefix("urn:isbn:")
        if value not in found and normalize_isbn(cleaned, True):
            found.append(cleaned)
    return tuple(found)


def _get_calibre_meta(book: epub.EpubBook, name: str) -> str | None:
    """Read a calibre <meta name="calibre:..."> value, if the file has one."""
    entries = book.metadata.get("calibre", {}).get(name, [])
    if not entries:
        return None
    content = entries[0][1].get("content")
    return content.strip() if content else None


def _get_series(book: epub.EpubBook) -> SeriesInfo | None:
    name = _get_calibre_meta(book, "series")
    if not name:
        return None
    index = _get_calibre_meta(book, "series_index")
    try:
        volume = float(index) if index else None
    except ValueError:
        volume = None
    return SeriesInfo(name=name, volume=volume)


def read_epub_metadata(path: Path, confidence: float = EMBEDDED_CONFIDENCE) -> MetadataRecord:
    """Extract metadata from an EPUB file.

    Args:
        path: Path to the EPUB file.
        confidence: Confidence assigned to the embedded metadata.

    Returns:
        MetadataRecord populated with extracted fields. The title falls back
        to the file stem when the OPF has none.

    Raises:
        EpubReadError: If the file cannot be read or parsed.
    """
    if not path.exists():
        raise EpubReadError(f"File not found: {path}")

    try:
        book = epub.read_epub(str(path), options={"ignore_ncx": True})
    except Exception as exc:
        raise EpubReadError(f"Failed to read EPUB: {path}: {exc}") from exc

    title = _get_metadata_value(book, "DC", "title")
    if not title:
        title = path.stem

    identifiers = _get_identifiers(book)
    logger.debug("Read %s: title=%r identifiers=%s", path.name, title, sorted(identifiers))

    return MetadataRecord(
        id=f"{EMBEDDED_SOURCE}:{path.name}",
        source=EMBEDDED_SOURCE,
        confidence=confidence,
        title=title,
        authors=tuple(_get_values(book, "creator")),
        isbn=_detect_isbns(identifiers),
        language=_get_metadata_value(book, "DC", "language"),
        publisher=_get_metadata_value(book, "DC", "publisher"),
        publication_date=_get_metadata_value(book, "DC", "date"),
        description=_get_metadata_value(book, "DC", "description"),
        subjects=tuple(_get_values(book, "subject")),
        series=_get_series(book),
        provider_data={"path": str(path), "identifiers": identifiers},
    )
