# ABOUTME: Parsing functions for Open Library API JSON responses.
# ABOUTME: Converts OL-specific data structures into MetadataRecord instances.

from typing import Any

from bibliomerge.metadata.reconciliation.physical import parse_dimensions
from bibliomerge.metadata.reconciliation.series import extract_series_info
from bibliomerge.metadata.types import CoverImage, MetadataRecord, SeriesInfo

SOURCE_NAME = "openlibrary"

_COVERS_BASE_URL = "https://covers.openlibrary.org/b"
_SUBJECT_LIMIT = 10


def _language(entries: list[Any]) -> str | None:
    """OL languages are either {"key": "/languages/eng"} refs or bare codes."""
    if not entries:
        return None
    first = entries[0]
    if isinstance(first, dict):
        key = first.get("key", "")
        return key.rsplit("/", 1)[-1] if "/" in key else key or None
    return str(first)


def _first(entries: list[Any]) -> str | None:
    """First entry of a list of strings or {"name": ...} objects."""
    if not entries:
        return None
    first = entries[0]
    if isinstance(first, dict):
        return first.get("name") or None
    return str(first) or None


def _series(entries: list[str]) -> SeriesInfo | None:
    if not entries:
        return None
    name, volume = extract_series_info(entries[0])
    if not name:
        return None
    return SeriesInfo(name=name, volume=float(volume) if volume is not None else None)


def _subjects(entries: list[Any]) -> tuple[str, ...]:
    names = [e if isinstance(e, str) else e.get("name", "") for e in entries]
    return tuple(n for n in names if n)[:_SUBJECT_LIMIT]


def parse_isbn_response(
    data: dict[str, Any], isbn: str, confidence: float = 0.95
) -> MetadataRecord:
    """Parse an Open Library ISBN endpoint response into a MetadataRecord.

    The ISBN endpoint returns edition-level data with fields like
    title, publishers, isbn_13, languages, works, etc.
    """
    publishers = data.get("publishers", [])
    isbns = tuple(data.get("isbn_13", [])) + tuple(data.get("isbn_10", []))
    covers = [c for c in data.get("covers", []) if isinstance(c, int) and c > 0]

    provider_data: dict[str, Any] = {}
    works = data.get("works", [])
    if works:
        provider_data["work_key"] = works[0]["key"]
    if data.get("key"):
        provider_data["edition_key"] = data["key"]
    provider_data["author_keys"] = [a.get("key", "") for a in data.get("authors", []) if a.get("key")]

    title = data.get("title")
    subtitle = data.get("subtitle")
    if title and subtitle:
        title = f"{title}: {subtitle}"

    dimensions = data.get("physical_dimensions")
    return MetadataRecord(
        id=f"{SOURCE_NAME}:{data.get('key') or f'isbn:{isbn}'}",
        source=SOURCE_NAME,
        confidence=confidence,
        title=title,
        isbn=isbns or (isbn,),
        publisher=publishers[0] if publishers else None,
        publication_date=data.get("publish_date"),
        publication_place=_first(data.get("publish_places", [])),
        language=_language(data.get("languages", [])),
        page_count=data.get("number_of_pages"),
        subjects=_subjects(data.get("subjects", [])),
        series=_series(data.get("series", [])),
        edition=data.get("physical_format") or data.get("edition_name"),
        physical_dimensions=parse_dimensions(dimensions) if dimensions else None,
        cover_image=CoverImage(url=build_cover_url(str(covers[0]), key="id")) if covers else None,
        provider_data=provider_data,
    )


def parse_works_response(data: dict[str, Any]) -> str | None:
    """Extract the description from an Open Library Works response.

    Handles the OL quirk where description can be either a plain string
    or a dict with {"type": ..., "value": "actual text"}.
    """
    desc = data.get("description")
    if desc is None:
        return None
    if isinstance(desc, str):
        return desc
    if isinstance(desc, dict):
        return desc.get("value")
    return None


def parse_works_subjects(data: dict[str, Any]) -> tuple[str, ...]:
    return _subjects(data.get("subjects", []))


def parse_author_name(data: dict[str, Any]) -> str:
    """Extract the author name from an Open Library Author response."""
    return data.get("name", "Unknown")


def parse_search_results(data: dict[str, Any]) -> list[MetadataRecord]:
    """Parse an Open Library Search API response into a list of MetadataRecords.

    Each doc in the search results contains title, author_name, isbn, etc.
    Records carry a placeholder confidence that the provider rescores.
    """
    docs = data.get("docs", [])
    results: list[MetadataRecord] = []

    for doc in docs:
        languages = doc.get("language", [])
        publishers = doc.get("publisher", [])
        year = doc.get("first_publish_year")
        cover_id = doc.get("cover_i")
        work_key = doc.get("key")

        results.append(
            MetadataRecord(
                id=f"{SOURCE_NAME}:{work_key or doc.get('title', 'unknown')}",
                source=SOURCE_NAME,
                confidence=0.5,
                title=doc.get("title"),
                authors=tuple(doc.get("author_name", [])),
                isbn=tuple(doc.get("isbn", [])),
                language=languages[0] if languages else None,
                publisher=publishers[0] if publishers else None,
                publication_date=str(year) if year else None,
                page_count=doc.get("number_of_pages_median"),
                subjects=_subjects(doc.get("subject", [])),
                series=_series(doc.get("series", [])),
                cover_image=CoverImage(url=build_cover_url(str(cover_id), key="id"))
                if cover_id
                else None,
                provider_data={"work_key": work_key} if work_key else {},
            )
        )

    return results


# Format preference for edition selection (lower = better).
_FORMAT_RANK: dict[str, int] = {
    "hardcover": 0,
    "paperback": 1,
    "trade paperback": 1,
    "mass market paperback": 1,
    "electronic resource": 2,
    "ebook": 2,
    "audio cd": 3,
    "audio cassette": 3,
}
_FORMAT_RANK_DEFAULT = 2


def select_best_edition(entries: list[dict[str, Any]]) -> dict[str, str | None] | None:
    """Pick the best edition from a list of Open Library edition entries.

    Prefers physical formats with ISBNs. Returns a dict with 'isbn' and
    'publisher' keys, or None if no usable edition was found.
    """
    scored: list[tuple[int, int, dict[str, str | None]]] = []

    for entry in entries:
        isbn_13 = entry.get("isbn_13", [])
        isbn_10 = entry.get("isbn_10", [])
        isbn = isbn_13[0] if isbn_13 else (isbn_10[0] if isbn_10 else None)
        if not isbn:
            continue

        publishers = entry.get("publishers", [])
        publisher = publishers[0] if publishers else None

        fmt = (entry.get("physical_format") or "").lower()
        format_rank = _FORMAT_RANK.get(fmt, _FORMAT_RANK_DEFAULT)
        # Prefer ISBN-13 (0) over ISBN-10 only (1)
        isbn_rank = 0 if isbn_13 else 1

        scored.append((format_rank, isbn_rank, {"isbn": isbn, "publisher": publisher}))

    if not scored:
        return None

    scored.sort(key=lambda pair: (pair[0], pair[1]))
    return scored[0][2]


def build_cover_url(value: str, size: str = "L", key: str = "isbn") -> str:
    """Build an Open Library cover image URL.

    Args:
        value: The ISBN or cover id to look up cover art for.
        size: Image size: "S" (small), "M" (medium), or "L" (large).
        key: "isbn" or "id".
    """
    return f"{_COVERS_BASE_URL}/{key}/{value}-{size}.jpg"
