# ABOUTME: Query cleanup for mangled embedded metadata (CamelCase, concatenated words, "Author - Title").
# ABOUTME: Turns garbage titles like "SteveBerry-TheTemplarLegacy" into usable catalog queries.

import re
from dataclasses import dataclass, replace

import wordninja

from bibliomerge.metadata.provider import MultiCriteriaQuery
from bibliomerge.metadata.types import MetadataRecord, SeriesInfo

# Spaceless strings shorter than this ("Dune", "1984") are left alone.
_MIN_CONCAT_LENGTH = 8

_CAMEL_CASE_RE = re.compile(r"[a-z][A-Z]")
_CAMEL_LOWER_UPPER_RE = re.compile(r"([a-z\d])([A-Z])")
_CAMEL_UPPER_SEQUENCE_RE = re.compile(r"([A-Z]+)([A-Z][a-z])")
_LETTER_DIGIT_RE = re.compile(r"([a-zA-Z])(\d)")
_DIGIT_LETTER_RE = re.compile(r"(\d)([a-zA-Z])")
_SEPARATOR_RE = re.compile(r"[-_]")

# Words common in titles but never part of a person's name.
_TITLE_STOP_WORDS = frozenset(
    {
        "the", "a", "an", "of", "and", "in", "on", "at", "to", "for",
        "by", "with", "from", "is", "was", "are", "were", "be", "been",
    }
)

# Author values that mean the authorship is unknown.
_UNKNOWN_AUTHORS = frozenset({"unknown", "various", "anonymous", ""})

# "Author - Title" or "Author - [Series NN] - Title"
_AUTHOR_DASH_TITLE_RE = re.compile(
    r"^(?P<author>.+?)\s+-\s+(?:\[(?P<series>[^\]]+)\]\s+-\s+)?(?P<title>.+)$"
)
# "Title by Author" with a 2-3 word capitalized author
_TITLE_BY_AUTHOR_RE = re.compile(
    r"^(?P<title>.+?)\s+by\s+(?P<author>[A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)$"
)
_SERIES_INDEX_RE = re.compile(r"^(?P<name>.+?)\s+(?P<index>\d+)$")


def needs_cleanup(text: str) -> bool:
    """Check whether a title looks mangled.

    True for CamelCase-joined words, underscore-joined words, or long
    spaceless segments that are likely concatenated.
    """
    text = text.strip()
    if not text:
        return False
    if "_" in text:
        return True
    if _CAMEL_CASE_RE.search(text):
        return True
    segments = text.split("-") if "-" in text else [text]
    return any(" " not in seg and len(seg) >= _MIN_CONCAT_LENGTH for seg in segments)


def _split_camel_case(text: str) -> list[str]:
    """Split "TheTemplarLegacy", "HTMLParser" or "Fahrenheit451" into words."""
    result = _CAMEL_LOWER_UPPER_RE.sub(r"\1_SPLIT_\2", text)
    result = _CAMEL_UPPER_SEQUENCE_RE.sub(r"\1_SPLIT_\2", result)
    result = _LETTER_DIGIT_RE.sub(r"\1_SPLIT_\2", result)
    result = _DIGIT_LETTER_RE.sub(r"\1_SPLIT_\2", result)
    parts = [p for p in result.split("_SPLIT_") if p]
    return parts or [text]


def _split_with_wordninja(text: str) -> str:
    words = wordninja.split(text)
    return " ".join(words) if words else text


def split_concatenated(text: str) -> str:
    """Split a mangled string into space-separated words.

    Hyphens and underscores separate segments, each segment is split at
    CamelCase boundaries, and long all-lowercase leftovers go through
    wordninja's unigram model.
    """
    if not needs_cleanup(text):
        return text

    words: list[str] = []
    for segment in _SEPARATOR_RE.split(text):
        segment = segment.strip()
        if not segment:
            continue
        for part in _split_camel_case(segment):
            if part.islower() and len(part) >= _MIN_CONCAT_LENGTH:
                words.append(_split_with_wordninja(part))
            else:
                words.append(part)
    return " ".join(words)


def _is_likely_person_name(text: str) -> bool:
    """Two or three capitalized words (initials allowed) with no title stop words."""
    words = text.split()
    if len(words) < 2 or len(words) > 3:
        return False
    if not all(word[0].isupper() for word in words):
        return False
    return not any(w.lower() in _TITLE_STOP_WORDS for w in words)


def _detect_author_in_title(title: str) -> tuple[str, str | None]:
    """Split a leading person name off a title, trying three words before two."""
    words = title.split()
    for name_len in (3, 2):
        if len(words) <= name_len:
            continue
        candidate = " ".join(words[:name_len])
        if _is_likely_person_name(candidate):
            return " ".join(words[name_len:]), candidate
    return title, None


def _has_valid_authors(authors: tuple[str, ...]) -> bool:
    if not authors:
        return False
    return not all(a.strip().lower() in _UNKNOWN_AUTHORS for a in authors)


@dataclass
class _StructuralMatch:
    title: str
    author: str
    series: SeriesInfo | None = None


def _parse_series_bracket(text: str) -> SeriesInfo:
    m = _SERIES_INDEX_RE.match(text.strip())
    if m:
        return SeriesInfo(name=m.group("name"), volume=float(m.group("index")))
    return SeriesInfo(name=text.strip())


def _detect_structural_pattern(title: str) -> _StructuralMatch | None:
    """Detect "Author - Title", "Author - [Series] - Title" and "Title by Author".

    Callers only try this when the record has no usable authors, so titles
    like "Stand by Me" keep their meaning.
    """
    m = _AUTHOR_DASH_TITLE_RE.match(title)
    if m:
        author = m.group("author").strip()
        if _is_likely_person_name(author):
            series_raw = m.group("series")
            return _StructuralMatch(
                title=m.group("title").strip(),
                author=author,
                series=_parse_series_bracket(series_raw) if series_raw else None,
            )

    m = _TITLE_BY_AUTHOR_RE.match(title)
    if m:
        author = m.group("author").strip()
        if _is_likely_person_name(author):
            return _StructuralMatch(title=m.group("title").strip(), author=author)

    return None


@dataclass
class CleanupResult:
    """Result of cleaning a record.

    Attributes:
        original: The unmodified input record.
        cleaned: The cleaned record (same object as original if unmodified).
        was_modified: Whether any fields were changed.
    """

    original: MetadataRecord
    cleaned: MetadataRecord
    was_modified: bool


def clean_record(record: MetadataRecord) -> CleanupResult:
    """Clean mangled embedded metadata before it is used as a query.

    Placeholder authors ("Unknown", "Various") are dropped unconditionally.
    When no real author is left, structural "Author - Title" patterns are
    tried first; otherwise mangled titles are split into words and a leading
    person name is lifted out as the author.
    """
    title = record.title or ""
    authors = record.authors
    series = record.series
    modified = False

    if authors and not _has_valid_authors(authors):
        authors = ()
        modified = True

    structural = None if authors else _detect_structural_pattern(title)
    if structural:
        title = structural.title
        authors = (structural.author,)
        if structural.series:
            series = structural.series
        modified = True
    elif needs_cleanup(title):
        title = split_concatenated(title)
        modified = True
        if not authors:
            title, detected = _detect_author_in_title(title)
            if detected:
                authors = (detected,)

    if not modified:
        return CleanupResult(original=record, cleaned=record, was_modified=False)

    cleaned = replace(record, title=title or None, authors=authors, series=series)
    return CleanupResult(original=record, cleaned=cleaned, was_modified=True)


def query_from_record(record: MetadataRecord) -> MultiCriteriaQuery:
    """Build the catalog query for a record, preferring its first ISBN."""
    if record.isbn:
        return MultiCriteriaQuery(isbn=record.isbn[0])
    cleaned = clean_record(record).cleaned
    return MultiCriteriaQuery(
        title=cleaned.title,
        authors=cleaned.authors[:1],
        language=cleaned.language,
    )
