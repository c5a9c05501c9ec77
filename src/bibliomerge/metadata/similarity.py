# ABOUTME: String, set, ISBN and date similarity measures shared by the reconcilers.
# ABOUTME: Levenshtein similarity is (maxLen - distance) / maxLen on lowercased input.

import re

from rapidfuzz.distance import Levenshtein

from bibliomerge.metadata.dates import PublicationDate

_ISBN_STRIP_RE = re.compile(r"[-\s]")


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance counting single-character inserts, deletes and substitutions."""
    return Levenshtein.distance(a, b)


def string_similarity(a: str | None, b: str | None) -> float:
    """Return 1 - distance/maxLen over lowercased, trimmed strings.

    Empty or missing input on either side scores 0.0.
    """
    if not a or not b:
        return 0.0
    left = a.lower().strip()
    right = b.lower().strip()
    if left == right:
        return 1.0
    return Levenshtein.normalized_similarity(left, right)


def array_similarity(a: list[str] | tuple[str, ...], b: list[str] | tuple[str, ...]) -> float:
    """Jaccard similarity of two string collections, case-insensitive."""
    if not a or not b:
        return 0.0
    left = {item.lower().strip() for item in a}
    right = {item.lower().strip() for item in b}
    return len(left & right) / len(left | right)


def isbn_similarity(a: list[str] | tuple[str, ...], b: list[str] | tuple[str, ...]) -> float:
    """1.0 when the two ISBN lists share any value after stripping separators."""
    if not a or not b:
        return 0.0
    left = {_ISBN_STRIP_RE.sub("", isbn) for isbn in a}
    right = {_ISBN_STRIP_RE.sub("", isbn) for isbn in b}
    return 1.0 if left & right else 0.0


def date_similarity(a: PublicationDate | None, b: PublicationDate | None) -> float:
    """Score two dates by how far down year/month/day they agree."""
    if a is None or b is None or not a.year or not b.year:
        return 0.0
    if a.year == b.year:
        if a.month and b.month:
            if a.month == b.month:
                if a.day and b.day:
                    return 1.0 if a.day == b.day else 0.8
                return 0.9
            return 0.7
        return 0.8
    year_diff = abs(a.year - b.year)
    if year_diff <= 1:
        return 0.6
    if year_diff <= 2:
        return 0.4
    return 0.0
