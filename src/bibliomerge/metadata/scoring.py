# ABOUTME: Match scoring for provider search hits against the query that produced them.
# ABOUTME: Weighted field similarity becomes the confidence a provider assigns its record.

from collections.abc import Sequence
from difflib import SequenceMatcher

from bibliomerge.metadata.normalization import normalize_isbn, normalize_language_code
from bibliomerge.metadata.types import MetadataRecord

# Match weights; must sum to 1.0
_WEIGHT_TITLE = 0.4
_WEIGHT_AUTHOR = 0.3
_WEIGHT_ISBN = 0.2
_WEIGHT_LANGUAGE = 0.1

# Completeness bonus: the most added on top of the match score.
_COMPLETENESS_BONUS = 0.10

# Per-field weights within the completeness bonus (must sum to 1.0).
_COMPLETENESS_FIELDS: dict[str, float] = {
    "description": 0.30,
    "isbn": 0.25,
    "authors": 0.15,
    "publication_date": 0.15,
    "language": 0.10,
    "publisher": 0.05,
}


def _normalize_author(name: str) -> str:
    """Normalize 'Last, First' to 'First Last' and lowercase."""
    name = name.strip().lower()
    if "," in name:
        parts = [p.strip() for p in name.split(",", 1)]
        name = f"{parts[1]} {parts[0]}"
    return name


def _string_similarity(a: str, b: str) -> float:
    """Case-insensitive string similarity using SequenceMatcher."""
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return SequenceMatcher(None, a.lower(), b.lower()).ratio()


def score_match(
    record: MetadataRecord,
    *,
    title: str | None = None,
    authors: Sequence[str] = (),
    isbn: str | None = None,
    language: str | None = None,
) -> float:
    """Score how well a search hit matches the query terms.

    Uses weighted comparison across title, author, ISBN, and language; a
    query term that was not supplied contributes nothing. Returns a float
    clamped to [0.0, 1.0].
    """
    score = 0.0

    if title:
        score += _WEIGHT_TITLE * _string_similarity(title, record.title or "")

    # Missing authors on either side score 0, not 1.
    query_authors = " ".join(_normalize_author(a) for a in authors)
    record_authors = " ".join(_normalize_author(a) for a in record.authors)
    if query_authors and record_authors:
        score += _WEIGHT_AUTHOR * _string_similarity(query_authors, record_authors)

    if isbn and record.isbn:
        wanted = normalize_isbn(isbn, True)
        if wanted and wanted in {normalize_isbn(i, True) for i in record.isbn}:
            score += _WEIGHT_ISBN

    if (
        language
        and record.language
        and normalize_language_code(language) == normalize_language_code(record.language)
    ):
        score += _WEIGHT_LANGUAGE

    score += completeness_bonus(record)

    return max(0.0, min(1.0, score))


def completeness_bonus(record: MetadataRecord) -> float:
    """Calculate a small bonus based on how many metadata fields are populated.

    Rewards records with richer metadata so they float above sparse stubs
    when match scores are otherwise tied. Returns a value in [0.0, _COMPLETENESS_BONUS].
    """
    filled = 0.0
    for field_name, weight in _COMPLETENESS_FIELDS.items():
        if getattr(record, field_name, None):
            filled += weight
    return _COMPLETENESS_BONUS * filled
