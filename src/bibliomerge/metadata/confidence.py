# ABOUTME: Confidence engine turning agreement, reliability and completeness into one score.
# ABOUTME: Produces a bounded, tiered confidence with a full factor breakdown for auditing.

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from bibliomerge.metadata.dates import extract_year
from bibliomerge.metadata.normalization import clean_isbn, normalize_for_comparison
from bibliomerge.metadata.types import MetadataRecord

logger = logging.getLogger(__name__)

# Tier lower bounds, checked from the top down.
_TIERS: tuple[tuple[float, str], ...] = (
    (0.95, "exceptional"),
    (0.90, "strong"),
    (0.80, "good"),
    (0.65, "moderate"),
    (0.50, "weak"),
)

_CONSENSUS_PER_SOURCE = 0.03
_QUALITY_BASELINE = 0.7
_QUALITY_SCALE = 0.1
_SOURCE_COUNT_CAP = 0.05
_SOURCE_COUNT_STEP = 0.01
_RELIABILITY_BASELINE = 0.7
_RELIABILITY_MAX_BOOST = 0.08

# Consensus thresholds, applied before the tier gates.
_STRONG_CONSENSUS_AGREEMENT = 0.9
_STRONG_CONSENSUS_UPLIFT = 1.05
_MODERATE_CONSENSUS_AGREEMENT = 0.7
_WEAK_CONSENSUS_AGREEMENT = 0.6
_WEAK_CONSENSUS_THRESHOLD_CAP = 0.85

# Tier gates.
_EXCEPTIONAL_FLOOR = 0.95
_EXCEPTIONAL_MIN_AGREEMENT = 0.85
_EXCEPTIONAL_MIN_SOURCES = 3
_STRONG_FLOOR = 0.9
_STRONG_MIN_AGREEMENT = 0.7
_STRONG_MIN_SOURCES = 2
_WEAK_CONSENSUS_CAP = 0.89


@dataclass(frozen=True)
class ConfidenceConfig:
    """Tuning constants for the confidence engine."""

    max_confidence: float = 0.98
    min_confidence: float = 0.3
    max_consensus_boost: float = 0.15
    max_agreement_boost: float = 0.1
    max_disagreement_penalty: float = 0.2


@dataclass(frozen=True)
class SourceFactors:
    """Underlying measurements the boosts and caps were derived from."""

    source_count: int
    agreement_score: float
    avg_quality: float
    consensus_strength: float
    reliability_score: float


@dataclass(frozen=True)
class ConfidenceFactors:
    """Audit trail of one confidence computation."""

    base_confidence: float
    final_confidence: float
    tier: str
    factors: SourceFactors
    consensus_boost: float = 0.0
    agreement_boost: float = 0.0
    quality_boost: float = 0.0
    source_count_boost: float = 0.0
    reliability_boost: float = 0.0
    disagreement_penalty: float = 0.0
    penalties: tuple[str, ...] = field(default=())


def confidence_tier(confidence: float) -> str:
    """Map a confidence value to its tier name."""
    for threshold, name in _TIERS:
        if confidence >= threshold:
            return name
    return "poor"


def _record_year(record: MetadataRecord) -> int | None:
    return extract_year(record.publication_date)


def _field_agreement(values: list[str] | list[int]) -> float | None:
    """1.0 when all values match, else 0.5 / unique count; None under two values."""
    if len(values) < 2:
        return None
    unique = len(set(values))
    return 1.0 if unique == 1 else 0.5 / unique


def calculate_agreement_boost(records: Sequence[MetadataRecord], max_boost: float = 0.1) -> float:
    """Boost for field-level agreement across title, authors, ISBNs and year.

    Only fields present in at least two records are scored. The average
    field agreement is scaled into [0, max_boost].
    """
    if len(records) < 2:
        return 0.0

    titles = [normalize_for_comparison(r.title) for r in records if r.title]
    authors = [
        "|".join(sorted(normalize_for_comparison(a) for a in r.authors))
        for r in records
        if r.authors
    ]
    isbns = ["|".join(sorted(clean_isbn(i) for i in r.isbn)) for r in records if r.isbn]
    years = [year for r in records if (year := _record_year(r)) is not None]

    scores = [
        score
        for score in (
            _field_agreement(titles),
            _field_agreement(authors),
            _field_agreement(isbns),
            _field_agreement(years),
        )
        if score is not None
    ]
    if not scores:
        return 0.0
    return sum(scores) / len(scores) * max_boost


def calculate_disagreement_penalty(
    records: Sequence[MetadataRecord], max_penalty: float = 0.2
) -> float:
    """Penalty for conflicting titles, author counts and publication years."""
    if len(records) < 2:
        return 0.0

    disagreement = 0.0
    fields_checked = 0

    titles = [normalize_for_comparison(r.title) for r in records if r.title]
    if len(titles) >= 2:
        unique = len(set(titles))
        if unique > 1:
            disagreement += (unique - 1) / len(titles)
        fields_checked += 1

    author_counts = [len(r.authors) for r in records if r.authors]
    if len(author_counts) >= 2:
        most = max(author_counts)
        fewest = min(author_counts)
        if most != fewest:
            disagreement += 0.3 * ((most - fewest) / most)
        fields_checked += 1

    years = [year for r in records if (year := _record_year(r)) is not None]
    if len(years) >= 2:
        spread = max(years) - min(years)
        if spread > 0:
            disagreement += min(0.5, spread * 0.1)
        fields_checked += 1

    if fields_checked == 0:
        return 0.0
    return min(max_penalty, disagreement / fields_checked * max_penalty)


def calculate_data_completeness(record: MetadataRecord) -> float:
    """Fraction of the nine core fields that are populated."""
    present = [
        record.title,
        record.authors,
        record.isbn,
        record.publication_date,
        record.publisher,
        record.subjects,
        record.description,
        record.language,
        record.page_count,
    ]
    return sum(1 for value in present if value) / len(present)


def calculate_source_reliability_score(records: Sequence[MetadataRecord]) -> float:
    """Confidence averaged with weights of confidence times completeness."""
    total_weight = 0.0
    weighted_sum = 0.0
    for record in records:
        weight = record.confidence * calculate_data_completeness(record)
        total_weight += weight
        weighted_sum += record.confidence * weight
    return weighted_sum / total_weight if total_weight > 0 else 0.0


def calculate_reliability_boost(records: Sequence[MetadataRecord]) -> float:
    """Scale reliability above 0.7 into a boost of at most 0.08."""
    if not records:
        return 0.0
    score = calculate_source_reliability_score(records)
    scale = 1.0 - _RELIABILITY_BASELINE
    return max(0.0, (score - _RELIABILITY_BASELINE) * _RELIABILITY_MAX_BOOST / scale)


def calculate_overall_agreement_score(records: Sequence[MetadataRecord]) -> float:
    """Agreement in [0, 1] over titles, first authors and shared ISBNs.

    Fewer than two records, or no comparable fields, count as full
    agreement.
    """
    if len(records) < 2:
        return 1.0

    total = 0.0
    comparisons = 0

    titles = [normalize_for_comparison(r.title) for r in records if r.title]
    if len(titles) >= 2:
        total += 1 - (len(set(titles)) - 1) / len(titles)
        comparisons += 1

    first_authors = [normalize_for_comparison(r.authors[0]) for r in records if r.authors]
    if len(first_authors) >= 2:
        total += 1 - (len(set(first_authors)) - 1) / len(first_authors)
        comparisons += 1

    isbn_sets = [{clean_isbn(i) for i in r.isbn} for r in records if r.isbn]
    if len(isbn_sets) >= 2:
        shared = any(isbn in other for isbn in isbn_sets[0] for other in isbn_sets[1:])
        total += 1.0 if shared else 0.3
        comparisons += 1

    return total / comparisons if comparisons else 1.0


def calculate_consensus_strength(records: Sequence[MetadataRecord]) -> float:
    """Agreement plus a small bonus per source beyond two, capped at 1.0."""
    if len(records) < 2:
        return 1.0
    bonus = min(0.2, (len(records) - 2) * 0.05)
    return min(1.0, calculate_overall_agreement_score(records) + bonus)


def _apply_consensus_thresholds(confidence: float, agreement: float, count: int) -> float:
    if agreement >= _STRONG_CONSENSUS_AGREEMENT and count >= 3:
        return min(0.98, confidence * _STRONG_CONSENSUS_UPLIFT)
    if agreement >= _MODERATE_CONSENSUS_AGREEMENT:
        return confidence
    if agreement < _WEAK_CONSENSUS_AGREEMENT:
        return min(_WEAK_CONSENSUS_THRESHOLD_CAP, confidence)
    return confidence


def _apply_caps(
    confidence: float, agreement: float, count: int, config: ConfidenceConfig
) -> tuple[float, list[str]]:
    """Apply the tier gates, then the floor and the ceiling, in that order."""
    penalties: list[str] = []
    value = confidence

    if value >= 1.0:
        value = config.max_confidence
        penalties.append("perfect-score-cap")

    if value > _EXCEPTIONAL_FLOOR and (
        agreement < _EXCEPTIONAL_MIN_AGREEMENT or count < _EXCEPTIONAL_MIN_SOURCES
    ):
        value = min(_EXCEPTIONAL_FLOOR, value)
        penalties.append("exceptional-tier-requirements-not-met")

    if _STRONG_FLOOR < value <= _EXCEPTIONAL_FLOOR and (
        agreement < _STRONG_MIN_AGREEMENT or count < _STRONG_MIN_SOURCES
    ):
        value = min(_STRONG_FLOOR, value)
        penalties.append("strong-tier-requirements-not-met")

    if agreement < _WEAK_CONSENSUS_AGREEMENT:
        value = min(_WEAK_CONSENSUS_CAP, value)
        penalties.append("weak-consensus-cap")

    if value < config.min_confidence:
        value = config.min_confidence
        penalties.append("minimum-confidence-floor")

    return min(config.max_confidence, value), penalties


def _empty_factors(config: ConfidenceConfig) -> ConfidenceFactors:
    return ConfidenceFactors(
        base_confidence=config.min_confidence,
        final_confidence=config.min_confidence,
        tier="poor",
        factors=SourceFactors(
            source_count=0,
            agreement_score=0.0,
            avg_quality=0.0,
            consensus_strength=0.0,
            reliability_score=0.0,
        ),
    )


def _single_source_factors(record: MetadataRecord, config: ConfidenceConfig) -> ConfidenceFactors:
    penalties = ["single-source-cap"]
    final = min(config.max_confidence, record.confidence)
    if final < config.min_confidence:
        final = config.min_confidence
        penalties.append("minimum-confidence-floor")
    return ConfidenceFactors(
        base_confidence=record.confidence,
        final_confidence=final,
        tier=confidence_tier(final),
        penalties=tuple(penalties),
        factors=SourceFactors(
            source_count=1,
            agreement_score=1.0,
            avg_quality=record.confidence,
            consensus_strength=1.0,
            reliability_score=record.confidence,
        ),
    )


def _multi_source_factors(
    records: Sequence[MetadataRecord], config: ConfidenceConfig
) -> ConfidenceFactors:
    count = len(records)
    total_confidence = sum(r.confidence for r in records)
    if total_confidence > 0:
        base = sum(r.confidence * r.confidence for r in records) / total_confidence
    else:
        base = 0.0

    consensus_boost = min(config.max_consensus_boost, (count - 1) * _CONSENSUS_PER_SOURCE)
    agreement_boost = calculate_agreement_boost(records, config.max_agreement_boost)
    avg_quality = total_confidence / count
    quality_boost = max(0.0, (avg_quality - _QUALITY_BASELINE) * _QUALITY_SCALE)
    source_count_boost = min(_SOURCE_COUNT_CAP, max(0.0, (count - 3) * _SOURCE_COUNT_STEP))
    reliability_boost = calculate_reliability_boost(records)
    disagreement_penalty = calculate_disagreement_penalty(
        records, config.max_disagreement_penalty
    )

    penalties: list[str] = []
    if disagreement_penalty > 0.1:
        penalties.append("high-disagreement")
    if avg_quality < 0.6:
        penalties.append("low-source-quality")
    if count < 3:
        penalties.append("few-sources")

    preliminary = (
        base
        + consensus_boost
        + agreement_boost
        + quality_boost
        + source_count_boost
        + reliability_boost
        - disagreement_penalty
    )

    agreement = calculate_overall_agreement_score(records)
    preliminary = _apply_consensus_thresholds(preliminary, agreement, count)
    final, cap_penalties = _apply_caps(preliminary, agreement, count, config)
    penalties.extend(cap_penalties)

    return ConfidenceFactors(
        base_confidence=base,
        final_confidence=final,
        tier=confidence_tier(final),
        consensus_boost=consensus_boost,
        agreement_boost=agreement_boost,
        quality_boost=quality_boost,
        source_count_boost=source_count_boost,
        reliability_boost=reliability_boost,
        disagreement_penalty=disagreement_penalty,
        penalties=tuple(penalties),
        factors=SourceFactors(
            source_count=count,
            agreement_score=agreement,
            avg_quality=avg_quality,
            consensus_strength=calculate_consensus_strength(records),
            reliability_score=calculate_source_reliability_score(records),
        ),
    )


def calculate_confidence_factors(
    records: Sequence[MetadataRecord], config: ConfidenceConfig | None = None
) -> ConfidenceFactors:
    """Compute confidence factors for records describing the same entity.

    The order of operations is fixed: boosts and penalty are summed, then
    the consensus thresholds apply, then the tier gates, then the floor and
    ceiling.

    Args:
        records: Same-entity records, typically after deduplication.
        config: Tuning constants; defaults to ConfidenceConfig().

    Returns:
        ConfidenceFactors whose final_confidence lies within
        [config.min_confidence, config.max_confidence].
    """
    cfg = config or ConfidenceConfig()
    if not records:
        factors = _empty_factors(cfg)
    elif len(records) == 1:
        factors = _single_source_factors(records[0], cfg)
    else:
        factors = _multi_source_factors(records, cfg)

    logger.debug(
        "Confidence %.3f (%s) from %d source(s), penalties=%s",
        factors.final_confidence,
        factors.tier,
        factors.factors.source_count,
        ",".join(factors.penalties) or "none",
    )
    return factors


def calculate_aggregated_confidence(
    records: Sequence[MetadataRecord], config: ConfidenceConfig | None = None
) -> tuple[float, ConfidenceFactors]:
    """Return the final confidence together with its factors."""
    factors = calculate_confidence_factors(records, config)
    return factors.final_confidence, factors
