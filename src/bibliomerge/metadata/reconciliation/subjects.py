# ABOUTME: SubjectReconciler normalizes subjects, genres and classification codes across sources.
# ABOUTME: Deduplicates near-identical subjects and orders them subject > genre > keyword > tag.

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, replace

from bibliomerge.metadata.reconciliation.types import (
    Conflict,
    MetadataSource,
    ReconciledField,
    ReconciliationError,
    Subject,
    SourcedValue,
)
from bibliomerge.metadata.similarity import string_similarity

logger = logging.getLogger(__name__)

# Dewey hundreds and selected divisions.
DEWEY_CLASSES: dict[str, tuple[str, ...]] = {
    "000": ("computer science", "information", "general knowledge", "encyclopedias"),
    "004": ("computer science", "computing", "data processing"),
    "020": ("library science", "information science"),
    "100": ("philosophy", "psychology", "ethics"),
    "150": ("psychology", "mental health", "behavior"),
    "170": ("ethics", "moral philosophy"),
    "200": ("religion", "theology", "bible"),
    "220": ("bible", "biblical studies"),
    "300": ("social sciences", "sociology", "anthropology"),
    "320": ("political science", "politics", "government"),
    "330": ("economics", "finance", "business"),
    "340": ("law", "legal studies"),
    "370": ("education", "teaching", "learning"),
    "400": ("language", "linguistics", "dictionaries"),
    "420": ("english language", "english"),
    "500": ("science", "mathematics", "natural sciences"),
    "510": ("mathematics", "math", "algebra", "geometry"),
    "520": ("astronomy", "space", "cosmology"),
    "530": ("physics", "mechanics", "thermodynamics"),
    "540": ("chemistry", "chemical sciences"),
    "570": ("biology", "life sciences", "botany", "zoology"),
    "600": ("technology", "applied sciences", "medicine"),
    "610": ("medicine", "health", "medical sciences"),
    "620": ("engineering", "applied physics"),
    "650": ("management", "business", "advertising"),
    "700": ("arts", "fine arts", "recreation"),
    "720": ("architecture", "building design"),
    "780": ("music",),
    "790": ("recreation", "games", "sports"),
    "800": ("literature", "rhetoric", "literary criticism"),
    "810": ("american literature",),
    "820": ("english literature",),
    "900": ("history", "geography", "biography"),
    "910": ("geography", "travel"),
    "920": ("biography", "genealogy"),
    "940": ("european history",),
    "970": ("north american history",),
}

LCC_CLASSES: dict[str, tuple[str, ...]] = {
    "A": ("general works", "encyclopedias"),
    "B": ("philosophy", "psychology", "religion"),
    "C": ("auxiliary sciences of history",),
    "D": ("world history", "history of europe"),
    "E": ("history of america",),
    "F": ("history of america",),
    "G": ("geography", "anthropology", "recreation"),
    "H": ("social sciences",),
    "J": ("political science",),
    "K": ("law",),
    "L": ("education",),
    "M": ("music",),
    "N": ("fine arts",),
    "P": ("language", "literature"),
    "Q": ("science",),
    "R": ("medicine",),
    "S": ("agriculture",),
    "T": ("technology",),
    "U": ("military science",),
    "V": ("naval science",),
    "Z": ("bibliography", "library science"),
}

# Canonical genre -> variants that map to it.
GENRES: dict[str, tuple[str, ...]] = {
    "fiction": ("novel", "novels", "fiction", "literary fiction"),
    "mystery": ("mystery", "detective", "crime", "thriller", "suspense"),
    "romance": ("romance", "love story", "romantic fiction"),
    "science fiction": ("science fiction", "sci-fi", "sf", "speculative fiction"),
    "fantasy": ("fantasy", "epic fantasy", "urban fantasy", "magical realism"),
    "horror": ("horror", "supernatural", "gothic", "dark fantasy"),
    "historical fiction": ("historical fiction", "historical novel", "period fiction"),
    "young adult": ("young adult", "ya", "teen fiction", "juvenile fiction"),
    "children": ("children", "juvenile", "kids", "picture book"),
    "biography": ("biography", "autobiography", "memoir", "life story"),
    "history": ("history", "historical", "past events"),
    "science": ("science", "scientific", "research", "study"),
    "self-help": ("self-help", "self improvement", "personal development"),
    "business": ("business", "management", "entrepreneurship", "finance"),
    "health": ("health", "wellness", "medical", "fitness"),
    "cooking": ("cooking", "recipes", "culinary", "food"),
    "travel": ("travel", "guidebook", "tourism"),
    "adventure": ("adventure",),
    "art": ("art", "artistic", "visual arts", "design"),
    "music": ("music", "musical", "songs", "composition"),
    "sports": ("sports", "athletics", "games", "recreation"),
    "religion": ("religion", "spiritual", "faith", "theology"),
    "philosophy": ("philosophy", "philosophical", "ethics", "logic"),
    "poetry": ("poetry", "poems", "verse", "poetic"),
    "drama": ("drama", "plays", "theater", "theatrical"),
    "essay": ("essay", "essays", "commentary"),
    "nonfiction": ("nonfiction", "non-fiction"),
    "reference": ("reference", "dictionary", "encyclopedia", "handbook"),
    "textbook": ("textbook", "academic", "educational", "study guide"),
}

_SYNONYMS = {
    "sci-fi": "science fiction",
    "sf": "science fiction",
    "ya": "young adult",
    "non-fiction": "nonfiction",
    "self-improvement": "self-help",
    "cook book": "cookbook",
    "cook books": "cookbooks",
    "guide book": "guidebook",
    "text book": "textbook",
    "how-to": "how to",
    "diy": "do it yourself",
    "wwii": "world war ii",
    "ww2": "world war ii",
    "wwi": "world war i",
    "ww1": "world war i",
    "usa": "united states",
    "uk": "united kingdom",
    "us history": "american history",
    "british history": "english history",
    "computer programming": "programming",
    "web development": "web design",
}

_TYPE_ORDER = ("subject", "genre", "keyword", "tag")
_TYPE_QUALITY = {"subject": 1.0, "genre": 0.8, "keyword": 0.6, "tag": 0.4}
_DUPLICATE_SIMILARITY = 0.9

_ARTICLE_RE = re.compile(r"^(?:the|a|an)\s+", re.IGNORECASE)
_DASH_SEPARATOR_RE = re.compile(r"\s*--\s*")
_SEMICOLON_RE = re.compile(r"\s*;\s*")
_COMMA_RE = re.compile(r"\s*,\s*")
_SPECIAL_RE = re.compile(r"[^\w\s\-;,&/+]")
_WHITESPACE_RE = re.compile(r"\s+")
_BISAC_RE = re.compile(r"^[A-Z]{3}\d{6}")
_DEWEY_RE = re.compile(r"^\d{3}(?:\.\d+)?")
_LCC_RE = re.compile(r"^[A-Z]{1,3}\d+")
_LCSH_SPLIT_RE = re.compile(r"\s*-+\s*")

_EMPTY_CONFIDENCE = 0.1


@dataclass(frozen=True)
class SubjectInput:
    source: MetadataSource
    subjects: tuple[str | Subject, ...] = ()


def normalize_subject_name(name: str) -> str:
    """Lowercase, tidy separators, apply synonyms and fold genre variants."""
    if not name:
        return ""
    text = _ARTICLE_RE.sub("", name.lower().strip())
    text = _DASH_SEPARATOR_RE.sub(" - ", text)
    text = _SEMICOLON_RE.sub("; ", text)
    text = _COMMA_RE.sub(", ", text)
    text = _SPECIAL_RE.sub(" ", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    text = _SYNONYMS.get(text, text)

    for canonical, variants in GENRES.items():
        if text in variants:
            return canonical
    for canonical, variants in GENRES.items():
        if any(string_similarity(text, variant) > _DUPLICATE_SIMILARITY for variant in variants):
            return canonical
    return text


def detect_scheme(value: str) -> str:
    """Classification scheme suggested by a code or heading string."""
    if _BISAC_RE.match(value):
        return "bisac"
    if _DEWEY_RE.match(value):
        return "dewey"
    if _LCC_RE.match(value):
        return "lcc"
    if " -- " in value or " - " in value:
        return "lcsh"
    return "unknown"


def detect_subject_type(name: str) -> str:
    """Genre for an exact genre variant; otherwise tag, keyword or subject by length."""
    lower = name.lower()
    if any(lower in variants for variants in GENRES.values()):
        return "genre"
    words = lower.split()
    if len(words) == 1 and len(lower) < 15:
        return "tag"
    if len(words) <= 3 and len(lower) < 30:
        return "keyword"
    return "subject"


def build_hierarchy(name: str, scheme: str, code: str | None = None) -> tuple[str, ...]:
    """Broader-to-narrower headings for a subject."""
    if code and scheme == "dewey":
        dewey = code[:3]
        levels = [dewey[0] + "00", dewey[:2] + "0", dewey]
        hierarchy: list[str] = []
        for level in dict.fromkeys(levels):
            hierarchy.extend(DEWEY_CLASSES.get(level, ()))
        return tuple(hierarchy)
    if code and scheme == "lcc":
        return LCC_CLASSES.get(code[0], ())
    if scheme == "lcsh":
        return tuple(part for part in _LCSH_SPLIT_RE.split(name) if part)
    return (normalize_subject_name(name),)


def subject_quality(subject: Subject) -> float:
    score = 0.0
    if subject.name.strip():
        score += 1
    if subject.normalized and subject.normalized != subject.name.lower():
        score += 0.5
    if subject.scheme and subject.scheme != "unknown":
        score += 1
    if subject.code:
        score += 0.5
    if len(subject.hierarchy) > 1:
        score += 0.5
    return score + _TYPE_QUALITY.get(subject.type or "", 0.0)


class SubjectReconciler:
    """Reconciles subject and genre lists reported by several sources."""

    def normalize_subject(self, value: str | Subject) -> Subject:
        if isinstance(value, Subject):
            scheme = value.scheme or detect_scheme(value.code or value.name)
            return replace(
                value,
                normalized=value.normalized or normalize_subject_name(value.name),
                scheme=scheme,
                hierarchy=value.hierarchy or build_hierarchy(value.name, scheme, value.code),
                type=value.type or detect_subject_type(value.name),
            )
        scheme = detect_scheme(value)
        return Subject(
            name=value,
            normalized=normalize_subject_name(value),
            scheme=scheme,
            hierarchy=build_hierarchy(value, scheme),
            type=detect_subject_type(value),
        )

    def reconcile(self, inputs: Sequence[SubjectInput]) -> ReconciledField[tuple[Subject, ...]]:
        """Merge subject lists, dropping near-duplicates in favor of reliable sources.

        Raises:
            ReconciliationError: If inputs is empty.
        """
        if not inputs:
            raise ReconciliationError("No subjects to reconcile")

        sources = tuple(item.source for item in inputs)
        collected = [
            SourcedValue(self.normalize_subject(raw), item.source)
            for item in inputs
            for raw in item.subjects
            if (raw.name if isinstance(raw, Subject) else raw or "").strip()
        ]
        if not collected:
            return ReconciledField(
                value=(),
                confidence=_EMPTY_CONFIDENCE,
                sources=sources,
                reasoning="No valid subjects found",
            )

        unique = self._deduplicate(collected)
        unique.sort(key=lambda item: (-item.source.reliability, -subject_quality(item.value)))
        ordered = [
            item.value for kind in _TYPE_ORDER for item in unique if (item.value.type or "subject") == kind
        ]

        conflicts: tuple[Conflict, ...] = ()
        per_source = {
            item.source.name: frozenset(self.normalize_subject(s).normalized for s in item.subjects)
            for item in inputs
            if item.subjects
        }
        if len(per_source) > 1 and len(set(per_source.values())) > 1:
            conflicts = (
                Conflict(
                    field="subjects",
                    values=tuple(SourcedValue(item.subjects, item.source) for item in inputs if item.subjects),
                    resolution="Merged and deduplicated subjects from all sources, prioritizing by source reliability",
                ),
            )

        if len(inputs) == 1:
            reasoning = f"Single source with {len(ordered)} subjects"
        elif conflicts:
            reasoning = "Merged and deduplicated subjects from multiple sources with conflict resolution"
        else:
            reasoning = "Merged and deduplicated subjects from all sources"

        return ReconciledField(
            value=tuple(ordered),
            confidence=self.calculate_confidence(ordered, sources),
            sources=sources,
            conflicts=conflicts,
            reasoning=reasoning,
        )

    def calculate_confidence(self, subjects: Sequence[Subject], sources: Sequence[MetadataSource]) -> float:
        """Mean reliability scaled by subject count, quality and classification coverage."""
        if not subjects or not sources:
            return _EMPTY_CONFIDENCE
        confidence = sum(s.reliability for s in sources) / len(sources)
        if len(subjects) >= 5:
            confidence *= 1.1
        elif len(subjects) >= 3:
            confidence *= 1.05
        elif len(subjects) == 1:
            confidence *= 0.9

        avg_quality = sum(subject_quality(s) for s in subjects) / len(subjects)
        confidence *= 0.7 + avg_quality / 10

        classified = sum(1 for s in subjects if s.scheme and s.scheme != "unknown")
        if classified:
            confidence *= 1 + (classified / len(subjects)) * 0.2
        return max(0.0, min(1.0, confidence))

    def _deduplicate(self, items: list[SourcedValue[Subject]]) -> list[SourcedValue[Subject]]:
        kept: list[SourcedValue[Subject]] = []
        for item in items:
            key = item.value.normalized or item.value.name.lower()
            for index, existing in enumerate(kept):
                existing_key = existing.value.normalized or existing.value.name.lower()
                if key == existing_key or string_similarity(key, existing_key) > _DUPLICATE_SIMILARITY:
                    if item.source.reliability > existing.source.reliability:
                        kept[index] = item
                    break
            else:
                kept.append(item)
        return kept
