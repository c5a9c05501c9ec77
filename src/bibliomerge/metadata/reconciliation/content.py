# ABOUTME: ContentReconciler cleans and scores descriptions and cover images from several sources.
# ABOUTME: Picks the best-quality description and the best-scoring cover image.

import html
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, replace

from bibliomerge.metadata.reconciliation.types import (
    Conflict,
    CoverImageChoice,
    Description,
    MetadataSource,
    ReconciledField,
    ReconciliationError,
    SourcedValue,
)

logger = logging.getLogger(__name__)

_DESCRIPTION_PREFIXES = (
    "description:",
    "summary:",
    "synopsis:",
    "about:",
    "overview:",
    "book description:",
    "product description:",
    "editorial review:",
    "from the publisher:",
    "from the back cover:",
    "book summary:",
)
_PREFIX_RE = re.compile(
    r"^(?:" + "|".join(re.escape(p) for p in _DESCRIPTION_PREFIXES) + r")\s*",
    re.IGNORECASE,
)
_HTML_TAG_RE = re.compile(r"<[^>]*>")
_BLANK_LINES_RE = re.compile(r"\n{3,}")
_INLINE_SPACE_RE = re.compile(r"[ \t]+")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

_POSITIVE_SOURCE_HINTS = (
    "publisher",
    "official",
    "author",
    "editorial",
    "book jacket",
    "back cover",
    "dust jacket",
    "synopsis",
    "summary",
)
_NEGATIVE_SOURCE_HINTS = ("user", "review", "comment", "opinion", "personal", "brief", "short", "incomplete")
_PROMOTIONAL_WORDS = ("amazing", "incredible", "must-read", "bestseller", "award-winning")

_MIN_DESCRIPTION_LENGTH = 10
_DIFFERENT_TEXT_SIMILARITY = 0.7

# Cover image quality thresholds (pixels; aspect ratio is height / width).
_MIN_WIDTH = 200
_MIN_HEIGHT = 300
_PREFERRED_WIDTH = 400
_PREFERRED_HEIGHT = 600
_MAX_WIDTH = 2000
_MAX_HEIGHT = 3000
_PREFERRED_ASPECT = 1.5
_ASPECT_TOLERANCE = 0.3

_IMAGE_FORMATS = {"jpg": "jpeg", "jpeg": "jpeg", "png": "png", "webp": "webp", "gif": "gif", "svg": "svg"}
_FORMAT_SCORES = {"jpeg": 0.1, "png": 0.1, "webp": 0.05, "gif": -0.05}
_SIZE_SCORES = {"original": 0.15, "large": 0.1, "medium": 0.05, "small": 0.0, "thumbnail": -0.1}

_EMPTY_CONFIDENCE = 0.1


@dataclass(frozen=True)
class ContentInput:
    source: MetadataSource
    descriptions: tuple[str | Description, ...] = ()
    cover_images: tuple[str | CoverImageChoice, ...] = ()


@dataclass(frozen=True)
class ReconciledContent:
    description: ReconciledField[Description]
    cover_image: ReconciledField[CoverImageChoice]


def clean_description_text(text: str | None) -> str:
    """Strip label prefixes and HTML, unescape entities, and tidy whitespace."""
    if not text:
        return ""
    cleaned = _PREFIX_RE.sub("", text.strip())
    cleaned = cleaned.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = _BLANK_LINES_RE.sub("\n\n", cleaned)
    cleaned = _INLINE_SPACE_RE.sub(" ", cleaned).strip()
    cleaned = _HTML_TAG_RE.sub("", cleaned)
    return html.unescape(cleaned).replace("\xa0", " ").strip()


def detect_description_type(text: str, source: str | None = None) -> str:
    lower_source = (source or "").lower()
    if "publisher" in lower_source or "official" in lower_source:
        return "summary"
    if "review" in lower_source or "editorial" in lower_source:
        return "blurb"
    if "abstract" in lower_source or "academic" in lower_source:
        return "abstract"

    lower = text.lower()
    for kind in ("synopsis", "summary", "abstract"):
        if kind in lower:
            return kind
    if len(text) < 200:
        return "blurb"
    if len(text) > 1000:
        return "description"
    return "summary"


def detect_description_length(text: str) -> str:
    if len(text) < 200:
        return "short"
    if len(text) < 800:
        return "medium"
    return "long"


def description_quality(text: str, source: str | None = None) -> float:
    """Heuristic 0.1..1 quality from length, sentence shape, source hints and hype."""
    if len(text) < _MIN_DESCRIPTION_LENGTH:
        return 0.1

    quality = 0.5
    length = len(text)
    if 100 <= length <= 1000:
        quality += 0.2
    elif 50 <= length <= 1500:
        quality += 0.1
    elif length < 50 or length > 2000:
        quality -= 0.1

    if source:
        lower_source = source.lower()
        if any(hint in lower_source for hint in _POSITIVE_SOURCE_HINTS):
            quality += 0.1
        if any(hint in lower_source for hint in _NEGATIVE_SOURCE_HINTS):
            quality -= 0.1

    sentences = [s for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]
    if 2 <= len(sentences) <= 10:
        quality += 0.1
    if text.rstrip()[-1:] in (".", "!", "?"):
        quality += 0.05

    lower = text.lower()
    if sum(1 for word in _PROMOTIONAL_WORDS if word in lower) > 2:
        quality -= 0.1
    return max(0.1, min(1.0, quality))


def text_similarity(a: str, b: str) -> float:
    """Jaccard similarity over words longer than three characters."""
    words_a = {w for w in a.lower().split() if len(w) > 3}
    words_b = {w for w in b.lower().split() if len(w) > 3}
    union = words_a | words_b
    return len(words_a & words_b) / len(union) if union else 0.0


def detect_image_format(url: str) -> str:
    path = url.lower().split("?", 1)[0]
    return _IMAGE_FORMATS.get(path.rsplit(".", 1)[-1], "other")


def detect_image_size(width: int | None, height: int | None) -> str:
    if not width or not height:
        return "medium"
    area = width * height
    if area < 40_000:
        return "thumbnail"
    if area < 160_000:
        return "small"
    if area < 640_000:
        return "medium"
    if area < 2_560_000:
        return "large"
    return "original"


def image_quality_score(image: CoverImageChoice) -> float:
    """Score a cover image on resolution, aspect ratio, format and verification."""
    score = 0.5
    if image.width and image.height:
        if image.width >= _PREFERRED_WIDTH:
            score += 0.2
        elif image.width >= _MIN_WIDTH:
            score += 0.1
        else:
            score -= 0.2

        if image.height >= _PREFERRED_HEIGHT:
            score += 0.2
        elif image.height >= _MIN_HEIGHT:
            score += 0.1
        else:
            score -= 0.2

        if image.width > _MAX_WIDTH or image.height > _MAX_HEIGHT:
            score -= 0.1

        if image.aspect_ratio:
            diff = abs(image.aspect_ratio - _PREFERRED_ASPECT)
            if diff <= _ASPECT_TOLERANCE:
                score += 0.1
            elif diff > _ASPECT_TOLERANCE * 2:
                score -= 0.1

    score += _FORMAT_SCORES.get(image.format or "", 0.0)
    if image.verified:
        score += 0.1
    score += _SIZE_SCORES.get(image.quality or "", 0.0)
    return max(0.1, min(1.0, score))


class ContentReconciler:
    """Reconciles descriptions and cover images reported by several sources."""

    def normalize_description(self, value: str | Description) -> Description:
        if isinstance(value, Description):
            text = clean_description_text(value.text)
            return replace(
                value,
                text=text,
                type=value.type or detect_description_type(value.text, value.source),
                length=value.length or detect_description_length(text),
                quality=value.quality if value.quality is not None else description_quality(text, value.source),
                raw=value.raw or value.text,
            )
        text = clean_description_text(value)
        return Description(
            text=text,
            type=detect_description_type(value),
            length=detect_description_length(text),
            quality=description_quality(text),
            raw=value,
        )

    def normalize_cover_image(self, value: str | CoverImageChoice) -> CoverImageChoice:
        if isinstance(value, CoverImageChoice):
            aspect = value.aspect_ratio
            if aspect is None and value.width and value.height:
                aspect = value.height / value.width
            return replace(
                value,
                format=value.format or detect_image_format(value.url),
                quality=value.quality or detect_image_size(value.width, value.height),
                aspect_ratio=aspect,
            )
        return CoverImageChoice(url=value, format=detect_image_format(value), quality="medium")

    def reconcile(self, inputs: Sequence[ContentInput]) -> ReconciledContent:
        """Reconcile descriptions and cover images.

        Raises:
            ReconciliationError: If inputs is empty.
        """
        if not inputs:
            raise ReconciliationError("No content descriptions to reconcile")
        return ReconciledContent(
            description=self.reconcile_descriptions(inputs),
            cover_image=self.reconcile_cover_images(inputs),
        )

    def reconcile_descriptions(self, inputs: Sequence[ContentInput]) -> ReconciledField[Description]:
        """Best description by quality, then reliability, then length.

        Quality and reliability only decide when they differ by more than 0.1.
        """
        sources = tuple(item.source for item in inputs)
        candidates = []
        for item in inputs:
            for raw in item.descriptions:
                description = self.normalize_description(raw)
                if len(description.text) > _MIN_DESCRIPTION_LENGTH:
                    candidates.append(SourcedValue(description, item.source))

        if not candidates:
            return ReconciledField(
                value=Description(text="", type="description", length="short", quality=0.1),
                confidence=_EMPTY_CONFIDENCE,
                sources=sources,
                reasoning="No valid descriptions found",
            )

        best = candidates[0]
        for candidate in candidates[1:]:
            if _better_description(candidate, best):
                best = candidate

        confidence = self.description_confidence(best.value, best.source)
        conflicts: tuple[Conflict, ...] = ()
        if len(candidates) > 1 and any(
            text_similarity(c.value.text, best.value.text) < _DIFFERENT_TEXT_SIMILARITY for c in candidates
        ):
            conflicts = (
                Conflict(
                    field="description",
                    values=tuple(candidates),
                    resolution="Selected highest quality description based on content quality and source reliability",
                ),
            )

        if len(candidates) == 1:
            reasoning = "Single source description"
        elif conflicts:
            reasoning = "Selected best description from multiple sources with conflict resolution"
        else:
            reasoning = "Selected best available description"
        return ReconciledField(
            value=best.value,
            confidence=confidence,
            sources=sources,
            conflicts=conflicts,
            reasoning=reasoning,
        )

    def description_confidence(self, description: Description, source: MetadataSource) -> float:
        quality = description.quality if description.quality is not None else 0.5
        confidence = source.reliability * (0.5 + quality * 0.5)
        if description.length == "medium":
            confidence *= 1.1
        elif description.length == "long":
            confidence *= 1.05
        return max(0.1, min(1.0, confidence))

    def reconcile_cover_images(self, inputs: Sequence[ContentInput]) -> ReconciledField[CoverImageChoice]:
        """Best cover by image quality score times source reliability."""
        sources = tuple(item.source for item in inputs)
        images = [
            SourcedValue(self.normalize_cover_image(raw), item.source)
            for item in inputs
            for raw in item.cover_images
            if (raw.url if isinstance(raw, CoverImageChoice) else raw)
        ]
        if not images:
            return ReconciledField(
                value=CoverImageChoice(url="", quality="medium"),
                confidence=_EMPTY_CONFIDENCE,
                sources=sources,
                reasoning="No cover images found",
            )

        best = max(images, key=lambda item: image_quality_score(item.value) * item.source.reliability)
        conflicts: tuple[Conflict, ...] = ()
        if len({item.value.url for item in images}) > 1:
            conflicts = (
                Conflict(
                    field="cover_image",
                    values=tuple(images),
                    resolution="Selected highest quality image based on resolution, format, and source reliability",
                ),
            )

        if len(images) == 1:
            reasoning = "Single source cover image"
        elif conflicts:
            reasoning = "Selected best cover image from multiple sources with conflict resolution"
        else:
            reasoning = "Selected best available cover image"
        return ReconciledField(
            value=best.value,
            confidence=best.source.reliability * image_quality_score(best.value),
            sources=sources,
            conflicts=conflicts,
            reasoning=reasoning,
        )


def _better_description(a: SourcedValue[Description], b: SourcedValue[Description]) -> bool:
    quality_diff = (a.value.quality or 0) - (b.value.quality or 0)
    if abs(quality_diff) > 0.1:
        return quality_diff > 0
    reliability_diff = a.source.reliability - b.source.reliability
    if abs(reliability_diff) > 0.1:
        return reliability_diff > 0
    return len(a.value.text) > len(b.value.text)
