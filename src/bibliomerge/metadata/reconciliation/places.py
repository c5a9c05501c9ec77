# ABOUTME: PlaceReconciler standardizes publication places against a table of publishing-city aliases.
# ABOUTME: Extracts the country from trailing place parts and picks the most reliable place.

import logging
import re
from collections.abc import Sequence

from bibliomerge.metadata.reconciliation.types import (
    Conflict,
    MetadataSource,
    PublicationPlace,
    ReconciledField,
    ReconciliationError,
    SourcedValue,
)
from bibliomerge.metadata.similarity import string_similarity

logger = logging.getLogger(__name__)

# Canonical city -> spellings and "city, region" forms seen in catalog records.
CITY_ALIASES: dict[str, tuple[str, ...]] = {
    "new york": ("new york city", "nyc", "ny", "new york, ny", "manhattan", "brooklyn"),
    "london": ("london, england", "london, uk", "london, great britain"),
    "paris": ("paris, france", "paris, fr"),
    "berlin": ("berlin, germany", "berlin, de"),
    "tokyo": ("tokyo, japan", "tokyo, jp"),
    "toronto": ("toronto, canada", "toronto, on", "toronto, ontario"),
    "sydney": ("sydney, australia", "sydney, au"),
    "chicago": ("chicago, il", "chicago, illinois"),
    "boston": ("boston, ma", "boston, massachusetts"),
    "los angeles": ("la", "l.a.", "los angeles, ca", "los angeles, california"),
    "san francisco": ("sf", "s.f.", "san francisco, ca", "san francisco, california"),
    "philadelphia": ("philly", "philadelphia, pa", "philadelphia, pennsylvania"),
    "washington": ("washington, dc", "washington d.c.", "washington, d.c."),
    "cambridge": ("cambridge, ma", "cambridge, massachusetts", "cambridge, england", "cambridge, uk"),
    "oxford": ("oxford, england", "oxford, uk"),
    "edinburgh": ("edinburgh, scotland", "edinburgh, uk"),
    "dublin": ("dublin, ireland", "dublin, ie"),
    "amsterdam": ("amsterdam, netherlands", "amsterdam, nl"),
    "munich": ("münchen", "munich, germany", "münchen, germany"),
    "vienna": ("wien", "vienna, austria", "wien, austria"),
    "zurich": ("zürich", "zurich, switzerland", "zürich, switzerland"),
    "stockholm": ("stockholm, sweden", "stockholm, se"),
    "copenhagen": ("copenhagen, denmark", "copenhagen, dk"),
    "helsinki": ("helsinki, finland", "helsinki, fi"),
    "oslo": ("oslo, norway", "oslo, no"),
    "madrid": ("madrid, spain", "madrid, es"),
    "barcelona": ("barcelona, spain", "barcelona, es"),
    "rome": ("roma", "rome, italy", "roma, italy"),
    "milan": ("milano", "milan, italy", "milano, italy"),
    "moscow": ("moscow, russia", "moscow, ru"),
    "st. petersburg": ("saint petersburg", "st petersburg", "st. petersburg, russia"),
    "beijing": ("peking", "beijing, china", "peking, china"),
    "shanghai": ("shanghai, china",),
    "hong kong": ("hong kong, china", "hk"),
    "singapore": ("singapore, sg",),
    "mumbai": ("bombay", "mumbai, india", "bombay, india"),
    "delhi": ("new delhi", "delhi, india", "new delhi, india"),
    "bangalore": ("bengaluru", "bangalore, india", "bengaluru, india"),
    "cairo": ("cairo, egypt",),
    "cape town": ("cape town, south africa",),
    "johannesburg": ("johannesburg, south africa",),
    "mexico city": ("mexico city, mexico", "ciudad de méxico"),
    "são paulo": ("sao paulo", "são paulo, brazil", "sao paulo, brazil"),
    "rio de janeiro": ("rio", "rio de janeiro, brazil"),
    "buenos aires": ("buenos aires, argentina",),
    "santiago": ("santiago, chile",),
    "lima": ("lima, peru",),
    "bogotá": ("bogota", "bogotá, colombia", "bogota, colombia"),
}

_US_STATES = (
    "alabama", "alaska", "arizona", "arkansas", "california", "colorado", "connecticut",
    "delaware", "florida", "georgia", "hawaii", "idaho", "illinois", "indiana", "iowa",
    "kansas", "kentucky", "louisiana", "maine", "maryland", "massachusetts", "michigan",
    "minnesota", "mississippi", "missouri", "montana", "nebraska", "nevada",
    "new hampshire", "new jersey", "new mexico", "new york", "north carolina",
    "north dakota", "ohio", "oklahoma", "oregon", "pennsylvania", "rhode island",
    "south carolina", "south dakota", "tennessee", "texas", "utah", "vermont", "virginia",
    "washington", "west virginia", "wisconsin", "wyoming",
)
_US_STATE_CODES = (
    "al", "ak", "az", "ar", "ca", "co", "ct", "de", "fl", "ga", "hi", "id", "il", "in", "ia",
    "ks", "ky", "la", "me", "md", "ma", "mi", "mn", "ms", "mo", "mt", "ne", "nv", "nh", "nj",
    "nm", "ny", "nc", "nd", "oh", "ok", "or", "pa", "ri", "sc", "sd", "tn", "tx", "ut", "vt",
    "va", "wa", "wv", "wi", "wy",
)

# Checked in order, so US state codes win over the ISO codes they shadow ("de", "in", "ca").
COUNTRY_ALIASES: dict[str, tuple[str, ...]] = {
    "united states": ("usa", "us", "america", "united states of america", *_US_STATE_CODES, *_US_STATES),
    "united kingdom": ("uk", "great britain", "britain", "england", "scotland", "wales"),
    "germany": ("deutschland", "de"),
    "france": ("fr",),
    "italy": ("italia", "it"),
    "spain": ("españa", "es"),
    "netherlands": ("holland", "nl"),
    "switzerland": ("schweiz", "suisse", "ch"),
    "austria": ("österreich", "at"),
    "russia": ("russian federation", "ru"),
    "china": ("people's republic of china", "prc", "cn"),
    "japan": ("jp",),
    "south korea": ("korea", "republic of korea", "kr"),
    "australia": ("au",),
    "canada": ("ca",),
    "brazil": ("brasil", "br"),
    "mexico": ("méxico", "mx"),
    "india": ("in",),
    "south africa": ("za",),
}

MAJOR_PUBLISHING_CENTERS = frozenset(
    {"new york", "london", "paris", "berlin", "tokyo", "toronto", "cambridge", "oxford"}
)

_LEADING_THE_RE = re.compile(r"^the\s+")
_PLACE_SPECIAL_RE = re.compile(r"[^\w\s,.\-]")
_WHITESPACE_RE = re.compile(r"\s+")
_ALIAS_SIMILARITY = 0.9


def normalize_place_name(name: str) -> str:
    """Comparison key for a place, resolved to a canonical city when known.

    "NYC", "New York, NY" and "Manhattan" all become "new york"; unknown
    places are lowercased with special characters and extra spaces removed.
    """
    if not name:
        return ""
    text = _LEADING_THE_RE.sub("", name.lower().strip())
    text = _PLACE_SPECIAL_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()

    for canonical, aliases in CITY_ALIASES.items():
        for alias in aliases:
            if text == alias or text.startswith(alias + ",") or string_similarity(text, alias) > _ALIAS_SIMILARITY:
                return canonical
        if text == canonical or text.startswith(canonical + ","):
            return canonical

    city = text.split(",")[0].strip()
    if city != text:
        for canonical, aliases in CITY_ALIASES.items():
            if city == canonical or city in aliases:
                return canonical
    return text


def extract_country(name: str) -> str | None:
    """Country named by any comma-separated part of a place, last part first."""
    if not name:
        return None
    parts = [part.strip() for part in name.lower().strip().split(",")]
    for part in reversed(parts):
        for canonical, aliases in COUNTRY_ALIASES.items():
            if part == canonical or part in aliases:
                return canonical
    return None


class PlaceReconciler:
    """Reconciles publication places reported by several sources."""

    def normalize_place(self, value: str | PublicationPlace) -> PublicationPlace:
        if isinstance(value, PublicationPlace):
            return PublicationPlace(
                name=value.name,
                normalized=value.normalized or normalize_place_name(value.name),
                country=value.country or extract_country(value.name),
            )
        return PublicationPlace(
            name=value,
            normalized=normalize_place_name(value),
            country=extract_country(value),
        )

    def calculate_confidence(self, place: PublicationPlace, source: MetadataSource) -> float:
        """Reliability boosted for recognized cities, known countries and major centers."""
        confidence = source.reliability
        name = place.name.strip()
        if not name:
            confidence *= 0.1
        elif len(name) < 2:
            confidence *= 0.3

        if place.normalized and place.normalized != place.name.lower():
            confidence *= 1.2
        if place.country:
            confidence *= 1.1
        if place.normalized in MAJOR_PUBLISHING_CENTERS:
            confidence *= 1.3
        return max(0.0, min(1.0, confidence))

    def reconcile(
        self, inputs: Sequence[SourcedValue[str | PublicationPlace | None]]
    ) -> ReconciledField[PublicationPlace]:
        """Pick the place reported by the most reliable source.

        Places that normalize differently are recorded as one conflict.

        Raises:
            ReconciliationError: If inputs is empty.
        """
        if not inputs:
            raise ReconciliationError("No publication places to reconcile")

        candidates = [
            SourcedValue(self.normalize_place(item.value), item.source)
            for item in inputs
            if _place_text(item.value)
        ]
        if not candidates:
            return ReconciledField(
                value=PublicationPlace(name=""),
                confidence=0.1,
                sources=tuple(item.source for item in inputs),
                reasoning="No valid publication place found",
            )

        if len(candidates) == 1:
            only = candidates[0]
            return ReconciledField(
                value=only.value,
                confidence=self.calculate_confidence(only.value, only.source),
                sources=(only.source,),
                reasoning="Single valid place",
            )

        keys = {c.value.normalized or c.value.name.lower() for c in candidates}
        conflicts: tuple[Conflict, ...] = ()
        if len(keys) > 1:
            conflicts = (
                Conflict(
                    field="publication_place",
                    values=tuple(candidates),
                    resolution="Selected place from most reliable source",
                ),
            )
            logger.debug("Place conflict across %d distinct places", len(keys))

        best = max(candidates, key=lambda item: item.source.reliability)
        if conflicts:
            reasoning = "Resolved conflict by selecting place from most reliable source"
        else:
            reasoning = "Selected place from most reliable source"
        return ReconciledField(
            value=best.value,
            confidence=self.calculate_confidence(best.value, best.source),
            sources=(best.source,),
            conflicts=conflicts,
            reasoning=reasoning,
        )


def _place_text(value: str | PublicationPlace | None) -> str:
    if isinstance(value, PublicationPlace):
        return value.name.strip()
    return (value or "").strip()
