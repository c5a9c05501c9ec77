# ABOUTME: Loose publication-date parsing into structured dates with an explicit precision.
# ABOUTME: Unparseable input degrades to precision "unknown" instead of raising.

import re
from calendar import monthrange
from dataclasses import dataclass
from datetime import date

_PRECISIONS = ("day", "month", "year", "unknown")

# Leading ISO date, optionally followed by a time component.
_ISO_DAY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_SLASH_DAY_RE = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")
_YEAR_MONTH_RE = re.compile(r"^(\d{4})[-/](\d{1,2})$")
_YEAR_RE = re.compile(r"^(\d{4})$")
# A 19xx or 20xx year inside a longer string ("c. 1999", "Spring 2004").
_EMBEDDED_YEAR_RE = re.compile(r"\b((?:19|20)\d{2})\b")
_ANY_YEAR_RE = re.compile(r"\b(\d{4})\b")

_MIN_PLAUSIBLE_YEAR = 1000
_FUTURE_YEAR_ALLOWANCE = 10


@dataclass(frozen=True)
class PublicationDate:
    """A publication date at whatever precision the source provided.

    ``raw`` always carries the original string for traceability.
    """

    raw: str
    precision: str = "unknown"
    year: int | None = None
    month: int | None = None
    day: int | None = None

    def __post_init__(self) -> None:
        if self.precision not in _PRECISIONS:
            raise ValueError(f"unknown date precision: {self.precision!r}")

    @property
    def key(self) -> str:
        """Comparison key such as "2001-04-07", "2001-04", "2001" or "unknown"."""
        parts = []
        if self.year:
            parts.append(str(self.year))
        if self.month:
            parts.append(f"{self.month:02d}")
        if self.day:
            parts.append(f"{self.day:02d}")
        return "-".join(parts) or "unknown"


def precision_rank(precision: str) -> int:
    """Rank precisions so finer dates sort first (day=3 ... unknown=0)."""
    return {"day": 3, "month": 2, "year": 1}.get(precision, 0)


def is_plausible_year(year: int | None, today: date | None = None) -> bool:
    """Return True when year lies in [1000, current year + 10]."""
    if year is None:
        return False
    current = (today or date.today()).year
    return _MIN_PLAUSIBLE_YEAR <= year <= current + _FUTURE_YEAR_ALLOWANCE


def parse_date_string(value: str | None) -> PublicationDate:
    """Parse a loose date string into a PublicationDate.

    Recognizes ``YYYY-MM-DD`` (with or without a trailing time),
    ``YYYY/MM/DD``, ``YYYY-MM``, ``YYYY``, and finally any 19xx/20xx year
    inside a longer string. Anything else yields precision "unknown".
    """
    raw = value or ""
    text = raw.strip()

    match = _ISO_DAY_RE.match(text) or _SLASH_DAY_RE.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return validate_publication_date(
            PublicationDate(raw=raw, precision="day", year=year, month=month, day=day)
        )

    match = _YEAR_MONTH_RE.match(text)
    if match:
        year, month = (int(part) for part in match.groups())
        return validate_publication_date(
            PublicationDate(raw=raw, precision="month", year=year, month=month)
        )

    match = _YEAR_RE.match(text)
    if match:
        return PublicationDate(raw=raw, precision="year", year=int(match.group(1)))

    match = _EMBEDDED_YEAR_RE.search(text)
    if match:
        return PublicationDate(raw=raw, precision="year", year=int(match.group(1)))

    return PublicationDate(raw=raw)


def validate_publication_date(value: PublicationDate) -> PublicationDate:
    """Drop out-of-range components and recompute precision.

    A year outside the plausible range is removed; a month outside 1..12
    and a day beyond the month's length are removed too, and precision falls
    back to the finest component that survived.
    """
    year = value.year if is_plausible_year(value.year) else None
    month = value.month if year is not None and value.month and 1 <= value.month <= 12 else None
    day = None
    if month is not None and value.day:
        days_in_month = monthrange(year or 2000, month)[1]
        if 1 <= value.day <= days_in_month:
            day = value.day

    if day is not None:
        precision = "day"
    elif month is not None:
        precision = "month"
    elif year is not None:
        precision = "year"
    else:
        precision = "unknown"

    return PublicationDate(raw=value.raw, precision=precision, year=year, month=month, day=day)


def extract_year(value: str | None) -> int | None:
    """Return the first plausible four-digit year in value, or None."""
    if not value:
        return None
    match = _ANY_YEAR_RE.search(value)
    if match:
        year = int(match.group(1))
        if is_plausible_year(year):
            return year
    return None
