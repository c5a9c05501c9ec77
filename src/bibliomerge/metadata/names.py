# ABOUTME: Personal-name parsing and equivalence checks for reconciling author credits.
# ABOUTME: Handles "Last, First", particles (van, de la, mac), initials, prefixes and suffixes.

import re
from dataclasses import dataclass, field

from bibliomerge.metadata.normalization import strip_diacritics

_NAME_PREFIXES = frozenset(
    {"dr", "prof", "mr", "mrs", "ms", "miss", "sir", "dame", "lord", "lady", "rev", "father", "sister"}
)
_NAME_SUFFIXES = frozenset({"jr", "sr", "ii", "iii", "iv", "v", "phd", "md", "esq", "cpa"})
_ROMAN_NUMERAL_RE = re.compile(r"^[ivx]+$")

# Particles that belong to the surname when they precede the last token.
_LAST_NAME_PARTICLES = frozenset(
    {
        "van",
        "von",
        "de",
        "der",
        "den",
        "del",
        "della",
        "di",
        "da",
        "du",
        "le",
        "la",
        "el",
        "al",
        "ibn",
        "bin",
        "ben",
        "mac",
        "mc",
        "o'",
        "ó",
        "ní",
        "nic",
    }
)

_TOKEN_PUNCT_RE = re.compile(r"[.,]")
_NON_WORD_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class NameComponents:
    """A personal name split into its parts."""

    first: str = ""
    middle: tuple[str, ...] = ()
    last: str = ""
    prefixes: tuple[str, ...] = ()
    suffixes: tuple[str, ...] = field(default=())
    original: str = ""


def _bare(token: str) -> str:
    return _TOKEN_PUNCT_RE.sub("", token.lower())


def _is_suffix(token: str) -> bool:
    bare = _bare(token)
    return bare in _NAME_SUFFIXES or bool(_ROMAN_NUMERAL_RE.match(bare))


def parse_name_components(name: str) -> NameComponents:
    """Parse a personal name into first, middle, last, prefixes, and suffixes.

    Accepts both "First Middle Last" and "Last, First Middle". Honorific
    prefixes are peeled from the front and suffixes from the back. Surname
    particles are found by scanning backwards from the final token while the
    preceding tokens are known particles, so "Ludwig van Beethoven" keeps
    "van Beethoven" together.
    """
    trimmed = name.strip()
    if not trimmed:
        return NameComponents(original=name)

    parts = trimmed.split()
    prefixes: list[str] = []
    suffixes: list[str] = []

    while parts and _bare(parts[0]) in _NAME_PREFIXES:
        prefixes.append(parts.pop(0))

    while parts and _is_suffix(parts[-1]):
        suffixes.insert(0, parts.pop())

    if not parts:
        return NameComponents(
            first=" ".join(prefixes + suffixes),
            prefixes=tuple(prefixes),
            suffixes=tuple(suffixes),
            original=name,
        )

    if "," in trimmed:
        comma_parts = [p.strip() for p in trimmed.split(",")]
        if len(comma_parts) >= 2:
            given = comma_parts[1].split()
            rest = " ".join(comma_parts[2:]).split()
            first = given.pop(0) if given else ""
            middle = [token for token in given + rest if token not in suffixes]
            return NameComponents(
                first=first,
                middle=tuple(middle),
                last=comma_parts[0],
                prefixes=tuple(prefixes),
                suffixes=tuple(suffixes),
                original=name,
            )

    if len(parts) == 1:
        return NameComponents(
            first=parts[0],
            prefixes=tuple(prefixes),
            suffixes=tuple(suffixes),
            original=name,
        )

    last_start = len(parts) - 1
    for index in range(len(parts) - 2, 0, -1):
        if parts[index].lower() in _LAST_NAME_PARTICLES:
            last_start = index
        else:
            break

    return NameComponents(
        first=parts[0],
        middle=tuple(parts[1:last_start]),
        last=" ".join(parts[last_start:]),
        prefixes=tuple(prefixes),
        suffixes=tuple(suffixes),
        original=name,
    )


def convert_to_first_last_format(name: str) -> str:
    """Rewrite any supported name format as "First Middle Last"."""
    components = parse_name_components(name)
    if not components.first and not components.last:
        return name.strip()

    parts = [*components.prefixes]
    if components.first:
        parts.append(components.first)
    parts.extend(components.middle)
    if components.last:
        parts.append(components.last)
    parts.extend(components.suffixes)
    return " ".join(parts)


def normalize_name_for_comparison(name: str) -> str:
    """Build a comparison key from the core name parts, without titles or suffixes."""
    components = parse_name_components(name)
    core = [components.first, *components.middle, components.last]
    text = " ".join(part.lower() for part in core if part)
    text = strip_diacritics(text)
    text = _NON_WORD_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def _first_names_match(first_a: str, first_b: str) -> bool:
    a = first_a.lower()
    b = first_b.lower()
    if a == b:
        return True
    if len(a) == 1 and b.startswith(a):
        return True
    if len(b) == 1 and a.startswith(b):
        return True
    if len(a) <= 2 and b and a.replace(".", "") == b[0]:
        return True
    return len(b) <= 2 and bool(a) and b.replace(".", "") == a[0]


def matches_with_initials(a: NameComponents, b: NameComponents) -> bool:
    """Return True when first names match allowing initials and surnames agree.

    A missing surname on either side is treated as compatible, so "J. Smith",
    "John Smith" and "John" all line up with each other.
    """
    if not _first_names_match(a.first, b.first):
        return False
    last_a = a.last.lower()
    last_b = b.last.lower()
    return last_a == last_b or not last_a or not last_b


def are_names_equivalent(name_a: str, name_b: str) -> bool:
    """Decide whether two author strings refer to the same person.

    Tries, in order: exact match, normalized comparison, first+last core
    match ignoring middle names, initial matching, and mirror order
    ("Smith John" vs "John Smith"). Every check is symmetric, so the result
    does not depend on argument order.
    """
    if not name_a or not name_b:
        return False
    if name_a.strip() == name_b.strip():
        return True

    if normalize_name_for_comparison(name_a) == normalize_name_for_comparison(name_b):
        return True

    a = parse_name_components(name_a)
    b = parse_name_components(name_b)

    core_a = f"{a.first} {a.last}".lower().strip()
    core_b = f"{b.first} {b.last}".lower().strip()
    if core_a and core_a == core_b:
        return True

    if matches_with_initials(a, b):
        return True

    reversed_a = f"{a.last} {a.first}".lower().strip()
    reversed_b = f"{b.last} {b.first}".lower().strip()
    return reversed_a == core_b or reversed_b == core_a


def _name_format_score(name: str) -> float:
    score = 0.0
    if "," not in name:
        score += 10
    score += len(name) * 0.1
    score -= name.count(".") * 2
    score += len(_WHITESPACE_RE.findall(name)) * 2
    return score


def get_preferred_name_format(variants: list[str]) -> str:
    """Pick the best display form among name variants.

    Favors comma-free "First Last" strings, fuller names, fewer periods
    (initials) and more space-separated parts. The first variant wins ties.
    """
    if not variants:
        return ""
    best = variants[0]
    best_score = _name_format_score(best)
    for variant in variants[1:]:
        score = _name_format_score(variant)
        if score > best_score:
            best, best_score = variant, score
    return best


def is_last_first_format(name: str) -> bool:
    """Return True for names shaped like "Last, First"."""
    if "," not in name:
        return False
    parts = [p.strip() for p in name.split(",")]
    return len(parts) == 2 and bool(parts[0]) and bool(parts[1])


def format_author_name(name: str) -> str:
    """Collapse whitespace and flip "Last, First" into display order."""
    if not name:
        return ""
    text = _WHITESPACE_RE.sub(" ", name).strip()
    if is_last_first_format(text):
        text = convert_to_first_last_format(text)
    return text
