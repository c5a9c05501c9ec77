# ABOUTME: Pure normalization helpers for ISBNs, titles, creators, publishers, and languages.
# ABOUTME: Produces comparison keys only; display strings are never rewritten here.

import re
import unicodedata

import isbnlib

# Leading "ISBN", "ISBN-10:", "ISBN13 " and similar labels.
_ISBN_PREFIX_RE = re.compile(r"^isbn(?:[-\s]?1[03])?\s*:?\s*", re.IGNORECASE)
_ISBN_STRIP_RE = re.compile(r"[-\s]")
_ISBN10_RE = re.compile(r"^\d{9}[\dX]$")
_ISBN13_RE = re.compile(r"^\d{13}$")

_COMBINING_MARKS_RE = re.compile(r"[\u0300-\u036f]")
_NON_WORD_RE = re.compile(r"[^\w\s]")
_NON_WORD_KEEP_HYPHEN_RE = re.compile(r"[^\w\s-]")
# Hyphens not joining two word characters.
_LOOSE_HYPHEN_RE = re.compile(r"(?<!\w)-+|-+(?!\w)")
_WHITESPACE_RE = re.compile(r"\s+")

_TITLE_PUNCTUATION_RE = re.compile(r"[.,;:!?'\"()\[\]{}«»“”‘’]")
_LEADING_ARTICLE_RE = re.compile(
    r"^(?:the|a|an|der|die|das|le|la|les|el|los|las|il|lo|gli|un|una|une|een|de|het)\s+"
)

# Honorifics removed anywhere in a creator name.
_CREATOR_TITLE_RE = re.compile(
    r"\b(?:dr|prof|professor|sir|dame|lord|lady|rev|reverend|father|mother|brother"
    r"|sister|saint|st|pope)\b\.?\s*"
)
# One trailing generational suffix, roman numeral, or degree.
_CREATOR_SUFFIX_RE = re.compile(
    r",?\s*\b(?:jr|sr|junior|senior|i{1,3}|iv|v|vi{1,3}|ix|x{1,3}|xi{1,3}|xiv|xv"
    r"|phd|md|esq|esquire)\b\.?\s*$"
)
_LAST_FIRST_RE = re.compile(r"^([^,]+),\s*(.+)$")
# Single letters separated by spaces ("j k rowling") collapse into one token.
_INITIALS_RE = re.compile(r"\b([a-z])\s+(?=[a-z]\b)")

_PARENTHETICAL_RE = re.compile(r"\s*\([^)]*\)\s*")
_PUBLISHER_SUFFIX_RE = re.compile(
    r"(?:^|\s+)(?:ltd|llc|inc|incorporated|corp|corporation|co|company|publishing"
    r"|publishers|books?|press|group|international|worldwide)(?=\s+|$)"
)
_REPEATED_HYPHEN_RE = re.compile(r"-{2,}")

_DOI_PREFIX_RE = re.compile(r"^(?:doi:\s*|https?://(?:dx\.)?doi\.org/)", re.IGNORECASE)

# ISO 639-2 (bibliographic and terminology) codes and English names to ISO 639-1.
_LANGUAGE_CODES: dict[str, str] = {
    "eng": "en",
    "english": "en",
    "ger": "de",
    "deu": "de",
    "german": "de",
    "fre": "fr",
    "fra": "fr",
    "french": "fr",
    "spa": "es",
    "spanish": "es",
    "ita": "it",
    "italian": "it",
    "por": "pt",
    "portuguese": "pt",
    "rus": "ru",
    "russian": "ru",
    "jpn": "ja",
    "japanese": "ja",
    "chi": "zh",
    "zho": "zh",
    "chinese": "zh",
    "ara": "ar",
    "arabic": "ar",
    "kor": "ko",
    "korean": "ko",
    "dut": "nl",
    "nld": "nl",
    "dutch": "nl",
    "pol": "pl",
    "polish": "pl",
    "swe": "sv",
    "swedish": "sv",
    "nor": "no",
    "norwegian": "no",
    "dan": "da",
    "danish": "da",
    "fin": "fi",
    "finnish": "fi",
    "tur": "tr",
    "turkish": "tr",
    "hun": "hu",
    "hungarian": "hu",
    "cze": "cs",
    "ces": "cs",
    "czech": "cs",
    "slo": "sk",
    "slk": "sk",
    "rum": "ro",
    "ron": "ro",
    "bul": "bg",
    "hrv": "hr",
    "srp": "sr",
    "ukr": "uk",
    "gre": "el",
    "ell": "el",
    "greek": "el",
    "heb": "he",
    "hebrew": "he",
    "hin": "hi",
    "tha": "th",
    "vie": "vi",
    "ind": "id",
    "cat": "ca",
    "baq": "eu",
    "eus": "eu",
    "glg": "gl",
    "wel": "cy",
    "cym": "cy",
    "gle": "ga",
    "gla": "gd",
    "lat": "la",
    "latin": "la",
    # Undetermined, multiple, and no linguistic content.
    "und": "",
    "mul": "",
    "zxx": "",
}


def strip_diacritics(text: str) -> str:
    """Decompose to NFD and drop combining marks."""
    return _COMBINING_MARKS_RE.sub("", unicodedata.normalize("NFD", text))


def normalize_for_comparison(value: str) -> str:
    """Lowercase, strip diacritics and punctuation, and collapse whitespace."""
    text = strip_diacritics(value.lower())
    text = _NON_WORD_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def clean_isbn(isbn: str) -> str:
    """Strip labels, hyphens, and whitespace from an ISBN and uppercase it."""
    text = _ISBN_PREFIX_RE.sub("", isbn.strip())
    return _ISBN_STRIP_RE.sub("", text).upper()


def is_valid_isbn10(isbn: str) -> bool:
    """Validate an ISBN-10 checksum (weights 10..1, mod 11, X = 10)."""
    cleaned = clean_isbn(isbn)
    return bool(_ISBN10_RE.match(cleaned)) and isbnlib.is_isbn10(cleaned)


def is_valid_isbn13(isbn: str) -> bool:
    """Validate a 978/979-prefixed ISBN-13 checksum (weights 1 and 3, mod 10)."""
    cleaned = clean_isbn(isbn)
    return bool(_ISBN13_RE.match(cleaned)) and isbnlib.is_isbn13(cleaned)


def isbn10_to_isbn13(isbn10: str) -> str | None:
    """Convert a valid ISBN-10 to ISBN-13 using the 978 prefix."""
    cleaned = clean_isbn(isbn10)
    if not is_valid_isbn10(cleaned):
        return None
    return isbnlib.to_isbn13(cleaned) or None


def isbn13_to_isbn10(isbn13: str) -> str | None:
    """Convert a valid 978-prefixed ISBN-13 back to ISBN-10.

    979-prefixed ISBNs have no ISBN-10 form and return None.
    """
    cleaned = clean_isbn(isbn13)
    if not is_valid_isbn13(cleaned):
        return None
    return isbnlib.to_isbn10(cleaned) or None


def normalize_isbn(isbn: str, to_13: bool = True) -> str | None:
    """Clean and validate an ISBN, optionally converting ISBN-10 to ISBN-13.

    Args:
        isbn: Raw ISBN string in any common formatting.
        to_13: Convert valid ISBN-10 values to their ISBN-13 form.

    Returns:
        The canonical ISBN string, or None when the checksum fails.
    """
    if not isbn:
        return None
    cleaned = clean_isbn(isbn)
    if is_valid_isbn10(cleaned):
        canonical = isbnlib.canonical(cleaned)
        return isbn10_to_isbn13(canonical) if to_13 else canonical
    if is_valid_isbn13(cleaned):
        return isbnlib.canonical(cleaned)
    return None


def normalize_title(title: str, remove_articles: bool = False) -> str:
    """Build a comparison key for a title.

    Lowercases, strips diacritics and common punctuation, collapses
    whitespace, and optionally drops a leading article in the languages the
    catalogs most often return.
    """
    text = strip_diacritics(title.lower())
    text = _TITLE_PUNCTUATION_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    if remove_articles:
        text = _LEADING_ARTICLE_RE.sub("", text)
    return text


def _strip_punctuation_keep_hyphens(text: str) -> str:
    text = _NON_WORD_KEEP_HYPHEN_RE.sub("", text)
    return _LOOSE_HYPHEN_RE.sub(" ", text)


def normalize_creator_name(name: str) -> str:
    """Normalize a person's name into a case-insensitive comparison key.

    Removes honorifics anywhere, one trailing suffix, flips "Last, First",
    keeps internal hyphens, drops other punctuation, and collapses runs of
    single-letter initials ("j k rowling" -> "jk rowling").
    """
    if not name:
        return ""
    text = strip_diacritics(name.lower().strip())
    text = _CREATOR_TITLE_RE.sub("", text).strip()
    text = _CREATOR_SUFFIX_RE.sub("", text).strip()

    flipped = _LAST_FIRST_RE.match(text)
    if flipped:
        text = f"{flipped.group(2)} {flipped.group(1)}"

    text = _strip_punctuation_keep_hyphens(text.replace(".", " "))
    text = _WHITESPACE_RE.sub(" ", text).strip()
    text = _INITIALS_RE.sub(r"\1", text)
    return text


def normalize_publisher_name(name: str) -> str:
    """Normalize a publisher name into a comparison key.

    Removes a leading "the", parentheticals, punctuation, the word "and", and
    business suffixes such as Inc, Press, or Publishing Group.
    """
    if not name:
        return ""
    text = name.lower().strip()
    if text.startswith("the "):
        text = text[4:]
    text = _PARENTHETICAL_RE.sub(" ", text)
    text = _strip_punctuation_keep_hyphens(text)
    text = text.replace(" and ", " ")
    text = _WHITESPACE_RE.sub(" ", text).strip()

    previous = None
    while previous != text:
        previous = text
        text = _PUBLISHER_SUFFIX_RE.sub(" ", text)
        text = _WHITESPACE_RE.sub(" ", text).strip()

    return _REPEATED_HYPHEN_RE.sub("-", text)


def normalize_language_code(code: str) -> str:
    """Map a language code or English name to ISO 639-1.

    Two-letter codes are returned lowercased. Known three-letter codes and
    names map to their two-letter form; unknown three-letter codes pass
    through unchanged. Anything else yields an empty string.
    """
    if not code:
        return ""
    text = code.strip().lower()
    if text in _LANGUAGE_CODES:
        return _LANGUAGE_CODES[text]
    if len(text) == 2 and text.isalpha():
        return text
    if len(text) == 3 and text.isalpha():
        return text
    return ""


def normalize_doi(doi: str) -> str:
    """Strip doi: and resolver URL prefixes and lowercase the DOI."""
    return _DOI_PREFIX_RE.sub("", doi.strip()).lower()
