"""Title text helpers: normalisation, search cleaning, variants, slugs.

Pure transformation logic: no I/O.
"""

from __future__ import annotations

import re
import unicodedata

from unidecode import unidecode as _unidecode

# Characters that break site search queries (hyphens are kept).
_SEARCH_PUNCT_RE = re.compile(r"[^\w\s-]")

# Any run of characters that is not a lowercase letter, digit or hyphen.
_SLUG_INVALID_RE = re.compile(r"[^a-z0-9-]+")

# Long vowels written with a macron start a new word in romanised slugs
# ("Shōnen" -> "sh-nen" on the target sites).
_MACRON_BREAK = str.maketrans(
    {ch: "-" for ch in "āēīōūĀĒĪŌŪ"}
)


def normalize_title(text: str) -> str:
    """Lowercase, transliterate to ASCII, collapse whitespace.

    Used for cache keys, so equal titles with different spacing or
    accents share one entry.
    """
    return " ".join(_unidecode(text).lower().split())


def clean_search_title(text: str) -> str:
    """Strip punctuation that breaks site searches and collapse whitespace."""
    return " ".join(_SEARCH_PUNCT_RE.sub(" ", text).split())


def title_variants(title: str, *, min_words: int = 2) -> list[str]:
    """Full title first, then drop trailing words down to *min_words* words.

    >>> title_variants("Attack on Titan Final Season")
    ['Attack on Titan Final Season', 'Attack on Titan Final', 'Attack on Titan', 'Attack on']
    """
    words = title.split()
    if len(words) <= min_words:
        return [" ".join(words)] if words else []
    return [" ".join(words[:n]) for n in range(len(words), min_words - 1, -1)]


def slugify(title: str) -> str:
    """Build a URL slug the way WordPress-style anime sites do."""
    text = title.translate(_MACRON_BREAK)
    text = unicodedata.normalize("NFD", text)
    text = "".join(c for c in text if unicodedata.category(c) != "Mn")
    text = text.replace("'", "").replace('"', "").lower()
    text = _SLUG_INVALID_RE.sub("-", text)
    return text.strip("-")
