"""
String normalization and fuzzy comparison primitives for duplicate detection.

Two scores are blended for free-text fields:
  - normalized Levenshtein similarity (rapidfuzz; character edits / longest length)
  - token Jaccard similarity (shared words / all words)

Normalized text and token sets are memoized: a duplicate scan compares each
value against every other value in its scope.
"""

from __future__ import annotations

import re
import unicodedata
from functools import lru_cache
from typing import Optional
from urllib.parse import urlsplit

from rapidfuzz.distance import Levenshtein

# Weight of the Levenshtein component in combined_similarity
LEVENSHTEIN_WEIGHT = 0.6

_NON_WORD_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")


def strip_accents(text: str) -> str:
    """
    Remove diacritical marks (accents) from text.

    Uses NFD decomposition to split base characters from combining marks,
    then strips the combining marks. "Café" -> "Cafe".
    """
    nfd = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in nfd if unicodedata.category(ch)[0] != "M")


def normalize_text(raw: Optional[str]) -> str:
    """
    Normalize a name or address for comparison.

    Steps:
      1. Unicode NFKC normalization (collapses fullwidth, compatibility chars)
      2. Lowercase
      3. Strip diacritical marks
      4. Drop apostrophes, replace other punctuation with spaces
         ("St.-Mary's" -> "st marys")
      5. Collapse whitespace
    """
    if not raw:
        return ""
    return _normalize(str(raw))


@lru_cache(maxsize=16384)
def _normalize(raw: str) -> str:
    text = unicodedata.normalize("NFKC", raw)
    text = text.lower()
    text = strip_accents(text)
    # Apostrophes join rather than split: "Salamone's" -> "salamones"
    text = text.replace("'", "").replace("’", "")
    text = _NON_WORD_RE.sub(" ", text).replace("_", " ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_email(raw: Optional[str]) -> str:
    if not raw:
        return ""
    return raw.strip().lower()


def normalize_phone(raw: Optional[str]) -> str:
    """Digits only, last 10 kept so "+1 (207) 555-0100" == "207.555.0100"."""
    if not raw:
        return ""
    digits = _NON_DIGIT_RE.sub("", raw)
    if len(digits) < 7:
        return ""
    return digits[-10:]


def normalize_domain(raw: Optional[str]) -> str:
    """
    Reduce a website to its host: "https://www.Example.com/about" -> "example.com".
    """
    if not raw:
        return ""
    value = raw.strip().lower()
    if "://" not in value:
        value = f"http://{value}"
    host = urlsplit(value).hostname or ""
    if host.startswith("www."):
        host = host[4:]
    return host


# ---------------------------------------------------------------------------
# Fuzzy similarity
# ---------------------------------------------------------------------------

def levenshtein_distance(a: str, b: str) -> int:
    """Number of single-character edits needed to transform a into b."""
    return Levenshtein.distance(a, b)


def levenshtein_similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity: 1 = identical, 0 = completely different."""
    norm_a = normalize_text(a)
    norm_b = normalize_text(b)

    if norm_a == norm_b:
        return 1.0
    if not norm_a or not norm_b:
        return 0.0

    return Levenshtein.normalized_similarity(norm_a, norm_b)


def tokenize(text: Optional[str]) -> frozenset[str]:
    return _tokens(normalize_text(text))


@lru_cache(maxsize=16384)
def _tokens(normalized: str) -> frozenset[str]:
    return frozenset(t for t in normalized.split(" ") if t)


def jaccard_similarity(a: frozenset[str], b: frozenset[str]) -> float:
    """|A ∩ B| / |A ∪ B|"""
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def token_jaccard_similarity(a: str, b: str) -> float:
    return jaccard_similarity(tokenize(a), tokenize(b))


def combined_similarity(a: str, b: str, levenshtein_weight: float = LEVENSHTEIN_WEIGHT) -> float:
    """Weighted average of Levenshtein and token Jaccard similarities."""
    lev = levenshtein_similarity(a, b)
    jac = token_jaccard_similarity(a, b)
    return lev * levenshtein_weight + jac * (1 - levenshtein_weight)


def token_containment(a: str, b: str) -> bool:
    """
    True when every word of the shorter value appears in the longer one.

    Catches "Fairgrounds" vs "The Fairgrounds" and
    "Common Ground Fair" vs "Common Ground Country Fair".
    """
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a or not tokens_b:
        return False
    shorter, longer = sorted((tokens_a, tokens_b), key=len)
    return shorter <= longer
