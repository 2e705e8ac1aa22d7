"""
Text normalization (SSOT).

All keys used for learned mappings, vendor comparison and similarity
lookups are derived here so that writers and readers always agree.
"""

import re

from rapidfuzz.distance import Levenshtein

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")

_VENDOR_PREFIX = re.compile(
    r"^(payment to|paid to|transfer to|payment for|paid for)\s*", re.IGNORECASE
)
_VENDOR_SUFFIX = re.compile(r"\s*(payment|invoice|bill|receipt|transaction)$", re.IGNORECASE)
_COMPANY_SUFFIX = re.compile(r"\s+(pvt|private|ltd|limited|llp|inc|corp|co)$")

# Number of leading words that form a description pattern key
PATTERN_WORDS = 5

# Number of leading words that form a derived vendor name
VENDOR_WORDS = 3

# Shortest word considered significant for similarity lookups
MIN_SIGNIFICANT_LENGTH = 3


def _clean(text: str) -> str:
    lowered = _NON_ALNUM.sub("", text.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def normalize_pattern_key(description: str | None) -> str:
    """Pattern key: lowercase alphanumerics, first five words."""
    if not description:
        return ""
    return " ".join(_clean(description).split(" ")[:PATTERN_WORDS])


def normalize_vendor_key(vendor_name: str | None) -> str:
    """Vendor key: lowercase alphanumerics without company-form suffixes."""
    if not vendor_name:
        return ""
    key = _clean(vendor_name)
    # "acme pvt ltd" needs two passes
    while True:
        stripped = _COMPANY_SUFFIX.sub("", key).strip()
        if stripped == key:
            return key
        key = stripped


def extract_vendor_name(description: str | None) -> str:
    """
    Derive a vendor name from a transaction description.

    Removes leading "payment to"-style prefixes and a trailing
    "payment"/"invoice"/"bill"/... word, then keeps the first three words.
    """
    if not description:
        return ""
    cleaned = _VENDOR_PREFIX.sub("", description.strip().lower())
    cleaned = _VENDOR_SUFFIX.sub("", cleaned).strip()
    words = cleaned.split()
    return " ".join(words[:VENDOR_WORDS])


def significant_words(text: str | None, limit: int | None = None) -> list[str]:
    """Words of at least three characters, in order of appearance."""
    if not text:
        return []
    words = [w for w in _clean(text).split(" ") if len(w) >= MIN_SIGNIFICANT_LENGTH]
    return words[:limit] if limit is not None else words


def contains_keyword(text: str, keyword: str) -> bool:
    """Case-insensitive whole-word keyword match (keywords may span words)."""
    pattern = r"(?<![a-z0-9])" + re.escape(keyword.lower()) + r"(?![a-z0-9])"
    return re.search(pattern, text.lower()) is not None


def name_similarity(a: str | None, b: str | None) -> float:
    """
    Similarity of two names in [0, 1].

    Exact match scores 1.0, containment 0.9, otherwise the better of word
    overlap (Jaccard) and edit-distance ratio.
    """
    left = _clean(a or "")
    right = _clean(b or "")
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    if left in right or right in left:
        return 0.9

    left_words = set(left.split())
    right_words = set(right.split())
    overlap = len(left_words & right_words) / len(left_words | right_words)

    return max(overlap, Levenshtein.normalized_similarity(left, right))

