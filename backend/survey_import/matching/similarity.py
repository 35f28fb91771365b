"""Deterministic string similarity helpers for person and name matching."""

from __future__ import annotations

import re
import unicodedata
from difflib import SequenceMatcher

_TATWEEL = "ـ"
_ARABIC_LETTER_MAP = str.maketrans(
    {
        "أ": "ا",  # alef with hamza above
        "إ": "ا",  # alef with hamza below
        "آ": "ا",  # alef with madda
        "ٱ": "ا",  # alef wasla
        "ة": "ه",  # teh marbuta -> heh
        "ى": "ي",  # alef maksura -> yeh
    }
)
_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_MULTISPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")


def normalize_name(value: str | None) -> str:
    """Normalize Arabic/Latin names: strip marks and tatweel, unify letter variants."""

    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(
        char
        for char in decomposed
        if unicodedata.category(char) not in ("Mn", "Me") and char != _TATWEEL
    )
    unified = unicodedata.normalize("NFC", stripped).translate(_ARABIC_LETTER_MAP).lower()
    cleaned = _PUNCTUATION_RE.sub(" ", unified)
    return _MULTISPACE_RE.sub(" ", cleaned).strip()


def normalize_national_id(value: str | None) -> str:
    return _NON_DIGIT_RE.sub("", value or "")


def levenshtein_distance(left: str, right: str) -> int:
    if left == right:
        return 0
    if not left:
        return len(right)
    if not right:
        return len(left)
    previous = list(range(len(right) + 1))
    for i, left_char in enumerate(left, start=1):
        current = [i]
        for j, right_char in enumerate(right, start=1):
            cost = 0 if left_char == right_char else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def levenshtein_similarity(left: str, right: str) -> float:
    """Return ``1 - distance / max_len`` in [0, 1]."""

    if not left and not right:
        return 0.0
    longest = max(len(left), len(right))
    return 1.0 - levenshtein_distance(left, right) / longest


def token_set_similarity(left: str, right: str) -> float:
    """Return token overlap similarity in [0, 1]."""

    left_tokens = set(normalize_name(left).split())
    right_tokens = set(normalize_name(right).split())
    if not left_tokens or not right_tokens:
        return 0.0
    intersection = len(left_tokens & right_tokens)
    union = len(left_tokens | right_tokens)
    return intersection / union if union else 0.0


def name_similarity(left: str | None, right: str | None) -> float:
    """Composite deterministic similarity for one name field."""

    norm_left = normalize_name(left)
    norm_right = normalize_name(right)
    if not norm_left or not norm_right:
        return 0.0
    if norm_left == norm_right:
        return 1.0
    edit = levenshtein_similarity(norm_left, norm_right)
    sequence = SequenceMatcher(a=norm_left, b=norm_right).ratio()
    token = token_set_similarity(norm_left, norm_right)
    return max(edit, sequence, token)
