"""Title similarity for near-duplicate detection.

Character-level normalized Levenshtein: 1 - distance / max(len(a), len(b)),
after trimming and case folding.
"""

from __future__ import annotations

from rapidfuzz.distance import Levenshtein


DEFAULT_DUPLICATE_THRESHOLD = 0.85


def _normalize(text: str) -> str:
    return (text or "").strip().lower()


def similarity(a: str, b: str) -> float:
    left = _normalize(a)
    right = _normalize(b)
    if left == right:
        return 1.0
    if not left or not right:
        return 0.0
    return float(Levenshtein.normalized_similarity(left, right))


def is_duplicate(a: str, b: str, threshold: float = DEFAULT_DUPLICATE_THRESHOLD) -> bool:
    return similarity(a, b) >= threshold
