from __future__ import annotations

import re

from rapidfuzz.distance import Levenshtein

# Meat/poultry names vary too much in word order and suffixes for edit distance.
MEAT_MARKERS: tuple[str, ...] = (
    "עוף",
    "בשר",
    "הודו",
    "פרגית",
    "שניצל",
    "כבד",
    "קציצות",
)

CONTAINMENT_SCORE = 0.9
SUBSTRING_BONUS = 0.2


def _normalize(text: str | None) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.lower()).strip()


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance; insertion, deletion and substitution all cost 1."""
    return Levenshtein.distance(a, b)


def _words_contained(shorter: str, longer: str) -> bool:
    long_tokens = longer.split()
    return all(
        any(tok in other for other in long_tokens)
        for tok in shorter.split()
    )


def similarity(
    a: str | None,
    b: str | None,
    *,
    containment_markers: tuple[str, ...] = MEAT_MARKERS,
) -> float:
    """Score how alike two product descriptions are, in [0, 1].

    Every step is order-independent, so similarity(a, b) == similarity(b, a).
    """
    a_n = _normalize(a)
    b_n = _normalize(b)
    if not a_n or not b_n:
        return 0.0
    if a_n == b_n:
        return 1.0

    shorter, longer = sorted((a_n, b_n), key=lambda s: (len(s), s))

    # Markers are whole words: "כבד" must not fire on "כבדה".
    tokens = set(a_n.split()) | set(b_n.split())
    if any(m in tokens for m in containment_markers):
        if _words_contained(shorter, longer):
            return CONTAINMENT_SCORE

    score = 1.0 - edit_distance(a_n, b_n) / len(longer)
    if shorter in longer:
        score += SUBSTRING_BONUS
    return max(0.0, min(score, 1.0))
