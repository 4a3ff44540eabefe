# -*- coding: utf-8 -*-
"""
String similarity

Normalized Levenshtein similarity used for titles and person names.
``similarity`` returns a ratio in [0, 1]; ``similarity_percent`` returns the
same score as an integer percentage for human-facing mismatch reports.
"""

from typing import Optional

from rapidfuzz.distance import Levenshtein


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Case-insensitive Levenshtein similarity of two strings.

    Computes ``1 - distance / max(len(a), len(b))`` on the trimmed,
    lower-cased inputs.

    Returns:
        1.0 if both inputs are empty, 0.0 if exactly one is empty
    """
    s1 = (a or '').strip().lower()
    s2 = (b or '').strip().lower()

    if not s1 and not s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 1.0

    distance = Levenshtein.distance(s1, s2)
    return 1.0 - distance / max(len(s1), len(s2))


def similarity_percent(a: Optional[str], b: Optional[str]) -> int:
    """Similarity as a 0-100 integer, rounded half up."""
    return int(similarity(a, b) * 100 + 0.5)
