# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Word similarity scoring based on edit distance.

Recognizers routinely swap homophones and near-homophones ("their" vs
"there"), so words are compared by how few single-character edits separate
them rather than by exact equality.
"""

from rapidfuzz.distance import Levenshtein


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance between two words."""
    return Levenshtein.distance(a, b)


def word_similarity(a: str, b: str) -> float:
    """
    Similarity of two normalized words in [0, 1].

    Computed as 1 - distance / longer length. An empty word carries no
    information, so any comparison involving one scores 0, including
    two empty words.

    Args:
        a: First normalized word
        b: Second normalized word

    Returns:
        1.0 for identical non-empty words, 0.0 when either word is empty
    """
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    max_len: int = max(len(a), len(b))
    return 1.0 - edit_distance(a, b) / max_len
