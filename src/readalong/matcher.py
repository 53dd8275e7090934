# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Window search that decides where the cursor should move next.

Takes the last few spoken words (the anchor) and slides them over a small
window of script tokens around the cursor. The best-scoring alignment moves
the cursor to the script word matching the last anchor word.

The search is local and greedy on purpose: updates arrive at recognizer
cadence, so each one costs O(window size * anchor length), and spoken order
rarely drifts more than a phrase from the written order.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .script_parser import ScriptToken, normalize_word
from .similarity import word_similarity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchParams:
    """Tunable window search parameters."""
    # Tokens searched ahead of the cursor. Large enough to bridge the gap left
    # by a recognizer restart, small enough to stop far-away false matches.
    lookahead: int = 16
    # Tokens searched behind the cursor (small corrections only)
    lookbehind: int = 2
    # Script words shorter than this only count when matched exactly
    min_match_len: int = 2
    # Average similarity an alignment must exceed to move the cursor
    match_threshold: float = 0.45
    # Number of trailing spoken words used as the anchor
    anchor_size: int = 3

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> 'SearchParams':
        """Build parameters from the tracking section of the config."""
        defaults = cls()
        return cls(
            lookahead=int(settings.get("lookahead", defaults.lookahead)),
            lookbehind=int(settings.get("lookbehind", defaults.lookbehind)),
            min_match_len=int(settings.get("min_match_len", defaults.min_match_len)),
            match_threshold=float(settings.get("match_threshold", defaults.match_threshold)),
            anchor_size=int(settings.get("anchor_size", defaults.anchor_size)),
        )


@dataclass(frozen=True)
class WindowMatch:
    """The winning alignment of the anchor inside the window."""
    position: int  # Token index of the last anchor word (the new cursor)
    score: float  # Average similarity over the anchor (0-1)
    offset: int  # Offset of the alignment inside the window


def build_anchor(spoken_words: Sequence[str], anchor_size: int = 3) -> list[str]:
    """Normalize the trailing spoken words, dropping any that end up empty."""
    if anchor_size <= 0:
        return []
    recent: Sequence[str] = spoken_words[-anchor_size:]
    return [w for w in (normalize_word(word) for word in recent) if w]


def _score_alignment(
    anchor: Sequence[str],
    window: Sequence[ScriptToken],
    offset: int,
    min_match_len: int
) -> float:
    """Average similarity of the anchor laid over the window at offset."""
    score: float = 0.0
    for i, spoken in enumerate(anchor):
        script_word: str = window[offset + i].normalized
        # Short function words ("a", "I") would otherwise dominate the score
        if len(script_word) < min_match_len and spoken != script_word:
            continue
        score += word_similarity(spoken, script_word)
    return score / len(anchor)


def find_best_match(
    spoken_words: Sequence[str],
    tokens: Sequence[ScriptToken],
    cursor_start: int,
    params: SearchParams = SearchParams()
) -> WindowMatch | None:
    """
    Find the best alignment of the recent spoken words near the cursor.

    Args:
        spoken_words: Spoken words, most recent last
        tokens: The script tokens
        cursor_start: Current cursor (negative values anchor at the start)
        params: Window and threshold settings

    Returns:
        The winning alignment, or None if nothing beat the threshold
    """
    cursor_start = max(0, cursor_start)
    window_start: int = max(0, cursor_start - params.lookbehind)
    window_end: int = min(len(tokens), cursor_start + params.lookahead)
    window: Sequence[ScriptToken] = tokens[window_start:window_end]

    anchor: list[str] = build_anchor(spoken_words, params.anchor_size)
    if not anchor:
        return None

    best: WindowMatch | None = None
    for offset in range(len(window) - len(anchor) + 1):
        score: float = _score_alignment(
            anchor, window, offset, params.min_match_len)
        # Strict comparison: the earliest alignment wins ties
        if score > params.match_threshold and (best is None or score > best.score):
            best = WindowMatch(
                position=window_start + offset + len(anchor) - 1,
                score=score,
                offset=offset
            )

    if best is not None:
        logger.debug(
            "Window [%d, %d): anchor %s matched at %d (score %.2f)",
            window_start, window_end, anchor, best.position, best.score
        )
    else:
        logger.debug(
            "Window [%d, %d): no match for anchor %s",
            window_start, window_end, anchor
        )
    return best


def advance_cursor(
    spoken_words: Sequence[str],
    tokens: Sequence[ScriptToken],
    cursor_start: int,
    params: SearchParams = SearchParams()
) -> int:
    """
    Return the candidate cursor for the recent spoken words.

    The candidate may be behind the current cursor (lookbehind) or equal to
    it when nothing matched. Deciding whether to commit it is up to the caller.
    """
    match: WindowMatch | None = find_best_match(
        spoken_words, tokens, cursor_start, params)
    if match is None:
        return max(0, cursor_start)
    return match.position
