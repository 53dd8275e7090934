# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Script parsing module that turns reference text into script tokens.

Each token keeps three things:
1. Surface form - the word exactly as written (punctuation included), for display
2. Normalized form - lowercase ASCII letters, digits and apostrophes, for matching
3. Position - index in the token list, shared by the tracker and the UI

Spoken words coming from the recognizer go through the same normalizer so
that both sides of a comparison are in the same form.
"""

import re
from dataclasses import dataclass

# Everything outside lowercase ASCII letters, digits and apostrophes is dropped
_NON_MATCHABLE = re.compile(r"[^a-z0-9']")


@dataclass(frozen=True)
class ScriptToken:
    """One word of the script."""
    surface: str  # Original word (e.g., "Jump!")
    normalized: str  # Comparison form (e.g., "jump")
    position: int  # Index in the token list

    def __repr__(self) -> str:
        return f"ScriptToken({self.position}: '{self.surface}')"


def normalize_word(word: str) -> str:
    """Normalize a word for matching (lowercase, strip punctuation).

    Apostrophes are kept so contractions and possessives stay distinct
    from the bare word ("textream's" vs "textream").

    Examples:
        "Jump!" -> "jump"
        "Textream's" -> "textream's"
        "--" -> ""
    """
    return _NON_MATCHABLE.sub('', word.lower())


def split_transcript(text: str) -> list[str]:
    """Split text into words on runs of whitespace, dropping empty fragments."""
    return text.split()


def count_words(text: str) -> int:
    """Count the words a script would produce without building tokens."""
    return len(split_transcript(text))


def tokenize_script(text: str) -> list[ScriptToken]:
    """Split script text into tokens.

    Blank lines and newlines are just whitespace here; paragraph structure
    is a display concern and does not affect positions.

    Args:
        text: The raw script text

    Returns:
        Tokens in script order, with positions 0..n-1
    """
    return [
        ScriptToken(surface=word, normalized=normalize_word(word), position=i)
        for i, word in enumerate(split_transcript(text))
    ]
