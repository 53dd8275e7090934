# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for the window search (anchor building, alignment scoring, windowing).
"""

import pytest

from readalong.config import DEFAULT_CONFIG
from readalong.matcher import (
    SearchParams,
    WindowMatch,
    advance_cursor,
    build_anchor,
    find_best_match,
)
from readalong.script_parser import ScriptToken, tokenize_script

NATO: str = (
    "alpha bravo charlie delta echo foxtrot golf hotel india juliett kilo lima "
    "mike november oscar papa quebec romeo sierra tango uniform victor whiskey "
    "xray yankee zulu"
)


class TestBuildAnchor:
    """Tests for build_anchor."""

    def test_takes_trailing_words(self) -> None:
        assert build_anchor(["one", "two", "three", "four"], 3) == ["two", "three", "four"]

    def test_normalizes_and_drops_empty_words(self) -> None:
        """Empty words are dropped after slicing, so the anchor can shrink."""
        assert build_anchor(["Hello,", "--", "World!"], 3) == ["hello", "world"]

    def test_short_history(self) -> None:
        assert build_anchor(["hi"], 3) == ["hi"]
        assert build_anchor([], 3) == []

    def test_zero_size(self) -> None:
        assert build_anchor(["one", "two"], 0) == []


class TestFindBestMatch:
    """Tests for find_best_match."""

    def test_exact_phrase_moves_to_last_anchor_word(self) -> None:
        tokens: list[ScriptToken] = tokenize_script(NATO)
        match: WindowMatch | None = find_best_match(
            ["charlie", "delta", "echo"], tokens, 0)

        assert match is not None
        assert match.position == 4
        assert match.score == pytest.approx(1.0)

    def test_target_beyond_lookahead_is_not_found(self) -> None:
        tokens: list[ScriptToken] = tokenize_script(NATO)
        spoken: list[str] = ["sierra", "tango", "uniform"]

        assert find_best_match(spoken, tokens, 0, SearchParams(lookahead=16)) is None

        match = find_best_match(spoken, tokens, 0, SearchParams(lookahead=26))
        assert match is not None
        assert match.position == 20

    def test_lookbehind_allows_small_corrections_only(self) -> None:
        tokens: list[ScriptToken] = tokenize_script(NATO)
        params: SearchParams = SearchParams(lookbehind=2)

        match = find_best_match(["india", "juliett", "kilo"], tokens, 10, params)
        assert match is not None
        assert match.position == 10

        assert find_best_match(["charlie", "delta", "echo"], tokens, 10, params) is None

    def test_negative_cursor_searches_from_start(self) -> None:
        tokens: list[ScriptToken] = tokenize_script(NATO)
        match = find_best_match(["alpha", "bravo"], tokens, -1)

        assert match is not None
        assert match.position == 1

    def test_earliest_alignment_wins_ties(self) -> None:
        tokens: list[ScriptToken] = tokenize_script("red green blue red green blue")
        match = find_best_match(["red", "green", "blue"], tokens, 0)

        assert match is not None
        assert match.position == 2

    def test_short_script_words_need_exact_match(self) -> None:
        """'a' is skipped when the speaker said 'I', so it scores 2 of 3."""
        tokens: list[ScriptToken] = tokenize_script("go a house")
        match = find_best_match(["go", "I", "house"], tokens, 0)

        assert match is not None
        assert match.position == 2
        assert match.score == pytest.approx(2 / 3)

    def test_score_must_exceed_threshold(self) -> None:
        tokens: list[ScriptToken] = tokenize_script("one two three")
        params: SearchParams = SearchParams(match_threshold=1.0)

        assert find_best_match(["one", "two", "three"], tokens, 0, params) is None

    def test_anchor_longer_than_window(self) -> None:
        tokens: list[ScriptToken] = tokenize_script("hello")

        assert find_best_match(["say", "hello", "there"], tokens, 0) is None

    def test_punctuation_only_speech_has_no_anchor(self) -> None:
        tokens: list[ScriptToken] = tokenize_script(NATO)

        assert find_best_match(["--", "..."], tokens, 0) is None

    def test_empty_script(self) -> None:
        assert find_best_match(["hello"], [], 0) is None


class TestAdvanceCursor:
    """Tests for advance_cursor."""

    def test_returns_match_position(self) -> None:
        tokens: list[ScriptToken] = tokenize_script(NATO)

        assert advance_cursor(["golf", "hotel", "india"], tokens, 3) == 8

    def test_no_match_returns_clamped_cursor(self) -> None:
        tokens: list[ScriptToken] = tokenize_script(NATO)

        assert advance_cursor(["gibberish"], tokens, 5) == 5
        assert advance_cursor(["gibberish"], tokens, -1) == 0

    def test_candidate_can_be_behind_cursor(self) -> None:
        """Committing only forward moves is the session's job."""
        tokens: list[ScriptToken] = tokenize_script(NATO)

        assert advance_cursor(["india", "juliett"], tokens, 10) == 9


def test_search_params_from_default_settings() -> None:
    assert SearchParams.from_settings(DEFAULT_CONFIG["tracking"]) == SearchParams()


def test_search_params_from_partial_settings() -> None:
    params: SearchParams = SearchParams.from_settings({"lookahead": 12, "match_threshold": 0.55})

    assert params.lookahead == 12
    assert params.match_threshold == 0.55
    assert params.lookbehind == SearchParams().lookbehind
