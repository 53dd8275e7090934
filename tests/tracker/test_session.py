# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for the tracking session: cursor movement, completion, interim
previews, jumps and resets.
"""

import logging

import pytest

from readalong.tracker import (
    ScriptTracker,
    SessionStatus,
    TrackerState,
    clamp_index,
)

FOX: str = "the quick brown fox jumps over the lazy dog"


class TestExactMatching:
    """Reading the script word for word."""

    def test_phrases_advance_cursor_to_end(self) -> None:
        tracker: ScriptTracker = ScriptTracker(FOX)

        tracker.ingest_speech("the quick brown", True)
        assert tracker.cursor == 2
        assert not tracker.complete

        tracker.ingest_speech("fox jumps over", True)
        assert tracker.cursor == 5
        assert not tracker.complete

        tracker.ingest_speech("the lazy dog", True)
        assert tracker.cursor == 8
        assert tracker.complete
        assert tracker.status == SessionStatus.COMPLETE

    def test_punctuation_and_case_in_script_are_ignored(self) -> None:
        tracker: ScriptTracker = ScriptTracker("The QUICK, brown... fox!")

        tracker.ingest_speech("the quick brown fox", True)

        assert tracker.cursor == 3
        assert tracker.complete


class TestTolerantMatching:
    """Recognizer substitutions that should still advance the cursor."""

    def test_homophone_still_advances(self) -> None:
        tracker: ScriptTracker = ScriptTracker("we went to their house for dinner")

        tracker.ingest_speech("we went to", True)
        assert tracker.cursor == 2

        tracker.ingest_speech("there", True)
        assert tracker.cursor == 3

    def test_gibberish_leaves_cursor_unchanged(self) -> None:
        tracker: ScriptTracker = ScriptTracker(FOX)

        tracker.ingest_speech("gibberish unrelated noise", True)
        assert tracker.cursor == -1
        assert tracker.status == SessionStatus.READY

        tracker.ingest_speech("the quick brown", True)
        tracker.ingest_speech("gibberish unrelated noise", True)
        assert tracker.cursor == 2


class TestMonotonicity:
    """The cursor never moves backwards on its own."""

    def test_cursor_never_decreases_and_stays_in_bounds(self) -> None:
        tracker: ScriptTracker = ScriptTracker(FOX)
        fragments: list[tuple[str, bool]] = [
            ("the quick", False),
            ("the quick brown", True),
            ("fox", False),
            ("the quick", True),  # repeated start of the script
            ("fox jumps", True),
            ("noise noise", False),
            ("quick brown fox", True),  # behind the cursor
            ("over the lazy", False),
            ("over the", True),
            ("lazy dog", True),
            ("the quick brown", True),
        ]

        cursors: list[int] = [tracker.cursor]
        for text, is_final in fragments:
            tracker.ingest_speech(text, is_final)
            cursors.append(tracker.cursor)
            assert -1 <= tracker.cursor <= len(tracker.tokens) - 1

        assert cursors == sorted(cursors)

    def test_lookbehind_match_does_not_move_back(self) -> None:
        """Saying "brown fox" matches behind the cursor, which is not committed."""
        tracker: ScriptTracker = ScriptTracker(FOX)
        tracker.jump_to(4)

        tracker.ingest_speech("brown fox", True)

        assert tracker.cursor == 4


class TestCompletion:
    """complete is set exactly when the cursor reaches the last word."""

    def test_not_complete_before_last_word(self) -> None:
        tracker: ScriptTracker = ScriptTracker(FOX)
        tracker.ingest_speech("the quick brown fox jumps over the lazy", True)

        assert tracker.cursor == 7
        assert not tracker.complete

    def test_interim_reaching_end_is_only_a_preview(self) -> None:
        tracker: ScriptTracker = ScriptTracker("the quick brown fox")
        tracker.ingest_speech("the quick", True)

        tracker.ingest_speech("brown fox", False)

        assert tracker.cursor == 3
        assert tracker.state.is_preview
        assert not tracker.complete

    def test_next_final_confirms_preview_at_end(self) -> None:
        tracker: ScriptTracker = ScriptTracker("the quick brown fox")
        tracker.ingest_speech("the quick", True)
        tracker.ingest_speech("brown fox", False)

        tracker.ingest_speech("uh", True)

        assert tracker.cursor == 3
        assert tracker.complete

    def test_single_word_script(self) -> None:
        tracker: ScriptTracker = ScriptTracker("Hello!")
        tracker.ingest_speech("goodbye", True)
        assert tracker.cursor == -1
        assert not tracker.complete

        tracker = ScriptTracker("Hello!")
        tracker.ingest_speech("hello", True)
        assert tracker.cursor == 0
        assert tracker.complete


class TestInterimResults:
    """Interim guesses move the cursor but are never remembered."""

    def test_interim_words_not_added_to_history(self) -> None:
        tracker: ScriptTracker = ScriptTracker(FOX)
        tracker.ingest_speech("the quick", True)
        assert tracker.cursor == 1

        tracker.ingest_speech("brown fox jumps", False)
        assert tracker.cursor == 4
        assert tracker.state.is_preview
        assert tracker.interim_words == ["brown", "fox", "jumps"]

        # The recognizer changes its mind
        tracker.ingest_speech("brown socks", True)

        assert list(tracker.spoken_history) == ["the", "quick", "brown", "socks"]
        assert tracker.interim_words == []
        assert tracker.cursor == 4

    def test_final_replaces_interim_without_duplicating_words(self) -> None:
        tracker: ScriptTracker = ScriptTracker(FOX)
        tracker.ingest_speech("the quick", True)
        tracker.ingest_speech("brown fox", False)

        tracker.ingest_speech("brown fox jumps", True)

        assert list(tracker.spoken_history) == ["the", "quick", "brown", "fox", "jumps"]
        assert tracker.cursor == 4
        assert not tracker.state.is_preview

    def test_each_interim_replaces_the_last(self) -> None:
        tracker: ScriptTracker = ScriptTracker(FOX)

        tracker.ingest_speech("the", False)
        tracker.ingest_speech("the quick", False)

        assert tracker.interim_words == ["the", "quick"]
        assert len(tracker.spoken_history) == 0

    def test_history_is_bounded(self) -> None:
        tracker: ScriptTracker = ScriptTracker(FOX, history_size=5)

        tracker.ingest_speech("one two three four five six seven", True)

        assert list(tracker.spoken_history) == ["three", "four", "five", "six", "seven"]


class TestJumpAndReset:
    """Manual overrides."""

    def test_jump_sets_cursor_and_clears_completion(self) -> None:
        tracker: ScriptTracker = ScriptTracker(FOX)
        tracker.ingest_speech(FOX, True)
        assert tracker.complete

        tracker.jump_to(3)

        assert tracker.cursor == 3
        assert not tracker.complete
        assert len(tracker.spoken_history) == 0
        assert tracker.interim_words == []

    def test_search_after_jump_ignores_old_history(self) -> None:
        """With the old history still around the anchor would be 'lazy dog over'."""
        tracker: ScriptTracker = ScriptTracker(FOX)
        tracker.ingest_speech("the quick brown fox jumps over the lazy dog", True)

        tracker.jump_to(3)
        tracker.ingest_speech("over", True)

        assert tracker.cursor == 5

    def test_jump_can_move_backwards(self) -> None:
        tracker: ScriptTracker = ScriptTracker(FOX)
        tracker.ingest_speech("the quick brown fox jumps", True)

        tracker.jump_to(1)

        assert tracker.cursor == 1

    def test_jump_out_of_range_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        tracker: ScriptTracker = ScriptTracker("one two three")

        with caplog.at_level(logging.WARNING, logger="readalong.tracker"):
            tracker.jump_to(10)

        assert "outside script bounds" in caplog.text

    def test_reset_keeps_script(self) -> None:
        tracker: ScriptTracker = ScriptTracker(FOX)
        tracker.ingest_speech(FOX, True)

        tracker.reset()

        assert tracker.cursor == -1
        assert not tracker.complete
        assert len(tracker.tokens) == 9
        assert len(tracker.spoken_history) == 0
        assert tracker.status == SessionStatus.READY


class TestLoadScript:
    """Loading and replacing scripts."""

    def test_load_replaces_tokens_and_restarts(self) -> None:
        tracker: ScriptTracker = ScriptTracker(FOX)
        tracker.ingest_speech("the quick brown", True)

        tracker.load_script("one two three")

        assert [t.surface for t in tracker.tokens] == ["one", "two", "three"]
        assert tracker.cursor == -1
        assert not tracker.complete
        assert len(tracker.spoken_history) == 0

    def test_no_script_ignores_speech(self) -> None:
        tracker: ScriptTracker = ScriptTracker()

        tracker.ingest_speech("hello there", True)

        assert tracker.status == SessionStatus.EMPTY
        assert tracker.cursor == -1
        assert len(tracker.spoken_history) == 0

    def test_empty_transcript_is_ignored(self) -> None:
        tracker: ScriptTracker = ScriptTracker(FOX)
        tracker.ingest_speech("   ", True)
        tracker.ingest_speech("", False)

        assert tracker.cursor == -1
        assert len(tracker.spoken_history) == 0

    def test_word_at(self) -> None:
        tracker: ScriptTracker = ScriptTracker("Hello, world!")

        assert tracker.word_at(1) == "world!"
        assert tracker.word_at(2) is None
        assert tracker.word_at(-1) is None


class TestState:
    """Observable state snapshots."""

    def test_progress(self) -> None:
        tracker: ScriptTracker = ScriptTracker("one two three four")
        assert tracker.progress == 0.0

        tracker.ingest_speech("one two", True)
        assert tracker.progress == pytest.approx(0.5)

    def test_progress_empty_script(self) -> None:
        state: TrackerState = TrackerState(
            cursor=-1, complete=False, token_count=0, status=SessionStatus.EMPTY)

        assert state.progress == 0.0

    def test_from_settings(self) -> None:
        tracker: ScriptTracker = ScriptTracker.from_settings(
            {"lookahead": 4, "history_size": 6}, "one two three")

        assert tracker.params.lookahead == 4
        assert tracker.spoken_history.maxlen == 6
        assert len(tracker.tokens) == 3


class TestClampIndex:
    """Tests for clamp_index."""

    def test_clamps_into_range(self) -> None:
        assert clamp_index(5, 3) == 2
        assert clamp_index(-4, 3) == 0
        assert clamp_index(1, 3) == 1

    def test_empty_script(self) -> None:
        assert clamp_index(0, 0) == -1
