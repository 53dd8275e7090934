# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Script tracking module that follows a speaker through a script.

Owns the session state (tokens, cursor, spoken history, interim words,
completion) and turns recognizer updates into cursor moves using the
window search in matcher.py.

Final and interim results are kept apart: only final words are remembered
in the spoken history, while the latest interim fragment is held on its own
and replaced on every interim update. An interim update can still move the
cursor forward (a preview), but a wrong interim guess never ends up in the
history where it could mislead later final results.
"""

import logging
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .matcher import SearchParams, WindowMatch, find_best_match
from .script_parser import ScriptToken, normalize_word, split_transcript, tokenize_script

logger = logging.getLogger(__name__)

# Number of final spoken words remembered for anchoring
DEFAULT_HISTORY_SIZE: int = 20


class SessionStatus(str, Enum):
    """Where a session is in its lifecycle."""
    EMPTY = "empty"  # No script loaded
    READY = "ready"  # Script loaded, nothing matched yet
    TRACKING = "tracking"  # Cursor somewhere in the script
    COMPLETE = "complete"  # Last word reached


@dataclass(frozen=True)
class TrackerState:
    """Snapshot of the observable session state."""
    cursor: int
    complete: bool
    token_count: int
    status: SessionStatus
    # True when the latest cursor move came from an interim update
    is_preview: bool = False

    @property
    def progress(self) -> float:
        """Progress through the script (0.0 to 1.0)."""
        if self.token_count == 0 or self.cursor < 0:
            return 0.0
        return (self.cursor + 1) / self.token_count


StateListener = Callable[[TrackerState], None]


def clamp_index(index: int, token_count: int) -> int:
    """Clamp a requested jump target to a valid token index."""
    if token_count <= 0:
        return -1
    return max(0, min(index, token_count - 1))


class ScriptTracker:
    """
    Tracks the read position in a script from recognized speech.

    All operations are synchronous and must be called one at a time by the
    owner (an event loop or the ThreadedTracker worker). Each one reads the
    current cursor and buffers directly from this object, so there is no
    stale snapshot to go wrong.

    Observers registered with add_listener() get a TrackerState whenever the
    cursor, the completion flag or the tokens change.
    """

    params: SearchParams
    history_size: int

    tokens: list[ScriptToken]
    cursor: int
    complete: bool
    spoken_history: deque[str]
    interim_words: list[str]

    def __init__(
        self,
        script_text: str = "",
        params: SearchParams | None = None,
        history_size: int = DEFAULT_HISTORY_SIZE
    ) -> None:
        """
        Initialize the script tracker.

        Args:
            script_text: Optional script to load straight away
            params: Window search settings (defaults if None)
            history_size: Number of final spoken words kept for anchoring
        """
        self.params = params or SearchParams()
        self.history_size = history_size

        self.tokens = []
        self.cursor = -1
        self.complete = False
        self.spoken_history = deque(maxlen=history_size)
        self.interim_words = []

        self._is_preview: bool = False
        self._listeners: list[StateListener] = []

        if script_text:
            self.load_script(script_text)

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any], script_text: str = "") -> 'ScriptTracker':
        """Create a tracker from the tracking section of the config."""
        return cls(
            script_text,
            params=SearchParams.from_settings(settings),
            history_size=int(settings.get("history_size", DEFAULT_HISTORY_SIZE))
        )

    # Observers

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback for state changes."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        """Unregister a state change callback."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        state: TrackerState = self.state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Tracker state listener failed")

    # Observable state

    @property
    def status(self) -> SessionStatus:
        """Current lifecycle status."""
        if not self.tokens:
            return SessionStatus.EMPTY
        if self.complete:
            return SessionStatus.COMPLETE
        if self.cursor < 0:
            return SessionStatus.READY
        return SessionStatus.TRACKING

    @property
    def state(self) -> TrackerState:
        """Snapshot of the observable state."""
        return TrackerState(
            cursor=self.cursor,
            complete=self.complete,
            token_count=len(self.tokens),
            status=self.status,
            is_preview=self._is_preview
        )

    @property
    def progress(self) -> float:
        """Progress through the script (0.0 to 1.0)."""
        return self.state.progress

    @property
    def last_index(self) -> int:
        """Index of the last token (-1 for an empty script)."""
        return len(self.tokens) - 1

    # Operations

    def load_script(self, text: str) -> None:
        """Tokenize a new script and start over from the beginning."""
        self.tokens = tokenize_script(text)
        self.cursor = -1
        self.complete = False
        self._clear_buffers()
        self._is_preview = False
        logger.info("Script loaded: %d words", len(self.tokens))
        self._notify()

    def ingest_speech(self, transcript: str, is_final: bool) -> None:
        """
        Update the cursor from a recognizer result.

        Final results are appended to the spoken history. Interim results
        replace the interim buffer and are matched together with the history,
        moving the cursor as a preview without being remembered.

        Args:
            transcript: The recognized text fragment
            is_final: True if the recognizer has finalized this fragment
        """
        if not self.tokens:
            return

        words: list[str] = split_transcript(transcript)
        if not words:
            return

        normalized: list[str] = [normalize_word(w) for w in words]
        before: TrackerState = self.state

        if is_final:
            self.interim_words = []
            self.spoken_history.extend(normalized)
            candidate: int = self._search(list(self.spoken_history))
            if candidate > self.cursor:
                logger.debug("Final: cursor %d -> %d", self.cursor, candidate)
                self.cursor = candidate
                self._is_preview = False
            # Also confirms a preview that already reached the end
            if self.cursor == self.last_index:
                self.complete = True
        else:
            self.interim_words = normalized
            combined: list[str] = (
                list(self.spoken_history) + self.interim_words)[-self.history_size:]
            candidate = self._search(combined)
            if candidate > self.cursor:
                logger.debug("Interim: cursor %d -> %d (preview)", self.cursor, candidate)
                self.cursor = candidate
                self._is_preview = True

        if self.state != before:
            self._notify()

    def _search(self, spoken_words: list[str]) -> int:
        """Candidate cursor for spoken_words; the current cursor if nothing matched."""
        match: WindowMatch | None = find_best_match(
            spoken_words, self.tokens, max(0, self.cursor), self.params)
        if match is None:
            return self.cursor
        return match.position

    def jump_to(self, index: int) -> None:
        """
        Move the cursor directly to a token index.

        Manual override: bypasses monotonicity and forgets everything heard
        so far. The index is expected to be in range; callers clamp it with
        clamp_index() first.
        """
        if not -1 <= index <= self.last_index:
            logger.warning(
                "Jump to %d outside script bounds [-1, %d]", index, self.last_index)
        self.cursor = index
        self.complete = False
        self._clear_buffers()
        self._is_preview = False
        logger.debug("Jumped to %d", index)
        self._notify()

    def reset(self) -> None:
        """Go back to the start of the current script."""
        self.cursor = -1
        self.complete = False
        self._clear_buffers()
        self._is_preview = False
        self._notify()

    def _clear_buffers(self) -> None:
        self.spoken_history.clear()
        self.interim_words = []

    def word_at(self, index: int) -> str | None:
        """Surface form of the token at index, or None if out of range."""
        if 0 <= index < len(self.tokens):
            return self.tokens[index].surface
        return None
