# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Boundary with the speech recognizer.

The recognizer itself (browser Web Speech API, a cloud service, a local
model) lives outside this package. What lives here is the glue a caller needs
around it: collapsing a recognizer result list into one interim and one final
fragment, tracking the listening lifecycle, turning error codes into messages,
and deciding when to restart a recognizer that ended on its own.

None of this reaches the tracker: the tracker only ever sees
(transcript, is_final) pairs.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

# Delay before restarting a recognizer that ended while still listening
DEFAULT_RESTART_DELAY_MS: int = 1000

# Emitted routinely around restarts; nothing to report
BENIGN_ERRORS: frozenset[str] = frozenset(["aborted", "no-speech"])

# Errors that leave the recognizer unable to continue
FATAL_ERRORS: frozenset[str] = frozenset([
    "not-allowed", "service-not-allowed", "language-not-supported",
])


@dataclass
class TranscriptionResult:
    """A transcript fragment from the recognizer."""

    text: str
    is_final: bool
    confidence: float = 1.0

    def __repr__(self) -> str:
        status: str = "final" if self.is_final else "interim"
        return f"TranscriptionResult({status}: '{self.text}')"


class RecognizerStatus(str, Enum):
    """Listening lifecycle of the recognizer."""
    IDLE = "idle"
    LISTENING = "listening"
    PAUSED = "paused"
    UNSUPPORTED = "unsupported"


def collect_results(
    results: Sequence[TranscriptionResult],
    result_index: int = 0
) -> tuple[str, str]:
    """
    Collapse a recognizer result list into (interim, final) text.

    Recognizers report every result of the session so far along with the
    index of the first one that changed; only results from that index on are
    new. Final and interim transcripts are concatenated separately.

    Args:
        results: The full result list from the recognizer event
        result_index: Index of the first changed result

    Returns:
        Tuple of (interim_text, final_text); either may be empty
    """
    interim: str = ""
    final: str = ""
    for result in results[max(0, result_index):]:
        if result.is_final:
            final += result.text
        else:
            interim += result.text
    return interim, final


def is_fatal_recognition_error(code: str) -> bool:
    """Check whether an error stops the recognizer for good."""
    return code in FATAL_ERRORS


def describe_recognition_error(code: str, lang: str = "en-US") -> str | None:
    """
    Turn a recognizer error code into a message for the user.

    Returns None for the benign codes recognizers emit during restarts.
    """
    if code in BENIGN_ERRORS:
        return None
    if code == "not-allowed":
        return "Microphone permission denied."
    if code == "service-not-allowed":
        return "Speech service is not allowed on this device/browser."
    if code == "language-not-supported":
        return (f'Language "{lang}" is not supported by this device speech engine. '
                "Try en-US.")
    if code == "network":
        return "Speech recognition network error. Check internet connection."
    return f"Speech recognition error: {code}"


class RecognitionBridge:
    """
    Lifecycle adapter between a recognizer and the tracker.

    Holds the listening status, routes collapsed results to the interim and
    final callbacks, reports errors, and tells the caller when a recognizer
    that ended by itself should be restarted.
    """

    def __init__(
        self,
        on_interim: Callable[[str], None] | None = None,
        on_final: Callable[[str], None] | None = None,
        on_error: Callable[[str], None] | None = None,
        lang: str = "en-US",
        restart_delay_ms: int = DEFAULT_RESTART_DELAY_MS
    ) -> None:
        self.on_interim = on_interim
        self.on_final = on_final
        self.on_error = on_error
        self.lang = lang
        self.restart_delay_ms = restart_delay_ms
        self.status: RecognizerStatus = RecognizerStatus.IDLE

    @property
    def is_listening(self) -> bool:
        """True while results are expected."""
        return self.status == RecognizerStatus.LISTENING

    def _set_status(self, status: RecognizerStatus) -> None:
        if status != self.status:
            logger.info("Recognizer status: %s -> %s", self.status.value, status.value)
        self.status = status

    def _report(self, message: str) -> None:
        logger.warning("Recognizer: %s", message)
        if self.on_error:
            self.on_error(message)

    def start(self, supported: bool = True) -> RecognizerStatus:
        """Begin listening, or mark the recognizer unsupported."""
        if not supported:
            self._set_status(RecognizerStatus.UNSUPPORTED)
            self._report("Speech recognition is not supported in this browser.")
            return self.status
        self._set_status(RecognizerStatus.LISTENING)
        return self.status

    def stop(self) -> RecognizerStatus:
        """Stop listening."""
        self._set_status(RecognizerStatus.IDLE)
        return self.status

    def pause(self) -> RecognizerStatus:
        """Pause listening; resume() picks up where it left off."""
        if self.status == RecognizerStatus.LISTENING:
            self._set_status(RecognizerStatus.PAUSED)
        return self.status

    def resume(self, supported: bool = True) -> RecognizerStatus:
        """Resume after a pause."""
        if not supported:
            self._set_status(RecognizerStatus.UNSUPPORTED)
            return self.status
        if self.status == RecognizerStatus.PAUSED:
            self._set_status(RecognizerStatus.LISTENING)
        return self.status

    def handle_results(
        self,
        results: Sequence[TranscriptionResult],
        result_index: int = 0
    ) -> tuple[str, str]:
        """
        Route a recognizer result event to the callbacks.

        Results arriving while not listening are dropped. The interim
        fragment is delivered before the final one.

        Returns:
            The collapsed (interim, final) text that was delivered
        """
        if not self.is_listening:
            logger.debug("Dropping results received while %s", self.status.value)
            return "", ""
        interim, final = collect_results(results, result_index)
        if interim and self.on_interim:
            self.on_interim(interim)
        if final and self.on_final:
            self.on_final(final)
        return interim, final

    def handle_error(self, code: str) -> str | None:
        """
        Handle a recognizer error code.

        Fatal errors stop listening. Returns the message reported, if any.
        """
        message: str | None = describe_recognition_error(code, self.lang)
        if message is None:
            return None
        if is_fatal_recognition_error(code):
            self._set_status(RecognizerStatus.IDLE)
        self._report(message)
        return message

    def handle_end(self) -> int | None:
        """
        Handle the recognizer ending on its own.

        Mobile recognizers end after every utterance. While still listening
        the caller should start a fresh one after the returned delay (ms);
        None means stay stopped.
        """
        if self.is_listening:
            return self.restart_delay_ms
        return None
