"""
readalong - Follow a speaker through a fixed script from recognized speech.

Given a reference script and the incremental, noisy output of a speech
recognizer, readalong keeps a read position that only moves forward and
tolerates misrecognitions, repeats and recognizer restarts.
"""

__version__ = "0.1.0"

from .main import ReadAlongApp
from .matcher import SearchParams, advance_cursor
from .recognition import RecognitionBridge, TranscriptionResult
from .script_parser import ScriptToken, normalize_word, tokenize_script
from .server import WebServer
from .similarity import word_similarity
from .threaded_tracker import ThreadedTracker
from .tracker import ScriptTracker, SessionStatus, TrackerState

__all__ = [
    "ScriptToken",
    "normalize_word",
    "tokenize_script",
    "word_similarity",
    "SearchParams",
    "advance_cursor",
    "ScriptTracker",
    "TrackerState",
    "SessionStatus",
    "ThreadedTracker",
    "TranscriptionResult",
    "RecognitionBridge",
    "WebServer",
    "ReadAlongApp",
]
