# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debug logging of what the tracker heard and where the cursor went.

Writes one log file, tracker_events.log, with timestamped recognizer
fragments and cursor moves, so a session that went wrong can be read back
line by line next to the script.

Logging is disabled by default. Call enable() to turn it on.
"""

from datetime import datetime
from pathlib import Path

# Log files location (in project root)
LOG_DIR: Path = Path(__file__).parent.parent.parent / "logs"
EVENT_LOG: Path = LOG_DIR / "tracker_events.log"

# Global flag to control whether debug logging is enabled
_ENABLED: bool = False  # pylint: disable=invalid-name


def enable() -> None:
    """Enable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = True


def disable() -> None:
    """Disable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = False


def is_enabled() -> bool:
    """Check if debug logging is enabled."""
    return _ENABLED


def _ensure_log_dir() -> None:
    """Create log directory if it doesn't exist."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def _timestamp() -> str:
    """Get current timestamp."""
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def clear_logs() -> None:
    """Clear the log file for a fresh session."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(EVENT_LOG, 'w', encoding='utf-8') as f:
        f.write(
            f"=== New session started at {datetime.now().isoformat()} ===\n\n")


def log_transcript(transcript: str, is_final: bool) -> None:
    """Log a recognizer fragment as it arrives."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    kind: str = "final" if is_final else "interim"
    with open(EVENT_LOG, 'a', encoding='utf-8') as f:
        f.write(f"[{_timestamp()}] {kind:7} \"{transcript[-60:]}\"\n")


def log_cursor_change(
    old_pos: int,
    new_pos: int,
    words_in_range: list[str],
    reason: str
) -> None:
    """
    Log a cursor move.

    Args:
        old_pos: Previous cursor
        new_pos: New cursor
        words_in_range: The script words passed over (or landed on)
        reason: Why the cursor moved (final, preview, jump, reset, load)
    """
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(EVENT_LOG, 'a', encoding='utf-8') as f:
        f.write(
            f"[{_timestamp()}] CURSOR: {old_pos} -> {new_pos} ({reason})\n")
        f.write(f"                 words: {words_in_range}\n")
