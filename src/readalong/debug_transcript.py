# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debug tool for replaying a transcript through the tracker.

This CLI tool takes a saved transcript file and a script file, feeds the
transcript into a fresh tracking session and writes out where the cursor
went after every update, to help debug tracking issues.
"""

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal, TextIO

from .matcher import SearchParams
from .tracker import ScriptTracker, TrackerState

EventType = Literal["advance", "no_change", "complete"]


@dataclass
class TrackingEvent:
    """A single tracking event during transcript replay."""
    transcript_line: int
    transcript_text: str
    is_final: bool
    cursor_before: int
    cursor_after: int
    script_word: str
    event_type: EventType


def load_transcript(path: Path) -> list[str]:
    """Load transcript file and extract transcript lines.

    Filters out metadata lines (starting with '===').
    Returns list of transcript text lines.
    """
    lines: list[str] = []
    with open(path, encoding='utf-8') as f:
        for line in f:
            stripped_line: str = line.strip()
            # Skip metadata lines and empty lines
            if stripped_line.startswith('===') or not stripped_line:
                continue
            lines.append(stripped_line)
    return lines


def load_script(path: Path) -> str:
    """Load script file content."""
    with open(path, encoding='utf-8') as f:
        return f.read()


def _classify(before: TrackerState, after: TrackerState) -> EventType:
    if after.complete and not before.complete:
        return "complete"
    if after.cursor > before.cursor:
        return "advance"
    return "no_change"


def _script_word(tracker: ScriptTracker, index: int) -> str:
    if index < 0:
        return "<START>"
    word: str | None = tracker.word_at(index)
    return word if word is not None else "<END>"


def _write_header(
    output: TextIO,
    title: str,
    tracker: ScriptTracker,
    transcript_lines: list[str]
) -> None:
    output.write("=" * 80 + "\n")
    output.write(f"{title}\n")
    output.write(f"Generated: {datetime.now().isoformat()}\n")
    output.write(f"Script words: {len(tracker.tokens)}\n")
    output.write(f"Transcript lines: {len(transcript_lines)}\n")
    output.write("=" * 80 + "\n\n")

    # Script words reference
    output.write("SCRIPT WORDS:\n")
    output.write("-" * 40 + "\n")
    for token in tracker.tokens:
        output.write(f"  [{token.position:4d}] {token.surface}\n")
    output.write("\n" + "=" * 80 + "\n\n")

    output.write("TRACKING LOG:\n")
    output.write("-" * 40 + "\n")


def _write_summary(
    output: TextIO,
    tracker: ScriptTracker,
    events: list[TrackingEvent],
    processed_label: str,
    processed_count: int
) -> None:
    output.write("\n" + "=" * 80 + "\n")
    output.write("SUMMARY:\n")
    output.write("-" * 40 + "\n")

    advances: list[TrackingEvent] = [
        e for e in events if e.event_type == "advance"]
    no_changes: list[TrackingEvent] = [
        e for e in events if e.event_type == "no_change"]

    output.write(f"Total {processed_label} processed: {processed_count}\n")
    output.write(
        f"Final position: {tracker.cursor} / {len(tracker.tokens)}\n")
    output.write(f"Advances: {len(advances)}\n")
    output.write(f"No change: {len(no_changes)}\n")
    output.write(f"Complete: {'yes' if tracker.complete else 'no'}\n")

    completions: list[TrackingEvent] = [
        e for e in events if e.event_type == "complete"]
    if completions:
        e = completions[0]
        output.write(
            f"\nCompleted on line {e.transcript_line}: \"{e.transcript_text[:60]}\"\n")


def _apply(
    tracker: ScriptTracker,
    line_num: int,
    text: str,
    is_final: bool
) -> TrackingEvent:
    """Feed one update into the tracker and describe what happened."""
    before: TrackerState = tracker.state
    tracker.ingest_speech(text, is_final)
    after: TrackerState = tracker.state
    return TrackingEvent(
        transcript_line=line_num,
        transcript_text=text,
        is_final=is_final,
        cursor_before=before.cursor,
        cursor_after=after.cursor,
        script_word=_script_word(tracker, after.cursor),
        event_type=_classify(before, after)
    )


def replay_transcript(
    transcript_lines: list[str],
    script_text: str,
    output: TextIO,
    verbose: bool = False,
    params: SearchParams | None = None
) -> list[TrackingEvent]:
    """Replay transcript through tracker and log events.

    Each transcript line is delivered as one final result, the way it was
    recorded.

    Args:
        transcript_lines: Lines of transcript text
        script_text: The script content
        output: File handle to write log output
        verbose: If True, log every line. If False, only log cursor moves.
        params: Window search settings (defaults if None)

    Returns:
        List of all tracking events
    """
    tracker: ScriptTracker = ScriptTracker(script_text, params=params)
    events: list[TrackingEvent] = []

    _write_header(output, "TRANSCRIPT DEBUG LOG", tracker, transcript_lines)

    for line_num, line in enumerate(transcript_lines, start=1):
        line_display: str = f"--- Line {line_num}: \"{line[:60]}"
        line_display += '...' if len(line) > 60 else ''
        line_display += "\" ---"
        output.write(f"\n{line_display}\n")

        event: TrackingEvent = _apply(tracker, line_num, line, is_final=True)
        events.append(event)

        if event.event_type != "no_change" or verbose:
            output.write(
                f"  [{event.cursor_after:4d}] \"{event.script_word}\" "
                f"({event.event_type}, pos: {event.cursor_before} -> {event.cursor_after})\n"
            )

    _write_summary(output, tracker, events, "lines", len(transcript_lines))
    return events


def replay_transcript_word_by_word(
    transcript_lines: list[str],
    script_text: str,
    output: TextIO,
    verbose: bool = False,
    params: SearchParams | None = None
) -> list[TrackingEvent]:
    """Replay transcript word-by-word (simulating interim results).

    Each line is delivered as a growing interim hypothesis, one word at a
    time, followed by the whole line as a final result. This shows where
    previews moved the cursor ahead of the finals.

    Args:
        transcript_lines: Lines of transcript text
        script_text: The script content
        output: File handle to write log output
        verbose: If True, log every update. If False, only log cursor moves.
        params: Window search settings (defaults if None)

    Returns:
        List of all tracking events
    """
    tracker: ScriptTracker = ScriptTracker(script_text, params=params)
    events: list[TrackingEvent] = []

    _write_header(
        output, "TRANSCRIPT DEBUG LOG (WORD-BY-WORD MODE)", tracker, transcript_lines)

    word_count: int = 0

    for line_num, line in enumerate(transcript_lines, start=1):
        words: list[str] = line.split()
        if not words:
            continue

        output.write(f"\n--- Line {line_num} ---\n")

        # Growing interim hypotheses, then the final for the whole line
        updates: list[tuple[str, bool]] = [
            (" ".join(words[:i + 1]), False) for i in range(len(words) - 1)
        ]
        updates.append((line, True))
        word_count += len(words)

        for text, is_final in updates:
            event: TrackingEvent = _apply(tracker, line_num, text, is_final)
            events.append(event)

            if event.event_type == "no_change" and not verbose:
                continue
            kind: str = "final" if is_final else "interim"
            last_word: str = text.split()[-1]
            marker: str = "*" if event.event_type != "no_change" else " "
            output.write(
                f"  {marker} [{event.cursor_after:4d}] \"{last_word}\" -> "
                f"\"{event.script_word}\" ({kind}, {event.event_type})\n"
            )

    _write_summary(output, tracker, events, "words", word_count)
    return events


def main() -> None:
    """CLI entry point for debug transcript tool."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Debug transcript tracking by replaying a transcript through the tracker"
    )

    parser.add_argument(
        "transcript",
        type=Path,
        help="Path to transcript file"
    )

    parser.add_argument(
        "script",
        type=Path,
        help="Path to script file"
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output log file path (default: stdout)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every update, not just cursor moves"
    )

    parser.add_argument(
        "-w", "--word-by-word",
        action="store_true",
        help="Process transcript word-by-word (simulates interim results)"
    )

    args: argparse.Namespace = parser.parse_args()

    # Validate inputs
    if not args.transcript.exists():
        print(
            f"Error: Transcript file not found: {args.transcript}", file=sys.stderr)
        sys.exit(1)

    if not args.script.exists():
        print(f"Error: Script file not found: {args.script}", file=sys.stderr)
        sys.exit(1)

    # Load files
    try:
        transcript_lines: list[str] = load_transcript(args.transcript)
        script_text: str = load_script(args.script)
    except OSError as e:
        print(f"Error loading files: {e}", file=sys.stderr)
        sys.exit(1)

    if not transcript_lines:
        print("Error: No transcript lines found", file=sys.stderr)
        sys.exit(1)

    replay = replay_transcript_word_by_word if args.word_by_word else replay_transcript

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            replay(transcript_lines, script_text, f, args.verbose)
        print(f"Debug log written to: {args.output}")
    else:
        replay(transcript_lines, script_text, sys.stdout, args.verbose)


if __name__ == "__main__":
    main()
