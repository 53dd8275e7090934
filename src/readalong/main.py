# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Main readalong application.
Wires the web server, the tracking session and transcript recording together.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
from datetime import datetime
from pathlib import Path

from . import debug_log
from .config import (
    DEFAULT_CONFIG,
    Config,
    RecognitionSettings,
    TrackingSettings,
    get_config_path,
    get_recognition_settings,
    get_tracking_settings,
    load_config,
    save_config,
    update_config_tracking,
)
from .server import WebServer

logger = logging.getLogger(__name__)


# Transcript files location (in project root)
TRANSCRIPT_DIR = Path(__file__).parent.parent.parent / "transcripts"


class ReadAlongApp:
    """
    Main readalong application that coordinates all components.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8000,
        tracking_settings: TrackingSettings | None = None,
        recognition_settings: RecognitionSettings | None = None,
        save_transcript: bool = False
    ) -> None:
        self.host: str = host
        self.port: int = port
        self.tracking_settings: TrackingSettings = (
            tracking_settings or DEFAULT_CONFIG["tracking"]
        )
        self.recognition_settings: RecognitionSettings = (
            recognition_settings or DEFAULT_CONFIG["recognition"]
        )
        self.save_transcript: bool = save_transcript

        self.server: WebServer | None = None
        self.transcript_file: Path | None = None

        self.running: bool = False

    def write_transcript(self, text: str, is_final: bool) -> None:
        """Write recognized text to the transcript file."""
        if not self.save_transcript or not self.transcript_file:
            return
        # Only write final results to avoid duplicates
        if is_final and text.strip():
            with open(self.transcript_file, 'a', encoding='utf-8') as f:
                f.write(f"{text.strip()}\n")

    async def start_transcript(self) -> None:
        """Start transcript recording."""
        if self.save_transcript and self.transcript_file:
            # Already recording
            return

        self.save_transcript = True
        TRANSCRIPT_DIR.mkdir(exist_ok=True)
        timestamp: str = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.transcript_file = TRANSCRIPT_DIR / f"transcript_{timestamp}.txt"
        with open(self.transcript_file, 'w', encoding='utf-8') as f:
            f.write(
                f"=== Transcript started at {datetime.now().isoformat()} ===\n\n")
        print(f"Transcript recording started: {self.transcript_file}")
        if self.server:
            await self.server.broadcast({
                "type": "transcript_status",
                "recording": True,
                "file": str(self.transcript_file),
            })

    async def stop_transcript(self) -> None:
        """Stop transcript recording."""
        if not self.save_transcript:
            # Already stopped
            return

        if self.transcript_file:
            with open(self.transcript_file, 'a', encoding='utf-8') as f:
                f.write(
                    f"\n=== Transcript ended at {datetime.now().isoformat()} ===\n")
            print(f"Transcript recording stopped: {self.transcript_file}")

        self.save_transcript = False
        self.transcript_file = None
        if self.server:
            await self.server.broadcast({"type": "transcript_status", "recording": False})

    async def start(self) -> None:
        """Start the readalong application."""
        print("Starting readalong...")

        self.server = WebServer(
            host=self.host,
            port=self.port,
            tracking_settings=self.tracking_settings,
            recognition_settings=self.recognition_settings
        )
        self.server.on_transcript = self.write_transcript
        await self.server.start()

        if self.save_transcript:
            # Flag set from the CLI; open the file now
            await self.start_transcript()

        self.running = True

        print("\n✓ readalong ready!")
        print(f"  Connect a client to ws://{self.host}:{self.port}/ws")
        print("  Press Ctrl+C to stop\n")

        # Everything happens in server handlers; just idle until shutdown
        while self.running:
            await asyncio.sleep(0.1)

    async def stop(self) -> None:
        """Stop the readalong application."""
        print("\nStopping readalong...")
        self.running = False

        if self.save_transcript:
            await self.stop_transcript()

        if self.server:
            await self.server.stop()

        print("readalong stopped.")


def apply_cli_overrides(
    tracking: TrackingSettings,
    recognition: RecognitionSettings,
    args: argparse.Namespace
) -> tuple[TrackingSettings, RecognitionSettings]:
    """Return copies of the settings with any CLI values applied."""
    new_tracking: TrackingSettings = dict(tracking)  # type: ignore[assignment]
    new_recognition: RecognitionSettings = dict(recognition)  # type: ignore[assignment]

    if args.lookahead is not None:
        new_tracking["lookahead"] = args.lookahead
    if args.lookbehind is not None:
        new_tracking["lookbehind"] = args.lookbehind
    if args.min_match_len is not None:
        new_tracking["min_match_len"] = args.min_match_len
    if args.threshold is not None:
        new_tracking["match_threshold"] = args.threshold
    if args.lang is not None:
        new_recognition["lang"] = args.lang

    return new_tracking, new_recognition


def build_parser(config: Config) -> argparse.ArgumentParser:
    """Build the command line parser, using config values as defaults."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="readalong - Follow a speaker through a script from recognized speech"
    )

    parser.add_argument(
        "--host",
        default=config.get("host", "127.0.0.1"),
        help="Web server host (default: from config or 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=config.get("port", 8000),
        help="Web server port (default: from config or 8000)"
    )

    # Tracking options (None means keep the config value)
    parser.add_argument(
        "--lookahead",
        type=int,
        default=None,
        help="Script words searched ahead of the cursor"
    )

    parser.add_argument(
        "--lookbehind",
        type=int,
        default=None,
        help="Script words searched behind the cursor"
    )

    parser.add_argument(
        "--min-match-len",
        type=int,
        default=None,
        help="Shorter script words only count on an exact match"
    )

    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Average word similarity (0-1) an alignment must exceed"
    )

    parser.add_argument(
        "--lang",
        default=None,
        help="Recognizer language passed to clients (e.g. en-US)"
    )

    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save current CLI options to config file and exit"
    )

    parser.add_argument(
        "--save-transcript",
        action="store_true",
        help="Save a transcript of all recognized speech to ./transcripts/"
    )

    parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Enable debug logging to ./logs/"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show informational log messages"
    )

    return parser


def main() -> None:
    """Main entry point."""
    # Load config first to use as defaults
    config: Config = load_config()

    parser: argparse.ArgumentParser = build_parser(config)
    args: argparse.Namespace = parser.parse_args()

    # Configure logging - minimal console output
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    tracking, recognition = apply_cli_overrides(
        get_tracking_settings(config),
        get_recognition_settings(config),
        args
    )

    if args.save_config:
        config = update_config_tracking(config, dict(tracking))
        config["host"] = args.host
        config["port"] = args.port
        config["recognition"] = recognition

        if save_config(config):
            print(f"Configuration saved to {get_config_path()}")
        return

    # Enable debug logging if requested
    if args.debug_log:
        debug_log.enable()
        print("Debug logging enabled (logs will be saved to ./logs/)")

    # Create and run the app
    app: ReadAlongApp = ReadAlongApp(
        host=args.host,
        port=args.port,
        tracking_settings=tracking,
        recognition_settings=recognition,
        save_transcript=args.save_transcript
    )

    # Handle shutdown gracefully
    loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown(sig: int, frame: object) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM) gracefully."""
        print("\nReceived shutdown signal...")
        app.running = False

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        app.running = False
    finally:
        # Ensure clean shutdown
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
        # Cancel any remaining tasks
        pending: set[asyncio.Task[object]] = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        # Allow cancelled tasks to complete
        if pending:
            loop.run_until_complete(asyncio.gather(
                *pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
