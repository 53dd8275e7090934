# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Web server that drives a tracking session over WebSocket.

The browser runs the platform speech recognizer and sends its results here;
the server feeds them into one ScriptTracker and pushes state changes back
to every connected client. All messages are handled on the event loop one
at a time, so the session never sees two updates at once.
"""

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web

from . import debug_log
from .config import DEFAULT_CONFIG, RecognitionSettings, TrackingSettings
from .recognition import RecognitionBridge, TranscriptionResult
from .tracker import ScriptTracker, TrackerState, clamp_index

logger = logging.getLogger(__name__)

MessageHandler = Callable[[web.WebSocketResponse, dict[str, Any]], Awaitable[None]]


def state_to_message(state: TrackerState) -> dict[str, object]:
    """Build the 'state' message sent to clients."""
    return {
        "type": "state",
        "cursor": state.cursor,
        "complete": state.complete,
        "status": state.status.value,
        "progress": state.progress,
        "isPreview": state.is_preview,
        "tokenCount": state.token_count,
    }


def _as_int(value: object, default: int) -> int:
    """Coerce a JSON value to int, falling back to default."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default


def _as_float(value: object, default: float) -> float:
    """Coerce a JSON value to float, falling back to default."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default
    return default


class WebServer:
    """
    Serves the tracking session and manages WebSocket connections.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8000,
        tracking_settings: TrackingSettings | None = None,
        recognition_settings: RecognitionSettings | None = None
    ) -> None:
        self.host: str = host
        self.port: int = port
        self.app: web.Application = web.Application()
        self.websockets: set[web.WebSocketResponse] = set()
        self.runner: web.AppRunner | None = None

        self.tracking_settings: TrackingSettings = (
            tracking_settings or DEFAULT_CONFIG["tracking"]
        )
        self.recognition_settings: RecognitionSettings = (
            recognition_settings or DEFAULT_CONFIG["recognition"]
        )

        self.script_text: str = ""
        self.tracker: ScriptTracker = ScriptTracker.from_settings(
            self.tracking_settings)
        self.bridge: RecognitionBridge = RecognitionBridge(
            on_interim=lambda text: self.ingest(text, is_final=False),
            on_final=lambda text: self.ingest(text, is_final=True),
            on_error=self._on_recognition_error,
            lang=self.recognition_settings.get("lang", "en-US"),
            restart_delay_ms=self.recognition_settings.get("restart_delay_ms", 1000)
        )

        # Called with every transcript fragment (used for transcript recording)
        self.on_transcript: Callable[[str, bool], None] | None = None

        # Messages queued by synchronous callbacks, sent after each event
        self._pending: list[dict[str, object]] = []
        self._last_cursor: int = self.tracker.cursor
        # Label for cursor moves made by a manual operation (None for speech)
        self._move_reason: str | None = None
        self.tracker.add_listener(self._on_state_change)

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes."""
        self.app.router.add_get('/ws', self._handle_websocket)
        self.app.router.add_post('/script', self._handle_script_upload)
        self.app.router.add_get('/state', self._handle_get_state)

    # Session plumbing

    def ingest(self, transcript: str, is_final: bool) -> None:
        """Feed one recognizer fragment into the session."""
        if self.on_transcript:
            self.on_transcript(transcript, is_final)
        debug_log.log_transcript(transcript, is_final)
        self.tracker.ingest_speech(transcript, is_final)

    def load_script(self, text: str) -> None:
        """Replace the script and queue the new tokens for clients."""
        self.script_text = text
        debug_log.clear_logs()
        # Clients get the new tokens before the state that refers to them
        first_new: int = len(self._pending)
        self._tracker_call("load", lambda: self.tracker.load_script(text))
        self._pending.insert(first_new, self._script_message())

    def _tracker_call(self, reason: str, action: Callable[[], None]) -> None:
        """Run a manual tracker operation, labelling any cursor move it makes."""
        self._move_reason = reason
        try:
            action()
        finally:
            self._move_reason = None

    def _on_state_change(self, state: TrackerState) -> None:
        """Tracker listener: queue a state update, auto-stop on completion."""
        if state.cursor != self._last_cursor:
            low, high = sorted((max(0, self._last_cursor), max(0, state.cursor)))
            words: list[str] = [t.surface for t in self.tracker.tokens[low:high + 1]]
            reason: str = self._move_reason or (
                "preview" if state.is_preview else "final")
            debug_log.log_cursor_change(self._last_cursor, state.cursor, words, reason)
            self._last_cursor = state.cursor

        self._pending.append(state_to_message(state))

        if state.complete and self.bridge.is_listening:
            logger.info("Script complete, stopping recognition")
            self.bridge.stop()
            self._pending.append({"type": "stop_listening"})
            self._pending.append(self._status_message())

    def _on_recognition_error(self, message: str) -> None:
        self._pending.append({"type": "speech_error", "message": message})

    def _script_message(self) -> dict[str, object]:
        return {
            "type": "script_updated",
            "tokens": [
                {"word": t.surface, "index": t.position}
                for t in self.tracker.tokens
            ],
        }

    def _status_message(self) -> dict[str, object]:
        return {"type": "recognizer_status", "status": self.bridge.status.value}

    async def _flush(self) -> None:
        """Broadcast everything queued while handling the last event."""
        pending, self._pending = self._pending, []
        for message in pending:
            await self.broadcast(message)

    # HTTP / WebSocket

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle WebSocket connections for real-time updates."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        # Updates queued outside a handler go to existing clients only;
        # the new one gets them through init
        await self._flush()
        self.websockets.add(ws)
        logger.info("WebSocket connected. Total: %d", len(self.websockets))

        try:
            # Send current state
            await ws.send_json({
                "type": "init",
                "script": self.script_text,
                "tokens": self._script_message()["tokens"],
                "state": state_to_message(self.tracker.state),
                "recognizerStatus": self.bridge.status.value,
                "tracking": dict(self.tracking_settings),
                "recognition": dict(self.recognition_settings),
            })

            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except ValueError:
                        logger.warning("Ignoring malformed WebSocket message")
                        continue
                    if isinstance(data, dict):
                        await self._handle_ws_message(ws, data)
                elif msg.type == web.WSMsgType.ERROR:
                    logger.warning("WebSocket error: %s", ws.exception())
        finally:
            self.websockets.discard(ws)
            logger.info("WebSocket disconnected. Total: %d", len(self.websockets))

        return ws

    async def _handle_ws_message(self, ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle incoming WebSocket messages using dispatch pattern."""
        msg_type: object | None = data.get("type")
        if not msg_type:
            return

        # Message type to handler dispatch
        handlers: dict[str, MessageHandler] = {
            "load_script": self._on_load_script_message,
            "speech": self._on_speech_message,
            "speech_results": self._on_speech_results_message,
            "jump_to": self._on_jump_to_message,
            "reset": self._on_reset_message,
            "recognition": self._on_recognition_message,
            "recognition_error": self._on_recognition_error_message,
            "recognition_end": self._on_recognition_end_message,
        }

        handler: MessageHandler | None = handlers.get(str(msg_type))
        if handler:
            await handler(ws, data)
            await self._flush()
        else:
            logger.warning("Unhandled WebSocket message: %s", msg_type)

    async def _on_load_script_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle script update message."""
        self.load_script(str(data.get("text", "")))

    async def _on_speech_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle a single recognizer fragment."""
        self.ingest(str(data.get("transcript", "")), bool(data.get("isFinal", False)))

    async def _on_speech_results_message(
        self,
        _ws: web.WebSocketResponse,
        data: dict[str, Any]
    ) -> None:
        """Handle a raw recognizer result list (routed through the bridge)."""
        raw_results: object = data.get("results", [])
        if not isinstance(raw_results, list):
            return
        results: list[TranscriptionResult] = [
            TranscriptionResult(
                text=str(r.get("transcript", "")),
                is_final=bool(r.get("isFinal", False)),
                confidence=_as_float(r.get("confidence"), 1.0)
            )
            for r in raw_results if isinstance(r, dict)
        ]
        self.bridge.handle_results(results, _as_int(data.get("resultIndex"), 0))

    async def _on_jump_to_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle jump to position message."""
        word_index: int = _as_int(data.get("wordIndex"), 0)
        self._tracker_call("jump", lambda: self.tracker.jump_to(
            clamp_index(word_index, len(self.tracker.tokens))))

    async def _on_reset_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        """Handle reset message."""
        self._tracker_call("reset", self.tracker.reset)

    async def _on_recognition_message(
        self,
        _ws: web.WebSocketResponse,
        data: dict[str, Any]
    ) -> None:
        """Handle recognizer lifecycle changes from the client."""
        action: str = str(data.get("action", ""))
        supported: bool = bool(data.get("supported", True))

        if action == "start":
            # Load the script before listening so early results have tokens
            if "text" in data:
                self.load_script(str(data["text"]))
            self.bridge.start(supported=supported)
        elif action == "stop":
            self.bridge.stop()
            self._tracker_call("reset", self.tracker.reset)
        elif action == "pause":
            self.bridge.pause()
        elif action == "resume":
            self.bridge.resume(supported=supported)
        else:
            logger.warning("Unknown recognition action: %s", action)
            return

        self._pending.append(self._status_message())

    async def _on_recognition_error_message(
        self,
        _ws: web.WebSocketResponse,
        data: dict[str, Any]
    ) -> None:
        """Handle a recognizer error code reported by the client."""
        before = self.bridge.status
        self.bridge.handle_error(str(data.get("error", "")))
        if self.bridge.status != before:
            self._pending.append(self._status_message())

    async def _on_recognition_end_message(
        self,
        ws: web.WebSocketResponse,
        _data: dict[str, Any]
    ) -> None:
        """Tell the client whether to restart a recognizer that ended."""
        delay: int | None = self.bridge.handle_end()
        if delay is not None:
            await ws.send_json({"type": "restart_recognition", "delayMs": delay})

    async def _handle_script_upload(self, request: web.Request) -> web.Response:
        """Handle script upload via POST."""
        try:
            data: object = await request.json()
        except ValueError:
            return web.json_response(
                {"status": "error", "message": "Invalid JSON"}, status=400)
        if not isinstance(data, dict):
            return web.json_response(
                {"status": "error", "message": "Expected a JSON object"}, status=400)
        self.load_script(str(data.get("text", "")))
        await self._flush()
        return web.json_response({"status": "ok", "tokenCount": len(self.tracker.tokens)})

    async def _handle_get_state(self, request: web.Request) -> web.Response:
        """Get the current session state and tokens."""
        state: dict[str, object] = state_to_message(self.tracker.state)
        state["tokens"] = self._script_message()["tokens"]
        state["recognizerStatus"] = self.bridge.status.value
        return web.json_response(state)

    async def broadcast(self, message: dict[str, object]) -> None:
        """Send a message to all connected WebSocket clients."""
        if not self.websockets:
            return

        dead: set[web.WebSocketResponse] = set()
        for ws in list(self.websockets):
            try:
                await ws.send_json(message)
            except (ConnectionError, ConnectionResetError, RuntimeError) as e:
                logger.warning("Error sending to WebSocket: %s", e)
                dead.add(ws)

        self.websockets -= dead

    async def start(self) -> None:
        """Start the web server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site: web.TCPSite = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        print(f"Web server running at http://{self.host}:{self.port}")

        # Give event loop a moment to start accepting connections
        await asyncio.sleep(0.1)

    async def stop(self) -> None:
        """Stop the web server."""
        # Close all WebSocket connections
        for ws in list(self.websockets):
            with contextlib.suppress(Exception):
                await ws.close()
        self.websockets.clear()

        if self.runner:
            await self.runner.cleanup()
