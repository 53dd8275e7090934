# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Threaded wrapper for ScriptTracker that serializes updates through one queue.

Recognizer callbacks often fire on their own threads, and a burst after a
recognizer restart can deliver several results at once. Funnelling every
update and control command through a single queue means the session is only
ever touched by the worker thread, and each update sees the cursor left by
the one before it.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any

from .matcher import SearchParams
from .tracker import ScriptTracker, TrackerState, clamp_index

logger = logging.getLogger(__name__)


@dataclass
class TrackingRequest:
    """A recognizer result waiting to be tracked."""
    transcription: str
    is_final: bool
    timestamp: float
    request_id: int


@dataclass
class TrackingResult:
    """Session state after an update or command."""
    state: TrackerState
    request_id: int
    processing_time: float


@dataclass
class ControlCommand:
    """Control command for the worker thread."""
    command: str  # 'load_script', 'reset', 'jump_to', 'shutdown'
    request_id: int = 0
    param: Any = None


class ThreadedTracker:
    """
    Thread-safe wrapper around ScriptTracker for non-blocking operation.

    Features:
    - Non-blocking submit_transcription() that queues recognizer results
    - Throttling of interim updates (max 1 per 50ms by default)
    - Backpressure handling (drops old interims when the queue is full)
    - Worker thread owns the tracker; nothing else touches it
    - Cached latest result for immediate access

    Usage:
        tracker = ThreadedTracker(script_text)

        # Non-blocking update from a recognizer callback
        tracker.submit_transcription(text, is_final=False)

        # Poll for results
        result = tracker.get_latest_result()
        if result:
            send_to_ui(result.state)
    """

    def __init__(
        self,
        script_text: str = "",
        params: SearchParams | None = None,
        history_size: int = 20,
        interim_throttle_ms: int = 50,
        max_queue_size: int = 10
    ):
        """
        Initialize the threaded tracker.

        Args:
            script_text: The script text to track
            params: Window search settings
            history_size: Number of final spoken words kept for anchoring
            interim_throttle_ms: Minimum time between interim updates (default: 50ms)
            max_queue_size: Maximum queue size before backpressure kicks in (default: 10)
        """
        self.script_text = script_text
        self.params = params or SearchParams()
        self.history_size = history_size
        self.interim_throttle_ms = interim_throttle_ms
        self.max_queue_size = max_queue_size

        # Queues for communication
        self.request_queue: queue.Queue[TrackingRequest | ControlCommand] = queue.Queue(
            maxsize=max_queue_size
        )
        self.result_queue: queue.Queue[TrackingResult] = queue.Queue()

        # Thread control
        self.worker_thread: threading.Thread | None = None
        self.shutdown_flag = threading.Event()
        self.started = threading.Event()

        # Cached state (thread-safe with lock)
        self.state_lock = threading.Lock()
        self.latest_result: TrackingResult | None = None
        self.request_counter = 0
        self.last_interim_time = 0.0
        self.token_count = 0

        # Start worker thread
        self._start_worker()

        # Wait for worker to be ready
        self.started.wait(timeout=5.0)
        if not self.started.is_set():
            raise RuntimeError("Worker thread failed to start")

    def _start_worker(self) -> None:
        """Start the worker thread."""
        self.worker_thread = threading.Thread(
            target=self._worker_loop,
            name="TrackerWorker",
            daemon=True
        )
        self.worker_thread.start()

    def _worker_loop(self) -> None:
        """Main loop for the worker thread."""
        try:
            # Create the actual tracker in the worker thread
            tracker = ScriptTracker(
                self.script_text,
                params=self.params,
                history_size=self.history_size
            )
            with self.state_lock:
                self.token_count = len(tracker.tokens)

            logger.info("ThreadedTracker worker started")
            self.started.set()

            while not self.shutdown_flag.is_set():
                try:
                    # Get next request with timeout to allow checking shutdown flag
                    item = self.request_queue.get(timeout=0.1)

                    if isinstance(item, ControlCommand):
                        self._handle_control_command(tracker, item)
                    elif isinstance(item, TrackingRequest):
                        self._handle_tracking_request(tracker, item)

                except queue.Empty:
                    continue
                except Exception as e:
                    logger.error("Error in worker loop: %s", e, exc_info=True)

        finally:
            logger.info("ThreadedTracker worker stopped")

    def _handle_control_command(self, tracker: ScriptTracker, cmd: ControlCommand) -> None:
        """Handle control commands."""
        start_time = time.time()

        if cmd.command == 'shutdown':
            self.shutdown_flag.set()
            return

        if cmd.command == 'load_script':
            tracker.load_script(cmd.param)
            with self.state_lock:
                self.token_count = len(tracker.tokens)
            logger.debug("Script loaded: %d words", len(tracker.tokens))

        elif cmd.command == 'reset':
            tracker.reset()
            logger.debug("Tracker reset")

        elif cmd.command == 'jump_to':
            # Clamp against the script the worker actually holds
            index = clamp_index(cmd.param, len(tracker.tokens))
            tracker.jump_to(index)
            logger.debug("Tracker jumped to %d", index)

        else:
            logger.warning("Unknown control command: %s", cmd.command)
            return

        self._publish(TrackingResult(
            state=tracker.state,
            request_id=cmd.request_id,
            processing_time=time.time() - start_time
        ))

    def _handle_tracking_request(self, tracker: ScriptTracker, req: TrackingRequest) -> None:
        """Handle a tracking update request."""
        start_time = time.time()

        tracker.ingest_speech(req.transcription, is_final=req.is_final)

        self._publish(TrackingResult(
            state=tracker.state,
            request_id=req.request_id,
            processing_time=time.time() - start_time
        ))

    def _publish(self, result: TrackingResult) -> None:
        """Cache a result and hand it to consumers."""
        with self.state_lock:
            self.latest_result = result

        # Put result in queue (non-blocking to avoid deadlock)
        try:
            self.result_queue.put_nowait(result)
        except queue.Full:
            # Drop oldest result and try again
            try:
                self.result_queue.get_nowait()
                self.result_queue.put_nowait(result)
            except (queue.Empty, queue.Full):
                pass

    def _next_request_id(self) -> int:
        with self.state_lock:
            self.request_counter += 1
            return self.request_counter

    def submit_transcription(self, transcription: str, is_final: bool = True) -> bool:
        """
        Submit a recognizer result for tracking (non-blocking).

        Args:
            transcription: The transcription text
            is_final: Whether the recognizer has finalized this text

        Returns:
            True if the transcription was queued, False if it was dropped
        """
        current_time = time.time()

        # Throttle interim updates
        if not is_final:
            time_since_last = (current_time - self.last_interim_time) * 1000
            if time_since_last < self.interim_throttle_ms:
                # Too soon, drop this interim
                return False
            self.last_interim_time = current_time

        request = TrackingRequest(
            transcription=transcription,
            is_final=is_final,
            timestamp=current_time,
            request_id=self._next_request_id()
        )

        # Try to queue (with backpressure handling)
        try:
            self.request_queue.put_nowait(request)
            return True
        except queue.Full:
            if is_final:
                # Final transcription - log warning but drop it
                logger.warning("Backpressure: dropping final transcription (queue full)")
                return False

            dropped: int = self._drop_stale_interims(3)

            # Try to queue again
            try:
                self.request_queue.put_nowait(request)
                logger.warning("Backpressure: dropped %d old interims", dropped)
                return True
            except queue.Full:
                logger.warning("Backpressure: dropping current interim")
                return False

    def _drop_stale_interims(self, limit: int) -> int:
        """
        Remove up to limit of the oldest queued interim requests.

        Everything else stays where it is, so commands and finals keep their
        order relative to each other. The queue's own lock is held throughout
        so the worker cannot take an item mid-scan.
        """
        with self.request_queue.mutex:
            pending = self.request_queue.queue
            stale: list[Any] = [
                item for item in pending
                if isinstance(item, TrackingRequest) and not item.is_final
            ][:limit]
            for item in stale:
                pending.remove(item)
            if stale:
                self.request_queue.not_full.notify(len(stale))
        return len(stale)

    def _submit_command(self, command: str, param: Any = None) -> bool:
        cmd = ControlCommand(
            command=command, request_id=self._next_request_id(), param=param)
        try:
            self.request_queue.put_nowait(cmd)
            return True
        except queue.Full:
            logger.warning("Failed to queue %s command (queue full)", command)
            return False

    def get_latest_result(self, timeout: float = 0) -> TrackingResult | None:
        """
        Get the next tracking result.

        Args:
            timeout: How long to wait for a result (0 = don't wait)

        Returns:
            Next result or None if no result available
        """
        try:
            if timeout > 0:
                return self.result_queue.get(timeout=timeout)
            return self.result_queue.get_nowait()
        except queue.Empty:
            return None

    def get_cached_result(self) -> TrackingResult | None:
        """
        Get the cached latest result without consuming from queue.

        Returns:
            Latest cached result or None
        """
        with self.state_lock:
            return self.latest_result

    def load_script(self, script_text: str) -> bool:
        """Replace the script; the tracker starts over from the beginning."""
        self.script_text = script_text
        return self._submit_command('load_script', script_text)

    def reset(self) -> bool:
        """Reset tracker to the beginning."""
        return self._submit_command('reset')

    def jump_to(self, word_index: int) -> bool:
        """
        Jump to a specific word index.

        Args:
            word_index: The token index to jump to (clamped to the script)
        """
        return self._submit_command('jump_to', word_index)

    def shutdown(self) -> None:
        """Shutdown the worker thread."""
        cmd = ControlCommand(command='shutdown')
        try:
            self.request_queue.put(cmd, timeout=1.0)
        except queue.Full:
            pass

        self.shutdown_flag.set()

        if self.worker_thread and self.worker_thread.is_alive():
            self.worker_thread.join(timeout=2.0)

    def __del__(self) -> None:
        """Cleanup on deletion."""
        self.shutdown()
