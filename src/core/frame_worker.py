"""
Latest-only Frame Worker
Runs the motion engine on a dedicated thread. Only the newest submitted
frame is kept; anything still waiting when a newer frame arrives is dropped.
"""

import logging
import queue
import threading
from typing import Callable, Optional

import numpy as np

from core.error_handler import ErrorHandler


class FrameWorker:
    """Single consumer thread with a one-slot frame queue."""

    def __init__(self, process: Callable[[np.ndarray], object],
                 on_result: Optional[Callable[[object], None]] = None,
                 error_handler: Optional[ErrorHandler] = None):
        """
        Args:
            process: Frame handler, usually MotionEngine.process_frame
            on_result: Optional callback receiving each handler result
            error_handler: Shared ErrorHandler (one is created when None)
        """
        self.process = process
        self.on_result = on_result
        self.error_handler = error_handler or ErrorHandler()
        self.logger = logging.getLogger(self.__class__.__name__)

        self._slot = queue.Queue(maxsize=1)
        self._thread: Optional[threading.Thread] = None
        self._running = threading.Event()
        self._idle = threading.Event()
        self._idle.set()
        self._stats_lock = threading.Lock()

        self.processed = 0
        self.dropped = 0

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._running.set()
        self._thread = threading.Thread(target=self._worker, name="frame-worker", daemon=True)
        self._thread.start()
        self.logger.info("Frame worker started")

    def stop(self, timeout: float = 2.0):
        """Stop accepting frames and discard anything still queued."""
        self._running.clear()
        self._discard_pending()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        self._idle.set()
        self.logger.info(f"Frame worker stopped ({self.processed} processed, {self.dropped} dropped)")

    def submit(self, frame: np.ndarray) -> bool:
        """
        Offer a frame; a frame still waiting in the slot is replaced.

        Returns:
            False when the worker is not running
        """
        if not self._running.is_set():
            return False
        self._discard_pending()
        try:
            self._slot.put_nowait(frame)
        except queue.Full:
            # Lost a race with another producer; keep theirs, count ours.
            with self._stats_lock:
                self.dropped += 1
        self._idle.clear()
        return True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no frame is queued or being processed."""
        return self._idle.wait(timeout)

    def _discard_pending(self):
        try:
            self._slot.get_nowait()
        except queue.Empty:
            return
        with self._stats_lock:
            self.dropped += 1

    def _worker(self):
        while self._running.is_set():
            try:
                frame = self._slot.get(timeout=0.1)
            except queue.Empty:
                if self._slot.empty():
                    self._idle.set()
                continue

            result = self.error_handler.safe_execute(self.process, frame)
            with self._stats_lock:
                self.processed += 1
            if self.on_result is not None and result is not None:
                self.error_handler.safe_execute(self.on_result, result)

            if self._slot.empty():
                self._idle.set()
