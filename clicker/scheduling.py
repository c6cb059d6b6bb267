"""
scheduling.py - Cancellable periodic tasks

A PeriodicTask runs a callback every `interval` seconds on a daemon thread
until cancel() is called. The device node owns one task for idle ticks and
one for peer sync, and cancels both on shutdown.
"""

from __future__ import annotations
from typing import Callable, Optional
import threading
import traceback


class PeriodicTask(threading.Thread):
    """
    Background thread calling `callback` at a fixed interval.

    The first call happens one interval after start(). An exception raised by
    the callback is reported (when verbose) and counted in `errors`; the task
    keeps running.
    """

    def __init__(self, name: str, interval: float, callback: Callable[[], object],
                 verbose: bool = True):
        super().__init__(name=name, daemon=True)
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.interval = interval
        self.callback = callback
        self.verbose = verbose
        self.runs = 0
        self.errors = 0
        self.last_error: Optional[BaseException] = None
        self._stop_event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._stop_event.is_set()

    def cancel(self, timeout: Optional[float] = None) -> None:
        """Stop the task and wait for the thread to finish its current run."""
        self._stop_event.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout)

    def run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                self.errors += 1
                self.last_error = e
                if self.verbose:
                    print(f"[Task {self.name}] ✗ callback failed: {e!r}")
                    traceback.print_exc()
            else:
                self.runs += 1
