"""Fixed-rate background runner for the exercise sync job."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

_LOGGER = logging.getLogger("coursehub.sync")


class SyncScheduler:
    """Run `job` every `interval_s` seconds on a daemon thread.

    Ticks are fixed-rate (measured from the previous tick's start) and
    never overlap: a tick that overruns delays the next one. Exceptions
    from `job` are logged and the next tick is the retry.
    """

    def __init__(self, job: Callable[[], object], interval_s: float, initial_job: Optional[Callable[[], object]] = None):
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self._job = job
        self._initial_job = initial_job
        self._interval_s = interval_s
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._loop, name="exercise-sync", daemon=True)
            self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        with self._lock:
            thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _run_once(self, job: Callable[[], object]) -> None:
        try:
            outcome = job()
            _LOGGER.debug("sync tick finished: %r", outcome)
        except Exception:
            _LOGGER.exception("Exercise sync run failed; retrying on next tick")

    def _loop(self) -> None:
        if self._initial_job is not None:
            self._run_once(self._initial_job)
        next_run = time.monotonic() + self._interval_s
        while not self._stop.wait(max(0.0, next_run - time.monotonic())):
            started = time.monotonic()
            self._run_once(self._job)
            next_run = max(next_run + self._interval_s, started)
