"""
Module: scheduler.py
Description: Run scheduling for the queue processor.

The processor assumes that at most one run executes at a time. When the
host scheduler guarantees that, RunGuard never trips; when it does not
(or when runs are triggered from several threads) RunGuard turns an
overlapping run into a logged no-op.

Key Components:
- RunGuard: non-blocking single-run mutual exclusion
- PeriodicScheduler: injectable ticker that calls a run function every
  `interval` seconds until stopped
"""

import threading
from typing import Any, Callable, Optional

from ..utils.logger import get_logger

logger = get_logger(__name__)


class RunGuard:
    """Non-blocking lock; acquire() returns False while a run is in progress."""

    def __init__(self):
        self._lock = threading.Lock()

    def acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def running(self) -> bool:
        return self._lock.locked()


class PeriodicScheduler:
    """
    Call `run` every `interval` seconds.

    Runs are sequential: the next tick is measured from the end of the
    previous run, so runs never overlap. Exceptions escaping `run` are
    logged and the loop continues.

    Args:
        run: Zero-argument callable performing one processor run
        interval: Seconds to wait between runs
        stop_event: Optional event used to stop the loop from another thread
        max_runs: Optional cap on the number of runs (None = forever)
    """

    def __init__(
        self,
        run: Callable[[], Any],
        interval: float,
        stop_event: Optional[threading.Event] = None,
        max_runs: Optional[int] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._run = run
        self.interval = interval
        self.stop_event = stop_event or threading.Event()
        self.max_runs = max_runs
        self.runs = 0

    def start(self) -> None:
        logger.info("Scheduler started", interval_seconds=self.interval)
        while not self.stop_event.is_set():
            try:
                self._run()
            except Exception:
                logger.exception("Scheduled run raised")
            self.runs += 1
            if self.max_runs is not None and self.runs >= self.max_runs:
                break
            self.stop_event.wait(self.interval)
        logger.info("Scheduler stopped", runs=self.runs)

    def stop(self) -> None:
        self.stop_event.set()
