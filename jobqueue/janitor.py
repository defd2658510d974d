"""
Queue janitor — background maintenance for the screenshot queue.

Runs in a daemon thread inside the worker process. Each tick:

    1. recover_stalled(): ACTIVE jobs whose worker stopped heartbeating
       go back to WAITING (every STALL_CHECK_INTERVAL seconds)
    2. sweep(): once per SWEEP_INTERVAL_SECONDS (hourly), delete
       COMPLETED jobs older than COMPLETED_RETENTION_SECONDS and
       FAILED jobs older than FAILED_RETENTION_SECONDS

It never touches jobs that are being processed normally; it only cleans up
after crashed workers and old history. Sweeping runs on its own schedule,
independent of how busy the workers are.
"""

import logging
import threading
import time
from typing import Optional

from config.settings import settings
from jobqueue.queue import ScreenshotQueue

logger = logging.getLogger(__name__)


class QueueJanitor:

    def __init__(
        self,
        queue: ScreenshotQueue,
        stall_check_interval: float = settings.STALL_CHECK_INTERVAL,
        sweep_interval: float = settings.SWEEP_INTERVAL_SECONDS,
        completed_retention: float = settings.COMPLETED_RETENTION_SECONDS,
        failed_retention: float = settings.FAILED_RETENTION_SECONDS,
    ):
        self._queue = queue
        self._stall_check_interval = stall_check_interval
        self._sweep_interval = sweep_interval
        self._completed_retention = completed_retention
        self._failed_retention = failed_retention
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_sweep = time.monotonic()

    def start(self) -> None:
        """Start the maintenance loop in a daemon thread."""
        self._stop_event.clear()
        self._last_sweep = time.monotonic()
        self._thread = threading.Thread(target=self._run_loop, name="queue-janitor", daemon=True)
        self._thread.start()
        logger.info(
            f"Queue janitor started (stall check every {self._stall_check_interval}s, "
            f"sweep every {self._sweep_interval}s)"
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to stop and wait for the current tick to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> None:
        """One maintenance tick. Also handy in tests."""
        recovered = self._queue.recover_stalled()
        if recovered:
            logger.warning(f"Recovered {len(recovered)} stalled jobs")

        if time.monotonic() - self._last_sweep >= self._sweep_interval:
            self.sweep()

    def sweep(self) -> int:
        logger.info("Running scheduled queue cleanup...")
        self._last_sweep = time.monotonic()
        return self._queue.sweep(self._completed_retention, self._failed_retention)

    def _run_loop(self) -> None:
        while not self._stop_event.wait(self._stall_check_interval):
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Janitor loop error: {e}", exc_info=True)
