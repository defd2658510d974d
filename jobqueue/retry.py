"""
Retry handler — decides what happens when a job attempt fails.

Two outcomes:
1. attempts_made < max_attempts and the error is retriable
   → DELAYED, eligible again after an exponential backoff
2. otherwise
   → FAILED (terminal), result = {"last_error": ...}

Backoff doubles per attempt, starting at the base:
    attempt 1 failed → wait base      (2s)
    attempt 2 failed → wait base * 2  (4s)
    attempt 3 failed → wait base * 4  (8s)   (only reached with max_attempts > 3)

attempts_made is incremented when a worker CLAIMS a job, so by the time a
failure is reported it already counts the attempt that just failed.

A retried job keeps its original priority. Once its delay has passed it
competes with freshly enqueued jobs on (priority, created_at) like any
other waiting job.

This is the OUTER retry layer. The render orchestrator retries individual
renders inside a single attempt; see renderers/orchestrator.py.
"""

import logging
from datetime import datetime, timedelta

from config.settings import settings
from models.enums import JobState
from models.job import ScreenshotJob

logger = logging.getLogger(__name__)


def backoff_delay(attempts_made: int, base_ms: int = settings.JOB_BACKOFF_BASE_MS) -> timedelta:
    """Delay before the next attempt, given how many attempts have been made so far."""
    exponent = max(0, attempts_made - 1)
    return timedelta(milliseconds=base_ms * (2 ** exponent))


class RetryHandler:

    def __init__(self, backoff_base_ms: int = settings.JOB_BACKOFF_BASE_MS):
        self._backoff_base_ms = backoff_base_ms

    def handle_failure(
        self,
        job: ScreenshotJob,
        error_msg: str,
        now: datetime,
        retriable: bool = True,
    ) -> dict:
        """
        Build the column values for a failed attempt of `job`.

        Returns a dict ready for an UPDATE; the "state" key tells the caller
        which way it went. The job object itself is not modified.
        """
        values = {
            "last_error": error_msg,
            "lock_token": None,
            "worker_id": None,
            "heartbeat_at": None,
            "updated_at": now,
        }

        if retriable and job.attempts_made < job.max_attempts:
            # ── Retry: back to the queue after a delay ──────────
            delay = backoff_delay(job.attempts_made, self._backoff_base_ms)
            values.update(state=JobState.DELAYED.value, delay_until=now + delay)
            logger.info(
                f"Job {job.id} will be retried in {delay.total_seconds():.1f}s "
                f"({job.attempts_made}/{job.max_attempts})"
            )
        else:
            # ── Exhausted or not worth retrying: terminal ───────
            values.update(
                state=JobState.FAILED.value,
                finished_at=now,
                result={"last_error": error_msg},
            )
            if not retriable:
                logger.warning(f"Job {job.id} failed with a non-retriable error, not retrying")
            else:
                logger.warning(f"Job {job.id} exhausted its attempts ({job.max_attempts})")

        return values
