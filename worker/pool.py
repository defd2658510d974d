"""
Worker pool — C threads, each one claiming and executing jobs in a loop.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    WorkerPool (C = 3)                   │
    │                                                         │
    │  ┌────────────┐   ┌────────────┐   ┌────────────┐       │
    │  │ worker-1   │   │ worker-2   │   │ worker-3   │       │
    │  │ claim_next │   │ claim_next │   │ claim_next │       │
    │  │ execute    │   │ (idle on   │   │ execute    │       │
    │  │            │   │  BLPOP)    │   │            │       │
    │  └────────────┘   └────────────┘   └────────────┘       │
    └─────────────────────────────────────────────────────────┘

Each loop:
    1. claim_next() — atomic, so two loops never get the same job
    2. nothing to do → BLPOP the Redis wake list for up to
       WORKER_POLL_INTERVAL seconds (zero CPU while idle; an enqueue
       wakes one waiting worker immediately)
    3. otherwise execute the job to completion, then go back to 1

Why claim inside each worker instead of one dispatcher feeding a thread pool?
A job is only claimed by a thread that is free to run it. With a
dispatcher, claimed jobs could sit in the executor's internal queue while
all threads are busy, looking ACTIVE without anyone working on them.

C is the backpressure: every job launches a full Chromium process, so the
pool size is the hard cap on concurrent browsers on this host.
"""

import logging
import os
import socket
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Optional

from config.settings import settings
from jobqueue.queue import ScreenshotQueue
from worker.executor import JobExecutor

logger = logging.getLogger(__name__)


class WorkerPool:

    def __init__(
        self,
        queue: ScreenshotQueue,
        job_executor: JobExecutor,
        concurrency: int = settings.WORKER_CONCURRENCY,
        poll_interval: int = settings.WORKER_POLL_INTERVAL,
    ):
        self._queue = queue
        self._job_executor = job_executor
        self._concurrency = max(1, concurrency)
        self._poll_interval = poll_interval
        self._executor: Optional[ThreadPoolExecutor] = None
        self._futures: list[Future] = []
        self._stopping = threading.Event()
        self._worker_prefix = f"{socket.gethostname()}-{os.getpid()}"

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def is_running(self) -> bool:
        return any(not f.done() for f in self._futures)

    def start(self) -> None:
        """Start C worker loops."""
        if self.is_running:
            return
        self._stopping.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=self._concurrency,
            thread_name_prefix="screenshot-worker",
        )
        self._futures = []
        for i in range(1, self._concurrency + 1):
            future = self._executor.submit(self._worker_loop, f"{self._worker_prefix}-{i}")
            future.add_done_callback(self._on_loop_exit)
            self._futures.append(future)
        logger.info(f"Screenshot worker pool started (concurrency: {self._concurrency})")

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Stop claiming new jobs and wait for in-flight jobs to finish.

        Returns True if every worker finished within `timeout`. Jobs still
        running after that are left ACTIVE; if the process exits, the
        janitor recovers them as stalled.
        """
        self._stopping.set()
        if not self._futures:
            return True
        _, not_done = wait(self._futures, timeout=timeout)
        if not_done:
            logger.warning(f"{len(not_done)} workers still busy after drain timeout")
        return not not_done

    def stop(self, timeout: Optional[float] = None) -> None:
        """Drain, then shut down the thread pool."""
        self.drain(timeout)
        if self._executor is not None:
            self._executor.shutdown(wait=timeout is None)
            self._executor = None
        logger.info("Worker pool stopped")

    def _worker_loop(self, worker_id: str) -> None:
        logger.debug(f"Worker {worker_id} started")
        while not self._stopping.is_set():
            try:
                job = self._queue.claim_next(worker_id)
                if job is None:
                    self._queue.wait_for_job(self._poll_interval)
                    continue
                self._job_executor.execute(job)
            except Exception as e:
                logger.error(f"Worker {worker_id} error: {e}", exc_info=True)
                # Usually the database or Redis is down; don't spin.
                self._stopping.wait(self._poll_interval)
        logger.debug(f"Worker {worker_id} exited")

    def _on_loop_exit(self, future: Future) -> None:
        """Log worker loops that died from something the loop itself didn't catch."""
        if future.cancelled():
            return
        exc = future.exception()
        if exc:
            logger.error(f"Worker loop crashed: {exc}")
