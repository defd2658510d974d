"""
Tests for the QueueJanitor.

run_once() is driven directly; the background thread is only started in
one test, with a short interval, to check it actually ticks and stops.
"""

import time

from jobqueue.janitor import QueueJanitor
from jobqueue.queue import ScreenshotQueue
from models.enums import JobState


def test_run_once_recovers_stalled_jobs(queue, clock):
    job_id = queue.enqueue(html="<p/>")
    queue.claim_next("dead-worker")
    clock.advance(61)

    QueueJanitor(queue, sweep_interval=3600).run_once()

    assert queue.get_job(job_id).state == JobState.WAITING.value


def test_run_once_sweeps_only_when_interval_elapsed(queue, clock):
    queue.enqueue(html="<p/>")
    queue.report_success(queue.claim_next("w"), "https://cdn.test/a.png")
    clock.advance(7200)

    janitor = QueueJanitor(queue, sweep_interval=3600, completed_retention=3600)

    # Just created: the hourly sweep is not due yet.
    janitor.run_once()
    assert queue.stats()["completed"] == 1

    assert janitor.sweep() == 1
    assert queue.stats()["completed"] == 0


def test_zero_sweep_interval_sweeps_every_tick(queue, clock):
    queue.enqueue(html="<p/>")
    queue.report_failure(queue.claim_next("w"), "bad", retriable=False)
    clock.advance(100)

    QueueJanitor(queue, sweep_interval=0, failed_retention=60).run_once()

    assert queue.stats()["failed"] == 0


def test_background_thread_ticks_and_stops(file_session_factory, fake_redis, clock):
    queue = ScreenshotQueue(file_session_factory, fake_redis, stall_timeout=60, clock=clock)
    job_id = queue.enqueue(html="<p/>")
    queue.claim_next("dead-worker")
    clock.advance(61)

    janitor = QueueJanitor(queue, stall_check_interval=0.05, sweep_interval=3600)
    janitor.start()
    try:
        deadline = time.monotonic() + 5
        while queue.get_job(job_id).state != JobState.WAITING.value and time.monotonic() < deadline:
            time.sleep(0.02)
    finally:
        janitor.stop(timeout=5)

    assert queue.get_job(job_id).state == JobState.WAITING.value


def test_zero_completed_retention_removes_completed_jobs_at_next_sweep(queue, clock):
    queue.enqueue(html="<p/>")
    queue.report_success(queue.claim_next("w"), "https://cdn.test/a.png")
    clock.advance(1)

    assert QueueJanitor(queue, sweep_interval=0, completed_retention=0).sweep() == 1
    assert queue.stats()["completed"] == 0
