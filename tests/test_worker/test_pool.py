"""
Worker pool integration tests.

Real threads, a SQLite file database (one connection per thread) and
fakeredis. Renderers are scripted fakes that sleep briefly so several jobs
are in flight at once.
"""

import threading
import time

import pytest

from helpers import InMemoryStorage, RecordingRepository, make_png
from jobqueue.janitor import QueueJanitor
from jobqueue.queue import ScreenshotQueue, ScreenshotTarget
from jobqueue.service import ScreenshotQueueService
from models.enums import EntityType, JobState
from persistence.result_persister import ResultPersister
from renderers.base import AbstractRenderer
from renderers.orchestrator import RenderOrchestrator
from worker.executor import JobExecutor
from worker.pool import WorkerPool

PNG = make_png()


class SlowRenderer(AbstractRenderer):
    """Tracks how many renders run at the same time."""

    in_flight = 0
    peak = 0
    lock = threading.Lock()

    def __init__(self, duration=0.1):
        self._duration = duration

    @property
    def name(self):
        return "slow"

    def render(self, html):
        cls = type(self)
        with cls.lock:
            cls.in_flight += 1
            cls.peak = max(cls.peak, cls.in_flight)
        try:
            time.sleep(self._duration)
            return PNG
        finally:
            with cls.lock:
                cls.in_flight -= 1


@pytest.fixture(autouse=True)
def reset_counters():
    SlowRenderer.in_flight = 0
    SlowRenderer.peak = 0


def _build(session_factory, redis_client, concurrency=3, repo=None):
    queue = ScreenshotQueue(session_factory, redis_client, stall_timeout=60)
    repo = repo if repo is not None else RecordingRepository()
    executor = JobExecutor(
        queue,
        RenderOrchestrator(primary_factory=SlowRenderer, sleep=lambda s: None),
        storage=InMemoryStorage(),
        persister=ResultPersister({EntityType.USER_PAGE: repo}),
        key_prefix="screenshots",
    )
    pool = WorkerPool(queue, executor, concurrency=concurrency, poll_interval=1)
    return queue, pool, repo


def _wait_until(predicate, timeout=15.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


def test_pool_completes_every_job(file_session_factory, fake_redis):
    queue, pool, repo = _build(file_session_factory, fake_redis, concurrency=3)
    job_ids = [
        queue.enqueue(html=f"<p>{i}</p>", target=ScreenshotTarget(EntityType.USER_PAGE, f"p{i}"))
        for i in range(6)
    ]

    pool.start()
    try:
        assert _wait_until(lambda: queue.stats()["completed"] == 6)
    finally:
        assert pool.drain(timeout=10)
        pool.stop(timeout=10)

    for job_id in job_ids:
        job = queue.get_job(job_id)
        assert job.state == JobState.COMPLETED.value
        assert job.attempts_made == 1
    assert sorted(entity_id for entity_id, _ in repo.calls) == [f"p{i}" for i in range(6)]


def test_pool_never_exceeds_concurrency(file_session_factory, fake_redis):
    queue, pool, _ = _build(file_session_factory, fake_redis, concurrency=2)
    for i in range(6):
        queue.enqueue(html=f"<p>{i}</p>")

    pool.start()
    try:
        assert _wait_until(lambda: queue.stats()["completed"] == 6)
    finally:
        pool.stop(timeout=10)

    assert SlowRenderer.peak <= 2
    assert pool.concurrency == 2


def test_idle_pool_picks_up_new_jobs(file_session_factory, fake_redis):
    queue, pool, _ = _build(file_session_factory, fake_redis, concurrency=1)
    pool.start()
    try:
        time.sleep(0.2)
        job_id = queue.enqueue(html="<p/>")
        assert _wait_until(lambda: queue.get_job(job_id).state == JobState.COMPLETED.value)
    finally:
        pool.stop(timeout=10)


def test_drain_stops_claiming(file_session_factory, fake_redis):
    queue, pool, _ = _build(file_session_factory, fake_redis, concurrency=2)
    pool.start()

    assert pool.drain(timeout=10) is True
    assert pool.is_running is False

    job_id = queue.enqueue(html="<p/>")
    time.sleep(0.3)
    assert queue.get_job(job_id).state == JobState.WAITING.value
    pool.stop(timeout=10)


def test_crashed_worker_job_is_finished_by_another_worker(file_session_factory, fake_redis):
    """
    A worker claims a job and dies. The janitor requeues it after the stall
    timeout and a live worker completes it. The dead worker's late report is
    ignored.
    """
    queue = ScreenshotQueue(file_session_factory, fake_redis, stall_timeout=0.2)
    executor = JobExecutor(
        queue,
        RenderOrchestrator(primary_factory=SlowRenderer, sleep=lambda s: None),
        storage=InMemoryStorage(),
        persister=ResultPersister({}),
        key_prefix="screenshots",
    )
    job_id = queue.enqueue(html="<p/>")
    orphan = queue.claim_next("crashed-worker")

    time.sleep(0.3)
    QueueJanitor(queue, sweep_interval=3600).run_once()
    assert queue.get_job(job_id).state == JobState.WAITING.value

    pool = WorkerPool(queue, executor, concurrency=1, poll_interval=1)
    pool.start()
    try:
        assert _wait_until(lambda: queue.get_job(job_id).state == JobState.COMPLETED.value)
    finally:
        pool.stop(timeout=10)

    assert queue.report_success(orphan, "https://cdn.test/stale.png") is False
    job = queue.get_job(job_id)
    assert job.attempts_made == 2
    assert job.image_url != "https://cdn.test/stale.png"


def test_service_lifecycle(file_session_factory, fake_redis):
    queue, pool, _ = _build(file_session_factory, fake_redis, concurrency=2)
    service = ScreenshotQueueService(queue, pool=pool, janitor=QueueJanitor(queue, stall_check_interval=0.1))

    service.start()
    try:
        job_id = service.enqueue_screenshot_job(html="<p/>")
        assert _wait_until(lambda: service.get_job(job_id).state == JobState.COMPLETED.value)
        assert service.get_queue_stats()["completed"] == 1
    finally:
        assert service.drain(timeout=10)
        service.shutdown(timeout=10)
