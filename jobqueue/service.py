"""
Screenshot queue service — the one object business code holds.

It owns everything the subsystem needs, built explicitly instead of living
in module-level globals:

    engine + session factory   (jobs and owning entities)
    Redis client               (worker wake-ups)
    ScreenshotQueue            (enqueue / claim / report / stats)
    WorkerPool + JobExecutor   (optional: API processes only enqueue)
    QueueJanitor               (stall recovery + hourly sweep)

Lifecycle:
    service = ScreenshotQueueService.from_settings(settings)
    service.start()      # workers + janitor
    ...
    service.drain(30)    # stop claiming, let in-flight renders finish
    service.shutdown()   # stop threads, close Redis, dispose the engine
"""

import logging
from typing import Optional

from redis import Redis
from sqlalchemy.engine import Engine

from config.settings import Settings, settings as default_settings
from jobqueue.events import QueueEventBus, log_queue_events
from jobqueue.janitor import QueueJanitor
from jobqueue.queue import ScreenshotQueue, ScreenshotTarget
from models.base import Base, create_db_engine, create_session_factory
from models.job import ScreenshotJob
from persistence.result_persister import ResultPersister, build_default_repositories
from renderers.orchestrator import RenderOrchestrator
from renderers.playwright_renderer import PlaywrightRenderer
from renderers.screenshot_api import ScreenshotApiRenderer
from storage.s3 import S3ObjectStorage
from worker.executor import JobExecutor
from worker.pool import WorkerPool

# Registers the entity tables on Base.metadata for create_all().
import models.entities  # noqa: F401

logger = logging.getLogger(__name__)


class ScreenshotQueueService:

    def __init__(
        self,
        queue: ScreenshotQueue,
        pool: Optional[WorkerPool] = None,
        janitor: Optional[QueueJanitor] = None,
        engine: Optional[Engine] = None,
        redis_client: Optional[Redis] = None,
    ):
        self.queue = queue
        self._pool = pool
        self._janitor = janitor
        self._engine = engine
        self._redis = redis_client

    @classmethod
    def from_settings(cls, config: Settings = default_settings, with_workers: bool = True) -> "ScreenshotQueueService":
        """Build the whole subsystem from configuration."""
        engine = create_db_engine(config.sync_database_url)
        Base.metadata.create_all(engine)
        session_factory = create_session_factory(engine)

        redis_client = Redis.from_url(
            config.redis_url,
            retry_on_timeout=True,
            health_check_interval=30,
            socket_keepalive=True,
        )

        events = QueueEventBus()
        log_queue_events(events)

        queue = ScreenshotQueue(
            session_factory,
            redis_client,
            events=events,
            default_priority=config.JOB_DEFAULT_PRIORITY,
            default_max_attempts=config.JOB_MAX_ATTEMPTS,
            backoff_base_ms=config.JOB_BACKOFF_BASE_MS,
            stall_timeout=config.STALL_TIMEOUT_SECONDS,
        )

        if not with_workers:
            return cls(queue, engine=engine, redis_client=redis_client)

        def primary_factory() -> PlaywrightRenderer:
            return PlaywrightRenderer(
                viewport_width=config.VIEWPORT_WIDTH,
                viewport_height=config.VIEWPORT_HEIGHT,
                device_scale_factor=config.DEVICE_SCALE_FACTOR,
                settle_delay=config.PRIMARY_SETTLE_DELAY,
                navigation_timeout=config.PRIMARY_NAVIGATION_TIMEOUT,
                attempt_timeout=config.PRIMARY_ATTEMPT_TIMEOUT,
                executable_path=config.CHROMIUM_EXECUTABLE_PATH,
            )

        orchestrator = RenderOrchestrator(
            primary_factory=primary_factory,
            fallback=ScreenshotApiRenderer(
                api_key=config.SCREENSHOT_API_KEY,
                endpoint=config.SCREENSHOT_API_URL,
                viewport_width=config.VIEWPORT_WIDTH,
                viewport_height=config.VIEWPORT_HEIGHT,
                device_scale_factor=config.DEVICE_SCALE_FACTOR,
                render_delay=config.FALLBACK_RENDER_DELAY,
                timeout=config.FALLBACK_TIMEOUT,
            ),
            primary_max_attempts=config.PRIMARY_MAX_ATTEMPTS,
            primary_retry_delay=config.PRIMARY_RETRY_DELAY,
            fallback_max_attempts=config.FALLBACK_MAX_ATTEMPTS,
            fallback_retry_delay=config.FALLBACK_RETRY_DELAY,
        )

        job_executor = JobExecutor(
            queue,
            orchestrator,
            storage=S3ObjectStorage(
                bucket=config.S3_BUCKET,
                region=config.AWS_REGION,
                public_base_url=config.S3_PUBLIC_BASE_URL,
            ),
            persister=ResultPersister(build_default_repositories(session_factory)),
            key_prefix=config.SCREENSHOT_KEY_PREFIX,
        )
        pool = WorkerPool(
            queue,
            job_executor,
            concurrency=config.WORKER_CONCURRENCY,
            poll_interval=config.WORKER_POLL_INTERVAL,
        )
        janitor = QueueJanitor(
            queue,
            stall_check_interval=config.STALL_CHECK_INTERVAL,
            sweep_interval=config.SWEEP_INTERVAL_SECONDS,
            completed_retention=config.COMPLETED_RETENTION_SECONDS,
            failed_retention=config.FAILED_RETENTION_SECONDS,
        )
        return cls(queue, pool=pool, janitor=janitor, engine=engine, redis_client=redis_client)

    @property
    def events(self) -> QueueEventBus:
        return self.queue.events

    # ── Inbound interface ───────────────────────────────────────

    def enqueue_screenshot_job(
        self,
        html: Optional[str] = None,
        html_ref: Optional[str] = None,
        target: Optional[ScreenshotTarget] = None,
        priority: Optional[int] = None,
        delay: float = 0.0,
        max_attempts: Optional[int] = None,
    ) -> str:
        """The entry point business code uses to request a screenshot. Returns the job id."""
        return self.queue.enqueue(
            html=html,
            html_ref=html_ref,
            target=target,
            priority=priority,
            delay=delay,
            max_attempts=max_attempts,
        )

    def get_queue_stats(self) -> dict[str, int]:
        return self.queue.stats()

    def get_job(self, job_id: str) -> ScreenshotJob:
        return self.queue.get_job(job_id)

    def cancel_job(self, job_id: str) -> None:
        self.queue.cancel(job_id)

    # ── Lifecycle ───────────────────────────────────────────────

    def start(self) -> None:
        if self._janitor is not None:
            self._janitor.start()
        if self._pool is not None:
            self._pool.start()
        logger.info("All queues initialized successfully")

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Stop taking new jobs and wait for running ones. True if all finished."""
        if self._pool is None:
            return True
        return self._pool.drain(timeout)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        logger.info("Shutting down queues...")
        if self._pool is not None:
            self._pool.stop(timeout)
        if self._janitor is not None:
            self._janitor.stop(timeout)
        if self._redis is not None:
            self._redis.close()
        if self._engine is not None:
            self._engine.dispose()
        logger.info("All queues closed successfully")
