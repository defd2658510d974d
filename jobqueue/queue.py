"""
Screenshot job queue — durable job table in the database, wake-ups in Redis.

    enqueue()        INSERT a job, RPUSH a token onto the Redis wake list
    claim_next()     atomically move the best eligible job to ACTIVE
    update_progress  heartbeat + progress for an ACTIVE job
    report_success   ACTIVE → COMPLETED, publish "completed"
    report_failure   ACTIVE → DELAYED (retry) or FAILED, publish "failed"
    recover_stalled  ACTIVE jobs without a recent heartbeat → WAITING, publish "stalled"
    stats / sweep    counts per state / delete old terminal jobs

Why the database and not Redis for the jobs themselves?
The job row is the durable record operators look at (attempts, last error,
result). Redis only carries wake-up tokens so idle workers BLPOP instead of
hammering the database; losing a token just means a worker finds the job on
its next poll instead of immediately.

Claim exclusivity:
Claiming is a compare-and-set. The UPDATE that marks a job ACTIVE repeats
the eligibility predicate in its WHERE clause, so if two workers pick the
same candidate only one UPDATE matches a row (rowcount == 1); the loser
simply looks for the next candidate. On PostgreSQL the candidate SELECT also
uses FOR UPDATE SKIP LOCKED so workers usually don't even collide.

Every claim gets a fresh lock_token. All later writes for that attempt
(progress, success, failure) include the token in their WHERE clause; once
the janitor has recovered a stalled job, the first worker's reports no
longer match and are dropped.
"""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional, Union

from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import settings
from jobqueue.errors import (
    InvalidJobError,
    JobNotCancellableError,
    JobNotFoundError,
    QueueBackendError,
)
from jobqueue.events import JobEvent, QueueEventBus, QueueEventType
from jobqueue.retry import RetryHandler
from models.enums import EntityType, JobState
from models.job import ScreenshotJob

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScreenshotTarget:
    """The record a finished screenshot is written back to."""
    entity_type: EntityType
    entity_id: str


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScreenshotQueue:

    REDIS_WAKE_KEY = "screenshots:wake"

    def __init__(
        self,
        db_session_factory,
        redis_client: Redis,
        events: Optional[QueueEventBus] = None,
        default_priority: int = settings.JOB_DEFAULT_PRIORITY,
        default_max_attempts: int = settings.JOB_MAX_ATTEMPTS,
        backoff_base_ms: int = settings.JOB_BACKOFF_BASE_MS,
        stall_timeout: float = settings.STALL_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._db_session_factory = db_session_factory
        self._redis = redis_client
        self.events = events or QueueEventBus()
        self._default_priority = default_priority
        self._default_max_attempts = default_max_attempts
        self._retry_handler = RetryHandler(backoff_base_ms)
        self._stall_timeout = timedelta(seconds=stall_timeout)
        self._clock = clock

    # ── Producer side ───────────────────────────────────────────

    def enqueue(
        self,
        html: Optional[str] = None,
        html_ref: Optional[str] = None,
        target: Optional[ScreenshotTarget] = None,
        priority: Optional[int] = None,
        delay: float = 0.0,
        max_attempts: Optional[int] = None,
    ) -> str:
        """
        Durably record a screenshot job and return its id.

        Args:
            html: the document itself. Exactly one of html / html_ref.
            html_ref: object storage key of the document.
            target: owning record to update on success; None = fire-and-observe.
            priority: lower runs first (default JOB_DEFAULT_PRIORITY).
            delay: seconds before the job becomes eligible.
            max_attempts: job-level attempts (default JOB_MAX_ATTEMPTS).
        """
        if (html is None) == (html_ref is None):
            raise InvalidJobError("Exactly one of html or html_ref must be provided")
        if html is not None and not isinstance(html, str):
            raise InvalidJobError("html must be a string")
        if html_ref is not None and not html_ref:
            raise InvalidJobError("html_ref must not be empty")
        if delay < 0:
            raise InvalidJobError("delay must be >= 0")

        attempts = self._default_max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise InvalidJobError("max_attempts must be >= 1")

        target_type = target_id = None
        if target is not None:
            try:
                target_type = EntityType(target.entity_type).value
            except ValueError:
                raise InvalidJobError(f"Unknown entity type: {target.entity_type!r}") from None
            if not target.entity_id:
                raise InvalidJobError("target entity_id must not be empty")
            target_id = str(target.entity_id)

        now = self._clock()
        job = ScreenshotJob(
            id=uuid.uuid4(),
            html_inline=html,
            html_ref=html_ref,
            target_type=target_type,
            target_id=target_id,
            state=(JobState.DELAYED if delay > 0 else JobState.WAITING).value,
            priority=self._default_priority if priority is None else priority,
            delay_until=now + timedelta(seconds=delay) if delay > 0 else None,
            attempts_made=0,
            max_attempts=attempts,
            progress=0,
            created_at=now,
            updated_at=now,
        )

        with self._session() as session:
            session.add(job)
            session.commit()

        job_id = str(job.id)
        if target_type:
            logger.info(f"Screenshot job added: {job_id} for {target_type} {target_id}")
        else:
            logger.info(f"Screenshot job added: {job_id} (no target)")
        self._wake_workers()
        return job_id

    def cancel(self, job_id: str) -> None:
        """Remove a job that has not started yet."""
        uid = _parse_job_id(job_id)
        with self._session() as session:
            result = session.execute(
                delete(ScreenshotJob)
                .where(
                    ScreenshotJob.id == uid,
                    ScreenshotJob.state.in_([JobState.WAITING.value, JobState.DELAYED.value]),
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            if result.rowcount == 1:
                logger.info(f"Job {job_id} cancelled")
                return
            state = session.execute(
                select(ScreenshotJob.state).where(ScreenshotJob.id == uid)
            ).scalar_one_or_none()

        if state is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        raise JobNotCancellableError(
            f"Cannot cancel job in {state} state. Only waiting/delayed jobs can be cancelled."
        )

    # ── Consumer side ───────────────────────────────────────────

    def claim_next(self, worker_id: str) -> Optional[ScreenshotJob]:
        """
        Claim the next eligible job for `worker_id`, or return None.

        Eligible: WAITING, or DELAYED with delay_until in the past, and
        attempts left. Ordered by priority, then age.
        """
        now = self._clock()
        eligible = and_(
            or_(
                ScreenshotJob.state == JobState.WAITING.value,
                and_(
                    ScreenshotJob.state == JobState.DELAYED.value,
                    ScreenshotJob.delay_until <= now,
                ),
            ),
            ScreenshotJob.attempts_made < ScreenshotJob.max_attempts,
        )

        with self._session() as session:
            while True:
                candidate_id = session.execute(
                    select(ScreenshotJob.id)
                    .where(eligible)
                    .order_by(ScreenshotJob.priority, ScreenshotJob.created_at, ScreenshotJob.id)
                    .limit(1)
                    .with_for_update(skip_locked=True)
                ).scalar_one_or_none()
                if candidate_id is None:
                    session.rollback()
                    return None

                token = uuid.uuid4().hex
                result = session.execute(
                    update(ScreenshotJob)
                    .where(ScreenshotJob.id == candidate_id, eligible)
                    .values(
                        state=JobState.ACTIVE.value,
                        attempts_made=ScreenshotJob.attempts_made + 1,
                        lock_token=token,
                        worker_id=worker_id,
                        started_at=now,
                        heartbeat_at=now,
                        delay_until=None,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    session.commit()
                    job = session.get(ScreenshotJob, candidate_id)
                    logger.debug(f"Worker {worker_id} claimed job {candidate_id}")
                    return job

                # Another worker got there first; look for the next candidate.
                session.rollback()

    def update_progress(self, job: ScreenshotJob, progress: Optional[int] = None) -> bool:
        """
        Heartbeat for an ACTIVE job, optionally recording progress (0-100).

        Returns False if this worker no longer owns the job.
        """
        now = self._clock()
        values = {"heartbeat_at": now, "updated_at": now}
        if progress is not None:
            values["progress"] = max(0, min(100, int(progress)))

        with self._session() as session:
            result = session.execute(
                update(ScreenshotJob)
                .where(*self._owned_by(job))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            session.commit()

        if result.rowcount != 1:
            logger.warning(f"Progress for job {job.id} ignored, claim no longer held")
            return False
        if progress is not None:
            job.progress = values["progress"]
        return True

    def report_success(self, job: ScreenshotJob, image_url: str) -> bool:
        """ACTIVE → COMPLETED. Returns False if the claim was lost (stalled and recovered)."""
        if not image_url:
            raise ValueError("image_url must not be empty")

        now = self._clock()
        with self._session() as session:
            result = session.execute(
                update(ScreenshotJob)
                .where(*self._owned_by(job))
                .values(
                    state=JobState.COMPLETED.value,
                    image_url=image_url,
                    result={"image_url": image_url},
                    progress=100,
                    lock_token=None,
                    worker_id=None,
                    heartbeat_at=None,
                    finished_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()

        if result.rowcount != 1:
            logger.warning(f"Success report for job {job.id} ignored, claim no longer held")
            return False

        self.events.publish(JobEvent(
            type=QueueEventType.COMPLETED,
            job_id=str(job.id),
            attempts_made=job.attempts_made,
            image_url=image_url,
        ))
        return True

    def report_failure(self, job: ScreenshotJob, error: Union[str, BaseException], retriable: bool = True) -> Optional[JobState]:
        """
        Record a failed attempt. Returns the job's new state (DELAYED or
        FAILED), or None if the claim was lost.
        """
        error_msg = str(error) or type(error).__name__
        values = self._retry_handler.handle_failure(job, error_msg, self._clock(), retriable)

        with self._session() as session:
            result = session.execute(
                update(ScreenshotJob)
                .where(*self._owned_by(job))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            session.commit()

        if result.rowcount != 1:
            logger.warning(f"Failure report for job {job.id} ignored, claim no longer held")
            return None

        new_state = JobState(values["state"])
        if new_state is JobState.DELAYED:
            # Wake a worker so the retry is picked up close to its due time
            # even if every other worker is idle on the wake list.
            self._wake_workers()
        else:
            self.events.publish(JobEvent(
                type=QueueEventType.FAILED,
                job_id=str(job.id),
                attempts_made=job.attempts_made,
                error=error_msg,
            ))
        return new_state

    def wait_for_job(self, timeout: int) -> None:
        """Block until a wake token arrives or `timeout` seconds pass."""
        try:
            # BLPOP only takes whole seconds before Redis 6; 0 would block forever.
            self._redis.blpop(self.REDIS_WAKE_KEY, timeout=max(1, int(timeout)))
        except RedisError as e:
            self._backend_failure(e)

    # ── Maintenance ─────────────────────────────────────────────

    def recover_stalled(self) -> list[str]:
        """
        Requeue ACTIVE jobs whose worker stopped heartbeating.

        The worker is presumed dead (crashed process, wedged renderer). The
        job goes back to WAITING, or to FAILED if it has no attempts left.
        Returns the ids of recovered jobs.
        """
        now = self._clock()
        cutoff = now - self._stall_timeout
        recovered: list[str] = []

        with self._session() as session:
            stalled = session.execute(
                select(ScreenshotJob.id, ScreenshotJob.lock_token,
                       ScreenshotJob.attempts_made, ScreenshotJob.max_attempts)
                .where(
                    ScreenshotJob.state == JobState.ACTIVE.value,
                    ScreenshotJob.heartbeat_at < cutoff,
                )
            ).all()

            for job_id, token, attempts_made, max_attempts in stalled:
                exhausted = attempts_made >= max_attempts
                values = {
                    "lock_token": None,
                    "worker_id": None,
                    "heartbeat_at": None,
                    "updated_at": now,
                }
                if exhausted:
                    message = "job stalled more than allowable limit"
                    values.update(state=JobState.FAILED.value, last_error=message,
                                  result={"last_error": message}, finished_at=now)
                else:
                    values.update(state=JobState.WAITING.value)

                result = session.execute(
                    update(ScreenshotJob)
                    .where(
                        ScreenshotJob.id == job_id,
                        ScreenshotJob.state == JobState.ACTIVE.value,
                        ScreenshotJob.lock_token == token,
                        ScreenshotJob.heartbeat_at < cutoff,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                session.commit()
                if result.rowcount != 1:
                    continue  # reported or heartbeated in the meantime

                recovered.append(str(job_id))
                self.events.publish(JobEvent(
                    type=QueueEventType.STALLED, job_id=str(job_id), attempts_made=attempts_made,
                ))
                if exhausted:
                    self.events.publish(JobEvent(
                        type=QueueEventType.FAILED, job_id=str(job_id),
                        attempts_made=attempts_made, error=values["last_error"],
                    ))

        if recovered:
            self._wake_workers(len(recovered))
        return recovered

    def sweep(self, completed_retention: float, failed_retention: float) -> int:
        """
        Delete COMPLETED jobs older than `completed_retention` seconds and
        FAILED jobs older than `failed_retention` seconds. Returns rows removed.
        """
        now = self._clock()
        removed = 0
        with self._session() as session:
            for state, retention in (
                (JobState.COMPLETED, completed_retention),
                (JobState.FAILED, failed_retention),
            ):
                result = session.execute(
                    delete(ScreenshotJob)
                    .where(
                        ScreenshotJob.state == state.value,
                        ScreenshotJob.finished_at < now - timedelta(seconds=retention),
                    )
                    .execution_options(synchronize_session=False)
                )
                removed += result.rowcount
            session.commit()

        if removed:
            logger.info(f"Cleaned {removed} old jobs")
        return removed

    # ── Queries ─────────────────────────────────────────────────

    def stats(self) -> dict[str, int]:
        """
        Point-in-time job counts per state.

        Best-effort under concurrent mutation. "total" is unfinished work:
        waiting + active + delayed.
        """
        with self._session() as session:
            rows = session.execute(
                select(ScreenshotJob.state, func.count(ScreenshotJob.id))
                .group_by(ScreenshotJob.state)
            ).all()

        counts = {state.value: 0 for state in JobState}
        for state, count in rows:
            counts[state] = count
        counts["total"] = counts["waiting"] + counts["active"] + counts["delayed"]
        return counts

    def check_health(self) -> None:
        """Raise QueueBackendError unless both the database and Redis answer."""
        with self._session() as session:
            session.execute(select(1))
        try:
            self._redis.ping()
        except RedisError as e:
            self._backend_failure(e)

    def get_job(self, job_id: str) -> ScreenshotJob:
        uid = _parse_job_id(job_id)
        with self._session() as session:
            job = session.get(ScreenshotJob, uid)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    # ── Internals ───────────────────────────────────────────────

    @staticmethod
    def _owned_by(job: ScreenshotJob) -> tuple:
        return (
            ScreenshotJob.id == job.id,
            ScreenshotJob.state == JobState.ACTIVE.value,
            ScreenshotJob.lock_token == job.lock_token,
        )

    def _wake_workers(self, count: int = 1) -> None:
        try:
            self._redis.rpush(self.REDIS_WAKE_KEY, *(["1"] * count))
        except RedisError as e:
            # The job is already durable; workers will still find it on their next poll.
            logger.warning(f"Could not signal workers: {e}")
            self.events.publish(JobEvent(type=QueueEventType.ERROR, error=f"redis: {e}"))

    def _backend_failure(self, exc: Exception) -> None:
        self.events.publish(JobEvent(type=QueueEventType.ERROR, error=str(exc)))
        raise QueueBackendError(str(exc)) from exc

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session: Session = self._db_session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            self._backend_failure(e)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def _parse_job_id(job_id: Union[str, uuid.UUID]) -> uuid.UUID:
    if isinstance(job_id, uuid.UUID):
        return job_id
    try:
        return uuid.UUID(job_id)
    except (ValueError, AttributeError, TypeError):
        raise JobNotFoundError(f"Job {job_id} not found") from None
