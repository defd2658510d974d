"""
Job executor — runs a single claimed screenshot job inside a worker thread.

This is the code that actually DOES THE WORK. Each worker thread calls
executor.execute(job) after claiming it, and this method handles the full
lifecycle:

    1. Resolve the HTML: inline, or fetched from object storage (html_ref)
       → missing object or non-UTF-8 bytes = non-retriable failure
    2. Progress 25, then render through the orchestrator
       (primary with retries, then fallback); every render attempt
       doubles as a heartbeat
    3. Progress 100, upload the PNG → durable URL
    4. If the job has a target, write the URL back to it (best effort)
    5. report_success — or report_failure for any error in 1-3

Step 4 is deliberately not allowed to fail the job. The image already
exists in storage; if the owning record's pointer could not be updated it
stays stale, and that is logged as a warning.

Thread safety:
- The queue opens a new DB session per call
- Renderers are created per attempt (primary) or are stateless (fallback)
- Storage and repositories are thread-safe clients
So multiple threads can call execute() simultaneously without locks.
"""

import logging

from config.settings import settings
from jobqueue.errors import ClaimLostError
from jobqueue.queue import ScreenshotQueue
from models.job import ScreenshotJob
from persistence.result_persister import ResultPersister
from renderers.orchestrator import RenderOrchestrator
from storage.base import ObjectNotFoundError, ObjectStorage

logger = logging.getLogger(__name__)


class JobExecutor:

    def __init__(
        self,
        queue: ScreenshotQueue,
        orchestrator: RenderOrchestrator,
        storage: ObjectStorage,
        persister: ResultPersister,
        key_prefix: str = settings.SCREENSHOT_KEY_PREFIX,
    ):
        self._queue = queue
        self._orchestrator = orchestrator
        self._storage = storage
        self._persister = persister
        self._key_prefix = key_prefix.strip("/")

    def execute(self, job: ScreenshotJob) -> dict:
        """
        Execute one claimed job and report the outcome to the queue.

        Returns:
            dict with execution status (for logging/debugging, not stored)
        """
        job_id = str(job.id)
        label = f"{job.target_type} {job.target_id}" if job.has_target else "untargeted job"
        logger.info(
            f"Processing screenshot for {label} "
            f"(Job {job_id}, attempt {job.attempts_made}/{job.max_attempts})"
        )

        # ── Step 1: Resolve HTML ────────────────────────────────
        try:
            html = self._resolve_html(job)
        except (ObjectNotFoundError, UnicodeDecodeError) as e:
            logger.error(f"Job {job_id}: HTML source unusable, not retrying: {e}")
            self._queue.report_failure(job, e, retriable=False)
            return {"status": "failed", "job_id": job_id, "error": str(e)}
        except Exception as e:
            logger.error(f"Job {job_id}: could not load HTML: {e}")
            self._queue.report_failure(job, e)
            return {"status": "failed", "job_id": job_id, "error": str(e)}

        try:
            if not self._queue.update_progress(job, 25):
                return {"status": "abandoned", "job_id": job_id}

            # ── Step 2: Render ──────────────────────────────────
            png = self._orchestrator.render(
                html, on_attempt=lambda renderer, attempt: self._heartbeat(job)
            )
            if not self._queue.update_progress(job, 100):
                # Recovered as stalled while rendering; another worker owns it now.
                return {"status": "abandoned", "job_id": job_id}

            # ── Step 3: Store ───────────────────────────────────
            image_url = self._storage.put_object(png, self._object_key(job), "image/png")
            logger.info(f"Screenshot generated: {image_url}")

        except ClaimLostError:
            logger.warning(f"Job {job_id} was recovered by another worker, abandoning render")
            return {"status": "abandoned", "job_id": job_id}
        except Exception as e:
            logger.error(f"Screenshot failed for {label} (Job {job_id}): {e}")
            self._queue.report_failure(job, e)
            return {"status": "failed", "job_id": job_id, "error": str(e)}

        # ── Step 4: Write back to the owning entity ────────────
        if job.has_target:
            try:
                self._persister.persist(job.target_type, job.target_id, image_url)
            except Exception as e:
                logger.warning(
                    f"Failed to update {job.target_type} {job.target_id} with screenshot URL "
                    f"(image kept at {image_url}): {e}"
                )

        # ── Step 5: Complete ───────────────────────────────────
        self._queue.report_success(job, image_url)
        return {"status": "completed", "job_id": job_id, "image_url": image_url}

    def _heartbeat(self, job: ScreenshotJob) -> None:
        if not self._queue.update_progress(job):
            raise ClaimLostError(f"Claim on job {job.id} lost")

    def _resolve_html(self, job: ScreenshotJob) -> str:
        if job.html_inline is not None:
            logger.debug("Generating from HTML content")
            return job.html_inline

        logger.info(f"Fetching HTML from storage: {job.html_ref}")
        data = self._storage.get_object(job.html_ref)
        html = data.decode("utf-8")
        logger.info(f"HTML fetched successfully, length: {len(html)} characters")
        return html

    def _object_key(self, job: ScreenshotJob) -> str:
        if job.has_target:
            return f"{self._key_prefix}/{job.target_type}/{job.target_id}-{job.id}.png"
        return f"{self._key_prefix}/{job.id}.png"
