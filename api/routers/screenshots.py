"""
Screenshot job endpoints.

POST   /screenshots/          → Request a screenshot (enqueue a job)
GET    /screenshots/stats     → Job counts per state
GET    /screenshots/{job_id}  → One job: state, attempts, image_url / last_error
DELETE /screenshots/{job_id}  → Cancel a job that has not started yet

The API layer is intentionally thin: validate input, hand it to the queue
service, return the job. It never renders anything; that happens in the
worker process.

The handlers are plain `def` functions: the queue uses a sync database
session, and FastAPI runs sync handlers in its threadpool so they don't
block the event loop.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_queue_service
from api.schemas.screenshot import QueueStats, ScreenshotJobCreate, ScreenshotJobResponse
from jobqueue.errors import InvalidJobError, JobNotCancellableError, JobNotFoundError
from jobqueue.queue import ScreenshotTarget
from jobqueue.service import ScreenshotQueueService

router = APIRouter(prefix="/screenshots", tags=["screenshots"])


@router.post("/", response_model=ScreenshotJobResponse, status_code=201)
def create_screenshot_job(
    job_in: ScreenshotJobCreate,
    service: ScreenshotQueueService = Depends(get_queue_service),
) -> ScreenshotJobResponse:
    """
    Request a screenshot.

    Returns as soon as the job is recorded. Poll GET /screenshots/{id} for
    the outcome, or rely on the target entity being updated.
    """
    target = None
    if job_in.target is not None:
        target = ScreenshotTarget(job_in.target.entity_type, job_in.target.entity_id)

    try:
        job_id = service.enqueue_screenshot_job(
            html=job_in.html,
            html_ref=job_in.html_ref,
            target=target,
            priority=job_in.priority,
            delay=job_in.delay_seconds,
            max_attempts=job_in.max_attempts,
        )
    except InvalidJobError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return ScreenshotJobResponse.model_validate(service.get_job(job_id))


@router.get("/stats", response_model=QueueStats)
def get_queue_stats(
    service: ScreenshotQueueService = Depends(get_queue_service),
) -> QueueStats:
    """Point-in-time job counts for dashboards. Best-effort, not transactional."""
    return QueueStats(**service.get_queue_stats())


@router.get("/{job_id}", response_model=ScreenshotJobResponse)
def get_screenshot_job(
    job_id: str,
    service: ScreenshotQueueService = Depends(get_queue_service),
) -> ScreenshotJobResponse:
    try:
        job = service.get_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return ScreenshotJobResponse.model_validate(job)


@router.delete("/{job_id}", status_code=204)
def cancel_screenshot_job(
    job_id: str,
    service: ScreenshotQueueService = Depends(get_queue_service),
) -> None:
    """
    Cancel a job.

    Only waiting and delayed jobs can be cancelled — once a worker has
    claimed it, the render runs to completion.
    """
    try:
        service.cancel_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    except JobNotCancellableError as e:
        raise HTTPException(status_code=409, detail=str(e))
