"""
Health check endpoint.

Checks that the queue's two backing stores answer: the database (job table)
and Redis (worker wake-ups). Load balancers and container orchestrators use
this to decide if the service can take traffic.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_queue_service
from jobqueue.errors import QueueBackendError
from jobqueue.service import ScreenshotQueueService

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(
    service: ScreenshotQueueService = Depends(get_queue_service),
):
    try:
        service.queue.check_health()
    except QueueBackendError as e:
        return JSONResponse(status_code=503, content={"status": "unhealthy", "error": str(e)})
    return {"status": "healthy", "database": "ok", "redis": "ok"}
