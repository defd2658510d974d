"""
FastAPI dependency injection.

The queue service is built once in the app's lifespan and stored on
app.state. Endpoints declare `service: ScreenshotQueueService =
Depends(get_queue_service)` and receive that instance; tests swap it for
one running on SQLite + fakeredis.
"""

from fastapi import Request

from jobqueue.service import ScreenshotQueueService


def get_queue_service(request: Request) -> ScreenshotQueueService:
    """Returns the queue service stored on the app during startup."""
    return request.app.state.queue_service
