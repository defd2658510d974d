"""
FastAPI application factory.

This file:
1. Creates the FastAPI app
2. Runs startup logic (build the queue service: DB tables, Redis client)
3. Registers all routers (screenshots, health)
4. Runs shutdown logic (close connections)

The API process only enqueues and reads jobs; it builds the service
without workers. Rendering happens in `python -m worker.main`.

To run:  uvicorn api.main:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from api.routers import health, screenshots
from config.settings import settings
from jobqueue.service import ScreenshotQueueService

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(queue_service: Optional[ScreenshotQueueService] = None) -> FastAPI:
    """
    Factory function that builds and configures the FastAPI application.

    Pass `queue_service` to reuse an existing service (tests do); otherwise
    one is built from settings on startup and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # ── Startup ─────────────────────────────────────────────
        owns_service = queue_service is None
        app.state.queue_service = queue_service or ScreenshotQueueService.from_settings(
            settings, with_workers=False
        )
        logger.info("API ready")

        yield  # app is running and serving requests between startup and shutdown

        # ── Shutdown ────────────────────────────────────────────
        if owns_service:
            app.state.queue_service.shutdown()
        logger.info("API shut down")

    app = FastAPI(
        title="Screenshot Queue",
        description="Asynchronous HTML screenshot rendering with retries and a remote fallback",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(health.router)
    app.include_router(screenshots.router)

    if queue_service is not None:
        # ASGITransport in tests does not run the lifespan
        app.state.queue_service = queue_service

    return app


# This is what uvicorn imports: `uvicorn api.main:app`
app = create_app()
