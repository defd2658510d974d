"""
Worker process entry point.

This is a SEPARATE process from the FastAPI API server.
It builds the screenshot queue service and runs two components:

    1. WorkerPool — C threads claiming jobs and rendering them
    2. QueueJanitor — recovers stalled jobs, sweeps old ones hourly

The main thread just waits for Ctrl+C (SIGINT) or a kill signal (SIGTERM),
then drains (lets in-flight renders finish, up to SHUTDOWN_GRACE_SECONDS)
and shuts everything down.

To run:
    python -m worker.main
"""

import logging
import signal
import threading

from config.settings import settings
from jobqueue.service import ScreenshotQueueService

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# One full primary+fallback cycle can take a couple of minutes.
SHUTDOWN_GRACE_SECONDS = 120.0


def main():
    logger.info("Initializing screenshot queue...")
    service = ScreenshotQueueService.from_settings(settings)
    service.start()

    # ── Graceful shutdown on Ctrl+C or SIGTERM ──────────────────
    shutdown_event = threading.Event()

    def shutdown(signum, frame):
        logger.info("Shutdown signal received, draining workers...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    logger.info("Worker process running. Press Ctrl+C to stop.")

    # Block the main thread until shutdown signal
    # (using Event.wait() instead of signal.pause() for Windows compatibility)
    shutdown_event.wait()

    if not service.drain(SHUTDOWN_GRACE_SECONDS):
        logger.warning("Some jobs were still rendering; they will be recovered as stalled")
    service.shutdown(timeout=5.0)

    logger.info("Worker process exited")


if __name__ == "__main__":
    main()
