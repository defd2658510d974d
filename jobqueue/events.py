"""
Queue lifecycle events.

The queue publishes a JobEvent whenever something an operator cares about
happens:

    COMPLETED  job finished, image_url set
    FAILED     job reached the terminal failed state (no more retries)
    STALLED    an active job stopped heartbeating and was recovered
    ERROR      the queue's own backing store (database / Redis) failed

Subscribers are plain callables registered per event type. They run
synchronously in the publishing thread, so they should be quick (logging,
metrics counters). A subscriber that raises is logged and skipped; it never
breaks the job that triggered the event.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class QueueEventType(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    STALLED = "stalled"
    ERROR = "error"


@dataclass(frozen=True)
class JobEvent:
    type: QueueEventType
    job_id: Optional[str] = None
    attempts_made: int = 0
    image_url: Optional[str] = None
    error: Optional[str] = None


Subscriber = Callable[[JobEvent], None]


class QueueEventBus:

    def __init__(self):
        self._subscribers: dict[QueueEventType, list[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: QueueEventType, subscriber: Subscriber) -> Callable[[], None]:
        """Register `subscriber` for one event type. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers[event_type].append(subscriber)

        def unsubscribe() -> None:
            with self._lock:
                if subscriber in self._subscribers[event_type]:
                    self._subscribers[event_type].remove(subscriber)

        return unsubscribe

    def publish(self, event: JobEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers[event.type])
        for subscriber in subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.error(f"Event subscriber for '{event.type.value}' failed: {e}", exc_info=True)


def log_queue_events(bus: QueueEventBus) -> None:
    """Default subscribers: one log line per lifecycle event."""
    bus.subscribe(
        QueueEventType.COMPLETED,
        lambda e: logger.info(f"Job {e.job_id} completed successfully: {e.image_url}"),
    )
    bus.subscribe(
        QueueEventType.FAILED,
        lambda e: logger.error(f"Job {e.job_id} failed after {e.attempts_made} attempts: {e.error}"),
    )
    bus.subscribe(
        QueueEventType.STALLED,
        lambda e: logger.warning(f"Job {e.job_id} stalled"),
    )
    bus.subscribe(
        QueueEventType.ERROR,
        lambda e: logger.error(f"Queue backend error: {e.error}"),
    )
