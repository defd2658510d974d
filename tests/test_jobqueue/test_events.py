"""Tests for the queue event bus."""

import logging

from jobqueue.events import JobEvent, QueueEventBus, QueueEventType, log_queue_events


def test_subscribers_receive_only_their_event_type():
    bus = QueueEventBus()
    completed, failed = [], []
    bus.subscribe(QueueEventType.COMPLETED, completed.append)
    bus.subscribe(QueueEventType.FAILED, failed.append)

    event = JobEvent(type=QueueEventType.COMPLETED, job_id="j1", image_url="https://cdn.test/a.png")
    bus.publish(event)

    assert completed == [event]
    assert failed == []


def test_unsubscribe():
    bus = QueueEventBus()
    seen = []
    unsubscribe = bus.subscribe(QueueEventType.STALLED, seen.append)

    unsubscribe()
    bus.publish(JobEvent(type=QueueEventType.STALLED, job_id="j1"))

    assert seen == []
    unsubscribe()  # second call is a no-op


def test_failing_subscriber_does_not_stop_the_others(caplog):
    bus = QueueEventBus()
    seen = []

    def broken(event):
        raise RuntimeError("subscriber bug")

    bus.subscribe(QueueEventType.FAILED, broken)
    bus.subscribe(QueueEventType.FAILED, seen.append)

    with caplog.at_level(logging.ERROR, logger="jobqueue.events"):
        bus.publish(JobEvent(type=QueueEventType.FAILED, job_id="j1", error="boom"))

    assert len(seen) == 1
    assert "subscriber bug" in caplog.text


def test_default_subscribers_log_every_event_type(caplog):
    bus = QueueEventBus()
    log_queue_events(bus)

    with caplog.at_level(logging.INFO, logger="jobqueue.events"):
        bus.publish(JobEvent(type=QueueEventType.COMPLETED, job_id="j1", image_url="https://cdn.test/a.png"))
        bus.publish(JobEvent(type=QueueEventType.FAILED, job_id="j2", attempts_made=3, error="boom"))
        bus.publish(JobEvent(type=QueueEventType.STALLED, job_id="j3"))
        bus.publish(JobEvent(type=QueueEventType.ERROR, error="redis down"))

    assert "Job j1 completed successfully: https://cdn.test/a.png" in caplog.text
    assert "Job j2 failed after 3 attempts: boom" in caplog.text
    assert "Job j3 stalled" in caplog.text
    assert "Queue backend error: redis down" in caplog.text
