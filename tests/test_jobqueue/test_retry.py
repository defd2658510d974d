"""
Tests for the RetryHandler and the backoff schedule.

These test the decision logic only:
- If attempts remain and the error is retriable → DELAYED after a backoff
- Otherwise → FAILED with the last error as the result
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from jobqueue.retry import RetryHandler, backoff_delay
from models.enums import JobState
from models.job import ScreenshotJob

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _make_job(attempts_made=1, max_attempts=3):
    return ScreenshotJob(
        id=uuid.uuid4(),
        html_inline="<p/>",
        state=JobState.ACTIVE.value,
        attempts_made=attempts_made,
        max_attempts=max_attempts,
        lock_token="abc",
    )


@pytest.mark.parametrize("attempts_made, seconds", [(0, 2), (1, 2), (2, 4), (3, 8), (4, 16)])
def test_backoff_doubles_per_attempt(attempts_made, seconds):
    assert backoff_delay(attempts_made, base_ms=2000) == timedelta(seconds=seconds)


def test_backoff_uses_base():
    assert backoff_delay(2, base_ms=500) == timedelta(seconds=1)


def test_first_failure_is_delayed():
    """First failure with attempts left → DELAYED, due after the base delay."""
    values = RetryHandler(2000).handle_failure(_make_job(attempts_made=1), "something broke", NOW)

    assert values["state"] == JobState.DELAYED.value
    assert values["delay_until"] == NOW + timedelta(seconds=2)
    assert values["last_error"] == "something broke"
    assert "finished_at" not in values
    assert "result" not in values


def test_claim_ownership_is_released():
    values = RetryHandler(2000).handle_failure(_make_job(), "boom", NOW)

    assert values["lock_token"] is None
    assert values["worker_id"] is None
    assert values["heartbeat_at"] is None
    assert values["updated_at"] == NOW


def test_exhausted_attempts_sets_failed():
    """When attempts_made reaches max_attempts → FAILED."""
    values = RetryHandler(2000).handle_failure(
        _make_job(attempts_made=3, max_attempts=3), "final failure", NOW
    )

    assert values["state"] == JobState.FAILED.value
    assert values["finished_at"] == NOW
    assert values["result"] == {"last_error": "final failure"}
    assert "delay_until" not in values


def test_non_retriable_error_fails_immediately():
    values = RetryHandler(2000).handle_failure(
        _make_job(attempts_made=1, max_attempts=3), "html_ref missing", NOW, retriable=False
    )

    assert values["state"] == JobState.FAILED.value
    assert values["result"] == {"last_error": "html_ref missing"}


def test_job_object_is_not_modified():
    job = _make_job(attempts_made=1)
    RetryHandler(2000).handle_failure(job, "boom", NOW)

    assert job.state == JobState.ACTIVE.value
    assert job.lock_token == "abc"
    assert job.attempts_made == 1
