"""
Tests for Settings: the render timeouts must fit inside the stall timeout.

Settings are built with _env_file=None so a developer's .env does not leak
into the assertions.
"""

import pytest
from pydantic import ValidationError

from config.settings import Settings
from jobqueue.queue import ScreenshotQueue


def test_defaults_are_valid():
    config = Settings(_env_file=None)
    assert config.PRIMARY_ATTEMPT_TIMEOUT + config.PRIMARY_RETRY_DELAY < config.STALL_TIMEOUT_SECONDS
    assert config.FALLBACK_TIMEOUT + config.FALLBACK_RETRY_DELAY < config.STALL_TIMEOUT_SECONDS


@pytest.mark.parametrize("overrides", [
    {"STALL_TIMEOUT_SECONDS": 60},
    {"PRIMARY_ATTEMPT_TIMEOUT": 150},
    {"FALLBACK_TIMEOUT": 119},
])
def test_render_longer_than_stall_timeout_is_rejected(overrides):
    with pytest.raises(ValidationError, match="STALL_TIMEOUT_SECONDS"):
        Settings(_env_file=None, **overrides)


def test_longest_primary_attempt_is_not_recovered_as_stalled(db_session_factory, fake_redis, clock):
    """A live worker heartbeats again before the janitor gives up on it."""
    config = Settings(_env_file=None)
    queue = ScreenshotQueue(
        db_session_factory, fake_redis, stall_timeout=config.STALL_TIMEOUT_SECONDS, clock=clock
    )
    queue.enqueue(html="<p/>")
    job = queue.claim_next("slow-worker")

    clock.advance(config.PRIMARY_ATTEMPT_TIMEOUT + config.PRIMARY_RETRY_DELAY)

    assert queue.recover_stalled() == []
    assert queue.update_progress(job) is True
