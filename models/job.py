"""
Screenshot job ORM model — maps to the "screenshot_jobs" table.

Key design decisions:
- UUID primary key assigned by the queue at enqueue time
- html_inline / html_ref: exactly one is set; html_ref is an object storage key
- target_type / target_id: the owning record to write the image URL back to.
  Both NULL means fire-and-observe (the caller reads result.image_url).
- lock_token: a fresh value per claim. Reports carrying an old token come from
  a worker whose job was already recovered as stalled and are ignored.
- heartbeat_at: refreshed on every progress report; the janitor compares it
  against the stall timeout.
- result: written once, when the job enters a terminal state.
  last_error: overwritten on every failed attempt, for operators.
- Timestamps are set by the queue's clock, not the database server, so that
  ordering and retention sweeps behave the same on PostgreSQL and SQLite.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base
from models.enums import JobState


class ScreenshotJob(Base):
    __tablename__ = "screenshot_jobs"

    # ── Identity ────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # ── Payload ─────────────────────────────────────────────────
    html_inline: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    html_ref: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # ── Target ──────────────────────────────────────────────────
    target_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    target_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # ── Scheduling fields ───────────────────────────────────────
    state: Mapped[str] = mapped_column(
        String(16), default=JobState.WAITING.value, nullable=False
    )
    priority: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    delay_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # ── Retry tracking ──────────────────────────────────────────
    attempts_made: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)

    # ── Claim ownership ─────────────────────────────────────────
    lock_token: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    worker_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    heartbeat_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # ── Outcome ─────────────────────────────────────────────────
    image_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    result: Mapped[Optional[dict]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )

    # ── Lifecycle timestamps ────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    finished_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_screenshot_jobs_claim", "state", "priority", "created_at"),
        Index("ix_screenshot_jobs_finished", "state", "finished_at"),
    )

    @property
    def has_target(self) -> bool:
        return self.target_type is not None and self.target_id is not None

    def __repr__(self) -> str:
        return f"<ScreenshotJob {self.id} {self.state} attempts={self.attempts_made}/{self.max_attempts}>"
