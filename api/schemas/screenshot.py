"""
Pydantic schemas for the /screenshots endpoints.

These are NOT database models — they define the HTTP API contract:
- ScreenshotJobCreate: what the caller sends to request a screenshot
- ScreenshotJobResponse: one job, as stored
- QueueStats: counts per state

FastAPI validates incoming data against these automatically, so a request
with both html and html_ref gets a 422 before our code even runs.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from models.enums import EntityType


class TargetIn(BaseModel):
    entity_type: EntityType  # must be one of: PageListing, UserPage, Template
    entity_id: str = Field(..., min_length=1, max_length=255)


class ScreenshotJobCreate(BaseModel):
    """Request body for POST /screenshots/."""

    html: Optional[str] = Field(default=None, description="Inline HTML document")
    html_ref: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=1024,
        description="Object storage key of the HTML document",
    )
    target: Optional[TargetIn] = None
    priority: Optional[int] = Field(default=None, ge=1, description="Lower runs first")
    delay_seconds: float = Field(default=0.0, ge=0)
    max_attempts: Optional[int] = Field(default=None, ge=1, le=10)

    @model_validator(mode="after")
    def exactly_one_source(self) -> "ScreenshotJobCreate":
        if (self.html is None) == (self.html_ref is None):
            raise ValueError("Exactly one of html or html_ref must be provided")
        return self


class ScreenshotJobResponse(BaseModel):
    """Response body for a single job."""

    id: UUID
    state: str
    priority: int
    html_ref: Optional[str] = None
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    attempts_made: int
    max_attempts: int
    progress: int
    delay_until: Optional[datetime] = None
    image_url: Optional[str] = None
    last_error: Optional[str] = None
    result: Optional[dict] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    # Read straight from the SQLAlchemy model attributes
    model_config = {"from_attributes": True}


class QueueStats(BaseModel):
    """Response body for GET /screenshots/stats."""

    waiting: int
    active: int
    completed: int
    failed: int
    delayed: int
    total: int   # unfinished work: waiting + active + delayed
