"""
Shared enumerations used across the entire project.

Using Python enums (inheriting from str) means:
- They serialize to JSON automatically ("waiting", not "JobState.WAITING")
- They work as SQLAlchemy column values
- They work as FastAPI request/response fields
- Typos become immediate errors instead of silent bugs
"""

import enum


class JobState(str, enum.Enum):
    WAITING = "waiting"        # eligible for claiming now
    DELAYED = "delayed"        # eligible once delay_until has passed (new delayed jobs, retries)
    ACTIVE = "active"          # claimed by exactly one worker
    COMPLETED = "completed"    # image stored, result.image_url set
    FAILED = "failed"          # attempts exhausted or non-retriable error


class EntityType(str, enum.Enum):
    """Owning records a screenshot can be written back to."""
    PAGE_LISTING = "PageListing"   # marketplace listing
    USER_PAGE = "UserPage"         # a user's own landing page
    TEMPLATE = "Template"


class ScreenshotStatus(str, enum.Enum):
    """Value written to an owning entity's screenshot_status column."""
    COMPLETED = "completed"
