"""
Owning entities whose screenshot pointer is updated after a successful render.

Only the screenshot columns matter to this service. Each table is a
collaborator owned by the wider application; the queue never creates or
deletes rows in them, it only updates the three screenshot_* fields.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base


class ScreenshotTargetMixin:
    screenshot_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    screenshot_status: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    screenshot_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class PageListing(ScreenshotTargetMixin, Base):
    __tablename__ = "marketplace_pages"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), default="", nullable=False)


class UserPage(ScreenshotTargetMixin, Base):
    __tablename__ = "pages"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), default="", nullable=False)


class Template(ScreenshotTargetMixin, Base):
    __tablename__ = "templates"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
