"""
Abstract base class for HTML → PNG renderers, plus the render error hierarchy.

Two implementations exist:
- PlaywrightRenderer: local headless Chromium (primary)
- ScreenshotApiRenderer: remote rendering API over HTTP (fallback)

The orchestrator calls renderer.render(html) without knowing which one it is.
Same Strategy pattern as the rest of the project: one interface, swappable
implementations, picked by the code that wires things together.

Error hierarchy:
    RenderError                   any failed render attempt (retried)
    ├── RendererUnavailableError  the renderer cannot run at all (no browser binary)
    ├── RenderQuotaExceededError  the remote API refused because of its quota
    ├── InvalidRenderOutputError  bytes came back but are not a usable PNG
    └── CompositeRenderError      primary and fallback both exhausted
"""

import io
from abc import ABC, abstractmethod
from typing import Optional

from PIL import Image, UnidentifiedImageError


class RenderError(Exception):
    """A single render attempt failed."""


class RendererUnavailableError(RenderError):
    """The renderer is missing a runtime dependency; retrying it will not help."""


class RenderQuotaExceededError(RenderError):
    """The remote rendering API refused the request because the quota is used up."""


class InvalidRenderOutputError(RenderError):
    """The renderer returned something that is not a decodable PNG."""


class CompositeRenderError(RenderError):
    """Both rendering paths failed. Keeps both causes so operators can tell them apart."""

    def __init__(self, primary_error: Optional[BaseException], fallback_error: Optional[BaseException]):
        self.primary_error = primary_error
        self.fallback_error = fallback_error
        super().__init__(
            f"Both primary and fallback renderers failed. "
            f"Primary: {primary_error}, Fallback: {fallback_error}"
        )


class AbstractRenderer(ABC):

    @abstractmethod
    def render(self, html: str) -> bytes:
        """
        Render an HTML document to a full-page PNG.

        Args:
            html: the complete document as text (not a URL).

        Returns:
            PNG bytes.

        Raises:
            RenderError (or a subclass) on any failure.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used in logs and error messages (e.g., 'playwright')."""
        ...


def validate_png(data: bytes) -> tuple[int, int]:
    """
    Check that `data` is a PNG Pillow can decode and return its (width, height).

    Catches empty bodies and HTML error pages returned with a 200 status,
    which would otherwise be stored and written back as a broken preview.
    """
    if not data:
        raise InvalidRenderOutputError("renderer returned an empty image")
    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.format != "PNG":
                raise InvalidRenderOutputError(f"expected PNG output, got {img.format}")
            size = img.size
            img.verify()
            return size
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise InvalidRenderOutputError(f"renderer returned an undecodable image: {e}") from e
