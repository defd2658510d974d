"""
Fallback renderer — ScreenshotOne-compatible remote rendering API.

Used only after the local Playwright renderer is exhausted or unavailable.
The request carries the raw HTML, so both renderers share the same input
contract and no public URL is needed.

The rendering options mirror the primary renderer (1280x1024, scale 1,
full page, PNG) and `delay: 3` approximates the primary's settle delay,
so previews look the same whichever path produced them.

Quota: the API is metered (the free tier is ~100 renders/month). A 402/429
response is raised as RenderQuotaExceededError — a normal failure the job
queue retries later, not a bug.
"""

import logging
from typing import Optional

import httpx

from config.settings import settings
from renderers.base import AbstractRenderer, RenderError, RenderQuotaExceededError

logger = logging.getLogger(__name__)

QUOTA_STATUS_CODES = (402, 429)


class ScreenshotApiRenderer(AbstractRenderer):

    def __init__(
        self,
        api_key: str = settings.SCREENSHOT_API_KEY,
        endpoint: str = settings.SCREENSHOT_API_URL,
        viewport_width: int = settings.VIEWPORT_WIDTH,
        viewport_height: int = settings.VIEWPORT_HEIGHT,
        device_scale_factor: int = settings.DEVICE_SCALE_FACTOR,
        render_delay: int = settings.FALLBACK_RENDER_DELAY,
        timeout: float = settings.FALLBACK_TIMEOUT,
        client: Optional[httpx.Client] = None,
    ):
        self._api_key = api_key or "demo"
        self._endpoint = endpoint
        self._viewport_width = viewport_width
        self._viewport_height = viewport_height
        self._device_scale_factor = device_scale_factor
        self._render_delay = render_delay
        self._timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def name(self) -> str:
        return "screenshot_api"

    def render(self, html: str) -> bytes:
        if not isinstance(html, str):
            raise RenderError("html must be a string (the HTML document), not "
                              f"{type(html).__name__}")
        return self._take({"html": html})

    def render_url(self, url: str) -> bytes:
        """Render a publicly reachable URL instead of inline HTML."""
        return self._take({"url": url})

    def _take(self, source: dict) -> bytes:
        body = {
            "access_key": self._api_key,
            **source,
            "viewport_width": self._viewport_width,
            "viewport_height": self._viewport_height,
            "device_scale_factor": self._device_scale_factor,
            "format": "png",
            "full_page": True,
            "delay": self._render_delay,
            "block_ads": True,
            "block_cookie_banners": True,
            "block_trackers": True,
            # API-side render timeout, kept below our HTTP timeout
            "timeout": max(1, int(self._timeout) - 5),
        }

        logger.info("Calling screenshot API...")
        try:
            response = self._client.post(self._endpoint, json=body, timeout=self._timeout)
        except httpx.HTTPError as e:
            raise RenderError(f"Screenshot API request failed: {e}") from e

        if response.status_code in QUOTA_STATUS_CODES:
            raise RenderQuotaExceededError(
                f"Screenshot API quota exceeded (HTTP {response.status_code})"
            )
        if response.status_code >= 400:
            raise RenderError(
                f"Screenshot API returned HTTP {response.status_code}: {response.text[:200]}"
            )

        logger.info("Screenshot received from screenshot API")
        return response.content
