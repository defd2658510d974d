"""
Primary renderer — local headless Chromium driven by Playwright.

One render = one browser process:
    launch → new page (1280x1024, scale 1) → set_content(html)
    → wait for load → wait for network idle → wait for every <img>
    → settle delay → full-page PNG → close browser

Every step is bounded twice: by the navigation timeout on its own, and by
the attempt timeout shared across the whole sequence (launch included). The
worker only heartbeats between attempts, so PRIMARY_ATTEMPT_TIMEOUT must stay
below STALL_TIMEOUT_SECONDS; Settings refuses a configuration where it does
not.

The browser is never reused across attempts or jobs. A fresh process per
attempt means no cookies, storage or script globals leak between renders,
at the cost of a process launch each time (which is why the worker pool
bounds concurrency).

Why the extra waits after network idle?
Pages built by the editor run scripts (carousels, countdowns, lazy images)
that keep mutating the DOM after the last request finishes. Screenshots
taken right at network idle come out blank or half-drawn.

If the bundled Chromium is missing (common on fresh servers and in slim
containers), a handful of well-known system browser paths are tried before
giving up with RendererUnavailableError, which tells the orchestrator to go
straight to the fallback renderer.
"""

import logging
import os
import time
from typing import Callable, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from config.settings import settings
from renderers.base import AbstractRenderer, RenderError, RendererUnavailableError

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-web-security",
    "--disable-gpu",
]

SYSTEM_CHROME_PATHS = [
    "/usr/bin/google-chrome",
    "/usr/bin/chromium-browser",
    "/usr/bin/chromium",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
]

# Fonts and video only slow the page down; they never change the layout
# enough to matter in a preview.
BLOCKED_RESOURCE_TYPES = ("font", "media")

# Polled by wait_for_function, so a lazy image that never loads ends in a
# timeout instead of a promise that never settles.
IMAGES_SETTLED_JS = "() => Array.from(document.images).every(img => img.complete)"


class PlaywrightRenderer(AbstractRenderer):

    def __init__(
        self,
        viewport_width: int = settings.VIEWPORT_WIDTH,
        viewport_height: int = settings.VIEWPORT_HEIGHT,
        device_scale_factor: int = settings.DEVICE_SCALE_FACTOR,
        settle_delay: float = settings.PRIMARY_SETTLE_DELAY,
        navigation_timeout: float = settings.PRIMARY_NAVIGATION_TIMEOUT,
        attempt_timeout: float = settings.PRIMARY_ATTEMPT_TIMEOUT,
        executable_path: Optional[str] = settings.CHROMIUM_EXECUTABLE_PATH,
        playwright_factory: Callable = sync_playwright,
        system_paths: Optional[list[str]] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._viewport = {"width": viewport_width, "height": viewport_height}
        self._device_scale_factor = device_scale_factor
        self._settle_ms = int(settle_delay * 1000)
        self._timeout_ms = int(navigation_timeout * 1000)
        self._attempt_timeout = attempt_timeout
        self._executable_path = executable_path
        self._playwright_factory = playwright_factory
        self._system_paths = SYSTEM_CHROME_PATHS if system_paths is None else system_paths
        self._monotonic = monotonic

    @property
    def name(self) -> str:
        return "playwright"

    def render(self, html: str) -> bytes:
        if not isinstance(html, str):
            raise RenderError("html must be a string (the HTML document), not "
                              f"{type(html).__name__}")

        deadline = self._monotonic() + self._attempt_timeout
        try:
            with self._playwright_factory() as playwright:
                browser = self._launch(playwright.chromium, deadline)
                try:
                    return self._capture(browser, html, deadline)
                finally:
                    try:
                        browser.close()
                    except PlaywrightError as e:
                        logger.warning(f"Error closing browser: {e}")
        except RenderError:
            raise
        except PlaywrightError as e:
            raise RenderError(f"Playwright render failed: {e}") from e

    def _step_timeout(self, deadline: float) -> int:
        """Milliseconds the next step may take: the navigation timeout, cut to what is left of the attempt."""
        remaining_ms = int((deadline - self._monotonic()) * 1000)
        if remaining_ms <= 0:
            raise RenderError(
                f"Render exceeded its {self._attempt_timeout:g}s attempt timeout"
            )
        return min(self._timeout_ms, remaining_ms)

    def _launch(self, chromium, deadline: float):
        """
        Launch Chromium, falling back to a system-installed browser.

        Order: explicit CHROMIUM_EXECUTABLE_PATH, Playwright's bundled build,
        then SYSTEM_CHROME_PATHS. Anything other than a missing executable is
        re-raised as an ordinary (retriable) render error.
        """
        if self._executable_path:
            return self._launch_at(chromium, self._executable_path, deadline)

        try:
            return chromium.launch(
                headless=True, args=CHROMIUM_ARGS, timeout=self._step_timeout(deadline)
            )
        except PlaywrightError as launch_error:
            if not _is_missing_executable(launch_error):
                raise RenderError(f"Failed to launch browser: {launch_error}") from launch_error
            logger.warning(f"Bundled Chromium not found, looking for a system browser: {launch_error}")

        for path in self._system_paths:
            if not os.path.exists(path):
                continue
            logger.info(f"Found Chrome at: {path}")
            try:
                return chromium.launch(
                    headless=True, args=CHROMIUM_ARGS, executable_path=path,
                    timeout=self._step_timeout(deadline),
                )
            except PlaywrightError as e:
                logger.warning(f"System browser at {path} failed to launch: {e}")

        raise RendererUnavailableError("No Chromium executable available for Playwright")

    def _launch_at(self, chromium, path: str, deadline: float):
        if not os.path.exists(path):
            raise RendererUnavailableError(f"Configured Chromium executable not found: {path}")
        try:
            return chromium.launch(
                headless=True, args=CHROMIUM_ARGS, executable_path=path,
                timeout=self._step_timeout(deadline),
            )
        except PlaywrightError as e:
            raise RenderError(f"Failed to launch browser at {path}: {e}") from e

    def _capture(self, browser, html: str, deadline: float) -> bytes:
        page = browser.new_page(
            viewport=self._viewport,
            device_scale_factor=self._device_scale_factor,
        )
        page.set_default_timeout(self._timeout_ms)
        page.route("**/*", _block_heavy_resources)

        page.set_content(html, wait_until="load", timeout=self._step_timeout(deadline))
        page.wait_for_load_state("networkidle", timeout=self._step_timeout(deadline))
        page.wait_for_function(IMAGES_SETTLED_JS, timeout=self._step_timeout(deadline))
        page.wait_for_timeout(min(self._settle_ms, self._step_timeout(deadline)))

        body_height = page.evaluate("() => document.body.scrollHeight")
        logger.debug(f"Page height: {body_height}px")

        return page.screenshot(
            full_page=True, type="png", omit_background=False,
            timeout=self._step_timeout(deadline),
        )


def _block_heavy_resources(route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        route.abort()
    else:
        route.continue_()


def _is_missing_executable(error: Exception) -> bool:
    message = str(error)
    return "Executable doesn't exist" in message or "Could not find" in message
