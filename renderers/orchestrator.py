"""
Render orchestrator — one `render(html) -> bytes` over two renderers.

State machine per render request:

    PRIMARY(1) ──fail──► PRIMARY(2) ──fail──► PRIMARY(3) ──fail──┐
        │                    │                    │               │
     success              success              success            ▼
        ▼                    ▼                    ▼          FALLBACK(1) ──fail──► FALLBACK(2) ──fail──► CompositeRenderError
      bytes                bytes                bytes            │                     │
                                                              success               success

- Primary gets PRIMARY_MAX_ATTEMPTS tries with a fixed PRIMARY_RETRY_DELAY
  between them. Each try gets a brand-new renderer from the factory.
- RendererUnavailableError (no browser binary) ends the primary phase at
  once: retrying cannot install Chromium.
- Fallback gets FALLBACK_MAX_ATTEMPTS tries with FALLBACK_RETRY_DELAY.
- Every result is checked with validate_png() before it counts as success.

This is the INNER retry layer (render attempts, fixed delays). The job
queue has its own OUTER layer (job attempts, exponential backoff). They are
deliberately separate: one job attempt can contain up to 3 + 2 renders.
"""

import logging
import time
from typing import Callable, Optional

from config.settings import settings
from renderers.base import (
    AbstractRenderer,
    CompositeRenderError,
    RenderError,
    RendererUnavailableError,
    validate_png,
)

logger = logging.getLogger(__name__)

# Called before every render attempt with (renderer_name, attempt_number).
# The worker uses it as a heartbeat so long renders are not mistaken for stalls.
# Anything it raises propagates out of render() and ends the request.
AttemptCallback = Callable[[str, int], None]


class RenderOrchestrator:

    def __init__(
        self,
        primary_factory: Callable[[], AbstractRenderer],
        fallback: Optional[AbstractRenderer] = None,
        primary_max_attempts: int = settings.PRIMARY_MAX_ATTEMPTS,
        primary_retry_delay: float = settings.PRIMARY_RETRY_DELAY,
        fallback_max_attempts: int = settings.FALLBACK_MAX_ATTEMPTS,
        fallback_retry_delay: float = settings.FALLBACK_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._primary_factory = primary_factory
        self._fallback = fallback
        self._primary_max_attempts = max(1, primary_max_attempts)
        self._primary_retry_delay = primary_retry_delay
        self._fallback_max_attempts = max(1, fallback_max_attempts)
        self._fallback_retry_delay = fallback_retry_delay
        self._sleep = sleep

    def render(self, html: str, on_attempt: Optional[AttemptCallback] = None) -> bytes:
        """
        Produce PNG bytes for `html`, trying primary then fallback.

        Raises:
            CompositeRenderError when every attempt on both paths failed.
        """
        try:
            return self._run_attempts(
                html,
                make_renderer=self._primary_factory,
                max_attempts=self._primary_max_attempts,
                retry_delay=self._primary_retry_delay,
                on_attempt=on_attempt,
            )
        except RenderError as primary_error:
            if self._fallback is None:
                raise CompositeRenderError(primary_error, None) from primary_error
            logger.warning(
                f"Primary renderer failed ({primary_error}). "
                f"Attempting fallback to {self._fallback.name}..."
            )
            try:
                png = self._run_attempts(
                    html,
                    make_renderer=lambda: self._fallback,
                    max_attempts=self._fallback_max_attempts,
                    retry_delay=self._fallback_retry_delay,
                    on_attempt=on_attempt,
                )
            except RenderError as fallback_error:
                logger.error(f"Fallback renderer also failed: {fallback_error}")
                raise CompositeRenderError(primary_error, fallback_error) from fallback_error

            logger.info(f"Fallback successful, image produced by {self._fallback.name}")
            return png

    def _run_attempts(
        self,
        html: str,
        make_renderer: Callable[[], AbstractRenderer],
        max_attempts: int,
        retry_delay: float,
        on_attempt: Optional[AttemptCallback],
    ) -> bytes:
        last_error: Optional[RenderError] = None

        for attempt in range(1, max_attempts + 1):
            renderer = make_renderer()
            if on_attempt is not None:
                on_attempt(renderer.name, attempt)
            logger.info(f"Rendering with {renderer.name} (attempt {attempt}/{max_attempts})")

            try:
                png = renderer.render(html)
                width, height = validate_png(png)
                logger.info(f"{renderer.name} produced a {width}x{height} PNG ({len(png)} bytes)")
                return png
            except RendererUnavailableError as e:
                logger.error(f"{renderer.name} renderer unavailable: {e}")
                raise
            except RenderError as e:
                last_error = e
            except Exception as e:
                # Renderer bugs still count as a failed attempt on this path.
                last_error = RenderError(f"{renderer.name} renderer crashed: {e!r}")
                last_error.__cause__ = e

            logger.warning(
                f"{renderer.name} render failed (attempt {attempt}/{max_attempts}): {last_error}"
            )
            if attempt < max_attempts:
                self._sleep(retry_delay)

        raise last_error
