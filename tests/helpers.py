"""
Test doubles shared across the test suite.

- make_png: a real (tiny) PNG, so validate_png() accepts renderer output
- FakeRenderer / RendererFactory: scripted renderers that record every call
- InMemoryStorage: ObjectStorage backed by a dict
- RecordingRepository: EntityRepository that remembers patches
- FakeClock: a clock tests can move forward by hand
"""

import io
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from PIL import Image

from persistence.repositories import EntityRepository
from renderers.base import AbstractRenderer
from storage.base import ObjectNotFoundError, ObjectStorage, StorageError


def make_png(width: int = 8, height: int = 6, color=(255, 0, 0)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=color).save(buf, format="PNG")
    return buf.getvalue()


class FakeRenderer(AbstractRenderer):
    """
    Renderer whose outcomes are scripted.

    `outcomes` is consumed one item per render() call: bytes are returned,
    exceptions are raised. When it runs out, the last item repeats.
    """

    def __init__(self, name: str, outcomes: list, calls: Optional[list] = None):
        self._name = name
        self._outcomes = list(outcomes)
        self.calls = calls if calls is not None else []
        self.rendered_html: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    def render(self, html: str) -> bytes:
        self.calls.append(self._name)
        self.rendered_html.append(html)
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RendererFactory:
    """Primary-renderer factory: a fresh FakeRenderer per attempt, sharing one script."""

    def __init__(self, outcomes: list, calls: Optional[list] = None, name: str = "primary"):
        self._outcomes = list(outcomes)
        self._name = name
        self.calls = calls if calls is not None else []
        self.instances: list[FakeRenderer] = []
        self.rendered_html: list[str] = []
        self._lock = threading.Lock()

    def __call__(self) -> AbstractRenderer:
        with self._lock:
            outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        renderer = _RecordingRenderer(self, outcome)
        self.instances.append(renderer)
        return renderer


class _RecordingRenderer(AbstractRenderer):

    def __init__(self, factory: RendererFactory, outcome):
        self._factory = factory
        self._outcome = outcome

    @property
    def name(self) -> str:
        return self._factory._name

    def render(self, html: str) -> bytes:
        self._factory.calls.append(self._factory._name)
        self._factory.rendered_html.append(html)
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome


class InMemoryStorage(ObjectStorage):

    def __init__(self, objects: Optional[dict] = None, fail_puts: bool = False):
        self.objects: dict[str, bytes] = dict(objects or {})
        self.fail_puts = fail_puts
        self._lock = threading.Lock()

    def get_object(self, key: str) -> bytes:
        with self._lock:
            if key not in self.objects:
                raise ObjectNotFoundError(f"{key} does not exist")
            return self.objects[key]

    def put_object(self, data: bytes, key: str, content_type: str = "image/png") -> str:
        if self.fail_puts:
            raise StorageError("upload failed")
        with self._lock:
            self.objects[key] = data
        return f"https://cdn.test/{key}"


class RecordingRepository(EntityRepository):

    def __init__(self, fail: bool = False):
        self.calls: list[tuple[str, dict]] = []
        self.rows: dict[str, dict] = {}
        self.fail = fail

    def update_by_id(self, entity_id: str, patch: dict) -> None:
        self.calls.append((entity_id, patch))
        if self.fail:
            raise RuntimeError("database unavailable")
        self.rows.setdefault(entity_id, {}).update(patch)


class FakeClock:

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)
