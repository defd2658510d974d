"""Tests for validate_png, the check every render result goes through."""

import io

import pytest
from PIL import Image

from helpers import make_png
from renderers.base import CompositeRenderError, InvalidRenderOutputError, RenderError, validate_png


def test_valid_png_returns_size():
    assert validate_png(make_png(width=20, height=10)) == (20, 10)


def test_empty_output():
    with pytest.raises(InvalidRenderOutputError, match="empty"):
        validate_png(b"")


def test_jpeg_is_rejected():
    buf = io.BytesIO()
    Image.new("RGB", (4, 4)).save(buf, format="JPEG")

    with pytest.raises(InvalidRenderOutputError, match="JPEG"):
        validate_png(buf.getvalue())


def test_html_error_page_is_rejected():
    with pytest.raises(InvalidRenderOutputError):
        validate_png(b"<html><body>502 Bad Gateway</body></html>")


def test_truncated_png_is_rejected():
    png = make_png(width=64, height=64)
    with pytest.raises(InvalidRenderOutputError):
        validate_png(png[:40])


def test_render_errors_share_a_base_class():
    """The orchestrator retries anything that is a RenderError."""
    assert issubclass(InvalidRenderOutputError, RenderError)
    assert issubclass(CompositeRenderError, RenderError)
