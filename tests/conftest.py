"""Shared fixtures for the rendering tests."""
import io
import re
import zlib

import pytest
from PIL import Image

from mdrender.fonts import FontMetrics
from mdrender.layout import Margins, TextFragment, layout
from mdrender.parser import parse
from mdrender.styles import resolve
from mdrender.theme import load_theme


@pytest.fixture
def fonts():
    return FontMetrics()


@pytest.fixture
def theme():
    return load_theme("github-light")


@pytest.fixture
def render_pages(fonts, theme):
    """Parse, resolve and lay out markdown; returns the pages."""

    def _render(markdown, page_size=(612.0, 792.0), margins=None, images=None, stylesheet=None):
        margins = margins or Margins.uniform(72.0)
        content_width = page_size[0] - margins.left - margins.right
        styled = resolve(
            parse(markdown),
            stylesheet or theme,
            fonts=fonts,
            images=images,
            content_width=content_width,
        )
        return layout(styled, page_size, margins, fonts=fonts)

    return _render


def text_of(pages):
    return "".join(
        fragment.text for page in pages for fragment in page.fragments if isinstance(fragment, TextFragment)
    )


def png_bytes(mode="RGB", size=(8, 6), color=(200, 30, 30)):
    """Encode a small solid image in memory."""
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def pdf_objects(data):
    """Map object number -> raw bytes of ``N 0 obj ... endobj`` in an emitted PDF."""
    objects = {}
    for match in re.finditer(rb"(\d+) 0 obj\n(.*?)\nendobj\n", data, flags=re.DOTALL):
        objects[int(match.group(1))] = match.group(2)
    return objects


def content_streams(data):
    """Decoded page content streams in page order."""
    streams = []
    objects = pdf_objects(data)
    for number in sorted(objects):
        body = objects[number]
        match = re.search(rb"/Contents (\d+) 0 R", body)
        if not match or b"/Type /Page" not in body:
            continue
        stream = objects[int(match.group(1))]
        raw = stream.split(b"\nstream\n", 1)[1].rsplit(b"\nendstream", 1)[0]
        if b"/FlateDecode" in stream.split(b"\nstream\n", 1)[0]:
            raw = zlib.decompress(raw)
        streams.append(raw)
    return streams
