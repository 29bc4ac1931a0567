from __future__ import annotations

import io

import pytest
from PIL import Image


def png_bytes(size: tuple[int, int], color=(200, 30, 30, 255), mode: str = "RGBA") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format="PNG")
    return buf.getvalue()


def open_png(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


@pytest.fixture
def make_png():
    return png_bytes


@pytest.fixture
def read_png():
    return open_png
