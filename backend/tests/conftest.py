"""
Shared pytest fixtures and configuration.
"""

import os

# Keep run history out of the real database file
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.setdefault("ITEM_DELAY_SECONDS", "0")

from io import BytesIO

import pytest
from PIL import Image

from imageflow.conversion.models import SourceFile
from imageflow.errors import DecodeError


def make_image_bytes(fmt: str = "PNG", size=(32, 24), color=(200, 40, 40, 255), mode: str = "RGBA") -> bytes:
    img = Image.new(mode, size, color if mode == "RGBA" else color[:3])
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


class FakeEngine:
    """Stands in for ConversionEngine: output is a fixed fraction of the input size."""

    def __init__(self, ratio: float = 0.5, fail_on=()):
        self.ratio = ratio
        self.fail_on = set(fail_on)
        self.calls = []

    async def convert(self, source_bytes, output_format, quality):
        self.calls.append((source_bytes, output_format, quality))
        if source_bytes in self.fail_on:
            raise DecodeError("cannot identify image file")
        return b"c" * int(len(source_bytes) * self.ratio)


@pytest.fixture
def png_bytes():
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes("JPEG", mode="RGB")


@pytest.fixture
def corrupt_bytes():
    return b"this is not an image at all"


@pytest.fixture
def sample_files(png_bytes, jpeg_bytes):
    return [
        SourceFile("red.png", png_bytes, "image/png"),
        SourceFile("photo.jpeg", jpeg_bytes, "image/jpeg"),
    ]


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def engine_factory():
    return FakeEngine


@pytest.fixture
def image_factory():
    return make_image_bytes
