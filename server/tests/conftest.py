"""Shared fixtures: in-memory images and a scripted vision adapter."""

import base64
import io

import pytest
from PIL import Image

from imageprep.adapters.base import VisionAdapter
from imageprep.schemas import ImageResult


def make_png(width: int = 8, height: int = 6, color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def data_url_of_size(size: int) -> str:
    return "data:image/jpeg;base64," + base64.b64encode(b"\0" * size).decode("ascii")


def sample_result(**overrides) -> ImageResult:
    values = {
        "alt": "Stub alt text",
        "keywords_used": [],
        "tags": ["stub"],
        "placement_hint": "hero",
    }
    values.update(overrides)
    return ImageResult(**values)


class StubAdapter(VisionAdapter):
    """Returns a fixed result, or fails for fingerprints listed in ``fail_for``."""

    name = "stub"

    def __init__(self, fail_for: set[str] | None = None):
        self.fail_for = fail_for or set()
        self.calls: list[tuple[str, bool]] = []

    async def generate(self, image, options, strict=False):
        self.calls.append((image.sha256, strict))
        if image.sha256 in self.fail_for:
            raise RuntimeError(f"model failed for {image.filename}")
        return sample_result(alt=f"Alt for {image.filename}")

    async def is_available(self):
        return True


@pytest.fixture
def stub_adapter() -> StubAdapter:
    return StubAdapter()


@pytest.fixture
def no_sleep(monkeypatch):
    """Skip retry backoff and record the requested delays."""
    delays: list[float] = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr("imageprep.pipeline.asyncio.sleep", fake_sleep)
    return delays
