"""Image metadata extraction and client-side descriptor preparation."""

from __future__ import annotations

import asyncio
import base64
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from PIL import Image, UnidentifiedImageError

from imageprep.errors import DecodeError
from imageprep.fingerprint import fingerprint_bytes
from imageprep.schemas import ImageMetrics, ImagePayload

logger = logging.getLogger(__name__)

_FORMAT_MIME = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
    "BMP": "image/bmp",
    "TIFF": "image/tiff",
}


@dataclass
class ImageFile:
    """A candidate upload: a filename and its raw bytes."""

    name: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: str | Path) -> ImageFile:
        path = Path(path)
        return cls(name=path.name, data=path.read_bytes())


@dataclass
class ImageDescriptor:
    """A validated image ready for submission, identified by its fingerprint."""

    filename: str
    sha256: str
    metrics: ImageMetrics
    data_url: str = field(repr=False)

    def to_payload(self) -> ImagePayload:
        return ImagePayload(
            data_url=self.data_url,
            filename=self.filename,
            sha256=self.sha256,
            metrics=self.metrics,
        )


def _open(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise DecodeError(f"Failed to load image: {e}") from e
    # verify() leaves the image unusable; reopen for attribute access
    return Image.open(io.BytesIO(data))


def extract_metrics(data: bytes) -> ImageMetrics:
    """Return pixel dimensions and byte size of an encoded image.

    Raises:
        DecodeError: If the bytes are not a readable image
    """
    img = _open(data)
    width, height = img.size
    return ImageMetrics(width=width, height=height, bytes=len(data))


def mime_type(data: bytes, filename: str = "") -> str:
    """Best-effort MIME type, from the decoded format or the file extension."""
    try:
        fmt = Image.open(io.BytesIO(data)).format
    except (UnidentifiedImageError, OSError):
        fmt = None
    if fmt in _FORMAT_MIME:
        return _FORMAT_MIME[fmt]
    suffix = Path(filename).suffix.lower()
    if suffix == ".png":
        return "image/png"
    if suffix == ".webp":
        return "image/webp"
    if suffix == ".gif":
        return "image/gif"
    return "image/jpeg"


def to_data_url(data: bytes, filename: str = "") -> str:
    b64 = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type(data, filename)};base64,{b64}"


def prepare_descriptor(file: ImageFile) -> ImageDescriptor:
    """Fingerprint, measure and encode one file."""
    metrics = extract_metrics(file.data)
    return ImageDescriptor(
        filename=file.name,
        sha256=fingerprint_bytes(file.data),
        metrics=metrics,
        data_url=to_data_url(file.data, file.name),
    )


async def prepare_descriptors(
    files: Iterable[ImageFile],
) -> tuple[list[ImageDescriptor], list[tuple[ImageFile, DecodeError]]]:
    """Prepare descriptors for several files concurrently.

    Returns the descriptors in input order plus the files that could not be
    decoded, each with its error.
    """
    files = list(files)
    outcomes = await asyncio.gather(
        *(asyncio.to_thread(prepare_descriptor, f) for f in files),
        return_exceptions=True,
    )

    descriptors: list[ImageDescriptor] = []
    failures: list[tuple[ImageFile, DecodeError]] = []
    for file, outcome in zip(files, outcomes):
        if isinstance(outcome, DecodeError):
            logger.warning(f"Skipping {file.name}: {outcome}")
            failures.append((file, outcome))
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            descriptors.append(outcome)
    return descriptors, failures
