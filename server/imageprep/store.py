"""Client-side result store: the working session and the bounded history log."""

from __future__ import annotations

import json
import logging
import os
import secrets
import string
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Protocol, Union

from pydantic import BaseModel, Field, ValidationError

from imageprep.config import MAX_HISTORY_ENTRIES
from imageprep.errors import DecodeError
from imageprep.metadata import ImageDescriptor, ImageFile, prepare_descriptors
from imageprep.schemas import BatchResponse, ImageMetrics, ImageResult
from imageprep.upload_limits import enforce_upload_limits

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Image lifecycle
# ---------------------------------------------------------------------------


class Status(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Queued:
    status = Status.QUEUED


@dataclass(frozen=True)
class Processing:
    status = Status.PROCESSING


@dataclass(frozen=True)
class Completed:
    result: ImageResult
    status = Status.COMPLETED


@dataclass(frozen=True)
class Failed:
    message: str
    status = Status.FAILED


ImageState = Union[Queued, Processing, Completed, Failed]


class InvalidTransition(ValueError):
    pass


@dataclass
class ProcessingImage:
    """An image in the working session together with its processing state."""

    descriptor: ImageDescriptor
    state: ImageState = field(default_factory=Queued)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def status(self) -> Status:
        return self.state.status

    @property
    def sha256(self) -> str:
        return self.descriptor.sha256

    @property
    def filename(self) -> str:
        return self.descriptor.filename

    @property
    def metrics(self) -> ImageMetrics:
        return self.descriptor.metrics

    @property
    def result(self) -> ImageResult | None:
        return self.state.result if isinstance(self.state, Completed) else None

    @property
    def error(self) -> str | None:
        return self.state.message if isinstance(self.state, Failed) else None

    def start(self) -> None:
        """Move to processing; clears any previous error or result."""
        if isinstance(self.state, Processing):
            raise InvalidTransition(f"{self.filename} is already processing")
        self.state = Processing()

    def complete(self, result: ImageResult) -> None:
        if not isinstance(self.state, Processing):
            raise InvalidTransition(f"{self.filename} is {self.status.value}, not processing")
        self.state = Completed(result)

    def fail(self, message: str) -> None:
        if not isinstance(self.state, Processing):
            raise InvalidTransition(f"{self.filename} is {self.status.value}, not processing")
        self.state = Failed(message or "Processing failed")


@dataclass
class AddFilesReport:
    added: list[ProcessingImage] = field(default_factory=list)
    oversized: list[ImageFile] = field(default_factory=list)
    unreadable: list[tuple[ImageFile, DecodeError]] = field(default_factory=list)
    duplicates_skipped: int = 0
    extra_files_ignored: bool = False
    total_size_exceeded: bool = False


class ImageSession:
    """In-memory list of images being prepared, in the order they were added."""

    def __init__(self) -> None:
        self.images: list[ProcessingImage] = []

    def __len__(self) -> int:
        return len(self.images)

    @property
    def total_bytes(self) -> int:
        return sum(img.metrics.bytes for img in self.images)

    async def add_files(
        self,
        files: Iterable[ImageFile],
        *,
        skip_fingerprints: set[str] | None = None,
        **limits,
    ) -> AddFilesReport:
        """Validate, fingerprint and measure new files, queueing the usable ones.

        Files whose fingerprint is already in the session or in
        ``skip_fingerprints`` are counted as duplicates and not added. Extra
        keyword arguments are passed to :func:`enforce_upload_limits`.
        """
        check = enforce_upload_limits(list(files), len(self.images), self.total_bytes, **limits)
        report = AddFilesReport(
            oversized=check.oversized_files,
            extra_files_ignored=check.extra_files_ignored,
            total_size_exceeded=check.total_size_exceeded,
        )

        descriptors, report.unreadable = await prepare_descriptors(check.accepted_files)

        seen = {img.sha256 for img in self.images} | (skip_fingerprints or set())
        for descriptor in descriptors:
            if descriptor.sha256 in seen:
                report.duplicates_skipped += 1
                continue
            seen.add(descriptor.sha256)
            image = ProcessingImage(descriptor=descriptor)
            self.images.append(image)
            report.added.append(image)

        return report

    def get(self, image_id: str) -> ProcessingImage:
        for img in self.images:
            if img.id == image_id:
                return img
        raise KeyError(image_id)

    def with_status(self, *statuses: Status) -> list[ProcessingImage]:
        return [img for img in self.images if img.status in statuses]

    def pending(self) -> list[ProcessingImage]:
        """Images a generate run submits: queued ones and earlier failures."""
        return self.with_status(Status.QUEUED, Status.FAILED)

    def completed(self) -> list[ProcessingImage]:
        return self.with_status(Status.COMPLETED)

    def counts(self) -> dict[Status, int]:
        counts = {status: 0 for status in Status}
        for img in self.images:
            counts[img.status] += 1
        return counts

    def mark_processing(self, images: Iterable[ProcessingImage]) -> None:
        for img in images:
            img.start()

    def apply_response(
        self, submitted: Iterable[ProcessingImage], response: BatchResponse
    ) -> list[ProcessingImage]:
        """Settle submitted images from a batch response, matching by fingerprint.

        Returns the images that completed. Images without an item in the
        response fail with the server's per-item message when there is one.
        """
        results = {item.sha256: item.result for item in response.items}
        messages = {failure.sha256: failure.message for failure in response.failures}

        completed = []
        for img in submitted:
            if img.sha256 in results:
                img.complete(results[img.sha256])
                completed.append(img)
            else:
                img.fail(messages.get(img.sha256, "No result returned for this image"))
        return completed

    def fail_all(self, submitted: Iterable[ProcessingImage], message: str) -> None:
        for img in submitted:
            img.fail(message)

    def remove(self, image_id: str) -> None:
        self.images = [img for img in self.images if img.id != image_id]

    def clear(self) -> None:
        self.images = []


# ---------------------------------------------------------------------------
# History log
# ---------------------------------------------------------------------------


class HistoryImage(BaseModel):
    filename: str
    sha256: str
    metrics: ImageMetrics
    result: ImageResult | None = None


class HistoryEntry(BaseModel):
    id: str
    timestamp: str
    lang: str
    images: list[HistoryImage] = Field(default_factory=list)


class HistoryBackend(Protocol):
    def load(self) -> list[dict]: ...

    def save(self, entries: list[dict]) -> None: ...


class MemoryBackend:
    """Keeps the serialized log in memory."""

    def __init__(self, entries: list[dict] | None = None):
        self._data = json.dumps(entries or [])

    def load(self) -> list[dict]:
        return json.loads(self._data)

    def save(self, entries: list[dict]) -> None:
        self._data = json.dumps(entries)


class JsonFileBackend:
    """Persists the log as a JSON array in a single file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> list[dict]:
        if not self.path.exists():
            return []
        return json.loads(self.path.read_text(encoding="utf-8"))

    def save(self, entries: list[dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(entries, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)


_ID_ALPHABET = string.digits + string.ascii_lowercase


def _entry_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{int(time.time() * 1000)}-{suffix}"


class HistoryStore:
    """Bounded, newest-first log of completed batches.

    Every mutation notifies the registered listeners. Backend failures are
    logged and never raised to the caller.
    """

    def __init__(self, backend: HistoryBackend | None = None, max_entries: int = MAX_HISTORY_ENTRIES):
        self.backend = backend if backend is not None else MemoryBackend()
        self.max_entries = max_entries
        self._listeners: list[Callable[[], None]] = []

    def on_change(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback()

    def _load_raw(self) -> list | None:
        """Return the stored log as-is, or None when it cannot be read."""
        try:
            raw = self.backend.load()
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Failed to load history: {e}")
            return None
        if not isinstance(raw, list):
            logger.error(f"Failed to load history: expected a list, got {type(raw).__name__}")
            return None
        return raw

    def entries(self) -> list[HistoryEntry]:
        """Valid entries, newest first; entries that fail validation are skipped."""
        entries = []
        for raw_entry in self._load_raw() or []:
            try:
                entries.append(HistoryEntry.model_validate(raw_entry))
            except ValidationError as e:
                logger.warning(f"Skipping invalid history entry: {e}")
        return entries

    def _write(self, raw_entries: list) -> bool:
        try:
            self.backend.save(raw_entries)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save history: {e}")
            return False
        self._notify()
        return True

    def save_batch(self, images: Iterable[ProcessingImage], lang: str) -> HistoryEntry | None:
        """Record the completed images of a batch at the head of the log.

        Returns the new entry, or None when no image has a result.
        """
        completed = [
            HistoryImage(
                filename=img.filename,
                sha256=img.sha256,
                metrics=img.metrics,
                result=img.result,
            )
            for img in images
            if img.result is not None
        ]
        if not completed:
            return None

        entry = HistoryEntry(
            id=_entry_id(),
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            lang=lang,
            images=completed,
        )
        existing = self._load_raw()
        if existing is None:
            logger.error("History is unreadable; not overwriting it")
            return None
        history = [entry.model_dump(mode="json"), *existing][: self.max_entries]
        if not self._write(history):
            return None
        return entry

    def delete(self, entry_id: str) -> None:
        """Remove the entry with ``entry_id``, leaving every other stored entry as it was."""
        existing = self._load_raw()
        if existing is None:
            return
        self._write([raw for raw in existing if not (isinstance(raw, dict) and raw.get("id") == entry_id)])

    def clear(self) -> None:
        self._write([])

    def processed_fingerprints(self) -> set[str]:
        return {image.sha256 for entry in self.entries() for image in entry.images}
