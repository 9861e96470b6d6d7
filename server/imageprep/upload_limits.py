"""Upload budget checks shared by the client-side store and the HTTP API."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Generic, Iterable, Protocol, Sequence, TypeVar

from imageprep.config import MAX_FILES, UploadLimitConfig, resolve_upload_limits
from imageprep.errors import PayloadTooLargeError


class SizedFile(Protocol):
    size: int


F = TypeVar("F", bound=SizedFile)


@dataclass
class UploadValidationResult(Generic[F]):
    accepted_files: list[F] = field(default_factory=list)
    oversized_files: list[F] = field(default_factory=list)
    extra_files_ignored: bool = False
    total_size_exceeded: bool = False


def enforce_upload_limits(
    files: Sequence[F],
    current_count: int,
    current_total_bytes: int = 0,
    *,
    max_files: int = MAX_FILES,
    max_file_bytes: int | None = None,
    max_total_bytes: int | None = None,
) -> UploadValidationResult[F]:
    """Split a candidate batch into accepted and rejected files.

    Files are considered in input order. A file over the per-file cap goes to
    ``oversized_files``. Otherwise it is accepted while a slot is free and the
    running total (seeded with ``current_total_bytes``) stays within the total
    cap. Files skipped for lack of slots set ``extra_files_ignored``; only
    files that had a free slot but would push the total over the cap set
    ``total_size_exceeded``.
    """
    if max_file_bytes is None or max_total_bytes is None:
        limits = resolve_upload_limits()
        if max_file_bytes is None:
            max_file_bytes = limits.max_file_bytes
        if max_total_bytes is None:
            max_total_bytes = limits.max_upload_bytes

    available_slots = max(max_files - current_count, 0)
    result: UploadValidationResult[F] = UploadValidationResult()
    running_total = current_total_bytes

    for file in files:
        if file.size > max_file_bytes:
            result.oversized_files.append(file)
            continue

        if len(result.accepted_files) >= available_slots:
            result.extra_files_ignored = True
            continue
        if running_total + file.size > max_total_bytes:
            result.total_size_exceeded = True
            continue

        result.accepted_files.append(file)
        running_total += file.size

    if files and available_slots == 0:
        result.extra_files_ignored = True

    return result


def estimate_base64_bytes(base64_or_data_url: str) -> int:
    """Estimate the decoded size of a base64 payload or data URL without decoding it."""
    if not isinstance(base64_or_data_url, str):
        return 0

    _, sep, payload = base64_or_data_url.partition(",")
    if not sep:
        payload = base64_or_data_url
    payload = payload.strip()

    length = len(payload)
    if length == 0:
        return 0

    if payload.endswith("=="):
        padding = 2
    elif payload.endswith("="):
        padding = 1
    else:
        padding = 0

    return max(0, (length * 3) // 4 - padding)


def enforce_payload_budget(encoded_images: Iterable[str], limits: UploadLimitConfig) -> int:
    """Check encoded images against the per-file and aggregate budgets.

    Returns the estimated total of decoded bytes.

    Raises:
        PayloadTooLargeError: If any image exceeds the per-file budget, or the
            images together exceed the total budget
    """
    sizes = [estimate_base64_bytes(encoded) for encoded in encoded_images]

    largest = max(sizes, default=0)
    if largest > limits.max_file_bytes:
        raise PayloadTooLargeError(
            limits.hint,
            f"Image of ~{largest} bytes exceeds the {limits.max_file_mb:g} MB per-file limit",
        )

    total = sum(sizes)
    if total > limits.max_upload_bytes:
        raise PayloadTooLargeError(
            limits.hint,
            f"Images total ~{total} bytes, over the {limits.max_upload_mb:g} MB limit",
        )
    return total


def max_request_body_bytes(limits: UploadLimitConfig) -> int:
    """Largest request body worth parsing: the base64 size of the total budget plus JSON overhead."""
    return 4 * math.ceil(limits.max_upload_bytes / 3) + 1024 * 1024
