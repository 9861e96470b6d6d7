"""Batch orchestration: bounded concurrency over per-image retried model calls."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

from imageprep.adapters.base import VisionAdapter
from imageprep.config import BATCH_CONCURRENCY, MAX_RETRIES, RETRY_BASE_DELAY
from imageprep.schemas import GenerationOptions, ImageItem, ImagePayload, ImageResult, ItemFailure

logger = logging.getLogger(__name__)


@dataclass
class ItemOutcome:
    """Result or failure for one submitted image, keyed by its fingerprint."""

    image: ImagePayload
    result: ImageResult | None = None
    error: Exception | None = None

    @property
    def sha256(self) -> str:
        return self.image.sha256

    @property
    def ok(self) -> bool:
        return self.result is not None

    def to_item(self) -> ImageItem:
        return ImageItem(
            filename=self.image.filename,
            sha256=self.image.sha256,
            metrics=self.image.metrics,
            result=self.result,
        )

    def to_failure(self) -> ItemFailure:
        return ItemFailure(
            filename=self.image.filename,
            sha256=self.image.sha256,
            message=str(self.error) or "Processing failed",
        )


async def process_image_with_retry(
    adapter: VisionAdapter,
    image: ImagePayload,
    options: GenerationOptions,
    *,
    max_retries: int = MAX_RETRIES,
    base_delay: float = RETRY_BASE_DELAY,
) -> ImageResult:
    """Call the adapter for one image, retrying with exponential backoff.

    The image is attempted ``max_retries + 1`` times. Retry ``n`` waits
    ``base_delay * 2 ** (n - 1)`` seconds and asks the adapter for strict
    JSON output. The last error is raised once every attempt has failed.
    """
    last_error: Exception | None = None

    for attempt in range(max_retries + 1):
        try:
            return await adapter.generate(image, options, strict=attempt > 0)
        except Exception as e:
            last_error = e
            if attempt < max_retries:
                delay = base_delay * 2**attempt
                logger.warning(
                    f"Attempt {attempt + 1} for {image.filename} failed ({e}); "
                    f"retrying in {delay:g}s"
                )
                await asyncio.sleep(delay)

    logger.error(f"Giving up on {image.filename} after {max_retries + 1} attempts: {last_error}")
    raise last_error or RuntimeError("Failed to process image")


async def process_batch(
    adapter: VisionAdapter,
    images: Sequence[ImagePayload],
    options: GenerationOptions,
    *,
    concurrency: int = BATCH_CONCURRENCY,
    max_retries: int = MAX_RETRIES,
    base_delay: float = RETRY_BASE_DELAY,
) -> list[ItemOutcome]:
    """Process every image with at most ``concurrency`` model calls in flight.

    Outcomes are returned in completion order; match them to inputs by
    ``sha256``. A failing image never cancels its siblings.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run_one(image: ImagePayload) -> ItemOutcome:
        async with semaphore:
            try:
                result = await process_image_with_retry(
                    adapter,
                    image,
                    options,
                    max_retries=max_retries,
                    base_delay=base_delay,
                )
            except Exception as e:
                return ItemOutcome(image=image, error=e)
            return ItemOutcome(image=image, result=result)

    tasks = [asyncio.create_task(run_one(image)) for image in images]
    outcomes: list[ItemOutcome] = []
    for next_done in asyncio.as_completed(tasks):
        outcomes.append(await next_done)

    succeeded = sum(1 for o in outcomes if o.ok)
    logger.info(f"Batch done: {succeeded}/{len(outcomes)} succeeded")
    return outcomes
