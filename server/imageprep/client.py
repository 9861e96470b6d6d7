"""Async client that submits session images to the API and settles their state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx
from pydantic import ValidationError

from imageprep.schemas import BatchResponse, GenerateRequest, GenerationOptions
from imageprep.store import HistoryEntry, HistoryStore, ImageSession, ProcessingImage

logger = logging.getLogger(__name__)

GENERATE_PATH = "/api/generate"


@dataclass
class SubmitReport:
    submitted: list[ProcessingImage] = field(default_factory=list)
    completed: list[ProcessingImage] = field(default_factory=list)
    failed: list[ProcessingImage] = field(default_factory=list)
    error: str | None = None
    history_entry: HistoryEntry | None = None


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        if body.get("error") == "payload_too_large":
            return body.get("hint") or "Payload too large"
        message = body.get("message") or body.get("error")
        if message:
            return str(message)
    return f"Request failed with status {response.status_code}"


class GenerateClient:
    """Runs generate / regenerate actions for an :class:`ImageSession`."""

    def __init__(self, http: httpx.AsyncClient, history: HistoryStore | None = None):
        self.http = http
        self.history = history

    async def generate(self, session: ImageSession, options: GenerationOptions) -> SubmitReport:
        """Submit every queued or failed image."""
        return await self._submit(session, session.pending(), options)

    async def regenerate(
        self, session: ImageSession, image_id: str, options: GenerationOptions
    ) -> SubmitReport:
        return await self._submit(session, [session.get(image_id)], options)

    async def regenerate_all(self, session: ImageSession, options: GenerationOptions) -> SubmitReport:
        """Resubmit every completed image, e.g. after switching language."""
        return await self._submit(session, session.completed(), options)

    async def _submit(
        self,
        session: ImageSession,
        images: list[ProcessingImage],
        options: GenerationOptions,
    ) -> SubmitReport:
        report = SubmitReport(submitted=images)
        if not images:
            return report

        request = GenerateRequest(
            images=[img.descriptor.to_payload() for img in images],
            lang=options.lang,
            tone=options.tone,
            keywords=options.keywords or None,
        )
        session.mark_processing(images)

        try:
            response = await self.http.post(
                GENERATE_PATH,
                json=request.model_dump(mode="json", by_alias=True, exclude_none=True),
            )
        except httpx.HTTPError as e:
            logger.error(f"Generate request failed: {e}")
            return self._fail_all(session, report, str(e) or "Processing failed")

        if response.status_code != 200:
            message = _error_message(response)
            logger.error(f"Generate request rejected ({response.status_code}): {message}")
            return self._fail_all(session, report, message)

        try:
            batch = BatchResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Unreadable generate response: {e}")
            return self._fail_all(session, report, "Invalid response from server")

        report.completed = session.apply_response(images, batch)
        report.failed = [img for img in images if img not in report.completed]
        if self.history is not None:
            report.history_entry = self.history.save_batch(report.completed, batch.lang)
        return report

    def _fail_all(self, session: ImageSession, report: SubmitReport, message: str) -> SubmitReport:
        session.fail_all(report.submitted, message)
        report.failed = list(report.submitted)
        report.error = message
        return report
