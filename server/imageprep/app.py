"""HTTP API for batch SEO metadata generation."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from imageprep import __version__
from imageprep.adapters import VisionAdapter, get_adapter
from imageprep.config import UploadLimitConfig, resolve_upload_limits
from imageprep.errors import PayloadTooLargeError
from imageprep.middleware import BodySizeLimitMiddleware, payload_too_large_response
from imageprep.pipeline import process_batch
from imageprep.schemas import BatchResponse, GenerateRequest
from imageprep.upload_limits import enforce_payload_budget, max_request_body_bytes

logger = logging.getLogger(__name__)

MAX_LOG_LINE = 80


def get_vision_adapter(request: Request) -> VisionAdapter:
    """Return the app's adapter, building the configured one on first use."""
    if request.app.state.adapter is None:
        request.app.state.adapter = get_adapter()
    return request.app.state.adapter


def get_upload_limits(request: Request) -> UploadLimitConfig:
    return request.app.state.upload_limits


def create_app(
    adapter: VisionAdapter | None = None,
    upload_limits: UploadLimitConfig | None = None,
) -> FastAPI:
    app = FastAPI(title="Image SEO Prep API", version=__version__)
    app.state.adapter = adapter
    app.state.upload_limits = upload_limits or resolve_upload_limits()

    @app.middleware("http")
    async def log_api_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        if request.url.path.startswith("/api"):
            duration_ms = round((time.perf_counter() - start) * 1000)
            line = f"{request.method} {request.url.path} {response.status_code} in {duration_ms}ms"
            if len(line) > MAX_LOG_LINE:
                line = line[: MAX_LOG_LINE - 1] + "…"
            logger.info(line)
        return response

    app.add_middleware(
        BodySizeLimitMiddleware,
        max_bytes=max_request_body_bytes(app.state.upload_limits),
        hint=app.state.upload_limits.hint,
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = [
            {key: value for key, value in error.items() if key not in ("input", "url")}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"error": "Validation error", "details": jsonable_encoder(details)},
        )

    @app.exception_handler(PayloadTooLargeError)
    async def payload_too_large_handler(request: Request, exc: PayloadTooLargeError):
        logger.info(f"Rejected oversized request: {exc}")
        return payload_too_large_response(exc.hint)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error while processing request")
        return JSONResponse(
            status_code=500,
            content={"error": "internal_error", "message": str(exc) or "Internal Server Error"},
        )

    @app.get("/api/health")
    async def health(adapter: VisionAdapter = Depends(get_vision_adapter)) -> dict:
        return {"status": "ok", "provider": adapter.name}

    @app.post("/api/generate", response_model=BatchResponse)
    async def generate(
        body: GenerateRequest,
        adapter: VisionAdapter = Depends(get_vision_adapter),
        limits: UploadLimitConfig = Depends(get_upload_limits),
    ) -> BatchResponse:
        """Generate alt text, tags and a placement hint for each submitted image.

        Images whose retries are exhausted are reported under ``failures``;
        they never fail the request as a whole.
        """
        enforce_payload_budget((image.data_url for image in body.images), limits)

        outcomes = await process_batch(adapter, body.images, body.options())

        # completion order -> submission order
        position = {id(image): i for i, image in enumerate(body.images)}
        outcomes.sort(key=lambda outcome: position[id(outcome.image)])

        return BatchResponse(
            generated_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            lang=body.lang,
            items=[o.to_item() for o in outcomes if o.ok],
            failures=[o.to_failure() for o in outcomes if not o.ok],
        )

    return app
