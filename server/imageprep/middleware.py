"""Middleware rejecting request bodies over the upload budget before parsing."""

from __future__ import annotations

import logging

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)


def payload_too_large_response(hint: str) -> JSONResponse:
    return JSONResponse(status_code=413, content={"error": "payload_too_large", "hint": hint})


class BodySizeLimitMiddleware:
    """Answer 413 when a request body is larger than ``max_bytes``.

    A declared ``Content-Length`` is checked up front. Bodies without one
    (chunked uploads) are counted as they stream in and handed to the app
    once complete.
    """

    def __init__(self, app: ASGIApp, max_bytes: int, hint: str):
        self.app = app
        self.max_bytes = max_bytes
        self.hint = hint

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = dict(scope["headers"]).get(b"content-length")
        if content_length is not None:
            if content_length.isdigit() and int(content_length) > self.max_bytes:
                await self._reject(scope, receive, send, int(content_length))
                return
            await self.app(scope, receive, send)
            return

        chunks: list[bytes] = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            body = message.get("body", b"")
            received += len(body)
            if received > self.max_bytes:
                await self._reject(scope, receive, send, received)
                return
            chunks.append(body)
            more_body = message.get("more_body", False)

        buffered: Message | None = {"type": "http.request", "body": b"".join(chunks), "more_body": False}

        async def replay() -> Message:
            nonlocal buffered
            if buffered is not None:
                message, buffered = buffered, None
                return message
            return await receive()

        await self.app(scope, replay, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, size: int) -> None:
        logger.info(f"Rejected request body of at least {size} bytes (limit {self.max_bytes})")
        await payload_too_large_response(self.hint)(scope, receive, send)


__all__ = ["BodySizeLimitMiddleware", "payload_too_large_response"]
