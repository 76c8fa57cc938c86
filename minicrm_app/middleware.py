# middleware.py
import logging
import time
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware
from starlette.datastructures import Headers

from .errors import PayloadTooLargeError, ValidationError, error_response

access_logger = logging.getLogger("minicrm_app.access")


class BodySizeLimitMiddleware:
    """Reject request bodies above ``max_bytes`` with 413.

    A declared Content-Length is checked up front. A chunked body is read
    and counted before the app runs, then replayed to it.
    """

    def __init__(self, app: Any, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: dict[str, Any], receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        length = headers.get("content-length")
        if length is not None:
            if not (length.isascii() and length.isdigit()):
                await self._reject(ValidationError("Invalid Content-Length header"), scope, receive, send)
            elif len(length) > len(str(self.max_bytes)) or int(length) > self.max_bytes:
                await self._reject(self._too_large(), scope, receive, send)
            else:
                await self.app(scope, receive, send)
            return

        if "chunked" not in headers.get("transfer-encoding", "").lower():
            await self.app(scope, receive, send)
            return

        chunks = []
        size = 0
        while True:
            message = await receive()
            if message["type"] != "http.request":
                # client went away mid-body
                return
            chunk = message.get("body", b"")
            size += len(chunk)
            if size > self.max_bytes:
                await self._reject(self._too_large(), scope, receive, send)
                return
            chunks.append(chunk)
            if not message.get("more_body", False):
                break

        body = b"".join(chunks)
        replayed = False

        async def replay() -> dict[str, Any]:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)

    def _too_large(self) -> PayloadTooLargeError:
        return PayloadTooLargeError(f"Request body exceeds {self.max_bytes} bytes")

    async def _reject(self, exc, scope, receive, send) -> None:
        response = error_response(exc.status_code, exc.message)
        await response(scope, receive, send)


def install_middleware(app: FastAPI, config) -> None:
    """CORS, default rate limit, request body cap and access logging.

    ``app.state.limiter`` must already be set.
    """
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=config.max_body_bytes)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        access_logger.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response
