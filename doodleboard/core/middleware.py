# SecurityHeadersMiddleware, ErrorEnvelopeMiddleware, BodySizeLimitMiddleware
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from doodleboard.config import settings

logger = logging.getLogger("errors")


def error_body(message: str, detail: str | None = None) -> dict:
    body = {"error": message}
    if detail and settings.EXPOSE_ERROR_DETAILS:
        body["message"] = detail
    return body


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "same-origin"
        if (settings.APP_ENV or "").strip().lower() == "production":
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains; preload"

        # Swagger UI/ReDoc pull their assets from jsDelivr
        if "/docs" in str(request.url) or "/redoc" in str(request.url):
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; "
                "img-src 'self' data: https:; "
                "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "connect-src 'self';"
            )
        else:
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; "
                "img-src 'self' data: blob:; "
                "connect-src 'self' ws: wss:; "
                "object-src 'none'; "
                "frame-ancestors 'none'; "
                "base-uri 'self';"
            )
        return response


class ErrorEnvelopeMiddleware(BaseHTTPMiddleware):
    """Last line of defence: any exception that escaped the handlers becomes a JSON 500."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        start = time.time()
        request_id = request.headers.get("x-request-id", str(uuid.uuid4())[:8])
        try:
            response: Response = await call_next(request)
        except Exception as exc:
            logger.exception("Unhandled error on %s %s [%s]", request.method, request.url.path, request_id)
            response = JSONResponse(status_code=500, content=error_body("Something went wrong!", str(exc)))
        response.headers.setdefault("x-request-id", request_id)
        response.headers["server-timing"] = f"total;dur={(time.time() - start) * 1000:.2f}"
        return response


class BodySizeLimitMiddleware:
    """Refuse HTTP request bodies larger than ``max_bytes`` with a 413."""

    def __init__(self, app: ASGIApp, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        length = dict(scope["headers"]).get(b"content-length", b"")
        if length.isdigit() and int(length) > self.max_bytes:
            response = JSONResponse(status_code=413, content={"error": "Request body too large"})
            await response(scope, receive, send)
            return

        received = 0

        # chunked bodies carry no content-length
        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    raise HTTPException(status_code=413, detail="Request body too large")
            return message

        await self.app(scope, limited_receive, send)
