"""
Prometheus metrics for the doodle service
"""

import time

from fastapi import Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

from doodleboard.config import settings

REQUESTS_TOTAL = Counter(
    "doodleboard_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_DURATION = Histogram(
    "doodleboard_http_request_seconds",
    "Request duration in seconds",
    ["method", "path"],
)

UPLOADS_TOTAL = Counter(
    "doodleboard_uploads_total",
    "Doodle submissions by outcome",
    ["status"],
)

DUPLICATES_DETECTED = Counter(
    "doodleboard_duplicates_detected_total",
    "Submissions rejected as duplicates",
)

REACTIONS_TOTAL = Counter(
    "doodleboard_reactions_total",
    "Reaction attempts by outcome",
    ["status"],
)

LIVE_CONNECTIONS = Gauge(
    "doodleboard_live_connections",
    "Currently connected live clients",
)

LIVE_MESSAGES = Counter(
    "doodleboard_live_messages_total",
    "Live messages delivered to clients",
    ["type"],
)


def enabled() -> bool:
    return settings.METRICS_ENABLED


async def metrics_endpoint():
    """Prometheus metrics endpoint"""
    if not enabled():
        return Response(b"metrics disabled", media_type="text/plain")
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def metrics_middleware(app):
    """Add request counting middleware to the app"""
    if not enabled():
        return

    @app.middleware("http")
    async def _metrics(request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        REQUESTS_TOTAL.labels(method=request.method, path=path, status=str(response.status_code)).inc()
        REQUEST_DURATION.labels(method=request.method, path=path).observe(time.time() - start)
        return response


def record_upload(status: str):
    if enabled():
        UPLOADS_TOTAL.labels(status=status).inc()


def record_duplicate():
    if enabled():
        DUPLICATES_DETECTED.inc()


def record_reaction(status: str):
    if enabled():
        REACTIONS_TOTAL.labels(status=status).inc()


def set_live_connections(count: int):
    if enabled():
        LIVE_CONNECTIONS.set(count)


def record_live_published(message_type: str, delivered: int):
    if enabled() and delivered:
        LIVE_MESSAGES.labels(type=message_type).inc(delivered)
