import logging
from contextlib import asynccontextmanager
from pathlib import Path

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from doodleboard.config import settings
from doodleboard.core.errors import DependencyError, DoodleError
from doodleboard.core.middleware import (
    BodySizeLimitMiddleware,
    ErrorEnvelopeMiddleware,
    SecurityHeadersMiddleware,
    error_body,
)
from doodleboard.core.rate_limit import limiter
from doodleboard.db import close_db, init_db
from doodleboard.services.cache import build_cache
from doodleboard.services.feed import FeedReader
from doodleboard.services.images import ImageProcessor
from doodleboard.services.live import LiveUpdateHub
from doodleboard.services.metrics import metrics_middleware
from doodleboard.services.pipeline import SubmissionPipeline
from doodleboard.services.reactions import ReactionLedger
from doodleboard.services.storage import URL_PREFIX, LocalStorage
from doodleboard.services.store import SubmissionStore

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("doodleboard")

if settings.SENTRY_DSN:
    sentry_sdk.init(dsn=settings.SENTRY_DSN, traces_sample_rate=0.1, environment=settings.APP_ENV)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting doodleboard (%s)...", settings.APP_ENV)
    await init_db(settings.DATABASE_URL)

    hub = LiveUpdateHub(send_timeout=settings.LIVE_SEND_TIMEOUT_SECONDS)
    cache = build_cache(settings.CACHE_BACKEND, settings.REDIS_URL, settings.CACHE_TTL_SECONDS)
    store = SubmissionStore(settings.DUPLICATE_WINDOW_HOURS)
    processor = ImageProcessor(
        canvas_size=settings.CANVAS_SIZE,
        max_bytes=settings.MAX_IMAGE_BYTES,
        blank_low=settings.BLANK_LOW,
        blank_high=settings.BLANK_HIGH,
    )

    app.state.hub = hub
    app.state.cache = cache
    app.state.store = store
    app.state.feed = FeedReader(store, cache, settings.DEFAULT_PAGE_LIMIT, settings.MAX_PAGE_LIMIT)
    app.state.pipeline = SubmissionPipeline(processor, store, app.state.storage, cache, hub)
    app.state.ledger = ReactionLedger(store, cache, hub)

    try:
        yield
    finally:
        # Shutdown: live clients first, then collaborators
        logger.info("Shutting down doodleboard...")
        await hub.close()
        try:
            await cache.close()
        except Exception as e:
            logger.error("Error closing cache: %s", e)
        await close_db()
        logger.info("Database connections closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Doodleboard API",
        description="Community doodle wall: uploads, reactions and live updates",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Storage is created eagerly so /uploads can be mounted before startup
    storage = LocalStorage(settings.UPLOAD_DIR)
    app.state.storage = storage
    app.state.hub = None

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(DoodleError)
    async def doodle_error_handler(request: Request, exc: DoodleError):
        if isinstance(exc, DependencyError):
            logger.error("Dependency failure on %s: %s", request.url.path, exc.detail)
            return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.detail))
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request", "details": [e.get("msg") for e in exc.errors()]})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    from doodleboard.routers import build_router
    app.include_router(build_router())

    app.mount(URL_PREFIX, StaticFiles(directory=str(Path(storage.base))), name="uploads")

    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(ErrorEnvelopeMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    metrics_middleware(app)
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.MAX_BODY_BYTES)

    return app


app = create_app()
