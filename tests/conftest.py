"""
Pytest configuration and fixtures for doodleboard tests
"""

import pytest

from doodleboard.config import settings
from doodleboard.db import close_db, init_db
from doodleboard.services.cache import MemoryCacheBackend, ReadCache
from doodleboard.services.images import ImageProcessor
from doodleboard.services.live import LiveUpdateHub
from doodleboard.services.pipeline import SubmissionPipeline
from doodleboard.services.reactions import ReactionLedger
from doodleboard.services.storage import LocalStorage
from doodleboard.services.store import SubmissionStore


@pytest.fixture
async def db(tmp_path):
    """Fresh SQLite database per test."""
    await init_db(f"sqlite://{tmp_path / 'test.sqlite3'}")
    try:
        yield
    finally:
        await close_db()


@pytest.fixture
def store(db):
    return SubmissionStore(duplicate_window_hours=24)


@pytest.fixture
def cache():
    return ReadCache(MemoryCacheBackend(), ttl=60)


@pytest.fixture
def hub():
    return LiveUpdateHub()


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "uploads"))


@pytest.fixture
def processor():
    return ImageProcessor(canvas_size=400, max_bytes=5 * 1024 * 1024, blank_low=10, blank_high=245)


@pytest.fixture
def pipeline(processor, store, storage, cache, hub):
    return SubmissionPipeline(processor, store, storage, cache, hub)


@pytest.fixture
def ledger(store, cache, hub):
    return ReactionLedger(store, cache, hub)


@pytest.fixture
def client(tmp_path, monkeypatch):
    """TestClient over a fresh app, database, upload dir and rate limiter."""
    from fastapi.testclient import TestClient
    from doodleboard.core.rate_limit import limiter
    from doodleboard.main import create_app

    monkeypatch.setattr(settings, "DATABASE_URL", f"sqlite://{tmp_path / 'api.sqlite3'}")
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "CACHE_BACKEND", "memory")
    limiter.reset()

    with TestClient(create_app()) as c:
        yield c
