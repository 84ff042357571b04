# tests/test_pipeline.py
"""Submission pipeline: validate, dedup, moderate, persist, invalidate, broadcast"""

import asyncio
import time

import pytest

from doodleboard.core.errors import DuplicateImage, ImageTooLarge, InvalidImage, MissingImage
from doodleboard.models.doodle import APPROVED, PENDING, Doodle
from doodleboard.services.cache import list_cache_key
from doodleboard.services.images import ImageProcessor
from doodleboard.services.pipeline import SubmissionPipeline
from tests.helpers import FakeWebSocket, data_uri, gradient_png, png_bytes


@pytest.mark.asyncio
async def test_approved_submission_is_stored_and_broadcast(pipeline, hub, storage):
    ws = FakeWebSocket()
    await hub.add(ws)

    result = await pipeline.submit_data_uri(data_uri(png_bytes((255, 0, 0))), user_name="Ada")
    d = result.doodle

    assert result.broadcast is True
    assert d.moderation_status == APPROVED
    assert d.user_name == "Ada"
    assert d.image_url == f"/uploads/{d.id}.png"
    assert storage.exists(f"{d.id}.png")
    assert d.session_id

    events = ws.of_type("new_doodle")
    assert len(events) == 1
    assert events[0]["data"]["id"] == str(d.id)
    assert events[0]["data"]["imageUrl"] == d.image_url
    assert events[0]["data"]["reactions"] == {"like": 0, "love": 0, "fire": 0, "laugh": 0}


@pytest.mark.asyncio
async def test_blank_submission_is_pending_and_suppressed(pipeline, hub, cache):
    ws = FakeWebSocket()
    await hub.add(ws)
    key = list_cache_key("recent", 1, 20)
    await cache.set(key, {"stale": True})

    result = await pipeline.submit(png_bytes((255, 255, 255), size=(400, 400)))

    assert result.doodle.moderation_status == PENDING
    assert result.broadcast is False
    assert ws.of_type("new_doodle") == []
    assert await cache.get(key) is None


@pytest.mark.asyncio
async def test_submission_invalidates_cache(pipeline, cache):
    key = list_cache_key("popular", 2, 10)
    await cache.set(key, {"stale": True})
    await pipeline.submit(gradient_png(64))
    assert await cache.get(key) is None


@pytest.mark.asyncio
async def test_defaults_for_name_and_session(pipeline):
    result = await pipeline.submit(gradient_png(32), user_name="   ", session_id=None)
    assert result.doodle.user_name == "Anonymous"
    assert len(result.doodle.session_id) == 36

    given = await pipeline.submit(png_bytes((0, 128, 255)), session_id="my-session")
    assert given.doodle.session_id == "my-session"


@pytest.mark.asyncio
async def test_waitlist_ranks_increase(pipeline):
    a = await pipeline.submit(png_bytes((10, 120, 200)))
    b = await pipeline.submit(png_bytes((200, 120, 10)))
    assert b.doodle.waitlist_rank > a.doodle.waitlist_rank


@pytest.mark.asyncio
async def test_duplicate_submission_rejected(pipeline, hub):
    ws = FakeWebSocket()
    await hub.add(ws)
    raw = png_bytes((0, 200, 0))
    await pipeline.submit(raw)
    with pytest.raises(DuplicateImage):
        await pipeline.submit(raw)
    assert await Doodle.all().count() == 1
    assert len(ws.of_type("new_doodle")) == 1


@pytest.mark.asyncio
async def test_concurrent_duplicates_persist_once(pipeline, storage):
    raw = png_bytes((0, 0, 200))
    results = await asyncio.gather(pipeline.submit(raw), pipeline.submit(raw), return_exceptions=True)

    errors = [r for r in results if isinstance(r, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], DuplicateImage)
    assert await Doodle.all().count() == 1
    assert len(list(storage.base.iterdir())) == 1


@pytest.mark.asyncio
async def test_invalid_inputs_persist_nothing(pipeline, store, storage, cache, hub):
    with pytest.raises(MissingImage):
        await pipeline.submit_data_uri(None)
    with pytest.raises(MissingImage):
        await pipeline.submit(b"")
    with pytest.raises(InvalidImage):
        await pipeline.submit(b"not an image at all")

    tiny = SubmissionPipeline(ImageProcessor(max_bytes=64), store, storage, cache, hub)
    with pytest.raises(ImageTooLarge):
        await tiny.submit(gradient_png(64))

    assert await Doodle.all().count() == 0
    assert list(storage.base.iterdir()) == []


@pytest.mark.asyncio
async def test_image_work_does_not_block_the_event_loop(pipeline, monkeypatch):
    state = {"normalizing": False}
    real_normalize = pipeline.processor.normalize

    def slow_normalize(raw):
        state["normalizing"] = True
        try:
            time.sleep(0.2)
            return real_normalize(raw)
        finally:
            state["normalizing"] = False

    monkeypatch.setattr(pipeline.processor, "normalize", slow_normalize)

    seen = []
    done = asyncio.Event()

    async def ticker():
        while not done.is_set():
            seen.append(state["normalizing"])
            await asyncio.sleep(0.005)

    task = asyncio.create_task(ticker())
    try:
        await pipeline.submit(gradient_png(64))
    finally:
        done.set()
        await task

    assert seen.count(True) >= 5
