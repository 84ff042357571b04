"""
Submission pipeline.

Received -> Validated -> Normalized -> FingerprintChecked -> Moderated ->
Persisted -> Broadcast | Suppressed

Each failing transition raises the matching ``DoodleError``; nothing is
written before the fingerprint check passes. The read cache is invalidated
for every persisted doodle, approved or pending, and only approved doodles are
pushed to live clients.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from doodleboard.core.errors import DoodleError, DuplicateImage
from doodleboard.models.doodle import APPROVED, PENDING, Doodle
from doodleboard.schemas.doodle import DoodleOut
from doodleboard.services import metrics
from doodleboard.services.cache import ReadCache
from doodleboard.services.images import ImageProcessor, decode_data_uri
from doodleboard.services.live import LiveUpdateHub, new_doodle_message
from doodleboard.services.storage import LocalStorage
from doodleboard.services.store import NewDoodle, SubmissionStore

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    doodle: Doodle
    broadcast: bool


class SubmissionPipeline:
    def __init__(
        self,
        processor: ImageProcessor,
        store: SubmissionStore,
        storage: LocalStorage,
        cache: ReadCache,
        hub: LiveUpdateHub,
    ):
        self.processor = processor
        self.store = store
        self.storage = storage
        self.cache = cache
        self.hub = hub

    async def submit_data_uri(
        self, image_data: Optional[str], user_name: Optional[str] = None, session_id: Optional[str] = None
    ) -> SubmissionResult:
        try:
            raw = decode_data_uri(image_data, max_bytes=self.processor.max_bytes)
        except DoodleError as exc:
            metrics.record_upload(type(exc).__name__)
            raise
        return await self.submit(raw, user_name=user_name, session_id=session_id)

    async def submit(
        self, raw: Optional[bytes], user_name: Optional[str] = None, session_id: Optional[str] = None
    ) -> SubmissionResult:
        try:
            result = await self._run(raw, user_name, session_id)
        except DoodleError as exc:
            metrics.record_upload(type(exc).__name__)
            raise
        metrics.record_upload(result.doodle.moderation_status)
        return result

    async def _run(self, raw, user_name, session_id) -> SubmissionResult:
        # Validated, Normalized; Pillow and disk work stay off the event loop
        self.processor.validate(raw)
        image = await asyncio.to_thread(self.processor.normalize, raw)

        # FingerprintChecked
        fingerprint = self.processor.fingerprint(image.data)
        if await self.store.check_duplicate(fingerprint):
            metrics.record_duplicate()
            raise DuplicateImage()

        # Moderated
        blank = await asyncio.to_thread(self.processor.is_likely_blank, image.data)
        status = PENDING if blank else APPROVED

        # Persisted
        doodle_id = uuid.uuid4()
        filename = f"{doodle_id}.{image.extension}"
        image_url = await asyncio.to_thread(self.storage.save, filename, image.data)
        new = NewDoodle(
            id=doodle_id,
            image_url=image_url,
            image_fingerprint=fingerprint,
            session_id=session_id or str(uuid.uuid4()),
            waitlist_rank=await self.store.next_waitlist_rank(),
            moderation_status=status,
            user_name=(user_name or "").strip()[:50] or "Anonymous",
        )
        try:
            doodle = await self.store.insert(new)
        except DuplicateImage:
            self.storage.delete(filename)
            metrics.record_duplicate()
            raise
        except Exception:
            self.storage.delete(filename)
            raise

        await self.cache.invalidate_all()

        if doodle.moderation_status != APPROVED:
            logger.info("Doodle %s held for review", doodle.id)
            return SubmissionResult(doodle=doodle, broadcast=False)

        await self._broadcast(doodle)
        return SubmissionResult(doodle=doodle, broadcast=True)

    async def _broadcast(self, doodle: Doodle) -> None:
        payload = DoodleOut.from_model(doodle).model_dump(mode="json", by_alias=True)
        try:
            await self.hub.publish(new_doodle_message(payload))
        except Exception:
            logger.exception("Failed to publish new doodle %s", doodle.id)
