import logging
import uuid
from dataclasses import dataclass
from typing import Dict

from doodleboard.core.errors import DependencyError, DoodleError, InvalidReaction, NotFoundError
from doodleboard.models.doodle import REACTION_KINDS
from doodleboard.services import metrics
from doodleboard.services.cache import ReadCache
from doodleboard.services.live import LiveUpdateHub, reaction_update_message
from doodleboard.services.store import SubmissionStore

logger = logging.getLogger(__name__)


@dataclass
class ReactionResult:
    doodle_id: str
    kind: str
    counts: Dict[str, int]


class ReactionLedger:
    """One reaction of each kind per origin per doodle."""

    def __init__(self, store: SubmissionStore, cache: ReadCache, hub: LiveUpdateHub):
        self.store = store
        self.cache = cache
        self.hub = hub

    async def try_react(self, doodle_id: str, kind: str, origin: str) -> ReactionResult:
        """
        Record a reaction and return the doodle's new counts.

        Raises ``InvalidReaction`` for unknown kinds, ``NotFoundError`` for
        unknown doodles and ``AlreadyReacted`` when this origin already used
        this kind on the doodle.
        """
        if kind not in REACTION_KINDS:
            metrics.record_reaction("invalid")
            raise InvalidReaction()
        try:
            parsed_id = uuid.UUID(str(doodle_id))
        except ValueError:
            metrics.record_reaction("not_found")
            raise NotFoundError()

        try:
            counts = await self.store.record_reaction(parsed_id, kind, origin)
        except DoodleError as exc:
            metrics.record_reaction(type(exc).__name__)
            raise
        metrics.record_reaction("accepted")

        # Already committed; stale pages expire within the cache TTL
        try:
            await self.cache.invalidate_all()
        except DependencyError as exc:
            logger.error("Cache invalidation failed after reaction on %s: %s", parsed_id, exc.detail)

        try:
            await self.hub.publish(reaction_update_message(str(parsed_id), counts))
        except Exception:
            logger.exception("Failed to publish reaction update for %s", parsed_id)

        return ReactionResult(doodle_id=str(parsed_id), kind=kind, counts=counts)
