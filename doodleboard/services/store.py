"""
Persistence boundary for doodles and reactions.

All uniqueness rules live in the database: the duplicate-image window is a
unique ``fingerprint_claims`` row written in the same transaction as the
doodle, and reaction dedup is the ``(doodle, ip_address, reaction_type)``
unique index. Counters are bumped with database-side ``F`` expressions so
concurrent increments never lose updates.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from tortoise import connections
from tortoise.exceptions import DBConnectionError, IntegrityError, OperationalError
from tortoise.expressions import F
from tortoise.transactions import in_transaction

from doodleboard.config import settings
from doodleboard.core.errors import (
    AlreadyReacted,
    ConstraintViolation,
    DependencyError,
    DuplicateImage,
    NotFoundError,
)
from doodleboard.models.doodle import (
    APPROVED,
    PENDING,
    REACTION_KINDS,
    WAITLIST_SEQUENCE,
    Doodle,
    FingerprintClaim,
    Sequence,
)
from doodleboard.models.reaction import Reaction

logger = logging.getLogger(__name__)

SORT_ORDERINGS = {
    "recent": ("-created_at",),
    "popular": ("-reaction_total", "-created_at"),
    "featured": ("-featured", "-created_at"),
}

_STATS_SQL = (
    "SELECT COUNT(*) AS total_doodles, "
    "COUNT(DISTINCT session_id) AS unique_artists, "
    "COALESCE(SUM(reaction_total), 0) AS total_reactions "
    "FROM doodles WHERE moderation_status = 'approved'"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class NewDoodle:
    id: uuid.UUID
    image_url: str
    image_fingerprint: str
    session_id: str
    waitlist_rank: int
    moderation_status: str
    user_name: str = "Anonymous"
    reactions: Dict[str, int] = field(default_factory=lambda: {k: 0 for k in REACTION_KINDS})


@dataclass
class Stats:
    total_approved: int
    distinct_origin_sessions: int
    total_reactions: int


class SubmissionStore:
    def __init__(self, duplicate_window_hours: int = settings.DUPLICATE_WINDOW_HOURS):
        self.duplicate_window = timedelta(hours=duplicate_window_hours)

    async def check_duplicate(self, fingerprint: str) -> bool:
        """True if an approved or pending doodle with this fingerprint was created in the trailing window."""
        cutoff = _utcnow() - self.duplicate_window
        try:
            return await Doodle.filter(
                image_fingerprint=fingerprint,
                moderation_status__in=[APPROVED, PENDING],
                created_at__gte=cutoff,
            ).exists()
        except (OperationalError, DBConnectionError) as exc:
            raise self._dependency_error("check_duplicate", exc)

    async def next_waitlist_rank(self) -> int:
        try:
            async with in_transaction() as conn:
                updated = await Sequence.filter(name=WAITLIST_SEQUENCE).using_db(conn).update(value=F("value") + 1)
                if not updated:
                    await Sequence.create(name=WAITLIST_SEQUENCE, value=1, using_db=conn)
                seq = await Sequence.get(name=WAITLIST_SEQUENCE).using_db(conn)
                return int(seq.value)
        except (OperationalError, DBConnectionError) as exc:
            raise self._dependency_error("next_waitlist_rank", exc)

    async def insert(self, new: NewDoodle) -> Doodle:
        """
        Persist a doodle and claim its fingerprint in one transaction.

        A claim older than the duplicate window is released first, so a second
        upload of the same content is only accepted once the window has passed.
        Raises ``DuplicateImage`` when another transaction holds the claim.
        """
        now = _utcnow()
        try:
            async with in_transaction() as conn:
                await FingerprintClaim.filter(
                    fingerprint=new.image_fingerprint,
                    claimed_at__lt=now - self.duplicate_window,
                ).using_db(conn).delete()
                try:
                    doodle = await Doodle.create(
                        id=new.id,
                        image_url=new.image_url,
                        image_fingerprint=new.image_fingerprint,
                        user_name=new.user_name,
                        session_id=new.session_id,
                        waitlist_rank=new.waitlist_rank,
                        moderation_status=new.moderation_status,
                        **{f"{kind}_count": new.reactions.get(kind, 0) for kind in REACTION_KINDS},
                        reaction_total=sum(new.reactions.values()),
                        using_db=conn,
                    )
                except IntegrityError as exc:
                    raise ConstraintViolation() from exc
                try:
                    await FingerprintClaim.create(
                        fingerprint=new.image_fingerprint,
                        doodle_id=doodle.id,
                        claimed_at=now,
                        using_db=conn,
                    )
                except IntegrityError as exc:
                    raise DuplicateImage() from exc
        except (OperationalError, DBConnectionError) as exc:
            raise self._dependency_error("insert", exc)
        logger.info("Stored doodle %s (%s, rank %s)", doodle.id, doodle.moderation_status, doodle.waitlist_rank)
        return doodle

    async def get(self, doodle_id) -> Doodle:
        try:
            doodle = await Doodle.filter(id=doodle_id).first()
        except (OperationalError, DBConnectionError) as exc:
            raise self._dependency_error("get", exc)
        if doodle is None:
            raise NotFoundError()
        return doodle

    async def delete(self, doodle_id) -> None:
        try:
            deleted = await Doodle.filter(id=doodle_id).delete()
        except (OperationalError, DBConnectionError) as exc:
            raise self._dependency_error("delete", exc)
        if not deleted:
            raise NotFoundError()

    async def list_approved(self, sort: str, limit: int, offset: int) -> Tuple[List[Doodle], int]:
        ordering = SORT_ORDERINGS.get(sort, SORT_ORDERINGS["recent"])
        query = Doodle.filter(moderation_status=APPROVED)
        try:
            total = await query.count()
            items = await query.order_by(*ordering).offset(offset).limit(limit).all()
        except (OperationalError, DBConnectionError) as exc:
            raise self._dependency_error("list_approved", exc)
        return items, total

    async def get_featured(self, limit: int = settings.FEATURED_LIMIT) -> List[Doodle]:
        try:
            return await (
                Doodle.filter(featured=True, moderation_status=APPROVED)
                .order_by("-created_at")
                .limit(limit)
                .all()
            )
        except (OperationalError, DBConnectionError) as exc:
            raise self._dependency_error("get_featured", exc)

    async def aggregate_stats(self) -> Stats:
        try:
            rows = await connections.get("default").execute_query_dict(_STATS_SQL)
        except (OperationalError, DBConnectionError) as exc:
            raise self._dependency_error("aggregate_stats", exc)
        row = rows[0] if rows else {}
        return Stats(
            total_approved=int(row.get("total_doodles") or 0),
            distinct_origin_sessions=int(row.get("unique_artists") or 0),
            total_reactions=int(row.get("total_reactions") or 0),
        )

    async def increment_reaction(self, doodle_id, kind: str, using_db=None) -> Dict[str, int]:
        """Atomically add one to ``kind`` on a doodle and return the new counts."""
        column = f"{kind}_count"
        try:
            updated = await Doodle.filter(id=doodle_id).using_db(using_db).update(
                **{column: F(column) + 1},
                reaction_total=F("reaction_total") + 1,
                updated_at=_utcnow(),
            )
            if not updated:
                raise NotFoundError()
            doodle = await Doodle.get(id=doodle_id).using_db(using_db)
        except (OperationalError, DBConnectionError) as exc:
            raise self._dependency_error("increment_reaction", exc)
        return doodle.reaction_counts

    async def record_reaction(self, doodle_id, kind: str, origin: str) -> Dict[str, int]:
        """
        Insert the (doodle, origin, kind) reaction and bump the counter together.

        The unique index decides who wins when identical requests race; the
        loser gets ``AlreadyReacted`` and its transaction rolls back without
        touching the counter.
        """
        try:
            async with in_transaction() as conn:
                if not await Doodle.filter(id=doodle_id).using_db(conn).exists():
                    raise NotFoundError()
                try:
                    await Reaction.create(
                        doodle_id=doodle_id,
                        reaction_type=kind,
                        ip_address=origin,
                        using_db=conn,
                    )
                except IntegrityError as exc:
                    raise AlreadyReacted() from exc
                return await self.increment_reaction(doodle_id, kind, using_db=conn)
        except (OperationalError, DBConnectionError) as exc:
            raise self._dependency_error("record_reaction", exc)

    @staticmethod
    def _dependency_error(op: str, exc: Exception) -> DependencyError:
        logger.exception("Database error during %s: %s", op, exc)
        return DependencyError(detail=str(exc))
