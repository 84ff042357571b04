import logging
import math

from doodleboard.schemas.doodle import DoodleOut, DoodleListOut, Pagination
from doodleboard.services.cache import ReadCache, list_cache_key
from doodleboard.services.store import SORT_ORDERINGS, SubmissionStore

logger = logging.getLogger(__name__)


class FeedReader:
    """Cache-first reads of the approved feed."""

    def __init__(self, store: SubmissionStore, cache: ReadCache, default_limit: int = 20, max_limit: int = 100):
        self.store = store
        self.cache = cache
        self.default_limit = default_limit
        self.max_limit = max_limit

    def clamp(self, page, limit, sort):
        page = page if page and page > 0 else 1
        limit = min(limit if limit and limit > 0 else self.default_limit, self.max_limit)
        sort = sort if sort in SORT_ORDERINGS else "recent"
        return page, limit, sort

    async def list_page(self, page: int = 1, limit: int = 20, sort: str = "recent") -> dict:
        page, limit, sort = self.clamp(page, limit, sort)
        key = list_cache_key(sort, page, limit)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        offset = (page - 1) * limit
        items, total = await self.store.list_approved(sort, limit, offset)
        body = DoodleListOut(
            doodles=[DoodleOut.from_model(d) for d in items],
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                pages=math.ceil(total / limit),
                has_more=offset + limit < total,
            ),
        ).model_dump(mode="json", by_alias=True)
        await self.cache.set(key, body)
        return body
