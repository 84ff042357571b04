from fastapi import APIRouter, Body, Depends, Query, Request

from doodleboard.config import settings
from doodleboard.core.rate_limit import client_origin, limiter
from doodleboard.dependencies import get_feed, get_ledger, get_pipeline, get_store
from doodleboard.schemas.doodle import (
    DoodleListOut,
    DoodleOut,
    FeaturedOut,
    ReactOut,
    ReactPayload,
    SubmitOut,
    SubmitPayload,
    SubmittedDoodle,
)
from doodleboard.services.feed import FeedReader
from doodleboard.services.pipeline import SubmissionPipeline
from doodleboard.services.reactions import ReactionLedger
from doodleboard.services.store import SubmissionStore

router = APIRouter(prefix="/api", tags=["doodles"])


@router.get("/doodles", response_model=DoodleListOut)
async def list_doodles(
    page: int = Query(1),
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT),
    sort: str = Query("recent"),
    feed: FeedReader = Depends(get_feed),
):
    """Approved doodles, newest/most popular/featured first. Served from the read cache when possible."""
    return await feed.list_page(page=page, limit=limit, sort=sort)


@router.get("/doodles/featured", response_model=FeaturedOut)
async def featured_doodles(store: SubmissionStore = Depends(get_store)):
    items = await store.get_featured(settings.FEATURED_LIMIT)
    return FeaturedOut(doodles=[DoodleOut.from_model(d) for d in items])


@router.post("/doodles", response_model=SubmitOut)
@limiter.limit(settings.UPLOAD_RATE_LIMIT)
async def submit_doodle(
    request: Request,
    payload: SubmitPayload = Body(...),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
):
    result = await pipeline.submit_data_uri(
        payload.image_data,
        user_name=payload.user_name,
        session_id=payload.session_id,
    )
    d = result.doodle
    return SubmitOut(
        doodle=SubmittedDoodle(
            id=d.id,
            image_url=d.image_url,
            waitlist_rank=d.waitlist_rank,
            moderation_status=d.moderation_status,
        )
    )


@router.post("/doodles/{doodle_id}/react", response_model=ReactOut)
@limiter.limit(settings.REACTION_RATE_LIMIT)
async def react_to_doodle(
    request: Request,
    doodle_id: str,
    payload: ReactPayload = Body(...),
    ledger: ReactionLedger = Depends(get_ledger),
):
    result = await ledger.try_react(doodle_id, payload.reaction or "", client_origin(request))
    return ReactOut(reactions=result.counts)
