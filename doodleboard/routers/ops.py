from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from doodleboard.dependencies import get_hub, get_store
from doodleboard.schemas.doodle import HealthOut, StatsOut
from doodleboard.services.live import LiveUpdateHub
from doodleboard.services.metrics import metrics_endpoint
from doodleboard.services.store import SubmissionStore

router = APIRouter(tags=["ops"])


@router.get("/health", response_model=HealthOut)
async def health(hub: LiveUpdateHub = Depends(get_hub)):
    return HealthOut(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        live_connection_count=hub.count,
    )


@router.get("/api/stats", response_model=StatsOut)
async def stats(store: SubmissionStore = Depends(get_store), hub: LiveUpdateHub = Depends(get_hub)):
    s = await store.aggregate_stats()
    return StatsOut(
        total_doodles=s.total_approved,
        unique_artists=s.distinct_origin_sessions,
        total_reactions=s.total_reactions,
        active_connections=hub.count,
    )


@router.get("/metrics", include_in_schema=False)
async def prometheus_metrics():
    return await metrics_endpoint()
