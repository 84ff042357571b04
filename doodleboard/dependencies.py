from fastapi import HTTPException, Request

from doodleboard.services.feed import FeedReader
from doodleboard.services.live import LiveUpdateHub
from doodleboard.services.pipeline import SubmissionPipeline
from doodleboard.services.reactions import ReactionLedger
from doodleboard.services.store import SubmissionStore


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail=f"{name} unavailable")
    return value


def get_store(request: Request) -> SubmissionStore:
    return _state(request, "store")


def get_feed(request: Request) -> FeedReader:
    return _state(request, "feed")


def get_pipeline(request: Request) -> SubmissionPipeline:
    return _state(request, "pipeline")


def get_ledger(request: Request) -> ReactionLedger:
    return _state(request, "ledger")


def get_hub(request: Request) -> LiveUpdateHub:
    return _state(request, "hub")
