from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DoodleOut(CamelModel):
    id: UUID
    image_url: str
    user_name: str
    waitlist_rank: int
    reactions: Dict[str, int]
    featured: bool = False
    moderation_status: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, m) -> "DoodleOut":
        return cls(
            id=m.id,
            image_url=m.image_url,
            user_name=m.user_name,
            waitlist_rank=m.waitlist_rank,
            reactions=m.reaction_counts,
            featured=m.featured,
            moderation_status=m.moderation_status,
            created_at=m.created_at,
        )


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int
    has_more: bool


class DoodleListOut(CamelModel):
    doodles: List[DoodleOut]
    pagination: Pagination


class FeaturedOut(CamelModel):
    doodles: List[DoodleOut]


class SubmitPayload(CamelModel):
    image_data: Optional[str] = None
    user_name: Optional[str] = None
    session_id: Optional[str] = Field(default=None, max_length=64)


class SubmittedDoodle(CamelModel):
    id: UUID
    image_url: str
    waitlist_rank: int
    moderation_status: str


class SubmitOut(CamelModel):
    success: bool = True
    doodle: SubmittedDoodle


class ReactPayload(CamelModel):
    reaction: Optional[str] = None


class ReactOut(CamelModel):
    success: bool = True
    reactions: Dict[str, int]


class StatsOut(CamelModel):
    total_doodles: int
    unique_artists: int
    total_reactions: int
    active_connections: int


class HealthOut(CamelModel):
    status: str
    timestamp: datetime
    live_connection_count: int
