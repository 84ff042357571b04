from tortoise import fields
from tortoise.models import Model

from .base import BaseModel

REACTION_KINDS = ("like", "love", "fire", "laugh")

APPROVED = "approved"
PENDING = "pending"

WAITLIST_SEQUENCE = "waitlist"


class Doodle(BaseModel):
    image_url = fields.CharField(max_length=1024)
    image_fingerprint = fields.CharField(max_length=32, index=True)
    user_name = fields.CharField(max_length=50, default="Anonymous")
    session_id = fields.CharField(max_length=64)
    waitlist_rank = fields.IntField()
    like_count = fields.IntField(default=0)
    love_count = fields.IntField(default=0)
    fire_count = fields.IntField(default=0)
    laugh_count = fields.IntField(default=0)
    reaction_total = fields.IntField(default=0, index=True)
    featured = fields.BooleanField(default=False, index=True)
    moderation_status = fields.CharField(max_length=20, default=PENDING, index=True)
    updated_at = fields.DatetimeField(auto_now_add=True)

    reactions: fields.ReverseRelation["Reaction"]  # noqa: F821

    @property
    def reaction_counts(self) -> dict:
        return {kind: getattr(self, f"{kind}_count") for kind in REACTION_KINDS}

    @property
    def is_approved(self) -> bool:
        return self.moderation_status == APPROVED

    class Meta:
        table = "doodles"


class FingerprintClaim(Model):
    """Storage-level guard for the duplicate window.

    A row exists while a fingerprint is "taken"; inserting a second row for the
    same fingerprint fails on the unique index.
    """

    id = fields.IntField(primary_key=True)
    fingerprint = fields.CharField(max_length=32, unique=True)
    doodle = fields.ForeignKeyField("models.Doodle", related_name="claims", on_delete=fields.CASCADE)
    claimed_at = fields.DatetimeField()

    class Meta:
        table = "fingerprint_claims"


class Sequence(Model):
    name = fields.CharField(max_length=32, primary_key=True)
    value = fields.BigIntField(default=0)

    class Meta:
        table = "sequences"
