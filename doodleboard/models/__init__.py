# Import all models for Tortoise ORM registration
from .base import BaseModel
from .doodle import Doodle, FingerprintClaim, Sequence, REACTION_KINDS, APPROVED, PENDING
from .reaction import Reaction

__all__ = [
    "BaseModel",
    "Doodle",
    "FingerprintClaim",
    "Sequence",
    "Reaction",
    "REACTION_KINDS",
    "APPROVED",
    "PENDING",
]
