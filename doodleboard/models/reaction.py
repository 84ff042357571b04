from tortoise import fields

from .base import BaseModel


class Reaction(BaseModel):
    doodle = fields.ForeignKeyField("models.Doodle", related_name="reactions", on_delete=fields.CASCADE)
    reaction_type = fields.CharField(max_length=20)
    ip_address = fields.CharField(max_length=64)

    class Meta:
        table = "reactions"
        unique_together = ("doodle", "ip_address", "reaction_type")
