"""Data models for star records and their catalogues."""

from pystarhunt.models._base import StarhuntBaseModel, StarhuntEnum, now_ms
from pystarhunt.models.location import StarLocation, closest_location
from pystarhunt.models.point import WorldPoint
from pystarhunt.models.star import StarKey, StarRecord
from pystarhunt.models.tier import StarTier, is_star_object, tier_from_object_id

__all__ = [
    "StarKey",
    "StarLocation",
    "StarRecord",
    "StarTier",
    "StarhuntBaseModel",
    "StarhuntEnum",
    "WorldPoint",
    "closest_location",
    "is_star_object",
    "now_ms",
    "tier_from_object_id",
]
