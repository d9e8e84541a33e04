"""Star record model.

A :class:`StarRecord` is the unit that is tracked locally, broadcast to
peers and merged into the shared view.  Its wire form is::

    {"world": 350, "location": {"x": 3000, "y": 3000, "plane": 0},
     "tier": 3, "health": 80, "miners": "4", "active": true,
     "lastUpdate": 1767225600000, "discoveredBy": "someone"}
"""

from __future__ import annotations

from typing import Any, NamedTuple

from pydantic import Field, field_validator

from pystarhunt._constants import UNKNOWN_HEALTH, UNKNOWN_MINERS, UNKNOWN_TIER
from pystarhunt.ingestion.normalize import safe_int, safe_str
from pystarhunt.models._base import StarhuntBaseModel, now_ms
from pystarhunt.models.location import StarLocation, closest_location
from pystarhunt.models.point import WorldPoint
from pystarhunt.models.tier import StarTier


class StarKey(NamedTuple):
    """Unique identity of a star: world plus tile."""

    world: int
    x: int
    y: int
    plane: int

    @classmethod
    def of(cls, world: int, point: WorldPoint) -> StarKey:
        return cls(world, point.x, point.y, point.plane)

    @property
    def point(self) -> WorldPoint:
        return WorldPoint(x=self.x, y=self.y, plane=self.plane)

    def __str__(self) -> str:
        return f"{self.world}:{self.x}:{self.y}:{self.plane}"


class StarRecord(StarhuntBaseModel):
    """Observed state of one star.

    ``world`` and ``location`` form the identity and are not changed after
    construction.  Everything else is updated by the merge rule
    (:func:`pystarhunt.state.policy.merge_record`) or by local verification.
    """

    world: int
    location: WorldPoint
    tier: int = UNKNOWN_TIER
    """1 (final layer) to 9 (largest), ``-1`` when unknown."""
    health: int = UNKNOWN_HEALTH
    """Remaining health of the current tier in percent, ``-1`` when unknown."""
    miners: str = UNKNOWN_MINERS
    """Estimated number of miners as text, or ``"unknown"``."""
    active: bool = True
    last_update: int = Field(default_factory=now_ms)
    """Epoch milliseconds of the last change."""
    discovered_by: str | None = None

    @field_validator("tier", mode="before")
    @classmethod
    def _normalize_tier(cls, value: Any) -> int:
        tier = safe_int(value)
        if tier is None or not 1 <= tier <= 9:
            return UNKNOWN_TIER
        return tier

    @field_validator("health", mode="before")
    @classmethod
    def _normalize_health(cls, value: Any) -> int:
        health = safe_int(value)
        if health is None or health < 0:
            return UNKNOWN_HEALTH
        return min(health, 100)

    @field_validator("miners", mode="before")
    @classmethod
    def _normalize_miners(cls, value: Any) -> str:
        text = safe_str(value)
        if text is None or not text.strip():
            return UNKNOWN_MINERS
        return text.strip()

    @field_validator("discovered_by", mode="before")
    @classmethod
    def _normalize_discovered_by(cls, value: Any) -> str | None:
        text = safe_str(value)
        if text is None:
            return None
        return text.strip() or None

    @property
    def key(self) -> StarKey:
        return StarKey.of(self.world, self.location)

    @property
    def unique_key(self) -> str:
        """``"world:x:y:plane"`` string form of :attr:`key`."""
        return str(self.key)

    @property
    def star_tier(self) -> StarTier:
        return StarTier(self.tier)

    @property
    def location_name(self) -> StarLocation:
        return closest_location(self.location)

    @property
    def has_known_miners(self) -> bool:
        return self.miners != UNKNOWN_MINERS

    def age_ms(self, now: int | None = None) -> int:
        """Milliseconds since :attr:`last_update`."""
        return (now_ms() if now is None else now) - self.last_update

    def touch(self, timestamp: int) -> None:
        """Advance :attr:`last_update`; never moves it backwards."""
        self.last_update = max(self.last_update, timestamp)

    def describe(self) -> str:
        return f"W{self.world} {self.star_tier.label} at {self.location_name} {self.location}"
