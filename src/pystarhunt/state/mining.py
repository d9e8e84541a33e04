"""Mining presence estimation.

Counts actors mining a star from animation samples.  An actor between
two pickaxe swings shows no mining animation for a few ticks, so every
actor seen mining is remembered with the tick it was last active and
keeps counting for a short window afterwards.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence

from pystarhunt._constants import (
    MINING_ACTIVITY_WINDOW_TICKS,
    MINING_ANIMATION_IDS,
    MINING_PROXIMITY_RADIUS,
    UNKNOWN_MINERS,
)
from pystarhunt.models.point import WorldPoint
from pystarhunt.models.star import StarRecord
from pystarhunt.scene import ActorSample


def in_footprint(star: WorldPoint, point: WorldPoint) -> bool:
    """Whether *point* is on or next to the 2x2 star anchored at *star*."""
    return (
        point.plane == star.plane
        and star.x - 1 <= point.x <= star.x + 2
        and star.y - 1 <= point.y <= star.y + 2
    )


class MiningPresenceEstimator:
    """Estimate how many actors are mining a star.

    The per-actor activity table belongs to the instance; share the
    instance (not a global) between callers that need the same window.
    """

    def __init__(
        self,
        *,
        animation_ids: Collection[int] = MINING_ANIMATION_IDS,
        window_ticks: int = MINING_ACTIVITY_WINDOW_TICKS,
        proximity_radius: int = MINING_PROXIMITY_RADIUS,
    ) -> None:
        self._animation_ids = frozenset(animation_ids)
        self._window_ticks = window_ticks
        self._proximity_radius = proximity_radius
        self.last_active: dict[str, int] = {}

    def is_mining(self, actor: ActorSample, tick: int) -> bool:
        """Update the activity table for *actor* and report whether it counts."""
        if actor.animation in self._animation_ids:
            self.last_active[actor.actor_id] = tick
            return True
        last = self.last_active.get(actor.actor_id)
        return last is not None and tick - last < self._window_ticks

    def estimate(
        self,
        record: StarRecord,
        *,
        observer_world: int,
        observer_location: WorldPoint | None,
        actors: Sequence[ActorSample],
        tick: int,
    ) -> str:
        """Return the miner count as text, or ``"unknown"`` when not eligible."""
        if not record.active or observer_world != record.world or observer_location is None:
            return UNKNOWN_MINERS
        if not observer_location.is_within(record.location, self._proximity_radius):
            return UNKNOWN_MINERS

        count = 0
        for actor in actors:
            if in_footprint(record.location, actor.location) and self.is_mining(actor, tick):
                count += 1
        return str(count)

    @property
    def proximity_radius(self) -> int:
        return self._proximity_radius
