"""Scene query capability consumed from the host.

The host (a game client integration) implements :class:`SceneQuery` over
its own scene graph and passes it to :meth:`StarhuntClient.on_tick`.  The
library never walks tiles itself.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from pystarhunt.models.point import WorldPoint


@dataclass(frozen=True)
class ActorSample:
    """One nearby actor as seen on the current tick."""

    actor_id: str
    location: WorldPoint
    animation: int = -1


class SceneQuery(Protocol):
    """What the host can tell us about the world right now."""

    @property
    def world(self) -> int:
        """World the observer is logged into."""
        ...

    @property
    def tick(self) -> int:
        """Monotonic host tick counter."""
        ...

    @property
    def player_location(self) -> WorldPoint | None:
        """The observer's own tile, ``None`` while not logged in."""
        ...

    def to_scene(self, point: WorldPoint) -> tuple[int, int] | None:
        """Scene coordinates of *point*, ``None`` when it is not loaded."""
        ...

    def object_ids_at(self, point: WorldPoint) -> Sequence[int]:
        """Ids of the game objects on the tile."""
        ...

    def npc_ids_at(self, point: WorldPoint) -> Sequence[int]:
        """Ids of the NPCs standing on the tile."""
        ...

    def star_health_at(self, point: WorldPoint) -> int:
        """Health percent of the star on the tile, ``-1`` when not visible."""
        ...

    def actors_near(self, point: WorldPoint, radius: int) -> Sequence[ActorSample]:
        """Player actors within *radius* tiles of *point*."""
        ...
