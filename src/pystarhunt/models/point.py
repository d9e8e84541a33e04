"""World coordinates."""

from __future__ import annotations

import math

from pydantic import ConfigDict

from pystarhunt.models._base import StarhuntBaseModel


class WorldPoint(StarhuntBaseModel):
    """An absolute tile position.

    Serialised as ``{"x": .., "y": .., "plane": ..}``.  Hashable so it can
    key the locally-observed set.
    """

    model_config = ConfigDict(frozen=True)

    x: int
    y: int
    plane: int = 0

    def distance_to(self, other: WorldPoint) -> float:
        """Chebyshev distance in tiles; infinite across planes."""
        if self.plane != other.plane:
            return math.inf
        return max(abs(self.x - other.x), abs(self.y - other.y))

    def distance_to_2d(self, other: WorldPoint) -> int:
        """Chebyshev distance in tiles, ignoring the plane."""
        return max(abs(self.x - other.x), abs(self.y - other.y))

    def is_within(self, other: WorldPoint, radius: float) -> bool:
        return self.distance_to(other) <= radius

    def __str__(self) -> str:
        return f"({self.x}, {self.y}, {self.plane})"
