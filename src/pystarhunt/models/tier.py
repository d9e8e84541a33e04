"""Star tier catalogue.

A star shrinks one tier at a time as it is mined: tier 9 is the largest
and tier 1 the final layer.  Each tier is a distinct world object.
"""

from __future__ import annotations

from pystarhunt.models._base import StarhuntEnum

_OBJECT_IDS: dict[int, int] = {
    1: 41229,
    2: 41228,
    3: 41227,
    4: 41226,
    5: 41225,
    6: 41224,
    7: 41223,
    8: 41021,
    9: 41020,
}
_TIER_BY_OBJECT_ID: dict[int, int] = {object_id: tier for tier, object_id in _OBJECT_IDS.items()}


class StarTier(StarhuntEnum):
    UNKNOWN = -1
    TIER_1 = 1
    TIER_2 = 2
    TIER_3 = 3
    TIER_4 = 4
    TIER_5 = 5
    TIER_6 = 6
    TIER_7 = 7
    TIER_8 = 8
    TIER_9 = 9

    @property
    def object_id(self) -> int | None:
        """World object id for this tier, ``None`` for ``UNKNOWN``."""
        return _OBJECT_IDS.get(int(self))

    @property
    def label(self) -> str:
        if self is StarTier.UNKNOWN:
            return "Unknown size"
        return f"Size {int(self)}"

    @property
    def is_final(self) -> bool:
        """Whether depleting this tier removes the star entirely."""
        return self is StarTier.TIER_1


def tier_from_object_id(object_id: int) -> StarTier:
    """Map a world object id to its tier (``UNKNOWN`` for non-star objects)."""
    return StarTier(_TIER_BY_OBJECT_ID.get(object_id, -1))


def is_star_object(object_id: int) -> bool:
    return object_id in _TIER_BY_OBJECT_ID
