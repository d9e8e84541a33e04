"""Named star landing sites."""

from __future__ import annotations

import enum

from pystarhunt.models.point import WorldPoint


class StarLocation(enum.Enum):
    CRAFTING_GUILD = ("Crafting Guild", 2940, 3280)
    RIMMINGTON_MINE = ("Rimmington Mine", 2974, 3240)
    LUMBRIDGE_SWAMP = ("Lumbridge Swamp", 3228, 3186)
    DRAYNOR_VILLAGE_BANK = ("Draynor Village Bank", 3092, 3243)
    VARROCK_EAST_MINE = ("Varrock East Mine", 3290, 3369)
    BARBARIAN_VILLAGE = ("Barbarian Village", 3082, 3420)
    EDGEVILLE_MONASTERY = ("Edgeville Monastery", 3052, 3497)
    COOKS_GUILD = ("Cooks' Guild", 3145, 3442)
    GRAND_EXCHANGE = ("Grand Exchange", 3164, 3489)
    FALADOR_PARK = ("Falador Park", 2999, 3376)
    DWARVEN_MINE = ("Dwarven Mine", 3019, 3450)
    WILDERNESS_RUNITE_ROCKS = ("Wilderness Runite Rocks", 3061, 3884)
    SOUTHERN_WILDERNESS = ("Southern Wilderness", 3024, 3595)
    PORT_KHAZARD = ("Port Khazard", 2650, 3166)
    YANILLE_BANK = ("Yanille Bank", 2602, 3093)
    AL_KHARID_MINE = ("Al Kharid Mine", 3295, 3300)
    CORSAIR_COVE = ("Corsair Cove", 2483, 2890)

    def __init__(self, display_name: str, x: int, y: int) -> None:
        self.display_name = display_name
        self.point = WorldPoint(x=x, y=y, plane=0)

    def __str__(self) -> str:
        return self.display_name


def closest_location(point: WorldPoint) -> StarLocation:
    """Return the landing site nearest to *point* (2-D distance)."""
    return min(StarLocation, key=lambda loc: loc.point.distance_to_2d(point))
