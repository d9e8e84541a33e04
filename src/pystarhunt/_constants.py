"""Internal constants shared across the library."""

USER_AGENT = "pystarhunt"

# ------------------------------------------------------------------
# World / scene
# ------------------------------------------------------------------

#: Width and height, in tiles, of the loaded scene around the observer.
SCENE_SIZE = 104

#: NPC that stands in for a star while it is landing.
STAR_NPC_ID = 10629

# ------------------------------------------------------------------
# Record sentinels
# ------------------------------------------------------------------

UNKNOWN_TIER = -1
UNKNOWN_HEALTH = -1
UNKNOWN_MINERS = "unknown"

# ------------------------------------------------------------------
# Mining presence
# ------------------------------------------------------------------

#: Observer must be within this many tiles of a star to count miners.
MINING_PROXIMITY_RADIUS = 15

#: Ticks an actor keeps counting after its last mining animation.
MINING_ACTIVITY_WINDOW_TICKS = 13

#: Pickaxe swing animations (bronze through crystal, including the
#: ornamented and trailblazer variants).
MINING_ANIMATION_IDS: frozenset[int] = frozenset(
    {
        624,
        625,
        626,
        627,
        628,
        629,
        642,
        3873,
        4481,
        4482,
        6752,
        6753,
        7139,
        7283,
        8312,
        8313,
        8329,
        8346,
        8347,
        8887,
    }
)

# ------------------------------------------------------------------
# Timing
# ------------------------------------------------------------------

#: A record that stays inactive this long is evicted.
INACTIVE_GRACE_MS = 60_000

UPDATE_JITTER_MIN = 0.8
UPDATE_JITTER_MAX = 1.2
