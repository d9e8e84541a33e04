"""Deterministic star merge policy.

This module intentionally contains *no* payload parsing.  The wire
boundary (:mod:`pystarhunt.ingestion.wire`) produces normalized records;
this module only decides how two records for the same key combine.
"""

from __future__ import annotations

from pystarhunt.models.star import StarRecord


def merge_record(existing: StarRecord, incoming: StarRecord) -> bool:
    """Merge *incoming* into *existing* in place.

    Policy:
    - a known tier overwrites; a tier change re-activates the star
    - known health and miner counts overwrite, unknown ones never do
    - ``active=True`` is sticky: a peer can activate but never deactivate
    - the timestamp only moves forward
    - a non-empty ``discovered_by`` overwrites (last writer wins)

    Returns ``True`` when any field of *existing* changed.
    """
    if existing.key != incoming.key:
        raise ValueError(f"Cannot merge {incoming.unique_key} into {existing.unique_key}")

    before = (
        existing.tier,
        existing.health,
        existing.miners,
        existing.active,
        existing.last_update,
        existing.discovered_by,
    )

    if incoming.tier > 0:
        if incoming.tier != existing.tier:
            existing.active = True
        existing.tier = incoming.tier
    if incoming.health >= 0:
        existing.health = incoming.health
    if incoming.has_known_miners:
        existing.miners = incoming.miners
    if incoming.active:
        existing.active = True
    existing.touch(incoming.last_update)
    if incoming.discovered_by:
        existing.discovered_by = incoming.discovered_by

    after = (
        existing.tier,
        existing.health,
        existing.miners,
        existing.active,
        existing.last_update,
        existing.discovered_by,
    )
    return after != before


def is_evictable(record: StarRecord, now: int, grace_ms: int) -> bool:
    """Whether *record* has been inactive for at least *grace_ms*."""
    return not record.active and record.age_ms(now) >= grace_ms
