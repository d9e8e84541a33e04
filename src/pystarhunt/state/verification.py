"""Local verification state machine.

Each locally tracked star moves through::

    UNCONFIRMED -> ACTIVE <-> INACTIVE -> REMOVED

Sightings (spawn events, or a verification pass that finds the star)
activate.  A verification pass that finds nothing on a loaded tile, or
the despawn of the final tier, deactivates.  A star that stays inactive
for the grace period is removed from the local set.

Stars on tiles outside the loaded scene are never re-verified; only the
removal timer applies to them.

Live object handles never enter a :class:`StarRecord`.  What the host
last saw on the tile is kept in an :class:`ObservationBinding`, looked
up by location.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from pystarhunt._constants import INACTIVE_GRACE_MS, SCENE_SIZE, STAR_NPC_ID
from pystarhunt.models._base import now_ms
from pystarhunt.models.point import WorldPoint
from pystarhunt.models.star import StarRecord
from pystarhunt.models.tier import StarTier, tier_from_object_id
from pystarhunt.scene import SceneQuery
from pystarhunt.state.events import Transition, TransitionCause, VerificationState
from pystarhunt.state.policy import is_evictable
from pystarhunt.state.store import ReconciliationStore
from pystarhunt.state.updates import UpdateScheduler

_logger = logging.getLogger(__name__)

#: Health assumed for a freshly spawned tier.
_FRESH_TIER_HEALTH = 100


@dataclass
class ObservationBinding:
    """What the host last saw on a tracked tile."""

    location: WorldPoint
    object_id: int | None = None
    npc_id: int | None = None

    @property
    def is_bound(self) -> bool:
        return self.object_id is not None or self.npc_id is not None


class StarVerifier:
    """Drives local records through the verification states.

    Every transition stamps the record, queues it on the
    :class:`UpdateScheduler` for immediate broadcast and mirrors it into
    the network-merged set.
    """

    def __init__(
        self,
        store: ReconciliationStore,
        updates: UpdateScheduler,
        *,
        clock: Callable[[], int] = now_ms,
        inactive_grace_ms: int = INACTIVE_GRACE_MS,
        despawn_deactivates: bool = False,
        scene_size: int = SCENE_SIZE,
    ) -> None:
        self._store = store
        self._updates = updates
        self._clock = clock
        self._inactive_grace_ms = inactive_grace_ms
        self._despawn_deactivates = despawn_deactivates
        self._scene_size = scene_size
        self._states: dict[WorldPoint, VerificationState] = {}
        self._bindings: dict[WorldPoint, ObservationBinding] = {}

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def state_of(self, point: WorldPoint) -> VerificationState:
        with self._store.local_view() as local:
            return self._state_locked(local.get(point), point)

    def binding(self, point: WorldPoint) -> ObservationBinding | None:
        with self._store.local_view():
            return self._bindings.get(point)

    def _state_locked(self, record: StarRecord | None, point: WorldPoint) -> VerificationState:
        if record is None:
            return VerificationState.REMOVED
        default = VerificationState.ACTIVE if record.active else VerificationState.INACTIVE
        return self._states.get(point, default)

    def _bind_locked(self, point: WorldPoint, *, object_id: int | None = None, npc_id: int | None = None) -> None:
        binding = self._bindings.setdefault(point, ObservationBinding(location=point))
        if object_id is not None:
            binding.object_id = object_id
        if npc_id is not None:
            binding.npc_id = npc_id

    def _expired(self, record: StarRecord, now: int) -> bool:
        return is_evictable(record, now, self._inactive_grace_ms)

    # ------------------------------------------------------------------
    # Raw events
    # ------------------------------------------------------------------

    def adopt(self, record: StarRecord) -> bool:
        """Track a star heard from the network so it gets verified locally."""
        with self._store.local_view() as local:
            if record.location in local:
                return False
            adopted = record.model_copy(deep=True)
            local[adopted.location] = adopted
            self._states[adopted.location] = VerificationState.UNCONFIRMED
        _logger.debug("Adopted network star %s for local verification", record.describe())
        return True

    def observe(
        self,
        record: StarRecord,
        *,
        object_id: int | None = None,
        npc_id: int | None = None,
        now: int | None = None,
    ) -> Transition | None:
        """Handle a sighting of the star described by *record*.

        Creates the local record on first sighting.  Returns the
        transition, or ``None`` when the star was already active at that
        tier (a known health value is still taken over).
        """
        current = self._clock() if now is None else now
        point = record.location
        with self._store.local_view() as local:
            existing = local.get(point)
            if existing is None:
                existing = record.model_copy(deep=True)
                existing.active = True
                existing.last_update = current
                local[point] = existing
                previous = VerificationState.UNCONFIRMED
                tier_changed = existing.tier > 0
            else:
                previous = self._state_locked(existing, point)
                tier_changed = record.tier > 0 and record.tier != existing.tier
                if tier_changed:
                    existing.tier = record.tier
                if record.health >= 0:
                    existing.health = record.health
                existing.active = True
                if previous is VerificationState.ACTIVE and not tier_changed:
                    self._bind_locked(point, object_id=object_id, npc_id=npc_id)
                    return None
                existing.touch(current)

            self._states[point] = VerificationState.ACTIVE
            self._bind_locked(point, object_id=object_id, npc_id=npc_id)
            transition = Transition(
                key=existing.key,
                previous=previous,
                current=VerificationState.ACTIVE,
                cause=TransitionCause.SPAWN,
                timestamp=current,
                tier_changed=tier_changed,
            )
            snapshot = existing.model_copy(deep=True)

        self._dispatch([(transition, snapshot)])
        return transition

    def on_object_spawned(self, world: int, point: WorldPoint, object_id: int, *, now: int | None = None) -> Transition | None:
        tier = tier_from_object_id(object_id)
        if tier is StarTier.UNKNOWN:
            return None
        record = StarRecord(world=world, location=point, tier=int(tier), health=_FRESH_TIER_HEALTH)
        return self.observe(record, object_id=object_id, now=now)

    def on_npc_spawned(self, world: int, point: WorldPoint, npc_id: int, *, now: int | None = None) -> Transition | None:
        if npc_id != STAR_NPC_ID:
            return None
        return self.observe(StarRecord(world=world, location=point), npc_id=npc_id, now=now)

    def on_object_despawned(self, point: WorldPoint, object_id: int, *, now: int | None = None) -> Transition | None:
        """Handle a star object leaving the tile.

        Only the final tier's despawn deactivates at once (unless
        ``despawn_deactivates`` is set); any other despawn is a tier change
        that the following spawn event or verification pass reports.
        """
        tier = tier_from_object_id(object_id)
        if tier is StarTier.UNKNOWN:
            return None
        current = self._clock() if now is None else now
        with self._store.local_view() as local:
            record = local.get(point)
            if record is None:
                return None
            binding = self._bindings.get(point)
            if binding is not None and binding.object_id == object_id:
                binding.object_id = None
            if not (tier.is_final or self._despawn_deactivates) or not record.active:
                return None
            transition = self._deactivate_locked(record, current, TransitionCause.DESPAWN)
            snapshot = record.model_copy(deep=True)

        self._dispatch([(transition, snapshot)])
        return transition

    # ------------------------------------------------------------------
    # Re-verification
    # ------------------------------------------------------------------

    def verify(self, scene: SceneQuery, *, now: int | None = None) -> list[Transition]:
        """Check every tracked tile that is inside the loaded scene."""
        current = self._clock() if now is None else now
        results: list[tuple[Transition, StarRecord]] = []

        with self._store.local_view() as local:
            for point, record in list(local.items()):
                state = self._state_locked(record, point)
                coords = scene.to_scene(point)
                if coords is None or point.plane != self._observer_plane(scene, point):
                    if self._expired(record, current):
                        results.append((self._remove_locked(local, record, state, current), record))
                    continue

                scene_x, scene_y = coords
                if not (0 <= scene_x < self._scene_size and 0 <= scene_y < self._scene_size):
                    # presence unknowable; the removal timer still runs
                    if self._expired(record, current):
                        results.append((self._remove_locked(local, record, state, current), record))
                    continue

                tier = self._tier_at(scene, point)
                npc_present = STAR_NPC_ID in scene.npc_ids_at(point)
                if tier > 0 or npc_present:
                    tier_changed = tier > 0 and tier != record.tier
                    if state is not VerificationState.ACTIVE or tier_changed:
                        if tier_changed:
                            record.tier = tier
                            record.health = _FRESH_TIER_HEALTH
                        record.active = True
                        record.touch(current)
                        self._states[point] = VerificationState.ACTIVE
                        self._bind_locked(
                            point,
                            object_id=StarTier(tier).object_id if tier > 0 else None,
                            npc_id=STAR_NPC_ID if npc_present else None,
                        )
                        _logger.debug("Star %s verified present (tier %s)", record.describe(), tier)
                        transition = Transition(
                            key=record.key,
                            previous=state,
                            current=VerificationState.ACTIVE,
                            cause=TransitionCause.VERIFICATION,
                            timestamp=current,
                            tier_changed=tier_changed,
                        )
                        results.append((transition, record.model_copy(deep=True)))
                elif state is not VerificationState.INACTIVE:
                    _logger.debug("Star %s no longer exists - marking inactive", record.describe())
                    transition = self._deactivate_locked(record, current, TransitionCause.VERIFICATION)
                    results.append((transition, record.model_copy(deep=True)))
                elif self._expired(record, current):
                    results.append((self._remove_locked(local, record, state, current), record))

        self._dispatch(results)
        return [transition for transition, _ in results]

    @staticmethod
    def _observer_plane(scene: SceneQuery, point: WorldPoint) -> int:
        location = scene.player_location
        return point.plane if location is None else location.plane

    @staticmethod
    def _tier_at(scene: SceneQuery, point: WorldPoint) -> int:
        for object_id in scene.object_ids_at(point):
            tier = tier_from_object_id(object_id)
            if tier is not StarTier.UNKNOWN:
                return int(tier)
        return -1

    def _deactivate_locked(self, record: StarRecord, now: int, cause: TransitionCause) -> Transition:
        previous = self._state_locked(record, record.location)
        record.active = False
        record.touch(now)
        self._states[record.location] = VerificationState.INACTIVE
        self._bindings.pop(record.location, None)
        return Transition(
            key=record.key,
            previous=previous,
            current=VerificationState.INACTIVE,
            cause=cause,
            timestamp=now,
        )

    def _remove_locked(
        self,
        local: dict[WorldPoint, StarRecord],
        record: StarRecord,
        state: VerificationState,
        now: int,
    ) -> Transition:
        local.pop(record.location, None)
        self._states.pop(record.location, None)
        self._bindings.pop(record.location, None)
        _logger.debug("Removing local star %s after inactivity", record.describe())
        return Transition(
            key=record.key,
            previous=state,
            current=VerificationState.REMOVED,
            cause=TransitionCause.EXPIRY,
            timestamp=now,
        )

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _dispatch(self, results: list[tuple[Transition, StarRecord]]) -> None:
        for transition, record in results:
            if transition.removed:
                self._updates.forget(transition.key)
                continue
            self._updates.queue_immediate(transition.key)
            if transition.activated:
                self._store.merge_local_into_network(record)
            elif transition.deactivated:
                self._store.apply_local_verdict(transition.key, transition.timestamp)

    def clear(self) -> None:
        """Forget every local record (world hop, logout)."""
        with self._store.local_view() as local:
            local.clear()
            self._states.clear()
            self._bindings.clear()
