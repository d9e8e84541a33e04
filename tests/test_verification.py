from __future__ import annotations

import pytest
from conftest import STAR_POINT, FakeScene, make_record

from pystarhunt._constants import STAR_NPC_ID
from pystarhunt.models.point import WorldPoint
from pystarhunt.models.tier import StarTier
from pystarhunt.state.events import TransitionCause, VerificationState
from pystarhunt.state.store import ReconciliationStore
from pystarhunt.state.updates import UpdateScheduler
from pystarhunt.state.verification import StarVerifier


class _Clock:
    def __init__(self, now: int = 1_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def store(clock: _Clock) -> ReconciliationStore:
    return ReconciliationStore(clock=clock)


@pytest.fixture
def updates() -> UpdateScheduler:
    return UpdateScheduler(10_000)


@pytest.fixture
def verifier(store: ReconciliationStore, updates: UpdateScheduler, clock: _Clock) -> StarVerifier:
    return StarVerifier(store, updates, clock=clock)


def _spawn(verifier: StarVerifier, tier: StarTier = StarTier.TIER_5, point: WorldPoint = STAR_POINT) -> None:
    assert tier.object_id is not None
    verifier.on_object_spawned(302, point, tier.object_id)


def test_object_spawn_activates_and_mirrors(
    verifier: StarVerifier, store: ReconciliationStore, updates: UpdateScheduler
) -> None:
    transition = verifier.on_object_spawned(302, STAR_POINT, StarTier.TIER_5.object_id or 0)

    assert transition is not None
    assert transition.previous is VerificationState.UNCONFIRMED
    assert transition.current is VerificationState.ACTIVE
    assert transition.cause is TransitionCause.SPAWN
    assert verifier.state_of(STAR_POINT) is VerificationState.ACTIVE

    local = store.local_record(STAR_POINT)
    assert local is not None
    assert (local.tier, local.health, local.active) == (5, 100, True)
    assert store.find(302, STAR_POINT) is not None
    assert updates.drain_immediate(1_000) == [local.key]

    binding = verifier.binding(STAR_POINT)
    assert binding is not None
    assert binding.object_id == StarTier.TIER_5.object_id


def test_non_star_object_is_ignored(verifier: StarVerifier, store: ReconciliationStore) -> None:
    assert verifier.on_object_spawned(302, STAR_POINT, 1234) is None
    assert store.local_records() == []


def test_npc_spawn_tracks_unknown_tier_but_does_not_publish(
    verifier: StarVerifier, store: ReconciliationStore
) -> None:
    transition = verifier.on_npc_spawned(302, STAR_POINT, STAR_NPC_ID)

    assert transition is not None
    local = store.local_record(STAR_POINT)
    assert local is not None
    assert local.tier == -1
    assert len(store) == 0


def test_respawn_at_same_tier_is_not_a_transition(verifier: StarVerifier, updates: UpdateScheduler) -> None:
    _spawn(verifier)
    updates.drain_immediate(1_000)

    assert verifier.on_object_spawned(302, STAR_POINT, StarTier.TIER_5.object_id or 0) is None
    assert updates.drain_immediate(1_001) == []


def test_tier_change_is_a_transition(
    verifier: StarVerifier, store: ReconciliationStore, clock: _Clock
) -> None:
    _spawn(verifier, StarTier.TIER_5)
    clock.now = 2_000
    transition = verifier.on_object_spawned(302, STAR_POINT, StarTier.TIER_4.object_id or 0)

    assert transition is not None
    assert transition.tier_changed
    assert store.find(302, STAR_POINT).tier == 4  # type: ignore[union-attr]
    assert store.local_record(STAR_POINT).last_update == 2_000  # type: ignore[union-attr]


def test_final_tier_despawn_deactivates(
    verifier: StarVerifier, store: ReconciliationStore, clock: _Clock
) -> None:
    _spawn(verifier, StarTier.TIER_1)
    clock.now = 5_000

    transition = verifier.on_object_despawned(STAR_POINT, StarTier.TIER_1.object_id or 0)

    assert transition is not None
    assert transition.cause is TransitionCause.DESPAWN
    assert verifier.state_of(STAR_POINT) is VerificationState.INACTIVE
    merged = store.find(302, STAR_POINT)
    assert merged is not None
    assert merged.active is False
    assert merged.last_update == 5_000


def test_higher_tier_despawn_waits_for_verification(verifier: StarVerifier) -> None:
    _spawn(verifier, StarTier.TIER_3)

    assert verifier.on_object_despawned(STAR_POINT, StarTier.TIER_3.object_id or 0) is None
    assert verifier.state_of(STAR_POINT) is VerificationState.ACTIVE


def test_despawn_deactivates_policy(store: ReconciliationStore, updates: UpdateScheduler, clock: _Clock) -> None:
    verifier = StarVerifier(store, updates, clock=clock, despawn_deactivates=True)
    _spawn(verifier, StarTier.TIER_3)

    transition = verifier.on_object_despawned(STAR_POINT, StarTier.TIER_3.object_id or 0)

    assert transition is not None
    assert transition.deactivated


def test_verify_deactivates_missing_star(
    verifier: StarVerifier, store: ReconciliationStore, scene: FakeScene, clock: _Clock
) -> None:
    _spawn(verifier)
    clock.now = 3_000

    transitions = verifier.verify(scene)

    assert [t.cause for t in transitions] == [TransitionCause.VERIFICATION]
    assert transitions[0].deactivated
    assert store.find(302, STAR_POINT).active is False  # type: ignore[union-attr]


def test_verify_confirms_present_star_without_transition(verifier: StarVerifier, scene: FakeScene) -> None:
    _spawn(verifier)
    scene.objects[STAR_POINT] = [StarTier.TIER_5.object_id or 0]

    assert verifier.verify(scene) == []


def test_verify_picks_up_tier_change(
    verifier: StarVerifier, store: ReconciliationStore, scene: FakeScene
) -> None:
    _spawn(verifier, StarTier.TIER_5)
    scene.objects[STAR_POINT] = [StarTier.TIER_4.object_id or 0]

    transitions = verifier.verify(scene)

    assert len(transitions) == 1
    assert transitions[0].tier_changed
    assert store.local_record(STAR_POINT).tier == 4  # type: ignore[union-attr]


def test_inactive_star_reactivates_when_seen_again(verifier: StarVerifier, scene: FakeScene) -> None:
    _spawn(verifier)
    verifier.verify(scene)
    scene.npcs[STAR_POINT] = [STAR_NPC_ID]

    transitions = verifier.verify(scene)

    assert len(transitions) == 1
    assert transitions[0].previous is VerificationState.INACTIVE
    assert transitions[0].activated


def test_unconfirmed_adopted_star_can_go_inactive(
    verifier: StarVerifier, store: ReconciliationStore, scene: FakeScene
) -> None:
    store.ingest(make_record())
    assert verifier.adopt(make_record()) is True
    assert verifier.adopt(make_record()) is False
    assert verifier.state_of(STAR_POINT) is VerificationState.UNCONFIRMED

    transitions = verifier.verify(scene)

    assert transitions[0].previous is VerificationState.UNCONFIRMED
    assert transitions[0].current is VerificationState.INACTIVE
    assert store.find(302, STAR_POINT).active is False  # type: ignore[union-attr]


def test_inactive_star_removed_after_grace(
    verifier: StarVerifier, store: ReconciliationStore, scene: FakeScene, clock: _Clock
) -> None:
    _spawn(verifier)
    clock.now = 10_000
    verifier.verify(scene)

    clock.now = 10_000 + 59_000
    assert verifier.verify(scene) == []
    assert store.local_record(STAR_POINT) is not None

    clock.now = 10_000 + 61_000
    transitions = verifier.verify(scene)
    assert [t.current for t in transitions] == [VerificationState.REMOVED]
    assert store.local_record(STAR_POINT) is None
    assert verifier.state_of(STAR_POINT) is VerificationState.REMOVED

    # the merged record follows the same rule through the store sweep
    assert store.sweep(now=10_000 + 59_000) == []
    assert len(store.sweep(now=10_000 + 61_000)) == 1


def test_out_of_view_active_star_is_left_alone(
    verifier: StarVerifier, scene: FakeScene, clock: _Clock
) -> None:
    _spawn(verifier)
    scene.loaded = False
    clock.now = 10**7

    assert verifier.verify(scene) == []
    assert verifier.state_of(STAR_POINT) is VerificationState.ACTIVE


def test_out_of_view_inactive_star_still_expires(
    verifier: StarVerifier, store: ReconciliationStore, scene: FakeScene, clock: _Clock
) -> None:
    _spawn(verifier)
    verifier.verify(scene)
    scene.loaded = False
    clock.now = 1_000 + 60_000

    transitions = verifier.verify(scene)

    assert [t.current for t in transitions] == [VerificationState.REMOVED]
    assert store.local_records() == []


def test_scene_coordinates_out_of_range_skip_the_record(verifier: StarVerifier, scene: FakeScene) -> None:
    far = WorldPoint(x=scene.base_x + 104, y=scene.base_y)
    _spawn(verifier, point=far)

    assert verifier.verify(scene) == []
    assert verifier.state_of(far) is VerificationState.ACTIVE


def test_inactive_star_outside_scene_bounds_still_expires(
    verifier: StarVerifier, store: ReconciliationStore, scene: FakeScene, clock: _Clock
) -> None:
    _spawn(verifier)
    verifier.verify(scene)
    assert verifier.state_of(STAR_POINT) is VerificationState.INACTIVE

    scene.base_x = STAR_POINT.x + 1
    clock.now = 1_000 + 59_000
    assert verifier.verify(scene) == []

    clock.now = 1_000 + 120_000
    transitions = verifier.verify(scene)

    assert [t.current for t in transitions] == [VerificationState.REMOVED]
    assert store.local_records() == []


def test_clear_forgets_everything(verifier: StarVerifier, store: ReconciliationStore) -> None:
    _spawn(verifier)
    verifier.clear()

    assert store.local_records() == []
    assert verifier.binding(STAR_POINT) is None
