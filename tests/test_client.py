from __future__ import annotations

import json
import random
from typing import Any

import pytest
from conftest import STAR_POINT, FakeConnector, FakeScene, ManualScheduler, make_record, settle

from pystarhunt import StarhuntClient, StarhuntConfig
from pystarhunt.exceptions import StarhuntError
from pystarhunt.models.star import StarRecord
from pystarhunt.models.tier import StarTier
from pystarhunt.state.events import VerificationState

_TIER_5 = StarTier.TIER_5.object_id or 0


class _Clock:
    def __init__(self, now: int = 10_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class _FixedRandom(random.Random):
    def uniform(self, a: float, b: float) -> float:
        return 1.0


def _client(
    scheduler: ManualScheduler,
    connector: FakeConnector,
    clock: _Clock,
    **config: Any,
) -> StarhuntClient:
    values: dict[str, Any] = {"websocket_url": "ws://stars.test/ws"}
    values.update(config)
    return StarhuntClient(
        StarhuntConfig(**values),
        scheduler=scheduler,
        connector=connector,
        clock=clock,
        rng=_FixedRandom(),
    )


def _sent(connector: FakeConnector, index: int = -1) -> list[dict[str, Any]]:
    return [json.loads(text)["data"] for text in connector.connections[index].sent]


def test_ingest_announces_new_stars_and_adopts_on_current_world() -> None:
    discovered: list[StarRecord] = []
    client = StarhuntClient(StarhuntConfig(), on_star_discovered=discovered.append)
    client.on_world_changed(302)

    assert client.ingest(make_record()) is True
    assert client.ingest(make_record(health=40)) is False
    client.ingest(make_record(world=303))

    assert [r.world for r in discovered] == [302, 303]
    assert client.verifier.state_of(STAR_POINT) is VerificationState.UNCONFIRMED
    assert len(client.network_records()) == 2


def test_notifications_can_be_disabled() -> None:
    discovered: list[StarRecord] = []
    client = StarhuntClient(StarhuntConfig(show_notifications=False), on_star_discovered=discovered.append)

    client.ingest(make_record())
    client.ingest(make_record(world=1, tier=-1))

    assert discovered == []


@pytest.mark.asyncio
async def test_session_operations_require_entering() -> None:
    client = StarhuntClient(StarhuntConfig())

    with pytest.raises(StarhuntError):
        client.connect()
    with pytest.raises(StarhuntError):
        await client.fetch_legacy_stars()


@pytest.mark.asyncio
async def test_spawn_is_published_on_next_tick(scheduler: ManualScheduler, scene: FakeScene) -> None:
    connector, clock = FakeConnector(), _Clock()
    async with _client(scheduler, connector, clock, share_username=True, observer_name="Zezima") as client:
        await settle()
        assert client.is_connected

        client.on_world_changed(302)
        client.on_object_spawned(_TIER_5, STAR_POINT)
        scene.objects[STAR_POINT] = [_TIER_5]
        assert client.on_tick(scene) == []
        await settle()

        [payload] = _sent(connector)
        assert payload["tier"] == 5
        assert payload["miners"] == "0"
        assert payload["discoveredBy"] == "Zezima"
        assert payload["lastUpdate"] == 10_000


@pytest.mark.asyncio
async def test_routine_updates_wait_for_the_interval(scheduler: ManualScheduler, scene: FakeScene) -> None:
    connector, clock = FakeConnector(), _Clock()
    async with _client(scheduler, connector, clock) as client:
        await settle()
        client.on_world_changed(302)
        client.on_object_spawned(_TIER_5, STAR_POINT)
        scene.objects[STAR_POINT] = [_TIER_5]
        client.on_tick(scene)

        clock.now = 11_000
        scene.health[STAR_POINT] = 80
        client.on_tick(scene)
        await settle()
        assert len(_sent(connector)) == 1

        clock.now = 20_000
        scene.health[STAR_POINT] = 70
        client.on_tick(scene)
        await settle()

        payloads = _sent(connector)
        assert len(payloads) == 2
        assert payloads[-1]["health"] == 70
        assert "discoveredBy" not in payloads[-1]
        assert client.find_star(302, STAR_POINT).health == 70  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_change_made_while_throttled_is_sent_later(scheduler: ManualScheduler, scene: FakeScene) -> None:
    connector, clock = FakeConnector(), _Clock()
    async with _client(scheduler, connector, clock) as client:
        await settle()
        client.on_world_changed(302)
        client.on_object_spawned(_TIER_5, STAR_POINT)
        scene.objects[STAR_POINT] = [_TIER_5]
        client.on_tick(scene)

        clock.now = 11_000
        scene.health[STAR_POINT] = 80
        client.on_tick(scene)

        for now in range(20_000, 60_000, 600):
            clock.now = now
            client.on_tick(scene)
        await settle()

        payloads = _sent(connector)
        assert [p["health"] for p in payloads] == [100, 80]


@pytest.mark.asyncio
async def test_missing_star_is_deactivated_and_broadcast(scheduler: ManualScheduler, scene: FakeScene) -> None:
    connector, clock = FakeConnector(), _Clock()
    async with _client(scheduler, connector, clock) as client:
        await settle()
        client.on_world_changed(302)
        client.on_object_spawned(_TIER_5, STAR_POINT)
        scene.objects[STAR_POINT] = [_TIER_5]
        client.on_tick(scene)

        clock.now = 12_000
        scene.objects.clear()
        transitions = client.on_tick(scene)
        await settle()

        assert [t.deactivated for t in transitions] == [True]
        assert _sent(connector)[-1]["active"] is False
        assert client.find_star(302, STAR_POINT).active is False  # type: ignore[union-attr]
        assert client.active_stars() == []


@pytest.mark.asyncio
async def test_reconnect_resends_active_local_stars(scheduler: ManualScheduler, scene: FakeScene) -> None:
    connector, clock = FakeConnector(), _Clock()
    async with _client(scheduler, connector, clock) as client:
        await settle()
        client.on_world_changed(302)
        client.on_object_spawned(_TIER_5, STAR_POINT)
        scene.objects[STAR_POINT] = [_TIER_5]
        client.on_tick(scene)

        connector.last.drop()
        await settle()
        assert not client.is_connected

        scheduler.advance(5.0)
        await settle()

        assert client.is_connected
        [payload] = _sent(connector)
        assert payload["world"] == 302
        assert payload["active"] is True


@pytest.mark.asyncio
async def test_tick_on_another_world_clears_local_stars(scheduler: ManualScheduler, scene: FakeScene) -> None:
    connector, clock = FakeConnector(), _Clock()
    async with _client(scheduler, connector, clock) as client:
        client.on_world_changed(302)
        client.on_object_spawned(_TIER_5, STAR_POINT)

        client.on_tick(FakeScene(world=303))

        assert client.current_world == 303
        assert client.store.local_records() == []
        assert client.find_star(302, STAR_POINT) is not None


@pytest.mark.asyncio
async def test_inbound_records_reach_store_observers(scheduler: ManualScheduler) -> None:
    connector, clock = FakeConnector(), _Clock()
    snapshots: list[list[StarRecord]] = []
    client = _client(scheduler, connector, clock)
    client.register_store_observer(snapshots.append)

    async with client:
        await settle()
        connector.last.feed(json.dumps({"type": "STAR_UPDATE", "data": make_record(world=420).to_wire()}))
        await settle()

    assert [r.world for r in client.network_records()] == [420]
    assert snapshots and snapshots[-1][0].world == 420


@pytest.mark.asyncio
async def test_sharing_disabled_never_connects(scheduler: ManualScheduler, scene: FakeScene) -> None:
    connector, clock = FakeConnector(), _Clock()
    async with _client(scheduler, connector, clock, share_star_data=False) as client:
        client.on_world_changed(302)
        client.on_object_spawned(_TIER_5, STAR_POINT)
        client.on_tick(scene)
        await settle()

        assert connector.opened == []
        assert client.find_star(302, STAR_POINT) is not None


@pytest.mark.asyncio
async def test_exit_cancels_timers_and_silences_observers(scheduler: ManualScheduler) -> None:
    connector, clock = FakeConnector(), _Clock()
    snapshots: list[list[StarRecord]] = []
    client = _client(scheduler, connector, clock)
    client.register_store_observer(snapshots.append)

    async with client:
        await settle()
        assert len(scheduler.periodic()) >= 3

    client.ingest(make_record())
    assert scheduler.periodic() == []
    assert snapshots == []
    assert connector.last.closed
