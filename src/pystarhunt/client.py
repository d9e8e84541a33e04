"""High-level async client that ties tracking, verification and sharing together."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from typing import Any

import aiohttp

from pystarhunt._api.stars import LegacyStarApi
from pystarhunt._constants import UNKNOWN_MINERS
from pystarhunt._scheduler import AsyncioTaskScheduler, ScheduledTask, TaskScheduler
from pystarhunt._transport import Connector, WebSocketConnector
from pystarhunt.config import StarhuntConfig
from pystarhunt.exceptions import StarhuntError
from pystarhunt.models._base import now_ms
from pystarhunt.models.point import WorldPoint
from pystarhunt.models.star import StarKey, StarRecord
from pystarhunt.scene import SceneQuery
from pystarhunt.session import SessionListener, SessionManager
from pystarhunt.state.events import Transition
from pystarhunt.state.mining import MiningPresenceEstimator
from pystarhunt.state.store import ReconciliationStore, StoreObserver
from pystarhunt.state.updates import UpdateScheduler
from pystarhunt.state.verification import StarVerifier

_logger = logging.getLogger(__name__)

#: Actors further than this from the star anchor cannot be on its footprint.
_FOOTPRINT_RADIUS = 2


class StarhuntClient:
    """Async client for tracking and sharing stars.

    The host feeds raw world events (``on_object_spawned`` ...) and calls
    :meth:`on_tick` once per game tick from its own thread.  Networking
    runs on the event loop that entered the client.

    Usage::

        async with StarhuntClient(config, on_store_changed=panel.update) as client:
            client.on_world_changed(302)
            ...
            client.on_tick(scene)
    """

    def __init__(
        self,
        config: StarhuntConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        scheduler: TaskScheduler | None = None,
        connector: Connector | None = None,
        clock: Callable[[], int] = now_ms,
        rng: random.Random | None = None,
        estimator: MiningPresenceEstimator | None = None,
        on_store_changed: StoreObserver | None = None,
        on_star_discovered: Callable[[StarRecord], None] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._scheduler = scheduler
        self._connector = connector
        self._owns_connector = connector is None
        self._clock = clock
        self._on_star_discovered = on_star_discovered

        inactive_grace_ms = int(config.inactive_grace * 1000)
        self._store = ReconciliationStore(clock=clock, inactive_grace_ms=inactive_grace_ms)
        self._updates = UpdateScheduler(int(config.update_frequency * 1000), rng=rng)
        self._verifier = StarVerifier(
            self._store,
            self._updates,
            clock=clock,
            inactive_grace_ms=inactive_grace_ms,
            despawn_deactivates=config.despawn_deactivates,
        )
        self._estimator = estimator or MiningPresenceEstimator()
        if on_store_changed is not None:
            self._store.register_store_observer(on_store_changed)

        self._session: SessionManager | None = None
        self._legacy_api: LegacyStarApi | None = None
        self._periodic: list[ScheduledTask] = []
        self._pending_listeners: list[SessionListener] = []
        self._current_world: int | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> StarhuntClient:
        loop = asyncio.get_running_loop()
        if self._scheduler is None:
            self._scheduler = AsyncioTaskScheduler(loop)
        if self._http_session is None and (self._connector is None or self._config.api_url):
            self._http_session = aiohttp.ClientSession()
        if self._connector is None:
            self._connector = WebSocketConnector(self._http_session, connect_timeout=self._config.connect_timeout)
        if self._config.api_url and self._http_session is not None:
            self._legacy_api = LegacyStarApi(self._config, self._http_session)

        self._session = SessionManager(
            loop=loop,
            connector=self._connector,
            scheduler=self._scheduler,
            resync=self._resync_records,
            reconnect_base_delay=self._config.reconnect_base_delay,
            max_reconnect_attempts=self._config.max_reconnect_attempts,
            cold_retry_period=self._config.cold_retry_period,
            keepalive_period=self._config.keepalive_period,
        )
        self._session.register_listener(self)
        for listener in self._pending_listeners:
            self._session.register_listener(listener)
        self._pending_listeners.clear()

        self._periodic = [
            self._scheduler.call_every(self._config.cleanup_period, self._sweep),
            self._scheduler.call_every(self._config.panel_refresh_period, self._store.notify_observers),
        ]

        if self._config.websocket_url and self._config.share_star_data:
            self._session.connect(self._config.websocket_url)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Stop timers, close the session and silence every callback."""
        if self._closed:
            return
        self._closed = True
        self._store.silence()
        for task in self._periodic:
            task.cancel()
        self._periodic = []
        if self._session is not None:
            await self._session.close()
        if self._owns_connector and isinstance(self._connector, WebSocketConnector):
            await self._connector.close()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._legacy_api = None
        _logger.debug("Client closed")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> StarhuntConfig:
        return self._config

    @property
    def store(self) -> ReconciliationStore:
        return self._store

    @property
    def verifier(self) -> StarVerifier:
        return self._verifier

    @property
    def updates(self) -> UpdateScheduler:
        return self._updates

    @property
    def estimator(self) -> MiningPresenceEstimator:
        return self._estimator

    @property
    def current_world(self) -> int | None:
        return self._current_world

    @property
    def is_connected(self) -> bool:
        return self._session is not None and self._session.is_connected

    def _require_session(self) -> SessionManager:
        if self._session is None:
            raise StarhuntError("Client not initialized. Use 'async with StarhuntClient(...) as client:'")
        return self._session

    def _require_legacy_api(self) -> LegacyStarApi:
        if self._legacy_api is None:
            raise StarhuntError("Legacy API unavailable (set config.api_url and enter the client)")
        return self._legacy_api

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    def register_store_observer(self, observer: StoreObserver) -> None:
        self._store.register_store_observer(observer)

    def unregister_store_observer(self, observer: StoreObserver) -> None:
        self._store.unregister_store_observer(observer)

    def network_records(self) -> list[StarRecord]:
        return self._store.network_records()

    def active_stars(self) -> list[StarRecord]:
        return self._store.active_network_records()

    def find_star(self, world: int, point: WorldPoint) -> StarRecord | None:
        return self._store.find(world, point)

    def ingest(self, record: StarRecord) -> bool:
        """Merge a record heard from the network.

        New active stars of known tier are announced, and active stars on
        the observer's world are handed to local verification.
        """
        inserted = self._store.ingest(record)
        if inserted and record.active and record.tier > 0:
            _logger.info("New star found: %s", record.describe())
            if self._config.show_notifications and self._on_star_discovered is not None:
                try:
                    self._on_star_discovered(record.model_copy(deep=True))
                except Exception:
                    _logger.debug("on_star_discovered callback failed", exc_info=True)

        if record.active and self._current_world is not None and record.world == self._current_world:
            self._verifier.adopt(record)
        return inserted

    def report_local_observation(self, record: StarRecord) -> Transition | None:
        """Feed a sighting made by the host (e.g. from a custom detector)."""
        return self._verifier.observe(record)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def connect(self, endpoint: str | None = None) -> bool:
        return self._require_session().connect(endpoint or self._config.websocket_url or None)

    def disconnect(self) -> None:
        self._require_session().disconnect()

    def reconnect(self) -> bool:
        return self._require_session().reconnect()

    def register_session_listener(self, listener: SessionListener) -> None:
        if self._session is None:
            if listener not in self._pending_listeners:
                self._pending_listeners.append(listener)
            return
        self._session.register_listener(listener)

    def unregister_session_listener(self, listener: SessionListener) -> None:
        if listener in self._pending_listeners:
            self._pending_listeners.remove(listener)
        if self._session is not None:
            self._session.unregister_listener(listener)

    def on_connected(self) -> None:
        _logger.info("Connected to star broadcast")

    def on_disconnected(self) -> None:
        _logger.info("Disconnected from star broadcast")

    def on_record_received(self, record: StarRecord) -> None:
        self.ingest(record)

    # ------------------------------------------------------------------
    # Raw world events
    # ------------------------------------------------------------------

    def _event_world(self, world: int | None) -> int | None:
        resolved = self._current_world if world is None else world
        if resolved is None:
            _logger.debug("Ignoring world event before the world is known")
        return resolved

    def on_world_changed(self, world: int | None = None) -> None:
        """World hop or logout: forget everything tracked locally."""
        self._verifier.clear()
        self._updates.reset()
        self._estimator.last_active.clear()
        self._current_world = world
        _logger.debug("World changed to %s; local stars cleared", world)

    def on_object_spawned(self, object_id: int, point: WorldPoint, *, world: int | None = None) -> Transition | None:
        resolved = self._event_world(world)
        if resolved is None:
            return None
        return self._verifier.on_object_spawned(resolved, point, object_id)

    def on_object_despawned(self, object_id: int, point: WorldPoint) -> Transition | None:
        return self._verifier.on_object_despawned(point, object_id)

    def on_npc_spawned(self, npc_id: int, point: WorldPoint, *, world: int | None = None) -> Transition | None:
        resolved = self._event_world(world)
        if resolved is None:
            return None
        return self._verifier.on_npc_spawned(resolved, point, npc_id)

    # ------------------------------------------------------------------
    # Per-tick work
    # ------------------------------------------------------------------

    def on_tick(self, scene: SceneQuery) -> list[Transition]:
        """Verify local stars, refresh their health and miners, send due updates."""
        now = self._clock()
        if self._current_world is None:
            self._current_world = scene.world
        elif self._current_world != scene.world:
            self.on_world_changed(scene.world)

        transitions = self._verifier.verify(scene, now=now)

        changed: dict[StarKey, bool] = {}
        for record in self._store.active_local_records():
            if record.world == scene.world:
                changed[record.key] = self._refresh(record, scene, now)

        sent: set[StarKey] = set()
        for key in self._updates.drain_immediate(now):
            record = self._store.local_record(key.point)
            if record is not None and record.key == key and self._publish(record, now):
                sent.add(key)

        # changes made while throttled or out of range go out with a later send
        player = scene.player_location
        for key, did_change in changed.items():
            if key in sent:
                continue
            if did_change:
                self._updates.mark_changed(key)
            if player is None or not key.point.is_within(player, self._config.max_update_distance):
                continue
            if self._updates.should_send(key, now, changed=False):
                record = self._store.local_record(key.point)
                if record is not None and record.active:
                    self._publish(record, now)
        return transitions

    def _refresh(self, record: StarRecord, scene: SceneQuery, now: int) -> bool:
        health = scene.star_health_at(record.location)
        miners = self._estimator.estimate(
            record,
            observer_world=scene.world,
            observer_location=scene.player_location,
            actors=scene.actors_near(record.location, _FOOTPRINT_RADIUS),
            tick=scene.tick,
        )

        with self._store.local_view() as local:
            live = local.get(record.location)
            if live is None or not live.active:
                return False
            changed = False
            if health >= 0 and health != live.health:
                live.health = health
                changed = True
            if miners != UNKNOWN_MINERS and miners != live.miners:
                live.miners = miners
                changed = True
            if not changed:
                return False
            live.touch(now)
            snapshot = live.model_copy(deep=True)

        self._store.merge_local_into_network(snapshot)
        return True

    def _stamp(self, record: StarRecord, now: int | None = None) -> StarRecord:
        outbound = record.model_copy(deep=True)
        if self._config.share_username and self._config.observer_name:
            outbound.discovered_by = self._config.observer_name
        outbound.touch(self._clock() if now is None else now)
        return outbound

    def _publish(self, record: StarRecord, now: int | None = None) -> bool:
        if not self._config.share_star_data or self._session is None:
            return False
        return self._session.send_record(self._stamp(record, now))

    def _resync_records(self) -> list[StarRecord]:
        if not self._config.share_star_data:
            return []
        now = self._clock()
        return [self._stamp(record, now) for record in self._store.active_local_records()]

    def _sweep(self) -> None:
        self._store.sweep()

    # ------------------------------------------------------------------
    # Legacy request/response API
    # ------------------------------------------------------------------

    async def fetch_legacy_stars(self) -> int:
        """Pull the legacy service's records into the store; returns how many were new."""
        stars = await self._require_legacy_api().get_active_stars()
        return sum(1 for record in stars.values() if self.ingest(record))

    async def submit_legacy_stars(self) -> int:
        """Push the active local records to the legacy service."""
        return await self._require_legacy_api().send_stars(self._resync_records())

    async def report_depleted(self, key: StarKey) -> None:
        await self._require_legacy_api().report_depleted(key)
