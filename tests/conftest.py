from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field

import pytest

from pystarhunt.exceptions import StarhuntTransportError
from pystarhunt.models.point import WorldPoint
from pystarhunt.models.star import StarRecord
from pystarhunt.scene import ActorSample


class ManualTask:
    def __init__(self, due: float, callback: Callable[[], None], period: float | None, delay: float) -> None:
        self.due = due
        self.callback = callback
        self.period = period
        self.delay = delay
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class ManualScheduler:
    """Task scheduler driven by hand through :meth:`advance`."""

    def __init__(self) -> None:
        self.now = 0.0
        self.tasks: list[ManualTask] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTask:
        task = ManualTask(self.now + delay, callback, None, delay)
        self.tasks.append(task)
        return task

    def call_every(self, period: float, callback: Callable[[], None]) -> ManualTask:
        task = ManualTask(self.now + period, callback, period, period)
        self.tasks.append(task)
        return task

    def pending_delays(self) -> list[float]:
        """Delays of the live one-shot tasks, in scheduling order."""
        return [t.delay for t in self.tasks if t.period is None and not t.cancelled]

    def periodic(self) -> list[ManualTask]:
        return [t for t in self.tasks if t.period is not None and not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            live = [t for t in self.tasks if not t.cancelled and t.due <= target]
            if not live:
                break
            task = min(live, key=lambda t: t.due)
            self.now = task.due
            if task.period is None:
                self.tasks.remove(task)
            else:
                task.due += task.period
            task.callback()
        self.tasks = [t for t in self.tasks if not t.cancelled]
        self.now = target


class FakeConnection:
    def __init__(self) -> None:
        self.sent: list[str] = []
        self.pings = 0
        self.fail_send = False
        self.fail_ping = False
        self._closed = False
        self._inbound: asyncio.Queue[str | None] = asyncio.Queue()

    @property
    def closed(self) -> bool:
        return self._closed

    async def send_str(self, data: str) -> None:
        if self.fail_send:
            raise StarhuntTransportError("send failed")
        self.sent.append(data)

    async def ping(self) -> None:
        if self.fail_ping:
            raise StarhuntTransportError("ping failed")
        self.pings += 1

    async def close(self) -> None:
        self._closed = True
        self._inbound.put_nowait(None)

    def feed(self, text: str) -> None:
        self._inbound.put_nowait(text)

    def drop(self) -> None:
        """Simulate the remote end closing the connection."""
        self._inbound.put_nowait(None)

    async def messages(self) -> AsyncIterator[str]:
        while True:
            item = await self._inbound.get()
            if item is None:
                return
            yield item


class FakeConnector:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.opened: list[str] = []
        self.connections: list[FakeConnection] = []

    async def open(self, endpoint: str) -> FakeConnection:
        self.opened.append(endpoint)
        if self.fail:
            raise StarhuntTransportError("connection refused", endpoint=endpoint)
        connection = FakeConnection()
        self.connections.append(connection)
        return connection

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


class RecordingListener:
    def __init__(self) -> None:
        self.events: list[str] = []
        self.records: list[StarRecord] = []

    def on_connected(self) -> None:
        self.events.append("connected")

    def on_disconnected(self) -> None:
        self.events.append("disconnected")

    def on_record_received(self, record: StarRecord) -> None:
        self.records.append(record)


@dataclass
class FakeScene:
    """In-memory scene: tiles map to object/NPC ids, scene spans base..base+104."""

    world: int = 302
    tick: int = 0
    player_location: WorldPoint | None = field(default_factory=lambda: WorldPoint(x=3000, y=3000))
    base_x: int = 2950
    base_y: int = 2950
    loaded: bool = True
    objects: dict[WorldPoint, list[int]] = field(default_factory=dict)
    npcs: dict[WorldPoint, list[int]] = field(default_factory=dict)
    health: dict[WorldPoint, int] = field(default_factory=dict)
    actors: list[ActorSample] = field(default_factory=list)

    def to_scene(self, point: WorldPoint) -> tuple[int, int] | None:
        if not self.loaded:
            return None
        return point.x - self.base_x, point.y - self.base_y

    def object_ids_at(self, point: WorldPoint) -> Sequence[int]:
        return self.objects.get(point, [])

    def npc_ids_at(self, point: WorldPoint) -> Sequence[int]:
        return self.npcs.get(point, [])

    def star_health_at(self, point: WorldPoint) -> int:
        return self.health.get(point, -1)

    def actors_near(self, point: WorldPoint, radius: int) -> Sequence[ActorSample]:
        return [a for a in self.actors if a.location.is_within(point, radius)]


async def settle(rounds: int = 10) -> None:
    """Let pending loop tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


STAR_POINT = WorldPoint(x=3000, y=3005)


def make_record(**overrides: object) -> StarRecord:
    values: dict[str, object] = {
        "world": 302,
        "location": STAR_POINT,
        "tier": 5,
        "health": 100,
        "miners": "unknown",
        "active": True,
        "last_update": 1_000,
    }
    values.update(overrides)
    return StarRecord.model_validate(values)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def scene() -> FakeScene:
    return FakeScene()
