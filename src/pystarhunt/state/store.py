"""Reconciliation store.

Owns the two canonical collections:

* the locally-observed set, keyed by tile (one world at a time), mutated
  by the local verifier from the tick context;
* the network-merged set, keyed by :class:`StarKey` (all worlds), fed by
  the session's I/O context and by local observations.

This is the only component allowed to merge records.  Each collection
has its own lock; every lookup-merge-insert and iterate-remove sequence
holds it for the whole sequence.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Callable, Iterator

from pystarhunt._constants import INACTIVE_GRACE_MS
from pystarhunt.models._base import now_ms
from pystarhunt.models.point import WorldPoint
from pystarhunt.models.star import StarKey, StarRecord
from pystarhunt.state.policy import is_evictable, merge_record

_logger = logging.getLogger(__name__)

StoreObserver = Callable[[list[StarRecord]], None]


def _sort_key(record: StarRecord) -> int:
    return record.last_update


class ReconciliationStore:
    """In-memory store for local and network-merged star records."""

    def __init__(
        self,
        *,
        clock: Callable[[], int] = now_ms,
        inactive_grace_ms: int = INACTIVE_GRACE_MS,
    ) -> None:
        self._clock = clock
        self._inactive_grace_ms = inactive_grace_ms
        self._local: dict[WorldPoint, StarRecord] = {}
        self._local_lock = threading.RLock()
        self._network: list[StarRecord] = []
        self._network_index: dict[StarKey, StarRecord] = {}
        self._network_lock = threading.RLock()
        self._observers: list[StoreObserver] = []
        self._observers_enabled = True

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def register_store_observer(self, observer: StoreObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def unregister_store_observer(self, observer: StoreObserver) -> None:
        with contextlib.suppress(ValueError):
            self._observers.remove(observer)

    def silence(self) -> None:
        """Stop notifying observers (used at shutdown)."""
        self._observers_enabled = False

    def notify_observers(self) -> None:
        """Send the current ordered network set to every observer."""
        if not self._observers_enabled:
            return
        snapshot = self.network_records()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                _logger.debug("Store observer %r failed", observer, exc_info=True)

    # ------------------------------------------------------------------
    # Network-merged set
    # ------------------------------------------------------------------

    def _insert_locked(self, record: StarRecord) -> None:
        self._network.append(record)
        self._network_index[record.key] = record
        self._network.sort(key=_sort_key, reverse=True)

    def ingest(self, record: StarRecord) -> bool:
        """Merge a record received from the network.

        Returns ``True`` when the key was not known before (inserted).
        """
        incoming = record.model_copy(deep=True)
        with self._network_lock:
            existing = self._network_index.get(incoming.key)
            if existing is None:
                self._insert_locked(incoming)
                inserted, changed = True, True
            else:
                inserted, changed = False, merge_record(existing, incoming)

        if inserted:
            _logger.debug("Added network star %s", incoming.describe())
        elif changed:
            _logger.debug("Updated network star %s", incoming.describe())
        if changed:
            self.notify_observers()
        return inserted

    def merge_local_into_network(self, record: StarRecord) -> bool:
        """Reflect a local observation into the network-merged set.

        A record with an unknown tier is merged into an existing entry but
        never inserted.  Returns ``True`` when the merged set changed.
        """
        incoming = record.model_copy(deep=True)
        with self._network_lock:
            existing = self._network_index.get(incoming.key)
            if existing is None:
                if incoming.tier <= 0:
                    return False
                self._insert_locked(incoming)
                changed = True
            else:
                changed = merge_record(existing, incoming)
        if changed:
            self.notify_observers()
        return changed

    def apply_local_verdict(self, key: StarKey, timestamp: int) -> bool:
        """Record that local verification found the star gone.

        This is the only way a merged record becomes inactive; merging a
        peer's record never deactivates.
        """
        with self._network_lock:
            existing = self._network_index.get(key)
            if existing is None or not existing.active:
                return False
            existing.active = False
            existing.touch(timestamp)
        _logger.debug("Network star %s marked inactive by local verification", key)
        self.notify_observers()
        return True

    def sweep(self, now: int | None = None) -> list[StarRecord]:
        """Evict records inactive for at least the grace period.

        Returns the evicted records.
        """
        current = self._clock() if now is None else now
        with self._network_lock:
            removed = [r for r in self._network if is_evictable(r, current, self._inactive_grace_ms)]
            if removed:
                self._network = [r for r in self._network if not is_evictable(r, current, self._inactive_grace_ms)]
                for record in removed:
                    self._network_index.pop(record.key, None)

        for record in removed:
            _logger.debug("Removing inactive network star %s", record.describe())
        if removed:
            self.notify_observers()
        return removed

    def network_records(self) -> list[StarRecord]:
        """Copies of the merged set, most recent first (as last sorted)."""
        with self._network_lock:
            return [record.model_copy(deep=True) for record in self._network]

    def active_network_records(self) -> list[StarRecord]:
        with self._network_lock:
            return [record.model_copy(deep=True) for record in self._network if record.active]

    def get(self, key: StarKey) -> StarRecord | None:
        with self._network_lock:
            record = self._network_index.get(key)
            return record.model_copy(deep=True) if record is not None else None

    def find(self, world: int, point: WorldPoint) -> StarRecord | None:
        return self.get(StarKey.of(world, point))

    def __len__(self) -> int:
        with self._network_lock:
            return len(self._network)

    # ------------------------------------------------------------------
    # Locally-observed set
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def local_view(self) -> Iterator[dict[WorldPoint, StarRecord]]:
        """Hold the local lock and expose the live local collection."""
        with self._local_lock:
            yield self._local

    def track_local(self, record: StarRecord) -> bool:
        """Start tracking *record* locally unless its tile is already tracked."""
        with self._local_lock:
            if record.location in self._local:
                return False
            self._local[record.location] = record.model_copy(deep=True)
            return True

    def local_record(self, point: WorldPoint) -> StarRecord | None:
        with self._local_lock:
            record = self._local.get(point)
            return record.model_copy(deep=True) if record is not None else None

    def local_records(self) -> list[StarRecord]:
        with self._local_lock:
            return [record.model_copy(deep=True) for record in self._local.values()]

    def active_local_records(self) -> list[StarRecord]:
        with self._local_lock:
            return [record.model_copy(deep=True) for record in self._local.values() if record.active]

    def clear_local(self) -> None:
        with self._local_lock:
            self._local.clear()

    def clear(self) -> None:
        self.clear_local()
        with self._network_lock:
            self._network.clear()
            self._network_index.clear()
