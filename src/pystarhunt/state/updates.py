"""Outbound update throttling.

Many observers usually watch the same star.  Routine updates are
therefore rate limited per star, with a fresh random jitter on every
evaluation so independent observers drift apart instead of sending in
lock-step.  State transitions skip the rate limit.
"""

from __future__ import annotations

import random

from pystarhunt._constants import UPDATE_JITTER_MAX, UPDATE_JITTER_MIN
from pystarhunt.models.star import StarKey


class UpdateScheduler:
    """Decides when a locally tracked record is due for broadcast.

    Parameters
    ----------
    base_frequency_ms : int
        Nominal interval between routine updates of the same star.
    rng : random.Random or None
        Source of jitter; injectable for deterministic tests.
    """

    def __init__(self, base_frequency_ms: int, *, rng: random.Random | None = None) -> None:
        self._base_frequency_ms = base_frequency_ms
        self._rng = rng or random.Random()
        self._last_sent: dict[StarKey, int] = {}
        self._immediate: list[StarKey] = []
        # keys changed since their last send
        self._dirty: set[StarKey] = set()

    def interval_ms(self) -> int:
        """A freshly jittered interval."""
        jitter = self._rng.uniform(UPDATE_JITTER_MIN, UPDATE_JITTER_MAX)
        return int(self._base_frequency_ms * jitter)

    def should_send(self, key: StarKey, now: int, *, changed: bool) -> bool:
        """Routine gate: due only if the interval elapsed **and** the record
        changed since it was last sent.

        A change seen while the interval is still running is remembered and
        goes out on the first evaluation after it elapses.  Records the send
        time when the answer is ``True``.
        """
        if changed:
            self.mark_changed(key)
        if key not in self._dirty:
            return False
        elapsed = now - self._last_sent.get(key, 0)
        if elapsed < self.interval_ms():
            return False
        self._last_sent[key] = now
        self._dirty.discard(key)
        return True

    def mark_changed(self, key: StarKey) -> None:
        """Remember a change to *key* until its next send."""
        self._dirty.add(key)

    def has_pending_change(self, key: StarKey) -> bool:
        return key in self._dirty

    def queue_immediate(self, key: StarKey) -> None:
        """Queue a state transition; sent on the next drain regardless of timers."""
        if key not in self._immediate:
            self._immediate.append(key)

    def drain_immediate(self, now: int) -> list[StarKey]:
        """Take the queued keys; each counts as sent with its latest state."""
        keys, self._immediate = self._immediate, []
        for key in keys:
            self._last_sent[key] = now
            self._dirty.discard(key)
        return keys

    def last_sent(self, key: StarKey) -> int | None:
        return self._last_sent.get(key)

    def forget(self, key: StarKey) -> None:
        self._last_sent.pop(key, None)
        self._dirty.discard(key)
        if key in self._immediate:
            self._immediate.remove(key)

    def reset(self) -> None:
        self._last_sent.clear()
        self._immediate.clear()
        self._dirty.clear()
