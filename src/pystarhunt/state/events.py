"""Verification states and transitions.

The local verifier reports every state change as a :class:`Transition`;
the engine uses them to decide what to broadcast immediately and what to
mirror into the network-merged set.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from pystarhunt.models.star import StarKey


class VerificationState(StrEnum):
    UNCONFIRMED = "unconfirmed"
    ACTIVE = "active"
    INACTIVE = "inactive"
    REMOVED = "removed"


class TransitionCause(StrEnum):
    SPAWN = "spawn"
    DESPAWN = "despawn"
    VERIFICATION = "verification"
    EXPIRY = "expiry"


@dataclass(frozen=True)
class Transition:
    key: StarKey
    previous: VerificationState
    current: VerificationState
    cause: TransitionCause
    timestamp: int
    tier_changed: bool = False

    @property
    def activated(self) -> bool:
        return self.current is VerificationState.ACTIVE

    @property
    def deactivated(self) -> bool:
        return self.previous is not VerificationState.INACTIVE and self.current is VerificationState.INACTIVE

    @property
    def removed(self) -> bool:
        return self.current is VerificationState.REMOVED
