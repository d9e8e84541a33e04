"""pystarhunt - Async Python client for tracking and sharing shooting stars."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pystarhunt")
except PackageNotFoundError:
    __version__ = "0+local"
from pystarhunt.client import StarhuntClient
from pystarhunt.config import StarhuntConfig
from pystarhunt.exceptions import (
    StarhuntConfigError,
    StarhuntError,
    StarhuntProtocolError,
    StarhuntTransportError,
)
from pystarhunt.models import (
    StarKey,
    StarLocation,
    StarRecord,
    StarTier,
    WorldPoint,
    closest_location,
    tier_from_object_id,
)
from pystarhunt.scene import ActorSample, SceneQuery
from pystarhunt.session import SessionListener
from pystarhunt.state.events import Transition, TransitionCause, VerificationState

__all__ = [
    "__version__",
    "ActorSample",
    "SceneQuery",
    "SessionListener",
    "StarKey",
    "StarLocation",
    "StarRecord",
    "StarTier",
    "StarhuntClient",
    "StarhuntConfig",
    "StarhuntConfigError",
    "StarhuntError",
    "StarhuntProtocolError",
    "StarhuntTransportError",
    "Transition",
    "TransitionCause",
    "VerificationState",
    "WorldPoint",
    "closest_location",
    "tier_from_object_id",
]
