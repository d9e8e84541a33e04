"""Client configuration for pystarhunt."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pystarhunt.exceptions import StarhuntConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, kind: type[int] | type[float]) -> int | float:
    try:
        return kind(value)
    except ValueError as exc:
        raise StarhuntConfigError(f"{env_key} must be a {kind.__name__}, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class StarhuntConfig:
    """Client configuration.

    Parameters
    ----------
    websocket_url : str
        Broadcast endpoint (``ws://`` or ``wss://``).  Empty disables
        sharing; the client still tracks and verifies stars locally.
    api_url : str
        Collection endpoint of the legacy request/response API.
    observer_name : str or None
        Identity attached to outbound records as ``discoveredBy`` when
        ``share_username`` is enabled.
    share_star_data : bool
        Send local observations to the broadcast endpoint.
    share_username : bool
        Stamp outbound records with ``observer_name``.
    show_notifications : bool
        Invoke the ``on_star_discovered`` callback for newly heard stars.
    update_frequency : float
        Base interval, in seconds, between routine outbound updates of the
        same star.  Each evaluation applies a 0.8-1.2 jitter.
    max_update_distance : int
        Only stars within this many tiles of the observer get routine
        updates.  State transitions are always sent.
    reconnect_base_delay : float
        Seconds; reconnect attempt *n* waits ``n * reconnect_base_delay``.
    max_reconnect_attempts : int
        Scheduled reconnects before falling back to the cold retry.
    cold_retry_period : float
        Seconds between cold retries once reconnects are exhausted.
    keepalive_period : float
        Seconds between keep-alive pings on an open session.
    cleanup_period : float
        Seconds between sweeps of the network-merged set.
    panel_refresh_period : float
        Seconds between full-set refresh notifications to store observers.
    inactive_grace : float
        Seconds a record may stay inactive before it is evicted.
    connect_timeout : float
        Seconds allowed for a single connection attempt.
    despawn_deactivates : bool
        When ``True`` any star-object despawn deactivates the star at once.
        The default only does so for the final tier and leaves other
        despawns to re-verification.
    """

    websocket_url: str = ""
    api_url: str = ""
    observer_name: str | None = None
    share_star_data: bool = True
    share_username: bool = False
    show_notifications: bool = True
    update_frequency: float = 10.0
    max_update_distance: int = 32
    reconnect_base_delay: float = 5.0
    max_reconnect_attempts: int = 5
    cold_retry_period: float = 60.0
    keepalive_period: float = 30.0
    cleanup_period: float = 5.0
    panel_refresh_period: float = 5.0
    inactive_grace: float = 60.0
    connect_timeout: float = 10.0
    despawn_deactivates: bool = False

    def __post_init__(self) -> None:
        if self.update_frequency <= 0:
            raise StarhuntConfigError("update_frequency must be positive")
        if self.max_reconnect_attempts < 0:
            raise StarhuntConfigError("max_reconnect_attempts must not be negative")
        for name in (
            "reconnect_base_delay",
            "cold_retry_period",
            "keepalive_period",
            "cleanup_period",
            "panel_refresh_period",
            "inactive_grace",
            "connect_timeout",
        ):
            if getattr(self, name) <= 0:
                raise StarhuntConfigError(f"{name} must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> StarhuntConfig:
        """Create configuration from environment variables.

        Reads ``STARHUNT_*`` variables (``STARHUNT_WEBSOCKET_URL``,
        ``STARHUNT_UPDATE_FREQUENCY`` ...).  Explicit keyword arguments
        override environment values.

        Raises
        ------
        StarhuntConfigError
            If a numeric variable cannot be parsed.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "STARHUNT_WEBSOCKET_URL": "websocket_url",
            "STARHUNT_API_URL": "api_url",
            "STARHUNT_OBSERVER_NAME": "observer_name",
        }
        _ENV_BOOL_MAP = {
            "STARHUNT_SHARE_STAR_DATA": ("share_star_data", True),
            "STARHUNT_SHARE_USERNAME": ("share_username", False),
            "STARHUNT_SHOW_NOTIFICATIONS": ("show_notifications", True),
            "STARHUNT_DESPAWN_DEACTIVATES": ("despawn_deactivates", False),
        }
        _ENV_NUMBER_MAP: dict[str, tuple[str, type[int] | type[float]]] = {
            "STARHUNT_UPDATE_FREQUENCY": ("update_frequency", float),
            "STARHUNT_MAX_UPDATE_DISTANCE": ("max_update_distance", int),
            "STARHUNT_RECONNECT_BASE_DELAY": ("reconnect_base_delay", float),
            "STARHUNT_MAX_RECONNECT_ATTEMPTS": ("max_reconnect_attempts", int),
            "STARHUNT_COLD_RETRY_PERIOD": ("cold_retry_period", float),
            "STARHUNT_KEEPALIVE_PERIOD": ("keepalive_period", float),
            "STARHUNT_CLEANUP_PERIOD": ("cleanup_period", float),
            "STARHUNT_PANEL_REFRESH_PERIOD": ("panel_refresh_period", float),
            "STARHUNT_INACTIVE_GRACE": ("inactive_grace", float),
            "STARHUNT_CONNECT_TIMEOUT": ("connect_timeout", float),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val.strip()

        for env_key, (field_name, default) in _ENV_BOOL_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(env_key), default)

        for env_key, (field_name, kind) in _ENV_NUMBER_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, kind)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
