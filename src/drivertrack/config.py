"""Tracker configuration for drivertrack."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from drivertrack._constants import FIRESTORE_BASE_URL
from drivertrack.exceptions import TrackerConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class TrackerConfig:
    """Tracker configuration.

    Parameters
    ----------
    project_id : str
        Firebase / Google Cloud project that owns the Firestore database.
    database : str
        Firestore database id.
    collection : str
        Collection holding one "latest" document per identity.
    history_collection : str
        Sub-collection (under each identity document) holding history entries.
    access_token : str or None
        OAuth2 bearer token sent with every Firestore request.
    api_key : str or None
        Web API key, sent as the ``key`` query parameter when set.
    base_url : str
        Firestore REST root.  Point it at the emulator for local runs.
    status : str
        Value written to the ``status`` field of every record.
    on_duty : bool
        Value written to the ``isOnDuty`` field of every record.
    state_path : str or None
        File backing the local durable state.  ``None`` keeps state in memory.
    sampling_interval : float
        Requested position cadence in seconds (heartbeat, not distance driven).
    min_update_interval : float
        Fastest cadence the source may deliver at, in seconds.
    distance_filter : float
        Minimum displacement in metres before the source emits.  ``0``
        disables distance filtering.
    stationary_epsilon : float
        Per-axis threshold in degrees below which two samples count as the
        same position.
    bridge_poll_interval : float
        Seconds between store re-checks by the bridge event pump.
    sync_shutdown_timeout : float
        Seconds to wait for in-flight Firestore writes on shutdown.
    request_timeout : float
        Total timeout for a single Firestore request, in seconds.
    keepalive_lock_path : str or None
        Lock file used as the keep-alive token.  ``None`` disables it.
    mqtt_enabled : bool
        Mirror bridge events to an MQTT broker.
    mqtt_host : str
        MQTT broker host.
    mqtt_port : int
        MQTT broker port.
    mqtt_topic_prefix : str
        Events go to ``{prefix}/{identity}/location``.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_username : str or None
        Broker username.
    mqtt_password : str or None
        Broker password.
    mqtt_tls : bool
        Use TLS for the broker connection.
    """

    project_id: str
    database: str = "(default)"
    collection: str = "drivers"
    history_collection: str = "locations"
    access_token: str | None = None
    api_key: str | None = None
    base_url: str = FIRESTORE_BASE_URL
    status: str = "active"
    on_duty: bool = True
    state_path: str | None = None
    sampling_interval: float = 15.0
    min_update_interval: float = 5.0
    distance_filter: float = 0.0
    stationary_epsilon: float = 1e-5
    bridge_poll_interval: float = 5.0
    sync_shutdown_timeout: float = 10.0
    request_timeout: float = 10.0
    keepalive_lock_path: str | None = None
    mqtt_enabled: bool = False
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_topic_prefix: str = "drivertrack"
    mqtt_keepalive: int = 60
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_tls: bool = False

    def __post_init__(self) -> None:
        if not self.project_id or not self.project_id.strip():
            raise TrackerConfigError("project_id must be non-empty")
        if self.sampling_interval <= 0:
            raise TrackerConfigError(f"sampling_interval must be positive, got {self.sampling_interval}")
        if self.min_update_interval <= 0 or self.min_update_interval > self.sampling_interval:
            raise TrackerConfigError(
                f"min_update_interval must be in (0, {self.sampling_interval}], got {self.min_update_interval}"
            )
        if self.distance_filter < 0:
            raise TrackerConfigError(f"distance_filter must be >= 0, got {self.distance_filter}")
        if self.stationary_epsilon < 0:
            raise TrackerConfigError(f"stationary_epsilon must be >= 0, got {self.stationary_epsilon}")
        if self.bridge_poll_interval <= 0:
            raise TrackerConfigError(f"bridge_poll_interval must be positive, got {self.bridge_poll_interval}")

    @property
    def documents_path(self) -> str:
        """Resource name prefix for documents in the configured database."""
        return f"projects/{self.project_id}/databases/{self.database}/documents"

    @classmethod
    def from_env(cls, **overrides: Any) -> TrackerConfig:
        """Create configuration from environment variables.

        Reads ``DRIVERTRACK_PROJECT_ID`` and optional ``DRIVERTRACK_*``
        variables.  When ``FIRESTORE_EMULATOR_HOST`` is set and no base URL
        is configured, requests go to the emulator.  Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TrackerConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "DRIVERTRACK_PROJECT_ID": "project_id",
            "DRIVERTRACK_DATABASE": "database",
            "DRIVERTRACK_COLLECTION": "collection",
            "DRIVERTRACK_HISTORY_COLLECTION": "history_collection",
            "DRIVERTRACK_ACCESS_TOKEN": "access_token",
            "DRIVERTRACK_API_KEY": "api_key",
            "DRIVERTRACK_BASE_URL": "base_url",
            "DRIVERTRACK_STATUS": "status",
            "DRIVERTRACK_STATE_PATH": "state_path",
            "DRIVERTRACK_KEEPALIVE_LOCK_PATH": "keepalive_lock_path",
            "DRIVERTRACK_MQTT_HOST": "mqtt_host",
            "DRIVERTRACK_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
            "DRIVERTRACK_MQTT_USERNAME": "mqtt_username",
            "DRIVERTRACK_MQTT_PASSWORD": "mqtt_password",
        }
        _ENV_FLOAT_MAP = {
            "DRIVERTRACK_SAMPLING_INTERVAL": "sampling_interval",
            "DRIVERTRACK_MIN_UPDATE_INTERVAL": "min_update_interval",
            "DRIVERTRACK_DISTANCE_FILTER": "distance_filter",
            "DRIVERTRACK_STATIONARY_EPSILON": "stationary_epsilon",
            "DRIVERTRACK_BRIDGE_POLL_INTERVAL": "bridge_poll_interval",
            "DRIVERTRACK_SYNC_SHUTDOWN_TIMEOUT": "sync_shutdown_timeout",
            "DRIVERTRACK_REQUEST_TIMEOUT": "request_timeout",
        }
        _ENV_INT_MAP = {
            "DRIVERTRACK_MQTT_PORT": "mqtt_port",
            "DRIVERTRACK_MQTT_KEEPALIVE": "mqtt_keepalive",
        }
        _ENV_BOOL_MAP = {
            "DRIVERTRACK_ON_DUTY": ("on_duty", True),
            "DRIVERTRACK_MQTT_ENABLED": ("mqtt_enabled", False),
            "DRIVERTRACK_MQTT_TLS": ("mqtt_tls", False),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        try:
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
        except ValueError as exc:
            raise TrackerConfigError(f"Invalid numeric environment value: {exc}") from exc

        for env_key, (field_name, default) in _ENV_BOOL_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(env_key), default)

        # The emulator accepts unauthenticated plain-HTTP requests.
        emulator_host = env.get("FIRESTORE_EMULATOR_HOST")
        if emulator_host and "base_url" not in config_kwargs and "base_url" not in overrides:
            config_kwargs["base_url"] = f"http://{emulator_host.strip()}"

        config_kwargs.update(overrides)

        if "project_id" not in config_kwargs:
            raise TrackerConfigError("DRIVERTRACK_PROJECT_ID is not set")

        return cls(**config_kwargs)
