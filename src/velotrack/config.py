"""Client configuration for velotrack."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from velotrack._constants import (
    DEFAULT_CLIENT_ID_PREFIX,
    DEFAULT_DEMO_INTERVAL,
    DEFAULT_MQTT_KEEPALIVE,
    DEFAULT_RECONNECT_PERIOD,
    DEFAULT_TOPIC,
)
from velotrack.exceptions import VeloConfigError
from velotrack.models.credential import Credential


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
class FleetConfig:
    """Client configuration.

    Parameters
    ----------
    host : str
        AWS IoT data endpoint, bare hostname (``xxxx-ats.iot.<region>.amazonaws.com``).
    region : str
        AWS region code of the endpoint.
    access_key_id : str
        AWS access key id.
    secret_access_key : str
        AWS secret access key. Hidden from ``repr()``.
    session_token : str or None
        STS session token for temporary credentials. Hidden from ``repr()``.
    topic : str
        Wildcard topic covering every vehicle, e.g. ``vehicles/+/position``.
        The vehicle id must be the second topic level.
    reconnect_period : float
        Constant delay in seconds between a connection error and the next
        connection attempt.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    client_id_prefix : str
        Prefix for the random MQTT client id.
    demo_mode : bool
        Feed the store from the built-in simulated fleet instead of AWS IoT.
    demo_interval : float
        Seconds between simulated position batches in demo mode.
    """

    host: str = ""
    region: str = ""
    access_key_id: str = ""
    secret_access_key: str = dataclasses.field(default="", repr=False)
    session_token: str | None = dataclasses.field(default=None, repr=False)
    topic: str = DEFAULT_TOPIC
    reconnect_period: float = DEFAULT_RECONNECT_PERIOD
    mqtt_keepalive: int = DEFAULT_MQTT_KEEPALIVE
    client_id_prefix: str = DEFAULT_CLIENT_ID_PREFIX
    demo_mode: bool = False
    demo_interval: float = DEFAULT_DEMO_INTERVAL

    def credential(self) -> Credential:
        """Credential built from the configured key pair."""
        return Credential(
            access_key_id=self.access_key_id,
            secret_access_key=self.secret_access_key,
            session_token=self.session_token,
        )

    def validate(self) -> None:
        """Raise :class:`VeloConfigError` if the configuration cannot connect.

        Only field presence and ranges are checked here; host and region
        syntax is enforced by the signer.
        """
        if self.reconnect_period <= 0:
            raise VeloConfigError("reconnect_period must be positive")
        if not self.topic.strip():
            raise VeloConfigError("topic must be non-empty")
        if self.demo_mode:
            if self.demo_interval <= 0:
                raise VeloConfigError("demo_interval must be positive")
            return
        missing = [
            name
            for name in ("host", "region", "access_key_id", "secret_access_key")
            if not str(getattr(self, name) or "").strip()
        ]
        if missing:
            raise VeloConfigError(f"missing configuration: {', '.join(missing)}")

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetConfig:
        """Create configuration from environment variables.

        Reads ``VELO_IOT_ENDPOINT``, ``VELO_REGION``, ``VELO_ACCESS_KEY_ID``,
        ``VELO_SECRET_ACCESS_KEY`` and optional ``VELO_*`` variables.
        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        FleetConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "VELO_IOT_ENDPOINT": "host",
            "VELO_REGION": "region",
            "VELO_ACCESS_KEY_ID": "access_key_id",
            "VELO_SECRET_ACCESS_KEY": "secret_access_key",
            "VELO_SESSION_TOKEN": "session_token",
            "VELO_TOPIC": "topic",
            "VELO_CLIENT_ID_PREFIX": "client_id_prefix",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        period_env = env.get("VELO_RECONNECT_PERIOD")
        if period_env is not None and "reconnect_period" not in overrides:
            config_kwargs["reconnect_period"] = float(period_env)

        keepalive_env = env.get("VELO_MQTT_KEEPALIVE")
        if keepalive_env is not None and "mqtt_keepalive" not in overrides:
            config_kwargs["mqtt_keepalive"] = int(keepalive_env)

        if "demo_mode" not in overrides:
            config_kwargs["demo_mode"] = _env_bool(env.get("VELO_DEMO_MODE"), False)

        interval_env = env.get("VELO_DEMO_INTERVAL")
        if interval_env is not None and "demo_interval" not in overrides:
            config_kwargs["demo_interval"] = float(interval_env)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
