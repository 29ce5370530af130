"""Account configuration for pyvoicebridge."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyvoicebridge._constants import (
    DEFAULT_DWELL_TIME,
    DEFAULT_MQTT_KEEPALIVE,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_TLS_PORT,
    DEFAULT_RECONNECT_PERIOD,
    DEFAULT_SWEEP_INTERVAL,
)
from pyvoicebridge.exceptions import BridgeConfigError


def _env_float(value: str | None, name: str) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise BridgeConfigError(f"{name} must be a number, got {value!r}") from exc


def _env_int(value: str | None, name: str) -> int | None:
    parsed = _env_float(value, name)
    if parsed is None:
        return None
    return int(parsed)


@dataclasses.dataclass(frozen=True)
class BridgeConfig:
    """Configuration of one cloud relay account.

    Parameters
    ----------
    username : str
        Account user name on the cloud relay. Also used as the MQTT
        topic namespace (``command/<username>/#``).
    password : str
        Account password, used for both MQTT and the web API.
    mqtt_server : str
        MQTT broker host name.
    mqtt_port : int or None
        MQTT broker port. ``None`` picks 8883 when TLS material is
        configured and 1883 otherwise.
    mqtt_ca : str
        Path to the CA bundle. A non-empty value enables TLS.
    mqtt_cert : str
        Path to the client certificate (TLS only).
    mqtt_key : str
        Path to the client private key (TLS only).
    webapi_url : str
        Host name of the web API serving ``/api/v1/devices``.
    account_id : str
        Identifier of this account configuration inside the process.
        Defaults to ``username``.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    reconnect_period : float
        Seconds between MQTT reconnect attempts.
    sweep_interval : float
        Seconds between two sweeps of a state handler's pending updates.
    dwell_time : float
        Minimum age in seconds a pending update must reach before it is
        published.
    """

    username: str
    password: str
    mqtt_server: str = ""
    mqtt_port: int | None = None
    mqtt_ca: str = ""
    mqtt_cert: str = ""
    mqtt_key: str = ""
    webapi_url: str = ""
    account_id: str = ""
    mqtt_keepalive: int = DEFAULT_MQTT_KEEPALIVE
    reconnect_period: float = DEFAULT_RECONNECT_PERIOD
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL
    dwell_time: float = DEFAULT_DWELL_TIME

    @property
    def use_tls(self) -> bool:
        """Whether the MQTT connection is made over TLS."""
        return bool(self.mqtt_ca)

    @property
    def resolved_mqtt_port(self) -> int:
        if self.mqtt_port:
            return self.mqtt_port
        return DEFAULT_MQTT_TLS_PORT if self.use_tls else DEFAULT_MQTT_PORT

    @property
    def resolved_account_id(self) -> str:
        return self.account_id or self.username

    def validate(self) -> None:
        """Raise :class:`BridgeConfigError` when the account cannot connect."""
        if not self.username:
            raise BridgeConfigError("username is required")
        if not self.password:
            raise BridgeConfigError("password is required")
        if not self.mqtt_server:
            raise BridgeConfigError("mqtt_server is required")
        if self.use_tls and not (self.mqtt_cert and self.mqtt_key):
            raise BridgeConfigError("mqtt_cert and mqtt_key are required when mqtt_ca is set")
        if self.sweep_interval <= 0:
            raise BridgeConfigError("sweep_interval must be positive")
        if self.dwell_time < 0:
            raise BridgeConfigError("dwell_time must not be negative")

    @classmethod
    def from_env(cls, **overrides: Any) -> BridgeConfig:
        """Create configuration from environment variables.

        Reads ``VOICEBRIDGE_USERNAME``, ``VOICEBRIDGE_PASSWORD`` and the
        optional ``VOICEBRIDGE_*`` variables listed below. Explicit
        keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        BridgeConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "VOICEBRIDGE_USERNAME": "username",
            "VOICEBRIDGE_PASSWORD": "password",
            "VOICEBRIDGE_MQTT_SERVER": "mqtt_server",
            "VOICEBRIDGE_MQTT_CA": "mqtt_ca",
            "VOICEBRIDGE_MQTT_CERT": "mqtt_cert",
            "VOICEBRIDGE_MQTT_KEY": "mqtt_key",
            "VOICEBRIDGE_WEBAPI_URL": "webapi_url",
            "VOICEBRIDGE_ACCOUNT_ID": "account_id",
        }
        config_kwargs: dict[str, Any] = {"username": "", "password": ""}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # numeric fields, handled separately
        port = _env_int(env.get("VOICEBRIDGE_MQTT_PORT"), "VOICEBRIDGE_MQTT_PORT")
        if port is not None and "mqtt_port" not in overrides:
            config_kwargs["mqtt_port"] = port

        keepalive = _env_int(env.get("VOICEBRIDGE_MQTT_KEEPALIVE"), "VOICEBRIDGE_MQTT_KEEPALIVE")
        if keepalive is not None and "mqtt_keepalive" not in overrides:
            config_kwargs["mqtt_keepalive"] = keepalive

        reconnect = _env_float(env.get("VOICEBRIDGE_RECONNECT_PERIOD"), "VOICEBRIDGE_RECONNECT_PERIOD")
        if reconnect is not None and "reconnect_period" not in overrides:
            config_kwargs["reconnect_period"] = reconnect

        sweep = _env_float(env.get("VOICEBRIDGE_SWEEP_INTERVAL"), "VOICEBRIDGE_SWEEP_INTERVAL")
        if sweep is not None and "sweep_interval" not in overrides:
            config_kwargs["sweep_interval"] = sweep

        dwell = _env_float(env.get("VOICEBRIDGE_DWELL_TIME"), "VOICEBRIDGE_DWELL_TIME")
        if dwell is not None and "dwell_time" not in overrides:
            config_kwargs["dwell_time"] = dwell

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
