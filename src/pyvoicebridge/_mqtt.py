"""Internal MQTT connection options, parsing, and runtime helpers."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from pyvoicebridge._constants import command_topic, message_topic
from pyvoicebridge._redact import redact_for_log
from pyvoicebridge.config import BridgeConfig
from pyvoicebridge.exceptions import BridgeError


class ConnectionStatus(enum.StrEnum):
    """Relay connection state broadcast to registered handlers."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class MqttConnectOptions:
    """Broker data required to connect one account to the relay."""

    host: str
    port: int
    client_id: str
    username: str
    password: str
    topics: tuple[str, ...]
    ca_certs: str = ""
    certfile: str = ""
    keyfile: str = ""
    keepalive: int = 60
    reconnect_period: float = 5.0

    @property
    def use_tls(self) -> bool:
        return bool(self.ca_certs)


@dataclass(frozen=True)
class MqttEvent:
    """Parsed inbound relay message."""

    topic: str
    payload: dict[str, Any]


def build_client_id(username: str) -> str:
    """Per-process unique client id; the broker rejects duplicates."""
    return f"{username}-{uuid.uuid4()}"


def build_connect_options(config: BridgeConfig) -> MqttConnectOptions:
    """Derive connection details for *config*'s account."""
    return MqttConnectOptions(
        host=config.mqtt_server,
        port=config.resolved_mqtt_port,
        client_id=build_client_id(config.username),
        username=config.username,
        password=config.password,
        topics=(command_topic(config.username), message_topic(config.username)),
        ca_certs=config.mqtt_ca,
        certfile=config.mqtt_cert,
        keyfile=config.mqtt_key,
        keepalive=config.mqtt_keepalive,
        reconnect_period=config.reconnect_period,
    )


def decode_mqtt_payload(payload: bytes) -> dict[str, Any]:
    """Parse MQTT payload bytes into a JSON object."""
    parsed = json.loads(payload.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise BridgeError("MQTT payload is not a JSON object")
    return parsed


class BridgeMqttRuntime:
    """Threaded paho-mqtt runtime that emits parsed events onto an asyncio loop.

    paho's network thread only ever calls ``loop.call_soon_threadsafe``;
    *on_event* and *on_status* always run on the event loop thread.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        on_event: Callable[[MqttEvent], None],
        on_status: Callable[[ConnectionStatus], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._on_event = on_event
        self._on_status = on_status
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._topics: Sequence[str] = ()
        self._host = ""

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    @property
    def is_connected(self) -> bool:
        client = self._client
        return client is not None and client.is_connected()

    def _emit_status(self, status: ConnectionStatus) -> None:
        if self._on_status is not None:
            self._loop.call_soon_threadsafe(self._on_status, status)

    def start(self, options: MqttConnectOptions) -> None:
        """Connect in the background and subscribe on every (re)connect."""
        self.stop()
        self._logger.info(
            "Connecting to relay MQTT server %s:%s, account username: %s",
            options.host,
            options.port,
            options.username,
        )
        self._logger.debug("MQTT client_id=%s tls=%s topics=%s", options.client_id, options.use_tls, options.topics)

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=options.client_id,
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(self._logger)
        client.username_pw_set(options.username, options.password)
        if options.use_tls:
            client.tls_set(
                ca_certs=options.ca_certs,
                certfile=options.certfile or None,
                keyfile=options.keyfile or None,
            )
        period = max(1, int(options.reconnect_period))
        client.reconnect_delay_set(min_delay=period, max_delay=period)

        self._topics = options.topics
        self._host = options.host

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect to %s failed: %s", self._host, reason_code)
                self._emit_status(ConnectionStatus.DISCONNECTED)
                return
            self._logger.info("Connected to relay MQTT server %s", self._host)
            for topic in self._topics:
                self._logger.debug("MQTT subscribing topic=%s", topic)
                c.subscribe(topic, qos=0)
            self._emit_status(ConnectionStatus.CONNECTED)

        def on_connect_fail(_c: mqtt.Client, _userdata: Any) -> None:
            self._logger.warning("MQTT connection to %s could not be established", self._host)
            self._emit_status(ConnectionStatus.DISCONNECTED)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                parsed = decode_mqtt_payload(msg.payload)
                self._logger.debug("Received PUBLISH topic=%s parsed=%s", msg.topic, redact_for_log(parsed))
                self._loop.call_soon_threadsafe(self._on_event, MqttEvent(topic=msg.topic, payload=parsed))
            except Exception:
                self._logger.debug("MQTT payload parse failure topic=%s", msg.topic, exc_info=True)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if not self._running:
                return
            self._emit_status(ConnectionStatus.DISCONNECTED)
            self._logger.warning("Re-connecting to relay MQTT server %s (%s)", self._host, reason_code)
            self._emit_status(ConnectionStatus.RECONNECTING)

        client.on_connect = on_connect
        client.on_connect_fail = on_connect_fail
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        self._client = client
        self._running = True
        client.connect_async(options.host, options.port, keepalive=options.keepalive)
        client.loop_start()
        self._logger.debug("MQTT network loop started")

    def publish(self, topic: str, payload: dict[str, Any]) -> bool:
        """Publish *payload* as JSON; ``False`` when not connected."""
        client = self._client
        if client is None or not client.is_connected():
            return False
        info = client.publish(topic, json.dumps(payload), qos=0)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._logger.debug("MQTT publish to %s failed rc=%s", topic, info.rc)
            return False
        return True

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._topics = ()

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
