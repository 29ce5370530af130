"""Per-account relay connection shared by every handler of that account."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from pyvoicebridge._constants import (
    COMMAND_TOPIC_PREFIX,
    MESSAGE_TOPIC_PREFIX,
    response_topic,
    state_topic,
)
from pyvoicebridge._mqtt import (
    BridgeMqttRuntime,
    ConnectionStatus,
    MqttConnectOptions,
    MqttEvent,
    build_connect_options,
)
from pyvoicebridge._redact import redact_for_log
from pyvoicebridge.config import BridgeConfig
from pyvoicebridge.models.wire import AckResponse, StateUpdate
from pyvoicebridge.translate import directive_endpoint_id

_logger = logging.getLogger(__name__)


class MqttRuntime(Protocol):
    """Structural runtime interface, so tests can pass a fake broker."""

    @property
    def is_connected(self) -> bool: ...

    def start(self, options: MqttConnectOptions) -> None: ...

    def publish(self, topic: str, payload: dict[str, Any]) -> bool: ...

    def stop(self) -> None: ...


RuntimeFactory = Callable[..., MqttRuntime]


@runtime_checkable
class RegisteredHandler(Protocol):
    """Anything that can be registered with an :class:`AccountSession`."""

    handler_id: str
    device: str

    def status(self, status: ConnectionStatus) -> None: ...


@runtime_checkable
class CommandTarget(RegisteredHandler, Protocol):
    """A registered handler that receives directives for its device."""

    def command(self, message: Mapping[str, Any]) -> None: ...


class AccountSession:
    """Relay connection of one account, reference-counted by its handlers.

    The MQTT connection is opened when the first handler registers and
    closed when the last one deregisters. Inbound directives are routed to
    every registered command handler bound to the addressed device.

    Parameters
    ----------
    config : BridgeConfig
        Account configuration.
    runtime_factory : RuntimeFactory or None
        Builds the MQTT runtime. Defaults to :class:`BridgeMqttRuntime`.
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        runtime_factory: RuntimeFactory | None = None,
    ) -> None:
        self._config = config
        self._runtime_factory: RuntimeFactory = runtime_factory or BridgeMqttRuntime
        self._runtime: MqttRuntime | None = None
        self._handlers: dict[str, RegisteredHandler] = {}
        self._status = ConnectionStatus.DISCONNECTED

    @property
    def config(self) -> BridgeConfig:
        return self._config

    @property
    def account_id(self) -> str:
        return self._config.resolved_account_id

    @property
    def username(self) -> str:
        return self._config.username

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._runtime is not None and self._runtime.is_connected

    @property
    def handlers(self) -> list[RegisteredHandler]:
        return list(self._handlers.values())

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, handler: RegisteredHandler) -> None:
        """Add *handler*; the first registration opens the connection."""
        self._handlers[handler.handler_id] = handler
        if len(self._handlers) == 1 and self._runtime is None:
            self.connect()

    async def deregister(self, handler: RegisteredHandler) -> None:
        """Remove *handler*; the last deregistration closes the connection."""
        self._handlers.pop(handler.handler_id, None)
        if not self._handlers:
            await self.disconnect()

    def connect(self) -> None:
        loop = asyncio.get_running_loop()
        runtime = self._runtime_factory(
            loop=loop,
            on_event=self._on_event,
            on_status=self.set_status,
            logger=_logger,
        )
        self._runtime = runtime
        runtime.start(build_connect_options(self._config))

    async def disconnect(self) -> None:
        runtime = self._runtime
        self._runtime = None
        if runtime is None:
            return
        try:
            await asyncio.get_running_loop().run_in_executor(None, runtime.stop)
        except Exception:
            _logger.debug("MQTT runtime stop failed", exc_info=True)
        self._status = ConnectionStatus.DISCONNECTED

    async def close(self) -> None:
        self._handlers.clear()
        await self.disconnect()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def set_status(self, status: ConnectionStatus) -> None:
        """Broadcast the connection status to every registered handler."""
        self._status = status
        for handler in list(self._handlers.values()):
            try:
                handler.status(status)
            except Exception:
                _logger.debug("status callback failed for %s", handler.handler_id, exc_info=True)

    def _on_event(self, event: MqttEvent) -> None:
        kind = event.topic.split("/", 1)[0]
        if kind == MESSAGE_TOPIC_PREFIX:
            self._on_alert(event.payload)
        elif kind == COMMAND_TOPIC_PREFIX:
            self.dispatch(event.payload)
        else:
            _logger.debug("Ignoring relay message on topic %s", event.topic)

    def _on_alert(self, payload: Mapping[str, Any]) -> None:
        severity = payload.get("severity")
        alert = payload.get("message")
        if severity == "warn":
            _logger.warning("%s: relay alert: %s", self.username, alert)
        elif severity == "error":
            _logger.error("%s: relay alert: %s", self.username, alert)
        else:
            _logger.debug("%s: relay message severity=%s: %s", self.username, severity, alert)

    def dispatch(self, message: Mapping[str, Any]) -> int:
        """Hand a raw directive to the command handlers of its device.

        Returns the number of handlers that received it.
        """
        endpoint_id = directive_endpoint_id(message)
        if not endpoint_id:
            _logger.debug("Directive without endpoint id: %s", redact_for_log(message))
            return 0
        delivered = 0
        for handler in list(self._handlers.values()):
            if not isinstance(handler, CommandTarget) or handler.device != endpoint_id:
                continue
            try:
                handler.command(message)
                delivered += 1
            except Exception:
                _logger.warning("Command handler %s failed", handler.handler_id, exc_info=True)
        if not delivered:
            _logger.debug("No command handler registered for endpoint %s", endpoint_id)
        return delivered

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _publish(self, topic: str, payload: dict[str, Any]) -> bool:
        runtime = self._runtime
        if runtime is None or not runtime.is_connected:
            _logger.debug("Not connected, dropping publish to %s", topic)
            return False
        return runtime.publish(topic, payload)

    def acknowledge(self, message_id: str, device: str, success: bool) -> bool:
        """Publish the outcome of a directive to ``response/<account>/<device>``."""
        response = AckResponse(message_id=message_id, success=success)
        topic = response_topic(self.username, device)
        _logger.debug("Sending response topic=%s message=%s", topic, response.to_wire())
        return self._publish(topic, response.to_wire())

    def update_state(
        self,
        message_id: str,
        endpoint_id: str,
        payload: Mapping[str, Any],
        device_name: str = "",
    ) -> bool:
        """Publish a proactive state report to ``state/<account>/<device>``."""
        state = payload.get("state") or {}
        update = StateUpdate(
            message_id=message_id,
            payload={"state": {key: value for key, value in state.items() if value is not None}},
        )
        topic = state_topic(self.username, endpoint_id)
        _logger.info("%s: sending state update, topic: %s message: %s", device_name or endpoint_id, topic, update.to_wire())
        return self._publish(topic, update.to_wire())
