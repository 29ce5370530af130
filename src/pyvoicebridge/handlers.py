"""Handlers wired between the host runtime and an account session.

* :class:`CommandHandler` receives directives for one device and emits
  :class:`CommandMessage` objects downstream.
* :class:`StateHandler` accepts state payloads (or command messages to
  confirm) for one device and reports them through a rate-limited
  :class:`StateCoalescer`.
* :class:`AckHandler` publishes the outcome of a directive.

Every handler looks its account up in an :class:`AccountRegistry`.
Failures are logged and the single message is dropped; nothing raises
back into the caller.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Mapping
from typing import Any

from pyvoicebridge._constants import DEFAULT_DWELL_TIME, DEFAULT_SWEEP_INTERVAL
from pyvoicebridge._mqtt import ConnectionStatus
from pyvoicebridge._redact import redact_for_log
from pyvoicebridge.coalescer import StateCoalescer
from pyvoicebridge.exceptions import (
    BridgeConfigError,
    BridgeTransportUnavailableError,
    BridgeUnsupportedCommandError,
)
from pyvoicebridge.models.command import CommandMessage
from pyvoicebridge.models.state import RejectReason, SubmitResult
from pyvoicebridge.registry import AccountRegistry
from pyvoicebridge.session import AccountSession
from pyvoicebridge.translate import STATELESS_COMMANDS, command_state_payload, parse_directive

_logger = logging.getLogger(__name__)

#: Reasons reported at DEBUG rather than WARNING.
_QUIET_REJECTIONS: frozenset[RejectReason] = frozenset(
    {RejectReason.DUPLICATE, RejectReason.STATELESS_COMMAND, RejectReason.HANDLER_CLOSED}
)


def _message_field(message: CommandMessage | Mapping[str, Any], name: str) -> Any:
    """Read *name* from a model, or from a mapping by snake or camel key."""
    if isinstance(message, CommandMessage):
        return getattr(message, name)
    if name in message:
        return message[name]
    head, *rest = name.split("_")
    return message.get(head + "".join(part.title() for part in rest))


class _AccountHandler:
    """Registration plumbing shared by the per-device handlers."""

    def __init__(self, registry: AccountRegistry, *, account_id: str, device: str, name: str = "") -> None:
        self.handler_id = uuid.uuid4().hex
        self.device = device
        self.name = name or device
        self.account_id = account_id
        self.last_status: ConnectionStatus | None = None
        self._registry = registry
        self._registered: AccountSession | None = None

    @property
    def session(self) -> AccountSession:
        return self._registry.get(self.account_id)

    def _register(self) -> bool:
        try:
            session = self.session
        except BridgeConfigError:
            _logger.warning("%s: unable to register handler, account %s not configured", self.name, self.account_id)
            return False
        session.register(self)
        self._registered = session
        return True

    async def _deregister(self) -> None:
        session = self._registered
        self._registered = None
        if session is None:
            return
        # a reconfigured account carries its handlers over to a new session
        current = self._registry.get(self.account_id) if self.account_id in self._registry else None
        if current is not None and self.handler_id in {h.handler_id for h in current.handlers}:
            session = current
        await session.deregister(self)

    def status(self, status: ConnectionStatus) -> None:
        self.last_status = status
        _logger.debug("%s: relay %s", self.name, status)


class CommandHandler(_AccountHandler):
    """Per-device receiver of voice-assistant directives.

    Parameters
    ----------
    registry : AccountRegistry
        Where the handler's account session is looked up.
    account_id : str
        Account the device belongs to.
    device : str
        Endpoint id this handler is bound to.
    output : Callable[[CommandMessage], None]
        Receives every translated command.
    topic : str
        Copied onto every emitted message.
    name : str
        Device display name, copied onto every emitted message.
    acknowledge : bool
        Publish a success acknowledgment as soon as a directive is
        translated, instead of leaving it to an :class:`AckHandler`.
    """

    def __init__(
        self,
        registry: AccountRegistry,
        *,
        account_id: str,
        device: str,
        output: Callable[[CommandMessage], None],
        topic: str = "",
        name: str = "",
        acknowledge: bool = False,
    ) -> None:
        super().__init__(registry, account_id=account_id, device=device, name=name)
        self.topic = topic
        self.acknowledge = acknowledge
        self._output = output

    def start(self) -> bool:
        return self._register()

    async def close(self) -> None:
        await self._deregister()

    def command(self, message: Mapping[str, Any]) -> CommandMessage | None:
        """Translate a raw directive and forward it downstream."""
        try:
            directive = parse_directive(message)
        except BridgeUnsupportedCommandError as exc:
            _logger.warning("%s: %s", self.name, exc)
            return None

        translation = directive.translation
        msg = CommandMessage(
            topic=self.topic,
            name=self.name,
            message_id=directive.message_id,
            endpoint_id=directive.endpoint_id,
            conf_id=self.account_id,
            command=translation.command,
            payload=translation.payload,
            params=directive.params,
            extra_info=directive.extra_info,
            temperature_scale=translation.temperature_scale,
            acknowledge=self.acknowledge,
        )
        _logger.debug("%s: %s directive %s -> %s", self.name, directive.vendor, msg.message_id, msg.command)
        self._output(msg)

        if self.acknowledge and directive.message_id:
            try:
                self.session.acknowledge(directive.message_id, self.device, True)
            except BridgeConfigError:
                _logger.warning("%s: cannot acknowledge, account %s not configured", self.name, self.account_id)
        return msg


class StateHandler(_AccountHandler):
    """Per-device state reporter.

    Input is either a direct ``{"payload": {"state": {...}}}`` message,
    which is implicitly acknowledged, or a command message whose state is
    derived from the command. Sweep timing defaults to the account
    configuration.
    """

    def __init__(
        self,
        registry: AccountRegistry,
        *,
        account_id: str,
        device: str,
        name: str = "",
        sweep_interval: float | None = None,
        dwell_time: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(registry, account_id=account_id, device=device, name=name)
        config = registry.get(account_id).config if account_id in registry else None
        self.coalescer = StateCoalescer(
            device,
            self._publish,
            sweep_interval=(
                sweep_interval if sweep_interval is not None else (config.sweep_interval if config else DEFAULT_SWEEP_INTERVAL)
            ),
            dwell_time=dwell_time if dwell_time is not None else (config.dwell_time if config else DEFAULT_DWELL_TIME),
            clock=clock,
            name=self.name,
        )

    def start(self) -> bool:
        """Register with the account and, once registered, start the periodic sweep."""
        if not self._register():
            return False
        self.coalescer.start()
        return True

    async def close(self) -> None:
        await self.coalescer.close()
        await self._deregister()

    def _publish(self, update_id: str, endpoint_id: str, payload: dict[str, Any]) -> bool:
        try:
            session = self.session
        except BridgeConfigError as exc:
            raise BridgeTransportUnavailableError(str(exc)) from exc
        return session.update_state(update_id, endpoint_id, payload, self.name)

    def input(self, message: CommandMessage | Mapping[str, Any]) -> SubmitResult:
        """Evaluate one input message and buffer the state it reports."""
        if isinstance(message, CommandMessage):
            command: str | None = message.command
        else:
            command = message.get("command")
        payload = _message_field(message, "payload")

        if command:
            if command in STATELESS_COMMANDS:
                _logger.info("%s: 'stateless' command %s received, dropping message", self.name, command)
                return SubmitResult.rejected(RejectReason.STATELESS_COMMAND, command)
            state_payload = command_state_payload(command, payload)
            if state_payload is None:
                _logger.warning("%s: unexpected command %r in state input, evaluating payload as given", self.name, command)
            else:
                payload = state_payload
            acknowledge = _message_field(message, "acknowledge")
        else:
            acknowledge = True

        result = self.coalescer.submit(payload, acknowledge, from_command=bool(command))
        if result.accepted:
            return result
        if result.reason in _QUIET_REJECTIONS:
            _logger.debug("%s: state update dropped (%s)", self.name, result.reason)
        else:
            _logger.warning(
                "%s: state update rejected (%s) %s: %s",
                self.name,
                result.reason,
                result.detail,
                redact_for_log(payload),
            )
        return result


class AckHandler:
    """Publishes the outcome of a directive on behalf of the user flow.

    Needs the message id, endpoint id and account id of the
    command being answered; anything missing one of them is ignored. Only a
    boolean ``True`` acknowledge counts as success.
    """

    def __init__(self, registry: AccountRegistry) -> None:
        self._registry = registry

    def input(self, message: CommandMessage | Mapping[str, Any]) -> bool:
        message_id = _message_field(message, "message_id")
        endpoint_id = _message_field(message, "endpoint_id")
        account_id = _message_field(message, "conf_id")
        if not (message_id and endpoint_id and account_id):
            _logger.debug("Ignoring response without message, endpoint or account id")
            return False
        try:
            session = self._registry.get(account_id)
        except BridgeConfigError:
            _logger.warning("Cannot acknowledge %s: account %s not configured", message_id, account_id)
            return False
        success = _message_field(message, "acknowledge") is True
        return session.acknowledge(message_id, endpoint_id, success)
