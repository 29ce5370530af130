"""Internal command message emitted by a command handler."""

from __future__ import annotations

from typing import Any

from pyvoicebridge.models._base import BridgeBaseModel


class CommandMessage(BridgeBaseModel):
    """A voice-assistant directive translated to the bridge's command set.

    This is what a command handler forwards downstream, and what a state
    handler accepts back as input when it should confirm the resulting
    device state.
    """

    topic: str = ""
    """Handler topic configured on the command handler."""
    name: str = ""
    """Name of the device the handler is bound to."""
    message_id: str = ""
    """Vendor message id, used to key the acknowledgment."""
    endpoint_id: str = ""
    """Device the directive targets."""
    conf_id: str = ""
    """Account configuration the directive arrived on."""
    command: str
    """Internal command name, e.g. ``"SetBrightness"``."""
    payload: Any = None
    """Command argument; its type depends on ``command``."""
    params: dict[str, Any] | None = None
    """Raw Google command parameters (Google directives only)."""
    extra_info: dict[str, Any] | None = None
    """Alexa endpoint cookie (Alexa directives only)."""
    temperature_scale: str | None = None
    """``CELSIUS``/``FAHRENHEIT`` for thermostat commands."""
    acknowledge: bool = False
    """Whether a success acknowledgment was published for this directive."""
