"""Device directory entry."""

from __future__ import annotations

from pydantic import ConfigDict

from pyvoicebridge.models._base import BridgeBaseModel


class Device(BridgeBaseModel):
    """One device of an account as listed by the web API.

    Only the identifier and display name are typed. Every other key the
    directory returns (capabilities, display categories, attributes) is
    kept as an extra field and round-trips through :meth:`to_wire`.
    """

    model_config = ConfigDict(extra="allow")

    endpoint_id: str
    """Endpoint identifier, matched against inbound directives."""
    friendly_name: str = ""
    """Name the user gave the device in the voice assistant."""
