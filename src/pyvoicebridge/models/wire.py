"""Messages published to the cloud relay."""

from __future__ import annotations

from typing import Any

from pyvoicebridge.models._base import BridgeBaseModel


class AckResponse(BridgeBaseModel):
    """Outcome of a directive, published on ``response/<account>/<device>``."""

    message_id: str
    """Message id of the directive being answered."""
    success: bool
    """Whether the device carried out the directive."""


class StateUpdate(BridgeBaseModel):
    """Proactive state report, published on ``state/<account>/<device>``."""

    message_id: str
    """Pending-update id the report was buffered under."""
    payload: dict[str, Any]
    """Sparse ``{"state": {...}}`` object, keys in wire (camelCase) form."""
