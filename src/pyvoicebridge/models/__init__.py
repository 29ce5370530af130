"""Data models for relay payloads and device state."""

from pyvoicebridge.models._base import BridgeBaseModel
from pyvoicebridge.models.command import CommandMessage
from pyvoicebridge.models.device import Device
from pyvoicebridge.models.state import (
    COLOR_FIELDS,
    DELTA_FIELDS,
    FIELD_RULES,
    FieldKind,
    FieldRule,
    FieldShape,
    RejectReason,
    StateField,
    StateValidation,
    SubmitResult,
    field_shape,
    has_delta_field,
    validate_state,
)
from pyvoicebridge.models.wire import AckResponse, StateUpdate

__all__ = [
    "COLOR_FIELDS",
    "DELTA_FIELDS",
    "FIELD_RULES",
    "AckResponse",
    "BridgeBaseModel",
    "CommandMessage",
    "Device",
    "FieldKind",
    "FieldRule",
    "FieldShape",
    "RejectReason",
    "StateField",
    "StateValidation",
    "SubmitResult",
    "field_shape",
    "has_delta_field",
    "validate_state",
]
