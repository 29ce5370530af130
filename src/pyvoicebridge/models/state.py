"""Device state fields, their validation table, and submission results.

Every state field the relay understands is a :class:`StateField` member.
A payload's *field-shape* is the frozenset of members present in its
``state`` object; the coalescer groups pending updates by that shape.
"""

from __future__ import annotations

import enum
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


class StateField(enum.StrEnum):
    """Recognised keys of a ``payload.state`` object."""

    BRIGHTNESS = "brightness"
    COLOR_BRIGHTNESS = "colorBrightness"
    COLOR_HUE = "colorHue"
    COLOR_SATURATION = "colorSaturation"
    COLOR_TEMPERATURE = "colorTemperature"
    CONTACT = "contact"
    INPUT = "input"
    LOCK = "lock"
    MODE = "mode"
    MOTION = "motion"
    MUTE = "mute"
    PERCENTAGE = "percentage"
    PERCENTAGE_DELTA = "percentageDelta"
    PLAYBACK = "playback"
    POWER = "power"
    RANGE_VALUE = "rangeValue"
    RANGE_VALUE_DELTA = "rangeValueDelta"
    TARGET_SETPOINT_DELTA = "targetSetpointDelta"
    TEMPERATURE = "temperature"
    THERMOSTAT_MODE = "thermostatMode"
    THERMOSTAT_SET_POINT = "thermostatSetPoint"
    VOLUME = "volume"
    VOLUME_DELTA = "volumeDelta"


FieldShape = frozenset[StateField]

#: Relative adjustments; repeating one is meaningful ("nudge again").
DELTA_FIELDS: frozenset[StateField] = frozenset(
    {
        StateField.PERCENTAGE_DELTA,
        StateField.TARGET_SETPOINT_DELTA,
        StateField.VOLUME_DELTA,
    }
)

#: Hue, saturation and brightness must always travel together.
COLOR_FIELDS: frozenset[StateField] = frozenset(
    {
        StateField.COLOR_HUE,
        StateField.COLOR_SATURATION,
        StateField.COLOR_BRIGHTNESS,
    }
)


class FieldKind(enum.Enum):
    NUMBER = "number"
    STRING = "string"
    CHOICE = "choice"
    SWITCH = "switch"


@dataclass(frozen=True, slots=True)
class FieldRule:
    """Type and range contract of one state field."""

    kind: FieldKind
    minimum: float | None = None
    maximum: float | None = None
    choices: frozenset[str] = field(default_factory=frozenset)

    def accepts(self, value: Any) -> bool:
        if self.kind is FieldKind.NUMBER:
            if not _is_number(value):
                return False
            if self.minimum is not None and value < self.minimum:
                return False
            return not (self.maximum is not None and value > self.maximum)
        if self.kind is FieldKind.STRING:
            return isinstance(value, str)
        if self.kind is FieldKind.CHOICE:
            return isinstance(value, str) and value in self.choices
        # SWITCH: "ON"/"OFF" strings, or an already-normalised bool
        return isinstance(value, bool) or value in ("ON", "OFF")


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


_FIELD_NAMES: frozenset[str] = frozenset(member.value for member in StateField)

_SENSOR = frozenset({"DETECTED", "NOT_DETECTED"})
_ON_OFF = frozenset({"ON", "OFF"})

FIELD_RULES: dict[StateField, FieldRule] = {
    StateField.BRIGHTNESS: FieldRule(FieldKind.NUMBER, 0, 100),
    StateField.COLOR_HUE: FieldRule(FieldKind.NUMBER, 0, 360),
    StateField.COLOR_SATURATION: FieldRule(FieldKind.NUMBER, 0, 1),
    StateField.COLOR_BRIGHTNESS: FieldRule(FieldKind.NUMBER, 0, 1),
    StateField.COLOR_TEMPERATURE: FieldRule(FieldKind.NUMBER, 0, 10000),
    StateField.CONTACT: FieldRule(FieldKind.CHOICE, choices=_SENSOR),
    StateField.INPUT: FieldRule(FieldKind.STRING),
    StateField.LOCK: FieldRule(FieldKind.CHOICE, choices=frozenset({"LOCKED", "UNLOCKED"})),
    StateField.MODE: FieldRule(FieldKind.STRING),
    StateField.MOTION: FieldRule(FieldKind.CHOICE, choices=_SENSOR),
    StateField.MUTE: FieldRule(FieldKind.SWITCH),
    StateField.PERCENTAGE: FieldRule(FieldKind.NUMBER, 0, 100),
    StateField.PERCENTAGE_DELTA: FieldRule(FieldKind.NUMBER, -100, 100),
    StateField.PLAYBACK: FieldRule(FieldKind.STRING),
    StateField.POWER: FieldRule(FieldKind.CHOICE, choices=_ON_OFF),
    StateField.RANGE_VALUE: FieldRule(FieldKind.NUMBER),
    StateField.RANGE_VALUE_DELTA: FieldRule(FieldKind.NUMBER),
    StateField.TARGET_SETPOINT_DELTA: FieldRule(FieldKind.NUMBER),
    StateField.TEMPERATURE: FieldRule(FieldKind.NUMBER),
    StateField.THERMOSTAT_MODE: FieldRule(FieldKind.STRING),
    StateField.THERMOSTAT_SET_POINT: FieldRule(FieldKind.NUMBER),
    StateField.VOLUME: FieldRule(FieldKind.NUMBER),
    StateField.VOLUME_DELTA: FieldRule(FieldKind.NUMBER),
}


class RejectReason(enum.StrEnum):
    """Why a state submission was not buffered."""

    MISSING_PAYLOAD = "missing_payload"
    MISSING_STATE = "missing_state"
    MISSING_ACKNOWLEDGE = "missing_acknowledge"
    UNACKNOWLEDGED = "unacknowledged"
    INVALID_FIELD_TYPE = "invalid_field_type"
    CONFLICTING_COLOR_FIELDS = "conflicting_color_fields"
    DUPLICATE = "duplicate"
    STATELESS_COMMAND = "stateless_command"
    HANDLER_CLOSED = "handler_closed"


@dataclass(frozen=True, slots=True)
class SubmitResult:
    """Outcome of :meth:`StateCoalescer.submit`."""

    accepted: bool
    update_id: str | None = None
    reason: RejectReason | None = None
    detail: str = ""

    @classmethod
    def ok(cls, update_id: str) -> SubmitResult:
        return cls(accepted=True, update_id=update_id)

    @classmethod
    def rejected(cls, reason: RejectReason, detail: str = "") -> SubmitResult:
        return cls(accepted=False, reason=reason, detail=detail)


@dataclass(frozen=True, slots=True)
class StateValidation:
    """Normalised state object, or the reason it was refused."""

    state: dict[str, Any] | None
    reason: RejectReason | None = None
    detail: str = ""

    @property
    def valid(self) -> bool:
        return self.reason is None


def field_shape(state: Mapping[str, Any]) -> FieldShape:
    """Return the field-shape (group key) of a validated state object."""
    return frozenset(StateField(key) for key in state)


def has_delta_field(state: Mapping[str, Any]) -> bool:
    return any(key in DELTA_FIELDS for key in state)


def validate_state(state: Mapping[str, Any]) -> StateValidation:
    """Check every field of *state* against :data:`FIELD_RULES`.

    Returns a copy with ``mute`` normalised to a bool. Unknown keys, a
    partial colour triple and out-of-range or mistyped values reject the
    whole object as ``INVALID_FIELD_TYPE``; a full colour triple sent
    together with ``colorTemperature`` is ``CONFLICTING_COLOR_FIELDS``.
    """
    unknown = sorted(str(key) for key in state if key not in _FIELD_NAMES)
    if unknown:
        return StateValidation(None, RejectReason.INVALID_FIELD_TYPE, f"unknown field(s): {', '.join(unknown)}")

    present = field_shape(state)
    color_present = present & COLOR_FIELDS
    if color_present == COLOR_FIELDS and StateField.COLOR_TEMPERATURE in present:
        return StateValidation(
            None,
            RejectReason.CONFLICTING_COLOR_FIELDS,
            "colour and colorTemperature cannot be sent in the same update",
        )
    if color_present and color_present != COLOR_FIELDS:
        missing = ", ".join(sorted(COLOR_FIELDS - color_present))
        return StateValidation(None, RejectReason.INVALID_FIELD_TYPE, f"colour update missing {missing}")

    normalised: dict[str, Any] = {}
    for key, value in state.items():
        state_field = StateField(key)
        if not FIELD_RULES[state_field].accepts(value):
            return StateValidation(None, RejectReason.INVALID_FIELD_TYPE, f"{key}={value!r} is not valid")
        if state_field is StateField.MUTE and isinstance(value, str):
            value = value == "ON"
        normalised[key] = value
    return StateValidation(normalised)
