"""Mapping of voice-assistant directives onto the bridge's command set.

Two vendor envelopes arrive on ``command/<account>/#``:

* Alexa: ``{"directive": {"header": {...}, "endpoint": {...}, "payload": {...}}}``
* Google: ``{"id": ..., "requestId": ..., "execution": {"devices": [...], "execution": [...]}}``

:func:`parse_directive` turns either into a :class:`Directive` carrying an
internal ``(command, payload)`` pair. :func:`command_state_payload` maps an
internal command back to the ``{"state": {...}}`` object a state handler
reports for it.
"""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Callable, Mapping
from typing import Any

from pyvoicebridge.exceptions import BridgeUnsupportedCommandError

GOOGLE_COMMAND_PREFIX = "action.devices.commands."


class Vendor(enum.StrEnum):
    ALEXA = "alexa"
    GOOGLE = "google"


@dataclasses.dataclass(frozen=True, slots=True)
class Translation:
    """Internal command derived from a vendor directive."""

    command: str
    payload: Any = None
    temperature_scale: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class Directive:
    """A parsed inbound directive, independent of the vendor envelope."""

    vendor: Vendor
    message_id: str
    endpoint_id: str
    translation: Translation
    params: dict[str, Any] | None = None
    extra_info: dict[str, Any] | None = None


# ------------------------------------------------------------------
# Alexa
# ------------------------------------------------------------------

#: Directives whose payload is simply the directive name.
_ALEXA_ECHO_COMMANDS: frozenset[str] = frozenset(
    {
        "DecreaseColorTemperature",
        "FastForward",
        "IncreaseColorTemperature",
        "Lock",
        "Next",
        "Pause",
        "Play",
        "Previous",
        "Rewind",
        "StartOver",
        "Stop",
        "Unlock",
    }
)

#: Directives whose payload is one key of the directive payload.
_ALEXA_PAYLOAD_KEYS: dict[str, str] = {
    "AdjustBrightness": "brightnessDelta",
    "AdjustPercentage": "percentageDelta",
    "AdjustRangeValue": "rangeValueDelta",
    "SelectInput": "input",
    "SetBrightness": "brightness",
    "SetColor": "color",
    "SetColorTemperature": "colorTemperatureInKelvin",
    "SetMode": "mode",
    "SetPercentage": "percentage",
    "SetRangeValue": "rangeValue",
    "SetVolume": "volume",
}


def _scaled(payload: Mapping[str, Any], key: str) -> Translation | None:
    value = payload.get(key)
    if not isinstance(value, Mapping):
        return None
    return Translation("", value.get("value"), value.get("scale"))


def translate_alexa(name: str, payload: Mapping[str, Any]) -> Translation:
    """Translate an Alexa directive ``header.name`` and ``payload``.

    Raises
    ------
    BridgeUnsupportedCommandError
        If *name* has no internal counterpart.
    """
    if name in _ALEXA_ECHO_COMMANDS:
        return Translation(name, name)
    if name in _ALEXA_PAYLOAD_KEYS:
        return Translation(name, payload.get(_ALEXA_PAYLOAD_KEYS[name]))
    if name == "Activate" or name == "TurnOn":
        return Translation(name, "ON")
    if name == "TurnOff":
        return Translation(name, "OFF")
    if name == "SetMute":
        mute = payload.get("mute")
        return Translation(name, None if mute is None else ("ON" if mute else "OFF"))
    if name == "AdjustVolume":
        # StepSpeaker sends volumeSteps, Speaker sends volume
        if "volumeSteps" in payload:
            return Translation(name, payload["volumeSteps"])
        return Translation(name, payload.get("volume"))
    if name == "ChangeChannel":
        channel = payload.get("channel") or {}
        if channel.get("number") is not None:
            return Translation(name, channel["number"])
        metadata = payload.get("channelMetadata") or {}
        return Translation(name, metadata.get("name"))
    if name in ("AdjustTargetTemperature", "SetTargetTemperature"):
        key = "targetSetpointDelta" if name == "AdjustTargetTemperature" else "targetSetpoint"
        scaled = _scaled(payload, key)
        if scaled is None:
            return Translation(name)
        return dataclasses.replace(scaled, command=name)
    if name == "SetThermostatMode":
        mode = payload.get("thermostatMode") or {}
        return Translation(name, mode.get("value") if isinstance(mode, Mapping) else mode)
    raise BridgeUnsupportedCommandError(f"Alexa command {name!r} unsupported", command=name, vendor=Vendor.ALEXA)


# ------------------------------------------------------------------
# Google
# ------------------------------------------------------------------


def _require(params: Mapping[str, Any], key: str) -> Any:
    if key not in params:
        raise KeyError(key)
    return params[key]


def _google_color(params: Mapping[str, Any]) -> Translation:
    color = _require(params, "color")
    if "temperature" in color:
        return Translation("SetColorTemperature", color["temperature"])
    spectrum = _require(color, "spectrumHSV")
    return Translation(
        "SetColor",
        {
            "hue": spectrum.get("hue"),
            "saturation": spectrum.get("saturation"),
            "brightness": spectrum.get("value"),
        },
    )


def _google_seek_relative(params: Mapping[str, Any]) -> Translation:
    offset = _require(params, "relativePositionMs")
    if offset < 0:
        return Translation("Rewind", "Rewind")
    if offset > 0:
        return Translation("FastForward", "FastForward")
    raise KeyError("relativePositionMs")


def _google_seek_position(params: Mapping[str, Any]) -> Translation:
    # only a seek back to the start has an internal counterpart
    if _require(params, "absPositionMs") != 0:
        raise KeyError("absPositionMs")
    return Translation("StartOver", "StartOver")


def _google_lock(params: Mapping[str, Any]) -> Translation:
    if _require(params, "lock"):
        return Translation("Lock", "Lock")
    return Translation("Unlock", "Unlock")


def _google_on_off(params: Mapping[str, Any]) -> Translation:
    if _require(params, "on"):
        return Translation("TurnOn", "ON")
    return Translation("TurnOff", "OFF")


_GOOGLE_TRANSLATORS: dict[str, Callable[[Mapping[str, Any]], Translation]] = {
    "ActivateScene": lambda params: Translation("Activate", "ON"),
    "BrightnessAbsolute": lambda params: Translation("SetBrightness", _require(params, "brightness")),
    "ColorAbsolute": _google_color,
    "LockUnlock": _google_lock,
    "mediaPause": lambda params: Translation("Pause", "Pause"),
    "mediaResume": lambda params: Translation("Play", "Play"),
    "mediaNext": lambda params: Translation("Next", "Next"),
    "mediaPrevious": lambda params: Translation("Previous", "Previous"),
    "mediaStop": lambda params: Translation("Stop", "Stop"),
    "mediaSeekRelative": _google_seek_relative,
    "mediaSeekToPosition": _google_seek_position,
    "OnOff": _google_on_off,
    "OpenClose": lambda params: Translation("SetRangeValue", _require(params, "openPercent")),
    "SetFanSpeed": lambda params: Translation("SetRangeValue", _require(params, "fanSpeed")),
    "setVolume": lambda params: Translation("SetVolume", _require(params, "volumeLevel")),
    "ThermostatTemperatureSetpoint": lambda params: Translation(
        "SetTargetTemperature", _require(params, "thermostatTemperatureSetpoint")
    ),
    "ThermostatSetMode": lambda params: Translation(
        "SetThermostatMode", str(_require(params, "thermostatMode")).upper()
    ),
    "volumeRelative": lambda params: Translation("AdjustVolume", _require(params, "volumeRelativeLevel")),
}


def translate_google(command: str, params: Mapping[str, Any] | None) -> Translation:
    """Translate a Google ``action.devices.commands.*`` command.

    A recognised command whose required parameter is missing (or whose
    parameter has no internal counterpart, such as a relative seek of 0 ms)
    is reported the same way as an unknown command.

    Raises
    ------
    BridgeUnsupportedCommandError
        If *command* cannot be translated.
    """
    short = command.removeprefix(GOOGLE_COMMAND_PREFIX)
    translator = _GOOGLE_TRANSLATORS.get(short)
    if translator is None:
        raise BridgeUnsupportedCommandError(
            f"Google Assistant command {command!r} unsupported", command=command, vendor=Vendor.GOOGLE
        )
    try:
        return translator(params or {})
    except (KeyError, TypeError, AttributeError) as exc:
        raise BridgeUnsupportedCommandError(
            f"Google Assistant command {command!r} missing parameter {exc}",
            command=command,
            vendor=Vendor.GOOGLE,
        ) from exc


# ------------------------------------------------------------------
# Envelopes
# ------------------------------------------------------------------


def directive_endpoint_id(message: Mapping[str, Any]) -> str | None:
    """Return the device a raw inbound command message is addressed to."""
    directive = message.get("directive")
    if isinstance(directive, Mapping):
        endpoint = directive.get("endpoint") or {}
        return endpoint.get("endpointId")
    if "execution" in message:
        return message.get("id")
    return None


def parse_directive(message: Mapping[str, Any]) -> Directive:
    """Parse an Alexa or Google envelope into a :class:`Directive`.

    Raises
    ------
    BridgeUnsupportedCommandError
        If the envelope is neither vendor format or the command is not
        supported.
    """
    directive = message.get("directive")
    if isinstance(directive, Mapping):
        header = directive.get("header") or {}
        endpoint = directive.get("endpoint") or {}
        name = str(header.get("name", ""))
        return Directive(
            vendor=Vendor.ALEXA,
            message_id=str(header.get("messageId") or ""),
            endpoint_id=str(endpoint.get("endpointId") or ""),
            translation=translate_alexa(name, directive.get("payload") or {}),
            extra_info=endpoint.get("cookie"),
        )

    execution = message.get("execution")
    if isinstance(execution, Mapping):
        try:
            device = execution["devices"][0]
            step = execution["execution"][0]
        except (KeyError, IndexError, TypeError) as exc:
            raise BridgeUnsupportedCommandError(
                "Google Assistant execution without devices or commands", vendor=Vendor.GOOGLE
            ) from exc
        command = str(step.get("command", ""))
        params = step.get("params")
        return Directive(
            vendor=Vendor.GOOGLE,
            message_id=str(message.get("requestId") or ""),
            endpoint_id=str(device.get("id") or ""),
            translation=translate_google(command, params),
            params=params,
        )

    raise BridgeUnsupportedCommandError("message is neither an Alexa directive nor a Google execution")


# ------------------------------------------------------------------
# Command -> state
# ------------------------------------------------------------------

#: Commands with no reportable state; a state handler drops them.
STATELESS_COMMANDS: frozenset[str] = frozenset(
    {"Play", "Resume", "Pause", "FastForward", "Rewind", "Previous", "Next", "StartOver"}
)

_COMMAND_STATE_KEYS: dict[str, str] = {
    "AdjustPercentage": "percentageDelta",
    "AdjustTargetTemperature": "targetSetpointDelta",
    "AdjustVolume": "volumeDelta",
    "AdjustRangeValue": "rangeValueDelta",
    "SetBrightness": "brightness",
    "SetColorTemperature": "colorTemperature",
    "SelectInput": "input",
    "SetMode": "mode",
    "SetMute": "mute",
    "SetPercentage": "percentage",
    "SetRangeValue": "rangeValue",
    "SetTargetTemperature": "thermostatSetPoint",
    "SetThermostatMode": "thermostatMode",
    "SetVolume": "volume",
    "TurnOn": "power",
    "TurnOff": "power",
}


def command_state_payload(command: str, payload: Any) -> dict[str, Any] | None:
    """Return the ``{"state": {...}}`` object reported for *command*.

    ``None`` means the command has no state mapping.
    """
    if command == "Lock":
        return {"state": {"lock": "LOCKED"}}
    if command == "Unlock":
        return {"state": {"lock": "UNLOCKED"}}
    if command == "SetColor":
        color = payload if isinstance(payload, Mapping) else {}
        return {
            "state": {
                "colorHue": color.get("hue"),
                "colorSaturation": color.get("saturation"),
                "colorBrightness": color.get("brightness"),
            }
        }
    key = _COMMAND_STATE_KEYS.get(command)
    if key is None:
        return None
    return {"state": {key: payload}}
