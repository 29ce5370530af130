"""Helpers for safe debug logging.

Relay accounts carry passwords and the web API uses basic auth, while
directive payloads may embed OAuth bearer tokens (``scope.token``). This
module redacts those before payloads reach DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "pass",
        "token",
        "authorization",
        "cookie",
        "mqtt_key",
    }
)


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 16:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}...<truncated>"
        return value

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        return {
            str(k): "<redacted>"
            if str(k).lower() in _SENSITIVE_VALUE_KEYS
            else redact_for_log(v, max_string=max_string, _depth=_depth + 1)
            for k, v in value.items()
        }

    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
