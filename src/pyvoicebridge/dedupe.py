"""Suppression of repeated state payloads."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from pyvoicebridge.models.state import has_delta_field

_logger = logging.getLogger(__name__)


def canonical_state(payload: Mapping[str, Any]) -> str:
    """Serialise ``payload["state"]`` so equal objects compare equal."""
    return json.dumps(payload.get("state"), sort_keys=True, separators=(",", ":"), default=str)


class DuplicateFilter:
    """Remembers the last accepted state payload per device.

    A payload equal to the last one recorded for the same device is a
    duplicate, unless it carries a delta field: repeating a relative
    adjustment is a real change.
    """

    def __init__(self) -> None:
        self._last: dict[str, str] = {}
        self.suppressed = 0

    def is_duplicate(self, device: str, payload: Mapping[str, Any]) -> bool:
        state = payload.get("state")
        if isinstance(state, Mapping) and has_delta_field(state):
            return False
        last = self._last.get(device)
        if last is None or last != canonical_state(payload):
            return False
        self.suppressed += 1
        _logger.debug("Suppressed duplicate state payload for %s", device)
        return True

    def record(self, device: str, payload: Mapping[str, Any]) -> None:
        self._last[device] = canonical_state(payload)

    def forget(self, device: str | None = None) -> None:
        """Drop remembered payloads for *device*, or for every device."""
        if device is None:
            self._last.clear()
        else:
            self._last.pop(device, None)
