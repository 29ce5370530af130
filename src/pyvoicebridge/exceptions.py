"""Custom exception hierarchy for pyvoicebridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base exception for all pyvoicebridge errors."""


class BridgeConfigError(BridgeError):
    """Invalid or missing configuration."""


class BridgeTransportError(BridgeError):
    """HTTP-level failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class BridgeDirectoryError(BridgeError):
    """Device directory response could not be interpreted."""


class BridgeUnsupportedCommandError(BridgeError):
    """A voice-assistant directive has no internal command mapping.

    ``command`` holds the vendor directive name as received, e.g.
    ``"ReportState"`` or ``"action.devices.commands.Dock"``.
    """

    def __init__(self, message: str, *, command: str = "", vendor: str = "") -> None:
        self.command = command
        self.vendor = vendor
        super().__init__(message)


class BridgeTransportUnavailableError(BridgeError):
    """The MQTT relay connection is not up, so nothing can be published."""
