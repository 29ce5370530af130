"""pyvoicebridge - Async bridge between voice-assistant directives and an MQTT cloud relay."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyvoicebridge")
except PackageNotFoundError:
    __version__ = "0+local"
from pyvoicebridge._mqtt import ConnectionStatus
from pyvoicebridge.coalescer import PendingUpdate, StateCoalescer
from pyvoicebridge.config import BridgeConfig
from pyvoicebridge.dedupe import DuplicateFilter
from pyvoicebridge.directory import DeviceDirectory
from pyvoicebridge.exceptions import (
    BridgeConfigError,
    BridgeDirectoryError,
    BridgeError,
    BridgeTransportError,
    BridgeTransportUnavailableError,
    BridgeUnsupportedCommandError,
)
from pyvoicebridge.handlers import AckHandler, CommandHandler, StateHandler
from pyvoicebridge.models import (
    AckResponse,
    CommandMessage,
    Device,
    RejectReason,
    StateField,
    StateUpdate,
    SubmitResult,
)
from pyvoicebridge.registry import AccountRegistry
from pyvoicebridge.session import AccountSession

__all__ = [
    "__version__",
    "AccountRegistry",
    "AccountSession",
    "AckHandler",
    "AckResponse",
    "BridgeConfig",
    "BridgeConfigError",
    "BridgeDirectoryError",
    "BridgeError",
    "BridgeTransportError",
    "BridgeTransportUnavailableError",
    "BridgeUnsupportedCommandError",
    "CommandHandler",
    "CommandMessage",
    "ConnectionStatus",
    "Device",
    "DeviceDirectory",
    "DuplicateFilter",
    "PendingUpdate",
    "RejectReason",
    "StateCoalescer",
    "StateField",
    "StateHandler",
    "StateUpdate",
    "SubmitResult",
]
