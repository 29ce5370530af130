"""Process-wide cache of each account's device list."""

from __future__ import annotations

import json
import logging
from typing import Any

import aiohttp
from pydantic import ValidationError

from pyvoicebridge._constants import DEVICES_ENDPOINT, DIRECTORY_TIMEOUT_SECONDS
from pyvoicebridge.exceptions import BridgeDirectoryError, BridgeTransportError
from pyvoicebridge.models.device import Device

_logger = logging.getLogger(__name__)


def parse_devices(body: Any) -> list[Device]:
    """Validate a ``/api/v1/devices`` response body."""
    if not isinstance(body, list):
        raise BridgeDirectoryError(f"Device list is not an array: {type(body).__name__}")
    try:
        return [Device.model_validate(item) for item in body]
    except ValidationError as exc:
        raise BridgeDirectoryError(f"Invalid device entry: {exc}") from exc


class DeviceDirectory:
    """Last fetched device list per account id.

    A failed refresh keeps the previous entry. The HTTP session is created
    lazily unless one is passed in; only an owned session is closed by
    :meth:`close`.
    """

    def __init__(self, *, session: aiohttp.ClientSession | None = None, scheme: str = "https") -> None:
        self._external_session = session is not None
        self._http = session
        self._scheme = scheme
        self._devices: dict[str, list[Device]] = {}

    def get(self, account_id: str) -> list[Device] | None:
        return self._devices.get(account_id)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._devices

    def as_wire(self, account_id: str) -> list[dict[str, Any]] | None:
        devices = self._devices.get(account_id)
        if devices is None:
            return None
        return [device.to_wire() for device in devices]

    def forget(self, account_id: str) -> None:
        self._devices.pop(account_id, None)

    async def fetch(self, url: str, username: str, password: str) -> list[Device]:
        """GET the device list for one account.

        Raises
        ------
        BridgeTransportError
            On network failure, non-200 status or a non-JSON body.
        BridgeDirectoryError
            If the body is JSON but not a device list.
        """
        if self._http is None:
            self._http = aiohttp.ClientSession()
        target = f"{self._scheme}://{url}{DEVICES_ENDPOINT}"
        _logger.debug("GET %s as %s", target, username)

        try:
            async with self._http.get(
                target,
                auth=aiohttp.BasicAuth(username, password),
                timeout=aiohttp.ClientTimeout(total=DIRECTORY_TIMEOUT_SECONDS),
            ) as resp:
                raw = await resp.read()
                if resp.status != 200:
                    raise BridgeTransportError(
                        f"HTTP {resp.status} from {DEVICES_ENDPOINT}: {raw[:200].decode(errors='replace')}",
                        status_code=resp.status,
                        endpoint=DEVICES_ENDPOINT,
                    )
        except BridgeTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise BridgeTransportError(
                f"Request to {DEVICES_ENDPOINT} failed: {exc}",
                endpoint=DEVICES_ENDPOINT,
            ) from exc

        try:
            body = json.loads(raw)
        except ValueError as exc:
            # JSONDecodeError and UnicodeDecodeError
            raise BridgeTransportError(
                f"Invalid JSON from {DEVICES_ENDPOINT}: {raw[:200].decode(errors='replace')}",
                endpoint=DEVICES_ENDPOINT,
            ) from exc
        return parse_devices(body)

    async def refresh(self, url: str, username: str, password: str, account_id: str) -> list[Device] | None:
        """Fetch and cache the device list of *account_id*.

        Returns the cached list, which is the previous one when the lookup
        fails. Nothing is requested when the URL or credentials are missing.
        """
        if not (url and username and password):
            _logger.debug("Skipping device lookup for %s: web API url or credentials missing", account_id)
            return self._devices.get(account_id)
        try:
            devices = await self.fetch(url, username, password)
        except (BridgeTransportError, BridgeDirectoryError) as exc:
            _logger.warning("Device lookup for %s failed: %s", account_id, exc)
            return self._devices.get(account_id)
        self._devices[account_id] = devices
        _logger.info("Fetched %d device(s) for account %s", len(devices), account_id)
        return devices

    async def close(self) -> None:
        http = self._http
        self._http = None
        if http is not None and not self._external_session:
            await http.close()
