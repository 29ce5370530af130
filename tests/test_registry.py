from __future__ import annotations

from typing import Any

import pytest

from pyvoicebridge._mqtt import MqttConnectOptions
from pyvoicebridge.config import BridgeConfig
from pyvoicebridge.directory import DeviceDirectory
from pyvoicebridge.exceptions import BridgeConfigError
from pyvoicebridge.handlers import CommandHandler
from pyvoicebridge.models.command import CommandMessage
from pyvoicebridge.models.device import Device
from pyvoicebridge.registry import AccountRegistry


class _Directory(DeviceDirectory):
    def __init__(self) -> None:
        super().__init__()
        self.refreshed: list[str] = []

    async def fetch(self, url: str, username: str, password: str) -> list[Device]:
        self.refreshed.append(username)
        return [Device(endpoint_id="lamp")]


class _Runtime:
    def __init__(self, **_kwargs: Any) -> None:
        self.stopped = False

    @property
    def is_connected(self) -> bool:
        return not self.stopped

    def start(self, options: MqttConnectOptions) -> None:
        pass

    def publish(self, topic: str, payload: dict[str, Any]) -> bool:
        return True

    def stop(self) -> None:
        self.stopped = True


def _config(**overrides: Any) -> BridgeConfig:
    values: dict[str, Any] = {
        "username": "alice",
        "password": "pw",
        "mqtt_server": "mq",
        "webapi_url": "api.example.com",
    }
    values.update(overrides)
    return BridgeConfig(**values)


@pytest.mark.asyncio
async def test_add_account_refreshes_devices() -> None:
    directory = _Directory()
    registry = AccountRegistry(directory=directory)

    session = await registry.add_account(_config())

    assert registry.get("alice") is session
    assert "alice" in registry
    assert directory.refreshed == ["alice"]
    assert directory.get("alice") == [Device(endpoint_id="lamp")]


@pytest.mark.asyncio
async def test_add_account_validates_configuration() -> None:
    registry = AccountRegistry(directory=_Directory())

    with pytest.raises(BridgeConfigError):
        await registry.add_account(_config(mqtt_server=""))
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_get_unknown_account_raises() -> None:
    with pytest.raises(BridgeConfigError):
        AccountRegistry(directory=_Directory()).get("nobody")


@pytest.mark.asyncio
async def test_replacing_an_account_closes_previous_session() -> None:
    registry = AccountRegistry(directory=_Directory(), runtime_factory=_Runtime)
    first = await registry.add_account(_config(), refresh_devices=False)

    class _Handler:
        handler_id = "h1"
        device = "lamp"

        def status(self, _status: object) -> None:
            pass

    first.register(_Handler())
    assert first.is_connected

    second = await registry.add_account(_config(password="new"), refresh_devices=False)

    assert second is not first
    assert not first.is_connected
    assert registry.get("alice").config.password == "new"


@pytest.mark.asyncio
async def test_close_removes_all_accounts() -> None:
    registry = AccountRegistry(directory=_Directory())
    await registry.add_account(_config(), refresh_devices=False)
    await registry.add_account(_config(username="bob"), refresh_devices=False)
    assert registry.account_ids == ["alice", "bob"]

    await registry.close()

    assert len(registry) == 0


@pytest.mark.asyncio
async def test_reconfigured_account_keeps_its_handlers() -> None:
    runtimes: list[_Runtime] = []

    def factory(**kwargs: Any) -> _Runtime:
        runtime = _Runtime(**kwargs)
        runtimes.append(runtime)
        return runtime

    registry = AccountRegistry(directory=_Directory(), runtime_factory=factory)
    await registry.add_account(_config(), refresh_devices=False)
    received: list[CommandMessage] = []
    handler = CommandHandler(registry, account_id="alice", device="lamp", output=received.append)
    assert handler.start()

    session = await registry.add_account(_config(password="new"), refresh_devices=False)

    assert [h.handler_id for h in session.handlers] == [handler.handler_id]
    assert len(runtimes) == 2
    assert runtimes[0].stopped
    assert session.is_connected
    directive = {
        "directive": {
            "header": {"name": "TurnOn", "messageId": "m1"},
            "endpoint": {"endpointId": "lamp"},
            "payload": {},
        }
    }
    assert session.dispatch(directive) == 1
    assert received[0].command == "TurnOn"

    await handler.close()

    assert session.handlers == []
    assert not session.is_connected
