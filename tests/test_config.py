from __future__ import annotations

import pytest

from pyvoicebridge.config import BridgeConfig
from pyvoicebridge.exceptions import BridgeConfigError


def test_from_env_reads_voicebridge_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VOICEBRIDGE_USERNAME", "alice")
    monkeypatch.setenv("VOICEBRIDGE_PASSWORD", "pw")
    monkeypatch.setenv("VOICEBRIDGE_MQTT_SERVER", "mq.example.com")
    monkeypatch.setenv("VOICEBRIDGE_MQTT_PORT", "1884")
    monkeypatch.setenv("VOICEBRIDGE_WEBAPI_URL", "api.example.com")
    monkeypatch.setenv("VOICEBRIDGE_DWELL_TIME", "2.5")

    config = BridgeConfig.from_env()

    assert config.username == "alice"
    assert config.mqtt_server == "mq.example.com"
    assert config.resolved_mqtt_port == 1884
    assert config.webapi_url == "api.example.com"
    assert config.dwell_time == 2.5
    assert config.sweep_interval == 0.25
    assert config.resolved_account_id == "alice"


def test_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VOICEBRIDGE_USERNAME", "alice")
    monkeypatch.setenv("VOICEBRIDGE_SWEEP_INTERVAL", "0.5")

    config = BridgeConfig.from_env(username="bob", password="x", sweep_interval=0.1)

    assert config.username == "bob"
    assert config.sweep_interval == 0.1


def test_bad_number_raises_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VOICEBRIDGE_MQTT_PORT", "eighty")

    with pytest.raises(BridgeConfigError):
        BridgeConfig.from_env()


def test_port_defaults_follow_tls() -> None:
    assert BridgeConfig(username="a", password="b").resolved_mqtt_port == 1883
    config = BridgeConfig(username="a", password="b", mqtt_ca="/ca.pem")
    assert config.use_tls
    assert config.resolved_mqtt_port == 8883


@pytest.mark.parametrize(
    "kwargs",
    [
        {"username": "", "password": "pw", "mqtt_server": "mq"},
        {"username": "a", "password": "", "mqtt_server": "mq"},
        {"username": "a", "password": "pw"},
        {"username": "a", "password": "pw", "mqtt_server": "mq", "mqtt_ca": "/ca.pem"},
        {"username": "a", "password": "pw", "mqtt_server": "mq", "sweep_interval": 0},
        {"username": "a", "password": "pw", "mqtt_server": "mq", "dwell_time": -1},
    ],
)
def test_validate_rejects_incomplete_configuration(kwargs: dict[str, object]) -> None:
    with pytest.raises(BridgeConfigError):
        BridgeConfig(**kwargs).validate()  # type: ignore[arg-type]


def test_validate_accepts_tls_with_client_certificate() -> None:
    BridgeConfig(
        username="a",
        password="pw",
        mqtt_server="mq",
        mqtt_ca="/ca.pem",
        mqtt_cert="/cert.pem",
        mqtt_key="/key.pem",
    ).validate()
