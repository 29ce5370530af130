from __future__ import annotations

from pyvoicebridge._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "user": "alice",
        "pass": "pw",
        "password": "pw",
        "directive": {"endpoint": {"endpointId": "lamp", "scope": {"type": "BearerToken", "token": "abc"}}},
        "headers": [{"Authorization": "Basic xyz"}],
    }

    redacted = redact_for_log(payload)
    assert redacted["user"] == "alice"
    assert redacted["pass"] == "<redacted>"
    assert redacted["password"] == "<redacted>"
    assert redacted["directive"]["endpoint"]["scope"]["token"] == "<redacted>"
    assert redacted["directive"]["endpoint"]["endpointId"] == "lamp"
    assert redacted["headers"][0]["Authorization"] == "<redacted>"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_for_log_keeps_scalars() -> None:
    assert redact_for_log({"state": {"mute": True, "volume": 3, "level": 0.5, "x": None}}) == {
        "state": {"mute": True, "volume": 3, "level": 0.5, "x": None}
    }
