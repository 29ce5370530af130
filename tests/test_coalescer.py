from __future__ import annotations

import asyncio
from typing import Any

import pytest

from pyvoicebridge.coalescer import StateCoalescer
from pyvoicebridge.exceptions import BridgeTransportUnavailableError
from pyvoicebridge.models.state import RejectReason


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _Publisher:
    def __init__(self, *, connected: bool = True) -> None:
        self.connected = connected
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def __call__(self, update_id: str, endpoint_id: str, payload: dict[str, Any]) -> bool:
        self.calls.append((update_id, endpoint_id, payload))
        return self.connected


def _coalescer(publisher: _Publisher, clock: _FakeClock, **kwargs: Any) -> StateCoalescer:
    return StateCoalescer("lamp-1", publisher, clock=clock, **kwargs)


def test_same_shape_submissions_publish_once_with_last_payload() -> None:
    clock, publisher = _FakeClock(), _Publisher()
    coalescer = _coalescer(publisher, clock)

    for t, level in ((0.0, 10), (0.1, 20), (0.2, 30)):
        clock.now = t
        assert coalescer.submit({"state": {"brightness": level}}, True).accepted

    clock.now = 1.3
    flushed = coalescer.sweep()

    assert len(flushed) == 1
    assert publisher.calls == [(flushed[0].update_id, "lamp-1", {"state": {"brightness": 30}})]
    assert coalescer.pending() == []
    assert coalescer.stats.superseded == 2


def test_newest_wins_and_waits_for_dwell_time() -> None:
    clock, publisher = _FakeClock(), _Publisher()
    coalescer = _coalescer(publisher, clock)

    coalescer.submit({"state": {"power": "ON"}}, True)
    clock.now = 0.1
    second = coalescer.submit({"state": {"power": "OFF"}}, True)

    clock.now = 0.3
    assert coalescer.sweep() == []
    assert publisher.calls == []
    assert [u.update_id for u in coalescer.pending()] == [second.update_id]

    clock.now = 1.15
    flushed = coalescer.sweep()
    assert [u.update_id for u in flushed] == [second.update_id]
    assert publisher.calls[0][2] == {"state": {"power": "OFF"}}


def test_update_is_not_flushed_at_exactly_dwell_time() -> None:
    clock, publisher = _FakeClock(), _Publisher()
    coalescer = _coalescer(publisher, clock, dwell_time=1.0)

    coalescer.submit({"state": {"brightness": 5}}, True)
    clock.now = 1.0
    assert coalescer.sweep() == []
    clock.now = 1.01
    assert len(coalescer.sweep()) == 1


def test_different_shapes_are_kept_apart() -> None:
    clock, publisher = _FakeClock(), _Publisher()
    coalescer = _coalescer(publisher, clock)

    coalescer.submit({"state": {"brightness": 40}}, True)
    coalescer.submit({"state": {"power": "ON"}}, True)
    coalescer.submit({"state": {"power": "ON", "brightness": 40}}, True)

    clock.now = 2.0
    assert len(coalescer.sweep()) == 3
    assert [call[2]["state"] for call in publisher.calls] == [
        {"brightness": 40},
        {"power": "ON"},
        {"power": "ON", "brightness": 40},
    ]


def test_equal_timestamps_keep_later_submission() -> None:
    clock, publisher = _FakeClock(), _Publisher()
    coalescer = _coalescer(publisher, clock)

    coalescer.submit({"state": {"volume": 1}}, True)
    later = coalescer.submit({"state": {"volume": 2}}, True)

    clock.now = 5.0
    assert [u.update_id for u in coalescer.sweep()] == [later.update_id]


def test_duplicate_payload_is_buffered_once() -> None:
    clock, publisher = _FakeClock(), _Publisher()
    coalescer = _coalescer(publisher, clock)

    assert coalescer.submit({"state": {"power": "ON"}}, True).accepted
    second = coalescer.submit({"state": {"power": "ON"}}, True)

    assert not second.accepted
    assert second.reason is RejectReason.DUPLICATE
    assert len(coalescer.pending()) == 1
    assert coalescer.stats.duplicates == 1

    clock.now = 2.0
    coalescer.sweep()
    assert len(publisher.calls) == 1


def test_delta_payloads_are_never_duplicates() -> None:
    coalescer = _coalescer(_Publisher(), _FakeClock())

    assert coalescer.submit({"state": {"volumeDelta": 5}}, True).accepted
    assert coalescer.submit({"state": {"volumeDelta": 5}}, True).accepted


def test_command_derived_payload_skips_duplicate_check() -> None:
    coalescer = _coalescer(_Publisher(), _FakeClock())

    assert coalescer.submit({"state": {"power": "ON"}}, True).accepted
    assert coalescer.submit({"state": {"power": "ON"}}, True, from_command=True).accepted


def test_duplicate_after_flush_is_still_suppressed() -> None:
    clock, publisher = _FakeClock(), _Publisher()
    coalescer = _coalescer(publisher, clock)

    coalescer.submit({"state": {"lock": "LOCKED"}}, True)
    clock.now = 2.0
    coalescer.sweep()

    assert coalescer.submit({"state": {"lock": "LOCKED"}}, True).reason is RejectReason.DUPLICATE
    assert coalescer.submit({"state": {"lock": "UNLOCKED"}}, True).accepted


@pytest.mark.parametrize(
    ("payload", "acknowledge", "reason"),
    [
        (None, True, RejectReason.MISSING_PAYLOAD),
        ({}, True, RejectReason.MISSING_STATE),
        ({"state": {}}, True, RejectReason.MISSING_STATE),
        ({"state": {"power": "ON"}}, None, RejectReason.MISSING_ACKNOWLEDGE),
        ({"state": {"power": "ON"}}, False, RejectReason.UNACKNOWLEDGED),
        ({"state": {"brightness": 150}}, True, RejectReason.INVALID_FIELD_TYPE),
        (
            {
                "state": {
                    "colorHue": 120,
                    "colorSaturation": 0.5,
                    "colorBrightness": 1,
                    "colorTemperature": 2700,
                }
            },
            True,
            RejectReason.CONFLICTING_COLOR_FIELDS,
        ),
    ],
)
def test_rejected_submissions_are_not_buffered(
    payload: dict[str, Any] | None,
    acknowledge: bool | None,
    reason: RejectReason,
) -> None:
    coalescer = _coalescer(_Publisher(), _FakeClock())

    result = coalescer.submit(payload, acknowledge)

    assert not result.accepted
    assert result.reason is reason
    assert result.update_id is None
    assert coalescer.pending() == []
    assert coalescer.stats.rejected == 1


def test_rejected_payload_does_not_poison_duplicate_filter() -> None:
    coalescer = _coalescer(_Publisher(), _FakeClock())

    assert not coalescer.submit({"state": {"power": "ON"}}, False).accepted
    assert coalescer.submit({"state": {"power": "ON"}}, True).accepted


def test_mute_is_published_as_boolean() -> None:
    clock, publisher = _FakeClock(), _Publisher()
    coalescer = _coalescer(publisher, clock)

    coalescer.submit({"state": {"mute": "ON"}}, True)
    clock.now = 2.0
    coalescer.sweep()

    assert publisher.calls[0][2] == {"state": {"mute": True}}


def test_flush_without_connection_drops_update() -> None:
    clock, publisher = _FakeClock(), _Publisher(connected=False)
    coalescer = _coalescer(publisher, clock)

    coalescer.submit({"state": {"power": "ON"}}, True)
    clock.now = 2.0

    assert coalescer.sweep() == []
    assert coalescer.pending() == []
    assert coalescer.stats.dropped == 1

    # dropped, not retried
    publisher.connected = True
    clock.now = 4.0
    assert coalescer.sweep() == []
    assert len(publisher.calls) == 1


def test_flush_drops_when_transport_raises_unavailable() -> None:
    clock = _FakeClock()

    def _publish(_update_id: str, _endpoint_id: str, _payload: dict[str, Any]) -> bool:
        raise BridgeTransportUnavailableError("no session")

    coalescer = StateCoalescer("lamp-1", _publish, clock=clock)
    coalescer.submit({"state": {"power": "ON"}}, True)
    clock.now = 2.0

    assert coalescer.sweep() == []
    assert coalescer.stats.dropped == 1


@pytest.mark.asyncio
async def test_periodic_sweep_publishes_from_event_loop() -> None:
    clock, publisher = _FakeClock(), _Publisher()
    coalescer = _coalescer(publisher, clock, sweep_interval=0.01)
    coalescer.start()
    try:
        coalescer.submit({"state": {"brightness": 70}}, True)
        clock.now = 1.5
        for _ in range(50):
            if publisher.calls:
                break
            await asyncio.sleep(0.01)
        assert publisher.calls[0][2] == {"state": {"brightness": 70}}
    finally:
        await coalescer.close()


@pytest.mark.asyncio
async def test_close_discards_pending_and_stops_sweeping() -> None:
    clock, publisher = _FakeClock(), _Publisher()
    coalescer = _coalescer(publisher, clock, sweep_interval=0.01)
    coalescer.start()

    coalescer.submit({"state": {"brightness": 70}}, True)
    await coalescer.close()

    assert not coalescer.is_running
    assert coalescer.pending() == []

    clock.now = 10.0
    await asyncio.sleep(0.05)
    assert coalescer.sweep() == []
    assert publisher.calls == []
    assert coalescer.submit({"state": {"brightness": 10}}, True).reason is RejectReason.HANDLER_CLOSED


@pytest.mark.asyncio
async def test_start_after_close_is_refused() -> None:
    coalescer = _coalescer(_Publisher(), _FakeClock())
    await coalescer.close()

    with pytest.raises(RuntimeError):
        coalescer.start()
