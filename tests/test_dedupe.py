from __future__ import annotations

from pyvoicebridge.dedupe import DuplicateFilter, canonical_state


def test_first_payload_is_never_a_duplicate() -> None:
    assert not DuplicateFilter().is_duplicate("lamp", {"state": {"power": "ON"}})


def test_structural_equality_ignores_key_order() -> None:
    dedupe = DuplicateFilter()
    dedupe.record("lamp", {"state": {"power": "ON", "brightness": 10}})

    assert dedupe.is_duplicate("lamp", {"state": {"brightness": 10, "power": "ON"}})
    assert not dedupe.is_duplicate("lamp", {"state": {"brightness": 11, "power": "ON"}})
    assert dedupe.suppressed == 1


def test_devices_are_tracked_separately() -> None:
    dedupe = DuplicateFilter()
    dedupe.record("lamp", {"state": {"power": "ON"}})

    assert not dedupe.is_duplicate("fan", {"state": {"power": "ON"}})


def test_any_delta_field_disables_suppression() -> None:
    dedupe = DuplicateFilter()
    payload = {"state": {"power": "ON", "percentageDelta": 5}}
    dedupe.record("fan", payload)

    assert not dedupe.is_duplicate("fan", payload)


def test_forget() -> None:
    dedupe = DuplicateFilter()
    dedupe.record("lamp", {"state": {"power": "ON"}})
    dedupe.record("fan", {"state": {"power": "ON"}})

    dedupe.forget("lamp")
    assert not dedupe.is_duplicate("lamp", {"state": {"power": "ON"}})
    assert dedupe.is_duplicate("fan", {"state": {"power": "ON"}})

    dedupe.forget()
    assert not dedupe.is_duplicate("fan", {"state": {"power": "ON"}})


def test_canonical_state_distinguishes_int_and_bool() -> None:
    assert canonical_state({"state": {"mute": True}}) != canonical_state({"state": {"mute": 1}})
