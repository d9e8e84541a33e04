from __future__ import annotations

from pystarhunt._redact import redact_for_log


def test_redact_for_log_masks_observer_identity() -> None:
    payload = {
        "type": "STAR_UPDATE",
        "data": {
            "world": 302,
            "location": {"x": 3000, "y": 3005, "plane": 0},
            "discoveredBy": "Zezima",
        },
    }

    redacted = redact_for_log(payload)
    assert redacted["data"]["discoveredBy"] == "<redacted>"
    assert redacted["data"]["world"] == 302
    assert redacted["data"]["location"] == {"x": 3000, "y": 3005, "plane": 0}


def test_redact_for_log_keeps_empty_identity_visible() -> None:
    assert redact_for_log({"discoveredBy": None}) == {"discoveredBy": None}


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_for_log_handles_lists_and_bytes() -> None:
    redacted = redact_for_log([{"username": "a"}, b"\x00\x01"])
    assert redacted == [{"username": "<redacted>"}, "<bytes:2b>"]
