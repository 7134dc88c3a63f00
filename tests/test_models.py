from __future__ import annotations

import pytest

from airthings_poller.models import Device, Event, Sample, Secret, Token, redact


def test_sample_from_api_does_not_mutate_payload() -> None:
    payload = {"time": 1700000000, "co2": 612, "humidity": 41.0}

    sample = Sample.from_api(payload)

    assert sample.time == 1700000000
    assert sample.metrics == {"co2": 612, "humidity": 41.0}
    assert "time" in payload


@pytest.mark.parametrize("raw,expected", [(5, 5), (5.0, 5), ("17", 17)])
def test_sample_time_coercion(raw, expected) -> None:
    assert Sample.from_api({"time": raw}).time == expected


@pytest.mark.parametrize("raw", [None, True, 1.5, "yesterday"])
def test_sample_time_rejects_non_integers(raw) -> None:
    with pytest.raises(ValueError):
        Sample.from_api({"time": raw})


def test_event_shape_matches_output_contract() -> None:
    device = Device(id="2930000001", device_type="WAVE_PLUS", segment="seg", location="Oslo")
    event = Event.build(device, Sample(time=100, metrics={"radonShortTermAvg": 12}))

    assert event.to_dict() == {
        "device": {"id": "2930000001", "type": "WAVE_PLUS", "segment": "seg", "location": "Oslo"},
        "time": 100,
        "metrics": {"radonShortTermAvg": 12},
    }


def test_device_from_api_requires_id() -> None:
    with pytest.raises(ValueError):
        Device.from_api({"deviceType": "HUB"})
    assert Device.from_api({"id": 7}).id == "7"


def test_token_validity_is_half_open() -> None:
    token = Token(access_token="abc", expires_at=1060)
    assert token.is_valid(1059.999)
    assert not token.is_valid(1060)


def test_secret_hides_value() -> None:
    s = Secret("hunter2")
    assert "hunter2" not in repr(s)
    assert "hunter2" not in f"{s}"
    assert s.reveal() == "hunter2"
    assert bool(s) and not bool(Secret(""))


def test_redact() -> None:
    assert redact("") == ""
    assert redact("abc") == "***"
    assert redact("client-123") == "clie…"
