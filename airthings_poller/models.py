"""Data model shared by the poller components.

Everything here is a plain dataclass. Payload parsing raises ValueError so the
API layer can attach the HTTP status before surfacing an ApiError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


class Secret:
    """Opaque wrapper for a secret string.

    `repr()` and `str()` never show the value. Call `reveal()` only at the
    point where the secret has to go on the wire.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = str(value or "")

    def reveal(self) -> str:
        return self._value

    def __bool__(self) -> bool:
        return bool(self._value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Secret):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)

    def __repr__(self) -> str:
        return "Secret('***')" if self._value else "Secret('')"

    __str__ = __repr__


def redact(value: str, *, show: int = 4) -> str:
    """Return a safe-to-log preview of an identifier or token."""

    v = str(value or "")
    if not v:
        return ""
    if len(v) <= show:
        return "***"
    return f"{v[:show]}…"


@dataclass(frozen=True)
class Credentials:
    client_id: str
    client_secret: Secret


@dataclass(frozen=True)
class Token:
    access_token: str
    expires_at: float  # epoch seconds, margin already subtracted

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


@dataclass(frozen=True)
class Device:
    """Device snapshot from `/v1/devices`.

    `segment` and `location` are kept exactly as the API delivers them
    (a string or a small object such as `{"id": ..., "name": ...}`).
    """

    id: str
    device_type: Optional[str] = None
    segment: Any = None
    location: Any = None

    @classmethod
    def from_api(cls, d: Mapping[str, Any]) -> "Device":
        if not isinstance(d, Mapping):
            raise ValueError(f"Device entry must be an object, got {type(d).__name__}")
        device_id = str(d.get("id") or "").strip()
        if not device_id:
            raise ValueError("Device entry is missing 'id'")
        return cls(
            id=device_id,
            device_type=d.get("deviceType"),
            segment=d.get("segment"),
            location=d.get("location"),
        )

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.device_type,
            "segment": self.segment,
            "location": self.location,
        }


def _coerce_time(raw: Any) -> int:
    if isinstance(raw, bool) or raw is None:
        raise ValueError(f"Sample 'time' must be an integer timestamp, got {raw!r}")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
        return int(raw.strip())
    raise ValueError(f"Sample 'time' must be an integer timestamp, got {raw!r}")


@dataclass(frozen=True)
class Sample:
    time: int
    metrics: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "Sample":
        """Split a `latest-samples` payload into its timestamp and metrics.

        The input mapping is copied, never mutated.
        """

        if not isinstance(data, Mapping):
            raise ValueError(f"Sample payload must be an object, got {type(data).__name__}")
        metrics = dict(data)
        if "time" not in metrics:
            raise ValueError("Sample payload is missing 'time'")
        t = _coerce_time(metrics.pop("time"))
        return cls(time=t, metrics=metrics)


@dataclass(frozen=True)
class Event:
    device: Device
    time: int
    metrics: Dict[str, Any]

    @classmethod
    def build(cls, device: Device, sample: Sample) -> "Event":
        return cls(device=device, time=sample.time, metrics=dict(sample.metrics))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device": self.device.describe(),
            "time": self.time,
            "metrics": dict(self.metrics),
        }
