"""Per-device de-duplication of polled samples.

The fast poll interval usually re-reads the same latest sample several times.
We remember the last emitted `time` per device and only let a sample through
when that value changes. State is in-memory only: a restart re-emits each
device's current reading once.
"""

from __future__ import annotations

from typing import Dict, Optional


class SampleDeduplicator:
    def __init__(self) -> None:
        self._last_time: Dict[str, int] = {}

    def is_novel_and_record(self, device_id: str, time: int) -> bool:
        if device_id in self._last_time and self._last_time[device_id] == time:
            return False
        self._last_time[device_id] = time
        return True

    def last_seen(self, device_id: str) -> Optional[int]:
        return self._last_time.get(device_id)

    def __len__(self) -> int:
        return len(self._last_time)
