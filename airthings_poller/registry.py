"""Device registry with its own (slow) refresh cadence."""

from __future__ import annotations

import logging
from typing import List, Optional

from .api import ApiClient
from .models import Device

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Last known device list plus the deadline for the next refresh.

    A refresh replaces the list wholesale. A failed refresh keeps the old list
    and leaves the deadline untouched so the next poll cycle retries.
    """

    def __init__(self, client: ApiClient, *, refresh_interval: float = 600):
        self._client = client
        self._refresh_interval = float(refresh_interval)
        self._devices: List[Device] = []
        self._next_refresh_at: float = 0.0
        self._refreshed = False

    @property
    def devices(self) -> List[Device]:
        return list(self._devices)

    @property
    def next_refresh_at(self) -> Optional[float]:
        return self._next_refresh_at if self._refreshed else None

    def is_stale(self, now: float) -> bool:
        return not self._refreshed or now >= self._next_refresh_at

    def refresh_if_stale(self, now: float) -> List[Device]:
        if self.is_stale(now):
            logger.info("Getting devices from Airthings API")
            devices = self._client.list_devices()
            self._devices = list(devices)
            self._next_refresh_at = now + self._refresh_interval
            self._refreshed = True
            logger.info("Device list refreshed: %d device(s)", len(self._devices))
        return self.devices
