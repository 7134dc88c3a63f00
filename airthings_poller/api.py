"""Airthings consumer API client.

Why per-request auth (instead of session-level headers)?
- The session is long-lived and reused for every call.
- Tokens expire underneath it; asking the TokenCache on each request keeps
  refresh invisible to callers.

Error mapping:
- requests.RequestException -> TransportError
- non-2xx, `error_description` in the body, or a malformed body -> ApiError
- AuthError from the TokenCache passes through unchanged
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple
from urllib.parse import quote

import requests

from .auth import TokenCache
from .errors import ApiError, TransportError
from .models import Device, Sample

logger = logging.getLogger(__name__)


DEFAULT_API_BASE_URL = "https://ext-api.airthings.com"


def http_session() -> requests.Session:
    s = requests.Session()
    # Keep default TLS verification enabled.
    return s


class ApiClient:
    def __init__(
        self,
        session: requests.Session,
        tokens: TokenCache,
        *,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 30.0,
    ):
        self._session = session
        self._tokens = tokens
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def _get(self, path: str) -> Tuple[int, Dict[str, Any]]:
        if not path.startswith("/"):
            path = "/" + path
        url = f"{self._base_url}{path}"

        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._tokens.get_valid_token()}",
        }
        try:
            resp = self._session.get(url, headers=headers, timeout=self._timeout)
        except requests.RequestException as exc:
            raise TransportError(f"GET {path} failed: {exc}") from exc

        if resp.status_code == 401:
            # Token was revoked or rotated server-side; re-authenticate next time.
            self._tokens.invalidate()

        try:
            data = resp.json()
        except ValueError as exc:
            raise ApiError(
                status=resp.status_code,
                message=f"GET {path} returned non-JSON body: {resp.text[:200]}",
            ) from exc

        if isinstance(data, dict) and data.get("error_description"):
            error = str(data["error_description"])
            logger.error(
                "Error received from Airthings API",
                extra={"status": resp.status_code, "error": error},
            )
            raise ApiError(status=resp.status_code, message=error)

        if not (200 <= resp.status_code < 300):
            raise ApiError(status=resp.status_code, message=f"GET {path} failed: {resp.text[:200]}")

        if not isinstance(data, dict):
            raise ApiError(status=resp.status_code, message=f"GET {path} returned {type(data).__name__}, expected object")

        return resp.status_code, data

    def list_devices(self) -> List[Device]:
        status, body = self._get("/v1/devices")

        raw = body.get("devices")
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ApiError(status=status, message=f"'devices' must be a list, got {type(raw).__name__}")

        devices: List[Device] = []
        for entry in raw:
            try:
                devices.append(Device.from_api(entry))
            except ValueError as exc:
                logger.warning("Skipping malformed device entry: %s", exc)
        return devices

    def fetch_latest_sample(self, device_id: str) -> Sample:
        status, body = self._get(f"/v1/devices/{quote(str(device_id), safe='')}/latest-samples")

        data = body.get("data")
        try:
            return Sample.from_api(data)
        except ValueError as exc:
            raise ApiError(status=status, message=f"Malformed latest-samples for {device_id}: {exc}") from exc

    def close(self) -> None:
        self._session.close()
