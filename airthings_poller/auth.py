"""OAuth2 client-credentials token cache.

The Airthings accounts API issues short-lived bearer tokens. We keep exactly
one cached token and refresh it lazily, on the first call after it expires.

Notes:
- `expires_at` is stored with `margin_seconds` already subtracted, so a token
  is never used during its last margin of validity.
- Refreshes are serialized with a lock (single-flight): callers that waited
  on an in-flight refresh reuse its result instead of fetching again.
- The client secret is revealed only while building the request body.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Any, Callable, Dict, Optional, Sequence

import requests

from .errors import AuthError
from .models import Credentials, Token, redact

logger = logging.getLogger(__name__)


DEFAULT_TOKEN_URL = "https://accounts-api.airthings.com/v1/token"
DEFAULT_SCOPE = ("read:device:current_values",)
DEFAULT_MARGIN_SECONDS = 60


def _parse_expires_in(raw: Any) -> float:
    if isinstance(raw, bool) or raw is None:
        raise AuthError(f"Malformed token response: expires_in={raw!r}")
    try:
        expires_in = float(raw)
    except (TypeError, ValueError) as exc:
        raise AuthError(f"Malformed token response: expires_in={raw!r}") from exc
    if not math.isfinite(expires_in) or expires_in <= 0:
        raise AuthError(f"Malformed token response: expires_in={raw!r}")
    return expires_in


class TokenCache:
    def __init__(
        self,
        session: requests.Session,
        credentials: Credentials,
        *,
        token_url: str = DEFAULT_TOKEN_URL,
        scope: Sequence[str] = DEFAULT_SCOPE,
        margin_seconds: float = DEFAULT_MARGIN_SECONDS,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ):
        self._session = session
        self._credentials = credentials
        self._token_url = token_url
        self._scope = list(scope)
        self._margin = float(margin_seconds)
        self._timeout = timeout
        self._clock = clock
        self._token: Optional[Token] = None
        self._lock = threading.Lock()

    @property
    def token(self) -> Optional[Token]:
        return self._token

    def get_valid_token(self) -> str:
        """Return a usable access token, refreshing it first if needed."""

        cached = self._token
        if cached is not None and cached.is_valid(self._clock()):
            return cached.access_token

        with self._lock:
            # Another caller may have refreshed while we waited on the lock.
            cached = self._token
            now = self._clock()
            if cached is not None and cached.is_valid(now):
                return cached.access_token

            self._token = self._fetch(now)
            return self._token.access_token

    def invalidate(self) -> None:
        """Forget the cached token so the next call re-authenticates."""

        self._token = None

    def _fetch(self, now: float) -> Token:
        logger.debug("Getting new Airthings API access token", extra={"client_id": redact(self._credentials.client_id)})

        body = {
            "grant_type": "client_credentials",
            "client_id": self._credentials.client_id,
            "client_secret": self._credentials.client_secret.reveal(),
            "scope": list(self._scope),
        }
        try:
            resp = self._session.post(
                self._token_url,
                json=body,
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise AuthError(f"Token endpoint not reachable: {exc}") from exc

        try:
            data: Dict[str, Any] = resp.json()
        except ValueError as exc:
            raise AuthError(f"Token endpoint returned non-JSON ({resp.status_code}): {resp.text[:200]}") from exc

        if not isinstance(data, dict):
            raise AuthError(f"Malformed token response ({resp.status_code}): expected an object")

        error = data.get("error_description") or data.get("error")
        if error:
            raise AuthError(f"Token request rejected ({resp.status_code}): {error}")
        if not (200 <= resp.status_code < 300):
            raise AuthError(f"Token request failed: {resp.status_code} {resp.text[:200]}")

        access_token = str(data.get("access_token") or "")
        if not access_token:
            raise AuthError("Malformed token response: missing access_token")
        expires_in = _parse_expires_in(data.get("expires_in"))

        token = Token(access_token=access_token, expires_at=now + expires_in - self._margin)
        logger.info(
            "Obtained Airthings API access token (valid for %.0fs)",
            token.expires_at - now,
            extra={"client_id": redact(self._credentials.client_id)},
        )
        return token
