"""Error taxonomy for the poller.

Every remote failure surfaces as a `PollerError` subclass so the poll loop can
isolate it with a single except clause:
- AuthError: token acquisition/refresh failed
- ApiError: non-success, error-bearing or malformed API response
- TransportError: the host could not be reached at all
"""

from __future__ import annotations

from typing import Optional


class PollerError(RuntimeError):
    """Base class for errors raised while talking to the Airthings API."""


class AuthError(PollerError):
    """Raised when an access token cannot be obtained."""


class ApiError(PollerError):
    """Raised when a devices/samples request fails."""

    def __init__(self, *, status: Optional[int], message: str):
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.status}: {self.message}"


class TransportError(ApiError):
    """Raised when the API host is unreachable (DNS, TLS, timeout, reset)."""

    def __init__(self, message: str):
        super().__init__(status=None, message=message)
