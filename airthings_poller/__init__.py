"""Airthings poller.

Long-running poller for the Airthings consumer API:
- OAuth2 client-credentials auth with a cached, margin-refreshed token
- slow device-list refresh, fast per-device latest-sample polling
- one event per device only when its reading timestamp changes

This package is intentionally small and "boring" for readability.
"""

__version__ = "0.1.0"
