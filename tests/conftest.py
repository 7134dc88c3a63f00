"""Pytest configuration.

Adds the repo root to sys.path so `import airthings_poller` works without an
editable install, and provides HTTP/clock doubles so no test touches the
network or sleeps on the wall clock.
"""

from __future__ import annotations

import copy
import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest
import requests


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from airthings_poller.api import ApiClient  # noqa: E402
from airthings_poller.auth import DEFAULT_TOKEN_URL, TokenCache  # noqa: E402
from airthings_poller.models import Credentials, Secret  # noqa: E402


TOKEN_URL = DEFAULT_TOKEN_URL
API = "https://ext-api.airthings.com"
DEVICES_URL = f"{API}/v1/devices"


def samples_url(device_id: str) -> str:
    return f"{API}/v1/devices/{device_id}/latest-samples"


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


_NO_JSON = object()


class FakeResponse:
    def __init__(self, status_code: int = 200, json_body: Any = _NO_JSON, text: str = ""):
        self.status_code = status_code
        self._json = json_body
        self._text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    @property
    def text(self) -> str:
        if self._text or self._json is _NO_JSON:
            return self._text
        return str(self._json)

    def json(self) -> Any:
        if self._json is _NO_JSON:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return copy.deepcopy(self._json)


class FakeSession:
    """Scripted stand-in for requests.Session.

    Each (method, url) route holds a list of responses (or exceptions to raise)
    consumed in order; the last one repeats.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], List[Any]] = {}
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.closed = False

    def add(self, method: str, url: str, *responses: Any) -> None:
        self.routes[(method.upper(), url)] = list(responses)

    def count(self, method: str, url: str) -> int:
        return sum(1 for m, u, _ in self.calls if m == method.upper() and u == url)

    def last_call(self, method: str, url: str) -> Dict[str, Any]:
        for m, u, kw in reversed(self.calls):
            if m == method.upper() and u == url:
                return kw
        raise AssertionError(f"no {method} {url} call recorded")

    def _dispatch(self, method: str, url: str, kwargs: Dict[str, Any]) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        queue = self.routes.get((method, url))
        if not queue:
            raise requests.ConnectionError(f"no route for {method} {url}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        return item

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._dispatch("GET", url, kwargs)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._dispatch("POST", url, kwargs)

    def close(self) -> None:
        self.closed = True


def token_response(access_token: str = "abc", expires_in: Any = 3600) -> FakeResponse:
    return FakeResponse(200, {"access_token": access_token, "expires_in": expires_in, "token_type": "Bearer"})


def sample_response(time: int, **metrics: Any) -> FakeResponse:
    return FakeResponse(200, {"data": {"time": time, **metrics}})


def devices_response(*device_ids: str) -> FakeResponse:
    return FakeResponse(
        200,
        {
            "devices": [
                {"id": d, "deviceType": "WAVE_PLUS", "segment": {"id": f"seg-{d}", "name": "Home"}, "location": {"name": "Oslo"}}
                for d in device_ids
            ]
        },
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1000.0)


@pytest.fixture
def session() -> FakeSession:
    s = FakeSession()
    s.add("POST", TOKEN_URL, token_response())
    return s


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(client_id="client-123", client_secret=Secret("s3cr3t"))


@pytest.fixture
def tokens(session: FakeSession, credentials: Credentials, clock: FakeClock) -> TokenCache:
    return TokenCache(session, credentials, clock=clock)


@pytest.fixture
def client(session: FakeSession, tokens: TokenCache) -> ApiClient:
    return ApiClient(session, tokens)
