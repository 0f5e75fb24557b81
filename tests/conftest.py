"""Global pytest fixtures & helpers.

Adds project root to path and provides a scripted fake transport, an
in-memory store and a controllable clock so client tests never touch the
network.
"""
from __future__ import annotations

import os
import sys
from typing import Any, Dict, List, Optional

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from strava_activity_client.client import ActivityClient, ClientConfig
from strava_activity_client.config import (
    ACCESS_TOKEN_KEY,
    EXPIRES_AT_KEY,
    REFRESH_TOKEN_KEY,
)
from strava_activity_client.storage import MemoryStore
from strava_activity_client.transport import HttpResponse

NOW = 1_700_000_000


class FakeClock:
    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """Records requests and replays queued responses (or raises queued errors)."""

    def __init__(self) -> None:
        self.gets: List[Dict[str, Any]] = []
        self.posts: List[Dict[str, Any]] = []
        self._get_queue: List[Any] = []
        self._post_queue: List[Any] = []

    def queue_get(self, status: int = 200, body: Any = None, text: str = "") -> None:
        self._get_queue.append(HttpResponse(status, body, text))

    def queue_post(self, status: int = 200, body: Any = None, text: str = "") -> None:
        self._post_queue.append(HttpResponse(status, body, text))

    def fail_get(self, exc: Exception) -> None:
        self._get_queue.append(exc)

    def fail_post(self, exc: Exception) -> None:
        self._post_queue.append(exc)

    def get(self, url, *, headers=None, params=None):
        self.gets.append({"url": url, "headers": dict(headers or {}), "params": dict(params or {})})
        return self._next(self._get_queue, "GET", url)

    def post(self, url, *, json=None):
        self.posts.append({"url": url, "json": dict(json or {})})
        return self._next(self._post_queue, "POST", url)

    @staticmethod
    def _next(queue: List[Any], method: str, url: str) -> HttpResponse:
        if not queue:
            raise AssertionError(f"Unexpected {method} {url}")
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def token_body(access: str = "AAA", refresh: str = "BBB", expires_at: int = NOW + 21600) -> Dict[str, Any]:
    return {"access_token": access, "refresh_token": refresh, "expires_at": expires_at}


def make_activity(activity_id: int, polyline: str = "") -> Dict[str, Any]:
    return {
        "id": activity_id,
        "name": f"Run {activity_id}",
        "type": "Run",
        "distance": 5000.0,
        "moving_time": 1500,
        "elapsed_time": 1600,
        "start_date_local": "2025-01-05T10:00:00Z",
        "map": {"id": f"a{activity_id}", "summary_polyline": polyline, "resource_state": 2},
    }


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(client_id="cid", client_secret="csec", redirect_uri="myapp://auth/callback")


@pytest.fixture
def make_client(config, store, transport, clock):
    def _make() -> ActivityClient:
        return ActivityClient(config, store=store, transport=transport, clock=clock)

    return _make


@pytest.fixture
def authed_store(store: MemoryStore):
    def _seed(expires_at: Optional[int] = NOW + 3600, access: str = "AAA", refresh: str = "BBB") -> MemoryStore:
        store.set(ACCESS_TOKEN_KEY, access)
        store.set(REFRESH_TOKEN_KEY, refresh)
        if expires_at is not None:
            store.set(EXPIRES_AT_KEY, str(expires_at))
        return store

    return _seed
