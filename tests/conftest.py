"""Shared fixtures: fake upstreams via httpx.MockTransport."""

import os
import sys
from typing import Any, Callable, Dict, List

import httpx
import pytest

# Add the project root to the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from config import FeedConfig, GeoConfig  # noqa: E402


@pytest.fixture
def feed_config() -> FeedConfig:
    return FeedConfig(
        events_url="http://upstream.test/api/unifi/events",
        ids_alerts_url="http://upstream.test/api/unifi/ids-alerts",
        legacy_ips_url="http://upstream.test/api/unifi/alerts",
        events_cap=200,
        ids_alerts_cap=50,
        legacy_ips_cap=50,
        max_events=200,
        timeout_sec=5,
    )


@pytest.fixture
def geo_config() -> GeoConfig:
    return GeoConfig(
        primary_enabled=True,
        primary_url="http://upstream.test/api/geoip",
        primary_batch_url="http://upstream.test/api/geoip/batch",
        fallback_enabled=True,
        fallback_url="http://ip-api.test/json",
        fallback_batch_url="http://ip-api.test/batch",
        fallback_chunk_size=15,
        fallback_chunk_delay_sec=1.0,
        timeout_sec=5,
    )


class FakeUpstream:
    """Route table for httpx.MockTransport; records every request it sees."""

    def __init__(self):
        self.routes: Dict[tuple, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def json(self, method: str, path: str, body: Any, status: int = 200):
        self.routes[(method, path)] = lambda request: httpx.Response(status, json=body)

    def raw(self, method: str, path: str, content: bytes, status: int = 200):
        self.routes[(method, path)] = lambda request: httpx.Response(status, content=content)

    def fail(self, method: str, path: str):
        def _raise(request):
            raise httpx.ConnectError("connection refused", request=request)
        self.routes[(method, path)] = _raise

    def handler(self, method: str, path: str, func: Callable[[httpx.Request], httpx.Response]):
        self.routes[(method, path)] = func

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        return route(request)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport(), **kwargs)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


class RecordingSleep:
    """Injected delay: advances a virtual clock instead of waiting."""

    def __init__(self):
        self.now = 0.0
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()
