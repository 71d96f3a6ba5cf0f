"""
Pytest configuration for viral calendar tests.

HTTP clients run against httpx.MockTransport; nothing here touches the network.
"""

from typing import Callable, Dict, List, Optional

import httpx
import pytest

from viral_calendar.database import LocalCache
from viral_calendar.errors import UpstreamError
from viral_calendar.models import Event
from viral_calendar.ratelimit import RateLimiter
from viral_calendar.sources.base import SourceClient


class FakeSource(SourceClient):
    """Source client returning canned events, or raising a canned error."""

    def __init__(
        self,
        name: str,
        events: Optional[List[Event]] = None,
        error: Optional[Exception] = None,
        configured: bool = True,
    ):
        self.source = name
        self.display_name = name.title()
        self.events = events or []
        self.error = error
        self.configured = configured
        self.calls = 0
        super().__init__(base_url="https://fake.invalid", transport=httpx.MockTransport(_refuse))

    def is_configured(self) -> bool:
        return self.configured

    async def fetch_popular(self, limit=None):
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.events)

    async def search(self, query, limit=15):
        self.calls += 1
        if self.error:
            raise self.error
        return [e for e in self.events if query.lower() in e.title.lower()]


def _refuse(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"Unexpected request to {request.url}")


@pytest.fixture
def make_event() -> Callable[..., Event]:
    """Factory for events with sensible defaults."""

    def factory(id: str = "e1", title: str = "Some Story", post_count: int = 1000, **kwargs) -> Event:
        return Event(id=id, title=title, post_count=post_count, **kwargs)

    return factory


@pytest.fixture
def fake_source():
    return FakeSource


@pytest.fixture
def upstream_error():
    def factory(source: str = "reddit", status: int = 500) -> UpstreamError:
        return UpstreamError(source, status, "boom")

    return factory


@pytest.fixture
def mock_transport() -> Callable[[Dict[str, object]], httpx.MockTransport]:
    """
    Build a MockTransport from a path -> response mapping.

    Values may be an httpx.Response, a callable taking the request, or any
    JSON-serializable body (served with status 200). Unknown paths get 404.
    Every handled request is appended to ``transport.requests``.
    """

    def factory(routes: Dict[str, object]) -> httpx.MockTransport:
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            route = routes.get(request.url.path)
            if route is None:
                return httpx.Response(404, json={"message": "not found"})
            if callable(route):
                return route(request)
            if isinstance(route, httpx.Response):
                return route
            return httpx.Response(200, json=route)

        transport = httpx.MockTransport(handler)
        transport.requests = requests
        return transport

    return factory


@pytest.fixture
def no_wait_limiter() -> RateLimiter:
    """Limiter with zero spacing so importer tests never sleep."""
    return RateLimiter(0)


@pytest.fixture
async def local_cache(tmp_path):
    cache = LocalCache(str(tmp_path / "cache.db"))
    await cache.connect()
    yield cache
    await cache.close()
