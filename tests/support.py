"""Shared builders for the test suite."""
from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Tuple, Union

import httpx
from fastapi.testclient import TestClient

from lectern.core.config import Settings
from lectern.main import create_app
from lectern.services.catalog.repository import FixtureVideoRepository, SqlVideoRepository

ORIGIN = "https://media.example.org"

CATALOG_ROWS = [
    {
        "id": 42, "vid_category": "smith", "search_category": "Gospel",
        "vid_preacher": "Smith", "name": "sermon", "vid_title": "The Sermon",
        "date": "2024-05-01", "vid_url": "Smith/Sermon.mp4", "language": "en",
        "runtime_minutes": 15, "clicks": 3, "created_at": "2024-05-02T10:00:00+00:00",
    },
    {
        "id": 43, "vid_category": "smith", "search_category": "Gospel",
        "vid_preacher": "Smith", "name": "long-sermon", "vid_title": "A Long Sermon",
        "date": "2024-04-01", "vid_url": "Smith/Long.mp4", "language": "EN",
        "runtime_minutes": 55, "clicks": 10, "created_at": "2024-04-02T10:00:00+00:00",
        "audio_url": "Smith/audio/Long-remaster.mp3",
    },
    {
        "id": 44, "vid_category": "jones", "search_category": None,
        "vid_preacher": "Jones", "name": "repentance", "vid_title": None,
        "date": "2024-06-01", "vid_url": "/Jones/Repentance.mp4", "language": "es",
        "runtime_minutes": 20, "clicks": 1, "created_at": "2024-06-02T10:00:00+00:00",
        "thumb_url": "Jones/covers/repentance.png",
    },
    {
        "id": 45, "vid_category": "jones", "search_category": "Doctrine",
        "vid_preacher": "Jones", "name": "no-runtime", "vid_title": "Untimed",
        "date": "2023-01-01", "vid_url": "Jones/Untimed.mp4", "language": "",
        "runtime_minutes": None, "clicks": 0, "created_at": "2023-01-02T10:00:00+00:00",
    },
]

Route = Union[Tuple[int, Dict[str, str], bytes], Exception]


def make_settings(**overrides) -> Settings:
    values = {
        "store": "fixture",
        "video_source": "caddy",
        "caddy_base_url": ORIGIN,
        "search_service_url": None,
        "clone_api_key": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class _UnreadStream(httpx.AsyncByteStream):
    """Body the mock transport hands over unread, so it can be streamed once."""

    def __init__(self, body: bytes):
        self._body = body

    async def __aiter__(self):
        yield self._body


class Upstream:
    """``httpx.MockTransport`` handler serving canned responses by URL."""

    def __init__(self, routes: Optional[Dict[str, Route]] = None, fallback: Optional[Callable] = None):
        self.routes = dict(routes or {})
        self.fallback = fallback
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        route = self.routes.get(url)
        if route is None and self.fallback is not None:
            return self.fallback(request)
        if route is None:
            return httpx.Response(404, content=b"upstream says no")
        if isinstance(route, Exception):
            raise route
        status, headers, body = route
        return httpx.Response(status, headers=headers, stream=_UnreadStream(body))

    @property
    def urls(self) -> List[str]:
        return [str(r.url) for r in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self), follow_redirects=True)


def make_app(rows=None, upstream: Optional[Upstream] = None, **settings_overrides):
    upstream = upstream or Upstream()
    repository = FixtureVideoRepository(CATALOG_ROWS if rows is None else rows)
    app = create_app(
        make_settings(**settings_overrides),
        repository=repository,
        http_client=upstream.client(),
    )
    return app, repository, upstream


def make_client(rows=None, upstream: Optional[Upstream] = None, **settings_overrides):
    app, repository, upstream = make_app(rows, upstream, **settings_overrides)
    return TestClient(app), repository, upstream


class StallingSession:
    """Async session stand-in whose queries never finish in time."""

    def __init__(self, delay: float = 5.0):
        self.delay = delay

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def execute(self, *args, **kwargs):
        await asyncio.sleep(self.delay)

    async def scalar(self, *args, **kwargs):
        await asyncio.sleep(self.delay)


def stalling_sql_repository(query_timeout: float = 0.05) -> SqlVideoRepository:
    return SqlVideoRepository(lambda: StallingSession(), query_timeout=query_timeout)
