"""
Request dependencies.

Everything a handler needs is built once by ``create_app`` and kept on
``app.state``; these accessors hand it to routes via ``Depends`` so a test
app can swap any piece.
"""
from __future__ import annotations

import httpx
from fastapi import Request

from lectern.core.config import Settings
from lectern.services.catalog.repository import VideoRepository
from lectern.services.media.proxy import MediaProxy
from lectern.services.media.sources import MediaResolver
from lectern.services.search.search_service import SearchService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_repository(request: Request) -> VideoRepository:
    return request.app.state.repository


def get_resolver(request: Request) -> MediaResolver:
    return request.app.state.resolver


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_media_proxy(request: Request) -> MediaProxy:
    return MediaProxy(get_http_client(request))


def get_search_service(request: Request) -> SearchService:
    settings = get_app_settings(request)
    return SearchService(
        repository=get_repository(request),
        client=get_http_client(request),
        service_url=settings.search_service_url,
        timeout=settings.search_timeout_seconds,
    )
