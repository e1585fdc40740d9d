"""
Lectern API — RSS feed routes.
"""
from __future__ import annotations

import dataclasses
import datetime as dt

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from lectern.api.deps import get_app_settings, get_repository, get_resolver
from lectern.core.config import Settings
from lectern.services.catalog.query_builder import (
    ListingOptions,
    Predicate,
    VideoQuery,
    build_video_query,
    clamp_limit,
)
from lectern.services.catalog.repository import VideoRepository
from lectern.services.feeds.rss import build_feed
from lectern.services.media.sources import MediaResolver

router = APIRouter(prefix="/rss", tags=["RSS"])

RSS_MEDIA_TYPE = "application/rss+xml"


def _feed_query(limit: str | None, **options) -> VideoQuery:
    query = build_video_query(ListingOptions(**options))
    return dataclasses.replace(query, limit=clamp_limit(limit, default=50, maximum=200), offset=0, page=1)


def _parse_since(value: str | None):
    if not value or not value.strip():
        return None
    try:
        return dt.date.fromisoformat(value.strip()[:10])
    except ValueError:
        raise HTTPException(status_code=400, detail='Invalid "since" date, expected YYYY-MM-DD')


@router.get("")
async def catalog_feed(
    request: Request,
    category: str | None = None,
    preacher: str | None = None,
    since: str | None = None,
    limit: str | None = None,
    repository: VideoRepository = Depends(get_repository),
    resolver: MediaResolver = Depends(get_resolver),
    settings: Settings = Depends(get_app_settings),
):
    """Feed of the newest videos, optionally narrowed by category, preacher and date."""
    since_date = _parse_since(since)
    extra = (Predicate("date", "ge", since_date),) if since_date else ()
    query = _feed_query(limit, category=category, preacher=preacher, extra=extra)
    videos = await repository.list_videos(query)

    body = build_feed(
        videos,
        resolver,
        title=settings.site_title,
        description=settings.site_description,
        site_url=settings.site_url,
        feed_url=str(request.url),
        categories=[category] if category else None,
    )
    return Response(content=body, media_type=RSS_MEDIA_TYPE)


@router.get("/preacher/{slug}")
async def preacher_feed(
    slug: str,
    request: Request,
    limit: str | None = None,
    repository: VideoRepository = Depends(get_repository),
    resolver: MediaResolver = Depends(get_resolver),
    settings: Settings = Depends(get_app_settings),
):
    videos = await repository.list_videos(_feed_query(limit, preacher=slug))
    body = build_feed(
        videos,
        resolver,
        title=f"{slug} - {settings.site_title}",
        description=f"Sermons by {slug}",
        site_url=settings.site_url,
        feed_url=str(request.url),
    )
    return Response(content=body, media_type=RSS_MEDIA_TYPE)
