"""
Lectern API — Video routes.
"""
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from lectern.api.deps import get_app_settings, get_media_proxy, get_repository, get_resolver
from lectern.core.config import Settings
from lectern.schemas.schemas import Pagination, VideoListResponse, VideoSchema
from lectern.services.catalog.presenter import present_video
from lectern.services.catalog.query_builder import ListingOptions, build_video_query, clamp_limit
from lectern.services.catalog.repository import VideoRepository
from lectern.services.media.proxy import MediaProxy
from lectern.services.media.sources import MEDIA_RULES, MediaKind, MediaResolver, candidate_urls

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/videos", tags=["Videos"])

TRUTHY = {"1", "true", "yes"}


async def _record_view(repository: VideoRepository, video_id: int) -> None:
    try:
        await repository.increment_views(video_id)
    except Exception as e:
        logger.warning("View count update failed for video %s: %s", video_id, e)


async def _require_video(repository: VideoRepository, video_id: int):
    video = await repository.get_video(video_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    return video


@router.get("", response_model=VideoListResponse)
async def list_videos(
    preacher: str | None = None,
    category: str | None = None,
    search_category: str | None = None,
    language: str | None = None,
    length: str | None = None,
    page: str | None = None,
    limit: str | None = None,
    sort: str | None = None,
    repository: VideoRepository = Depends(get_repository),
    settings: Settings = Depends(get_app_settings),
):
    """List videos with filters; unknown or malformed options fall back to defaults."""
    query = build_video_query(ListingOptions(
        preacher=preacher,
        category=category,
        search_category=search_category,
        language=language,
        length=length,
        page=page,
        limit=limit,
        sort=sort,
    ))
    videos = await repository.list_videos(query)
    total = await repository.count_videos(query)

    return VideoListResponse(
        videos=[present_video(v, settings.api_prefix) for v in videos],
        pagination=Pagination(
            page=query.page,
            limit=query.limit,
            total=total,
            totalPages=query.total_pages(total),
        ),
    )


@router.get("/languages", response_model=List[str])
async def list_languages(repository: VideoRepository = Depends(get_repository)):
    return await repository.distinct_languages()


@router.get("/{video_id}", response_model=VideoSchema)
async def get_video(
    video_id: int,
    background_tasks: BackgroundTasks,
    repository: VideoRepository = Depends(get_repository),
    settings: Settings = Depends(get_app_settings),
):
    """Get a single video. Counts a view after the response is sent."""
    video = await _require_video(repository, video_id)
    payload = present_video(video, settings.api_prefix)
    background_tasks.add_task(_record_view, repository, video_id)
    return payload


@router.get("/{video_id}/recommendations", response_model=List[VideoSchema])
async def get_recommendations(
    video_id: int,
    limit: str | None = None,
    repository: VideoRepository = Depends(get_repository),
    settings: Settings = Depends(get_app_settings),
):
    """Other videos by the same preacher, newest first."""
    video = await _require_video(repository, video_id)
    rows = await repository.list_recommendations(video, clamp_limit(limit, default=10, maximum=50))
    return [present_video(v, settings.api_prefix) for v in rows]


@router.get("/{video_id}/{kind}")
async def stream_media(
    video_id: int,
    kind: MediaKind,
    request: Request,
    download: str | None = None,
    repository: VideoRepository = Depends(get_repository),
    resolver: MediaResolver = Depends(get_resolver),
    proxy: MediaProxy = Depends(get_media_proxy),
):
    """Stream video, audio, thumbnail or subtitles from the media origin."""
    video = await _require_video(repository, video_id)
    rule = MEDIA_RULES[kind]
    title = video.display_title or f"video-{video.id}"

    return await proxy.stream(
        candidate_urls(video, kind, resolver),
        request.headers,
        fallback_content_type=rule.content_type,
        download=(download or "").strip().lower() in TRUTHY,
        fallback_filename=f"{title}{rule.file_extension}",
        kind=kind.value,
    )
