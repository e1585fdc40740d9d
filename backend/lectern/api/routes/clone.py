"""
Lectern API — Mirror export routes.

Gated by the ``x-api-key`` header; disabled until a key is configured.
"""
from __future__ import annotations

import datetime as dt
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException

from lectern.api.deps import get_app_settings, get_repository, get_resolver
from lectern.core.config import Settings
from lectern.core.errors import ServiceNotConfiguredError
from lectern.schemas.schemas import CloneDbExport, CloneFile, CloneFilesResponse, CloneStatus, ExportedVideo
from lectern.services.catalog.query_builder import Predicate, VideoQuery, clamp_limit
from lectern.services.catalog.repository import VideoRepository
from lectern.services.media.sources import MediaResolver


def require_api_key(
    x_api_key: str | None = Header(None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    if not settings.clone_api_key:
        raise ServiceNotConfiguredError("Clone API not configured")
    if not x_api_key or not secrets.compare_digest(x_api_key, settings.clone_api_key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


router = APIRouter(prefix="/clone", tags=["Clone"], dependencies=[Depends(require_api_key)])


def _parse_since(value: str | None) -> dt.datetime | None:
    if not value or not value.strip():
        return None
    try:
        parsed = dt.datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise HTTPException(status_code=400, detail='Invalid "since" timestamp')
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt.timezone.utc)


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@router.get("/db", response_model=CloneDbExport)
async def export_db(
    since: str | None = None,
    repository: VideoRepository = Depends(get_repository),
):
    """Full row export, or rows created since ``since`` for incremental sync."""
    videos = await repository.export_videos(_parse_since(since))
    return CloneDbExport(
        timestamp=_now(),
        count=len(videos),
        videos=[ExportedVideo.model_validate(v) for v in videos],
    )


@router.get("/files", response_model=CloneFilesResponse)
async def list_files(
    since: str | None = None,
    limit: str | None = None,
    repository: VideoRepository = Depends(get_repository),
    resolver: MediaResolver = Depends(get_resolver),
):
    """Media files to mirror, newest first."""
    since_ts = _parse_since(since)
    predicates = (Predicate("date", "ge", since_ts.date()),) if since_ts else ()
    query = VideoQuery(predicates=predicates, limit=clamp_limit(limit, default=100, maximum=500))
    videos = await repository.list_videos(query)

    files = [
        CloneFile(
            id=v.id,
            title=v.vid_title,
            date=v.date,
            videoUrl=resolver.resolve(v.vid_url),
            thumbUrl=resolver.resolve(v.thumb_url) if v.thumb_url else resolver.resolve_thumbnail(v.vid_url),
            relativePath=v.vid_url,
        )
        for v in videos
    ]
    return CloneFilesResponse(timestamp=_now(), count=len(files), files=files)


@router.get("/status", response_model=CloneStatus)
async def sync_status(repository: VideoRepository = Depends(get_repository)):
    status = await repository.catalog_status()
    return CloneStatus(serverTime=_now(), **status)
