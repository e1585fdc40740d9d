"""
Lectern API — Category routes.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from lectern.api.deps import get_app_settings, get_repository
from lectern.core.config import Settings
from lectern.schemas.schemas import CategoryDetail, CategorySchema, Pagination
from lectern.services.catalog.presenter import present_video
from lectern.services.catalog.query_builder import ListingOptions, build_video_query
from lectern.services.catalog.repository import VideoRepository

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("", response_model=List[CategorySchema])
async def list_categories(
    q: str | None = None,
    repository: VideoRepository = Depends(get_repository),
):
    """All categories with video counts; ``q`` filters by display name for autocomplete."""
    return await repository.list_categories((q or "").strip() or None)


@router.get("/{name}", response_model=CategoryDetail)
async def get_category(
    name: str,
    page: str | None = None,
    limit: str | None = None,
    repository: VideoRepository = Depends(get_repository),
    settings: Settings = Depends(get_app_settings),
):
    query = build_video_query(ListingOptions(category=name, page=page, limit=limit))
    total = await repository.count_videos(query)
    if total == 0:
        raise HTTPException(status_code=404, detail="Category not found")
    videos = await repository.list_videos(query)

    return CategoryDetail(
        category=name,
        videos=[present_video(v, settings.api_prefix) for v in videos],
        pagination=Pagination(
            page=query.page,
            limit=query.limit,
            total=total,
            totalPages=query.total_pages(total),
        ),
    )
