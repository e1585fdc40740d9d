"""
Lectern API — Preacher routes.

Preachers have no table of their own; the display name on each video is
the identity.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from lectern.api.deps import get_repository
from lectern.schemas.schemas import PreacherDetail, PreacherSummary
from lectern.services.catalog.repository import VideoRepository

router = APIRouter(prefix="/preachers", tags=["Preachers"])


@router.get("", response_model=List[PreacherSummary])
async def list_preachers(repository: VideoRepository = Depends(get_repository)):
    return await repository.list_preachers()


@router.get("/{slug}", response_model=PreacherDetail)
async def get_preacher(slug: str, repository: VideoRepository = Depends(get_repository)):
    """Totals for one preacher."""
    stats = await repository.preacher_stats(slug)
    if not stats:
        raise HTTPException(status_code=404, detail="Preacher not found")
    return stats
