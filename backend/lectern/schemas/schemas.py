"""
Lectern API Schemas — Pydantic v2 models for responses.

Video fields keep the catalog's column names; envelope fields use the
camelCase names the web client already reads.
"""
from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


# ═══════════════════════════════════════════════════════════════════════
# Video
# ═══════════════════════════════════════════════════════════════════════

class VideoBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vid_category: Optional[str] = None
    search_category: Optional[str] = None
    vid_preacher: Optional[str] = None
    name: Optional[str] = None
    vid_title: Optional[str] = None
    display_title: str = ""
    display_category: Optional[str] = None
    date: Optional[dt.date] = None
    language: Optional[str] = None
    runtime_minutes: Optional[float] = None
    clicks: int = 0
    created_at: Optional[dt.datetime] = None


class VideoSchema(VideoBase):
    """A row as served by the listing endpoints; media goes through the proxy.

    Stored media paths are left out so upstream locations stay private.
    """

    stream_url: str
    audio_stream_url: str
    thumbnail_stream_url: str
    subtitles_stream_url: str


class ResolvedVideoSchema(VideoBase):
    """A row with absolute upstream media URLs (catalog search)."""

    vid_url: Optional[str] = None
    thumb_url: Optional[str] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class VideoListResponse(BaseModel):
    videos: List[VideoSchema]
    pagination: Pagination


# ═══════════════════════════════════════════════════════════════════════
# Search
# ═══════════════════════════════════════════════════════════════════════

class CatalogSearchResponse(BaseModel):
    mode: str = "videos"
    query: str
    results: List[ResolvedVideoSchema]
    total: int


class ContentSearchResponse(BaseModel):
    mode: str = "subtitles"
    query: str
    results: List[Dict[str, Any]]
    total: int


# ═══════════════════════════════════════════════════════════════════════
# Categories / Preachers
# ═══════════════════════════════════════════════════════════════════════

class CategorySchema(BaseModel):
    slug: str
    name: str
    videoCount: int


class CategoryDetail(BaseModel):
    category: str
    videos: List[VideoSchema]
    pagination: Pagination


class PreacherSummary(BaseModel):
    name: str
    videoCount: int
    latestVideo: Optional[dt.date] = None


class PreacherDetail(PreacherSummary):
    firstVideo: Optional[dt.date] = None
    totalViews: int = 0


# ═══════════════════════════════════════════════════════════════════════
# Mirror export
# ═══════════════════════════════════════════════════════════════════════

class ExportedVideo(VideoBase):
    vid_url: Optional[str] = None
    thumb_url: Optional[str] = None
    audio_url: Optional[str] = None
    subtitles_url: Optional[str] = None


class CloneDbExport(BaseModel):
    timestamp: dt.datetime
    count: int
    videos: List[ExportedVideo]


class CloneFile(BaseModel):
    id: int
    title: Optional[str] = None
    date: Optional[dt.date] = None
    videoUrl: str
    thumbUrl: str
    relativePath: Optional[str] = None


class CloneFilesResponse(BaseModel):
    timestamp: dt.datetime
    count: int
    files: List[CloneFile]


class CloneStatus(BaseModel):
    totalVideos: int
    latestVideo: Optional[dt.date] = None
    serverTime: dt.datetime
