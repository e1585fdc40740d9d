"""
Decorate catalog rows for the API.

Listing endpoints hand out proxy-relative media URLs only, so clients never
learn the upstream origin. Catalog search and mirror export still return
absolute upstream URLs.
"""
from __future__ import annotations

from typing import Any, Dict, Type

from pydantic import BaseModel

from lectern.models.models import Video
from lectern.schemas.schemas import ResolvedVideoSchema, VideoSchema
from lectern.services.media.sources import STREAM_URL_FIELDS, MediaResolver, proxy_path


def _row_values(video: Video, schema: Type[BaseModel]) -> Dict[str, Any]:
    return {
        name: getattr(video, name)
        for name in schema.model_fields
        if hasattr(video, name)
    }


def present_video(video: Video, api_prefix: str) -> VideoSchema:
    values = _row_values(video, VideoSchema)
    for kind, field in STREAM_URL_FIELDS.items():
        values[field] = proxy_path(api_prefix, video.id, kind)
    return VideoSchema.model_validate(values)


def present_resolved(video: Video, resolver: MediaResolver) -> ResolvedVideoSchema:
    values = _row_values(video, ResolvedVideoSchema)
    values["vid_url"] = resolver.resolve(video.vid_url)
    values["thumb_url"] = (
        resolver.resolve(video.thumb_url) if video.thumb_url
        else resolver.resolve_thumbnail(video.vid_url)
    )
    return ResolvedVideoSchema.model_validate(values)
