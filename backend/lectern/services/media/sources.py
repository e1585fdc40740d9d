"""
Lectern Media Sources — stored media paths to upstream URLs.

Two pieces:
  - MediaResolver strategies turn a relative path into an absolute URL on
    the configured origin (static prefix or object-storage bucket).
  - The media path policy decides which stored or derived paths can serve a
    given media kind, in the order they should be tried.

Everything here is string work; nothing touches the network.
"""
from __future__ import annotations

import enum
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import quote

from lectern.core.config import Settings

logger = logging.getLogger(__name__)

ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
EXTENSION_RE = re.compile(r"\.[^/.]+$")

# Characters left alone when encoding a stored path; existing %XX escapes survive
_PATH_SAFE = "/%:@!$&'()*+,;=-._~"


def is_absolute_url(path: str) -> bool:
    return bool(ABSOLUTE_URL_RE.match(path))


def replace_extension(path: str, extension: str) -> str:
    """Swap the final extension of the last path segment, or append one."""
    if not path:
        return path
    if EXTENSION_RE.search(path):
        return EXTENSION_RE.sub(extension, path)
    return path + extension


def _clean_path(path: str) -> str:
    return quote(path.lstrip("/"), safe=_PATH_SAFE)


# ═══════════════════════════════════════════════════════════════════════
# Resolver strategies
# ═══════════════════════════════════════════════════════════════════════

class MediaResolver(ABC):
    """Maps stored media paths to fetchable upstream URLs."""

    @abstractmethod
    def resolve(self, path: Optional[str]) -> str:
        ...

    def resolve_thumbnail(self, path: Optional[str]) -> str:
        if not path:
            return ""
        return self.resolve(replace_extension(path, ".jpg"))


class StaticOriginResolver(MediaResolver):
    """Static file origin (Caddy): ``{base_url}/{path}``."""

    def __init__(self, base_url: Optional[str]):
        self.base_url = (base_url or "").strip().rstrip("/")

    def resolve(self, path: Optional[str]) -> str:
        if not path:
            return ""
        if is_absolute_url(path):
            return path
        if not is_absolute_url(self.base_url):
            return ""
        return f"{self.base_url}/{_clean_path(path)}"


class ObjectStorageResolver(MediaResolver):
    """Public object storage (MinIO / S3): ``{scheme}://{endpoint}/{bucket}/{path}``."""

    def __init__(self, endpoint: Optional[str], bucket: Optional[str], secure: bool = True):
        endpoint = (endpoint or "").strip().rstrip("/")
        if endpoint and not is_absolute_url(endpoint):
            endpoint = f"{'https' if secure else 'http'}://{endpoint}"
        self.endpoint = endpoint
        self.bucket = (bucket or "").strip("/ ")

    def resolve(self, path: Optional[str]) -> str:
        if not path:
            return ""
        if is_absolute_url(path):
            return path
        if not self.endpoint or not self.bucket:
            return ""
        return f"{self.endpoint}/{self.bucket}/{_clean_path(path)}"


def create_media_resolver(settings: Settings) -> MediaResolver:
    source = (settings.video_source or "caddy").lower()
    if source in ("minio", "s3"):
        resolver: MediaResolver = ObjectStorageResolver(
            settings.minio_endpoint, settings.minio_bucket, settings.minio_secure
        )
    else:
        resolver = StaticOriginResolver(settings.caddy_base_url)
    logger.info("Media resolver: %s (source=%s)", type(resolver).__name__, source)
    return resolver


# ═══════════════════════════════════════════════════════════════════════
# Media path policy
# ═══════════════════════════════════════════════════════════════════════

class MediaKind(str, enum.Enum):
    VIDEO = "video"
    AUDIO = "audio"
    THUMBNAIL = "thumbnail"
    SUBTITLES = "subtitles"


@dataclass(frozen=True)
class MediaRule:
    column: str
    derived_extension: Optional[str]
    content_type: str
    file_extension: str


MEDIA_RULES: Dict[MediaKind, MediaRule] = {
    MediaKind.VIDEO: MediaRule("vid_url", None, "video/mp4", ".mp4"),
    MediaKind.AUDIO: MediaRule("audio_url", ".mp3", "audio/mpeg", ".mp3"),
    MediaKind.THUMBNAIL: MediaRule("thumb_url", ".jpg", "image/jpeg", ".jpg"),
    MediaKind.SUBTITLES: MediaRule("subtitles_url", ".vtt", "text/vtt", ".vtt"),
}

# Field name in decorated rows for each kind's proxy URL
STREAM_URL_FIELDS: Dict[MediaKind, str] = {
    MediaKind.VIDEO: "stream_url",
    MediaKind.AUDIO: "audio_stream_url",
    MediaKind.THUMBNAIL: "thumbnail_stream_url",
    MediaKind.SUBTITLES: "subtitles_stream_url",
}


def candidate_urls(video, kind: MediaKind, resolver: MediaResolver) -> List[str]:
    """
    Upstream URLs able to serve ``kind`` for ``video``, best first.

    The explicit column wins; the path derived from ``vid_url`` by
    extension swap is the fallback. Empty and duplicate URLs are dropped.
    """
    rule = MEDIA_RULES[kind]
    urls = [resolver.resolve(getattr(video, rule.column, None))]

    media_path = getattr(video, "vid_url", None)
    if rule.derived_extension and media_path:
        if kind is MediaKind.THUMBNAIL:
            urls.append(resolver.resolve_thumbnail(media_path))
        else:
            urls.append(resolver.resolve(replace_extension(media_path, rule.derived_extension)))

    seen = set()
    ordered = []
    for url in urls:
        if url and url not in seen:
            seen.add(url)
            ordered.append(url)
    return ordered


def proxy_path(api_prefix: str, video_id: int, kind: MediaKind) -> str:
    return f"{api_prefix.rstrip('/')}/videos/{video_id}/{kind.value}"
