"""
Lectern Search Service — catalog search and subtitle content search.

Mode precedence:
  1. mode=subtitles → content search on ``query`` (falls back to ``q``)
  2. mode=videos    → catalog search on ``q`` (falls back to ``query``)
  3. otherwise a non-blank ``query`` selects content search, then ``q``
     selects catalog search

Content search pipeline:
  1. Forward the query to the external search service
  2. Derive the expected media path of every hit from its subtitle path
  3. Look those paths up in the catalog in fixed-size batches
  4. Attach the matched video id (or None) to each hit
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import unquote, urlsplit

import httpx

from lectern.core.errors import (
    ServiceNotConfiguredError,
    UpstreamBadResponseError,
    UpstreamUnavailableError,
)
from lectern.services.catalog.repository import VideoRepository
from lectern.services.media.sources import is_absolute_url, replace_extension

logger = logging.getLogger(__name__)

CONTENT_MODE = "subtitles"
CATALOG_MODE = "videos"
MATCH_BATCH_SIZE = 50
SUBTITLE_PATH_KEYS = ("subtitlePath", "subtitle_path", "path", "file")


@dataclass(frozen=True)
class SearchPlan:
    mode: str
    term: str


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def choose_search_mode(
    q: Optional[str] = None,
    query: Optional[str] = None,
    mode: Optional[str] = None,
) -> Optional[SearchPlan]:
    """Apply the documented precedence; ``None`` means no usable search term."""
    mode = (mode or "").strip().lower()
    if mode == CONTENT_MODE:
        order = ((CONTENT_MODE, query), (CONTENT_MODE, q))
    elif mode == CATALOG_MODE:
        order = ((CATALOG_MODE, q), (CATALOG_MODE, query))
    else:
        order = ((CONTENT_MODE, query), (CATALOG_MODE, q))
    for plan_mode, term in order:
        if not _blank(term):
            return SearchPlan(plan_mode, term.strip())
    return None


# ═══════════════════════════════════════════════════════════════════════
# Reconciliation
# ═══════════════════════════════════════════════════════════════════════

def subtitle_path_of(hit: Dict[str, Any]) -> Optional[str]:
    for key in SUBTITLE_PATH_KEYS:
        value = hit.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def expected_media_path(subtitle_path: str) -> str:
    """Relative ``.mp4`` path a subtitle file belongs to."""
    path = subtitle_path
    if is_absolute_url(path):
        path = urlsplit(path).path
    path = unquote(path).replace("\\", "/").strip("/")
    return replace_extension(path, ".mp4") if path else ""


def lookup_keys(media_path: str) -> List[str]:
    """Every leading-segment suffix of ``media_path``, longest first."""
    segments = [s for s in media_path.split("/") if s]
    return ["/".join(segments[i:]) for i in range(len(segments))]


def _match_rank(stored: str, key: str) -> Optional[Tuple[int, int]]:
    stored = stored or ""
    if stored in (key, f"/{key}"):
        return (len(key), 1)
    if stored.endswith(f"/{key}"):
        return (len(key), 0)
    return None


def best_match(keys: Sequence[str], rows: Sequence[Tuple[int, str]]) -> Optional[int]:
    """Longest key wins, exact beats suffix, lowest id breaks ties."""
    best = None
    for video_id, stored in rows:
        for key in keys:
            rank = _match_rank(stored, key)
            if rank is None:
                continue
            candidate = (rank[0], rank[1], -video_id)
            if best is None or candidate > best[0]:
                best = (candidate, video_id)
    return best[1] if best else None


class SearchService:
    """Dispatches between the catalog and the external subtitle index."""

    def __init__(
        self,
        repository: VideoRepository,
        client: httpx.AsyncClient,
        service_url: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.repository = repository
        self.client = client
        self.service_url = (service_url or "").rstrip("/")
        self.timeout = timeout

    async def search_catalog(self, term: str, limit: int, offset: int):
        return await self.repository.search_catalog(term, limit, offset)

    async def search_content(self, term: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not self.service_url:
            raise ServiceNotConfiguredError("Search service not configured")

        query_params = {"query": term}
        query_params.update({k: v for k, v in params.items() if v is not None})
        try:
            response = await self.client.get(
                f"{self.service_url}/search", params=query_params, timeout=self.timeout
            )
        except httpx.HTTPError as e:
            logger.error("Search service unreachable: %s", e)
            raise UpstreamUnavailableError("Search service unavailable")

        if response.status_code < 200 or response.status_code >= 300:
            logger.error("Search service returned %s", response.status_code)
            raise UpstreamBadResponseError(f"Search service returned {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            raise UpstreamBadResponseError("Search service returned invalid JSON")

        hits = self._extract_hits(payload)
        return await self.reconcile(hits)

    @staticmethod
    def _extract_hits(payload: Any) -> List[Dict[str, Any]]:
        if isinstance(payload, dict):
            payload = payload.get("results", payload.get("hits", []))
        if not isinstance(payload, list):
            raise UpstreamBadResponseError("Search service returned an unexpected payload")
        return [hit for hit in payload if isinstance(hit, dict)]

    async def reconcile(self, hits: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Attach ``videoId`` to every hit; unmatched hits keep ``None``."""
        hit_keys: List[List[str]] = []
        all_keys: List[str] = []
        seen = set()
        for hit in hits:
            subtitle_path = subtitle_path_of(hit)
            keys = lookup_keys(expected_media_path(subtitle_path)) if subtitle_path else []
            hit_keys.append(keys)
            for key in keys:
                if key not in seen:
                    seen.add(key)
                    all_keys.append(key)

        rows: List[Tuple[int, str]] = []
        for start in range(0, len(all_keys), MATCH_BATCH_SIZE):
            batch = all_keys[start:start + MATCH_BATCH_SIZE]
            rows.extend(await self.repository.find_by_media_paths(batch))

        results = []
        for hit, keys in zip(hits, hit_keys):
            result = dict(hit)
            result["subtitlePath"] = subtitle_path_of(hit)
            result["videoId"] = best_match(keys, rows) if keys else None
            results.append(result)
        return results
