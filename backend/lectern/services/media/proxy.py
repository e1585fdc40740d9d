"""
Lectern Media Proxy — stream upstream media through the API.

Per request:
  START → TRY(candidate i) → 200/206 → STREAM → DONE
                           → other status / transport error → TRY(i + 1)
                           → no candidates left → ERROR
  empty candidate list → NOT_FOUND (no network call)

Only allow-listed headers cross the proxy in either direction, and upstream
error bodies never reach the client.
"""
from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Sequence
from urllib.parse import quote, unquote, urlsplit

import httpx
from fastapi.responses import JSONResponse, Response, StreamingResponse
from prometheus_client import Counter
from starlette.background import BackgroundTask

logger = logging.getLogger(__name__)

PASSTHROUGH_REQUEST_HEADERS = ("range", "if-none-match", "if-modified-since")
PASSTHROUGH_RESPONSE_HEADERS = (
    "content-type",
    "content-length",
    "content-range",
    "accept-ranges",
    "last-modified",
    "etag",
    "cache-control",
)
SUCCESS_STATUSES = (200, 206)
DEFAULT_FAILURE_STATUS = 502

PROXY_ATTEMPTS = Counter(
    "lectern_media_proxy_attempts_total",
    "Upstream media fetch attempts by media kind and outcome",
    ["kind", "outcome"],
)


def content_disposition(filename: str) -> str:
    """``attachment`` header value with an ASCII fallback and an RFC 5987 name."""
    ascii_name = filename.encode("ascii", "ignore").decode("ascii").replace('"', "")
    ascii_name = ascii_name.strip() or "download"
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename, safe='')}"


def filename_from_url(url: str) -> Optional[str]:
    segment = urlsplit(url).path.rstrip("/").rsplit("/", 1)[-1]
    return unquote(segment) or None


class MediaProxy:
    """Candidate-ordered passthrough fetch over a shared ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def stream(
        self,
        candidates: Sequence[Optional[str]],
        request_headers: Mapping[str, str],
        *,
        fallback_content_type: Optional[str] = None,
        download: bool = False,
        fallback_filename: Optional[str] = None,
        kind: str = "media",
    ) -> Response:
        urls: List[str] = [url for url in candidates if url]
        if not urls:
            PROXY_ATTEMPTS.labels(kind=kind, outcome="empty").inc()
            return JSONResponse({"error": "Media not available"}, status_code=404)

        forward = {"accept-encoding": "identity"}
        for name in PASSTHROUGH_REQUEST_HEADERS:
            value = request_headers.get(name)
            if value:
                forward[name] = value

        last_status = DEFAULT_FAILURE_STATUS
        for url in urls:
            request = self._client.build_request("GET", url, headers=forward)
            try:
                upstream = await self._client.send(request, stream=True)
            except httpx.HTTPError as e:
                PROXY_ATTEMPTS.labels(kind=kind, outcome="error").inc()
                logger.warning("Media candidate failed: %s (%s)", url, type(e).__name__)
                continue

            if upstream.status_code not in SUCCESS_STATUSES:
                PROXY_ATTEMPTS.labels(kind=kind, outcome="status").inc()
                logger.warning("Media candidate returned %s: %s", upstream.status_code, url)
                last_status = upstream.status_code
                await upstream.aclose()
                continue

            PROXY_ATTEMPTS.labels(kind=kind, outcome="success").inc()
            return self._relay(
                upstream,
                fallback_content_type=fallback_content_type,
                download=download,
                fallback_filename=fallback_filename,
            )

        if last_status == 304:
            return Response(status_code=304)
        return JSONResponse({"error": "Failed to fetch media"}, status_code=last_status)

    def _relay(
        self,
        upstream: httpx.Response,
        *,
        fallback_content_type: Optional[str],
        download: bool,
        fallback_filename: Optional[str],
    ) -> StreamingResponse:
        headers = {}
        for name in PASSTHROUGH_RESPONSE_HEADERS:
            value = upstream.headers.get(name)
            if value is not None:
                headers[name] = value
        if "content-type" not in headers and fallback_content_type:
            headers["content-type"] = fallback_content_type

        if download:
            filename = filename_from_url(str(upstream.url)) or fallback_filename or "download"
            headers["content-disposition"] = content_disposition(filename)

        async def body():
            # Closing here also covers a client that disconnects mid-stream
            try:
                async for chunk in upstream.aiter_raw():
                    yield chunk
            finally:
                await upstream.aclose()

        return StreamingResponse(
            body(),
            status_code=upstream.status_code,
            headers=headers,
            background=BackgroundTask(upstream.aclose),
        )
