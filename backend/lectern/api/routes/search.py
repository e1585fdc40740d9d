"""
Lectern API — Search routes.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from lectern.api.deps import get_resolver, get_search_service
from lectern.schemas.schemas import CatalogSearchResponse, ContentSearchResponse
from lectern.services.catalog.presenter import present_resolved
from lectern.services.catalog.query_builder import clamp_limit
from lectern.services.media.sources import MediaResolver
from lectern.services.search.search_service import CONTENT_MODE, SearchService, choose_search_mode

router = APIRouter(prefix="/search", tags=["Search"])


def _offset(value: str | None) -> int:
    try:
        return max(int(value), 0) if value is not None else 0
    except ValueError:
        return 0


@router.get("")
async def search(
    q: str | None = None,
    query: str | None = None,
    categoryInfo: str | None = None,
    mode: str | None = None,
    limit: str | None = None,
    offset: str | None = None,
    maxResults: str | None = None,
    service: SearchService = Depends(get_search_service),
    resolver: MediaResolver = Depends(get_resolver),
):
    """
    Catalog search (``q``) or subtitle content search (``query``).

    Content search needs the external search service; catalog search
    matches title, preacher and name in the catalog itself.
    """
    plan = choose_search_mode(q=q, query=query, mode=mode)
    if plan is None:
        raise HTTPException(status_code=400, detail='Query parameter "q" is required')

    if plan.mode == CONTENT_MODE:
        results = await service.search_content(plan.term, {
            "categoryInfo": categoryInfo,
            "maxResults": maxResults,
            "limit": limit,
            "offset": offset,
        })
        return ContentSearchResponse(query=plan.term, results=results, total=len(results))

    rows = await service.search_catalog(
        plan.term, clamp_limit(limit, default=24, maximum=100), _offset(offset)
    )
    results = [present_resolved(v, resolver) for v in rows]
    return CatalogSearchResponse(query=plan.term, results=results, total=len(results))
