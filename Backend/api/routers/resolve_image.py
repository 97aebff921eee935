from __future__ import annotations

from typing import Optional
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.core.logging import get_logger
from app.deps.http import get_cache, get_http_fetcher
from app.models.news_public import ResolveImageResponse
from services.card_image_service import CardImageResolver, ImageResolution, favicon_for_host
from services.http_fetch_service import HttpFetchService
from services.small_cache_service import SmallCache
from services.url_normalization import host_to_source

logger = get_logger().bind(module="resolve_image_router")

router = APIRouter(tags=["images"])

HIT_CACHE_CONTROL = "public, max-age=86400"
FALLBACK_CACHE_CONTROL = "public, max-age=3600"


def _is_absolute_http_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
        return parts.scheme.lower() in ("http", "https") and bool(parts.hostname)
    except ValueError:
        return False


@router.get("/resolve-image", response_model=ResolveImageResponse)
async def resolve_image(
    url: Optional[str] = Query(default=None, description="Absolute article URL."),
    fetcher: HttpFetchService = Depends(get_http_fetcher),
    cache: SmallCache = Depends(get_cache),
):
    if not url:
        return JSONResponse(status_code=400, content={"error": "Missing url parameter"})
    url = url.strip()
    if not _is_absolute_http_url(url):
        return JSONResponse(status_code=400, content={"error": "Invalid URL"})

    resolver = CardImageResolver(fetcher=fetcher, cache=cache)
    try:
        resolution = await resolver.resolve(url)
    except Exception as exc:
        logger.warning("resolve_image_failed", url=url[:200], error=str(exc), error_type=type(exc).__name__)
        resolution = ImageResolution(image=favicon_for_host(host_to_source(url)) or None, kind="favicon")

    body = ResolveImageResponse(image=resolution.image)
    return JSONResponse(
        status_code=200,
        content=body.model_dump(),
        headers={"Cache-Control": FALLBACK_CACHE_CONTROL if resolution.is_fallback else HIT_CACHE_CONTROL},
    )
