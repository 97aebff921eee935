from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.core.logging import get_logger
from app.deps.http import get_cache, get_http_fetcher
from app.models.news_public import NewsResponse, NewsSectionPayload
from app.models.news_verticals import parse_vertical
from services.http_fetch_service import HttpFetchService
from services.news_service import get_news as run_news_pipeline
from services.small_cache_service import SmallCache
from services.sponsor_classifier import SponsorMode, resolve_mode

logger = get_logger().bind(module="news_router")

router = APIRouter(tags=["news"])

NEWS_CACHE_CONTROL = "max-age=0, s-maxage=300, stale-while-revalidate=600"


def _error_response(status_code: int, error: str) -> JSONResponse:
    body = NewsResponse(sections=[NewsSectionPayload(title="Latest")], error=error)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@router.get("/news", response_model=NewsResponse, response_model_exclude_none=True)
async def get_news(
    vertical: Optional[str] = Query(
        default=None,
        description="Newsletter vertical: webdev, tech, ai, product, data, devops, security, design, crypto, founders.",
    ),
    mode: Optional[str] = Query(default=None, description="Sponsor handling: drop, mark or raw."),
    keep_sponsored: Optional[str] = Query(
        default=None,
        alias="keepSponsored",
        description="Legacy flag; 1 selects mark mode when mode is absent.",
    ),
    fetcher: HttpFetchService = Depends(get_http_fetcher),
    cache: SmallCache = Depends(get_cache),
):
    vertical_enum = parse_vertical(vertical)
    if vertical_enum is None:
        logger.info("news_invalid_vertical", vertical=vertical)
        return _error_response(400, "Invalid vertical")

    sponsor_mode = resolve_mode(mode, keep_sponsored)
    result = await run_news_pipeline(vertical_enum, sponsor_mode, fetcher=fetcher, cache=cache)
    if result.failed:
        return _error_response(502, result.error or "Upstream failed")

    body = NewsResponse(
        sections=[NewsSectionPayload.from_section(s) for s in result.sections],
        sponsored=result.sponsored_ids if sponsor_mode is SponsorMode.MARK else None,
    )
    return JSONResponse(
        status_code=200,
        content=body.model_dump(exclude_none=True),
        headers={"Cache-Control": NEWS_CACHE_CONTROL},
    )
