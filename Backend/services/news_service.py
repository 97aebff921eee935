"""
News pipeline.

upstream feed fetch -> extraction -> sponsor classification -> image
enrichment. Only total failure of the upstream fetch ladder surfaces as an
error (502); every other stage degrades to best-effort defaults.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from app.config import settings
from app.core.logging import get_logger
from app.models.news_items import ArticleItem, NewsSection
from app.models.news_verticals import Vertical, newsletter_keys
from services.card_image_service import CardImageResolver, favicon_for_host
from services.feed_extraction_service import extract_sections
from services.http_fetch_service import FetchResult, HttpFetchService
from services.small_cache_service import SmallCache
from services.sponsor_classifier import SponsorMode, filter_sponsored_sections
from services.sponsor_sniff_service import sniff_head_sponsor_urls
from services.url_normalization import host_to_source, registrable_domain

logger = get_logger().bind(module="news_service")

UPSTREAM_FAILED = "Upstream failed"


@dataclass
class NewsResult:
    sections: List[NewsSection]
    error: Optional[str] = None
    sponsored_ids: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.error is not None


def latest_feed_url(vertical: Vertical) -> str:
    return f"{settings.UPSTREAM_BASE_URL.rstrip('/')}/api/latest/{vertical.value}"


async def fetch_upstream_feed(vertical: Vertical, fetcher: HttpFetchService) -> Optional[FetchResult]:
    """JSON-preferring GET, then a plain GET. None when both fail."""
    url = latest_feed_url(vertical)
    for accept_json in (True, False):
        result = await fetcher.fetch(url, accept_json=accept_json)
        if result.ok:
            logger.info(
                "news_upstream_fetched",
                vertical=vertical.value,
                accept_json=accept_json,
                status=result.status,
                content_type=result.content_type,
                bytes=len(result.body),
            )
            return result
        logger.warning(
            "news_upstream_attempt_failed",
            vertical=vertical.value,
            accept_json=accept_json,
            status=result.status,
        )
    return None


def _placeholder_image(item: ArticleItem) -> Optional[str]:
    return favicon_for_host(item.source or host_to_source(item.url)) or None


async def enrich_items_with_images(
    sections: List[NewsSection],
    resolver: CardImageResolver,
    *,
    concurrency: int = settings.IMAGE_CONCURRENCY,
    item_timeout_s: float = settings.IMAGE_ITEM_TIMEOUT_S,
    budget_s: float = settings.NEWS_REQUEST_BUDGET_S,
) -> List[NewsSection]:
    """
    Fill `image` for items that lack one.

    Resolutions run concurrently (bounded by `concurrency`); a failing or
    slow item falls back to its favicon placeholder without affecting its
    siblings. Whatever has not finished within `budget_s` gets the
    placeholder too.
    """
    targets: List[ArticleItem] = []
    for section in sections:
        for item in section.items:
            if not item.source:
                item.source = host_to_source(item.url)
            if item.image:
                continue
            if not item.url:
                item.image = _placeholder_image(item)
                continue
            targets.append(item)

    if not targets:
        return sections
    if budget_s <= 0:
        logger.warning("news_image_budget_spent", skipped=len(targets))
        for item in targets:
            item.image = _placeholder_image(item)
        return sections

    sem = asyncio.Semaphore(max(1, concurrency))

    async def _resolve_one(item: ArticleItem) -> Optional[str]:
        async with sem:
            try:
                return await asyncio.wait_for(resolver.resolve_image(item.url), timeout=item_timeout_s)
            except asyncio.TimeoutError:
                logger.debug("news_image_timeout", url=item.url[:200])
            except Exception as exc:
                logger.warning("news_image_failed", url=item.url[:200], error=str(exc))
            return None

    tasks = [asyncio.ensure_future(_resolve_one(item)) for item in targets]
    done, pending = await asyncio.wait(tasks, timeout=budget_s)
    if pending:
        logger.warning("news_image_budget_exhausted", pending=len(pending), resolved=len(done))
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    for task, item in zip(tasks, targets):
        image = task.result() if task in done else None
        item.image = image or _placeholder_image(item)
    return sections


async def _sniff_within(
    vertical: Vertical,
    remaining_s: float,
    *,
    fetcher: HttpFetchService,
    cache: SmallCache,
) -> List[str]:
    if remaining_s <= 0:
        logger.warning("news_sniff_skipped_budget", vertical=vertical.value)
        return []
    try:
        return await asyncio.wait_for(
            sniff_head_sponsor_urls(vertical.value, fetcher=fetcher, cache=cache),
            timeout=remaining_s,
        )
    except asyncio.TimeoutError:
        logger.warning("news_sniff_timeout", vertical=vertical.value, budget_s=round(remaining_s, 3))
        return []


async def get_news(
    vertical: Vertical,
    mode: SponsorMode,
    *,
    fetcher: HttpFetchService,
    cache: SmallCache,
    budget_s: float = settings.NEWS_REQUEST_BUDGET_S,
) -> NewsResult:
    """
    Run the pipeline under one wall-clock budget. The upstream fetch always
    runs (it has its own timeouts); sniffing and image enrichment only get
    what is left of `budget_s`, and degrade to no seeds / placeholders.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + budget_s

    feed = await fetch_upstream_feed(vertical, fetcher)
    if feed is None:
        logger.error("news_upstream_unavailable", vertical=vertical.value)
        return NewsResult(sections=[NewsSection(title="Latest")], error=UPSTREAM_FAILED)

    sections = extract_sections(
        feed.body,
        feed.content_type,
        newsletters=newsletter_keys(vertical),
        self_domain=registrable_domain(settings.UPSTREAM_BASE_URL),
    )

    sponsored_ids: List[str] = []
    if mode is not SponsorMode.RAW:
        seeds = await _sniff_within(vertical, deadline - loop.time(), fetcher=fetcher, cache=cache)
        sections = filter_sponsored_sections(sections, mode, seeds)
        if mode is SponsorMode.MARK:
            sponsored_ids = [it.id for s in sections for it in s.items if it.sponsored]

    resolver = CardImageResolver(fetcher=fetcher, cache=cache)
    sections = await enrich_items_with_images(sections, resolver, budget_s=max(0.0, deadline - loop.time()))

    logger.info(
        "news_pipeline_done",
        vertical=vertical.value,
        mode=mode.value,
        sections=len(sections),
        items=sum(len(s.items) for s in sections),
        sponsored=len(sponsored_ids),
    )
    return NewsResult(sections=sections, sponsored_ids=sponsored_ids)
