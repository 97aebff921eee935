"""
Sponsor seed sniffing.

The feed API does not always flag sponsored items, but the human-facing
newsletter page renders a "Sponsor" label next to the sponsor block. We fetch
that page, find the label and collect the outbound links around it as seed
URLs for the classifier. Best effort: an empty list means "no seeds".
"""

from __future__ import annotations

import re
from typing import List, Optional

from bs4 import BeautifulSoup, Comment, Tag

from app.config import settings
from app.core.logging import get_logger
from services.http_fetch_service import HttpFetchService
from services.small_cache_service import SPONSOR_SNIFF_NAMESPACE, SmallCache
from services.url_normalization import normalize_url, registrable_domain

logger = get_logger().bind(module="sponsor_sniff_service")

MAX_ANCESTOR_HOPS = 3
MAX_CONTAINER_SEEDS = 4
MAX_FOLLOWING_SEEDS = 3

_SPONSOR_RE = re.compile(r"sponsor", re.IGNORECASE)
_ABSOLUTE_HREF_RE = re.compile(r"^https?://", re.IGNORECASE)
_NON_CONTENT_TAGS = {"script", "style", "noscript", "template", "title", "head"}


def _is_outbound(href: str, self_domain: str) -> bool:
    if not href or not _ABSOLUTE_HREF_RE.match(href):
        return False
    return not self_domain or registrable_domain(href) != self_domain


def _find_sponsor_label(soup: BeautifulSoup) -> Optional[Tag]:
    for text in soup.find_all(string=_SPONSOR_RE):
        if isinstance(text, Comment):
            continue
        parent = text.parent
        if parent is None or parent.name in _NON_CONTENT_TAGS:
            continue
        return parent
    return None


def parse_sponsor_seed_urls(html: str, self_domain: str) -> List[str]:
    """Collect normalized seed URLs around the first "sponsor" label in `html`."""
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    label = _find_sponsor_label(soup)
    if label is None:
        return []

    found: List[str] = []
    container: Optional[Tag] = label
    for _ in range(MAX_ANCESTOR_HOPS):
        if container is None or not isinstance(container, Tag):
            break
        hrefs = [
            str(a.get("href")).strip()
            for a in container.find_all("a", href=True)
            if _is_outbound(str(a.get("href")).strip(), self_domain)
        ]
        if hrefs:
            found = hrefs[:MAX_CONTAINER_SEEDS]
            break
        container = container.parent

    if not found:
        for a in label.find_all_next("a", href=_ABSOLUTE_HREF_RE, limit=MAX_FOLLOWING_SEEDS):
            href = str(a.get("href")).strip()
            if _is_outbound(href, self_domain):
                found.append(href)

    seeds: List[str] = []
    for href in found:
        url = normalize_url(href)
        if url not in seeds:
            seeds.append(url)
    return seeds


async def sniff_head_sponsor_urls(
    vertical: str,
    *,
    fetcher: HttpFetchService,
    cache: SmallCache,
    ttl_seconds: int = settings.SPONSOR_SNIFF_TTL_S,
) -> List[str]:
    """
    Seed URLs for `vertical`'s top sponsor block, cached per vertical.

    Never raises for upstream trouble; returns [] when nothing usable was
    found. Only successfully fetched pages are cached.
    """
    cache_key = f"sponsor_sniff_{vertical}"
    cached = cache.get(SPONSOR_SNIFF_NAMESPACE, cache_key, ttl_seconds)
    if isinstance(cached, list):
        logger.debug("sponsor_sniff_cache_hit", vertical=vertical, seeds=len(cached))
        return [str(u) for u in cached if isinstance(u, str)]

    page_url = f"{settings.UPSTREAM_BASE_URL.rstrip('/')}/{vertical}"
    result = await fetcher.fetch(page_url, accept_json=False)
    if not (200 <= result.status < 400 and result.is_html and result.body):
        logger.info(
            "sponsor_sniff_unavailable",
            vertical=vertical,
            status=result.status,
            content_type=result.content_type,
        )
        return []

    seeds = parse_sponsor_seed_urls(result.body, registrable_domain(settings.UPSTREAM_BASE_URL))
    logger.info("sponsor_sniff_done", vertical=vertical, seeds=len(seeds))
    cache.set(SPONSOR_SNIFF_NAMESPACE, cache_key, seeds)
    return seeds
