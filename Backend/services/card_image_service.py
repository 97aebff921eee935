# Backend/services/card_image_service.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from app.config import settings
from app.core.logging import get_logger
from services.http_fetch_service import HttpFetchService
from services.small_cache_service import CARD_IMAGE_NAMESPACE, SmallCache
from services.url_normalization import host_to_source

logger = get_logger().bind(module="card_image_service")

ICON_PATHS = ("/apple-touch-icon.png", "/favicon.ico")

# (tag, attrs to match, attribute holding the URL)
_META_SELECTORS = (
    ("meta", {"property": "og:image"}, "content"),
    ("meta", {"name": "og:image"}, "content"),
    ("meta", {"name": "twitter:image"}, "content"),
    ("meta", {"property": "twitter:image"}, "content"),
    ("link", {"rel": "image_src"}, "href"),
)
_ABSOLUTE_RE = re.compile(r"^https?://", re.IGNORECASE)
_DIGITS_RE = re.compile(r"^\s*(\d+)")


@dataclass(frozen=True)
class ImageResolution:
    image: Optional[str]
    # "meta", "icon", "favicon" or "none"
    kind: str
    cached: bool = False

    @property
    def is_fallback(self) -> bool:
        return self.kind in ("favicon", "none")


def favicon_for_host(host: str) -> str:
    return settings.FAVICON_SERVICE_URL.format(host=host) if host else ""


def domain_origin(url: str) -> Optional[str]:
    try:
        parts = urlsplit(url)
        host = parts.hostname
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme or not host:
        return None
    return f"{parts.scheme}://{host}" + (f":{port}" if port is not None else "")


def absolute_url(base: str, path: Optional[str]) -> Optional[str]:
    """
    Resolve `path` against the page URL `base`.

    Handles absolute, protocol-relative ("//host/x"), absolute-path ("/x")
    and directory-relative ("x") forms.
    """
    path = (path or "").strip()
    if not path:
        return None
    if _ABSOLUTE_RE.match(path):
        return path
    origin = domain_origin(base)
    if origin is None:
        return path
    scheme = urlsplit(base).scheme
    if path.startswith("//"):
        return f"{scheme}:{path}"
    if path.startswith("/"):
        return f"{origin}{path}"
    base_path = urlsplit(base).path
    directory = re.sub(r"/[^/]*$", "/", base_path) if base_path else "/"
    return f"{origin}{directory}{path}"


def _dimension(value: object) -> int:
    match = _DIGITS_RE.match(str(value or ""))
    return int(match.group(1)) if match else 0


def pick_meta_image(html: str, page_url: str) -> Optional[str]:
    """og:image / twitter:image / image_src, else the largest declared <img>."""
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")

    for tag_name, attrs, url_attr in _META_SELECTORS:
        tag = soup.find(tag_name, attrs=attrs)
        if tag is None:
            continue
        value = str(tag.get(url_attr) or "").strip()
        if value:
            return absolute_url(page_url, value)

    best: Optional[str] = None
    best_area = 0
    for img in soup.find_all("img", src=True):
        src = str(img.get("src") or "").strip()
        width, height = _dimension(img.get("width")), _dimension(img.get("height"))
        area = width * height if width > 0 and height > 0 else 0
        if src and area >= best_area:
            best_area = area
            best = src
    return absolute_url(page_url, best) if best else None


class CardImageResolver:
    """
    Representative image for an article card:

        1. the article's own meta image
        2. a well-known icon path on the article's origin
        3. the favicon service for the article's host

    Each result is cached for CARD_IMAGE_TTL_S against the article URL.
    """

    def __init__(
        self,
        *,
        fetcher: HttpFetchService,
        cache: SmallCache,
        ttl_seconds: int = settings.CARD_IMAGE_TTL_S,
        article_timeout_s: float = settings.ARTICLE_TIMEOUT_S,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.article_timeout_s = article_timeout_s

    async def resolve_image(self, article_url: str) -> Optional[str]:
        return (await self.resolve(article_url)).image

    async def resolve(self, article_url: str) -> ImageResolution:
        host = host_to_source(article_url)
        if not host:
            return ImageResolution(image=None, kind="none")

        cached = self.cache.get(CARD_IMAGE_NAMESPACE, article_url, self.ttl_seconds)
        if isinstance(cached, dict) and cached.get("image"):
            return ImageResolution(image=str(cached["image"]), kind=str(cached.get("kind") or "meta"), cached=True)

        resolution = await self._meta_image(article_url)
        if resolution is None:
            resolution = await self._site_icon(article_url)
        if resolution is None:
            resolution = ImageResolution(image=favicon_for_host(host), kind="favicon")

        self.cache.set(CARD_IMAGE_NAMESPACE, article_url, {"image": resolution.image, "kind": resolution.kind})
        logger.debug("card_image_resolved", url=article_url[:200], kind=resolution.kind)
        return resolution

    async def _meta_image(self, article_url: str) -> Optional[ImageResolution]:
        result = await self.fetcher.fetch(article_url, accept_json=False, timeout_s=self.article_timeout_s)
        if not (200 <= result.status < 400 and result.body):
            return None
        try:
            image = pick_meta_image(result.body, article_url)
        except Exception as exc:
            logger.warning("card_image_parse_failed", url=article_url[:200], error=str(exc))
            return None
        return ImageResolution(image=image, kind="meta") if image else None

    async def _site_icon(self, article_url: str) -> Optional[ImageResolution]:
        origin = domain_origin(article_url)
        if not origin:
            return None
        for path in ICON_PATHS:
            candidate = origin + path
            if await self.fetcher.head_ok(candidate):
                return ImageResolution(image=candidate, kind="icon")
        return None
