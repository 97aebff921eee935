"""
Feed extraction.

Turns a raw upstream response (JSON document or HTML page) into ordered
sections of ArticleItems. HTML goes through a ladder of strategies; each
one runs only when the previous produced nothing:

    1. document model (BeautifulSoup anchors)
    2. regex over the raw markup (malformed pages)
    3. hydration payload scraping (escaped JSON embedded in scripts)

Extraction is sponsor-agnostic: "(Sponsor)" titles are kept and left to the
sponsor classifier.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from html import unescape
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple
from urllib.parse import urlsplit, urlunsplit

from bs4 import BeautifulSoup

from app.config import settings
from app.core.logging import get_logger
from app.models.news_items import ArticleItem, NewsSection
from services.http_fetch_service import is_json_content_type
from services.url_normalization import filter_query, host_to_source, registrable_domain

logger = get_logger().bind(module="feed_extraction_service")

DEFAULT_SECTION_TITLE = "Latest"
MIN_ANCHOR_TEXT = 4
MIN_HYDRATION_TITLE = 10
_EXPLICIT_SPONSOR_KEYS = ("sponsored", "isSponsor", "is_sponsored")

_ABSOLUTE_HREF_RE = re.compile(r"^https?://", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[^>]+>")
_ANCHOR_RE = re.compile(
    r"""<a[^>]+href=["'](https?://[^"']+)["'][^>]*>(.*?)</a>""",
    re.IGNORECASE | re.DOTALL,
)
_ESCAPED_ARTICLE_RE = re.compile(
    r'\\"url\\":\s*\\"(https?://[^"\\]+)\\"[^}]*\\"newsletter\\":\s*\\"([^"\\]+)\\"[^}]*\\"title\\":\s*\\"([^"\\]+)\\"'
)
_ESCAPED_IMAGE_RE = re.compile(r'\\"imageUrl\\":\s*\\"([^"\\]+)\\"')
_PLAIN_ARTICLE_RE = re.compile(
    r'"url":\s*"(https?://[^"]+)"[^}]*"newsletter":\s*"([^"]+)"[^}]*"title":\s*"([^"]+)"'
)
_PLAIN_IMAGE_RE = re.compile(r'"imageUrl":\s*"([^"]+)"')


@dataclass(frozen=True)
class ExtractionContext:
    self_domain: str
    newsletters: Tuple[str, ...] = ()
    max_items: int = settings.MAX_EXTRACTED_ITEMS


@dataclass
class _Collector:
    """Accumulates items in discovery order, de-duplicating by raw URL."""

    ctx: ExtractionContext
    prefix: str
    items: List[ArticleItem] = field(default_factory=list)
    seen: Set[str] = field(default_factory=set)

    @property
    def full(self) -> bool:
        return len(self.items) >= self.ctx.max_items

    def is_self_link(self, href: str) -> bool:
        return bool(self.ctx.self_domain) and registrable_domain(href) == self.ctx.self_domain

    def add(self, href: str, title: str, *, item_id: Optional[str] = None, image: Optional[str] = None) -> None:
        if href in self.seen:
            return
        self.seen.add(href)
        self.items.append(
            ArticleItem(
                id=item_id or f"{self.prefix}-{len(self.items)}",
                title=title,
                url=href,
                source=host_to_source(href),
                image=image,
            )
        )


def _clean_text(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value or "").strip()


# -------- HTML strategies ------------------------------------------------------

def extract_with_dom(html: str, ctx: ExtractionContext) -> List[ArticleItem]:
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    collector = _Collector(ctx=ctx, prefix="ext")

    for anchor in soup.find_all("a", href=True):
        href = str(anchor.get("href") or "").strip()
        if not href or not _ABSOLUTE_HREF_RE.match(href):
            continue
        if collector.is_self_link(href) or href in collector.seen:
            continue
        title = _clean_text(anchor.get_text())
        if len(title) < MIN_ANCHOR_TEXT:
            continue
        collector.add(href, title)
        if collector.full:
            break
    return collector.items


def extract_with_regex(html: str, ctx: ExtractionContext) -> List[ArticleItem]:
    if not html:
        return []
    collector = _Collector(ctx=ctx, prefix="rx")

    for match in _ANCHOR_RE.finditer(html):
        href = unescape(match.group(1).strip())
        if collector.is_self_link(href) or href in collector.seen:
            continue
        title = _clean_text(unescape(_TAG_RE.sub("", match.group(2))))
        if len(title) < MIN_ANCHOR_TEXT:
            continue
        collector.add(href, title)
        if collector.full:
            break
    return collector.items


def decode_json_string(value: str) -> str:
    return (
        value.replace("\\u0026", "&")
        .replace("\\u003c", "<")
        .replace("\\u003e", ">")
        .replace('\\"', '"')
        .replace("\\\\", "\\")
    )


def _strip_utm_source(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    return urlunsplit(parts._replace(query=filter_query(parts.query, lambda key: key == "utm_source")))


def extract_from_hydration(html: str, ctx: ExtractionContext) -> List[ArticleItem]:
    """
    Last resort: scrape article triples out of the framework hydration
    payload embedded in the page. Fragile by nature; only runs when the
    anchor-based strategies found nothing.
    """
    if not html or not ctx.newsletters:
        return []
    collector = _Collector(ctx=ctx, prefix="hyd")

    for article_re, image_re in (
        (_ESCAPED_ARTICLE_RE, _ESCAPED_IMAGE_RE),
        (_PLAIN_ARTICLE_RE, _PLAIN_IMAGE_RE),
    ):
        for match in article_re.finditer(html):
            raw_url, newsletter, raw_title = match.groups()
            url = _strip_utm_source(decode_json_string(raw_url))
            if newsletter not in ctx.newsletters:
                continue
            if collector.is_self_link(url) or url in collector.seen:
                continue
            title = decode_json_string(raw_title)
            if len(title) < MIN_HYDRATION_TITLE:
                continue
            image_match = image_re.search(match.group(0))
            collector.add(
                url,
                title,
                item_id=f"{newsletter}-{len(collector.items)}",
                image=decode_json_string(image_match.group(1)) if image_match else None,
            )
            if collector.full:
                return collector.items
    return collector.items


HtmlStrategy = Callable[[str, ExtractionContext], List[ArticleItem]]

HTML_STRATEGIES: Sequence[Tuple[str, HtmlStrategy]] = (
    ("dom", extract_with_dom),
    ("regex", extract_with_regex),
    ("hydration", extract_from_hydration),
)


def extract_html_items(
    html: str,
    ctx: ExtractionContext,
    strategies: Sequence[Tuple[str, HtmlStrategy]] = HTML_STRATEGIES,
) -> List[ArticleItem]:
    for name, strategy in strategies:
        items = strategy(html, ctx)
        if items:
            logger.debug("feed_extraction_strategy_hit", strategy=name, items=len(items))
            return items
        logger.debug("feed_extraction_strategy_empty", strategy=name)
    return []


# -------- Structured JSON --------------------------------------------------------

def _is_truthy_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


def _coerce_json_item(raw: Any, fallback_id: str) -> Optional[ArticleItem]:
    if not isinstance(raw, dict):
        return None
    url = raw.get("url")
    title = raw.get("title")
    if not isinstance(url, str) or not _ABSOLUTE_HREF_RE.match(url.strip()):
        return None
    if not isinstance(title, str) or not title.strip():
        return None
    url = url.strip()

    raw_id = raw.get("id")
    source = raw.get("source")
    image = raw.get("image") or raw.get("imageUrl")
    explicit = any(_is_truthy_flag(raw.get(k)) for k in _EXPLICIT_SPONSOR_KEYS)
    return ArticleItem(
        id=str(raw_id) if raw_id not in (None, "") else fallback_id,
        title=title.strip(),
        url=url,
        source=source.strip() if isinstance(source, str) and source.strip() else host_to_source(url),
        image=image if isinstance(image, str) and image else None,
        sponsored=explicit,
        explicit_sponsor=explicit,
    )


def sections_from_json(data: Dict[str, Any]) -> List[NewsSection]:
    """
    Use upstream `sections: [{title, items[]}]` directly.

    A document without a `sections` array yields no sections.
    """
    raw_sections = data.get("sections")
    if not isinstance(raw_sections, list):
        return []

    sections: List[NewsSection] = []
    used_ids: Set[str] = set()
    for s_idx, raw_section in enumerate(raw_sections):
        if not isinstance(raw_section, dict):
            continue
        title = raw_section.get("title")
        section = NewsSection(title=str(title) if title is not None else "")
        raw_items = raw_section.get("items")
        for i_idx, raw_item in enumerate(raw_items if isinstance(raw_items, list) else []):
            item = _coerce_json_item(raw_item, fallback_id=f"{s_idx}-{i_idx}")
            if item is None:
                continue
            base_id, n = item.id, 1
            while item.id in used_ids:
                item.id = f"{base_id}-{n}"
                n += 1
            used_ids.add(item.id)
            section.items.append(item)
        sections.append(section)
    return sections


# -------- Entry point ---------------------------------------------------------

def extract_sections(
    body: str,
    content_type: str,
    *,
    newsletters: Sequence[str] = (),
    self_domain: Optional[str] = None,
) -> List[NewsSection]:
    """
    Normalize an upstream response into sections.

    JSON responses use the structured path; a JSON document without a
    `sections` array (or one that does not parse) yields a single empty
    "Latest" section. Everything else goes through the HTML ladder and is
    wrapped in a "Latest" section.
    """
    if is_json_content_type(content_type):
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning("feed_extraction_json_invalid", error=str(exc))
            return [NewsSection(title=DEFAULT_SECTION_TITLE)]
        if isinstance(data, dict) and isinstance(data.get("sections"), list):
            return sections_from_json(data)
        logger.warning(
            "feed_extraction_json_unexpected_shape",
            root_type=type(data).__name__,
            keys=sorted(data.keys())[:10] if isinstance(data, dict) else None,
        )
        return [NewsSection(title=DEFAULT_SECTION_TITLE)]

    ctx = ExtractionContext(
        self_domain=self_domain if self_domain is not None else registrable_domain(settings.UPSTREAM_BASE_URL),
        newsletters=tuple(newsletters),
    )
    return [NewsSection(title=DEFAULT_SECTION_TITLE, items=extract_html_items(body, ctx))]
