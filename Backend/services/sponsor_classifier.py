"""
Sponsor classifier.

Marks sponsored items per section with a best-effort heuristic:

    seeds      explicit "(Sponsor)" titles, upstream sponsor flags, or URLs
               sniffed from the live page's sponsor block
    extension  up to N items after each seed that share its registrable
               domain, mention its brand, or read like a call to action;
               the item right after a head-of-section seed is always marked
    head run   without any seed, a leading run of >= 2 items on the same
               registrable domain
    dedupe     every repeat of a normalized URL

Marking never crosses section boundaries.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Set

from app.core.logging import get_logger
from app.models.news_items import ArticleItem, NewsSection
from app.models.sponsor_rules import SponsorRules, get_sponsor_rules
from services.url_normalization import brand_token, normalize_url, registrable_domain

logger = get_logger().bind(module="sponsor_classifier")

_SPONSOR_TITLE_RE = re.compile(r"\(\s*sponsor\s*\)", re.IGNORECASE)
_SPONSOR_SECTION_RE = re.compile(r"\b(sponsor|sponsored|advert(isement)?|ad)\b", re.IGNORECASE)


class SponsorMode(str, Enum):
    DROP = "drop"
    MARK = "mark"
    RAW = "raw"


def resolve_mode(mode: Optional[str], keep_sponsored: Optional[str] = None) -> SponsorMode:
    """
    Explicit `mode` wins; otherwise the legacy `keepSponsored=1` flag selects
    "mark". Unknown values fall back to "drop".
    """
    if mode is None or mode == "":
        return SponsorMode.MARK if keep_sponsored == "1" else SponsorMode.DROP
    try:
        return SponsorMode(mode.strip().lower())
    except ValueError:
        return SponsorMode.DROP


def has_sponsor_marker(title: str) -> bool:
    return bool(_SPONSOR_TITLE_RE.search(title or ""))


def is_sponsor_section_title(title: str) -> bool:
    return bool(title) and bool(_SPONSOR_SECTION_RE.search(title))


def looks_like_cta(title: str, phrases: Sequence[str]) -> bool:
    lowered = (title or "").lower()
    return any(p in lowered for p in phrases)


def _mentions_brand(title: str, brand: str) -> bool:
    if not brand:
        return False
    return bool(re.search(rf"\b{re.escape(brand)}\b", title or "", re.IGNORECASE))


def _find_seeds(items: List[ArticleItem], seed_urls: Set[str]) -> List[int]:
    seeds: List[int] = []
    for i, item in enumerate(items):
        explicit = has_sponsor_marker(item.title) or item.explicit_sponsor
        sniffed = bool(seed_urls) and normalize_url(item.url) in seed_urls
        if explicit or sniffed:
            item.sponsored = True
            seeds.append(i)
    return seeds


def _extend_seed(items: List[ArticleItem], s: int, rules: SponsorRules) -> None:
    seed_reg = registrable_domain(items[s].url, rules.two_level_suffixes)
    seed_brand = brand_token(seed_reg)
    phrases = rules.active_cta_phrases

    n = len(items)
    i = s + 1
    budget = rules.extension_window
    while i < n and budget > 0:
        budget -= 1
        item = items[i]
        item_reg = registrable_domain(item.url, rules.two_level_suffixes)

        signal = (
            (seed_reg != "" and item_reg != "" and item_reg == seed_reg)
            or _mentions_brand(item.title, seed_brand)
            or looks_like_cta(item.title, phrases)
        )
        forced = s == 0 and i == 1

        if not (signal or forced):
            break
        item.sponsored = True
        i += 1
        if forced and not signal:
            break


def _mark_head_cluster(items: List[ArticleItem], rules: SponsorRules) -> None:
    if len(items) < 2:
        return
    head_reg = registrable_domain(items[0].url, rules.two_level_suffixes)
    if not head_reg:
        return
    run = 1
    for item in items[1:]:
        if registrable_domain(item.url, rules.two_level_suffixes) != head_reg:
            break
        run += 1
    # A repeated URL is a duplicate, not a sponsor run; dedupe handles it.
    distinct = {normalize_url(it.url) for it in items[:run]}
    if run >= 2 and len(distinct) >= 2:
        for item in items[:run]:
            item.sponsored = True


def _mark_duplicates(items: List[ArticleItem]) -> None:
    seen: Set[str] = set()
    for item in items:
        key = normalize_url(item.url)
        if not key:
            continue
        if key in seen:
            item.sponsored = True
        else:
            seen.add(key)


def mark_sponsor_blocks(
    section: NewsSection,
    sniffed_seeds: Iterable[str] = (),
    rules: Optional[SponsorRules] = None,
) -> NewsSection:
    """Set `sponsored` on the section's items in place and return the section."""
    items = section.items
    if not items:
        return section
    rules = rules or get_sponsor_rules()

    seed_urls = {normalize_url(u) for u in sniffed_seeds if u}
    seeds = _find_seeds(items, seed_urls)

    if seeds:
        for s in sorted(set(seeds)):
            _extend_seed(items, s, rules)
    else:
        _mark_head_cluster(items, rules)

    _mark_duplicates(items)
    return section


def filter_sponsored_sections(
    sections: List[NewsSection],
    mode: SponsorMode,
    sniffed_seeds: Sequence[str] = (),
    rules: Optional[SponsorRules] = None,
) -> List[NewsSection]:
    """
    drop: remove sponsor-titled sections and sponsored items (sections left
          empty are still returned)
    mark: keep everything; sponsored items carry the internal flag
    raw:  untouched
    """
    if mode is SponsorMode.RAW:
        return sections

    drop = mode is SponsorMode.DROP
    out: List[NewsSection] = []
    for section in sections:
        if drop and is_sponsor_section_title(section.title):
            logger.debug("sponsor_section_dropped", title=section.title, items=len(section.items))
            continue

        mark_sponsor_blocks(section, sniffed_seeds, rules)
        if drop:
            before = len(section.items)
            section.items = [it for it in section.items if not it.sponsored]
            if before != len(section.items):
                logger.debug(
                    "sponsor_items_dropped",
                    section=section.title,
                    dropped=before - len(section.items),
                )
        out.append(section)
    return out
