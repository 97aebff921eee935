from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest

from services.http_fetch_service import FAILED_FETCH, FetchResult
from services.small_cache_service import SPONSOR_SNIFF_NAMESPACE
from services.sponsor_sniff_service import parse_sponsor_seed_urls, sniff_head_sponsor_urls

SPONSOR_PAGE = """
<html><head><script>var sponsor = "ignored";</script></head><body>
  <a href="https://tldr.tech/ai/archives">Archives</a>
  <div class="block">
    <p><span>Sponsor</span></p>
    <a href="https://acme.com/launch?utm_source=tldr">Acme launches</a>
    <a href="https://tldr.tech/signup">Subscribe</a>
    <a href="https://acme.com/pricing">Pricing</a>
  </div>
  <a href="https://news.com/story">Real story</a>
</body></html>
"""


class FakeFetcher:
    def __init__(self, result: FetchResult) -> None:
        self.result = result
        self.calls: List[str] = []

    async def fetch(self, url: str, accept_json: bool = False, **_: Any) -> FetchResult:
        self.calls.append(url)
        return self.result


class DictCache:
    def __init__(self) -> None:
        self.data: Dict[Tuple[str, str], Any] = {}

    def get(self, namespace: str, key: str, ttl_seconds: float) -> Optional[Any]:
        return self.data.get((namespace, key))

    def set(self, namespace: str, key: str, value: Any) -> None:
        self.data[(namespace, key)] = value


def test_parse_collects_outbound_links_near_label():
    seeds = parse_sponsor_seed_urls(SPONSOR_PAGE, "tldr.tech")
    assert seeds == ["https://acme.com/launch", "https://acme.com/pricing"]


def test_parse_falls_back_to_following_links():
    html = """
    <html><body>
      <div><div><section><h3>Sponsor</h3></section></div></div>
      <a href="https://acme.com/one">One</a>
      <a href="https://acme.com/two">Two</a>
      <a href="https://acme.com/three">Three</a>
      <a href="https://acme.com/four">Four</a>
    </body></html>
    """
    assert parse_sponsor_seed_urls(html, "tldr.tech") == [
        "https://acme.com/one",
        "https://acme.com/two",
        "https://acme.com/three",
    ]


def test_parse_without_label_is_empty():
    assert parse_sponsor_seed_urls("<html><body><a href='https://a.com'>A</a></body></html>", "tldr.tech") == []
    assert parse_sponsor_seed_urls("", "tldr.tech") == []


@pytest.mark.asyncio
async def test_sniff_fetches_and_caches():
    fetcher = FakeFetcher(FetchResult(status=200, content_type="text/html; charset=utf-8", body=SPONSOR_PAGE))
    cache = DictCache()

    seeds = await sniff_head_sponsor_urls("ai", fetcher=fetcher, cache=cache)
    again = await sniff_head_sponsor_urls("ai", fetcher=fetcher, cache=cache)

    assert seeds == again == ["https://acme.com/launch", "https://acme.com/pricing"]
    assert len(fetcher.calls) == 1
    assert fetcher.calls[0].endswith("/ai")
    assert cache.data[(SPONSOR_SNIFF_NAMESPACE, "sponsor_sniff_ai")] == seeds


@pytest.mark.asyncio
async def test_sniff_failure_is_not_cached():
    fetcher = FakeFetcher(FAILED_FETCH)
    cache = DictCache()

    assert await sniff_head_sponsor_urls("ai", fetcher=fetcher, cache=cache) == []
    assert cache.data == {}


@pytest.mark.asyncio
async def test_sniff_ignores_non_html():
    fetcher = FakeFetcher(FetchResult(status=200, content_type="application/json", body="{}"))

    assert await sniff_head_sponsor_urls("ai", fetcher=fetcher, cache=DictCache()) == []
