from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

import pytest

from app.models.news_items import ArticleItem, NewsSection
from app.models.news_verticals import Vertical
from services import news_service
from services.card_image_service import favicon_for_host
from services.http_fetch_service import FAILED_FETCH, FetchResult
from services.sponsor_classifier import SponsorMode

FEED_URL = news_service.latest_feed_url(Vertical.AI)

FEED = {
    "sections": [
        {
            "title": "Headlines",
            "items": [
                {"id": "s1", "title": "Acme (Sponsor)", "url": "https://acme.com/a", "image": "https://acme.com/i.png"},
                {"id": "s2", "title": "Learn more about Acme", "url": "https://acme.com/b", "image": "https://acme.com/j.png"},
                {"id": "n1", "title": "Real news", "url": "https://news.com/a", "image": "https://news.com/i.png"},
            ],
        },
        {
            "title": "Sponsor",
            "items": [{"id": "x1", "title": "Ad block", "url": "https://ads.com/a", "image": "https://ads.com/i.png"}],
        },
    ]
}


class FakeFetcher:
    def __init__(self, responses: Dict[Tuple[str, bool], FetchResult]) -> None:
        self.responses = responses
        self.calls: List[Tuple[str, bool]] = []

    async def fetch(self, url: str, accept_json: bool = False, **_: Any) -> FetchResult:
        self.calls.append((url, accept_json))
        return self.responses.get((url, accept_json), FAILED_FETCH)

    async def head_ok(self, url: str) -> bool:
        return False


class DictCache:
    def __init__(self) -> None:
        self.data: Dict[Tuple[str, str], Any] = {}

    def get(self, namespace: str, key: str, ttl_seconds: float) -> Optional[Any]:
        return self.data.get((namespace, key))

    def set(self, namespace: str, key: str, value: Any) -> None:
        self.data[(namespace, key)] = value


def _json_feed() -> FetchResult:
    return FetchResult(status=200, content_type="application/json", body=json.dumps(FEED))


@pytest.fixture
def no_sniff(monkeypatch):
    async def fake_sniff(*_, **__) -> List[str]:
        return []

    monkeypatch.setattr(news_service, "sniff_head_sponsor_urls", fake_sniff)


@pytest.mark.asyncio
async def test_upstream_failure_returns_error_result():
    fetcher = FakeFetcher({})

    result = await news_service.get_news(Vertical.AI, SponsorMode.DROP, fetcher=fetcher, cache=DictCache())

    assert result.failed
    assert result.error == "Upstream failed"
    assert [(s.title, s.items) for s in result.sections] == [("Latest", [])]
    assert fetcher.calls == [(FEED_URL, True), (FEED_URL, False)]


@pytest.mark.asyncio
async def test_plain_get_used_when_json_attempt_fails(no_sniff):
    html = '<a href="https://news.com/a">Some headline</a>'
    fetcher = FakeFetcher(
        {
            (FEED_URL, True): FetchResult(status=500, content_type="text/plain", body="oops"),
            (FEED_URL, False): FetchResult(status=200, content_type="text/html", body=html),
        }
    )

    result = await news_service.get_news(Vertical.AI, SponsorMode.DROP, fetcher=fetcher, cache=DictCache())

    assert not result.failed
    assert [it.url for it in result.sections[0].items] == ["https://news.com/a"]
    assert fetcher.calls[:2] == [(FEED_URL, True), (FEED_URL, False)]


@pytest.mark.asyncio
async def test_drop_mode_removes_sponsored(no_sniff):
    fetcher = FakeFetcher({(FEED_URL, True): _json_feed()})

    result = await news_service.get_news(Vertical.AI, SponsorMode.DROP, fetcher=fetcher, cache=DictCache())

    assert [s.title for s in result.sections] == ["Headlines"]
    assert [it.id for it in result.sections[0].items] == ["n1"]
    assert result.sponsored_ids == []


@pytest.mark.asyncio
async def test_mark_mode_reports_sponsored_ids(no_sniff):
    fetcher = FakeFetcher({(FEED_URL, True): _json_feed()})

    result = await news_service.get_news(Vertical.AI, SponsorMode.MARK, fetcher=fetcher, cache=DictCache())

    assert [s.title for s in result.sections] == ["Headlines", "Sponsor"]
    assert [it.id for it in result.sections[0].items] == ["s1", "s2", "n1"]
    assert result.sponsored_ids == ["s1", "s2"]


@pytest.mark.asyncio
async def test_raw_mode_skips_sniffing_and_keeps_order(monkeypatch):
    async def boom(*_, **__):
        raise AssertionError("sniff must not run in raw mode")

    monkeypatch.setattr(news_service, "sniff_head_sponsor_urls", boom)
    fetcher = FakeFetcher({(FEED_URL, True): _json_feed()})

    result = await news_service.get_news(Vertical.AI, SponsorMode.RAW, fetcher=fetcher, cache=DictCache())

    assert [[it.id for it in s.items] for s in result.sections] == [["s1", "s2", "n1"], ["x1"]]
    assert result.sponsored_ids == []
    assert fetcher.calls == [(FEED_URL, True)]


class FakeResolver:
    def __init__(self, behaviour: Dict[str, Any]) -> None:
        self.behaviour = behaviour

    async def resolve_image(self, url: str) -> Optional[str]:
        action = self.behaviour[url]
        if isinstance(action, Exception):
            raise action
        if isinstance(action, float):
            await asyncio.sleep(action)
            return "https://late.example/img.png"
        return action


def _items(*urls: str) -> List[NewsSection]:
    return [NewsSection(title="Latest", items=[ArticleItem(id=str(n), title="T", url=u, source="") for n, u in enumerate(urls)])]


@pytest.mark.asyncio
async def test_enrichment_isolates_failures():
    sections = _items("https://ok.com/a", "https://boom.com/b", "https://slow.com/c")
    resolver = FakeResolver(
        {
            "https://ok.com/a": "https://ok.com/og.png",
            "https://boom.com/b": RuntimeError("parse error"),
            "https://slow.com/c": 5.0,
        }
    )

    await news_service.enrich_items_with_images(sections, resolver, concurrency=3, item_timeout_s=0.05, budget_s=2.0)

    images = [it.image for it in sections[0].items]
    assert images == [
        "https://ok.com/og.png",
        favicon_for_host("boom.com"),
        favicon_for_host("slow.com"),
    ]
    assert [it.source for it in sections[0].items] == ["ok.com", "boom.com", "slow.com"]


@pytest.mark.asyncio
async def test_enrichment_respects_overall_budget():
    sections = _items("https://slow.com/a", "https://slow.com/b")
    resolver = FakeResolver({"https://slow.com/a": 5.0, "https://slow.com/b": 5.0})

    await news_service.enrich_items_with_images(sections, resolver, concurrency=2, item_timeout_s=10.0, budget_s=0.05)

    assert [it.image for it in sections[0].items] == [favicon_for_host("slow.com")] * 2


@pytest.mark.asyncio
async def test_enrichment_keeps_existing_images():
    sections = _items("https://a.com/x")
    sections[0].items[0].image = "https://a.com/already.png"

    await news_service.enrich_items_with_images(sections, FakeResolver({}))

    assert sections[0].items[0].image == "https://a.com/already.png"


@pytest.mark.asyncio
async def test_slow_sniff_is_cut_by_request_budget(monkeypatch):
    async def slow_sniff(*_, **__) -> List[str]:
        await asyncio.sleep(5)
        return ["https://news.com/a"]

    monkeypatch.setattr(news_service, "sniff_head_sponsor_urls", slow_sniff)
    fetcher = FakeFetcher({(FEED_URL, True): _json_feed()})

    loop = asyncio.get_running_loop()
    started = loop.time()
    result = await news_service.get_news(
        Vertical.AI, SponsorMode.MARK, fetcher=fetcher, cache=DictCache(), budget_s=0.1
    )

    assert loop.time() - started < 2
    # No seeds from the cut sniff: only the explicit "(Sponsor)" block is marked.
    assert result.sponsored_ids == ["s1", "s2"]


@pytest.mark.asyncio
async def test_spent_budget_skips_sniff_and_enrichment(monkeypatch):
    async def boom(*_, **__):
        raise AssertionError("sniff must not start once the budget is spent")

    monkeypatch.setattr(news_service, "sniff_head_sponsor_urls", boom)
    html = '<a href="https://news.com/a">Some headline</a>'
    fetcher = FakeFetcher({(FEED_URL, True): FetchResult(status=200, content_type="text/html", body=html)})

    result = await news_service.get_news(
        Vertical.AI, SponsorMode.DROP, fetcher=fetcher, cache=DictCache(), budget_s=0
    )

    item = result.sections[0].items[0]
    assert item.image == favicon_for_host("news.com")
    assert fetcher.calls == [(FEED_URL, True)]
