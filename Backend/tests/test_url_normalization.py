from __future__ import annotations

import pytest

from services.url_normalization import (
    brand_token,
    host_to_source,
    is_tracking_param,
    normalize_url,
    registrable_domain,
)


@pytest.mark.parametrize(
    "name",
    ["utm_source", "UTM_Campaign", "gclid", "fbclid", "mc_eid", "ref", "ref_src", "campaign", "source", "medium", "content"],
)
def test_tracking_params_detected(name):
    assert is_tracking_param(name)


@pytest.mark.parametrize("name", ["id", "page", "q", "referrer", "sources"])
def test_regular_params_kept(name):
    assert not is_tracking_param(name)


def test_normalize_url_drops_tracking_keeps_order():
    url = "https://Example.com/post?b=2&utm_source=tldr&a=1&ref=nav#top"
    assert normalize_url(url) == "https://example.com/post?b=2&a=1"


def test_normalize_url_no_trailing_question_mark():
    assert normalize_url("https://example.com/x?utm_medium=email") == "https://example.com/x"


def test_normalize_url_invalid_passthrough():
    assert normalize_url("not a url") == "not a url"
    assert normalize_url("/relative/path") == "/relative/path"


def test_normalize_url_keeps_port():
    assert normalize_url("http://localhost:8080/a?gclid=1") == "http://localhost:8080/a"


def test_registrable_domain_plain_host():
    assert registrable_domain("https://www.example.com/a") == "example.com"
    assert registrable_domain("https://a.b.example.com") == "example.com"


def test_registrable_domain_two_level_suffix():
    assert registrable_domain("https://www.example.co.uk/a") == "example.co.uk"
    assert registrable_domain("https://shop.brand.com.au") == "brand.com.au"


def test_registrable_domain_unparseable():
    assert registrable_domain("nonsense") == ""


def test_host_to_source_strips_www():
    assert host_to_source("https://www.Example.com/a") == "example.com"
    assert host_to_source("https://blog.example.com/a") == "blog.example.com"


def test_brand_token():
    assert brand_token("my-brand.com") == "mybrand"
    assert brand_token("www.acme.co.uk") == "acme"
    assert brand_token("") == ""


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://a.com/x?flag&utm_source=z", "https://a.com/x?flag"),
        ("https://a.com/x?flag", "https://a.com/x?flag"),
        ("https://a.com/x?q=a%20b&utm_source=z", "https://a.com/x?q=a%20b"),
        ("https://a.com/x?q=a+b", "https://a.com/x?q=a+b"),
        ("https://a.com/x?a=%zz", "https://a.com/x?a=%zz"),
        ("https://a.com/x?a=1&&utm_%73ource=z&b=", "https://a.com/x?a=1&b="),
    ],
)
def test_normalize_url_keeps_other_params_verbatim(url, expected):
    assert normalize_url(url) == expected


def test_normalize_url_ipv6_host_keeps_brackets():
    assert normalize_url("http://[::1]:8080/a?gclid=1") == "http://[::1]:8080/a"


@pytest.mark.parametrize(
    "url",
    [
        "https://Example.com/post?b=2&utm_source=tldr&a=1&ref=nav#top",
        "http://localhost:8080/a?gclid=1&page=2",
        "https://a.com/x?flag&empty=&utm_medium=email",
        "https://a.com/x?q=a%20b&name=%E2%9C%93&fbclid=abc",
        "https://a.com/x?a=%zz",
        "https://a.com",
        "http://[::1]:8080/a?gclid=1",
        "not a url",
    ],
)
def test_normalize_url_is_idempotent(url):
    once = normalize_url(url)
    assert normalize_url(once) == once
