from __future__ import annotations

import re
from typing import AbstractSet, Callable, Optional
from urllib.parse import unquote_plus, urlsplit

from app.models.sponsor_rules import get_sponsor_rules

_TRACKING_PARAM_RE = re.compile(
    r"^(utm_.*|gclid|fbclid|mc_.*|ref|ref_.*|campaign|source|medium|content)$",
    re.IGNORECASE,
)
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def is_tracking_param(name: str) -> bool:
    return bool(_TRACKING_PARAM_RE.match(name or ""))


def filter_query(query: str, drop: Callable[[str], bool]) -> str:
    """
    Remove the `key[=value]` segments of a raw query string whose decoded key
    matches `drop`. Surviving segments are kept byte-for-byte, in order;
    empty segments ("a=1&&b=2") are discarded.
    """
    kept = []
    for segment in (query or "").split("&"):
        if not segment:
            continue
        key = unquote_plus(segment.split("=", 1)[0])
        if not drop(key):
            kept.append(segment)
    return "&".join(kept)


def normalize_url(url: str) -> str:
    """
    Drop tracking parameters so URL comparisons are reliable.

    Keeps origin + path + the remaining query parameters exactly as written,
    in their original order; the fragment is dropped. Anything that does not
    parse as an absolute URL is returned unchanged.
    """
    try:
        parts = urlsplit(url)
        host = parts.hostname
        port = parts.port
    except (ValueError, TypeError, AttributeError):
        return url
    if not parts.scheme or not host:
        return url

    if ":" in host:
        host = f"[{host}]"
    origin = f"{parts.scheme.lower()}://{host}" + (f":{port}" if port is not None else "")
    path = parts.path or "/"

    query = filter_query(parts.query, is_tracking_param)
    return f"{origin}{path}?{query}" if query else f"{origin}{path}"


def hostname_of(url: str) -> str:
    try:
        return (urlsplit(url or "").hostname or "").lower()
    except ValueError:
        return ""


def host_to_source(url: str) -> str:
    """Bare hostname used as the item's `source` (no leading "www.")."""
    return re.sub(r"^www\.", "", hostname_of(url))


def registrable_domain_from_host(
    host: str,
    two_level_suffixes: Optional[AbstractSet[str]] = None,
) -> str:
    host = (host or "").strip().lower().rstrip(".")
    if not host:
        return ""
    labels = host.split(".")
    if len(labels) <= 2:
        return host

    suffixes = two_level_suffixes if two_level_suffixes is not None else get_sponsor_rules().two_level_suffixes
    candidate = ".".join(labels[-2:])
    if candidate in suffixes:
        return ".".join(labels[-3:])
    return candidate


def registrable_domain(url: str, two_level_suffixes: Optional[AbstractSet[str]] = None) -> str:
    """
    Registrable domain of `url` ("www.example.co.uk" -> "example.co.uk").
    Unparseable input yields "".
    """
    return registrable_domain_from_host(hostname_of(url), two_level_suffixes)


def brand_token(domain: str) -> str:
    """First label of a registrable domain, lowercased, alphanumerics only."""
    label = registrable_domain_from_host(domain).split(".")[0]
    return _NON_ALNUM_RE.sub("", label)
