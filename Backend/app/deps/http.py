# Backend/app/deps/http.py
"""
FastAPI dependencies for outbound HTTP and the small object cache.

One HttpFetchService (and its connection pools) per request; the cache is
process-wide. Tests override these via app.dependency_overrides.
"""

from __future__ import annotations

from typing import AsyncIterator

from services.http_fetch_service import HttpFetchService
from services.small_cache_service import SmallCache, get_small_cache

__all__ = ["get_http_fetcher", "get_cache"]


async def get_http_fetcher() -> AsyncIterator[HttpFetchService]:
    async with HttpFetchService() as fetcher:
        yield fetcher


def get_cache() -> SmallCache:
    return get_small_cache()
