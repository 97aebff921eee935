from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from app.config import settings
from app.core.logging import get_logger

logger = get_logger().bind(module="http_fetch_service")


@dataclass(frozen=True)
class FetchResult:
    status: int
    content_type: str
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300 and self.body != ""

    @property
    def is_html(self) -> bool:
        return "text/html" in self.content_type.lower()


FAILED_FETCH = FetchResult(status=0, content_type="", body="")


def is_json_content_type(content_type: str) -> bool:
    return "application/json" in (content_type or "").lower()


class HttpFetchService:
    """
    Uniform GET/HEAD adapter for upstream, article and icon requests.

    Never raises on network failure: transport errors and timeouts map to
    status 0 with an empty body so callers can walk their fallback ladders.
    No request is retried.
    """

    def __init__(
        self,
        *,
        user_agent: str = settings.USER_AGENT,
        icon_user_agent: str = settings.ICON_USER_AGENT,
        connect_timeout_s: float = settings.FETCH_CONNECT_TIMEOUT_S,
        timeout_s: float = settings.FETCH_TIMEOUT_S,
        head_connect_timeout_s: float = settings.HEAD_CONNECT_TIMEOUT_S,
        head_timeout_s: float = settings.HEAD_TIMEOUT_S,
        head_max_redirects: int = settings.HEAD_MAX_REDIRECTS,
    ) -> None:
        self.user_agent = user_agent
        self.icon_user_agent = icon_user_agent
        self.timeout = httpx.Timeout(timeout_s, connect=connect_timeout_s)
        self.head_timeout = httpx.Timeout(head_timeout_s, connect=head_connect_timeout_s)
        self.head_max_redirects = max(0, head_max_redirects)
        self._client: Optional[httpx.AsyncClient] = None
        self._head_client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "HttpFetchService":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
        )
        self._head_client = httpx.AsyncClient(
            timeout=self.head_timeout,
            headers={"User-Agent": self.icon_user_agent},
            follow_redirects=True,
            max_redirects=self.head_max_redirects,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client:
            await self._client.aclose()
        if self._head_client:
            await self._head_client.aclose()

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(f"{self.__class__.__name__} HTTP client not initialized")
        return self._client

    async def fetch(
        self,
        url: str,
        accept_json: bool = False,
        *,
        timeout_s: Optional[float] = None,
    ) -> FetchResult:
        """
        GET `url` following redirects.

        Args:
            url: absolute URL to fetch
            accept_json: send `Accept: application/json`
            timeout_s: optional tighter total timeout (article pages)

        Returns:
            FetchResult; status 0 and empty body on any transport failure
        """
        client = self._require_client()
        headers = {"Accept": "application/json"} if accept_json else {}
        timeout = self.timeout if timeout_s is None else httpx.Timeout(timeout_s)
        try:
            response = await client.get(url, headers=headers, timeout=timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("http_fetch_failed", url=url[:200], error=str(exc), error_type=type(exc).__name__)
            return FAILED_FETCH

        return FetchResult(
            status=response.status_code,
            content_type=response.headers.get("content-type", ""),
            body=response.text or "",
        )

    async def head_ok(self, url: str) -> bool:
        """True iff a HEAD on `url` ends (after redirects) with a status in [200, 400)."""
        if self._head_client is None:
            raise RuntimeError(f"{self.__class__.__name__} HTTP client not initialized")
        try:
            response = await self._head_client.head(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("http_head_failed", url=url[:200], error=str(exc), error_type=type(exc).__name__)
            return False
        return 200 <= response.status_code < 400
