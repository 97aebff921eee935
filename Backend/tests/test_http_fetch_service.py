from __future__ import annotations

import httpx
import pytest

from services.http_fetch_service import HttpFetchService, is_json_content_type


@pytest.mark.asyncio
async def test_fetch_requires_context():
    """fetch() raises if the client was never opened."""
    service = HttpFetchService()
    with pytest.raises(RuntimeError, match="not initialized"):
        await service.fetch("https://example.com")


@pytest.mark.asyncio
async def test_fetch_json_sends_accept_header(httpx_mock):
    httpx_mock.add_response(
        url="https://tldr.tech/api/latest/ai",
        json={"sections": []},
    )

    async with HttpFetchService(user_agent="test-agent/1.0") as service:
        result = await service.fetch("https://tldr.tech/api/latest/ai", accept_json=True)

    assert result.status == 200
    assert is_json_content_type(result.content_type)
    assert result.ok
    request = httpx_mock.get_requests()[0]
    assert request.headers["accept"] == "application/json"
    assert request.headers["user-agent"] == "test-agent/1.0"


@pytest.mark.asyncio
async def test_fetch_non_2xx_is_not_ok(httpx_mock):
    httpx_mock.add_response(status_code=503, text="down")

    async with HttpFetchService() as service:
        result = await service.fetch("https://example.com/")

    assert result.status == 503
    assert result.body == "down"
    assert not result.ok


@pytest.mark.asyncio
async def test_fetch_transport_error_maps_to_status_zero(httpx_mock):
    httpx_mock.add_exception(httpx.ConnectError("boom"))

    async with HttpFetchService() as service:
        result = await service.fetch("https://example.com/")

    assert result.status == 0
    assert result.body == ""
    assert not result.ok


@pytest.mark.asyncio
async def test_fetch_timeout_maps_to_status_zero(httpx_mock):
    httpx_mock.add_exception(httpx.ReadTimeout("slow"))

    async with HttpFetchService() as service:
        result = await service.fetch("https://example.com/", timeout_s=1.0)

    assert result.status == 0


@pytest.mark.asyncio
async def test_head_ok_statuses(httpx_mock):
    httpx_mock.add_response(method="HEAD", url="https://a.com/apple-touch-icon.png", status_code=200)
    httpx_mock.add_response(method="HEAD", url="https://a.com/favicon.ico", status_code=404)

    async with HttpFetchService() as service:
        assert await service.head_ok("https://a.com/apple-touch-icon.png") is True
        assert await service.head_ok("https://a.com/favicon.ico") is False


@pytest.mark.asyncio
async def test_head_ok_network_error(httpx_mock):
    httpx_mock.add_exception(httpx.ConnectError("nope"))

    async with HttpFetchService() as service:
        assert await service.head_ok("https://a.com/favicon.ico") is False
