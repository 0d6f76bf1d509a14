"""Alpha Vantage client tests."""

from __future__ import annotations

import httpx
import pytest

from investment_tracker.providers.alpha_vantage import (
    BASE_URL,
    AlphaVantageClient,
    AlphaVantageError,
    AlphaVantageRateLimitError,
)


class StubResponse:
    def __init__(self, payload: dict[str, object], status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            request = httpx.Request("GET", BASE_URL)
            raise httpx.HTTPStatusError(
                "error", request=request, response=httpx.Response(self.status_code, request=request)
            )

    def json(self) -> dict[str, object]:
        return self._payload


class StubClient:
    def __init__(self, payload: dict[str, object] | None = None, status_code: int = 200) -> None:
        self.payload = payload if payload is not None else {"data": "ok"}
        self.status_code = status_code
        self.calls: list[dict[str, object]] = []
        self.closed = False

    async def get(self, url: str, params: dict[str, object], timeout: float) -> StubResponse:
        self.calls.append(params)
        return StubResponse(self.payload, self.status_code)

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_injects_api_key_and_function():
    stub = StubClient()
    client = AlphaVantageClient(api_key="test", requests_per_minute=10, client=stub)
    await client.global_quote("AAPL")
    await client.daily("AAPL", output="full")
    assert stub.calls[0] == {"function": "GLOBAL_QUOTE", "symbol": "AAPL", "apikey": "test"}
    assert stub.calls[1]["function"] == "TIME_SERIES_DAILY"
    assert stub.calls[1]["outputsize"] == "full"


@pytest.mark.asyncio
async def test_raises_rate_limit_on_note():
    client = AlphaVantageClient(api_key="test", requests_per_minute=10, client=StubClient({"Note": "limit"}))
    with pytest.raises(AlphaVantageRateLimitError):
        await client.global_quote("AAPL")


@pytest.mark.asyncio
async def test_raises_on_error_message():
    stub = StubClient({"Error Message": "Invalid API call"})
    client = AlphaVantageClient(api_key="test", requests_per_minute=10, client=stub)
    with pytest.raises(AlphaVantageError) as excinfo:
        await client.global_quote("NOPE")
    assert not isinstance(excinfo.value, AlphaVantageRateLimitError)


@pytest.mark.asyncio
async def test_http_failure_is_wrapped():
    client = AlphaVantageClient(api_key="test", requests_per_minute=10, client=StubClient(status_code=500))
    with pytest.raises(AlphaVantageError):
        await client.global_quote("AAPL")


@pytest.mark.asyncio
async def test_injected_client_is_not_closed():
    stub = StubClient()
    client = AlphaVantageClient(api_key="test", client=stub)
    await client.aclose()
    assert stub.closed is False


def test_missing_key_is_rejected(monkeypatch):
    from investment_tracker.config import get_settings

    monkeypatch.delenv("ALPHAVANTAGE_API_KEY", raising=False)
    get_settings.cache_clear()
    try:
        with pytest.raises(AlphaVantageError):
            AlphaVantageClient(client=StubClient())
    finally:
        get_settings.cache_clear()
