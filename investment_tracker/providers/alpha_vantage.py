"""Alpha Vantage client used for quote lookups."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Any, Deque

import httpx

from investment_tracker.config import get_settings

BASE_URL = "https://www.alphavantage.co/query"
_WINDOW_SECONDS = 60.0

logger = logging.getLogger(__name__)


class AlphaVantageError(RuntimeError):
    """Raised when Alpha Vantage returns an error payload."""


class AlphaVantageRateLimitError(AlphaVantageError):
    """Raised when Alpha Vantage answers with a throttling note."""


class AlphaVantageClient:
    """Throttled Alpha Vantage client with convenience helpers."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        requests_per_minute: int | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or settings.alphavantage_api_key
        if not self.api_key:
            raise AlphaVantageError("Alpha Vantage API key is not configured")
        self.requests_per_minute = requests_per_minute or settings.alphavantage_requests_per_minute
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None
        self._timeout = timeout
        self._calls: Deque[float] = deque()
        self._lock = asyncio.Lock()

    async def _throttle(self) -> None:
        async with self._lock:
            now = time.monotonic()
            while self._calls and now - self._calls[0] >= _WINDOW_SECONDS:
                self._calls.popleft()
            if len(self._calls) >= self.requests_per_minute:
                wait = _WINDOW_SECONDS - (now - self._calls[0])
                logger.debug("Alpha Vantage throttle: sleeping %.2fs", wait)
                await asyncio.sleep(wait)
                self._calls.popleft()
            self._calls.append(time.monotonic())

    async def _get(self, params: dict[str, Any]) -> dict[str, Any]:
        await self._throttle()
        query = {**params, "apikey": self.api_key}
        try:
            response = await self._client.get(BASE_URL, params=query, timeout=self._timeout)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise AlphaVantageError(f"Alpha Vantage request failed: {exc}") from exc
        if "Error Message" in payload:
            raise AlphaVantageError(str(payload["Error Message"]))
        for key in ("Note", "Information"):
            if key in payload:
                raise AlphaVantageRateLimitError(str(payload[key]))
        return payload

    async def global_quote(self, symbol: str) -> dict[str, Any]:
        return await self._get({"function": "GLOBAL_QUOTE", "symbol": symbol})

    async def daily(self, symbol: str, *, output: str = "compact") -> dict[str, Any]:
        return await self._get({"function": "TIME_SERIES_DAILY", "symbol": symbol, "outputsize": output})

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = [
    "AlphaVantageClient",
    "AlphaVantageError",
    "AlphaVantageRateLimitError",
    "BASE_URL",
]
