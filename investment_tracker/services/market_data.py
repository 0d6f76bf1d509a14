"""Quote lookups with short-lived caching.

Prices fetched here are only ever injected into positions after the lot engine
has run; the engine itself never reaches out for market data.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable

import pandas as pd

from investment_tracker.providers.alpha_vantage import AlphaVantageClient, AlphaVantageError

logger = logging.getLogger(__name__)

SYMBOL_PATTERN = re.compile(r"^[A-Z]{1,5}$")
# daily closes change at most once a day, so they are kept longer than quotes
_HISTORY_TTL_FACTOR = 60


class InvalidSymbolError(ValueError):
    """Raised for tickers that are not 1-5 letters."""


class QuoteNotFoundError(AlphaVantageError):
    """Raised when the provider has no quote for a symbol."""


@dataclass(frozen=True)
class Quote:
    symbol: str
    price: Decimal
    previous_close: Decimal | None
    change: Decimal | None
    change_percent: Decimal | None
    latest_trading_day: date | None


def validate_symbol(symbol: str) -> str:
    normalized = symbol.strip().upper()
    if not SYMBOL_PATTERN.match(normalized):
        raise InvalidSymbolError(f"Invalid symbol format: {symbol!r}. Must be 1-5 letters.")
    return normalized


def _decimal(raw: Any) -> Decimal | None:
    if raw is None:
        return None
    try:
        return Decimal(str(raw).strip().rstrip("%"))
    except InvalidOperation:
        return None


def parse_global_quote(symbol: str, payload: dict[str, Any]) -> Quote:
    quote = payload.get("Global Quote") or {}
    price = _decimal(quote.get("05. price"))
    if price is None:
        raise QuoteNotFoundError(f"No quote data found for {symbol}")
    trading_day = quote.get("07. latest trading day")
    return Quote(
        symbol=str(quote.get("01. symbol") or symbol).upper(),
        price=price,
        previous_close=_decimal(quote.get("08. previous close")),
        change=_decimal(quote.get("09. change")),
        change_percent=_decimal(quote.get("10. change percent")),
        latest_trading_day=datetime.strptime(trading_day, "%Y-%m-%d").date() if trading_day else None,
    )


def parse_daily_closes(payload: dict[str, Any]) -> pd.Series:
    """Return closing prices indexed by day, oldest first."""

    series = payload.get("Time Series (Daily)", {})
    closes: dict[pd.Timestamp, Decimal] = {}
    for day_str, values in series.items():
        try:
            day = pd.Timestamp(datetime.strptime(day_str, "%Y-%m-%d"))
        except ValueError:
            continue
        close = _decimal(values.get("4. close"))
        if close is None:
            continue
        closes[day] = close
    if not closes:
        return pd.Series(dtype=object)
    return pd.Series(closes, dtype=object).sort_index()


class QuoteService:
    """Current and historical prices backed by Alpha Vantage."""

    def __init__(
        self,
        client: AlphaVantageClient,
        *,
        cache_seconds: float = 60.0,
        lookback_days: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.cache_seconds = cache_seconds
        self.lookback_days = lookback_days
        self._clock = clock
        self._quotes: dict[str, tuple[float, Quote]] = {}
        self._history: dict[tuple[str, str], tuple[float, pd.Series]] = {}

    def _fresh(self, stored_at: float, ttl: float) -> bool:
        return self._clock() - stored_at < ttl

    async def latest(self, symbol: str) -> Quote:
        normalized = validate_symbol(symbol)
        cached = self._quotes.get(normalized)
        if cached and self._fresh(cached[0], self.cache_seconds):
            return cached[1]
        payload = await self.client.global_quote(normalized)
        quote = parse_global_quote(normalized, payload)
        self._quotes[normalized] = (self._clock(), quote)
        return quote

    async def historical_close(self, symbol: str, on_date: date) -> Decimal | None:
        """Close on ``on_date`` or the nearest earlier trading day in the lookback window."""

        normalized = validate_symbol(symbol)
        output = "compact" if (date.today() - on_date).days <= 100 else "full"
        cached = self._history.get((normalized, output))
        if cached and self._fresh(cached[0], self.cache_seconds * _HISTORY_TTL_FACTOR):
            closes = cached[1]
        else:
            closes = parse_daily_closes(await self.client.daily(normalized, output=output))
            self._history[(normalized, output)] = (self._clock(), closes)
        if closes.empty:
            return None
        start = pd.Timestamp(on_date - timedelta(days=self.lookback_days - 1))
        window = closes.loc[start : pd.Timestamp(on_date)]
        if window.empty:
            return None
        return window.iloc[-1]

    async def prices_for(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        """Best-effort batch lookup; symbols that fail are left out."""

        prices: dict[str, Decimal] = {}
        for symbol in symbols:
            try:
                prices[symbol] = (await self.latest(symbol)).price
            except (AlphaVantageError, InvalidSymbolError) as exc:
                logger.warning("No price for %s: %s", symbol, exc)
        return prices

    async def aclose(self) -> None:
        await self.client.aclose()


__all__ = [
    "InvalidSymbolError",
    "Quote",
    "QuoteNotFoundError",
    "QuoteService",
    "parse_daily_closes",
    "parse_global_quote",
    "validate_symbol",
]
