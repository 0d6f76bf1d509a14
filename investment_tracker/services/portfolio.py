"""Portfolio-level aggregation of positions."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Mapping

from .lots import (
    ZERO,
    Portfolio,
    Position,
    Transaction,
    calculate_positions,
    normalize_symbol,
    with_market_price,
)


def aggregate(positions: Iterable[Position], *, now: datetime | None = None) -> Portfolio:
    """Sum position totals; unpriced positions contribute 0 to value and unrealized P&L."""

    items = tuple(positions)
    total_invested = sum((p.total_invested for p in items), ZERO)
    total_current_value = sum((p.current_value or ZERO for p in items), ZERO)
    total_realized = sum((p.realized_gain_loss for p in items), ZERO)
    total_unrealized = sum((p.unrealized_gain_loss or ZERO for p in items), ZERO)
    return Portfolio(
        positions=items,
        total_invested=total_invested,
        total_current_value=total_current_value,
        total_realized_gain_loss=total_realized,
        total_unrealized_gain_loss=total_unrealized,
        total_gain_loss=total_realized + total_unrealized,
        last_updated=now or datetime.now(timezone.utc),
    )


def apply_prices(positions: Iterable[Position], prices: Mapping[str, Decimal]) -> list[Position]:
    normalized = {normalize_symbol(symbol): price for symbol, price in prices.items()}
    priced: list[Position] = []
    for position in positions:
        price = normalized.get(position.symbol)
        priced.append(with_market_price(position, price) if price is not None else position)
    return priced


def build_portfolio(
    transactions: Iterable[Transaction],
    prices: Mapping[str, Decimal] | None = None,
    *,
    now: datetime | None = None,
) -> Portfolio:
    """Recompute open positions from scratch, value them and aggregate."""

    timestamp = now or datetime.now(timezone.utc)
    positions = calculate_positions(transactions, now=timestamp)
    if prices:
        positions = apply_prices(positions, prices)
    return aggregate(positions, now=timestamp)


__all__ = ["aggregate", "apply_prices", "build_portfolio"]
