"""FIFO lot accounting for stock positions.

Positions are always recomputed from scratch over the full transaction list
for a symbol. Lots consumed during the walk are private working copies, so the
caller's transaction records are never touched and repeated calls over the
same input produce identical results.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, getcontext
from enum import Enum
from typing import Iterable, Sequence

getcontext().prec = 28

logger = logging.getLogger(__name__)

SHARE_PLACES = 5
SHARE_QUANTUM = Decimal(1).scaleb(-SHARE_PLACES)
# prices and fees are stored with the precision of the database columns
PRICE_PLACES = 6
PRICE_QUANTUM = Decimal(1).scaleb(-PRICE_PLACES)
ZERO = Decimal("0")


class TransactionType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


def quantize_shares(value: Decimal | int | float | str) -> Decimal:
    """Round a share quantity to the fixed 5 decimal place precision."""

    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(SHARE_QUANTUM, rounding=ROUND_HALF_UP)


def quantize_price(value: Decimal | int | float | str) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


def normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


@dataclass(frozen=True)
class Transaction:
    """A single BUY or SELL record as stored by the application."""

    id: str
    symbol: str
    type: TransactionType
    quantity: Decimal
    price_per_share: Decimal
    date: date
    total_amount: Decimal
    fees: Decimal = ZERO
    notes: str | None = None
    tags: tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        *,
        id: str,
        symbol: str,
        type: TransactionType | str,
        quantity: Decimal | int | float | str,
        price_per_share: Decimal | int | float | str,
        date: date,
        fees: Decimal | int | float | str | None = None,
        notes: str | None = None,
        tags: Iterable[str] = (),
    ) -> "Transaction":
        """Build a normalized transaction and derive its ``total_amount``."""

        tx_type = TransactionType(type.upper() if isinstance(type, str) else type)
        qty = quantize_shares(quantity)
        if qty <= 0:
            raise ValueError(f"Quantity must be at least {SHARE_QUANTUM} shares")
        price = quantize_price(price_per_share)
        fee = quantize_price(fees) if fees is not None else ZERO
        return cls(
            id=id,
            symbol=normalize_symbol(symbol),
            type=tx_type,
            quantity=qty,
            price_per_share=price,
            date=date,
            total_amount=compute_total_amount(tx_type, qty, price, fee),
            fees=fee,
            notes=notes,
            tags=tuple(tags),
        )


def compute_total_amount(
    tx_type: TransactionType,
    quantity: Decimal,
    price_per_share: Decimal,
    fees: Decimal = ZERO,
) -> Decimal:
    """Gross amount adjusted by fees: added for BUY, subtracted for SELL."""

    gross = quantity * price_per_share
    if tx_type is TransactionType.BUY:
        return gross + fees
    return gross - fees


@dataclass(frozen=True)
class Position:
    symbol: str
    total_shares: Decimal
    average_cost_per_share: Decimal
    total_invested: Decimal
    realized_gain_loss: Decimal
    transactions: tuple[Transaction, ...]
    last_updated: datetime
    current_price: Decimal | None = None
    current_value: Decimal | None = None
    unrealized_gain_loss: Decimal | None = None


@dataclass(frozen=True)
class Portfolio:
    positions: tuple[Position, ...] = ()
    total_invested: Decimal = ZERO
    total_current_value: Decimal = ZERO
    total_realized_gain_loss: Decimal = ZERO
    total_unrealized_gain_loss: Decimal = ZERO
    total_gain_loss: Decimal = ZERO
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InsufficientSharesError(ValueError):
    """Raised when a SELL exceeds the shares held at its point in time."""

    def __init__(
        self,
        symbol: str,
        requested: Decimal,
        available: Decimal,
        *,
        transaction_id: str | None = None,
    ) -> None:
        self.symbol = symbol
        self.requested = requested
        self.available = available
        self.transaction_id = transaction_id
        super().__init__(
            f"Cannot sell {requested} shares of {symbol}. Only {available} shares available."
        )


@dataclass
class _OpenLot:
    remaining: Decimal
    cost_per_share: Decimal


def calculate_position(
    transactions: Sequence[Transaction],
    *,
    now: datetime | None = None,
) -> Position | None:
    """Compute shares, cost basis and realized P&L for one symbol using FIFO.

    All ``transactions`` must belong to the same symbol; the symbol of the first
    record names the position. Returns ``None`` for an empty input.

    Raises:
        InsufficientSharesError: a SELL exceeds the shares held when it is
            processed in chronological order.
    """

    if not transactions:
        return None

    symbol = normalize_symbol(transactions[0].symbol)
    total_shares = ZERO
    total_invested = ZERO
    realized = ZERO
    open_lots: deque[_OpenLot] = deque()

    # sorted() is stable, so same-day records keep their entry order
    for tx in sorted(transactions, key=lambda t: t.date):
        quantity = quantize_shares(tx.quantity)
        if tx.type is TransactionType.BUY:
            total_shares += quantity
            total_invested += tx.total_amount
            open_lots.append(_OpenLot(remaining=quantity, cost_per_share=tx.price_per_share))
            continue

        if total_shares < quantity:
            logger.warning(
                "Rejected sell %s of %s %s: only %s held", tx.id, quantity, symbol, total_shares
            )
            raise InsufficientSharesError(symbol, quantity, total_shares, transaction_id=tx.id)

        to_sell = quantity
        cost_basis = ZERO
        while to_sell > 0:
            lot = open_lots[0]
            take = min(to_sell, lot.remaining)
            cost_basis += take * lot.cost_per_share
            lot.remaining -= take
            to_sell -= take
            if lot.remaining == 0:
                open_lots.popleft()

        total_shares -= quantity
        total_invested -= cost_basis
        realized += tx.total_amount - cost_basis

    # buy-side fees never enter the per-lot cost; they stay in total_invested
    average_cost = total_invested / total_shares if total_shares > 0 else ZERO

    return Position(
        symbol=symbol,
        total_shares=total_shares,
        average_cost_per_share=average_cost,
        total_invested=total_invested,
        realized_gain_loss=realized,
        transactions=tuple(transactions),
        last_updated=now or datetime.now(timezone.utc),
    )


def group_by_symbol(transactions: Iterable[Transaction]) -> dict[str, list[Transaction]]:
    """Group transactions by normalized symbol, keeping first-seen order."""

    grouped: dict[str, list[Transaction]] = {}
    for tx in transactions:
        grouped.setdefault(normalize_symbol(tx.symbol), []).append(tx)
    return grouped


def calculate_positions(
    transactions: Iterable[Transaction],
    *,
    include_closed: bool = False,
    now: datetime | None = None,
) -> list[Position]:
    """Run the engine per symbol over a mixed transaction list."""

    timestamp = now or datetime.now(timezone.utc)
    positions: list[Position] = []
    for txs in group_by_symbol(transactions).values():
        position = calculate_position(txs, now=timestamp)
        if position is None:
            continue
        if position.total_shares > 0 or include_closed:
            positions.append(position)
    return positions


def with_market_price(position: Position, price: Decimal | int | float | str) -> Position:
    """Return a copy of ``position`` valued at ``price``."""

    current_price = price if isinstance(price, Decimal) else Decimal(str(price))
    current_value = position.total_shares * current_price
    return replace(
        position,
        current_price=current_price,
        current_value=current_value,
        unrealized_gain_loss=current_value - position.total_invested,
    )


__all__ = [
    "SHARE_PLACES",
    "SHARE_QUANTUM",
    "PRICE_PLACES",
    "TransactionType",
    "Transaction",
    "Position",
    "Portfolio",
    "InsufficientSharesError",
    "calculate_position",
    "calculate_positions",
    "compute_total_amount",
    "group_by_symbol",
    "normalize_symbol",
    "quantize_price",
    "quantize_shares",
    "with_market_price",
]
