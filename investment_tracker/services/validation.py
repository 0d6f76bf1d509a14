"""Dry-run validation of proposed sells against the lot engine."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from .lots import (
    ZERO,
    InsufficientSharesError,
    Transaction,
    calculate_position,
    normalize_symbol,
    quantize_shares,
)


@dataclass(frozen=True)
class SellValidation:
    valid: bool
    message: str
    available_shares: Decimal


def validate_sell(
    symbol: str,
    proposed_quantity: Decimal | int | float | str,
    existing_transactions: Iterable[Transaction],
) -> SellValidation:
    """Check whether ``proposed_quantity`` shares of ``symbol`` can be sold.

    When an existing transaction is being edited the caller must leave it out of
    ``existing_transactions``. The input is never modified. A stored history
    that already oversells somewhere yields an invalid result carrying the
    engine's message rather than an exception.
    """

    normalized = normalize_symbol(symbol)
    history = [tx for tx in existing_transactions if normalize_symbol(tx.symbol) == normalized]
    try:
        position = calculate_position(history)
    except InsufficientSharesError as exc:
        return SellValidation(valid=False, message=str(exc), available_shares=ZERO)
    available = quantize_shares(position.total_shares if position else ZERO)
    requested = quantize_shares(proposed_quantity)

    if requested > available:
        return SellValidation(
            valid=False,
            message=f"Cannot sell {_display(requested)} shares. Only {_display(available)} shares available.",
            available_shares=available,
        )
    return SellValidation(valid=True, message="Valid transaction", available_shares=available)


def _display(value: Decimal) -> str:
    return format(value.normalize(), "f")


__all__ = ["SellValidation", "validate_sell"]
