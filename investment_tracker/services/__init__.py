"""Domain services: lot accounting, validation, aggregation and storage."""

from .lots import (
    InsufficientSharesError,
    Portfolio,
    Position,
    Transaction,
    TransactionType,
    calculate_position,
    calculate_positions,
    with_market_price,
)
from .portfolio import aggregate, build_portfolio
from .validation import SellValidation, validate_sell

__all__ = [
    "InsufficientSharesError",
    "Portfolio",
    "Position",
    "Transaction",
    "TransactionType",
    "calculate_position",
    "calculate_positions",
    "with_market_price",
    "aggregate",
    "build_portfolio",
    "SellValidation",
    "validate_sell",
]
