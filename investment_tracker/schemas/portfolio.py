"""Pydantic schemas for transactions, positions and the portfolio."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from investment_tracker.models import TRANSACTION_TYPES
from investment_tracker.services.lots import SHARE_QUANTUM, Portfolio, Position, Transaction, quantize_shares
from investment_tracker.services.market_data import Quote
from investment_tracker.services.migration import MigrationResult
from investment_tracker.services.validation import SellValidation

_TYPE_PATTERN = "^(" + "|".join(TRANSACTION_TYPES) + ")$"
_REQUIRED_ON_EDIT = ("symbol", "type", "quantity", "price_per_share", "date")


def _check_share_precision(value: Decimal | None) -> Decimal | None:
    if value is not None and quantize_shares(value) <= 0:
        raise ValueError(f"quantity must be at least {SHARE_QUANTUM} after rounding to 5 decimal places")
    return value


class TransactionCreateRequest(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=20, examples=["AAPL"])
    type: str = Field(..., pattern=_TYPE_PATTERN)
    quantity: Decimal = Field(..., gt=0)
    price_per_share: Decimal = Field(..., gt=0)
    date: dt.date
    fees: Decimal | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=512)
    tags: list[str] = Field(default_factory=list)

    @field_validator("quantity")
    @classmethod
    def quantity_survives_rounding(cls, value: Decimal | None) -> Decimal | None:
        return _check_share_precision(value)


class TransactionUpdateRequest(BaseModel):
    symbol: str | None = Field(default=None, min_length=1, max_length=20)
    type: str | None = Field(default=None, pattern=_TYPE_PATTERN)
    quantity: Decimal | None = Field(default=None, gt=0)
    price_per_share: Decimal | None = Field(default=None, gt=0)
    date: dt.date | None = None
    fees: Decimal | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=512)
    tags: list[str] | None = None

    @field_validator("quantity")
    @classmethod
    def quantity_survives_rounding(cls, value: Decimal | None) -> Decimal | None:
        return _check_share_precision(value)

    @model_validator(mode="after")
    def reject_cleared_required_fields(self) -> "TransactionUpdateRequest":
        cleared = [name for name in _REQUIRED_ON_EDIT if name in self.model_fields_set and getattr(self, name) is None]
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        return self


class TransactionSchema(BaseModel):
    id: str
    symbol: str
    type: str
    quantity: float
    price_per_share: float
    date: dt.date
    total_amount: float
    fees: float
    notes: str | None = None
    tags: list[str] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "3f2c9a0e5b7d4c1a9e8f6b2d4a1c3e5f",
                "symbol": "AAPL",
                "type": "BUY",
                "quantity": 10,
                "price_per_share": 175.5,
                "date": "2024-03-01",
                "total_amount": 1756.0,
                "fees": 1.0,
                "notes": "Initial position",
                "tags": [],
            }
        }
    )

    @classmethod
    def from_domain(cls, tx: Transaction) -> "TransactionSchema":
        return cls(
            id=tx.id,
            symbol=tx.symbol,
            type=tx.type.value,
            quantity=float(tx.quantity),
            price_per_share=float(tx.price_per_share),
            date=tx.date,
            total_amount=float(tx.total_amount),
            fees=float(tx.fees),
            notes=tx.notes,
            tags=list(tx.tags),
        )


def _optional_float(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


class PositionSchema(BaseModel):
    symbol: str
    total_shares: float
    average_cost_per_share: float
    total_invested: float
    realized_gain_loss: float
    current_price: float | None = None
    current_value: float | None = None
    unrealized_gain_loss: float | None = None
    last_updated: dt.datetime
    transactions: list[TransactionSchema] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, position: Position) -> "PositionSchema":
        return cls(
            symbol=position.symbol,
            total_shares=float(position.total_shares),
            average_cost_per_share=float(position.average_cost_per_share),
            total_invested=float(position.total_invested),
            realized_gain_loss=float(position.realized_gain_loss),
            current_price=_optional_float(position.current_price),
            current_value=_optional_float(position.current_value),
            unrealized_gain_loss=_optional_float(position.unrealized_gain_loss),
            last_updated=position.last_updated,
            transactions=[TransactionSchema.from_domain(tx) for tx in position.transactions],
        )


class PortfolioSchema(BaseModel):
    positions: list[PositionSchema]
    total_invested: float
    total_current_value: float
    total_realized_gain_loss: float
    total_unrealized_gain_loss: float
    total_gain_loss: float
    last_updated: dt.datetime

    @classmethod
    def from_domain(cls, portfolio: Portfolio) -> "PortfolioSchema":
        return cls(
            positions=[PositionSchema.from_domain(p) for p in portfolio.positions],
            total_invested=float(portfolio.total_invested),
            total_current_value=float(portfolio.total_current_value),
            total_realized_gain_loss=float(portfolio.total_realized_gain_loss),
            total_unrealized_gain_loss=float(portfolio.total_unrealized_gain_loss),
            total_gain_loss=float(portfolio.total_gain_loss),
            last_updated=portfolio.last_updated,
        )


class SellValidationRequest(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=20)
    quantity: Decimal = Field(..., gt=0)
    exclude_id: str | None = Field(
        default=None,
        description="Transaction being edited; it is left out of the held-shares calculation.",
    )


class SellValidationSchema(BaseModel):
    valid: bool
    message: str
    available_shares: float

    @classmethod
    def from_domain(cls, result: SellValidation) -> "SellValidationSchema":
        return cls(
            valid=result.valid,
            message=result.message,
            available_shares=float(result.available_shares),
        )


class MigrationSchema(BaseModel):
    success: bool
    message: str
    total: int
    migrated: int
    skipped: int

    @classmethod
    def from_domain(cls, result: MigrationResult) -> "MigrationSchema":
        return cls(
            success=True,
            message=result.message,
            total=result.total,
            migrated=result.migrated,
            skipped=result.skipped,
        )


class QuoteSchema(BaseModel):
    symbol: str
    current_price: float
    previous_close: float | None = None
    change: float | None = None
    change_percent: float | None = None
    last_updated: dt.date | None = None

    @classmethod
    def from_domain(cls, quote: Quote) -> "QuoteSchema":
        return cls(
            symbol=quote.symbol,
            current_price=float(quote.price),
            previous_close=_optional_float(quote.previous_close),
            change=_optional_float(quote.change),
            change_percent=_optional_float(quote.change_percent),
            last_updated=quote.latest_trading_day,
        )


__all__ = [
    "TransactionCreateRequest",
    "TransactionUpdateRequest",
    "TransactionSchema",
    "PositionSchema",
    "PortfolioSchema",
    "SellValidationRequest",
    "SellValidationSchema",
    "MigrationSchema",
    "QuoteSchema",
]
