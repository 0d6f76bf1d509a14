"""Pydantic schemas for the investment tracker API."""

from .portfolio import (
    MigrationSchema,
    PortfolioSchema,
    PositionSchema,
    QuoteSchema,
    SellValidationRequest,
    SellValidationSchema,
    TransactionCreateRequest,
    TransactionSchema,
    TransactionUpdateRequest,
)

__all__ = [
    "MigrationSchema",
    "PortfolioSchema",
    "PositionSchema",
    "QuoteSchema",
    "SellValidationRequest",
    "SellValidationSchema",
    "TransactionCreateRequest",
    "TransactionSchema",
    "TransactionUpdateRequest",
]
