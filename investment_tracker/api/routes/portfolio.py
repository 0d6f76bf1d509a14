"""Positions, portfolio totals and quote lookups."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...providers.alpha_vantage import AlphaVantageError, AlphaVantageRateLimitError
from ...schemas import PortfolioSchema, PositionSchema, QuoteSchema
from ...services.lots import InsufficientSharesError
from ...services.market_data import InvalidSymbolError, QuoteService
from ...services.repository import RepositoryError
from ...services.transactions import TransactionService
from ..dependencies import InternalAuth, get_optional_quote_service, get_quote_service, get_transaction_service
from .transactions import insufficient_shares, storage_failure

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[InternalAuth])


@router.get("/positions", response_model=list[PositionSchema])
async def get_positions(
    include_closed: bool = Query(default=False),
    service: TransactionService = Depends(get_transaction_service),
) -> list[PositionSchema]:
    try:
        positions = await service.positions(include_closed=include_closed)
    except InsufficientSharesError as exc:
        raise insufficient_shares(exc) from exc
    except RepositoryError as exc:
        raise storage_failure(exc) from exc
    return [PositionSchema.from_domain(position) for position in positions]


@router.get("/portfolio", response_model=PortfolioSchema)
async def get_portfolio(
    priced: bool = Query(default=False, description="Attach current prices from the quote provider."),
    service: TransactionService = Depends(get_transaction_service),
    quotes: QuoteService | None = Depends(get_optional_quote_service),
) -> PortfolioSchema:
    try:
        prices = None
        if priced and quotes is not None:
            prices = await quotes.prices_for(await service.symbols())
        portfolio = await service.portfolio(prices)
    except InsufficientSharesError as exc:
        raise insufficient_shares(exc) from exc
    except RepositoryError as exc:
        raise storage_failure(exc) from exc
    return PortfolioSchema.from_domain(portfolio)


@router.get("/quotes/{symbol}", response_model=QuoteSchema)
async def get_quote(symbol: str, quotes: QuoteService = Depends(get_quote_service)) -> QuoteSchema:
    try:
        quote = await quotes.latest(symbol)
    except InvalidSymbolError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except AlphaVantageRateLimitError as exc:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc)) from exc
    except AlphaVantageError as exc:
        logger.warning("Quote lookup for %s failed: %s", symbol, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return QuoteSchema.from_domain(quote)
