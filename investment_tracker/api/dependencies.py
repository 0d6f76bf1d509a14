"""Shared FastAPI dependencies for the investment tracker."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request, status

from investment_tracker.config import TrackerSettings
from investment_tracker.db import Database
from investment_tracker.services.market_data import QuoteService
from investment_tracker.services.repository import LocalTransactionRepository, select_repository
from investment_tracker.services.transactions import TransactionService


def get_app_settings(request: Request) -> TrackerSettings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def verify_internal_token(
    x_internal_token: str | None = Header(default=None),
    settings: TrackerSettings = Depends(get_app_settings),
) -> None:
    if settings.internal_auth_token is None:
        return
    if x_internal_token != settings.internal_auth_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid internal token")


InternalAuth = Depends(verify_internal_token)


@dataclass
class RequestContext:
    user_id: str | None

    @property
    def signed_in(self) -> bool:
        return bool(self.user_id)


def get_request_context(x_user_id: str | None = Header(default=None)) -> RequestContext:
    """Anonymous callers are allowed; they work against the local store."""

    user_id = x_user_id.strip() if x_user_id else None
    return RequestContext(user_id=user_id or None)


def require_user(context: RequestContext = Depends(get_request_context)) -> RequestContext:
    if not context.signed_in:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user context")
    return context


def get_transaction_service(
    context: RequestContext = Depends(get_request_context),
    settings: TrackerSettings = Depends(get_app_settings),
    database: Database = Depends(get_database),
) -> TransactionService:
    repository = select_repository(context.user_id, settings=settings, database=database)
    return TransactionService(repository)


def get_local_repository(settings: TrackerSettings = Depends(get_app_settings)) -> LocalTransactionRepository:
    return LocalTransactionRepository(settings.local_store_path)


def get_quote_service(request: Request) -> QuoteService:
    quotes = getattr(request.app.state, "quotes", None)
    if quotes is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Market data is not configured",
        )
    return quotes


def get_optional_quote_service(request: Request) -> QuoteService | None:
    return getattr(request.app.state, "quotes", None)


__all__ = [
    "InternalAuth",
    "RequestContext",
    "get_app_settings",
    "get_database",
    "get_local_repository",
    "get_optional_quote_service",
    "get_quote_service",
    "get_request_context",
    "get_transaction_service",
    "require_user",
]
