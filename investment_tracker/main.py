"""Entry point for the investment tracker API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from opentelemetry import trace

from . import __version__
from .api.routes import api_router
from .config import TrackerSettings, get_settings
from .core.logging import setup_logging
from .core.telemetry import setup_telemetry
from .db import Database
from .providers.alpha_vantage import AlphaVantageClient
from .services.market_data import QuoteService

logger = logging.getLogger("investment_tracker")


def _build_quote_service(settings: TrackerSettings) -> QuoteService | None:
    if not settings.alphavantage_api_key:
        logger.info("Alpha Vantage API key not set; quote endpoints disabled")
        return None
    client = AlphaVantageClient(
        settings.alphavantage_api_key,
        requests_per_minute=settings.alphavantage_requests_per_minute,
    )
    return QuoteService(
        client,
        cache_seconds=settings.quote_cache_seconds,
        lookback_days=settings.historical_lookback_days,
    )


def create_app(settings: TrackerSettings | None = None, *, quotes: QuoteService | None = None) -> FastAPI:
    """Build the application; ``quotes`` replaces the Alpha Vantage backed service."""

    settings = settings or get_settings()
    setup_logging(settings.log_level)
    database = Database(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Investment tracker configuration", extra=settings.dict_for_logging())
        await database.create_all()
        app.state.quotes = quotes if quotes is not None else _build_quote_service(settings)
        try:
            yield
        finally:
            if app.state.quotes is not None:
                await app.state.quotes.aclose()
            await database.dispose()
            if telemetry is not None:
                telemetry.shutdown()

    app = FastAPI(title=settings.app_name, version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.quotes = None

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    # Tag the active span with the caller identity
    @app.middleware("http")
    async def _annotate_user(request: Request, call_next):  # type: ignore[no-untyped-def]
        user_id = request.headers.get("x-user-id")
        if user_id:
            trace.get_current_span().set_attribute("enduser.id", user_id)
        return await call_next(request)

    app.include_router(api_router, prefix=settings.api_prefix)
    telemetry = setup_telemetry(app, settings, database.engine)
    return app


app = create_app()


__all__ = ["app", "create_app"]
