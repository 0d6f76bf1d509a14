from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import date
from pathlib import Path

from httpx import ASGITransport, AsyncClient

from conftest import make_tx
from investment_tracker.config import TrackerSettings
from investment_tracker.main import create_app
from investment_tracker.providers.alpha_vantage import AlphaVantageRateLimitError
from investment_tracker.services.market_data import QuoteService
from investment_tracker.services.repository import LocalTransactionRepository

USER = {"X-User-Id": "user-1"}


class FakeAlphaVantage:
    async def global_quote(self, symbol: str) -> dict[str, object]:
        if symbol == "BUSY":
            raise AlphaVantageRateLimitError("Thank you for using Alpha Vantage!")
        return {"Global Quote": {"01. symbol": symbol, "05. price": "12.00"}}

    async def daily(self, symbol: str, *, output: str = "compact") -> dict[str, object]:
        return {}

    async def aclose(self) -> None:
        return None


def _settings(tmp_path: Path, **overrides) -> TrackerSettings:
    return TrackerSettings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'tracker.db'}",
        local_store_path=tmp_path / "local" / "transactions.json",
        **overrides,
    )


def _client(settings: TrackerSettings, quotes: QuoteService | None = None):
    app = create_app(settings, quotes=quotes)

    @asynccontextmanager
    async def _manager():
        async with app.router.lifespan_context(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                yield client

    return _manager


def _buy(symbol: str, quantity: float, price: float, day: str) -> dict[str, object]:
    return {"symbol": symbol, "type": "BUY", "quantity": quantity, "price_per_share": price, "date": day}


def _sell(symbol: str, quantity: float, price: float, day: str) -> dict[str, object]:
    return {**_buy(symbol, quantity, price, day), "type": "SELL"}


def test_health(tmp_path: Path):
    client_manager = _client(_settings(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            response = await api_client.get("/health")
            assert response.status_code == 200
            assert response.json() == {"status": "ok"}

    asyncio.run(_scenario())


def test_transaction_lifecycle_for_signed_in_user(tmp_path: Path):
    client_manager = _client(_settings(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            first = await api_client.post("/api/transactions", json=_buy("aapl", 5, 100, "2024-02-01"), headers=USER)
            assert first.status_code == 201
            assert first.json()["symbol"] == "AAPL"
            assert first.json()["total_amount"] == 500.0

            await api_client.post("/api/transactions", json=_buy("AAPL", 5, 120, "2024-02-02"), headers=USER)
            sell = await api_client.post("/api/transactions", json=_sell("AAPL", 7, 150, "2024-02-03"), headers=USER)
            assert sell.status_code == 201
            sell_id = sell.json()["id"]

            positions = await api_client.get("/api/positions", headers=USER)
            assert positions.status_code == 200
            (position,) = positions.json()
            assert position["total_shares"] == 3.0
            assert position["total_invested"] == 360.0
            assert position["realized_gain_loss"] == 310.0
            assert len(position["transactions"]) == 3

            listed = await api_client.get("/api/transactions", headers=USER)
            assert [tx["id"] for tx in listed.json()][0] == sell_id

            updated = await api_client.put(f"/api/transactions/{sell_id}", json={"quantity": 10}, headers=USER)
            assert updated.status_code == 200
            assert updated.json()["quantity"] == 10.0

            fetched = await api_client.get(f"/api/transactions/{sell_id}", headers=USER)
            assert fetched.json()["total_amount"] == 1500.0

            deleted = await api_client.delete(f"/api/transactions/{sell_id}", headers=USER)
            assert deleted.status_code == 204
            missing = await api_client.get(f"/api/transactions/{sell_id}", headers=USER)
            assert missing.status_code == 404

            # anonymous callers use the local store and see none of this
            anonymous = await api_client.get("/api/transactions")
            assert anonymous.json() == []

    asyncio.run(_scenario())


def test_oversell_is_unprocessable(tmp_path: Path):
    client_manager = _client(_settings(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            await api_client.post("/api/transactions", json=_buy("MSFT", 2, 300, "2024-01-02"))
            response = await api_client.post("/api/transactions", json=_sell("MSFT", 3, 310, "2024-01-03"))
            assert response.status_code == 422
            detail = response.json()["detail"]
            assert detail["requested"] == 3.0
            assert detail["available"] == 2.0

            check = await api_client.post(
                "/api/transactions/validate-sell", json={"symbol": "msft", "quantity": 3}
            )
            assert check.status_code == 200
            assert check.json() == {
                "valid": False,
                "message": "Cannot sell 3 shares. Only 2 shares available.",
                "available_shares": 2.0,
            }

    asyncio.run(_scenario())


def test_invalid_payload_is_rejected(tmp_path: Path):
    client_manager = _client(_settings(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            response = await api_client.post("/api/transactions", json=_buy("AAPL", -1, 10, "2024-01-01"))
            assert response.status_code == 422
            response = await api_client.post(
                "/api/transactions", json={**_buy("AAPL", 1, 10, "2024-01-01"), "type": "HOLD"}
            )
            assert response.status_code == 422

    asyncio.run(_scenario())


def test_migrate_local_transactions(tmp_path: Path):
    client_manager = _client(_settings(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            await api_client.post("/api/transactions", json=_buy("AAPL", 4, 10, "2024-01-01"))

            unauthorized = await api_client.post("/api/transactions/migrate")
            assert unauthorized.status_code == 401

            migrated = await api_client.post("/api/transactions/migrate", headers=USER)
            assert migrated.status_code == 200
            assert migrated.json()["migrated"] == 1
            assert migrated.json()["message"] == "Migrated 1 of 1 transactions"

            again = await api_client.post("/api/transactions/migrate", headers=USER)
            assert again.json()["migrated"] == 0

            account = await api_client.get("/api/transactions", headers=USER)
            assert len(account.json()) == 1

    asyncio.run(_scenario())


def test_internal_token_is_enforced_when_configured(tmp_path: Path):
    client_manager = _client(_settings(tmp_path, internal_auth_token="s3cret"))

    async def _scenario():
        async with client_manager() as api_client:
            denied = await api_client.get("/api/transactions")
            assert denied.status_code == 401
            allowed = await api_client.get("/api/transactions", headers={"X-Internal-Token": "s3cret"})
            assert allowed.status_code == 200

    asyncio.run(_scenario())


def test_quotes_and_priced_portfolio(tmp_path: Path):
    quotes = QuoteService(FakeAlphaVantage())
    client_manager = _client(_settings(tmp_path), quotes)

    async def _scenario():
        async with client_manager() as api_client:
            await api_client.post("/api/transactions", json=_buy("AAPL", 10, 10, "2024-01-01"), headers=USER)

            quote = await api_client.get("/api/quotes/aapl")
            assert quote.status_code == 200
            assert quote.json()["current_price"] == 12.0

            assert (await api_client.get("/api/quotes/BRK.B")).status_code == 400
            assert (await api_client.get("/api/quotes/BUSY")).status_code == 429

            portfolio = await api_client.get("/api/portfolio", params={"priced": "true"}, headers=USER)
            body = portfolio.json()
            assert body["total_invested"] == 100.0
            assert body["total_current_value"] == 120.0
            assert body["total_unrealized_gain_loss"] == 20.0

            unpriced = await api_client.get("/api/portfolio", headers=USER)
            assert unpriced.json()["total_current_value"] == 0.0

    asyncio.run(_scenario())


def test_quotes_unavailable_without_key(tmp_path: Path):
    client_manager = _client(_settings(tmp_path, alphavantage_api_key=None))

    async def _scenario():
        async with client_manager() as api_client:
            response = await api_client.get("/api/quotes/AAPL")
            assert response.status_code == 503

    asyncio.run(_scenario())


def test_edit_cannot_clear_required_fields(tmp_path: Path):
    client_manager = _client(_settings(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            created = await api_client.post("/api/transactions", json=_buy("AAPL", 5, 100, "2024-02-01"))
            tx_id = created.json()["id"]

            for field in ("symbol", "type", "quantity", "price_per_share", "date"):
                response = await api_client.put(f"/api/transactions/{tx_id}", json={field: None})
                assert response.status_code == 422, field

            cleared_notes = await api_client.put(f"/api/transactions/{tx_id}", json={"notes": None})
            assert cleared_notes.status_code == 200

            listed = await api_client.get("/api/transactions")
            assert listed.status_code == 200
            assert listed.json()[0]["date"] == "2024-02-01"
            assert (await api_client.get("/api/positions")).status_code == 200

    asyncio.run(_scenario())


def test_quantity_that_rounds_to_zero_is_rejected(tmp_path: Path):
    client_manager = _client(_settings(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            response = await api_client.post("/api/transactions", json=_buy("AAPL", 0.000001, 10, "2024-01-01"))
            assert response.status_code == 422

            created = await api_client.post("/api/transactions", json=_buy("AAPL", 0.000006, 10, "2024-01-01"))
            assert created.status_code == 201
            assert created.json()["quantity"] == 0.00001

            edit = await api_client.put(f"/api/transactions/{created.json()['id']}", json={"quantity": 0.000004})
            assert edit.status_code == 422
            assert (await api_client.get("/api/transactions")).json()[0]["quantity"] == 0.00001

    asyncio.run(_scenario())


def test_validate_sell_over_inconsistent_history(tmp_path: Path):
    settings = _settings(tmp_path)
    store = LocalTransactionRepository(settings.local_store_path)
    asyncio.run(
        store.save(
            [
                make_tx("b1", "BUY", "5", "10", date(2024, 1, 2)),
                make_tx("s1", "SELL", "3", "11", date(2024, 1, 1)),
            ]
        )
    )
    client_manager = _client(settings)

    async def _scenario():
        async with client_manager() as api_client:
            response = await api_client.post(
                "/api/transactions/validate-sell", json={"symbol": "AAPL", "quantity": 1}
            )
            assert response.status_code == 200
            body = response.json()
            assert body["valid"] is False
            assert body["available_shares"] == 0.0
            assert "Cannot sell 3.00000 shares of AAPL" in body["message"]

    asyncio.run(_scenario())
