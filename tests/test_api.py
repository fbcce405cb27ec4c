"""Tests for the FastAPI endpoints."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from crossroute.api.app import create_app
from crossroute.api.contracts import QuoteRequest, sanitize_amount
from crossroute.api.routes.swaps import get_history_repository
from crossroute.chains import CHAIN_ID_BASE, CHAIN_ID_SOLANA, USDC_MINT_SOLANA
from crossroute.errors import (
    IneligibleError,
    NeedGasError,
    NoQuotesError,
    RouteUnsupportedError,
    ValidationError,
)
from crossroute.history.recorder import build_record_fields
from crossroute.history.repository import SwapHistoryRepository
from crossroute.quotes.audit import MemoryAuditSink, QuoteAuditLog
from crossroute.quotes.route_validation import RouteValidator
from crossroute.quotes.service import QuoteService
from crossroute.routing.base import Provider, QuotesResult
from crossroute.routing.debridge import DebridgeProvider
from crossroute.routing.jupiter import JupiterProvider
from crossroute.routing.relay import RelayProvider
from crossroute.utils.cache import TtlCache

USER = "UserWa11et1111111111111111111111111111111111"

QUOTE_BODY = {
    "originChainId": CHAIN_ID_SOLANA,
    "originToken": USDC_MINT_SOLANA,
    "destinationChainId": CHAIN_ID_BASE,
    "destinationToken": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    "amount": "10000000",
    "userAddress": USER,
}


def jupiter_with(handler) -> JupiterProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return JupiterProvider(api_key="test-key", api_url="https://jup.test/ultra/v1", client=client)


@pytest.fixture
def quote_service():
    service = MagicMock()
    service.get_quotes = AsyncMock()
    service.providers = []
    service.route_validator = None
    service.audit_sink = MemoryAuditSink()
    return service


@pytest.fixture
def jupiter_calls():
    return []


@pytest.fixture
def jupiter(jupiter_calls):
    def handler(request: httpx.Request) -> httpx.Response:
        jupiter_calls.append(request)
        return httpx.Response(200, json={"status": "Success", "signature": "jup-sig", "slot": "1"})

    return jupiter_with(handler)


@pytest.fixture
def test_app(quote_service, jupiter, db_session, history_db):
    """Create test application backed by the test database session."""
    app = create_app(quote_service=quote_service, jupiter=jupiter, history_db=history_db)

    async def history_repository():
        yield SwapHistoryRepository(db_session)

    app.dependency_overrides[get_history_repository] = history_repository
    return app


@pytest.fixture
async def client(test_app):
    """Create async test client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestContracts:
    """Tests for request contracts."""

    def test_sanitize_amount(self):
        assert sanitize_amount("1,000,000") == "1000000"
        assert sanitize_amount("000123") == "123"
        assert sanitize_amount("") == "0"

    def test_balance_hints(self):
        body = QuoteRequest(**QUOTE_BODY, userSOLBalance="20000000")

        hints = body.to_balance_hints()

        assert hints.native_balance == 20_000_000
        assert hints.stable_balance is None

    def test_no_balance_hints(self):
        assert QuoteRequest(**QUOTE_BODY).to_balance_hints() is None

    def test_recipient_defaults_to_user(self):
        request = QuoteRequest(**QUOTE_BODY).to_swap_request()

        assert request.recipient_address == USER
        assert request.amount == "10000000"


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "crossroute"

    @pytest.mark.asyncio
    async def test_detailed_health(self, client):
        response = await client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["history_db"] == {"reachable": True}
        assert data["route_cache"] is None
        assert data["audit"] == {"sink": "MemoryAuditSink"}
        assert data["providers"]["jupiter_configured"] is False
        assert "environment" in data["config"]
        assert data["config"]["providers"]["jupiter_api_key"] == "(not set)"

    @pytest.mark.asyncio
    async def test_detailed_health_reports_route_cache_and_audit_queue(self, jupiter, history_db, tmp_path):
        chains = [{"id": 792703809}, {"id": 8453}]
        validator = RouteValidator(AsyncMock(return_value=chains), cache=TtlCache(300, clock=lambda: 1000.0))
        await validator.prefetch()
        audit_log = QuoteAuditLog(str(tmp_path / "audit.jsonl"), max_pending=1)
        audit_log.dropped = 2
        service = QuoteService([RelayProvider(), DebridgeProvider()], route_validator=validator, audit_sink=audit_log)
        app = create_app(quote_service=service, jupiter=jupiter, history_db=history_db)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            data = (await ac.get("/health/detailed")).json()

        assert data["providers"]["quoting"] == ["relay", "debridge"]
        assert data["route_cache"] == {"cached": True, "fresh": True, "chains": 2, "age_seconds": 0.0}
        assert data["audit"]["sink"] == "QuoteAuditLog"
        assert data["audit"]["running"] is False
        assert data["audit"]["pending"] == 0
        assert data["audit"]["dropped"] == 2

    @pytest.mark.asyncio
    async def test_detailed_health_degraded_without_database(self, client, history_db):
        history_db.ping = AsyncMock(return_value=False)

        data = (await client.get("/health/detailed")).json()

        assert data["status"] == "degraded"
        assert data["history_db"] == {"reachable": False}


class TestQuoteEndpoints:
    """Tests for the quote endpoint."""

    @pytest.mark.asyncio
    async def test_returns_quotes_best_first(self, client, quote_service, make_quote):
        relay = make_quote(Provider.RELAY, expected_out="9900000")
        debridge = make_quote(Provider.DEBRIDGE, expected_out="9800000")
        quote_service.get_quotes.return_value = QuotesResult(quotes=[relay, debridge], best=relay)

        response = await client.post("/api/quotes", json={**QUOTE_BODY, "userSOLBalance": "5000000"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert [q["provider"] for q in data["data"]["quotes"]] == ["relay", "debridge"]
        assert data["data"]["best"]["expected_out"] == "9900000"
        request, hints = quote_service.get_quotes.await_args.args
        assert request.user_address == USER
        assert hints.native_balance == 5_000_000

    @pytest.mark.asyncio
    async def test_zero_amount_rejected(self, client, quote_service):
        response = await client.post("/api/quotes", json={**QUOTE_BODY, "amount": "0"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert "Amount must be greater than zero" in error["message"]
        quote_service.get_quotes.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_need_gas(self, client, quote_service):
        quote_service.get_quotes.side_effect = NeedGasError(min_lamports=16_500_000)

        response = await client.post("/api/quotes", json=QUOTE_BODY)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "NEED_SOL_FOR_GAS"
        assert error["minLamports"] == 16_500_000

    @pytest.mark.asyncio
    async def test_validation_and_route_errors(self, client, quote_service):
        for error, code in (
            (ValidationError("Cannot swap a token to itself"), "VALIDATION_ERROR"),
            (RouteUnsupportedError("Destination chain not supported"), "ROUTE_UNSUPPORTED"),
        ):
            quote_service.get_quotes.side_effect = error

            response = await client.post("/api/quotes", json=QUOTE_BODY)

            assert response.status_code == 400
            assert response.json()["error"]["code"] == code

    @pytest.mark.asyncio
    async def test_no_quotes_is_empty_success(self, client, quote_service):
        quote_service.get_quotes.side_effect = NoQuotesError({"relay": "Relay: no routes"})

        response = await client.post("/api/quotes", json=QUOTE_BODY)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"] == {"quotes": [], "best": None}
        assert "Relay: no routes" in data["message"]

    @pytest.mark.asyncio
    async def test_ineligible_is_empty_success(self, client, quote_service):
        quote_service.get_quotes.side_effect = IneligibleError()

        response = await client.post("/api/quotes", json=QUOTE_BODY)

        assert response.status_code == 200
        assert response.json()["message"] == "No eligible quotes available"

    @pytest.mark.asyncio
    async def test_unexpected_error(self, client, quote_service):
        quote_service.get_quotes.side_effect = RuntimeError("boom")

        response = await client.post("/api/quotes", json=QUOTE_BODY)

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "QUOTE_ERROR"


class TestJupiterProxy:
    """Tests for the Jupiter execute proxy."""

    @pytest.mark.asyncio
    async def test_forwards_signed_order(self, client, jupiter_calls):
        response = await client.post(
            "/api/jupiter/execute",
            json={"signedTransaction": " c2lnbmVk ", "requestId": "req-1"},
        )

        assert response.status_code == 200
        assert response.json()["signature"] == "jup-sig"
        sent = jupiter_calls[0]
        assert sent.url.path == "/ultra/v1/execute"
        assert sent.headers["x-api-key"] == "test-key"
        assert json.loads(sent.content) == {"signedTransaction": "c2lnbmVk", "requestId": "req-1"}

    @pytest.mark.asyncio
    async def test_missing_fields(self, client, jupiter_calls):
        response = await client.post("/api/jupiter/execute", json={"requestId": "req-1"})

        assert response.status_code == 400
        assert response.json() == {"error": "signedTransaction is required", "code": 400}

        response = await client.post("/api/jupiter/execute", json={"signedTransaction": "abc"})

        assert response.status_code == 400
        assert response.json()["error"] == "requestId is required"
        assert jupiter_calls == []

    @pytest.mark.asyncio
    async def test_not_configured(self, quote_service):
        app = create_app(quote_service=quote_service, jupiter=JupiterProvider(api_key=""))
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.post(
                "/api/jupiter/execute", json={"signedTransaction": "abc", "requestId": "req-1"}
            )

        assert response.status_code == 500
        assert response.json()["error"] == "Jupiter API not configured"

    @pytest.mark.asyncio
    async def test_upstream_client_error_status_kept(self, quote_service):
        jupiter = jupiter_with(lambda request: httpx.Response(400, json={"error": "Order expired"}))
        app = create_app(quote_service=quote_service, jupiter=jupiter)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.post(
                "/api/jupiter/execute", json={"signedTransaction": "abc", "requestId": "req-1"}
            )

        assert response.status_code == 400
        assert response.json() == {"error": "Order expired", "code": 400}

    @pytest.mark.asyncio
    async def test_upstream_server_error_is_bad_gateway(self, quote_service):
        jupiter = jupiter_with(lambda request: httpx.Response(503, text="unavailable"))
        app = create_app(quote_service=quote_service, jupiter=jupiter)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.post(
                "/api/jupiter/execute", json={"signedTransaction": "abc", "requestId": "req-1"}
            )

        assert response.status_code == 502


class TestSwapEndpoints:
    """Tests for swap history endpoints."""

    @pytest.mark.asyncio
    async def test_history_requires_user(self, client):
        response = await client.get("/api/swaps/history")

        assert response.status_code == 400
        assert response.json()["detail"] == "userAddress query parameter is required"

    @pytest.mark.asyncio
    async def test_history_and_detail(self, client, db_session, make_quote, swap_request):
        repo = SwapHistoryRepository(db_session)
        record = await repo.create_record(
            **build_record_fields(make_quote(Provider.DEBRIDGE), swap_request, "sig-1", order_id="order-1")
        )
        await db_session.commit()

        response = await client.get("/api/swaps/history", params={"userAddress": swap_request.user_address})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 1
        assert data["swaps"][0]["order_id"] == "order-1"

        response = await client.get(f"/api/swaps/{record.id}")

        assert response.status_code == 200
        assert response.json()["data"]["transaction_hash"] == "sig-1"

    @pytest.mark.asyncio
    async def test_limit_bounds(self, client):
        response = await client.get("/api/swaps/history", params={"userAddress": USER, "limit": 500})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_swap_not_found(self, client):
        response = await client.get("/api/swaps/does-not-exist")

        assert response.status_code == 404
        assert response.json()["detail"] == "Swap not found"
