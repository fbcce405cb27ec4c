"""Tests for the provider adapters, using httpx.MockTransport."""

import json
from decimal import Decimal

import httpx
import pytest

from crossroute.chains import CHAIN_ID_BASE, CHAIN_ID_SOLANA, SOL_MINT, USDC_MINT_SOLANA
from crossroute.errors import ProviderError
from crossroute.pricing import PriceService
from crossroute.quotes.quote_math import effective_receive, min_sol_required, net_user_value_usd
from crossroute.routing.base import BalanceHints, FeePayer, TradeType
from crossroute.routing.debridge import LOW_AMOUNT_MESSAGE, DebridgeProvider
from crossroute.routing.jupiter import JupiterProvider, network_cost_lamports, parse_expiry
from crossroute.routing.relay import (
    DEFAULT_DEPOSIT_FEE_PAYER,
    NO_ROUTES_CROSS_CHAIN,
    BridgeStatus,
    RelayProvider,
    sum_fees_in_currency,
)
from crossroute.utils.cache import TtlCache
from crossroute.wallet.base import RpcError
from crossroute.wallet.solana_rpc import SolanaRpcClient

BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def relay_quote_response(amount: str = "9900000") -> dict:
    return {
        "steps": [
            {
                "id": "deposit",
                "requestId": "0xrequest",
                "items": [{"data": {"serializedTransaction": "relay-tx"}}],
            }
        ],
        "fees": {
            "gas": {"amount": "100", "currency": {"symbol": "USDC"}},
            "relayer": {"amount": "50", "currency": {"symbol": "USDC"}},
            "app": {"amount": "7", "currency": {"symbol": "ETH"}},
        },
        "details": {
            "currencyOut": {"amount": amount, "amountFormatted": "9.9", "currency": {"symbol": "USDC"}},
            "timeEstimate": 12,
        },
    }


class TestRelayProvider:
    """Tests for the Relay adapter."""

    @pytest.mark.asyncio
    async def test_evm_origin_quote(self, make_request):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=relay_quote_response())

        request = make_request(
            origin_chain_id=CHAIN_ID_BASE,
            origin_token=BASE_USDC,
            destination_chain_id=CHAIN_ID_SOLANA,
            destination_token=USDC_MINT_SOLANA,
        )
        async with mock_client(handler) as client:
            quote = await RelayProvider(client=client).fetch_quote(request)

        assert captured["path"] == "/quote/v2"
        assert captured["body"]["originChainId"] == CHAIN_ID_BASE
        assert captured["body"]["destinationChainId"] == 792703809
        assert captured["body"]["tradeType"] == "EXACT_INPUT"
        assert "depositFeePayer" not in captured["body"]

        assert quote.expected_out == "9900000"
        assert quote.fees == "150"
        assert quote.fee_currency == "USDC"
        assert quote.fee_payer == FeePayer.SPONSOR
        assert quote.payload.request_id == "0xrequest"
        assert quote.payload.serialized_transaction == "relay-tx"
        assert quote.time_estimate_seconds == 12
        assert quote.has_usd_values is False
        assert quote.expiry_at - quote.quoted_at == pytest.approx(30)

    @pytest.mark.asyncio
    async def test_solana_origin_sponsor_fee(self, swap_request):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=relay_quote_response(amount="10000000"))

        async with mock_client(handler) as client:
            quote = await RelayProvider(client=client).fetch_quote(
                swap_request, BalanceHints(native_balance=0, stable_balance=20_000_000)
            )

        assert captured["body"]["depositFeePayer"] == DEFAULT_DEPOSIT_FEE_PAYER
        assert quote.gasless is True
        assert quote.worst_case_sponsor_cost_usd == Decimal("7.255892")
        assert quote.user_fee == "8707071"
        assert quote.user_fee_currency == "USDC"
        assert quote.requires_sol is False
        assert quote.user_receives_usd == Decimal("10")
        assert quote.user_fee_usd >= quote.worst_case_sponsor_cost_usd

    @pytest.mark.asyncio
    async def test_sol_fee_counted_once_in_net_value(self, swap_request):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=relay_quote_response(amount="10000000"))

        async with mock_client(handler) as client:
            quote = await RelayProvider(client=client).fetch_quote(
                swap_request, BalanceHints(native_balance=10_000_000_000, stable_balance=0)
            )

        assert quote.user_fee_currency == "SOL"
        assert quote.requires_sol is True
        assert quote.solana_cost_to_user is None
        assert net_user_value_usd(quote) == quote.user_receives_usd - quote.user_pays_usd
        assert min_sol_required(quote) == int(quote.user_fee)

    @pytest.mark.asyncio
    async def test_exact_out_trade_type(self, make_request):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=relay_quote_response())

        request = make_request(origin_chain_id=CHAIN_ID_BASE, origin_token=BASE_USDC,
                               destination_chain_id=CHAIN_ID_SOLANA, destination_token=USDC_MINT_SOLANA,
                               trade_type=TradeType.EXACT_OUT)
        async with mock_client(handler) as client:
            await RelayProvider(client=client).fetch_quote(request)

        assert captured["body"]["tradeType"] == "EXACT_OUTPUT"

    @pytest.mark.asyncio
    async def test_no_routes_error(self, swap_request):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"errorCode": "NO_SWAP_ROUTES_FOUND", "message": "no routes"})

        async with mock_client(handler) as client:
            with pytest.raises(ProviderError) as exc_info:
                await RelayProvider(client=client).fetch_quote(swap_request)

        assert exc_info.value.message == NO_ROUTES_CROSS_CHAIN
        assert exc_info.value.status_code == 400
        assert exc_info.value.provider == "relay"

    @pytest.mark.asyncio
    async def test_connection_error(self, swap_request):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        async with mock_client(handler) as client:
            with pytest.raises(ProviderError, match="Failed to connect to Relay"):
                await RelayProvider(client=client).fetch_quote(swap_request)

    def test_does_not_quote_same_chain_solana(self, make_request):
        request = make_request(destination_chain_id=CHAIN_ID_SOLANA, destination_token=SOL_MINT)
        assert RelayProvider().supports(request) is False

    @pytest.mark.asyncio
    async def test_bridge_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["requestId"] == "0xrequest"
            return httpx.Response(200, json={"status": "success", "inTxHashes": ["sig"], "txHashes": ["0xdest"]})

        async with mock_client(handler) as client:
            report = await RelayProvider(client=client).get_bridge_status("0xrequest")

        assert report.status == BridgeStatus.SUCCESS
        assert report.destination_tx_hash == "0xdest"

    @pytest.mark.asyncio
    async def test_unknown_bridge_status_is_pending(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "delayed"})

        async with mock_client(handler) as client:
            report = await RelayProvider(client=client).get_bridge_status("0xrequest")

        assert report.status == BridgeStatus.PENDING
        assert report.status.is_terminal is False

    @pytest.mark.asyncio
    async def test_fetch_chains(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"chains": [{"id": 8453}]})

        async with mock_client(handler) as client:
            chains = await RelayProvider(client=client).fetch_chains()

        assert chains == [{"id": 8453}]

    def test_sum_fees_skips_other_currencies(self):
        items = [
            {"amount": "100", "currency": {"symbol": "USDC"}},
            {"amount": "5", "currency": {"symbol": "ETH"}},
            {"currency": {"symbol": "USDC"}},
        ]
        assert sum_fees_in_currency(items, "USDC") == 100


class TestDebridgeProvider:
    """Tests for the deBridge adapter."""

    @pytest.mark.asyncio
    async def test_solana_origin_quote(self, swap_request):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["path"] = request.url.path
            captured["params"] = dict(request.url.params)
            return httpx.Response(
                200,
                json={
                    "estimation": {"dstChainTokenOut": {"amount": "9800000"}},
                    "fixFee": "1000",
                    "protocolFee": "200",
                    "orderId": "order-1",
                    "tx": {"data": "debridge-tx"},
                },
            )

        async with mock_client(handler) as client:
            quote = await DebridgeProvider(client=client).fetch_quote(swap_request)

        assert captured["path"] == "/v1.0/dln/order/create-tx"
        assert captured["params"]["srcChainId"] == str(CHAIN_ID_SOLANA)
        assert captured["params"]["dstChainTokenOutAmount"] == "auto"
        assert captured["params"]["senderAddress"] == swap_request.user_address

        assert quote.expected_out == "9800000"
        assert quote.fees == "200"
        assert quote.fee_currency == "USDC"
        assert quote.origin_fee == "1000"
        assert quote.origin_fee_currency == "SOL"
        assert quote.fee_payer == FeePayer.USER
        assert quote.sponsor_cost == "0"
        assert quote.requires_sol is True
        assert quote.solana_cost_to_user == "15001000"
        assert quote.payload.order_id == "order-1"
        assert quote.payload.serialized_transaction == "debridge-tx"

    @pytest.mark.asyncio
    async def test_output_falls_back_to_take_offer(self, make_request):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"order": {"takeOffer": {"amount": "123"}}, "tx": "raw-tx"})

        request = make_request(origin_chain_id=CHAIN_ID_BASE, origin_token=BASE_USDC,
                               destination_chain_id=CHAIN_ID_SOLANA, destination_token=USDC_MINT_SOLANA)
        async with mock_client(handler) as client:
            quote = await DebridgeProvider(client=client).fetch_quote(request)

        assert quote.expected_out == "123"
        assert quote.requires_sol is False
        assert quote.solana_cost_to_user is None
        assert quote.payload.serialized_transaction == "raw-tx"

    @pytest.mark.asyncio
    async def test_native_fix_fee_not_deducted_from_output(self, make_request):
        """A lamport fix fee and an input-token protocol fee never reduce a SOL -> USDC output."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "estimation": {"dstChainTokenOut": {"amount": "9900000"}},
                    "fixFee": "15000000",
                    "protocolFee": "4000",
                    "orderId": "order-2",
                    "tx": {"data": "debridge-tx"},
                },
            )

        request = make_request(origin_token=SOL_MINT, amount="100000000")
        async with mock_client(handler) as client:
            quote = await DebridgeProvider(client=client).fetch_quote(request)

        assert quote.fees == "0"
        assert quote.fee_currency == "USDC"
        assert quote.origin_fee == "15000000"
        assert quote.origin_fee_currency == "SOL"
        assert quote.solana_cost_to_user == "30000000"
        assert effective_receive(quote) == 9_900_000

    @pytest.mark.asyncio
    async def test_evm_origin_fix_fee_in_native_currency(self, make_request):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "estimation": {"dstChainTokenOut": {"amount": "9900000"}},
                    "fixFee": "1000000000000000",
                    "protocolFee": "4000",
                    "tx": {"data": "0xcalldata"},
                },
            )

        request = make_request(origin_chain_id=CHAIN_ID_BASE, origin_token=BASE_USDC,
                               destination_chain_id=CHAIN_ID_SOLANA, destination_token=USDC_MINT_SOLANA)
        async with mock_client(handler) as client:
            quote = await DebridgeProvider(client=client).fetch_quote(request)

        assert quote.fees == "4000"
        assert quote.origin_fee == "1000000000000000"
        assert quote.origin_fee_currency == "ETH"
        assert effective_receive(quote) == 9_896_000

    @pytest.mark.asyncio
    async def test_low_amount_error(self, swap_request):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"errorId": "ERROR_LOW_GIVE_AMOUNT"})

        async with mock_client(handler) as client:
            with pytest.raises(ProviderError) as exc_info:
                await DebridgeProvider(client=client).fetch_quote(swap_request)

        assert exc_info.value.message == LOW_AMOUNT_MESSAGE

    def test_same_chain_not_supported(self, make_request):
        request = make_request(destination_chain_id=CHAIN_ID_SOLANA, destination_token=SOL_MINT)
        assert DebridgeProvider().supports(request) is False


class TestJupiterProvider:
    """Tests for the Jupiter adapter."""

    @pytest.fixture
    def same_chain_request(self, make_request):
        return make_request(destination_chain_id=CHAIN_ID_SOLANA, destination_token=SOL_MINT)

    @pytest.mark.asyncio
    async def test_requires_api_key(self, same_chain_request):
        with pytest.raises(ProviderError, match="JUPITER_API_KEY is not set"):
            await JupiterProvider().fetch_quote(same_chain_request)

    @pytest.mark.asyncio
    async def test_order_quote(self, same_chain_request):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["path"] = request.url.path
            captured["api_key"] = request.headers.get("x-api-key")
            captured["params"] = dict(request.url.params)
            return httpx.Response(
                200,
                json={
                    "outAmount": "500000000",
                    "requestId": "jup-request",
                    "transaction": "jupiter-tx",
                    "feeMint": USDC_MINT_SOLANA,
                    "platformFee": {"amount": "1000", "feeBps": 10},
                    "signatureFeeLamports": 5000,
                    "signatureFeePayer": same_chain_request.user_address,
                    "prioritizationFeeLamports": 10000,
                    "prioritizationFeePayer": same_chain_request.user_address,
                    "rentFeeLamports": 0,
                    "gasless": False,
                    "expireAt": "1700000000",
                },
            )

        async with mock_client(handler) as client:
            quote = await JupiterProvider(api_key="secret", client=client).fetch_quote(same_chain_request)

        assert captured["path"] == "/ultra/v1/order"
        assert captured["api_key"] == "secret"
        assert captured["params"]["taker"] == same_chain_request.user_address
        assert "receiver" not in captured["params"]

        assert quote.expected_out == "500000000"
        assert quote.expected_out_formatted == "0.5"
        assert quote.fees == "1000"
        assert quote.fee_currency == "SOL"
        assert quote.user_fee_currency == "USDC"
        assert quote.solana_cost_to_user == "15000"
        assert quote.requires_sol is True
        assert quote.expiry_at == 1_700_000_000
        assert quote.payload.request_id == "jup-request"
        assert quote.payload.unsigned_transaction == "jupiter-tx"

    @pytest.mark.asyncio
    async def test_bad_request_means_no_quotes(self, same_chain_request):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "Insufficient liquidity"})

        async with mock_client(handler) as client:
            with pytest.raises(ProviderError) as exc_info:
                await JupiterProvider(api_key="secret", client=client).fetch_quote(same_chain_request)

        assert exc_info.value.message == "No quotes available: Insufficient liquidity"

    @pytest.mark.asyncio
    async def test_zero_output_rejected(self, same_chain_request):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"outAmount": "0", "errorCode": 1, "errorMessage": "No route"})

        async with mock_client(handler) as client:
            with pytest.raises(ProviderError, match="No quotes available: No route"):
                await JupiterProvider(api_key="secret", client=client).fetch_quote(same_chain_request)

    @pytest.mark.asyncio
    async def test_execute_order(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"status": "Success", "signature": "jup-sig"})

        async with mock_client(handler) as client:
            execution = await JupiterProvider(api_key="secret", client=client).execute_order(" signed ", "jup-request")

        assert captured["body"] == {"signedTransaction": "signed", "requestId": "jup-request"}
        assert execution.succeeded is True
        assert execution.signature == "jup-sig"

    @pytest.mark.asyncio
    async def test_execute_error_keeps_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"error": "Rate limited"})

        async with mock_client(handler) as client:
            with pytest.raises(ProviderError) as exc_info:
                await JupiterProvider(api_key="secret", client=client).execute_order("signed", "jup-request")

        assert exc_info.value.status_code == 429
        assert exc_info.value.message == "Rate limited"

    def test_network_cost(self):
        assert network_cost_lamports({"gasless": True}, "taker") == "0"
        assert network_cost_lamports({}, None) == "5000"
        assert network_cost_lamports(
            {"signatureFeeLamports": 5000, "signatureFeePayer": "someone-else"}, "taker"
        ) == "5000"

    def test_parse_expiry(self):
        assert parse_expiry("1700000000000", 1.0) == 1_700_000_000
        assert parse_expiry("2023-11-14T22:13:20Z", 1.0) == 1_700_000_000
        assert parse_expiry("garbage", 1.0) == 1.0
        assert parse_expiry(None, 2.0) == 2.0


class TestPriceService:
    """Tests for USD price lookups."""

    @pytest.mark.asyncio
    async def test_stablecoins_priced_at_one(self):
        assert await PriceService().get_usd_price("usdc") == Decimal("1.0")

    @pytest.mark.asyncio
    async def test_sol_price_cached(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.params["ids"])
            return httpx.Response(200, json={"solana": {"usd": 180.5}})

        async with mock_client(handler) as client:
            prices = PriceService(client=client)
            assert await prices.get_sol_price() == Decimal("180.5")
            assert await prices.get_sol_price() == Decimal("180.5")

        assert calls == ["solana"]

    @pytest.mark.asyncio
    async def test_sol_fallback_on_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        async with mock_client(handler) as client:
            prices = PriceService(client=client, cache=TtlCache(60), sol_fallback=Decimal("150"))
            assert await prices.get_sol_price() == Decimal("150")


def rpc_handler(results: dict):
    """Answer JSON-RPC calls from a method -> result mapping."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        result = results[body["method"]]
        if isinstance(result, Exception):
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"message": str(result)}})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": result})

    return handler


def token_account(amount: str) -> dict:
    return {"account": {"data": {"parsed": {"info": {"tokenAmount": {"amount": amount}}}}}}


class TestSolanaRpcClient:
    """Tests for Solana JSON-RPC reads."""

    @pytest.mark.asyncio
    async def test_balances(self):
        handler = rpc_handler(
            {
                "getBalance": {"value": 25_000_000},
                "getTokenAccountsByOwner": {"value": [token_account("1000000"), token_account("500")]},
            }
        )
        async with mock_client(handler) as client:
            rpc = SolanaRpcClient("https://rpc.test", client=client)

            assert await rpc.get_native_balance("owner") == 25_000_000
            assert await rpc.get_token_balance("owner", USDC_MINT_SOLANA) == 1_000_500
            assert await rpc.account_exists("owner", USDC_MINT_SOLANA) is True

    @pytest.mark.asyncio
    async def test_missing_token_account(self):
        async with mock_client(rpc_handler({"getTokenAccountsByOwner": {"value": []}})) as client:
            rpc = SolanaRpcClient("https://rpc.test", client=client)

            assert await rpc.get_token_balance("owner", USDC_MINT_SOLANA) == 0
            assert await rpc.account_exists("owner", USDC_MINT_SOLANA) is False

    @pytest.mark.asyncio
    async def test_transfer_fee(self):
        mint_info = {
            "value": {
                "data": {
                    "parsed": {
                        "info": {
                            "extensions": [
                                {
                                    "extension": "transferFeeConfig",
                                    "state": {"newerTransferFee": {"transferFeeBasisPoints": 50}},
                                }
                            ]
                        }
                    }
                }
            }
        }
        async with mock_client(rpc_handler({"getAccountInfo": mint_info})) as client:
            rpc = SolanaRpcClient("https://rpc.test", client=client)

            assert await rpc.get_transfer_fee_bps("mint") == 50

    @pytest.mark.asyncio
    async def test_signature_status(self):
        statuses = {"value": [{"confirmationStatus": "finalized", "slot": 42, "err": None}]}
        async with mock_client(rpc_handler({"getSignatureStatuses": statuses})) as client:
            rpc = SolanaRpcClient("https://rpc.test", client=client)

            status = await rpc.get_signature_status("sig")

        assert status.confirmation_status == "finalized"
        assert status.slot == 42

    @pytest.mark.asyncio
    async def test_unknown_signature(self):
        async with mock_client(rpc_handler({"getSignatureStatuses": {"value": [None]}})) as client:
            rpc = SolanaRpcClient("https://rpc.test", client=client)

            assert await rpc.get_signature_status("sig") is None

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        async with mock_client(rpc_handler({"getBalance": RuntimeError("node is behind")})) as client:
            rpc = SolanaRpcClient("https://rpc.test", client=client)

            with pytest.raises(RpcError, match="node is behind"):
                await rpc.get_native_balance("owner")
