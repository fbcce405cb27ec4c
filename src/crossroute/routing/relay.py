"""Relay integration (sponsor-paying cross-chain provider).

Relay fronts the user's Solana origin fees through a deposit fee payer and
recoups them with a fee charged to the user. For Solana-origin quotes the
adapter estimates the sponsor's worst-case cost and picks the fee the user
pays to cover it.

API docs: https://docs.relay.link/bridging-integration-guide
"""

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

import httpx

from crossroute.chains import (
    CHAIN_ID_SOLANA,
    USDC_MINT_SOLANA,
    get_token_decimals,
    to_relay_chain_id,
)
from crossroute.errors import ProviderError
from crossroute.pricing import DEFAULT_SOL_PRICE_USD, DEFAULT_TOKEN_PRICE_USD, PriceService
from crossroute.quotes.quote_math import to_int
from crossroute.quotes.sponsor import (
    STABLE_FEE_SYMBOL,
    SponsorPolicy,
    calculate_worst_case_costs,
    lamports_to_usd,
    select_user_fee,
)
from crossroute.routing.base import (
    BalanceHints,
    FeePayer,
    NormalizedQuote,
    Provider,
    QuoteProvider,
    RelayPayload,
    SwapRequest,
    TradeType,
)
from crossroute.utils.http import http_client, response_json
from crossroute.wallet.base import ChainReader

logger = logging.getLogger(__name__)

RELAY_API_BASE = "https://api.relay.link"
DEFAULT_DEPOSIT_FEE_PAYER = "Av29j1oEbWAt77AzXyTA2fAzRnHytfG3mEV8kYm5E83M"

# Fee line items summed into the quote's fee (same currency only)
FEE_ITEM_KEYS = ("gas", "relayer", "relayerGas", "relayerService", "app")

NO_ROUTES_SAME_CHAIN = (
    "No swap routes available for this token pair on Solana. Relay may not have liquidity "
    "for this pair or amount; try a different amount or pair."
)
NO_ROUTES_CROSS_CHAIN = "No swap routes found for this route. Try a different amount or destination."


class BridgeStatus(str, Enum):
    """Destination-side settlement lifecycle of a Relay request."""

    WAITING = "waiting"
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    REFUND = "refund"

    @property
    def is_terminal(self) -> bool:
        return self in (BridgeStatus.SUCCESS, BridgeStatus.FAILURE, BridgeStatus.REFUND)


@dataclass
class BridgeStatusReport:
    """Parsed response of the intents status endpoint."""

    status: BridgeStatus
    in_tx_hashes: list[str] = field(default_factory=list)
    tx_hashes: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def destination_tx_hash(self) -> Optional[str]:
        return self.tx_hashes[0] if self.tx_hashes else None


def sum_fees_in_currency(items: list[dict], currency_symbol: str) -> int:
    """Sum fee items denominated in ``currency_symbol``; others are skipped."""
    total = 0
    for item in items:
        if item.get("amount") is None:
            continue
        if (item.get("currency") or {}).get("symbol") != currency_symbol:
            continue
        total += to_int(item["amount"]) or 0
    return total


def extract_payload(data: dict) -> RelayPayload:
    """Pull the request id and serialized transaction from the first step."""
    steps = data.get("steps")
    first_step = steps[0] if isinstance(steps, list) and steps and isinstance(steps[0], dict) else {}
    items = first_step.get("items")
    first_item = items[0] if isinstance(items, list) and items and isinstance(items[0], dict) else {}
    item_data = first_item.get("data") if isinstance(first_item.get("data"), dict) else {}
    transaction = item_data.get("serializedTransaction") or item_data.get("transaction")
    return RelayPayload(
        request_id=first_step.get("requestId"),
        serialized_transaction=transaction if isinstance(transaction, str) else None,
    )


class RelayProvider(QuoteProvider):
    """Relay quote, chain listing, and bridge status client."""

    provider = Provider.RELAY

    def __init__(
        self,
        api_url: str = RELAY_API_BASE,
        deposit_fee_payer: Optional[str] = DEFAULT_DEPOSIT_FEE_PAYER,
        referrer: Optional[str] = None,
        prices: Optional[PriceService] = None,
        chain_reader: Optional[ChainReader] = None,
        policy: SponsorPolicy = SponsorPolicy(),
        quote_validity_seconds: int = 30,
        timeout: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.base_url = api_url.rstrip("/")
        self.deposit_fee_payer = deposit_fee_payer
        self.referrer = referrer
        self.prices = prices
        self.chain_reader = chain_reader
        self.policy = policy
        self.quote_validity_seconds = quote_validity_seconds

    def supports(self, request: SwapRequest) -> bool:
        # Same-chain Solana swaps go to the specialist
        return not request.is_same_chain_solana

    def _fee_payer_for(self, request: SwapRequest) -> Optional[str]:
        return request.deposit_fee_payer or self.deposit_fee_payer

    def build_body(self, request: SwapRequest) -> dict:
        """Build the /quote/v2 request body."""
        body: dict[str, Any] = {
            "user": request.user_address,
            "recipient": request.recipient,
            "originChainId": to_relay_chain_id(request.origin_chain_id),
            "destinationChainId": to_relay_chain_id(request.destination_chain_id),
            "originCurrency": request.origin_token,
            "destinationCurrency": request.destination_token,
            "amount": request.amount,
            "tradeType": "EXACT_INPUT" if request.trade_type == TradeType.EXACT_IN else "EXACT_OUTPUT",
        }
        fee_payer = self._fee_payer_for(request)
        if request.origin_chain_id == CHAIN_ID_SOLANA and fee_payer:
            body["depositFeePayer"] = fee_payer
        if request.slippage_tolerance is not None:
            body["slippageTolerance"] = request.slippage_tolerance
        if request.refund_to is not None:
            body["refundTo"] = request.refund_to
        referrer = request.referrer or self.referrer
        if referrer is not None:
            body["referrer"] = referrer
        return body

    def _error_message(self, response: httpx.Response, request: SwapRequest) -> str:
        data = response_json(response)
        if data is None:
            text = response.text
            return text[:200] if text else f"Relay quote failed: {response.status_code}"
        if data.get("errorCode") == "NO_SWAP_ROUTES_FOUND":
            return NO_ROUTES_SAME_CHAIN if request.is_same_chain else NO_ROUTES_CROSS_CHAIN
        return data.get("message") or data.get("error") or f"Relay quote failed: {response.status_code}"

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with http_client(self._client, self.timeout) as client:
                return await client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderError(self.name, "Relay request timed out") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"Failed to connect to Relay: {e}") from e

    async def fetch_quote(
        self,
        request: SwapRequest,
        balances: Optional[BalanceHints] = None,
    ) -> NormalizedQuote:
        response = await self._request("POST", "/quote/v2", json=self.build_body(request))

        if response.status_code != 200:
            message = self._error_message(response, request)
            logger.error(f"Relay quote error {response.status_code}: {response.text[:500]}")
            raise ProviderError(self.name, message, status_code=response.status_code)

        data = response_json(response)
        if data is None:
            raise ProviderError(self.name, "Invalid response from Relay")

        quoted_at = time.time()
        fees = data.get("fees") or {}
        fee_items = [fees[key] for key in FEE_ITEM_KEYS if isinstance(fees.get(key), dict)]
        details = data.get("details") or {}
        currency_out = details.get("currencyOut") or {}

        fee_currency = (currency_out.get("currency") or {}).get("symbol")
        if not fee_currency:
            fee_currency = next(
                (item["currency"]["symbol"] for item in fee_items if (item.get("currency") or {}).get("symbol")),
                "USDC",
            )
        total_fee = str(sum_fees_in_currency(fee_items, fee_currency))

        expected_out = str(currency_out["amount"]) if currency_out.get("amount") is not None else "0"
        expected_out_formatted = (
            str(currency_out["amountFormatted"]) if currency_out.get("amountFormatted") is not None else "0"
        )

        sponsor_fields: dict[str, Any] = {}
        fee_payer = self._fee_payer_for(request)
        if request.origin_chain_id == CHAIN_ID_SOLANA and fee_payer:
            sponsor_fields = await self._sponsor_fields(request, expected_out, fee_payer, balances)

        quote = NormalizedQuote(
            provider=Provider.RELAY,
            expected_out=expected_out,
            expected_out_formatted=expected_out_formatted,
            fees=total_fee,
            fee_currency=fee_currency,
            fee_payer=FeePayer.SPONSOR,
            sponsor_cost=total_fee,
            recouped_sponsor_cost=total_fee,
            expiry_at=quoted_at + self.quote_validity_seconds,
            quoted_at=quoted_at,
            payload=extract_payload(data),
            time_estimate_seconds=details.get("timeEstimate"),
            slippage_tolerance=request.slippage_tolerance,
            **sponsor_fields,
        )
        logger.info(
            f"Relay quote: out={quote.expected_out} fees={quote.fees} {quote.fee_currency} "
            f"user_fee={quote.user_fee} {quote.user_fee_currency or ''}"
        )
        return quote

    async def _sol_price(self) -> Decimal:
        if self.prices is None:
            return DEFAULT_SOL_PRICE_USD
        price = await self.prices.get_sol_price()
        return price if price > 0 else DEFAULT_SOL_PRICE_USD

    async def _token_price(self, request: SwapRequest) -> Decimal:
        if self.prices is None:
            return DEFAULT_TOKEN_PRICE_USD
        try:
            price = await self.prices.get_token_price(request.destination_token, request.destination_chain_id)
        except Exception as e:
            logger.warning(f"Destination token price lookup failed, using 1: {e}")
            return DEFAULT_TOKEN_PRICE_USD
        return price if price > 0 else DEFAULT_TOKEN_PRICE_USD

    async def _account_exists(self, owner: str, token: str) -> Optional[bool]:
        """None when unknown; rent is then assumed."""
        if self.chain_reader is None:
            return None
        try:
            return await self.chain_reader.account_exists(owner, token)
        except Exception as e:
            logger.warning(f"Token account lookup failed for {owner}, assuming rent: {e}")
            return None

    async def _transfer_fee_bps(self, token: str) -> Optional[int]:
        if self.chain_reader is None:
            return None
        try:
            return await self.chain_reader.get_transfer_fee_bps(token)
        except Exception as e:
            logger.warning(f"Transfer fee detection failed for {token}: {e}")
            return None

    async def _user_balances(
        self,
        request: SwapRequest,
        balances: Optional[BalanceHints],
    ) -> tuple[Optional[int], Optional[int]]:
        native = balances.native_balance if balances else None
        stable = balances.stable_balance if balances else None
        if self.chain_reader is None:
            return native, stable
        try:
            if native is None:
                native = await self.chain_reader.get_native_balance(request.user_address)
            if stable is None and request.destination_chain_id == CHAIN_ID_SOLANA:
                stable = await self.chain_reader.get_token_balance(request.user_address, USDC_MINT_SOLANA)
        except Exception as e:
            logger.warning(f"Balance check failed for {request.user_address}: {e}")
        return native, stable

    async def _sponsor_fields(
        self,
        request: SwapRequest,
        expected_out: str,
        fee_payer: str,
        balances: Optional[BalanceHints],
    ) -> dict:
        """Worst-case cost and user fee for a sponsored Solana-origin quote.

        Auxiliary read failures fall back to conservative values. If the
        computation itself fails the quote carries zeroed fee fields.
        """
        try:
            sol_price = await self._sol_price()
            token_price = await self._token_price(request)
            decimals = get_token_decimals(request.destination_chain_id, request.destination_token, default=6)
            out = max(0, to_int(expected_out) or 0)
            receives_usd = Decimal(out).scaleb(-decimals) * token_price

            account_exists = await self._account_exists(fee_payer, request.origin_token)
            transfer_fee_bps = await self._transfer_fee_bps(request.origin_token)
            costs = calculate_worst_case_costs(
                request,
                receives_usd,
                sol_price,
                fee_payer=fee_payer,
                account_exists=account_exists,
                transfer_fee_bps=transfer_fee_bps,
                policy=self.policy,
            )

            native, stable = await self._user_balances(request, balances)
            selection = select_user_fee(costs.total, sol_price, native, stable, self.policy)

            if selection.user_fee_currency == STABLE_FEE_SYMBOL:
                pays_usd = selection.user_fee_usd
            else:
                pays_usd = lamports_to_usd(int(selection.user_fee), sol_price)

            return {
                "gasless": True,
                "requires_sol": selection.requires_sol,
                "user_fee": selection.user_fee,
                "user_fee_currency": selection.user_fee_currency,
                "user_fee_usd": selection.user_fee_usd,
                "worst_case_sponsor_cost_usd": costs.total,
                "user_receives_usd": receives_usd,
                "user_pays_usd": pays_usd,
                "sol_price_usd": sol_price,
                "price_drift": self.policy.price_drift,
            }
        except Exception as e:
            logger.error(f"Solana-origin fee calculation failed, using safe defaults: {e}")
            return {
                "gasless": True,
                "requires_sol": False,
                "user_fee": "0",
                "user_fee_currency": STABLE_FEE_SYMBOL,
                "user_fee_usd": Decimal("0"),
                "worst_case_sponsor_cost_usd": Decimal("0"),
                "price_drift": self.policy.price_drift,
            }

    async def fetch_chains(self) -> list[dict]:
        """Get Relay's chain listing with per-chain token support."""
        response = await self._request("GET", "/chains")
        if response.status_code != 200:
            raise ProviderError(self.name, f"Failed to fetch chains: {response.status_code}", response.status_code)
        data = response_json(response) or {}
        chains = data.get("chains")
        return chains if isinstance(chains, list) else []

    async def get_bridge_status(self, request_id: str) -> BridgeStatusReport:
        """Check destination-side settlement for a Relay request."""
        response = await self._request("GET", "/intents/status/v3", params={"requestId": request_id})
        if response.status_code != 200:
            raise ProviderError(
                self.name, f"Failed to check bridge status: {response.status_code}", response.status_code
            )
        data = response_json(response) or {}
        try:
            status = BridgeStatus(data.get("status"))
        except ValueError:
            status = BridgeStatus.PENDING
        return BridgeStatusReport(
            status=status,
            in_tx_hashes=list(data.get("inTxHashes") or []),
            tx_hashes=list(data.get("txHashes") or []),
            error=data.get("error"),
        )
