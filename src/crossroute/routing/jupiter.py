"""Jupiter Ultra integration (same-chain Solana specialist).

Only Solana-to-Solana swaps are quoted here. The API key stays server-side;
signed transactions are executed through ``execute_order``.

API docs: https://dev.jup.ag/docs/ultra-api
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import httpx

from crossroute.chains import (
    CHAIN_ID_SOLANA,
    SOL_MINT,
    USDC_MINT_SOLANA,
    USDT_MINT_SOLANA,
    find_token,
    format_raw_amount,
)
from crossroute.errors import ProviderError
from crossroute.quotes.quote_math import to_int
from crossroute.routing.base import (
    BalanceHints,
    FeePayer,
    JupiterPayload,
    NormalizedQuote,
    Provider,
    QuoteProvider,
    SwapRequest,
)
from crossroute.utils.http import http_client, response_json

logger = logging.getLogger(__name__)

JUPITER_ULTRA_BASE = "https://api.jup.ag/ultra/v1"

# Fee display symbols for known mints
MINT_TO_SYMBOL = {
    SOL_MINT: "SOL",
    USDC_MINT_SOLANA: "USDC",
    USDT_MINT_SOLANA: "USDT",
}

DEFAULT_NETWORK_FEE_LAMPORTS = 5000
DEFAULT_VALIDITY_SECONDS = 60
NETWORK_ERROR_MESSAGE = "Failed to connect to Jupiter API. Please try again."


@dataclass
class JupiterExecution:
    """Result of submitting a signed order to Jupiter."""

    status: str
    signature: Optional[str] = None
    error: Optional[str] = None
    code: Optional[int] = None
    raw: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "Success" and bool(self.signature)


def parse_expiry(value, default: float) -> float:
    """Parse ``expireAt`` (ISO-8601 or epoch) into a unix timestamp."""
    if value is None:
        return default
    text = str(value).strip()
    if text.isdigit():
        number = int(text)
        # Millisecond epoch
        return number / 1000 if number > 10**12 else float(number)
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return default


def network_cost_lamports(data: dict, taker: Optional[str]) -> str:
    """Lamports of signature, priority, and rent fees the taker pays."""
    if data.get("gasless"):
        return "0"
    if not taker:
        return str(DEFAULT_NETWORK_FEE_LAMPORTS)

    total = 0
    for amount_key, payer_key in (
        ("signatureFeeLamports", "signatureFeePayer"),
        ("prioritizationFeeLamports", "prioritizationFeePayer"),
        ("rentFeeLamports", "rentFeePayer"),
    ):
        payer = data.get(payer_key)
        if payer is None or payer == taker:
            total += to_int(data.get(amount_key)) or 0
    return str(total) if total > 0 else str(DEFAULT_NETWORK_FEE_LAMPORTS)


class JupiterProvider(QuoteProvider):
    """Jupiter Ultra order and execute client."""

    provider = Provider.JUPITER

    def __init__(
        self,
        api_key: str = "",
        api_url: str = JUPITER_ULTRA_BASE,
        timeout: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key.strip()
        self.base_url = api_url.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def supports(self, request: SwapRequest) -> bool:
        return request.is_same_chain_solana

    def _headers(self) -> dict:
        return {"Content-Type": "application/json", "x-api-key": self.api_key}

    def _require_key(self) -> None:
        if not self.is_configured:
            raise ProviderError(self.name, "JUPITER_API_KEY is not set")

    async def fetch_quote(
        self,
        request: SwapRequest,
        balances: Optional[BalanceHints] = None,
    ) -> NormalizedQuote:
        if not request.is_same_chain_solana:
            raise ProviderError(self.name, "Jupiter quote is only for same-chain Solana swaps")
        self._require_key()

        params = {
            "inputMint": request.origin_token,
            "outputMint": request.destination_token,
            "amount": request.amount,
        }
        if request.user_address:
            params["taker"] = request.user_address
            # Receiver defaults to taker and may not equal it
            if request.recipient_address and request.recipient_address != request.user_address:
                params["receiver"] = request.recipient_address

        try:
            async with http_client(self._client, self.timeout) as client:
                response = await client.get(f"{self.base_url}/order", params=params, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Jupiter order request failed: {e}")
            raise ProviderError(self.name, NETWORK_ERROR_MESSAGE) from e

        if response.status_code != 200:
            error_json = response_json(response)
            message = f"Jupiter order failed: {response.status_code}"
            if error_json is not None:
                message = error_json.get("message") or error_json.get("error") or message
            else:
                message = f"{message} {response.text or response.reason_phrase}"
            if response.status_code == 400:
                message = f"No quotes available: {message}"
            raise ProviderError(self.name, message, status_code=response.status_code)

        data = response_json(response)
        if data is None:
            raise ProviderError(self.name, "Invalid response from Jupiter")

        out_amount = str(data.get("outAmount") or "0")
        # errorCode can accompany a usable quote as a warning
        if data.get("errorCode") is not None and out_amount == "0":
            reason = data.get("errorMessage") or f"Jupiter error code {data['errorCode']}"
            raise ProviderError(self.name, f"No quotes available: {reason}")
        if out_amount == "0":
            raise ProviderError(
                self.name,
                "No quotes available: Jupiter returned no quote data (insufficient liquidity or no routes)",
            )

        fee_mint = data.get("feeMint") or SOL_MINT
        platform_fee = data.get("platformFee") or {}
        platform_fee_amount = str(platform_fee.get("amount") or "0")
        if platform_fee_amount == "0":
            fee_bps = to_int(platform_fee.get("feeBps") or data.get("feeBps"))
            if fee_bps and fee_bps > 0:
                platform_fee_amount = str((to_int(request.amount) or 0) * fee_bps // 10_000)

        destination = find_token(CHAIN_ID_SOLANA, request.destination_token)
        known_symbol = MINT_TO_SYMBOL.get(request.destination_token)
        if destination is not None:
            decimals, symbol = destination.decimals, destination.symbol
        else:
            decimals = 6 if known_symbol in ("USDC", "USDT") else 9
            symbol = known_symbol or "USDC"

        gasless = data.get("gasless") is True
        cost = network_cost_lamports(data, request.user_address)
        transaction = (data.get("transaction") or "").strip() or None
        quoted_at = time.time()

        quote = NormalizedQuote(
            provider=Provider.JUPITER,
            expected_out=out_amount,
            expected_out_formatted=format_raw_amount(out_amount, max(0, decimals)),
            fees=platform_fee_amount,
            fee_currency=symbol,
            fee_payer=FeePayer.USER,
            sponsor_cost="0",
            user_fee=platform_fee_amount,
            user_fee_currency=MINT_TO_SYMBOL.get(fee_mint, "SOL"),
            gasless=gasless,
            requires_sol=not gasless and (to_int(cost) or 0) > 0,
            solana_cost_to_user=cost,
            expiry_at=parse_expiry(data.get("expireAt"), quoted_at + DEFAULT_VALIDITY_SECONDS),
            quoted_at=quoted_at,
            payload=JupiterPayload(request_id=data.get("requestId"), unsigned_transaction=transaction),
            slippage_tolerance=request.slippage_tolerance,
        )
        logger.info(f"Jupiter quote: out={quote.expected_out} fee={quote.fees} gasless={gasless}")
        return quote

    async def execute_order(self, signed_transaction: str, request_id: str) -> JupiterExecution:
        """Submit a signed order transaction.

        Raises:
            ProviderError: when the key is missing, the call fails, or Jupiter
                answers with a non-200 status (``status_code`` is preserved)
        """
        self._require_key()
        try:
            async with http_client(self._client, self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/execute",
                    json={"signedTransaction": signed_transaction.strip(), "requestId": request_id.strip()},
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            logger.error(f"Jupiter execute request failed: {e}")
            raise ProviderError(self.name, NETWORK_ERROR_MESSAGE) from e

        data = response_json(response) or {}
        if response.status_code != 200:
            message = data.get("error") or f"Jupiter execute failed: {response.status_code}"
            raise ProviderError(self.name, message, status_code=response.status_code)

        return JupiterExecution(
            status=str(data.get("status") or ""),
            signature=data.get("signature"),
            error=data.get("error"),
            code=data.get("code"),
            raw=data,
        )
