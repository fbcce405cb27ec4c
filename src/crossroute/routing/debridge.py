"""deBridge DLN integration (user-pays bridge).

The user signs and pays origin-chain fees; nothing is sponsored.

API docs: https://docs.dln.trade/dln-api/quick-start
"""

import logging
import time
from typing import Optional

import httpx

from crossroute.chains import CHAIN_ID_SOLANA, get_native_symbol, get_token_symbol, to_debridge_chain_id
from crossroute.errors import ProviderError
from crossroute.quotes.quote_math import to_int
from crossroute.routing.base import (
    BalanceHints,
    DebridgePayload,
    FeePayer,
    NormalizedQuote,
    Provider,
    QuoteProvider,
    SwapRequest,
    TradeType,
)
from crossroute.utils.http import http_client, response_json

logger = logging.getLogger(__name__)

DEBRIDGE_API_BASE = "https://api.dln.trade"
CREATE_TX_PATH = "/v1.0/dln/order/create-tx"

# Estimated lamports for a Solana-origin DLN order transaction
ESTIMATED_SOLANA_TX_LAMPORTS = 15_000_000

LOW_AMOUNT_MESSAGE = "Amount too small for cross-chain swap; try at least ~$10 USDC (e.g. 10000000)."
UNAVAILABLE_MESSAGE = (
    "Provider temporarily unavailable or route not supported. Try a larger amount "
    "(e.g. 10000000 for 10 USDC) or a different destination."
)


def extract_payload(data: dict) -> DebridgePayload:
    tx = data.get("tx")
    if isinstance(tx, dict):
        serialized = tx.get("data")
    else:
        serialized = tx
    return DebridgePayload(
        order_id=data.get("orderId"),
        serialized_transaction=serialized if isinstance(serialized, str) else None,
    )


class DebridgeProvider(QuoteProvider):
    """deBridge create-tx quote client."""

    provider = Provider.DEBRIDGE

    def __init__(
        self,
        api_url: str = DEBRIDGE_API_BASE,
        solana_tx_lamports: int = ESTIMATED_SOLANA_TX_LAMPORTS,
        quote_validity_seconds: int = 30,
        timeout: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.base_url = api_url.rstrip("/")
        self.solana_tx_lamports = solana_tx_lamports
        self.quote_validity_seconds = quote_validity_seconds

    def supports(self, request: SwapRequest) -> bool:
        return not request.is_same_chain

    def build_params(self, request: SwapRequest) -> dict:
        return {
            "srcChainId": to_debridge_chain_id(request.origin_chain_id),
            "srcChainTokenIn": request.origin_token,
            "srcChainTokenInAmount": request.amount,
            "dstChainId": to_debridge_chain_id(request.destination_chain_id),
            "dstChainTokenOut": request.destination_token,
            "dstChainTokenOutAmount": request.amount if request.trade_type == TradeType.EXACT_OUT else "auto",
            "dstChainTokenOutRecipient": request.recipient,
            "senderAddress": request.user_address,
            "srcChainOrderAuthorityAddress": request.user_address,
            "dstChainOrderAuthorityAddress": request.recipient,
        }

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        message = f"deBridge quote failed: {response.status_code}"
        data = response_json(response)
        if data is None:
            return response.text[:200] if response.text else message
        error_id = data.get("errorId")
        if error_id == "ERROR_LOW_GIVE_AMOUNT":
            return LOW_AMOUNT_MESSAGE
        if response.status_code == 500 and error_id == "INTERNAL_SERVER_ERROR":
            return UNAVAILABLE_MESSAGE
        return data.get("errorMessage") or message

    @staticmethod
    def _output_symbol(request: SwapRequest) -> str:
        return get_token_symbol(request.destination_chain_id, request.destination_token) or "UNKNOWN"

    def _fees(self, request: SwapRequest, data: dict) -> str:
        """Protocol fee in output units; zero when it is charged in another currency.

        ``protocolFee`` is taken from the input token and ``fixFee`` is paid
        in the origin chain's native currency, so neither is summed with the
        output unless the input and output are the same asset.
        """
        protocol_fee = to_int(data.get("protocolFee")) or 0
        origin_symbol = get_token_symbol(request.origin_chain_id, request.origin_token)
        if origin_symbol is None or origin_symbol != self._output_symbol(request):
            return "0"
        return str(protocol_fee)

    async def fetch_quote(
        self,
        request: SwapRequest,
        balances: Optional[BalanceHints] = None,
    ) -> NormalizedQuote:
        params = self.build_params(request)
        logger.debug(
            f"deBridge create-tx: {request.origin_chain_id} -> {request.destination_chain_id} "
            f"sender={request.user_address}"
        )

        try:
            async with http_client(self._client, self.timeout) as client:
                response = await client.get(
                    f"{self.base_url}{CREATE_TX_PATH}",
                    params=params,
                    headers={"Accept": "application/json"},
                )
        except httpx.TimeoutException as e:
            raise ProviderError(self.name, "deBridge request timed out") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"Failed to connect to deBridge: {e}") from e

        if response.status_code != 200:
            logger.error(f"deBridge error {response.status_code}: {response.text[:500]}")
            raise ProviderError(self.name, self._error_message(response), status_code=response.status_code)

        data = response_json(response)
        if data is None:
            raise ProviderError(self.name, "Invalid response from deBridge")

        quoted_at = time.time()
        estimation = data.get("estimation") or {}
        take_offer = (data.get("order") or {}).get("takeOffer") or {}
        dst_out = estimation.get("dstChainTokenOut") or {}

        if dst_out.get("amount") is not None:
            expected_out = str(dst_out["amount"])
        elif estimation.get("takeAmount") is not None:
            expected_out = str(estimation["takeAmount"])
        elif take_offer.get("amount") is not None:
            expected_out = str(take_offer["amount"])
        else:
            expected_out = "0"

        formatted = estimation.get("takeAmountFormatted")
        expected_out_formatted = str(formatted) if formatted is not None else expected_out

        fees = self._fees(request, data)
        fix_fee = to_int(data.get("fixFee")) or 0

        origin_is_solana = request.origin_chain_id == CHAIN_ID_SOLANA
        solana_cost = str(self.solana_tx_lamports + fix_fee) if origin_is_solana else None
        payload = extract_payload(data)
        logger.info(
            f"deBridge quote: out={expected_out} fees={fees} fix_fee={fix_fee} "
            f"order={payload.order_id or 'n/a'}"
        )

        return NormalizedQuote(
            provider=Provider.DEBRIDGE,
            expected_out=expected_out,
            expected_out_formatted=expected_out_formatted,
            fees=fees,
            fee_currency=self._output_symbol(request),
            fee_payer=FeePayer.USER,
            sponsor_cost="0",
            solana_cost_to_user=solana_cost,
            requires_sol=origin_is_solana,
            expiry_at=quoted_at + self.quote_validity_seconds,
            quoted_at=quoted_at,
            payload=payload,
            slippage_tolerance=request.slippage_tolerance,
            origin_fee=str(fix_fee),
            origin_fee_currency=get_native_symbol(request.origin_chain_id),
        )
