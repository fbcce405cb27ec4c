"""USD price lookups via CoinGecko.

Best-effort: lookups never raise. A failed refresh serves the last cached
price; with nothing cached, callers get a fixed fallback.
"""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from crossroute.chains import STABLECOIN_SYMBOLS, get_token_symbol
from crossroute.utils.cache import TtlCache
from crossroute.utils.http import http_client

logger = logging.getLogger(__name__)

# CoinGecko API (free tier)
COINGECKO_API = "https://api.coingecko.com/api/v3"

COINGECKO_IDS = {
    "SOL": "solana",
    "ETH": "ethereum",
    "WETH": "ethereum",
    "BNB": "binancecoin",
    "MATIC": "matic-network",
    "AVAX": "avalanche-2",
}

DEFAULT_SOL_PRICE_USD = Decimal("150")
DEFAULT_TOKEN_PRICE_USD = Decimal("1")


class PriceService:
    """Cached USD prices keyed by token symbol."""

    def __init__(
        self,
        api_url: str = COINGECKO_API,
        cache: Optional[TtlCache] = None,
        sol_fallback: Decimal = DEFAULT_SOL_PRICE_USD,
        token_fallback: Decimal = DEFAULT_TOKEN_PRICE_USD,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.cache = cache if cache is not None else TtlCache(60)
        self.sol_fallback = sol_fallback
        self.token_fallback = token_fallback
        self.timeout = timeout
        self._client = client

    async def get_usd_price(self, symbol: str) -> Optional[Decimal]:
        """Get the USD price for a symbol, or None if unknown/unavailable."""
        normalized = symbol.upper()
        if normalized in STABLECOIN_SYMBOLS:
            return Decimal("1.0")

        coingecko_id = COINGECKO_IDS.get(normalized)
        if not coingecko_id:
            return None

        cached = self.cache.get_fresh(normalized)
        if cached is not None:
            return cached

        try:
            async with http_client(self._client, self.timeout) as client:
                response = await client.get(
                    f"{self.api_url}/simple/price",
                    params={"ids": coingecko_id, "vs_currencies": "usd"},
                )
            if response.status_code == 200:
                price = response.json().get(coingecko_id, {}).get("usd")
                if price:
                    price_decimal = Decimal(str(price))
                    if price_decimal > 0:
                        self.cache.set(price_decimal, normalized)
                        return price_decimal
            else:
                logger.warning(f"CoinGecko returned {response.status_code} for {normalized}")
        except Exception as e:
            logger.warning(f"CoinGecko price fetch failed for {normalized}: {e}")

        return self.cache.get_stale(normalized)

    async def get_sol_price(self) -> Decimal:
        """SOL/USD with the fixed fallback on failure."""
        price = await self.get_usd_price("SOL")
        if price is None or price <= 0:
            logger.warning(f"SOL price unavailable, using fallback ${self.sol_fallback}")
            return self.sol_fallback
        return price

    async def get_token_price(self, token_address: str, chain_id: int) -> Decimal:
        """USD price of a registered token, with the token fallback on failure."""
        symbol = get_token_symbol(chain_id, token_address)
        price = await self.get_usd_price(symbol) if symbol else None
        if price is None or price <= 0:
            logger.debug(f"No USD price for {token_address} on chain {chain_id}, using {self.token_fallback}")
            return self.token_fallback
        return price
