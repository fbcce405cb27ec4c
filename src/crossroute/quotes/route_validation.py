"""Route support checks against Relay's chain listing.

The validator only short-circuits pairs that are obviously unsupported.
It is not authoritative: when no chain metadata can be obtained the route
is allowed and the quote call gives the real verdict.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from crossroute.chains import addresses_match, to_relay_chain_id
from crossroute.utils.cache import TtlCache

logger = logging.getLogger(__name__)

ChainsFetcher = Callable[[], Awaitable[list[dict]]]

ROUTE_CACHE_TTL_SECONDS = 300


@dataclass(frozen=True)
class RouteSupport:
    supported: bool
    reason: Optional[str] = None


def is_token_supported(chain: dict, token_address: str) -> bool:
    """Check whether a chain entry allows bridging ``token_address``."""
    if chain.get("tokenSupport") == "All":
        return True

    currency = chain.get("currency") or {}
    if currency.get("address") is not None:
        if addresses_match(currency["address"], token_address) and currency.get("supportsBridging") is True:
            return True

    for list_name in ("erc20Currencies", "featuredTokens"):
        tokens = chain.get(list_name)
        if not isinstance(tokens, list):
            continue
        for token in tokens:
            address = token.get("address") if isinstance(token, dict) else None
            if address is not None and addresses_match(address, token_address):
                if token.get("supportsBridging") is not False:
                    return True

    return False


class RouteValidator:
    """Cached chain/token support lookups.

    Args:
        fetch_chains: Coroutine returning the provider's chain list
        cache: Owned cache for the chain list; defaults to a 5 minute TTL
    """

    def __init__(self, fetch_chains: ChainsFetcher, cache: Optional[TtlCache] = None):
        self._fetch_chains = fetch_chains
        self.cache = cache if cache is not None else TtlCache(ROUTE_CACHE_TTL_SECONDS)

    async def get_chains(self) -> list[dict]:
        """Return the chain list, refreshing when stale.

        Serves the last good list if a refresh fails; raises only when no
        list has ever been fetched.
        """
        fresh = self.cache.get_fresh()
        if fresh is not None:
            return fresh

        try:
            chains = await self._fetch_chains()
        except Exception as e:
            stale = self.cache.get_stale()
            if stale is not None:
                logger.warning(f"Chain list refresh failed, serving stale data: {e}")
                return stale
            raise

        self.cache.set(chains)
        return chains

    async def is_route_supported(
        self,
        origin_chain_id: int,
        origin_token: str,
        destination_chain_id: int,
        destination_token: str,
    ) -> RouteSupport:
        try:
            chains = await self.get_chains()
        except Exception as e:
            logger.warning(f"Route validation unavailable, allowing route: {e}")
            return RouteSupport(supported=True)

        if not chains:
            logger.warning("Chain list empty, allowing route through")
            return RouteSupport(supported=True)

        by_id = {chain.get("id"): chain for chain in chains if isinstance(chain, dict)}
        origin_chain = by_id.get(to_relay_chain_id(origin_chain_id))
        destination_chain = by_id.get(to_relay_chain_id(destination_chain_id))

        if origin_chain is None:
            return RouteSupport(False, f"Origin chain {origin_chain_id} is not supported")
        if destination_chain is None:
            return RouteSupport(False, f"Destination chain {destination_chain_id} is not supported")

        if not is_token_supported(origin_chain, origin_token):
            name = origin_chain.get("displayName") or origin_chain.get("name") or origin_chain_id
            return RouteSupport(False, f"Origin token {origin_token} is not supported for bridging on {name}")

        if not is_token_supported(destination_chain, destination_token):
            name = destination_chain.get("displayName") or destination_chain.get("name") or destination_chain_id
            return RouteSupport(
                False, f"Destination token {destination_token} is not supported for bridging on {name}"
            )

        return RouteSupport(supported=True)

    def cache_status(self) -> dict:
        chains = self.cache.get_stale()
        age = self.cache.age()
        return {
            "cached": chains is not None,
            "fresh": self.cache.get_fresh() is not None,
            "chains": len(chains) if chains else 0,
            "age_seconds": round(age, 1) if age is not None else None,
        }

    async def prefetch(self) -> None:
        """Warm the cache. Never raises."""
        try:
            await self.get_chains()
        except Exception as e:
            logger.warning(f"Failed to prefetch chain list: {e}")
