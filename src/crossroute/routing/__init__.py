"""Provider adapters for quote aggregation.

Providers:
- Relay: sponsor-paying cross-chain bridge (gasless Solana origin)
- deBridge: user-pays DLN bridge
- Jupiter: same-chain Solana swaps (Ultra API)

Adapters live in their own modules and are imported from there.
"""

from crossroute.routing.base import (
    BalanceHints,
    DebridgePayload,
    FeePayer,
    JupiterPayload,
    NormalizedQuote,
    Provider,
    QuoteProvider,
    QuotesResult,
    RelayPayload,
    SwapRequest,
    TradeType,
)

__all__ = [
    # Base types
    "BalanceHints",
    "FeePayer",
    "NormalizedQuote",
    "Provider",
    "QuoteProvider",
    "QuotesResult",
    "SwapRequest",
    "TradeType",
    # Payloads
    "RelayPayload",
    "DebridgePayload",
    "JupiterPayload",
]
