"""Core quote types and the provider interface."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional, Union

import httpx

from crossroute.chains import CHAIN_ID_SOLANA, normalize_token_address

logger = logging.getLogger(__name__)


class Provider(str, Enum):
    """Closed set of quote providers."""

    RELAY = "relay"  # Sponsor-paying cross-chain
    DEBRIDGE = "debridge"  # User-pays bridge
    JUPITER = "jupiter"  # Same-chain Solana specialist


class TradeType(str, Enum):
    EXACT_IN = "exact_in"
    EXACT_OUT = "exact_out"


class FeePayer(str, Enum):
    SPONSOR = "sponsor"
    USER = "user"


@dataclass(frozen=True)
class SwapRequest:
    """A single quote-and-execute request. Amounts are raw integer strings."""

    origin_chain_id: int
    origin_token: str
    destination_chain_id: int
    destination_token: str
    amount: str
    user_address: str
    trade_type: TradeType = TradeType.EXACT_IN
    recipient_address: Optional[str] = None
    deposit_fee_payer: Optional[str] = None
    slippage_tolerance: Optional[str] = None  # Basis points, as a string
    refund_to: Optional[str] = None
    referrer: Optional[str] = None

    @property
    def recipient(self) -> str:
        return self.recipient_address or self.user_address

    @property
    def is_same_chain(self) -> bool:
        return self.origin_chain_id == self.destination_chain_id

    @property
    def is_same_chain_solana(self) -> bool:
        return self.is_same_chain and self.origin_chain_id == CHAIN_ID_SOLANA

    @property
    def is_self_swap(self) -> bool:
        """Same token on the same chain is never a valid route."""
        if not self.is_same_chain:
            return False
        origin = normalize_token_address(self.origin_token).lower()
        destination = normalize_token_address(self.destination_token).lower()
        return origin == destination

    def to_dict(self) -> dict:
        data = asdict(self)
        data["trade_type"] = self.trade_type.value
        return data


@dataclass(frozen=True)
class BalanceHints:
    """Balances the caller already knows, used instead of RPC reads.

    ``native_balance`` is in lamports; ``stable_balance`` is the raw Solana
    USDC balance.
    """

    native_balance: Optional[int] = None
    stable_balance: Optional[int] = None


# ======================
# Execution Payloads
# ======================


@dataclass(frozen=True)
class RelayPayload:
    """Ready-to-sign transaction from the first Relay step."""

    provider: ClassVar[Provider] = Provider.RELAY

    request_id: Optional[str]
    serialized_transaction: Optional[str]


@dataclass(frozen=True)
class DebridgePayload:
    """Ready-to-sign DLN order transaction."""

    provider: ClassVar[Provider] = Provider.DEBRIDGE

    order_id: Optional[str]
    serialized_transaction: Optional[str]


@dataclass(frozen=True)
class JupiterPayload:
    """Unsigned Ultra order transaction plus the id used to execute it."""

    provider: ClassVar[Provider] = Provider.JUPITER

    request_id: Optional[str]
    unsigned_transaction: Optional[str]


ExecutionPayload = Union[RelayPayload, DebridgePayload, JupiterPayload]


@dataclass(frozen=True)
class NormalizedQuote:
    """A provider quote mapped onto a common shape.

    Raw amounts (``expected_out``, ``fees``, ``sponsor_cost``, ``user_fee``,
    ``solana_cost_to_user``) are integer strings in smallest units. USD
    fields are Decimals and are only populated by the sponsor-paying
    provider.
    """

    provider: Provider
    expected_out: str
    expected_out_formatted: str
    fees: str
    fee_currency: str
    fee_payer: FeePayer
    sponsor_cost: str
    expiry_at: float
    payload: ExecutionPayload
    quoted_at: float = field(default_factory=time.time)
    solana_cost_to_user: Optional[str] = None
    requires_sol: bool = False
    gasless: bool = False
    user_fee: Optional[str] = None
    user_fee_currency: Optional[str] = None
    user_fee_usd: Optional[Decimal] = None
    worst_case_sponsor_cost_usd: Optional[Decimal] = None
    user_receives_usd: Optional[Decimal] = None
    user_pays_usd: Optional[Decimal] = None
    sol_price_usd: Optional[Decimal] = None
    price_drift: Optional[Decimal] = None
    recouped_sponsor_cost: Optional[str] = None
    time_estimate_seconds: Optional[int] = None
    slippage_tolerance: Optional[str] = None
    origin_fee: Optional[str] = None  # Flat fee in the origin chain native currency
    origin_fee_currency: Optional[str] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now >= self.expiry_at

    def age_seconds(self, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        return now - self.quoted_at

    @property
    def has_usd_values(self) -> bool:
        return self.user_receives_usd is not None

    def to_dict(self) -> dict:
        """Convert to a JSON-safe dictionary."""
        data = {}
        for key, value in asdict(self).items():
            if isinstance(value, Decimal):
                value = str(value)
            elif isinstance(value, Enum):
                value = value.value
            data[key] = value
        data["payload"] = {"kind": self.payload.provider.value, **asdict(self.payload)}
        return data


@dataclass
class QuotesResult:
    """Eligible quotes, best first."""

    quotes: list[NormalizedQuote] = field(default_factory=list)
    best: Optional[NormalizedQuote] = None


class QuoteProvider(ABC):
    """Abstract base class for quote providers.

    Each adapter issues one outbound HTTP call per quote. An ``httpx``
    client may be injected; otherwise a short-lived client with the
    adapter's timeout is opened per call.
    """

    provider: ClassVar[Provider]

    def __init__(self, timeout: float = 20.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return self.provider.value

    def supports(self, request: SwapRequest) -> bool:
        """Whether this provider applies to the request's route."""
        return True

    @abstractmethod
    async def fetch_quote(
        self,
        request: SwapRequest,
        balances: Optional[BalanceHints] = None,
    ) -> NormalizedQuote:
        """
        Fetch and normalize a quote.

        Args:
            request: The swap request
            balances: Optional balances known to the caller

        Returns:
            NormalizedQuote

        Raises:
            ProviderError: on any HTTP, parse, or provider-reported failure
        """
        pass
