"""Quote aggregation service.

Fans a request out to every applicable provider, isolates failures, then
filters and ranks the surviving quotes.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Optional

from crossroute.errors import (
    IneligibleError,
    NeedGasError,
    NoQuotesError,
    ProviderError,
    RouteUnsupportedError,
    ValidationError,
)
from crossroute.quotes.audit import AuditSink, NullAuditSink, build_audit_record
from crossroute.quotes.eligibility import SPONSOR_FEE_TOLERANCE_USD, filter_eligible
from crossroute.quotes.quote_math import MIN_SOL_BUFFER_PERCENT
from crossroute.quotes.route_validation import RouteValidator
from crossroute.quotes.selection import SelectionPolicy, rank_quotes, reason_chosen
from crossroute.routing.base import (
    BalanceHints,
    NormalizedQuote,
    Provider,
    QuoteProvider,
    QuotesResult,
    SwapRequest,
)

logger = logging.getLogger(__name__)

SELF_SWAP_MESSAGE = (
    "Same token on same chain is not a valid swap. Choose a different destination token or chain."
)


class QuoteService:
    """Aggregates quotes from all providers.

    Args:
        providers: Provider adapters; each decides via ``supports`` whether
            it applies to a request
        route_validator: Chain/token support check, skipped when None
        audit_sink: Destination for per-evaluation audit records
        selection_policy: Tie-break thresholds
        sponsor_fee_tolerance_usd: Allowed shortfall of the sponsor fee
        sol_buffer_percent: SOL balance buffer for the gas check
    """

    def __init__(
        self,
        providers: list[QuoteProvider],
        route_validator: Optional[RouteValidator] = None,
        audit_sink: Optional[AuditSink] = None,
        selection_policy: SelectionPolicy = SelectionPolicy(),
        sponsor_fee_tolerance_usd: Decimal = SPONSOR_FEE_TOLERANCE_USD,
        sol_buffer_percent: int = MIN_SOL_BUFFER_PERCENT,
    ):
        self.providers = list(providers)
        self.route_validator = route_validator
        self.audit_sink = audit_sink if audit_sink is not None else NullAuditSink()
        self.selection_policy = selection_policy
        self.sponsor_fee_tolerance_usd = sponsor_fee_tolerance_usd
        self.sol_buffer_percent = sol_buffer_percent

    def get_provider(self, provider: Provider) -> Optional[QuoteProvider]:
        for candidate in self.providers:
            if candidate.provider == provider:
                return candidate
        return None

    def applicable_providers(self, request: SwapRequest) -> list[QuoteProvider]:
        return [p for p in self.providers if p.supports(request)]

    async def _validate(self, request: SwapRequest) -> None:
        if request.is_self_swap:
            raise ValidationError(SELF_SWAP_MESSAGE)

        # The chain listing only covers bridging; same-chain Solana skips it
        if self.route_validator is None or request.is_same_chain_solana:
            return

        support = await self.route_validator.is_route_supported(
            request.origin_chain_id,
            request.origin_token,
            request.destination_chain_id,
            request.destination_token,
        )
        if not support.supported:
            raise RouteUnsupportedError(support.reason or "Route not supported")

    async def get_quotes(
        self,
        request: SwapRequest,
        balances: Optional[BalanceHints] = None,
    ) -> QuotesResult:
        """Get eligible quotes, best first.

        Raises:
            ValidationError: self-swap request
            RouteUnsupportedError: route rejected by chain metadata
            NoQuotesError: every provider failed
            NeedGasError: every quote was rejected for insufficient SOL
            IneligibleError: quotes existed but none passed eligibility
        """
        await self._validate(request)

        providers = self.applicable_providers(request)
        if not providers:
            raise NoQuotesError({})

        results = await asyncio.gather(
            *(p.fetch_quote(request, balances) for p in providers),
            return_exceptions=True,
        )

        candidates: list[NormalizedQuote] = []
        failures: dict[str, str] = {}
        for provider, result in zip(providers, results):
            if isinstance(result, NormalizedQuote):
                candidates.append(result)
            elif isinstance(result, BaseException):
                message = result.message if isinstance(result, ProviderError) else str(result)
                failures[provider.name] = message or type(result).__name__
                logger.warning(f"{provider.name} quote failed: {failures[provider.name]}")

        if not candidates:
            raise NoQuotesError(failures)

        eligibility = filter_eligible(
            candidates,
            balances,
            tolerance_usd=self.sponsor_fee_tolerance_usd,
            sol_buffer_percent=self.sol_buffer_percent,
        )

        if not eligibility.eligible:
            self._audit(request, candidates, None, eligibility.rejections)
            if eligibility.only_gas_rejections:
                min_lamports = min(
                    (r.min_lamports for r in eligibility.rejections if r.min_lamports is not None),
                    default=None,
                )
                raise NeedGasError(eligibility.rejections, min_lamports)
            raise IneligibleError(eligibility.rejections)

        ranking = rank_quotes(eligibility.eligible, request, self.selection_policy)
        logger.info(
            f"Best quote: {ranking.best.provider.value} "
            f"({reason_chosen(ranking)['code']}) from {len(ranking.quotes)} eligible"
        )
        self._audit(request, candidates, ranking, eligibility.rejections)

        return QuotesResult(quotes=ranking.quotes, best=ranking.best)

    def _audit(self, request, candidates, ranking, rejections) -> None:
        try:
            record = build_audit_record(request, candidates, ranking, rejections)
            self.audit_sink.submit(record)
        except Exception as e:
            logger.warning(f"Quote audit logging failed: {e}")

    async def refresh_quote(
        self,
        quote: NormalizedQuote,
        request: SwapRequest,
        balances: Optional[BalanceHints] = None,
    ) -> NormalizedQuote:
        """Re-quote from the provider that produced ``quote``.

        Raises:
            ProviderError: when the provider is unavailable or the re-quote fails
        """
        provider = self.get_provider(quote.provider)
        if provider is None:
            raise ProviderError(quote.provider.value, "Provider not configured")
        return await provider.fetch_quote(request, balances)
