"""Quote eligibility rules."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

from crossroute.quotes.quote_math import MIN_SOL_BUFFER_PERCENT, has_enough_sol, min_sol_required
from crossroute.routing.base import BalanceHints, FeePayer, NormalizedQuote, Provider

logger = logging.getLogger(__name__)

SPONSOR_FEE_TOLERANCE_USD = Decimal("0.01")


class RejectionCode(str, Enum):
    SPONSOR_UNDERCHARGED = "sponsor_undercharged"
    INSUFFICIENT_SOL = "insufficient_sol"


@dataclass(frozen=True)
class Rejection:
    provider: Provider
    code: RejectionCode
    reason: str
    min_lamports: Optional[int] = None

    def to_dict(self) -> dict:
        return {"provider": self.provider.value, "code": self.code.value, "reason": self.reason}


@dataclass
class EligibilityResult:
    eligible: list[NormalizedQuote] = field(default_factory=list)
    rejections: list[Rejection] = field(default_factory=list)

    @property
    def only_gas_rejections(self) -> bool:
        """True when every rejection is an insufficient native gas balance."""
        return bool(self.rejections) and all(
            r.code == RejectionCode.INSUFFICIENT_SOL for r in self.rejections
        )


def validate_sponsor_profitability(
    quote: NormalizedQuote,
    tolerance_usd: Decimal = SPONSOR_FEE_TOLERANCE_USD,
) -> Optional[str]:
    """Return a reason when the user fee fails to cover the sponsor's worst case."""
    if quote.provider != Provider.RELAY or quote.fee_payer != FeePayer.SPONSOR:
        return None
    user_fee_usd = quote.user_fee_usd or Decimal("0")
    worst_case_usd = quote.worst_case_sponsor_cost_usd or Decimal("0")
    if user_fee_usd < worst_case_usd - tolerance_usd:
        return f"User fee ({user_fee_usd} USD) does not cover worst-case cost ({worst_case_usd} USD)"
    return None


def check_eligibility(
    quote: NormalizedQuote,
    balances: Optional[BalanceHints] = None,
    tolerance_usd: Decimal = SPONSOR_FEE_TOLERANCE_USD,
    sol_buffer_percent: int = MIN_SOL_BUFFER_PERCENT,
) -> Optional[Rejection]:
    """Check one quote. Returns a Rejection, or None when eligible.

    The SOL balance check only runs when the caller supplied a native
    balance; without it every quote passes on that rule.
    """
    reason = validate_sponsor_profitability(quote, tolerance_usd)
    if reason:
        return Rejection(quote.provider, RejectionCode.SPONSOR_UNDERCHARGED, reason)

    if balances is not None and balances.native_balance is not None:
        if not has_enough_sol(quote, balances.native_balance, sol_buffer_percent):
            required = min_sol_required(quote, sol_buffer_percent)
            return Rejection(
                quote.provider,
                RejectionCode.INSUFFICIENT_SOL,
                f"Insufficient SOL balance: need {required} lamports, have {balances.native_balance}",
                min_lamports=required,
            )

    return None


def filter_eligible(
    quotes: list[NormalizedQuote],
    balances: Optional[BalanceHints] = None,
    tolerance_usd: Decimal = SPONSOR_FEE_TOLERANCE_USD,
    sol_buffer_percent: int = MIN_SOL_BUFFER_PERCENT,
) -> EligibilityResult:
    """Split quotes into eligible ones and rejections."""
    result = EligibilityResult()
    for quote in quotes:
        rejection = check_eligibility(quote, balances, tolerance_usd, sol_buffer_percent)
        if rejection is None:
            result.eligible.append(quote)
            continue
        result.rejections.append(rejection)
        logger.warning(
            f"Rejecting quote from {quote.provider.value}: {rejection.reason} "
            f"(user_fee_usd={quote.user_fee_usd}, worst_case_usd={quote.worst_case_sponsor_cost_usd})"
        )
    return result
