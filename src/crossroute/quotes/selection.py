"""Best-quote selection.

Ranking is a pure function of the quotes and the request: the final sort
key is a fixed provider rank, so input order never affects the result.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

from crossroute.config import Settings
from crossroute.quotes.quote_math import cost_to_user, effective_receive, net_user_value_usd, to_int
from crossroute.routing.base import FeePayer, NormalizedQuote, Provider, SwapRequest, TradeType

logger = logging.getLogger(__name__)

# Deterministic last-resort ordering; gasless sponsor first.
PROVIDER_RANK = {
    Provider.RELAY: 0,
    Provider.JUPITER: 1,
    Provider.DEBRIDGE: 2,
}


class TieBreaker(str, Enum):
    NONE = "none"
    PREFER_SPONSOR = "prefer_relay"
    PREFER_SPECIALIST = "prefer_jupiter"


@dataclass(frozen=True)
class SelectionPolicy:
    """Closeness thresholds for provider-preference tie-breaks."""

    close_usd_ratio: Decimal = Decimal("0.001")
    close_bps: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> "SelectionPolicy":
        return cls(
            close_usd_ratio=settings.close_threshold_usd_ratio,
            close_bps=settings.close_threshold_bps,
        )


@dataclass
class Ranking:
    """Ordered quotes plus what the tie-break step did."""

    quotes: list[NormalizedQuote] = field(default_factory=list)
    trade_type: TradeType = TradeType.EXACT_IN
    tie_breaker: TieBreaker = TieBreaker.NONE
    threshold: Optional[str] = None

    @property
    def best(self) -> Optional[NormalizedQuote]:
        return self.quotes[0] if self.quotes else None

    @property
    def tie_breaker_applied(self) -> bool:
        return self.tie_breaker != TieBreaker.NONE


def _rank(quote: NormalizedQuote) -> int:
    return PROVIDER_RANK.get(quote.provider, len(PROVIDER_RANK))


def _uses_usd(quotes: list[NormalizedQuote]) -> bool:
    return all(q.has_usd_values for q in quotes)


def _exact_in_key(quote: NormalizedQuote, use_usd: bool) -> tuple:
    net_usd = net_user_value_usd(quote) if use_usd else Decimal("0")
    return (
        -net_usd,
        -effective_receive(quote),
        -(to_int(quote.expected_out) or 0),
        _rank(quote),
    )


def _is_close(
    leader: NormalizedQuote,
    candidate: NormalizedQuote,
    use_usd: bool,
    policy: SelectionPolicy,
) -> tuple[bool, Optional[str]]:
    """Whether ``candidate`` is within the closeness threshold of ``leader``."""
    if use_usd:
        leader_value = net_user_value_usd(leader)
        candidate_value = net_user_value_usd(candidate)
        if leader_value <= 0 or candidate_value <= 0:
            return False, None
        threshold = leader_value * policy.close_usd_ratio
        return leader_value - candidate_value <= threshold, str(threshold)

    leader_eff = effective_receive(leader)
    candidate_eff = effective_receive(candidate)
    if leader_eff <= 0 or candidate_eff <= 0:
        return False, None
    threshold = leader_eff * policy.close_bps // 10_000
    return leader_eff - candidate_eff <= threshold, str(threshold)


def rank_quotes(
    quotes: list[NormalizedQuote],
    request: SwapRequest,
    policy: SelectionPolicy = SelectionPolicy(),
) -> Ranking:
    """Order quotes best-first and apply provider-preference tie-breaks.

    exact_in ranks by net USD value when every quote carries USD data,
    then effective receive, then expected output. exact_out ranks by
    ascending cost to user. After sorting, a same-chain specialist within
    threshold of the leader is promoted on Solana-to-Solana routes;
    otherwise a sponsor-paying runner-up within threshold of a user-pays
    leader is promoted.
    """
    if request.trade_type == TradeType.EXACT_OUT:
        ordered = sorted(quotes, key=lambda q: (cost_to_user(q), _rank(q)))
        return Ranking(quotes=ordered, trade_type=TradeType.EXACT_OUT)

    use_usd = _uses_usd(quotes)
    ordered = sorted(quotes, key=lambda q: _exact_in_key(q, use_usd))
    if len(ordered) < 2:
        return Ranking(quotes=ordered)

    leader = ordered[0]

    if request.is_same_chain_solana and leader.provider != Provider.JUPITER:
        specialist = next((q for q in ordered if q.provider == Provider.JUPITER), None)
        if specialist is not None:
            close, threshold = _is_close(leader, specialist, use_usd, policy)
            if close:
                rest = [q for q in ordered if q is not specialist]
                logger.info(f"Tie-breaker: promoting jupiter over {leader.provider.value} (threshold {threshold})")
                return Ranking(
                    quotes=[specialist, *rest],
                    tie_breaker=TieBreaker.PREFER_SPECIALIST,
                    threshold=threshold,
                )

    runner_up = ordered[1]
    if leader.fee_payer == FeePayer.USER and runner_up.fee_payer == FeePayer.SPONSOR:
        close, threshold = _is_close(leader, runner_up, use_usd, policy)
        if close:
            logger.info(
                f"Tie-breaker: promoting {runner_up.provider.value} over "
                f"{leader.provider.value} (threshold {threshold})"
            )
            return Ranking(
                quotes=[runner_up, leader, *ordered[2:]],
                tie_breaker=TieBreaker.PREFER_SPONSOR,
                threshold=threshold,
            )

    return Ranking(quotes=ordered)


def sort_by_best(
    quotes: list[NormalizedQuote],
    request: SwapRequest,
    policy: SelectionPolicy = SelectionPolicy(),
) -> list[NormalizedQuote]:
    """Best-first ordering of ``quotes``."""
    return rank_quotes(quotes, request, policy).quotes


def reason_chosen(ranking: Ranking) -> dict:
    """Machine code and human-readable reason for the winner."""
    best = ranking.best
    if best is None:
        return {"code": "none", "human": "No quote chosen"}
    provider = best.provider.value
    if len(ranking.quotes) == 1:
        return {"code": f"single_quote_{provider}", "human": f"Only quote available ({provider})"}
    if ranking.tie_breaker == TieBreaker.PREFER_SPONSOR:
        return {
            "code": "tie_breaker_prefer_relay",
            "human": f"Tie-breaker: prefer gasless sponsor when within threshold ({provider} chosen)",
        }
    if ranking.tie_breaker == TieBreaker.PREFER_SPECIALIST:
        return {
            "code": "tie_breaker_prefer_jupiter",
            "human": f"Tie-breaker: prefer same-chain specialist when within threshold ({provider} chosen)",
        }
    if ranking.trade_type == TradeType.EXACT_OUT:
        return {"code": f"lowest_cost_{provider}", "human": f"Lowest cost to user ({provider} chosen)"}
    return {
        "code": f"highest_effective_receive_{provider}",
        "human": f"Highest effective receive / net value ({provider} chosen)",
    }
