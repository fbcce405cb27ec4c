"""Tests for eligibility and best-quote selection."""

import itertools
from decimal import Decimal

from crossroute.chains import CHAIN_ID_SOLANA, SOL_MINT
from crossroute.quotes.eligibility import (
    RejectionCode,
    check_eligibility,
    filter_eligible,
    validate_sponsor_profitability,
)
from crossroute.quotes.selection import (
    SelectionPolicy,
    TieBreaker,
    rank_quotes,
    reason_chosen,
    sort_by_best,
)
from crossroute.routing.base import BalanceHints, Provider, TradeType


class TestEligibility:
    """Tests for quote eligibility rules."""

    def test_undercharged_sponsor_quote_rejected(self, make_quote):
        quote = make_quote(
            Provider.RELAY,
            user_fee_usd=Decimal("1"),
            worst_case_sponsor_cost_usd=Decimal("2"),
        )

        rejection = check_eligibility(quote)

        assert rejection is not None
        assert rejection.code == RejectionCode.SPONSOR_UNDERCHARGED
        assert "does not cover" in rejection.reason

    def test_shortfall_within_tolerance_allowed(self, make_quote):
        quote = make_quote(
            Provider.RELAY,
            user_fee_usd=Decimal("1"),
            worst_case_sponsor_cost_usd=Decimal("1.005"),
        )
        assert validate_sponsor_profitability(quote) is None

    def test_user_pays_quote_skips_sponsor_check(self, make_quote):
        quote = make_quote(Provider.DEBRIDGE, worst_case_sponsor_cost_usd=Decimal("100"))
        assert check_eligibility(quote) is None

    def test_insufficient_sol_rejected(self, make_quote):
        quote = make_quote(Provider.DEBRIDGE, solana_cost_to_user="15000000", requires_sol=True)

        rejection = check_eligibility(quote, BalanceHints(native_balance=16_000_000))

        assert rejection.code == RejectionCode.INSUFFICIENT_SOL
        assert rejection.min_lamports == 16_500_000

    def test_unknown_balance_passes_sol_check(self, make_quote):
        quote = make_quote(Provider.DEBRIDGE, solana_cost_to_user="15000000", requires_sol=True)
        assert check_eligibility(quote, BalanceHints(stable_balance=5)) is None

    def test_filter_splits_quotes(self, make_quote):
        good = make_quote(Provider.DEBRIDGE)
        bad = make_quote(
            Provider.RELAY,
            user_fee_usd=Decimal("0"),
            worst_case_sponsor_cost_usd=Decimal("5"),
        )

        result = filter_eligible([good, bad])

        assert result.eligible == [good]
        assert len(result.rejections) == 1
        assert result.rejections[0].provider == Provider.RELAY
        assert result.only_gas_rejections is False


class TestRankQuotes:
    """Tests for best-quote ranking."""

    def test_exact_tie_prefers_sponsor(self, make_quote, swap_request):
        """Equal effective receive: the sponsor-paid quote wins."""
        sponsored = make_quote(Provider.RELAY, expected_out="1000000", fees="0")
        user_pays = make_quote(Provider.DEBRIDGE, expected_out="1000100", fees="100")

        ranking = rank_quotes([user_pays, sponsored], swap_request)

        assert ranking.best.provider == Provider.RELAY
        assert ranking.tie_breaker == TieBreaker.PREFER_SPONSOR
        assert ranking.threshold == "1000"
        assert reason_chosen(ranking)["code"] == "tie_breaker_prefer_relay"

    def test_clearly_better_sponsor_needs_no_tie_break(self, make_quote, swap_request):
        """Sponsor quote with 5% higher net USD value ranks first on merit."""
        sponsored = make_quote(
            Provider.RELAY,
            user_receives_usd=Decimal("105"),
            user_pays_usd=Decimal("0"),
        )
        user_pays = make_quote(
            Provider.DEBRIDGE,
            user_receives_usd=Decimal("100"),
            user_pays_usd=Decimal("0"),
        )

        ranking = rank_quotes([user_pays, sponsored], swap_request)

        assert [q.provider for q in ranking.quotes] == [Provider.RELAY, Provider.DEBRIDGE]
        assert ranking.tie_breaker == TieBreaker.NONE
        assert reason_chosen(ranking)["code"] == "highest_effective_receive_relay"

    def test_mixed_usd_coverage_ranks_by_effective_receive(self, make_quote, swap_request):
        """Net USD only decides when every candidate carries USD values."""
        sponsored = make_quote(
            Provider.RELAY,
            expected_out="990000",
            user_receives_usd=Decimal("1000"),
            user_pays_usd=Decimal("0"),
        )
        user_pays = make_quote(Provider.DEBRIDGE, expected_out="1000000")

        ranking = rank_quotes([sponsored, user_pays], swap_request)

        assert ranking.best.provider == Provider.DEBRIDGE
        assert ranking.tie_breaker_applied is False

    def test_user_pays_wins_outside_threshold(self, make_quote, swap_request):
        sponsored = make_quote(Provider.RELAY, expected_out="990000")
        user_pays = make_quote(Provider.DEBRIDGE, expected_out="1000000")

        ranking = rank_quotes([sponsored, user_pays], swap_request)

        assert ranking.best.provider == Provider.DEBRIDGE
        assert ranking.tie_breaker_applied is False

    def test_order_independent(self, make_quote, swap_request):
        quotes = [
            make_quote(Provider.RELAY, expected_out="1000000"),
            make_quote(Provider.DEBRIDGE, expected_out="1000000"),
            make_quote(Provider.JUPITER, expected_out="1000000"),
        ]

        results = {
            tuple(q.provider for q in sort_by_best(list(perm), swap_request))
            for perm in itertools.permutations(quotes)
        }

        assert results == {(Provider.RELAY, Provider.JUPITER, Provider.DEBRIDGE)}

    def test_same_chain_specialist_promoted(self, make_quote, make_request):
        request = make_request(
            destination_chain_id=CHAIN_ID_SOLANA,
            destination_token=SOL_MINT,
        )
        relay = make_quote(Provider.RELAY, expected_out="1000500")
        jupiter = make_quote(Provider.JUPITER, expected_out="1000000")

        ranking = rank_quotes([relay, jupiter], request)

        assert ranking.best.provider == Provider.JUPITER
        assert ranking.tie_breaker == TieBreaker.PREFER_SPECIALIST
        assert reason_chosen(ranking)["code"] == "tie_breaker_prefer_jupiter"

    def test_specialist_not_promoted_outside_threshold(self, make_quote, make_request):
        request = make_request(destination_chain_id=CHAIN_ID_SOLANA, destination_token=SOL_MINT)
        relay = make_quote(Provider.RELAY, expected_out="1000500")
        jupiter = make_quote(Provider.JUPITER, expected_out="990000")

        ranking = rank_quotes([jupiter, relay], request)

        assert ranking.best.provider == Provider.RELAY

    def test_custom_threshold(self, make_quote, swap_request):
        sponsored = make_quote(Provider.RELAY, expected_out="990000")
        user_pays = make_quote(Provider.DEBRIDGE, expected_out="1000000")

        ranking = rank_quotes([sponsored, user_pays], swap_request, SelectionPolicy(close_bps=200))

        assert ranking.best.provider == Provider.RELAY
        assert ranking.tie_breaker == TieBreaker.PREFER_SPONSOR

    def test_exact_out_ranks_by_lowest_cost(self, make_quote, make_request):
        request = make_request(trade_type=TradeType.EXACT_OUT)
        cheap = make_quote(Provider.RELAY, expected_out="1000000")
        pricey = make_quote(Provider.DEBRIDGE, expected_out="1000000", fees="500")

        ranking = rank_quotes([pricey, cheap], request)

        assert ranking.best.provider == Provider.RELAY
        assert reason_chosen(ranking)["code"] == "lowest_cost_relay"

    def test_single_quote(self, make_quote, swap_request):
        ranking = rank_quotes([make_quote(Provider.DEBRIDGE)], swap_request)

        assert reason_chosen(ranking)["code"] == "single_quote_debridge"

    def test_no_quotes(self, swap_request):
        ranking = rank_quotes([], swap_request)

        assert ranking.best is None
        assert reason_chosen(ranking)["code"] == "none"
