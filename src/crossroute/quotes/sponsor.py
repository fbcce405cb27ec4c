"""Worst-case sponsor cost estimation and user fee selection.

Only the sponsor-paying provider uses these. The sponsor fronts the user's
origin-chain gas and rent, so the fee charged to the user has to cover the
worst plausible cost of filling the order.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal
from typing import Optional

from crossroute.chains import CHAIN_ID_SOLANA, LAMPORTS_PER_SOL
from crossroute.config import Settings
from crossroute.routing.base import SwapRequest

logger = logging.getLogger(__name__)

STABLE_FEE_SYMBOL = "USDC"
NATIVE_FEE_SYMBOL = "SOL"
STABLE_FEE_DECIMALS = 6


@dataclass(frozen=True)
class SponsorPolicy:
    """Business constants for sponsor cost coverage."""

    tx_lamports: int = 15_000_000
    rent_lamports: int = 2_039_280
    price_drift: Decimal = Decimal("0.02")
    failure_gas_multiplier: int = 2
    fee_margin: Decimal = Decimal("0.20")
    sol_fee_buffer: Decimal = Decimal("0.10")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SponsorPolicy":
        return cls(
            tx_lamports=settings.estimated_solana_tx_lamports,
            rent_lamports=settings.token_account_rent_lamports,
            price_drift=settings.price_drift_buffer,
            failure_gas_multiplier=settings.failure_gas_multiplier,
            fee_margin=settings.fee_margin,
            sol_fee_buffer=settings.sol_fee_buffer,
        )


@dataclass(frozen=True)
class WorstCaseCosts:
    """Upper-bound sponsor cost breakdown in USD."""

    gas_usd: Decimal
    rent_usd: Decimal
    token_loss_usd: Decimal
    drift_buffer_usd: Decimal
    failure_buffer_usd: Decimal

    @property
    def total(self) -> Decimal:
        return (
            self.gas_usd
            + self.rent_usd
            + self.token_loss_usd
            + self.drift_buffer_usd
            + self.failure_buffer_usd
        )


@dataclass(frozen=True)
class FeeSelection:
    """What the user is charged, and in which currency."""

    user_fee: str
    user_fee_currency: str
    requires_sol: bool
    user_fee_usd: Decimal


def lamports_to_usd(lamports: int, sol_price_usd: Decimal) -> Decimal:
    return Decimal(lamports) / LAMPORTS_PER_SOL * sol_price_usd


def _ceil(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_CEILING))


def calculate_worst_case_costs(
    request: SwapRequest,
    expected_out_usd: Decimal,
    sol_price_usd: Decimal,
    fee_payer: Optional[str],
    account_exists: Optional[bool] = None,
    transfer_fee_bps: Optional[int] = None,
    policy: SponsorPolicy = SponsorPolicy(),
) -> WorstCaseCosts:
    """Compute the worst-case sponsor cost for a quote.

    Args:
        request: The swap request
        expected_out_usd: USD value of the quoted destination output
        sol_price_usd: SOL/USD price
        fee_payer: Address paying origin fees and rent
        account_exists: Whether the fee payer already holds a token account
            for the origin token. None means unknown and rent is assumed.
        transfer_fee_bps: Transfer fee of a fee-bearing origin token, if any
        policy: Sponsor constants

    Raises:
        ValueError: on a non-positive price or negative USD value
    """
    if sol_price_usd <= 0:
        raise ValueError(f"Invalid SOL price: {sol_price_usd}")
    if expected_out_usd < 0:
        raise ValueError(f"Invalid expected output USD value: {expected_out_usd}")

    origin_is_solana = request.origin_chain_id == CHAIN_ID_SOLANA
    gas_usd = lamports_to_usd(policy.tx_lamports, sol_price_usd)

    if not origin_is_solana or fee_payer == request.user_address or account_exists is True:
        rent_usd = Decimal("0")
    else:
        rent_usd = lamports_to_usd(policy.rent_lamports, sol_price_usd)

    token_loss_usd = Decimal("0")
    if origin_is_solana and expected_out_usd > 0 and transfer_fee_bps and 0 < transfer_fee_bps < 10_000:
        fee_rate = Decimal(transfer_fee_bps) / 10_000
        input_usd = expected_out_usd / (1 - fee_rate)
        token_loss_usd = input_usd * fee_rate

    drift_buffer_usd = expected_out_usd * policy.price_drift if expected_out_usd > 0 else Decimal("0")
    failure_buffer_usd = gas_usd * policy.failure_gas_multiplier

    return WorstCaseCosts(
        gas_usd=gas_usd,
        rent_usd=rent_usd,
        token_loss_usd=token_loss_usd,
        drift_buffer_usd=drift_buffer_usd,
        failure_buffer_usd=failure_buffer_usd,
    )


def select_user_fee(
    worst_case_usd: Decimal,
    sol_price_usd: Decimal,
    native_balance: Optional[int] = None,
    stable_balance: Optional[int] = None,
    policy: SponsorPolicy = SponsorPolicy(),
) -> FeeSelection:
    """Pick the fee currency and amount that keeps the sponsor whole.

    Prefers the stablecoin when the known balance covers the margined
    cost, otherwise charges SOL with an extra buffer. The SOL fee is
    returned even when the balance is unknown or too small; eligibility
    filtering rejects it downstream.
    """
    required_usd = worst_case_usd * (1 + policy.fee_margin)

    stable_raw = _ceil(required_usd * 10**STABLE_FEE_DECIMALS)
    if stable_balance is not None and stable_balance >= stable_raw:
        return FeeSelection(
            user_fee=str(stable_raw),
            user_fee_currency=STABLE_FEE_SYMBOL,
            requires_sol=False,
            user_fee_usd=required_usd,
        )

    lamports = _ceil(required_usd / sol_price_usd * LAMPORTS_PER_SOL)
    lamports_with_buffer = _ceil(Decimal(lamports) * (1 + policy.sol_fee_buffer))

    if native_balance is None or native_balance < lamports_with_buffer:
        logger.debug(
            f"SOL balance {native_balance} below fee {lamports_with_buffer} lamports; "
            f"returning SOL fee for eligibility to judge"
        )

    return FeeSelection(
        user_fee=str(lamports_with_buffer),
        user_fee_currency=NATIVE_FEE_SYMBOL,
        requires_sol=True,
        user_fee_usd=required_usd,
    )
