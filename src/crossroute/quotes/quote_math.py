"""Pure quote math: cost to user, effective receive, net USD value.

All raw-amount arithmetic uses Python ints. USD values are Decimals and are
never mixed into raw destination-unit arithmetic.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from crossroute.chains import LAMPORTS_PER_SOL
from crossroute.routing.base import FeePayer, NormalizedQuote, Provider

logger = logging.getLogger(__name__)

DEFAULT_SOL_PRICE_USD = Decimal("150")
MIN_SOL_BUFFER_PERCENT = 110


def to_int(value: Union[str, int, None]) -> Optional[int]:
    """Parse a raw amount into an int.

    Accepts plain integer strings, ints, and scientific notation
    (``"1.5e6"``); fractional parts are truncated. Returns None for
    missing or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        logger.warning(f"Unparseable raw amount: {text!r}")
        return None
    if not parsed.is_finite():
        return None
    return int(parsed)


def cost_to_user(quote: NormalizedQuote) -> int:
    """Cost deducted from the destination output, in destination units.

    A fee denominated in a different currency from the quote's output
    currency is settled out-of-band and contributes zero.
    """
    if quote.fee_payer == FeePayer.SPONSOR:
        if quote.user_fee_currency is not None and quote.user_fee_currency != quote.fee_currency:
            return 0
        return to_int(quote.user_fee) or 0
    if (
        quote.user_fee_currency is not None
        and quote.fee_currency is not None
        and quote.user_fee_currency != quote.fee_currency
    ):
        return 0
    return to_int(quote.fees) or 0


def effective_receive(quote: NormalizedQuote) -> int:
    """What the user nets on the destination chain, never negative."""
    out = to_int(quote.expected_out) or 0
    return max(0, out - cost_to_user(quote))


def origin_gas_usd(quote: NormalizedQuote) -> Decimal:
    """USD value of SOL the user spends on the origin chain.

    Sponsor-paid quotes carry their SOL fee in ``user_pays_usd`` already.
    """
    if not quote.requires_sol or quote.fee_payer == FeePayer.SPONSOR:
        return Decimal("0")
    lamports = to_int(quote.solana_cost_to_user)
    if not lamports:
        return Decimal("0")
    price = quote.sol_price_usd if quote.sol_price_usd is not None else DEFAULT_SOL_PRICE_USD
    return Decimal(lamports) / LAMPORTS_PER_SOL * price


def net_user_value_usd(quote: NormalizedQuote) -> Decimal:
    """receives - pays - origin chain gas, in USD."""
    receives = quote.user_receives_usd or Decimal("0")
    pays = quote.user_pays_usd or Decimal("0")
    return receives - pays - origin_gas_usd(quote)


def min_sol_required(
    quote: NormalizedQuote,
    buffer_percent: int = MIN_SOL_BUFFER_PERCENT,
) -> Optional[int]:
    """Lamports the user must hold for this quote, or None if no SOL is needed."""
    if quote.provider in (Provider.DEBRIDGE, Provider.JUPITER) and quote.solana_cost_to_user:
        cost = to_int(quote.solana_cost_to_user)
        if cost is None:
            return None
        return cost * buffer_percent // 100
    if quote.provider == Provider.RELAY and quote.requires_sol and quote.user_fee:
        return to_int(quote.user_fee)
    return None


def has_enough_sol(
    quote: NormalizedQuote,
    balance_lamports: int,
    buffer_percent: int = MIN_SOL_BUFFER_PERCENT,
) -> bool:
    required = min_sol_required(quote, buffer_percent)
    if required is None:
        return True
    return balance_lamports >= required
