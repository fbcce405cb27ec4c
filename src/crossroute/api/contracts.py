"""Request contracts for the HTTP API.

Field names are camelCase on the wire; either form is accepted on input.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from crossroute.routing.base import BalanceHints, SwapRequest, TradeType


def sanitize_amount(value) -> str:
    """Reduce an amount to a bare integer string in smallest units."""
    digits = re.sub(r"[^0-9]", "", str(value))
    return digits.lstrip("0") or "0"


def _parse_balance(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(sanitize_amount(value))


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuoteRequest(CamelModel):
    """Request for quotes across every applicable provider."""

    origin_chain_id: int = Field(..., description="Origin chain ID")
    origin_token: str = Field(..., min_length=1, description="Origin token address or mint")
    destination_chain_id: int = Field(..., description="Destination chain ID")
    destination_token: str = Field(..., min_length=1, description="Destination token address or mint")
    amount: str = Field(..., description="Raw amount in smallest units")
    user_address: str = Field(..., min_length=1, description="User wallet address")
    recipient_address: Optional[str] = Field(None, description="Recipient (defaults to user)")
    trade_type: TradeType = Field(default=TradeType.EXACT_IN, description="exact_in or exact_out")
    slippage_tolerance: Optional[str] = Field(None, description="Slippage tolerance in basis points")
    refund_to: Optional[str] = Field(None, description="Refund address on failure")
    user_sol_balance: Optional[str] = Field(
        None, alias="userSOLBalance", description="Known SOL balance in lamports"
    )
    user_solana_usdc_balance: Optional[str] = Field(
        None, alias="userSolanaUSDCBalance", description="Known Solana USDC balance (raw)"
    )

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v) -> str:
        """Strip formatting and require a positive amount."""
        amount = sanitize_amount(v)
        if amount == "0":
            raise ValueError("Amount must be greater than zero")
        return amount

    @field_validator("user_sol_balance", "user_solana_usdc_balance", mode="before")
    @classmethod
    def validate_balance(cls, v) -> Optional[str]:
        if v is None or v == "":
            return None
        return sanitize_amount(v)

    def to_swap_request(self) -> SwapRequest:
        return SwapRequest(
            origin_chain_id=self.origin_chain_id,
            origin_token=self.origin_token,
            destination_chain_id=self.destination_chain_id,
            destination_token=self.destination_token,
            amount=self.amount,
            user_address=self.user_address,
            trade_type=self.trade_type,
            recipient_address=self.recipient_address or self.user_address,
            slippage_tolerance=self.slippage_tolerance,
            refund_to=self.refund_to,
        )

    def to_balance_hints(self) -> Optional[BalanceHints]:
        """Balances supplied by the caller, or None when neither is known."""
        native = _parse_balance(self.user_sol_balance)
        stable = _parse_balance(self.user_solana_usdc_balance)
        if native is None and stable is None:
            return None
        return BalanceHints(native_balance=native, stable_balance=stable)


class JupiterExecuteRequest(CamelModel):
    """Signed Ultra order to forward for execution.

    Both fields are checked in the route so the error body matches the
    proxy's own error shape.
    """

    signed_transaction: Optional[str] = Field(None, description="Base64 signed transaction")
    request_id: Optional[str] = Field(None, description="Ultra order request ID")
