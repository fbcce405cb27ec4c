"""User-facing execution messages."""

from typing import Optional

from crossroute.chains import CHAIN_ID_SOLANA, explorer_tx_url
from crossroute.errors import UserRejectedError

NETWORK_ERROR = "Network error. Please check your connection and try again."
INSUFFICIENT_BALANCE = "Insufficient balance. Please ensure you have enough funds to complete this transaction."
USER_CANCELLED = "Transaction cancelled by user."
TIMED_OUT = "Transaction timed out. Please try again."
QUOTE_UNAVAILABLE = "Unable to get quote for this swap. Please try a different amount or destination."
INVALID_PARAMETERS = "Invalid transaction parameters. Please check your inputs and try again."
UNEXPECTED_ERROR = "An unexpected error occurred. Please try again."

# Checked in order; the first match wins
_PATTERNS = (
    (("network", "fetch", "connection", "timeout"), NETWORK_ERROR),
    (("insufficient", "balance", "lamports"), INSUFFICIENT_BALANCE),
    (("user rejected", "user denied", "cancelled", "canceled"), USER_CANCELLED),
    (("expired", "stale"), TIMED_OUT),
    (("quote", "no route"), QUOTE_UNAVAILABLE),
    (("invalid", "validation", "required"), INVALID_PARAMETERS),
)


def user_friendly_message(error, provider: Optional[str] = None) -> str:
    """Translate an error into a message safe to show the user.

    Distinguishes a rejected signature from network failures and from
    on-chain failures; unrecognised messages are returned as-is.
    """
    if isinstance(error, str):
        return error
    if isinstance(error, UserRejectedError):
        return USER_CANCELLED
    if not isinstance(error, BaseException):
        return UNEXPECTED_ERROR

    text = str(error)
    lowered = text.lower()
    for markers, message in _PATTERNS:
        if any(marker in lowered for marker in markers):
            return message
    return text or UNEXPECTED_ERROR


def explorer_url(signature: str, chain_id: int = CHAIN_ID_SOLANA) -> str:
    return explorer_tx_url(signature, chain_id)


def short_signature(signature: str) -> str:
    return f"{signature[:8]}..."
