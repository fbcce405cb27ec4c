"""Interfaces for the external signing and chain-read capabilities.

The engine never holds key material. Signing and sending are supplied by
the caller (a browser wallet bridge, a custody service, a test double).
Transactions cross this boundary as base64-encoded strings.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class SignatureStatus:
    """On-chain status of a submitted transaction.

    Attributes:
        confirmation_status: "processed", "confirmed", "finalized", or None
        slot: Slot the transaction landed in
        err: Chain-reported error, None on success
    """

    confirmation_status: Optional[str] = None
    slot: Optional[int] = None
    err: Any = None


class TransactionSender(ABC):
    """Signs and sends transactions on behalf of the user."""

    @abstractmethod
    async def sign_transaction(self, transaction: str) -> str:
        """Sign a base64 transaction and return the signed base64 transaction.

        Raises:
            UserRejectedError: if the user declines to sign
        """
        pass

    @abstractmethod
    async def send_transaction(self, transaction: str, skip_preflight: bool = False) -> str:
        """Sign (if needed) and broadcast a base64 transaction.

        Returns:
            Transaction signature

        Raises:
            UserRejectedError: if the user declines to sign
        """
        pass


class ChainReader(ABC):
    """Read-only chain access: balances, accounts, transaction status."""

    @abstractmethod
    async def get_native_balance(self, address: str) -> int:
        """Native balance in smallest units."""
        pass

    @abstractmethod
    async def get_token_balance(self, address: str, token: str) -> int:
        """Token balance in smallest units; 0 when the account does not exist."""
        pass

    @abstractmethod
    async def account_exists(self, address: str, token: str) -> bool:
        """Whether ``address`` already holds a token account for ``token``."""
        pass

    async def get_transfer_fee_bps(self, token: str) -> Optional[int]:
        """Transfer fee of a fee-bearing token, in basis points."""
        return None

    @abstractmethod
    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        """Current status of a transaction, or None if not yet seen."""
        pass


class RpcError(Exception):
    """Raised when a JSON-RPC call fails or returns an error object."""

    def __init__(self, method: str, message: str):
        self.method = method
        super().__init__(f"{method}: {message}")
