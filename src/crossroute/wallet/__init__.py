"""External signing and chain-read capabilities."""

from crossroute.wallet.base import ChainReader, RpcError, SignatureStatus, TransactionSender
from crossroute.wallet.solana_rpc import SolanaRpcClient

__all__ = [
    "ChainReader",
    "RpcError",
    "SignatureStatus",
    "SolanaRpcClient",
    "TransactionSender",
]
