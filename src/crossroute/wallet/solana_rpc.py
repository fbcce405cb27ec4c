"""Solana JSON-RPC reads over httpx."""

import logging
from typing import Any, Optional

import httpx

from crossroute.utils.http import http_client
from crossroute.wallet.base import ChainReader, RpcError, SignatureStatus

logger = logging.getLogger(__name__)

SOLANA_MAINNET_RPC = "https://api.mainnet-beta.solana.com"


class SolanaRpcClient(ChainReader):
    """ChainReader backed by a Solana RPC node."""

    def __init__(
        self,
        rpc_url: str = SOLANA_MAINNET_RPC,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._client = client

    async def _call(self, method: str, params: list) -> Any:
        async with http_client(self._client, self.timeout) as client:
            response = await client.post(
                self.rpc_url,
                json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
            )
        if response.status_code != 200:
            raise RpcError(method, f"HTTP {response.status_code}")
        data = response.json()
        if "error" in data:
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise RpcError(method, message)
        return data.get("result")

    async def _token_accounts(self, owner: str, mint: str) -> list[dict]:
        result = await self._call(
            "getTokenAccountsByOwner",
            [owner, {"mint": mint}, {"encoding": "jsonParsed"}],
        )
        return (result or {}).get("value") or []

    async def get_native_balance(self, address: str) -> int:
        result = await self._call("getBalance", [address])
        return int((result or {}).get("value", 0))

    async def get_token_balance(self, address: str, token: str) -> int:
        total = 0
        for account in await self._token_accounts(address, token):
            info = account.get("account", {}).get("data", {}).get("parsed", {}).get("info", {})
            amount = info.get("tokenAmount", {}).get("amount")
            if amount is not None:
                total += int(amount)
        return total

    async def account_exists(self, address: str, token: str) -> bool:
        return len(await self._token_accounts(address, token)) > 0

    async def get_transfer_fee_bps(self, token: str) -> Optional[int]:
        """Read the transfer fee extension of a Token-2022 mint."""
        result = await self._call("getAccountInfo", [token, {"encoding": "jsonParsed"}])
        value = (result or {}).get("value")
        if not value:
            return None
        data = value.get("data")
        if not isinstance(data, dict):
            return None
        extensions = data.get("parsed", {}).get("info", {}).get("extensions") or []
        for extension in extensions:
            if extension.get("extension") != "transferFeeConfig":
                continue
            state = extension.get("state", {})
            fee = state.get("newerTransferFee") or state.get("olderTransferFee") or {}
            bps = fee.get("transferFeeBasisPoints")
            return int(bps) if bps is not None else None
        return None

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        result = await self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        values = (result or {}).get("value") or []
        status = values[0] if values else None
        if not status:
            return None
        return SignatureStatus(
            confirmation_status=status.get("confirmationStatus"),
            slot=status.get("slot"),
            err=status.get("err"),
        )

