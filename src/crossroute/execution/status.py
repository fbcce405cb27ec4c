"""Transaction and bridge status polling.

Each poller is a bounded wait with an injectable ``sleep`` so tests can
drive it without real delays.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from crossroute.history.models import SwapHistoryStatus
from crossroute.routing.relay import BridgeStatus, BridgeStatusReport
from crossroute.wallet.base import ChainReader

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

TX_POLL_TIMEOUT_MESSAGE = "Transaction polling timeout - transaction not confirmed within expected time"
BRIDGE_POLL_TIMEOUT_MESSAGE = "Bridge status polling timeout - could not determine final status"


class TransactionStatus(str, Enum):
    """Origin transaction lifecycle."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"
    FAILED = "failed"


@dataclass
class TransactionStatusResult:
    status: TransactionStatus
    signature: str
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status in (TransactionStatus.CONFIRMED, TransactionStatus.FINALIZED)


def to_history_status(status: TransactionStatus) -> SwapHistoryStatus:
    return SwapHistoryStatus(status.value)


def bridge_to_history_status(status: BridgeStatus) -> SwapHistoryStatus:
    if status == BridgeStatus.SUCCESS:
        return SwapHistoryStatus.COMPLETED
    if status in (BridgeStatus.FAILURE, BridgeStatus.REFUND):
        return SwapHistoryStatus.FAILED
    return SwapHistoryStatus.PENDING


class TransactionStatusPoller:
    """Polls a signature until it is confirmed, finalized, or fails.

    Sleeps before every check. A failing status read is logged and the
    loop continues; running out of attempts reports a failure.
    """

    def __init__(
        self,
        reader: ChainReader,
        max_attempts: int = 30,
        interval: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self.reader = reader
        self.max_attempts = max_attempts
        self.interval = interval
        self._sleep = sleep

    async def poll(self, signature: str) -> TransactionStatusResult:
        for attempt in range(1, self.max_attempts + 1):
            await self._sleep(self.interval)
            try:
                status = await self.reader.get_signature_status(signature)
            except Exception as e:
                logger.warning(f"Status check {attempt}/{self.max_attempts} for {signature} failed: {e}")
                continue

            if status is None:
                continue
            if status.err:
                return TransactionStatusResult(TransactionStatus.FAILED, signature, error=str(status.err))
            if status.confirmation_status == "finalized":
                return TransactionStatusResult(TransactionStatus.FINALIZED, signature)
            if status.confirmation_status == "confirmed":
                return TransactionStatusResult(TransactionStatus.CONFIRMED, signature)

        logger.warning(f"Gave up polling {signature} after {self.max_attempts} attempts")
        return TransactionStatusResult(TransactionStatus.FAILED, signature, error=TX_POLL_TIMEOUT_MESSAGE)


class BridgeStatusPoller:
    """Polls destination settlement until success, failure, or refund.

    When attempts run out one final check is made; its result is returned
    as the last known status, or a failure if that check errors too.
    """

    def __init__(
        self,
        fetch_status: Callable[[str], Awaitable[BridgeStatusReport]],
        max_attempts: int = 60,
        interval: float = 3.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self.fetch_status = fetch_status
        self.max_attempts = max_attempts
        self.interval = interval
        self._sleep = sleep

    async def poll(self, request_id: str) -> BridgeStatusReport:
        for attempt in range(1, self.max_attempts + 1):
            try:
                report = await self.fetch_status(request_id)
                if report.status.is_terminal:
                    return report
            except Exception as e:
                logger.warning(f"Bridge status check {attempt}/{self.max_attempts} for {request_id} failed: {e}")

            if attempt < self.max_attempts:
                await self._sleep(self.interval)

        try:
            return await self.fetch_status(request_id)
        except Exception as e:
            logger.error(f"Final bridge status check for {request_id} failed: {e}")
            return BridgeStatusReport(status=BridgeStatus.FAILURE, error=BRIDGE_POLL_TIMEOUT_MESSAGE)
