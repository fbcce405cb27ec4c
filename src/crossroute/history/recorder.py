"""Best-effort swap history writes for the execution flows.

Persistence never blocks or fails an execution: every error is logged and
swallowed.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from crossroute.chains import format_raw_amount, get_token_decimals, get_token_symbol
from crossroute.history.database import get_history_database
from crossroute.history.models import SwapHistoryStatus
from crossroute.history.repository import SwapHistoryRepository
from crossroute.routing.base import NormalizedQuote, SwapRequest

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]

TERMINAL_STATUSES = (SwapHistoryStatus.COMPLETED, SwapHistoryStatus.FAILED, SwapHistoryStatus.FINALIZED)


def build_record_fields(
    quote: NormalizedQuote,
    request: SwapRequest,
    transaction_hash: Optional[str],
    request_id: Optional[str] = None,
    order_id: Optional[str] = None,
) -> dict:
    """Map a quote and request onto SwapRecord columns."""
    origin_decimals = get_token_decimals(request.origin_chain_id, request.origin_token, default=6)
    return {
        "user_address": request.user_address,
        "provider": quote.provider.value,
        "origin_chain_id": request.origin_chain_id,
        "origin_token": request.origin_token,
        "origin_token_symbol": get_token_symbol(request.origin_chain_id, request.origin_token) or "UNKNOWN",
        "origin_token_amount": request.amount,
        "origin_token_amount_formatted": format_raw_amount(
            request.amount, origin_decimals, max_decimals=origin_decimals
        ),
        "destination_chain_id": request.destination_chain_id,
        "destination_token": request.destination_token,
        "destination_token_symbol": (
            get_token_symbol(request.destination_chain_id, request.destination_token) or "UNKNOWN"
        ),
        "destination_token_amount": quote.expected_out,
        "destination_token_amount_formatted": quote.expected_out_formatted,
        "recipient_address": request.recipient,
        "transaction_hash": transaction_hash,
        "request_id": request_id,
        "order_id": order_id,
        "fees": quote.fees,
        "fee_currency": quote.fee_currency,
        "fee_payer": quote.fee_payer.value,
        "sponsor_cost": quote.sponsor_cost,
        "user_fee": quote.user_fee,
        "user_fee_currency": quote.user_fee_currency,
        "user_fee_usd": quote.user_fee_usd,
        "extra": {
            "quote_expiry_at": quote.expiry_at,
            "time_estimate_seconds": quote.time_estimate_seconds,
            "slippage_tolerance": quote.slippage_tolerance,
        },
    }


class SwapHistoryRecorder:
    """Creates and updates swap records without ever raising."""

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self._session_factory = session_factory

    def _sessions(self) -> SessionFactory:
        return self._session_factory or get_history_database().session_factory

    async def record_submission(
        self,
        quote: NormalizedQuote,
        request: SwapRequest,
        transaction_hash: Optional[str],
        request_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> Optional[str]:
        """Create a pending record. Returns its id, or None if the write failed."""
        try:
            async with self._sessions()() as session:
                repo = SwapHistoryRepository(session)
                record = await repo.create_record(
                    **build_record_fields(quote, request, transaction_hash, request_id, order_id)
                )
                await session.commit()
                logger.info(f"Recorded {quote.provider.value} swap {record.id} tx={transaction_hash}")
                return record.id
        except Exception as e:
            logger.error(f"Failed to create swap history record: {e}")
            return None

    async def update_status(
        self,
        record_id: Optional[str],
        status: SwapHistoryStatus,
        transaction_hash: Optional[str] = None,
        destination_transaction_hash: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        if record_id is None:
            return
        completed_at = datetime.now(timezone.utc) if status in TERMINAL_STATUSES else None
        try:
            async with self._sessions()() as session:
                repo = SwapHistoryRepository(session)
                await repo.update_status(
                    record_id,
                    status,
                    transaction_hash=transaction_hash,
                    destination_transaction_hash=destination_transaction_hash,
                    error_message=error_message,
                    completed_at=completed_at,
                )
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to update swap history record {record_id}: {e}")


class NullHistoryRecorder(SwapHistoryRecorder):
    """Recorder that stores nothing."""

    async def record_submission(self, quote, request, transaction_hash, request_id=None, order_id=None):
        return None

    async def update_status(self, record_id, status, **kwargs) -> None:
        return None
