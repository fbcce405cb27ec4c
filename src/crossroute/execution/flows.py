"""Per-provider execution flows.

Each flow takes an already pre-flighted quote, submits its transaction
through the caller's ``TransactionSender``, polls the origin transaction,
and reports a terminal ``ExecutionOutcome``. History writes go through a
recorder that never raises.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, ClassVar, Optional

from crossroute.errors import (
    CrossrouteError,
    ProviderError,
    SettlementError,
    SubmissionError,
    UserRejectedError,
    ValidationError,
)
from crossroute.execution.messages import explorer_url, short_signature, user_friendly_message
from crossroute.execution.retry import DEFAULT_ATTEMPTS, DEFAULT_DELAY_SECONDS, with_retry
from crossroute.execution.status import (
    BridgeStatusPoller,
    TransactionStatus,
    TransactionStatusPoller,
    TransactionStatusResult,
    bridge_to_history_status,
    to_history_status,
)
from crossroute.history.recorder import NullHistoryRecorder, SwapHistoryRecorder
from crossroute.quotes.eligibility import SPONSOR_FEE_TOLERANCE_USD, validate_sponsor_profitability
from crossroute.routing.base import (
    DebridgePayload,
    JupiterPayload,
    NormalizedQuote,
    Provider,
    RelayPayload,
    SwapRequest,
)
from crossroute.routing.jupiter import JupiterProvider
from crossroute.routing.relay import BridgeStatus
from crossroute.wallet.base import TransactionSender

logger = logging.getLogger(__name__)

NO_RELAY_TRANSACTION = "Relay did not return a transaction. Please try again or use a different route."
NO_DEBRIDGE_TRANSACTION = "deBridge did not return a Solana transaction. Please try again."
INVALID_JUPITER_PAYLOAD = "Invalid Jupiter quote payload."


class ExecutionEvent(str, Enum):
    """Status transitions reported to the caller during execution."""

    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"
    FAILED = "failed"
    BRIDGING = "bridging"
    SETTLED = "settled"


EventCallback = Callable[[ExecutionEvent, dict], Any]


@dataclass
class ExecutionOutcome:
    """Terminal result of executing a quote."""

    success: bool
    provider: Provider
    message: str
    status: Optional[TransactionStatus] = None
    signature: Optional[str] = None
    explorer_url: Optional[str] = None
    record_id: Optional[str] = None
    bridge_status: Optional[BridgeStatus] = None
    destination_tx_hash: Optional[str] = None
    error: Optional[CrossrouteError] = None
    quote: Optional[NormalizedQuote] = None
    events: list[ExecutionEvent] = field(default_factory=list)


class EventEmitter:
    """Forwards events to an optional sync or async callback.

    Callback errors are logged and dropped.
    """

    def __init__(self, callback: Optional[EventCallback] = None):
        self.callback = callback
        self.history: list[ExecutionEvent] = []

    async def emit(self, event: ExecutionEvent, **data: Any) -> None:
        self.history.append(event)
        if self.callback is None:
            return
        try:
            result = self.callback(event, data)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Execution event callback failed on {event.value}: {e}")


class ExecutionFlow(ABC):
    """Base class for provider execution flows."""

    provider: ClassVar[Provider]
    payload_type: ClassVar[type]

    def __init__(
        self,
        sender: TransactionSender,
        tx_poller: TransactionStatusPoller,
        recorder: Optional[SwapHistoryRecorder] = None,
        retry_attempts: int = DEFAULT_ATTEMPTS,
        retry_delay: float = DEFAULT_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.sender = sender
        self.tx_poller = tx_poller
        self.recorder = recorder if recorder is not None else NullHistoryRecorder()
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep

    def can_execute(self, quote: NormalizedQuote) -> bool:
        return quote.provider == self.provider and isinstance(quote.payload, self.payload_type)

    @abstractmethod
    async def execute(
        self,
        quote: NormalizedQuote,
        request: SwapRequest,
        events: EventEmitter,
    ) -> ExecutionOutcome:
        pass

    async def _retry(self, fn):
        return await with_retry(fn, attempts=self.retry_attempts, delay=self.retry_delay, sleep=self._sleep)

    async def _send(self, transaction: str) -> str:
        """Send with retries; wraps failures in SubmissionError."""
        try:
            return await self._retry(lambda: self.sender.send_transaction(transaction, skip_preflight=False))
        except UserRejectedError:
            raise
        except Exception as e:
            logger.error(f"{self.provider.value} send failed: {e}")
            raise SubmissionError(str(e), user_friendly_message(e, self.provider.value)) from e

    def _failure(
        self,
        quote: NormalizedQuote,
        error: CrossrouteError,
        message: Optional[str] = None,
        **fields: Any,
    ) -> ExecutionOutcome:
        return ExecutionOutcome(
            success=False,
            provider=self.provider,
            message=message or error.user_message,
            error=error,
            quote=quote,
            **fields,
        )

    async def _submission_failed(
        self,
        quote: NormalizedQuote,
        error: Exception,
        events: EventEmitter,
    ) -> ExecutionOutcome:
        if not isinstance(error, CrossrouteError):
            error = SubmissionError(str(error), user_friendly_message(error, self.provider.value))
        await events.emit(ExecutionEvent.FAILED, error=error.user_message)
        return self._failure(quote, error, status=TransactionStatus.FAILED)

    async def _poll_and_record(
        self,
        signature: str,
        record_id: Optional[str],
        events: EventEmitter,
    ) -> TransactionStatusResult:
        """Poll the origin transaction, report the transition, and record it."""
        result = await self.tx_poller.poll(signature)
        if result.status == TransactionStatus.FINALIZED:
            await events.emit(ExecutionEvent.FINALIZED, signature=signature)
        elif result.status == TransactionStatus.CONFIRMED:
            await events.emit(ExecutionEvent.CONFIRMED, signature=signature)
        else:
            await events.emit(ExecutionEvent.FAILED, signature=signature, error=result.error)

        await self.recorder.update_status(
            record_id,
            to_history_status(result.status),
            transaction_hash=signature,
            error_message=result.error,
        )
        return result

    def _settlement_failed(
        self,
        quote: NormalizedQuote,
        result: TransactionStatusResult,
        record_id: Optional[str],
    ) -> ExecutionOutcome:
        reason = result.error or "Transaction failed"
        error = SettlementError(reason, user_friendly_message(reason), signature=result.signature)
        return self._failure(
            quote,
            error,
            status=TransactionStatus.FAILED,
            signature=result.signature,
            explorer_url=explorer_url(result.signature),
            record_id=record_id,
        )


class RelayFlow(ExecutionFlow):
    """Sponsor-paying flow: re-quote, revalidate, send, poll, then track the bridge."""

    provider = Provider.RELAY
    payload_type = RelayPayload

    def __init__(
        self,
        sender: TransactionSender,
        tx_poller: TransactionStatusPoller,
        requote: Callable[[NormalizedQuote, SwapRequest], Awaitable[NormalizedQuote]],
        bridge_poller: Optional[BridgeStatusPoller] = None,
        recorder: Optional[SwapHistoryRecorder] = None,
        sponsor_fee_tolerance_usd: Decimal = SPONSOR_FEE_TOLERANCE_USD,
        **kwargs: Any,
    ):
        super().__init__(sender, tx_poller, recorder, **kwargs)
        self.requote = requote
        self.bridge_poller = bridge_poller
        self.sponsor_fee_tolerance_usd = sponsor_fee_tolerance_usd

    async def _fresh_quote(self, quote: NormalizedQuote, request: SwapRequest) -> NormalizedQuote:
        fresh = await self.requote(quote, request)
        if fresh.provider != Provider.RELAY:
            raise ProviderError(Provider.RELAY.value, "Relay quote no longer available")
        reason = validate_sponsor_profitability(fresh, self.sponsor_fee_tolerance_usd)
        if reason:
            raise ValidationError(f"Quote no longer valid: {reason}")
        return fresh

    async def execute(
        self,
        quote: NormalizedQuote,
        request: SwapRequest,
        events: EventEmitter,
    ) -> ExecutionOutcome:
        # Relay revalidates at fill time; submit against a fresh quote
        try:
            quote = await self._retry(lambda: self._fresh_quote(quote, request))
        except Exception as e:
            logger.warning(f"Relay re-quote failed: {e}")
            if isinstance(e, CrossrouteError):
                error, message = e, e.user_message
            else:
                message = user_friendly_message(e, self.provider.value)
                error = ProviderError(self.provider.value, str(e))
            await events.emit(ExecutionEvent.FAILED, error=message)
            return self._failure(quote, error, message=message)

        payload: RelayPayload = quote.payload
        if not payload.serialized_transaction:
            error = SubmissionError(NO_RELAY_TRANSACTION)
            await events.emit(ExecutionEvent.FAILED, error=NO_RELAY_TRANSACTION)
            return self._failure(quote, error, status=TransactionStatus.FAILED)

        try:
            signature = await self._send(payload.serialized_transaction)
        except Exception as e:
            return await self._submission_failed(quote, e, events)

        await events.emit(ExecutionEvent.SUBMITTED, signature=signature, request_id=payload.request_id)
        record_id = await self.recorder.record_submission(
            quote, request, signature, request_id=payload.request_id
        )

        result = await self._poll_and_record(signature, record_id, events)
        if not result.succeeded:
            return self._settlement_failed(quote, result, record_id)

        link = explorer_url(signature)
        base = {
            "status": result.status,
            "signature": signature,
            "explorer_url": link,
            "record_id": record_id,
            "quote": quote,
        }

        if payload.request_id and self.bridge_poller is not None:
            return await self._track_bridge(payload.request_id, record_id, events, base)

        if result.status == TransactionStatus.FINALIZED:
            message = f"Transaction finalized. View: {link}"
        else:
            message = f"Transaction confirmed. View: {link}"
        return ExecutionOutcome(success=True, provider=self.provider, message=message, **base)

    async def _track_bridge(
        self,
        request_id: str,
        record_id: Optional[str],
        events: EventEmitter,
        base: dict,
    ) -> ExecutionOutcome:
        signature = base["signature"]
        link = base["explorer_url"]
        await events.emit(ExecutionEvent.BRIDGING, request_id=request_id)

        try:
            report = await self.bridge_poller.poll(request_id)
        except Exception as e:
            logger.error(f"Error monitoring Relay bridge status for {request_id}: {e}")
            return ExecutionOutcome(
                success=True,
                provider=self.provider,
                message=f"Transaction confirmed. Bridge in progress... View: {link}",
                **base,
            )

        error_message = report.error
        if error_message is None and report.status in (BridgeStatus.FAILURE, BridgeStatus.REFUND):
            error_message = "Bridge failed or refunded"
        await self.recorder.update_status(
            record_id,
            bridge_to_history_status(report.status),
            destination_transaction_hash=report.destination_tx_hash,
            error_message=error_message,
        )

        destination = report.destination_tx_hash
        fields = dict(base, bridge_status=report.status, destination_tx_hash=destination)

        if report.status == BridgeStatus.SUCCESS:
            await events.emit(ExecutionEvent.SETTLED, request_id=request_id, destination_tx_hash=destination)
            if destination:
                message = (
                    f"Bridge completed successfully! Origin: {short_signature(signature)} "
                    f"Destination: {short_signature(destination)}"
                )
            else:
                message = f"Bridge completed successfully! Origin tx: {signature}"
            return ExecutionOutcome(success=True, provider=self.provider, message=message, **fields)

        if report.status == BridgeStatus.REFUND:
            message = "Bridge failed and funds were refunded. Check your wallet."
            error = SettlementError(error_message, message, signature=signature, refunded=True)
            await events.emit(ExecutionEvent.FAILED, request_id=request_id, error=message)
            fields["status"] = TransactionStatus.FAILED
            return ExecutionOutcome(success=False, provider=self.provider, message=message, error=error, **fields)

        if report.status == BridgeStatus.FAILURE:
            message = report.error or "Bridge failed. Check transaction status."
            error = SettlementError(error_message, message, signature=signature)
            await events.emit(ExecutionEvent.FAILED, request_id=request_id, error=message)
            fields["status"] = TransactionStatus.FAILED
            return ExecutionOutcome(success=False, provider=self.provider, message=message, error=error, **fields)

        return ExecutionOutcome(
            success=True,
            provider=self.provider,
            message=f"Origin transaction confirmed. Bridge in progress... View: {link}",
            **fields,
        )


class DebridgeFlow(ExecutionFlow):
    """User-pays flow: send the embedded order transaction and poll the origin chain."""

    provider = Provider.DEBRIDGE
    payload_type = DebridgePayload

    async def execute(
        self,
        quote: NormalizedQuote,
        request: SwapRequest,
        events: EventEmitter,
    ) -> ExecutionOutcome:
        payload: DebridgePayload = quote.payload
        if not payload.serialized_transaction:
            await events.emit(ExecutionEvent.FAILED, error=NO_DEBRIDGE_TRANSACTION)
            return self._failure(quote, SubmissionError(NO_DEBRIDGE_TRANSACTION), status=TransactionStatus.FAILED)

        try:
            signature = await self._send(payload.serialized_transaction)
        except Exception as e:
            return await self._submission_failed(quote, e, events)

        await events.emit(ExecutionEvent.SUBMITTED, signature=signature, order_id=payload.order_id)
        record_id = await self.recorder.record_submission(quote, request, signature, order_id=payload.order_id)

        result = await self._poll_and_record(signature, record_id, events)
        if not result.succeeded:
            return self._settlement_failed(quote, result, record_id)

        return ExecutionOutcome(
            success=True,
            provider=self.provider,
            message=f"Transaction confirmed. Signature: {short_signature(signature)}",
            status=result.status,
            signature=signature,
            explorer_url=explorer_url(signature),
            record_id=record_id,
            quote=quote,
        )


class JupiterFlow(ExecutionFlow):
    """Specialist flow: sign the unsigned order, execute it through Jupiter, then poll."""

    provider = Provider.JUPITER
    payload_type = JupiterPayload

    def __init__(
        self,
        sender: TransactionSender,
        tx_poller: TransactionStatusPoller,
        jupiter: JupiterProvider,
        recorder: Optional[SwapHistoryRecorder] = None,
        **kwargs: Any,
    ):
        super().__init__(sender, tx_poller, recorder, **kwargs)
        self.jupiter = jupiter

    async def execute(
        self,
        quote: NormalizedQuote,
        request: SwapRequest,
        events: EventEmitter,
    ) -> ExecutionOutcome:
        payload: JupiterPayload = quote.payload
        if not payload.unsigned_transaction or not payload.request_id:
            await events.emit(ExecutionEvent.FAILED, error=INVALID_JUPITER_PAYLOAD)
            return self._failure(quote, ValidationError(INVALID_JUPITER_PAYLOAD))

        try:
            signed = await self.sender.sign_transaction(payload.unsigned_transaction)
        except Exception as e:
            return await self._submission_failed(quote, e, events)

        try:
            execution = await self.jupiter.execute_order(signed, payload.request_id)
        except Exception as e:
            logger.error(f"Jupiter execute failed: {e}")
            return await self._submission_failed(
                quote, SubmissionError(str(e), user_friendly_message(e, self.provider.value)), events
            )

        if not execution.succeeded:
            reason = execution.error or "Swap failed"
            return await self._submission_failed(quote, SubmissionError(reason, reason), events)

        signature = execution.signature
        await events.emit(ExecutionEvent.SUBMITTED, signature=signature, request_id=payload.request_id)
        record_id = await self.recorder.record_submission(quote, request, signature)

        result = await self._poll_and_record(signature, record_id, events)
        if not result.succeeded:
            return self._settlement_failed(quote, result, record_id)

        link = explorer_url(signature)
        if result.status == TransactionStatus.FINALIZED:
            message = f"Swap finalized. View: {link}"
        else:
            message = f"Swap confirmed. View: {link}"
        return ExecutionOutcome(
            success=True,
            provider=self.provider,
            message=message,
            status=result.status,
            signature=signature,
            explorer_url=link,
            record_id=record_id,
            quote=quote,
        )
