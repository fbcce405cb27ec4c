"""Swap execution orchestrator.

Pre-flights a selected quote (expiry and maximum age), then dispatches to
the provider's execution flow.
"""

import logging
import time
from typing import Callable, Iterable, Optional

from crossroute.errors import CrossrouteError, ExpiredQuoteError, SubmissionError
from crossroute.execution.flows import (
    EventCallback,
    EventEmitter,
    ExecutionEvent,
    ExecutionFlow,
    ExecutionOutcome,
)
from crossroute.execution.messages import user_friendly_message
from crossroute.quotes.service import QuoteService
from crossroute.routing.base import NormalizedQuote, Provider, SwapRequest

logger = logging.getLogger(__name__)

# deBridge order transactions lose fulfillment probability with age
DEBRIDGE_MAX_QUOTE_AGE_SECONDS = 30
DEBRIDGE_WARN_QUOTE_AGE_SECONDS = 25

NOT_IMPLEMENTED_MESSAGE = "Execution not implemented for this provider"


class ExecutionOrchestrator:
    """Runs one quote through pre-flight and its provider flow.

    Args:
        quote_service: Used to refresh an expired or aged-out quote
        flows: One execution flow per provider
        max_quote_age: deBridge quotes older than this are refreshed
        warn_quote_age: deBridge quotes older than this log a warning
        clock: Wall-clock source, seconds since the epoch
    """

    def __init__(
        self,
        quote_service: QuoteService,
        flows: Iterable[ExecutionFlow],
        max_quote_age: float = DEBRIDGE_MAX_QUOTE_AGE_SECONDS,
        warn_quote_age: float = DEBRIDGE_WARN_QUOTE_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.quote_service = quote_service
        self.flows: dict[Provider, ExecutionFlow] = {flow.provider: flow for flow in flows}
        self.max_quote_age = max_quote_age
        self.warn_quote_age = warn_quote_age
        self._clock = clock

    def _stale_reason(self, quote: NormalizedQuote) -> Optional[str]:
        now = self._clock()
        if quote.is_expired(now):
            return "expired"
        if quote.provider == Provider.DEBRIDGE:
            age = quote.age_seconds(now)
            if age > self.max_quote_age:
                return f"too old ({age:.1f}s)"
            if age > self.warn_quote_age:
                logger.warning(f"deBridge quote age {age:.1f}s is approaching the {self.max_quote_age}s window")
        return None

    async def preflight(self, quote: NormalizedQuote, request: SwapRequest) -> NormalizedQuote:
        """Return a quote that is safe to execute.

        A stale quote gets exactly one refresh from its provider.

        Raises:
            ExpiredQuoteError: if the refresh fails or is itself stale
        """
        reason = self._stale_reason(quote)
        if reason is None:
            return quote

        logger.info(f"{quote.provider.value} quote {reason}; refreshing once before execution")
        try:
            fresh = await self.quote_service.refresh_quote(quote, request)
        except Exception as e:
            logger.warning(f"Quote refresh failed for {quote.provider.value}: {e}")
            raise ExpiredQuoteError() from e

        if fresh.is_expired(self._clock()):
            raise ExpiredQuoteError()
        return fresh

    async def execute_quote(
        self,
        quote: NormalizedQuote,
        request: SwapRequest,
        on_event: Optional[EventCallback] = None,
    ) -> ExecutionOutcome:
        """Execute ``quote`` and report a terminal outcome.

        Never raises for execution failures; the outcome carries the typed
        error and a user-facing message. ``on_event`` (sync or async) is
        called at each status transition.
        """
        events = EventEmitter(on_event)

        try:
            quote = await self.preflight(quote, request)
        except ExpiredQuoteError as e:
            await events.emit(ExecutionEvent.FAILED, error=e.user_message)
            return self._finish(
                ExecutionOutcome(success=False, provider=quote.provider, message=e.user_message, error=e, quote=quote),
                events,
            )

        flow = self.flows.get(quote.provider)
        if flow is None or not flow.can_execute(quote):
            logger.error(f"No execution flow for {quote.provider.value} payload {type(quote.payload).__name__}")
            error = SubmissionError(NOT_IMPLEMENTED_MESSAGE)
            await events.emit(ExecutionEvent.FAILED, error=NOT_IMPLEMENTED_MESSAGE)
            return self._finish(
                ExecutionOutcome(
                    success=False, provider=quote.provider, message=NOT_IMPLEMENTED_MESSAGE, error=error, quote=quote
                ),
                events,
            )

        logger.info(f"Executing {quote.provider.value} quote for {request.user_address}")
        try:
            outcome = await flow.execute(quote, request, events)
        except Exception as e:
            logger.exception(f"Unexpected error executing {quote.provider.value} quote")
            message = user_friendly_message(e, quote.provider.value)
            error = e if isinstance(e, CrossrouteError) else SubmissionError(str(e), message)
            await events.emit(ExecutionEvent.FAILED, error=message)
            outcome = ExecutionOutcome(
                success=False, provider=quote.provider, message=message, error=error, quote=quote
            )

        if outcome.success:
            logger.info(f"{quote.provider.value} execution succeeded: {outcome.message}")
        else:
            logger.warning(f"{quote.provider.value} execution failed: {outcome.message}")
        return self._finish(outcome, events)

    @staticmethod
    def _finish(outcome: ExecutionOutcome, events: EventEmitter) -> ExecutionOutcome:
        outcome.events = list(events.history)
        return outcome
