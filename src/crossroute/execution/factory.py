"""Factory for wiring execution flows and the orchestrator from settings."""

import logging
from typing import Optional

from crossroute.config import Settings, get_settings
from crossroute.execution.flows import DebridgeFlow, ExecutionFlow, JupiterFlow, RelayFlow
from crossroute.execution.orchestrator import ExecutionOrchestrator
from crossroute.execution.status import BridgeStatusPoller, TransactionStatusPoller
from crossroute.history.recorder import SwapHistoryRecorder
from crossroute.quotes.service import QuoteService
from crossroute.routing.base import Provider
from crossroute.routing.factory import create_chain_reader
from crossroute.routing.jupiter import JupiterProvider
from crossroute.routing.relay import RelayProvider
from crossroute.wallet.base import ChainReader, TransactionSender

logger = logging.getLogger(__name__)


def create_flows(
    sender: TransactionSender,
    quote_service: QuoteService,
    settings: Optional[Settings] = None,
    chain_reader: Optional[ChainReader] = None,
    recorder: Optional[SwapHistoryRecorder] = None,
) -> list[ExecutionFlow]:
    """Create one flow per provider configured on ``quote_service``."""
    settings = settings or get_settings()
    chain_reader = chain_reader or create_chain_reader(settings)
    tx_poller = TransactionStatusPoller(
        chain_reader,
        max_attempts=settings.tx_poll_attempts,
        interval=settings.tx_poll_interval,
    )
    retry = {"retry_attempts": settings.retry_attempts, "retry_delay": settings.retry_delay}

    flows: list[ExecutionFlow] = []

    relay = quote_service.get_provider(Provider.RELAY)
    if isinstance(relay, RelayProvider):
        bridge_poller = BridgeStatusPoller(
            relay.get_bridge_status,
            max_attempts=settings.bridge_poll_attempts,
            interval=settings.bridge_poll_interval,
        )
        flows.append(
            RelayFlow(
                sender,
                tx_poller,
                requote=quote_service.refresh_quote,
                bridge_poller=bridge_poller,
                recorder=recorder,
                sponsor_fee_tolerance_usd=settings.sponsor_fee_tolerance_usd,
                **retry,
            )
        )

    if quote_service.get_provider(Provider.DEBRIDGE) is not None:
        flows.append(DebridgeFlow(sender, tx_poller, recorder=recorder, **retry))

    jupiter = quote_service.get_provider(Provider.JUPITER)
    if isinstance(jupiter, JupiterProvider):
        flows.append(JupiterFlow(sender, tx_poller, jupiter, recorder=recorder, **retry))

    return flows


def create_orchestrator(
    sender: TransactionSender,
    quote_service: QuoteService,
    settings: Optional[Settings] = None,
    chain_reader: Optional[ChainReader] = None,
    recorder: Optional[SwapHistoryRecorder] = None,
) -> ExecutionOrchestrator:
    """Create an orchestrator that records history in the configured database.

    Args:
        sender: Signing capability supplied by the caller
        quote_service: Used for pre-flight refresh and Relay re-quotes
        settings: Defaults to the cached application settings
        chain_reader: Transaction status source; defaults to Solana RPC
        recorder: Swap history recorder; defaults to the database recorder
    """
    settings = settings or get_settings()
    recorder = recorder if recorder is not None else SwapHistoryRecorder()
    flows = create_flows(sender, quote_service, settings, chain_reader, recorder)
    logger.info(f"Execution flows ready: {[flow.provider.value for flow in flows]}")
    return ExecutionOrchestrator(
        quote_service,
        flows,
        max_quote_age=settings.debridge_max_quote_age,
        warn_quote_age=settings.debridge_warn_quote_age,
    )
