"""Factory for creating quote providers and the quote service from settings."""

import logging
from typing import Optional

import httpx

from crossroute.config import Settings, get_settings
from crossroute.pricing import PriceService
from crossroute.quotes.audit import AuditSink, NullAuditSink, QuoteAuditLog
from crossroute.quotes.route_validation import RouteValidator
from crossroute.quotes.selection import SelectionPolicy
from crossroute.quotes.service import QuoteService
from crossroute.quotes.sponsor import SponsorPolicy
from crossroute.routing.base import QuoteProvider
from crossroute.routing.debridge import DebridgeProvider
from crossroute.routing.jupiter import JupiterProvider
from crossroute.routing.relay import RelayProvider
from crossroute.utils.cache import TtlCache
from crossroute.wallet.base import ChainReader
from crossroute.wallet.solana_rpc import SolanaRpcClient

logger = logging.getLogger(__name__)


def create_price_service(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> PriceService:
    settings = settings or get_settings()
    return PriceService(
        api_url=settings.coingecko_api_url,
        cache=TtlCache(settings.price_cache_seconds),
        sol_fallback=settings.sol_price_fallback_usd,
        client=client,
    )


def create_chain_reader(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ChainReader:
    settings = settings or get_settings()
    return SolanaRpcClient(rpc_url=settings.solana_rpc_url, client=client)


def create_relay_provider(
    settings: Optional[Settings] = None,
    prices: Optional[PriceService] = None,
    chain_reader: Optional[ChainReader] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> RelayProvider:
    """Create the Relay provider.

    Sponsorship is enabled when a deposit fee payer is configured.
    """
    settings = settings or get_settings()
    return RelayProvider(
        api_url=settings.relay_api_url,
        deposit_fee_payer=settings.relay_deposit_fee_payer or None,
        referrer=settings.relay_referrer,
        prices=prices,
        chain_reader=chain_reader,
        policy=SponsorPolicy.from_settings(settings),
        quote_validity_seconds=settings.quote_validity_seconds,
        timeout=settings.provider_timeout,
        client=client,
    )


def create_debridge_provider(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> DebridgeProvider:
    settings = settings or get_settings()
    return DebridgeProvider(
        api_url=settings.debridge_api_url,
        solana_tx_lamports=settings.estimated_solana_tx_lamports,
        quote_validity_seconds=settings.quote_validity_seconds,
        timeout=settings.provider_timeout,
        client=client,
    )


def create_jupiter_provider(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> JupiterProvider:
    """Create the Jupiter provider.

    Without an API key the provider still exists but every quote fails,
    so same-chain Solana requests surface a clear error.
    """
    settings = settings or get_settings()
    if not settings.has_jupiter:
        logger.warning("JUPITER_API_KEY not set; same-chain Solana quotes will fail")
    return JupiterProvider(
        api_key=settings.jupiter_api_key,
        api_url=settings.jupiter_api_url,
        timeout=settings.provider_timeout,
        client=client,
    )


def create_audit_sink(settings: Optional[Settings] = None) -> AuditSink:
    settings = settings or get_settings()
    if not settings.quote_accounting_log_path:
        return NullAuditSink()
    return QuoteAuditLog(settings.quote_accounting_log_path, max_pending=settings.audit_queue_size)


def create_providers(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> list[QuoteProvider]:
    """Create all three providers sharing one price service and chain reader."""
    settings = settings or get_settings()
    prices = create_price_service(settings, client)
    chain_reader = create_chain_reader(settings, client)
    return [
        create_relay_provider(settings, prices=prices, chain_reader=chain_reader, client=client),
        create_debridge_provider(settings, client=client),
        create_jupiter_provider(settings, client=client),
    ]


def create_quote_service(
    settings: Optional[Settings] = None,
    providers: Optional[list[QuoteProvider]] = None,
    audit_sink: Optional[AuditSink] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> QuoteService:
    """Create the quote service with route validation backed by Relay's chain listing."""
    settings = settings or get_settings()
    providers = providers if providers is not None else create_providers(settings, client)

    route_validator = None
    relay = next((p for p in providers if isinstance(p, RelayProvider)), None)
    if relay is not None:
        route_validator = RouteValidator(relay.fetch_chains, cache=TtlCache(settings.route_cache_seconds))

    service = QuoteService(
        providers=providers,
        route_validator=route_validator,
        audit_sink=audit_sink if audit_sink is not None else create_audit_sink(settings),
        selection_policy=SelectionPolicy.from_settings(settings),
        sponsor_fee_tolerance_usd=settings.sponsor_fee_tolerance_usd,
        sol_buffer_percent=settings.min_sol_buffer_percent,
    )
    logger.info(f"Quote service ready with providers: {[p.name for p in providers]}")
    return service
