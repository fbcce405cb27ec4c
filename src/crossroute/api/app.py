"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from crossroute import __version__
from crossroute.config import Settings, get_settings
from crossroute.history.database import HistoryDatabase, get_history_database
from crossroute.quotes.audit import QuoteAuditLog
from crossroute.quotes.service import QuoteService
from crossroute.routing.base import Provider
from crossroute.routing.factory import create_jupiter_provider, create_quote_service
from crossroute.routing.jupiter import JupiterProvider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    history_db: HistoryDatabase = app.state.history_db
    await history_db.create_tables()
    audit_sink = app.state.quote_service.audit_sink
    if isinstance(audit_sink, QuoteAuditLog):
        audit_sink.start()
    route_validator = app.state.quote_service.route_validator
    if route_validator is not None:
        await route_validator.prefetch()
    yield
    # Shutdown
    await audit_sink.close()
    await history_db.dispose()


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": {"code": "VALIDATION_ERROR", "message": message},
        },
    )


def create_app(
    settings: Optional[Settings] = None,
    quote_service: Optional[QuoteService] = None,
    jupiter: Optional[JupiterProvider] = None,
    history_db: Optional[HistoryDatabase] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``quote_service`` and ``jupiter`` default to instances built from
    settings; ``history_db`` defaults to the shared history database.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Crossroute API",
        description="Cross-chain quote aggregation and execution backend",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    if quote_service is None:
        quote_service = create_quote_service(settings)
    if jupiter is None:
        provider = quote_service.get_provider(Provider.JUPITER)
        jupiter = provider if isinstance(provider, JupiterProvider) else create_jupiter_provider(settings)
    app.state.quote_service = quote_service
    app.state.jupiter = jupiter
    app.state.history_db = history_db if history_db is not None else get_history_database()
    app.state.settings = settings

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Register routes
    from crossroute.api.routes import health, jupiter as jupiter_routes, quotes, swaps

    app.include_router(health.router, tags=["Health"])
    app.include_router(quotes.router)
    app.include_router(jupiter_routes.router)
    app.include_router(swaps.router)

    return app


# Default app instance
app = create_app()
