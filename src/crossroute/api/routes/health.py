"""Health check endpoints."""

from fastapi import APIRouter, Request

from crossroute import __version__
from crossroute.config import Settings
from crossroute.quotes.audit import AuditSink, QuoteAuditLog

router = APIRouter()


def audit_status(sink: AuditSink) -> dict:
    status = {"sink": type(sink).__name__}
    if isinstance(sink, QuoteAuditLog):
        status.update(
            path=str(sink.path),
            running=sink.running,
            pending=sink.pending,
            dropped=sink.dropped,
        )
    return status


@router.get("/health")
async def health_check():
    """Liveness only; touches no collaborators."""
    return {"status": "healthy", "service": "crossroute"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Providers, route cache, audit queue and history database state.

    Reports ``degraded`` when the history database is unreachable; quoting
    still works in that state, only history writes are lost.
    """
    state = request.app.state
    settings: Settings = state.settings
    service = state.quote_service
    route_validator = service.route_validator

    database_ok = await state.history_db.ping()

    return {
        "status": "healthy" if database_ok else "degraded",
        "service": "crossroute",
        "version": __version__,
        "providers": {
            "quoting": [provider.name for provider in service.providers],
            "jupiter_configured": settings.has_jupiter,
        },
        "route_cache": route_validator.cache_status() if route_validator is not None else None,
        "audit": audit_status(service.audit_sink),
        "history_db": {"reachable": database_ok},
        "config": settings.get_safe_dict(),
    }
