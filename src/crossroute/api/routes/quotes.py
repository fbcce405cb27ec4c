"""Quote API endpoints."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from crossroute.api.contracts import QuoteRequest
from crossroute.errors import (
    IneligibleError,
    NeedGasError,
    NoQuotesError,
    RouteUnsupportedError,
    ValidationError,
)
from crossroute.quotes.service import QuoteService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quotes", tags=["Quotes"])


def get_quote_service(request: Request) -> QuoteService:
    return request.app.state.quote_service


def error_response(status_code: int, code: str, message: str, **details) -> JSONResponse:
    error = {"code": code, "message": message}
    error.update(details)
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def empty_quotes(message: str) -> dict:
    return {"success": True, "data": {"quotes": [], "best": None}, "message": message}


@router.post("")
async def get_quotes(
    body: QuoteRequest,
    service: QuoteService = Depends(get_quote_service),
):
    """Get quotes from every applicable provider, best first.

    Read-only: nothing is signed or submitted.
    """
    request = body.to_swap_request()
    try:
        result = await service.get_quotes(request, body.to_balance_hints())
    except NeedGasError as e:
        return error_response(400, e.code, e.user_message, minLamports=e.min_lamports)
    except (ValidationError, RouteUnsupportedError) as e:
        return error_response(400, e.code, e.user_message)
    except (NoQuotesError, IneligibleError) as e:
        logger.info(f"No quotes for {request.origin_chain_id}->{request.destination_chain_id}: {e.message}")
        return empty_quotes(e.user_message)
    except Exception as e:
        logger.error(f"Quote aggregation failed: {e}", exc_info=True)
        return error_response(502, "QUOTE_ERROR", "Failed to fetch quotes")

    return {
        "success": True,
        "data": {
            "quotes": [quote.to_dict() for quote in result.quotes],
            "best": result.best.to_dict() if result.best else None,
        },
    }
