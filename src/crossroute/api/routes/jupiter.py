"""Jupiter execution proxy.

Forwards a user-signed Ultra order to Jupiter so the API key never
reaches the client.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from crossroute.api.contracts import JupiterExecuteRequest
from crossroute.errors import ProviderError
from crossroute.routing.jupiter import JupiterProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jupiter", tags=["Jupiter"])


def get_jupiter(request: Request) -> JupiterProvider:
    return request.app.state.jupiter


def proxy_error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "code": status_code})


@router.post("/execute")
async def execute_swap(
    body: JupiterExecuteRequest,
    jupiter: JupiterProvider = Depends(get_jupiter),
):
    """Execute a signed Jupiter Ultra order and return Jupiter's response."""
    if not body.signed_transaction:
        return proxy_error(400, "signedTransaction is required")
    if not body.request_id:
        return proxy_error(400, "requestId is required")
    if not jupiter.is_configured:
        logger.error("Jupiter execute called without JUPITER_API_KEY")
        return proxy_error(500, "Jupiter API not configured")

    try:
        execution = await jupiter.execute_order(body.signed_transaction, body.request_id)
    except ProviderError as e:
        status_code = e.status_code if e.status_code and 400 <= e.status_code < 500 else 502
        logger.warning(f"Jupiter execute failed ({e.status_code}): {e.message}")
        return proxy_error(status_code, e.message)
    except Exception as e:
        logger.error(f"Jupiter execute error: {e}", exc_info=True)
        return proxy_error(500, "Failed to execute Jupiter swap")

    logger.info(f"Jupiter execute {execution.status} for request {body.request_id}")
    return execution.raw
