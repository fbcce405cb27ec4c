"""Shared httpx helpers."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx


@asynccontextmanager
async def http_client(
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 20.0,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived one with ``timeout``.

    An injected client is owned by the caller and is not closed here.
    """
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


def response_json(response: httpx.Response) -> Optional[dict]:
    """Parse a JSON object body, returning None for anything else."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
