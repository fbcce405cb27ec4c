"""Swap history endpoints."""

import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from crossroute.history.database import HistoryDatabase
from crossroute.history.repository import HistoryFilter, SwapHistoryRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/swaps", tags=["Swaps"])

MAX_PAGE_LIMIT = 200


async def get_history_repository(request: Request) -> AsyncGenerator[SwapHistoryRepository, None]:
    database: HistoryDatabase = request.app.state.history_db
    async with database.session() as session:
        yield SwapHistoryRepository(session)


@router.get("/history")
async def get_swap_history(
    user_address: Optional[str] = Query(None, alias="userAddress"),
    limit: int = Query(50, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
    status: Optional[str] = Query(None),
    provider: Optional[str] = Query(None),
    repo: SwapHistoryRepository = Depends(get_history_repository),
):
    """Get a user's swaps, newest first."""
    if not user_address:
        raise HTTPException(status_code=400, detail="userAddress query parameter is required")

    try:
        page = await repo.list_by_user(
            HistoryFilter(
                user_address=user_address,
                status=status,
                provider=provider,
                limit=limit,
                offset=offset,
            )
        )
    except Exception as e:
        logger.error(f"Failed to fetch swap history for {user_address}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch swap history")

    return {"success": True, "data": page.to_dict()}


@router.get("/{swap_id}")
async def get_swap(
    swap_id: str,
    repo: SwapHistoryRepository = Depends(get_history_repository),
):
    """Get one swap by its record ID."""
    try:
        record = await repo.get_by_id(swap_id)
    except Exception as e:
        logger.error(f"Failed to fetch swap {swap_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch swap details")

    if record is None:
        raise HTTPException(status_code=404, detail="Swap not found")

    return {"success": True, "data": record.to_dict()}
