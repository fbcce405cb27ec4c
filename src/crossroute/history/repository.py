"""Repository for swap history operations."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crossroute.history.models import SwapHistoryStatus, SwapRecord

DEFAULT_PAGE_LIMIT = 50


@dataclass
class HistoryFilter:
    """Query for a user's swap history."""

    user_address: str
    status: Optional[str] = None
    provider: Optional[str] = None
    limit: int = DEFAULT_PAGE_LIMIT
    offset: int = 0


@dataclass
class HistoryPage:
    """One page of swap history, newest first."""

    swaps: list[SwapRecord] = field(default_factory=list)
    total: int = 0
    limit: int = DEFAULT_PAGE_LIMIT
    offset: int = 0

    def to_dict(self) -> dict:
        return {
            "swaps": [swap.to_dict() for swap in self.swaps],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
        }


class SwapHistoryRepository:
    """Keyed storage for executed swaps."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_record(self, **fields: Any) -> SwapRecord:
        """Create a pending swap record and return it with its id."""
        fields.setdefault("status", SwapHistoryStatus.PENDING.value)
        record = SwapRecord(**fields)
        self.session.add(record)
        await self.session.flush()
        return record

    async def update_status(
        self,
        record_id: str,
        status: SwapHistoryStatus,
        transaction_hash: Optional[str] = None,
        destination_transaction_hash: Optional[str] = None,
        error_message: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> Optional[SwapRecord]:
        """Update status; fields left as None keep their stored value."""
        record = await self.get_by_id(record_id)
        if record is None:
            return None

        record.status = status.value
        if transaction_hash is not None:
            record.transaction_hash = transaction_hash
        if destination_transaction_hash is not None:
            record.destination_transaction_hash = destination_transaction_hash
        if error_message is not None:
            record.error_message = error_message
        if completed_at is not None:
            record.completed_at = completed_at

        await self.session.flush()
        return record

    async def get_by_id(self, record_id: str) -> Optional[SwapRecord]:
        stmt = select(SwapRecord).where(SwapRecord.id == record_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_transaction_hash(self, transaction_hash: str) -> Optional[SwapRecord]:
        stmt = select(SwapRecord).where(SwapRecord.transaction_hash == transaction_hash)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_request_id(self, request_id: str) -> Optional[SwapRecord]:
        """Get swap by Relay request id."""
        stmt = select(SwapRecord).where(SwapRecord.request_id == request_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_order_id(self, order_id: str) -> Optional[SwapRecord]:
        """Get swap by deBridge order id."""
        stmt = select(SwapRecord).where(SwapRecord.order_id == order_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_by_user(self, query: HistoryFilter) -> HistoryPage:
        """Get a user's swaps, newest first, with optional filters."""
        conditions = [SwapRecord.user_address == query.user_address]
        if query.status:
            conditions.append(SwapRecord.status == query.status)
        if query.provider:
            conditions.append(SwapRecord.provider == query.provider)

        count_stmt = select(func.count()).select_from(SwapRecord).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar_one()

        stmt = (
            select(SwapRecord)
            .where(*conditions)
            .order_by(SwapRecord.created_at.desc(), SwapRecord.id.desc())
            .offset(query.offset)
            .limit(query.limit)
        )
        result = await self.session.execute(stmt)
        return HistoryPage(
            swaps=list(result.scalars().all()),
            total=total,
            limit=query.limit,
            offset=query.offset,
        )
