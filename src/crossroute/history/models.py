"""SQLAlchemy models for swap history."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, Numeric, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class SwapHistoryStatus(str, Enum):
    """Status of a recorded swap."""

    PENDING = "pending"
    CONFIRMED = "confirmed"  # Origin transaction confirmed
    FINALIZED = "finalized"  # Origin transaction finalized
    COMPLETED = "completed"  # Destination settlement succeeded
    FAILED = "failed"


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SwapRecord(Base):
    """One executed swap, created at submission time."""

    __tablename__ = "swap_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_address: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=SwapHistoryStatus.PENDING.value, nullable=False)

    origin_chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    origin_token: Mapped[str] = mapped_column(String(128), nullable=False)
    origin_token_symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    origin_token_amount: Mapped[str] = mapped_column(String(78), nullable=False)
    origin_token_amount_formatted: Mapped[str] = mapped_column(String(80), nullable=False)

    destination_chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    destination_token: Mapped[str] = mapped_column(String(128), nullable=False)
    destination_token_symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    destination_token_amount: Mapped[str] = mapped_column(String(78), nullable=False)
    destination_token_amount_formatted: Mapped[str] = mapped_column(String(80), nullable=False)
    recipient_address: Mapped[str] = mapped_column(String(128), nullable=False)

    transaction_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    destination_transaction_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)  # Relay
    order_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)  # deBridge

    fees: Mapped[str] = mapped_column(String(78), nullable=False, default="0")
    fee_currency: Mapped[str] = mapped_column(String(20), nullable=False)
    fee_payer: Mapped[str] = mapped_column(String(20), nullable=False)
    sponsor_cost: Mapped[str] = mapped_column(String(78), nullable=False, default="0")
    user_fee: Mapped[Optional[str]] = mapped_column(String(78), nullable=True)
    user_fee_currency: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    user_fee_usd: Mapped[Optional[Decimal]] = mapped_column(Numeric(36, 18), nullable=True)

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extra: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_swap_records_user_created", "user_address", "created_at"),)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_address": self.user_address,
            "provider": self.provider,
            "status": self.status,
            "origin_chain_id": self.origin_chain_id,
            "origin_token": self.origin_token,
            "origin_token_symbol": self.origin_token_symbol,
            "origin_token_amount": self.origin_token_amount,
            "origin_token_amount_formatted": self.origin_token_amount_formatted,
            "destination_chain_id": self.destination_chain_id,
            "destination_token": self.destination_token,
            "destination_token_symbol": self.destination_token_symbol,
            "destination_token_amount": self.destination_token_amount,
            "destination_token_amount_formatted": self.destination_token_amount_formatted,
            "recipient_address": self.recipient_address,
            "transaction_hash": self.transaction_hash,
            "destination_transaction_hash": self.destination_transaction_hash,
            "request_id": self.request_id,
            "order_id": self.order_id,
            "fees": self.fees,
            "fee_currency": self.fee_currency,
            "fee_payer": self.fee_payer,
            "sponsor_cost": self.sponsor_cost,
            "user_fee": self.user_fee,
            "user_fee_currency": self.user_fee_currency,
            "user_fee_usd": str(self.user_fee_usd) if self.user_fee_usd is not None else None,
            "error_message": self.error_message,
            "metadata": self.extra,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
