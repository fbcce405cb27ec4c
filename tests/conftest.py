"""Pytest configuration and fixtures."""

import os
import time
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["QUOTE_ACCOUNTING_LOG_PATH"] = ""
os.environ["JUPITER_API_KEY"] = ""
os.environ["DEBUG"] = "true"

from crossroute.chains import CHAIN_ID_BASE, CHAIN_ID_SOLANA, USDC_MINT_SOLANA
from crossroute.history.database import HistoryDatabase
from crossroute.history.models import Base
from crossroute.history.repository import SwapHistoryRepository
from crossroute.routing.base import (
    DebridgePayload,
    FeePayer,
    JupiterPayload,
    NormalizedQuote,
    Provider,
    RelayPayload,
    SwapRequest,
)

USER = "UserWa11et1111111111111111111111111111111111"
BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"

_PAYLOADS = {
    Provider.RELAY: lambda: RelayPayload(request_id="0xrequest", serialized_transaction="relay-tx"),
    Provider.DEBRIDGE: lambda: DebridgePayload(order_id="order-1", serialized_transaction="debridge-tx"),
    Provider.JUPITER: lambda: JupiterPayload(request_id="jup-request", unsigned_transaction="jupiter-tx"),
}

_FEE_PAYERS = {
    Provider.RELAY: FeePayer.SPONSOR,
    Provider.DEBRIDGE: FeePayer.USER,
    Provider.JUPITER: FeePayer.USER,
}


def build_quote(provider: Provider, expected_out: str = "1000000", fees: str = "0", **overrides) -> NormalizedQuote:
    """Build a quote with sensible defaults for the provider."""
    now = time.time()
    fields = {
        "provider": provider,
        "expected_out": expected_out,
        "expected_out_formatted": expected_out,
        "fees": fees,
        "fee_currency": "USDC",
        "fee_payer": _FEE_PAYERS[provider],
        "sponsor_cost": fees if provider == Provider.RELAY else "0",
        "expiry_at": now + 30,
        "quoted_at": now,
        "payload": _PAYLOADS[provider](),
    }
    fields.update(overrides)
    return NormalizedQuote(**fields)


def build_request(**overrides) -> SwapRequest:
    """Solana USDC -> Base USDC unless overridden."""
    fields = {
        "origin_chain_id": CHAIN_ID_SOLANA,
        "origin_token": USDC_MINT_SOLANA,
        "destination_chain_id": CHAIN_ID_BASE,
        "destination_token": BASE_USDC,
        "amount": "10000000",
        "user_address": USER,
    }
    fields.update(overrides)
    return SwapRequest(**fields)


@pytest.fixture
def make_quote():
    return build_quote


@pytest.fixture
def make_request():
    return build_request


@pytest.fixture
def swap_request() -> SwapRequest:
    return build_request()


@pytest.fixture
def no_sleep():
    """Async sleep replacement that records requested delays."""
    delays = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def history_db() -> AsyncGenerator[HistoryDatabase, None]:
    """Standalone in-memory history database."""
    database = HistoryDatabase("sqlite:///:memory:")
    await database.create_tables()
    yield database
    await database.dispose()


@pytest_asyncio.fixture
async def history_repo(db_session: AsyncSession) -> SwapHistoryRepository:
    """Create swap history repository for testing."""
    return SwapHistoryRepository(db_session)
