"""Swap history persistence."""

from crossroute.history.database import HistoryDatabase, async_database_url, get_history_database
from crossroute.history.models import Base, SwapHistoryStatus, SwapRecord
from crossroute.history.recorder import NullHistoryRecorder, SwapHistoryRecorder
from crossroute.history.repository import HistoryFilter, HistoryPage, SwapHistoryRepository

__all__ = [
    # Models
    "Base",
    "SwapRecord",
    "SwapHistoryStatus",
    # Database
    "HistoryDatabase",
    "async_database_url",
    "get_history_database",
    # Repository
    "HistoryFilter",
    "HistoryPage",
    "SwapHistoryRepository",
    "SwapHistoryRecorder",
    "NullHistoryRecorder",
]
