"""Append-only audit log of quote evaluations.

Records are handed to a bounded queue and written as JSON lines by a
dedicated writer task. Submitting never blocks and never raises: a full
queue or a failing disk only costs the record.
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from crossroute.quotes.eligibility import Rejection
from crossroute.quotes.quote_math import cost_to_user, effective_receive, net_user_value_usd
from crossroute.quotes.selection import Ranking, reason_chosen
from crossroute.routing.base import NormalizedQuote, SwapRequest

logger = logging.getLogger(__name__)


def _quote_entry(quote: NormalizedQuote) -> dict:
    entry = quote.to_dict()
    entry.pop("payload", None)
    entry["effective_receive"] = str(effective_receive(quote))
    entry["cost_to_user"] = str(cost_to_user(quote))
    entry["net_user_value_usd"] = str(net_user_value_usd(quote))
    return entry


def build_audit_record(
    request: SwapRequest,
    candidates: list[NormalizedQuote],
    ranking: Optional[Ranking],
    rejections: Optional[list[Rejection]] = None,
) -> dict:
    """Build one evaluation record: request, every candidate, winner, reason.

    ``ranking`` is None when no quote survived eligibility.
    """
    ranking = ranking if ranking is not None else Ranking()
    reason = reason_chosen(ranking)
    best = ranking.best
    best_entry = None
    if best is not None:
        best_entry = _quote_entry(best)
        best_entry["reason_chosen_code"] = reason["code"]
        best_entry["reason_chosen_human"] = reason["human"]

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request": request.to_dict(),
        "quotes": [_quote_entry(q) for q in candidates],
        "rejections": [r.to_dict() for r in rejections or []],
        "best": best_entry,
        "evaluation": {
            "tie_breaker_applied": ranking.tie_breaker_applied,
            "tie_breaker": ranking.tie_breaker.value,
            "threshold_used": ranking.threshold,
        },
        "reason_chosen": reason,
    }


class AuditSink(ABC):
    """Best-effort destination for audit records."""

    @abstractmethod
    def submit(self, record: dict) -> None:
        """Accept a record without blocking or raising."""

    async def close(self) -> None:
        pass


class NullAuditSink(AuditSink):
    """Discards every record."""

    def submit(self, record: dict) -> None:
        pass


class MemoryAuditSink(AuditSink):
    """Keeps records in memory. Useful for inspection and tests."""

    def __init__(self):
        self.records: list[dict] = []

    def submit(self, record: dict) -> None:
        self.records.append(record)


class QuoteAuditLog(AuditSink):
    """JSON-lines audit file fed through a bounded queue.

    Args:
        path: File to append to; parent directories are created on demand
        max_pending: Queue bound; records beyond it are dropped
    """

    def __init__(self, path: str, max_pending: int = 1000):
        self.path = Path(path)
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._writer: Optional[asyncio.Task] = None
        self.dropped = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._writer is not None and not self._writer.done()

    def start(self) -> None:
        """Start the writer task on the running loop."""
        if self._writer is None or self._writer.done():
            self._writer = asyncio.get_running_loop().create_task(self._run())

    def submit(self, record: dict) -> None:
        try:
            self.start()
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Audit queue full, dropping record ({self.dropped} dropped)")
        except Exception as e:
            self.dropped += 1
            logger.error(f"Failed to enqueue audit record: {e}")

    async def _run(self) -> None:
        while True:
            record = await self._queue.get()
            try:
                line = json.dumps(record, default=str)
                await asyncio.to_thread(self._append, line)
            except Exception as e:
                logger.error(f"Failed to write audit record to {self.path}: {e}")
            finally:
                self._queue.task_done()

    def _append(self, line: str) -> None:
        os.makedirs(self.path.parent, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    async def flush(self) -> None:
        """Wait until every queued record has been handled."""
        if self._writer is not None and not self._writer.done():
            await self._queue.join()

    async def close(self) -> None:
        """Flush and stop the writer."""
        await self.flush()
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None
