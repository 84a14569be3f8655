"""
Bounded worker pool for batch generate -> parse -> render work.

A fixed number of workers pull items from an asyncio.Queue.  Each item is
isolated: a failure is recorded against that item and the pool moves on.
Two things stop the pool from starting new items: a CancellationToken
(checked before every item) and an InsufficientBalanceError from any item.
Items already in flight always finish.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from notegen.config import settings
from notegen.services.errors import DuplicateItemError, InsufficientBalanceError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class CancellationToken:
    """Cooperative cancel flag shared between a batch and its controller."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._cancelled:
            self.reason = reason
            self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class BatchItemStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass
class BatchItemResult(Generic[R]):
    index: int
    label: str = ""
    status: BatchItemStatus = BatchItemStatus.PENDING
    value: Optional[R] = None
    error: Optional[str] = None


@dataclass
class BatchReport(Generic[R]):
    """Per-item results plus the counters callers show to users."""

    items: List[BatchItemResult[R]] = field(default_factory=list)
    halted_reason: Optional[str] = None
    started_at: float = field(default_factory=time.monotonic)
    completed_at: Optional[float] = None

    def _count(self, status: BatchItemStatus) -> int:
        return sum(1 for item in self.items if item.status is status)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def succeeded(self) -> int:
        return self._count(BatchItemStatus.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(BatchItemStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(BatchItemStatus.SKIPPED)

    @property
    def cancelled(self) -> int:
        return self._count(BatchItemStatus.CANCELLED)

    @property
    def values(self) -> List[R]:
        return [i.value for i in self.items if i.status is BatchItemStatus.SUCCEEDED]

    @property
    def elapsed_seconds(self) -> float:
        end = self.completed_at if self.completed_at else time.monotonic()
        return round(end - self.started_at, 2)


class BatchRunner(Generic[T, R]):
    """
    Run ``worker(item)`` over *items* with at most *concurrency* in flight.

    Args:
        worker:      async callable doing the work for one item.
        concurrency: pool size; defaults to settings.BATCH_CONCURRENCY.
        label:       optional callable naming an item for reports/logs.
    """

    def __init__(
        self,
        worker: Callable[[T], Awaitable[R]],
        concurrency: Optional[int] = None,
        label: Optional[Callable[[T], str]] = None,
    ) -> None:
        self.worker = worker
        self.concurrency = max(1, concurrency or settings.BATCH_CONCURRENCY)
        self.label = label or (lambda item: "")

    async def run(
        self,
        items: Sequence[T],
        token: Optional[CancellationToken] = None,
        report: Optional[BatchReport[R]] = None,
    ) -> BatchReport[R]:
        """
        Process every item and return the report.

        A pre-created *report* may be passed so a poller can watch counters
        change while the batch runs.
        """
        token = token or CancellationToken()
        report = report if report is not None else BatchReport()
        report.items = [
            BatchItemResult(index=i, label=self.label(item)) for i, item in enumerate(items)
        ]

        queue: asyncio.Queue = asyncio.Queue()
        for index, item in enumerate(items):
            queue.put_nowait((index, item))

        workers = [
            asyncio.create_task(self._work(queue, report, token))
            for _ in range(min(self.concurrency, len(items)) or 1)
        ]
        await asyncio.gather(*workers)

        report.completed_at = time.monotonic()
        if token.cancelled and report.halted_reason is None:
            report.halted_reason = token.reason
        logger.info(
            "Batch done: %d succeeded, %d failed, %d skipped, %d cancelled in %.2fs",
            report.succeeded, report.failed, report.skipped, report.cancelled,
            report.elapsed_seconds,
        )
        return report

    async def _work(
        self,
        queue: asyncio.Queue,
        report: BatchReport[R],
        token: CancellationToken,
    ) -> None:
        while True:
            try:
                index, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            result = report.items[index]
            if token.cancelled:
                result.status = BatchItemStatus.CANCELLED
                continue

            result.status = BatchItemStatus.RUNNING
            try:
                result.value = await self.worker(item)
                result.status = BatchItemStatus.SUCCEEDED
            except DuplicateItemError as exc:
                result.status = BatchItemStatus.SKIPPED
                result.error = str(exc)
            except InsufficientBalanceError as exc:
                result.status = BatchItemStatus.FAILED
                result.error = str(exc)
                report.halted_reason = "insufficient_balance"
                token.cancel("insufficient_balance")
                logger.error("Batch halted on item %d: %s", index, exc)
            except Exception as exc:
                result.status = BatchItemStatus.FAILED
                result.error = str(exc)[:300]
                logger.error("Batch item %d (%s) failed: %s", index, result.label, exc, exc_info=True)
