"""Tests for the bounded batch worker pool."""
import asyncio

import pytest

from notegen.services.batch_runner import (
    BatchItemStatus,
    BatchReport,
    BatchRunner,
    CancellationToken,
)
from notegen.services.errors import DuplicateItemError, InsufficientBalanceError


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_pool_size():
    in_flight = 0
    peak = 0

    async def worker(item):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return item * 2

    report = await BatchRunner(worker, concurrency=3).run(list(range(10)))
    assert peak == 3
    assert report.succeeded == 10
    assert report.values == [i * 2 for i in range(10)]


@pytest.mark.asyncio
async def test_failures_are_isolated_per_item():
    async def worker(item):
        if item == "bad":
            raise RuntimeError("boom")
        return item

    report = await BatchRunner(worker, concurrency=2).run(["a", "bad", "c"])
    assert report.succeeded == 2
    assert report.failed == 1
    assert report.items[1].status is BatchItemStatus.FAILED
    assert report.items[1].error == "boom"
    assert report.halted_reason is None


@pytest.mark.asyncio
async def test_duplicates_are_counted_as_skipped():
    async def worker(item):
        if item == "dup":
            raise DuplicateItemError("already done")
        return item

    report = await BatchRunner(worker).run(["a", "dup"])
    assert report.skipped == 1
    assert report.failed == 0
    assert report.items[1].status is BatchItemStatus.SKIPPED


@pytest.mark.asyncio
async def test_insufficient_balance_halts_remaining_items():
    started = []

    async def worker(item):
        started.append(item)
        if item == 1:
            raise InsufficientBalanceError("out of credit")
        return item

    token = CancellationToken()
    report = await BatchRunner(worker, concurrency=1).run([0, 1, 2, 3], token=token)

    assert started == [0, 1]
    assert report.halted_reason == "insufficient_balance"
    assert token.cancelled
    assert [item.status for item in report.items] == [
        BatchItemStatus.SUCCEEDED,
        BatchItemStatus.FAILED,
        BatchItemStatus.CANCELLED,
        BatchItemStatus.CANCELLED,
    ]
    assert report.succeeded + report.failed + report.skipped + report.cancelled == report.total


@pytest.mark.asyncio
async def test_cancel_token_stops_new_items_but_in_flight_finish():
    token = CancellationToken()

    async def worker(item):
        if item == 0:
            token.cancel()
            await asyncio.sleep(0.01)
        return item

    report = await BatchRunner(worker, concurrency=1).run([0, 1, 2], token=token)
    assert report.items[0].status is BatchItemStatus.SUCCEEDED
    assert report.cancelled == 2
    assert report.halted_reason == "cancelled"


@pytest.mark.asyncio
async def test_pre_created_report_is_filled_in_place():
    async def worker(item):
        return item

    report = BatchReport()
    returned = await BatchRunner(worker, label=str).run([5, 6], report=report)
    assert returned is report
    assert [item.label for item in report.items] == ["5", "6"]
    assert report.completed_at is not None


@pytest.mark.asyncio
async def test_empty_batch():
    async def worker(item):
        return item

    report = await BatchRunner(worker).run([])
    assert report.total == 0
    assert report.values == []


def test_token_keeps_first_reason():
    token = CancellationToken()
    token.cancel("insufficient_balance")
    token.cancel("cancelled")
    assert token.reason == "insufficient_balance"
