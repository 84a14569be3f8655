"""Tests for background lesson batches: worker, phases, archive and manager."""
import io
import zipfile

import pytest

from notegen.config import settings
from notegen.models.schemas import BatchItemRequest
from notegen.services.batch_manager import (
    BatchJob,
    BatchPhase,
    LessonBatchWorker,
    batch_manager,
    run_lesson_batch,
)
from notegen.services.errors import DuplicateItemError, InsufficientBalanceError
from tests.conftest import FakeGenerationClient, lesson_text


def _item(label, **kwargs):
    return BatchItemRequest(label=label, **kwargs)


# ---------------------------------------------------------------------------
# LessonBatchWorker
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_worker_renders_ready_response():
    worker = LessonBatchWorker()
    rendered = await worker(_item("Mon", response_text=lesson_text()))
    assert rendered.filename == "B4-COMP-WK2.docx"


@pytest.mark.asyncio
async def test_worker_generates_from_prompt():
    generator = FakeGenerationClient([lesson_text(subject="Science")])
    worker = LessonBatchWorker(generator)
    rendered = await worker(_item("Tue", prompt="Write a science lesson"))
    assert rendered.lessons[0].subject == "Science"
    assert generator.prompts == ["Write a science lesson"]


@pytest.mark.asyncio
async def test_worker_rejects_repeated_item():
    worker = LessonBatchWorker()
    item = _item("Mon", response_text=lesson_text())
    await worker(item)
    with pytest.raises(DuplicateItemError):
        await worker(item)


# ---------------------------------------------------------------------------
# run_lesson_batch
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_mixed_batch_counts_and_archive():
    items = [
        _item("Monday", response_text=lesson_text()),
        _item("Tuesday", response_text="not a lesson"),
        _item("Monday", response_text=lesson_text()),
        _item("Thursday", response_text=lesson_text()),
        _item("Friday"),
    ]
    job = await run_lesson_batch(BatchJob(batch_id="mixed"), items, concurrency=2)

    report = job.report
    assert job.phase is BatchPhase.COMPLETED
    assert report.succeeded == 2
    assert report.failed == 2
    assert report.skipped == 1
    assert report.succeeded + report.failed + report.skipped + report.cancelled == len(items)

    assert job.archive_filename == "B4_WK2.zip"
    with zipfile.ZipFile(io.BytesIO(job.archive)) as archive:
        assert sorted(archive.namelist()) == ["B4-COMP-WK2-Thursday.docx", "B4-COMP-WK2.docx"]
    assert any(error.startswith("1: Failed to parse lesson data") for error in job.errors)


@pytest.mark.asyncio
async def test_rendered_documents_released_after_archiving():
    items = [_item("Monday", response_text=lesson_text()), _item("Tuesday", response_text="not a lesson")]
    job = await run_lesson_batch(BatchJob(batch_id="release"), items)

    assert all(result.value is None for result in job.report.items)
    assert job.item_filename(job.report.items[0]) == "B4-COMP-WK2.docx"
    assert job.item_filename(job.report.items[1]) is None
    assert job.archive is not None


@pytest.mark.asyncio
async def test_prompt_without_generator_fails_that_item_only():
    items = [_item("a", prompt="Write a lesson"), _item("b", response_text=lesson_text())]
    job = await run_lesson_batch(BatchJob(batch_id="nogen"), items)
    assert job.report.failed == 1
    assert job.report.succeeded == 1
    assert "No generation endpoint configured" in job.report.items[0].error


@pytest.mark.asyncio
async def test_insufficient_balance_halts_batch():
    generator = FakeGenerationClient([lesson_text(), InsufficientBalanceError("balance exhausted")])
    items = [_item(f"day {n}", prompt=f"lesson {n}") for n in range(4)]
    job = await run_lesson_batch(BatchJob(batch_id="halt"), items, generator, concurrency=1)

    assert job.phase is BatchPhase.HALTED
    assert job.report.halted_reason == "insufficient_balance"
    assert job.report.succeeded == 1
    assert job.report.failed == 1
    assert job.report.cancelled == 2
    assert job.archive is not None
    assert len(generator.prompts) == 2


@pytest.mark.asyncio
async def test_cancelled_before_start_produces_nothing():
    job = BatchJob(batch_id="cancel")
    job.token.cancel()
    items = [_item("a", response_text=lesson_text())]
    await run_lesson_batch(job, items)
    assert job.phase is BatchPhase.CANCELLED
    assert job.report.cancelled == 1
    assert job.archive is None


# ---------------------------------------------------------------------------
# BatchManager
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_manager_runs_batch_in_background():
    job = batch_manager.start([_item("a", response_text=lesson_text())])
    assert job.phase is BatchPhase.QUEUED
    assert batch_manager.get(job.batch_id) is job

    finished = await batch_manager.wait(job.batch_id)
    assert finished.phase is BatchPhase.COMPLETED
    assert finished.report.succeeded == 1
    assert not batch_manager.is_running(job.batch_id)


@pytest.mark.asyncio
async def test_manager_marks_crashed_batch_failed():
    job = batch_manager.start([object()])
    await batch_manager.wait(job.batch_id)
    assert job.phase is BatchPhase.FAILED
    assert job.errors[-1].startswith("batch crash:")
    assert job.report.completed_at is not None


@pytest.mark.asyncio
async def test_manager_evicts_oldest_finished_batches(monkeypatch):
    monkeypatch.setattr(settings, "BATCH_RETENTION", 2)
    finished = []
    for label in ("a", "b", "c"):
        job = batch_manager.start([_item(label, response_text=lesson_text())])
        await batch_manager.wait(job.batch_id)
        finished.append(job)

    latest = batch_manager.start([_item("d", response_text=lesson_text())])
    assert batch_manager.get(finished[0].batch_id) is None
    assert batch_manager.get(finished[1].batch_id) is finished[1]
    assert batch_manager.get(finished[2].batch_id) is finished[2]
    assert batch_manager.get(latest.batch_id) is latest
    await batch_manager.wait(latest.batch_id)


@pytest.mark.asyncio
async def test_running_batches_are_never_evicted(monkeypatch):
    monkeypatch.setattr(settings, "BATCH_RETENTION", 0)
    first = batch_manager.start([_item("a", response_text=lesson_text())])
    second = batch_manager.start([_item("b", response_text=lesson_text())])
    assert batch_manager.get(first.batch_id) is first
    await batch_manager.wait(first.batch_id)
    await batch_manager.wait(second.batch_id)


def test_cancel_unknown_batch():
    assert batch_manager.cancel("does-not-exist") is None
