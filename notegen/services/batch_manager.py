"""
In-memory registry of background lesson batches.

Usage
-----
    from notegen.services.batch_manager import batch_manager, BatchJob

    job = batch_manager.start(items, generator)
    # ... later ...
    current = batch_manager.get(job.batch_id)
"""
from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import time
import uuid
from typing import Dict, List, Optional, Sequence, Set

from notegen.config import settings
from notegen.models.schemas import BatchItemRequest
from notegen.services.archiver import ArchiveEntry, archive_filename, build_archive
from notegen.services.batch_runner import BatchItemResult, BatchReport, BatchRunner, CancellationToken
from notegen.services.errors import DuplicateItemError, GenerationFailure, ParseError
from notegen.services.generation_client import GenerationClient
from notegen.services.lesson_renderer import LessonRenderer, RenderedDocument
from notegen.services.response_parser import parse_model_json

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Batch phase enum
# ---------------------------------------------------------------------------

class BatchPhase(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    ARCHIVING = "archiving"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    HALTED = "halted"
    FAILED = "failed"


FINISHED_PHASES = (BatchPhase.COMPLETED, BatchPhase.CANCELLED, BatchPhase.HALTED, BatchPhase.FAILED)


# ---------------------------------------------------------------------------
# Batch job (mutable dataclass shared between task and poller)
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class BatchJob:
    batch_id: str
    phase: BatchPhase = BatchPhase.QUEUED
    token: CancellationToken = dataclasses.field(default_factory=CancellationToken)
    report: BatchReport = dataclasses.field(default_factory=BatchReport)
    archive: Optional[bytes] = None
    archive_filename: Optional[str] = None
    errors: List[str] = dataclasses.field(default_factory=list)
    # filename per succeeded item index, kept after the documents are released
    filenames: Dict[int, str] = dataclasses.field(default_factory=dict)

    @property
    def finished(self) -> bool:
        return self.phase in FINISHED_PHASES

    def item_filename(self, result: BatchItemResult) -> Optional[str]:
        if result.value is not None:
            return result.value.filename
        return self.filenames.get(result.index)


# ---------------------------------------------------------------------------
# Per-item work
# ---------------------------------------------------------------------------

class LessonBatchWorker:
    """Generate (when needed), parse and render one batch item."""

    def __init__(
        self,
        generator: Optional[GenerationClient] = None,
        renderer: Optional[LessonRenderer] = None,
    ) -> None:
        self.generator = generator
        self.renderer = renderer or LessonRenderer()
        self._seen: Set[tuple] = set()

    async def __call__(self, item: BatchItemRequest) -> RenderedDocument:
        key = (item.label, item.prompt, item.response_text)
        # checked and recorded before the first await, so workers cannot race
        if key in self._seen:
            raise DuplicateItemError(f"Duplicate batch item {item.label!r}")
        self._seen.add(key)

        text = item.response_text
        if not text:
            if not item.prompt:
                raise ParseError("Batch item has neither a response nor a prompt")
            if self.generator is None:
                raise GenerationFailure("No generation endpoint configured")
            text = await self.generator.generate(item.prompt, item.system_message)

        parsed = parse_model_json(text)
        return self.renderer.render(parsed.lessons)


def archive_entries(items: Sequence[BatchItemRequest], report: BatchReport) -> List[ArchiveEntry]:
    entries: List[ArchiveEntry] = []
    for result in report.items:
        if result.value is None:
            continue
        doc: RenderedDocument = result.value
        first = doc.lessons[0]
        entries.append(ArchiveEntry(
            name=doc.filename,
            content=doc.content,
            label=items[result.index].label or first.subject,
            class_level=first.class_level,
            week=first.week_number,
        ))
    return entries


async def run_lesson_batch(
    job: BatchJob,
    items: Sequence[BatchItemRequest],
    generator: Optional[GenerationClient] = None,
    concurrency: Optional[int] = None,
) -> BatchJob:
    """Run *items* through the worker pool, then zip whatever succeeded."""
    job.phase = BatchPhase.RUNNING
    runner = BatchRunner(LessonBatchWorker(generator), concurrency=concurrency, label=lambda i: i.label)
    await runner.run(items, token=job.token, report=job.report)

    entries = archive_entries(items, job.report)
    if entries:
        job.phase = BatchPhase.ARCHIVING
        job.archive = build_archive(entries)
        job.archive_filename = archive_filename(entries)

    # the archive now holds the rendered bytes
    for result in job.report.items:
        if result.value is not None:
            job.filenames[result.index] = result.value.filename
            result.value = None

    job.errors = [f"{r.index}: {r.error}" for r in job.report.items if r.error]
    if job.report.halted_reason == "insufficient_balance":
        job.phase = BatchPhase.HALTED
    elif job.token.cancelled:
        job.phase = BatchPhase.CANCELLED
    else:
        job.phase = BatchPhase.COMPLETED
    return job


# ---------------------------------------------------------------------------
# Batch manager (class-level state acts as a singleton)
# ---------------------------------------------------------------------------

class BatchManager:
    """Owns the background asyncio.Tasks running lesson batches."""

    _tasks: Dict[str, asyncio.Task] = {}
    _jobs: Dict[str, BatchJob] = {}

    @classmethod
    def get(cls, batch_id: str) -> Optional[BatchJob]:
        return cls._jobs.get(batch_id)

    @classmethod
    def is_running(cls, batch_id: str) -> bool:
        task = cls._tasks.get(batch_id)
        return task is not None and not task.done()

    @classmethod
    def start(
        cls,
        items: Sequence[BatchItemRequest],
        generator: Optional[GenerationClient] = None,
        concurrency: Optional[int] = None,
    ) -> BatchJob:
        """
        Launch a background batch and return its job record.

        The returned BatchJob is shared with the running task, so its
        phase and report update in real time.
        """
        cls._evict_finished(settings.BATCH_RETENTION)
        job = BatchJob(batch_id=uuid.uuid4().hex)
        cls._jobs[job.batch_id] = job

        async def _wrapper() -> None:
            try:
                await run_lesson_batch(job, items, generator, concurrency)
            except Exception as exc:
                logger.error("Batch %s crashed: %s", job.batch_id, exc, exc_info=True)
                job.phase = BatchPhase.FAILED
                job.errors.append(f"batch crash: {str(exc)[:200]}")
            finally:
                if job.report.completed_at is None:
                    job.report.completed_at = time.monotonic()

        task = asyncio.create_task(_wrapper())
        cls._tasks[job.batch_id] = task
        task.add_done_callback(lambda _t: cls._cleanup(job.batch_id))

        logger.info("Batch %s started with %d item(s)", job.batch_id, len(items))
        return job

    @classmethod
    def cancel(cls, batch_id: str) -> Optional[BatchJob]:
        job = cls._jobs.get(batch_id)
        if job is not None:
            job.token.cancel("cancelled")
            logger.info("Batch %s cancellation requested", batch_id)
        return job

    @classmethod
    async def wait(cls, batch_id: str) -> Optional[BatchJob]:
        """Await a running batch (used by tests and graceful shutdown)."""
        task = cls._tasks.get(batch_id)
        if task is not None:
            await asyncio.shield(task)
        return cls._jobs.get(batch_id)

    @classmethod
    def _evict_finished(cls, keep: int) -> None:
        """Drop the oldest finished jobs so at most *keep* remain."""
        finished = [
            batch_id for batch_id, job in cls._jobs.items()
            if job.finished and batch_id not in cls._tasks
        ]
        for batch_id in finished[:max(len(finished) - keep, 0)]:
            cls._jobs.pop(batch_id, None)
            logger.debug("Batch %s evicted", batch_id)

    @classmethod
    def _cleanup(cls, batch_id: str) -> None:
        """Remove the task reference (the job is kept for polling)."""
        cls._tasks.pop(batch_id, None)


# Module-level singleton instance
batch_manager = BatchManager
