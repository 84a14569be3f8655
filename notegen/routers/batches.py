"""
Background lesson batches.

Route summary
-------------
POST /                — start a batch; returns its id immediately.
GET  /{id}            — live counters and per-item status.
POST /{id}/cancel     — stop starting new items.
GET  /{id}/archive    — zip of every document rendered so far.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from notegen.dependencies.services import get_generation_client
from notegen.models.schemas import (
    BatchCreateRequest,
    BatchItemStatusResponse,
    BatchStatusResponse,
)
from notegen.services.batch_manager import BatchJob, BatchPhase, batch_manager
from notegen.services.generation_client import GenerationClient

logger = logging.getLogger(__name__)

router = APIRouter()


def _status_response(job: BatchJob) -> BatchStatusResponse:
    report = job.report
    return BatchStatusResponse(
        batch_id=job.batch_id,
        phase=job.phase.value,
        total=report.total,
        succeeded=report.succeeded,
        failed=report.failed,
        skipped=report.skipped,
        cancelled=report.cancelled,
        halted_reason=report.halted_reason,
        elapsed_seconds=report.elapsed_seconds,
        items=[
            BatchItemStatusResponse(
                index=item.index,
                label=item.label,
                status=item.status.value,
                filename=job.item_filename(item),
                error=item.error,
            )
            for item in report.items
        ],
        archive_filename=job.archive_filename,
    )


def _get_job(batch_id: str) -> BatchJob:
    job = batch_manager.get(batch_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Batch {batch_id} not found.",
        )
    return job


@router.post(
    "/",
    response_model=BatchStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a background lesson batch",
)
async def create_batch(
    body: BatchCreateRequest,
    generator: GenerationClient = Depends(get_generation_client),
) -> BatchStatusResponse:
    """
    Queue every item for generate -> parse -> render in the worker pool.

    Items carrying ``response_text`` skip generation.  Failures are counted
    per item; an exhausted generation balance halts the rest of the batch.
    Poll GET /{id} for progress.
    """
    job = batch_manager.start(body.items, generator if generator.configured else None)
    return _status_response(job)


@router.get("/{batch_id}", response_model=BatchStatusResponse)
async def get_batch(batch_id: str) -> BatchStatusResponse:
    return _status_response(_get_job(batch_id))


@router.post("/{batch_id}/cancel", response_model=BatchStatusResponse)
async def cancel_batch(batch_id: str) -> BatchStatusResponse:
    """Items already running finish; queued items are reported as cancelled."""
    _get_job(batch_id)
    job = batch_manager.cancel(batch_id)
    return _status_response(job)


@router.get("/{batch_id}/archive")
async def download_archive(batch_id: str) -> Response:
    job = _get_job(batch_id)
    if job.phase in (BatchPhase.QUEUED, BatchPhase.RUNNING, BatchPhase.ARCHIVING):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Batch {batch_id} is still {job.phase.value}.",
        )
    if job.archive is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Batch {batch_id} produced no documents.",
        )
    return Response(
        content=job.archive,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{job.archive_filename}"'},
    )
