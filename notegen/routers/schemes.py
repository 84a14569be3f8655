"""
Scheme-of-learning workspace endpoints.

POST   /import    — CSV, or PDF/DOCX/TXT read through the generation endpoint.
GET    /          — saved scheme items.
GET    /export    — saved items as CSV.
GET    /template  — downloadable scheme CSV template.
DELETE /          — clear the workspace (optionally one class/subject).
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import Response

from notegen.config import settings
from notegen.dependencies.services import (
    document_text_for_generation,
    get_draft_store,
    get_generation_client,
    get_text_extractor,
    read_upload,
)
from notegen.models.schemas import SchemeImportResponse, SchemeItem
from notegen.services.csv_export import export_scheme_csv, scheme_template_csv
from notegen.services.draft_store import SCHEME_WORKSPACE_KEY, DraftStore
from notegen.services.generation_client import GenerationClient
from notegen.services.importer import BINARY_UPLOAD_MESSAGE, parse_scheme_csv
from notegen.services.record_merger import SchemeMerger
from notegen.services.response_parser import parse_model_records
from notegen.services.text_extractor import TextExtractor
from notegen.utils.helpers import canonical_term, canonical_week

logger = logging.getLogger(__name__)

router = APIRouter()

SCHEME_SYSTEM_MESSAGE = (
    "You convert scheme of learning documents into JSON. "
    "Reply with a JSON array only."
)

SCHEME_PROMPT = (
    "Extract every weekly entry from the scheme of learning below as a JSON array. "
    "Each element must have the keys: week, weekEnding, term, subject, classLevel, "
    "strand, subStrand, contentStandard, indicators, exemplars, resources.\n\n"
    "{text}"
)


async def _saved_items(store: DraftStore) -> List[SchemeItem]:
    saved = await store.load(SCHEME_WORKSPACE_KEY) or []
    return [SchemeItem.model_validate(row) for row in saved]


async def _save_items(store: DraftStore, items: List[SchemeItem]) -> None:
    await store.save(SCHEME_WORKSPACE_KEY, [item.model_dump() for item in items])


def _canonical(item: SchemeItem) -> SchemeItem:
    item.week = canonical_week(item.week)
    item.term = canonical_term(item.term)
    return item


async def _items_from_document(
    data: bytes,
    filename: str,
    extractor: TextExtractor,
    generator: GenerationClient,
) -> List[SchemeItem]:
    text = document_text_for_generation(data, filename, extractor, generator)
    response = await generator.generate(SCHEME_PROMPT.format(text=text), SCHEME_SYSTEM_MESSAGE)
    records = parse_model_records(response)
    items = [_canonical(SchemeItem.model_validate(r)) for r in records]
    return SchemeMerger().merge(items)


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

@router.post("/import", response_model=SchemeImportResponse)
async def import_scheme(
    file: UploadFile = File(...),
    store: DraftStore = Depends(get_draft_store),
    extractor: TextExtractor = Depends(get_text_extractor),
    generator: GenerationClient = Depends(get_generation_client),
) -> SchemeImportResponse:
    """
    Add the entries of an uploaded scheme to the workspace.

    Entries whose (class, subject, term, week) are already saved are
    skipped and counted.
    """
    ext = Path(file.filename or "").suffix.lower()
    if ext in settings.SPREADSHEET_UPLOAD_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=BINARY_UPLOAD_MESSAGE)
    if ext != ".csv" and ext not in settings.DOCUMENT_UPLOAD_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type '{ext}'. Accepted: .csv, {', '.join(settings.DOCUMENT_UPLOAD_TYPES)}",
        )

    data = await read_upload(file)
    if ext == ".csv":
        parsed = parse_scheme_csv(data.decode("utf-8-sig", errors="replace"))
    else:
        parsed = await _items_from_document(data, file.filename, extractor, generator)

    existing = await _saved_items(store)
    summary = SchemeMerger.filter_new(existing, parsed)
    combined = existing + summary.added
    await _save_items(store, combined)

    message = f"Added {len(summary.added)} item(s); skipped {summary.skipped} already saved."
    logger.info("import_scheme: %s (%s)", message, file.filename)
    return SchemeImportResponse(
        filename=file.filename,
        parsed=len(parsed),
        added=len(summary.added),
        skipped=summary.skipped,
        total=len(combined),
        items=summary.added,
        message=message,
    )


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------

@router.get("/", response_model=List[SchemeItem])
async def list_scheme(store: DraftStore = Depends(get_draft_store)) -> List[SchemeItem]:
    return await _saved_items(store)


@router.get("/export")
async def export_scheme(store: DraftStore = Depends(get_draft_store)) -> Response:
    """Saved scheme items as a CSV download."""
    items = await _saved_items(store)
    return Response(
        content=export_scheme_csv(items),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="scheme_of_learning.csv"'},
    )


@router.get("/template")
async def scheme_template() -> Response:
    return Response(
        content=scheme_template_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="scheme_template.csv"'},
    )


@router.delete("/")
async def clear_scheme(
    class_level: Optional[str] = Query(None),
    subject: Optional[str] = Query(None),
    store: DraftStore = Depends(get_draft_store),
) -> Dict[str, int]:
    """Remove saved items, all of them or only those matching the filters."""
    items = await _saved_items(store)
    if class_level is None and subject is None:
        await store.clear(SCHEME_WORKSPACE_KEY)
        return {"removed": len(items), "remaining": 0}

    def matches(item: SchemeItem) -> bool:
        if class_level is not None and item.class_level != class_level:
            return False
        return subject is None or item.subject == subject

    remaining = [item for item in items if not matches(item)]
    await _save_items(store, remaining)
    return {"removed": len(items) - len(remaining), "remaining": len(remaining)}
