"""
Curriculum ingestion endpoints.

POST /extract-text — any supported file -> plain text.
POST /extract-url  — remote file (by URL) -> plain text.
POST /import       — curriculum CSV or JSON, or a PDF/DOCX/TXT read through
                     the generation endpoint -> merged curriculum records.
GET  /             — curriculum records saved by previous imports.
GET  /template     — downloadable curriculum CSV template.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import PlainTextResponse, Response

from notegen.config import settings
from notegen.dependencies.services import (
    document_text_for_generation,
    get_draft_store,
    get_generation_client,
    get_text_extractor,
    read_upload,
)
from notegen.models.schemas import (
    CurriculumImportResponse,
    CurriculumRecord,
    ExtractUrlRequest,
    MergePolicy,
)
from notegen.services.csv_export import curriculum_template_csv
from notegen.services.draft_store import DraftStore
from notegen.services.generation_client import GenerationClient
from notegen.services.importer import (
    BINARY_UPLOAD_MESSAGE,
    CurriculumImport,
    import_curriculum_csv,
    import_curriculum_json,
    import_curriculum_records,
)
from notegen.services.response_parser import parse_model_records
from notegen.services.text_extractor import TextExtractor

logger = logging.getLogger(__name__)

router = APIRouter()

CURRICULUM_KEY = "curriculum_records"

CURRICULUM_SYSTEM_MESSAGE = "You are a data extraction assistant that outputs strict JSON."

# Documents are cut to this many characters before prompting
CURRICULUM_TEXT_LIMIT = 100_000

CURRICULUM_PROMPT = (
    "Extract the structured curriculum data from the text below. It may cover "
    "several classes (for example Basic 4, Basic 5 and Basic 6); extract every "
    "unit for every class.\n"
    "Reply with a JSON array only. Each element is one sub-strand and must have "
    "the keys: grade_level, subject, strand, sub_strand, content_standards "
    "(array of \"CODE: description\" strings), learning_indicators (array of "
    "strings), exemplars (string, may be empty).\n\n"
    "{text}"
)


async def _saved_records(store: DraftStore) -> List[CurriculumRecord]:
    saved = await store.load(CURRICULUM_KEY) or []
    return [CurriculumRecord.model_validate(row) for row in saved]


async def _import_document(
    data: bytes,
    filename: str,
    policy: MergePolicy,
    is_public: bool,
    existing: List[CurriculumRecord],
    extractor: TextExtractor,
    generator: GenerationClient,
) -> CurriculumImport:
    text = document_text_for_generation(data, filename, extractor, generator)
    prompt = CURRICULUM_PROMPT.format(text=text[:CURRICULUM_TEXT_LIMIT])
    response = await generator.generate(prompt, CURRICULUM_SYSTEM_MESSAGE)
    objects = parse_model_records(response)
    logger.info("Generation returned %d curriculum object(s) for %s", len(objects), filename)
    return import_curriculum_records(objects, policy, is_public=is_public, existing=existing)


# ---------------------------------------------------------------------------
# Text extraction
# ---------------------------------------------------------------------------

@router.post("/extract-text", response_class=PlainTextResponse)
async def extract_text(
    file: UploadFile = File(...),
    extractor: TextExtractor = Depends(get_text_extractor),
) -> str:
    """
    Return the plain text of an uploaded file.

    Unsupported or unreadable files still answer 200 with a bracketed
    placeholder describing the problem.
    """
    data = await read_upload(file)
    return extractor.extract_text(data, file.filename)


@router.post("/extract-url", response_class=PlainTextResponse)
async def extract_url(
    body: ExtractUrlRequest,
    extractor: TextExtractor = Depends(get_text_extractor),
) -> str:
    """Download a stored file and return its plain text (placeholders on failure)."""
    return await extractor.fetch_and_extract(body.url, body.filename)


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

@router.post(
    "/import",
    response_model=CurriculumImportResponse,
    status_code=status.HTTP_200_OK,
)
async def import_curriculum(
    file: UploadFile = File(...),
    is_public: bool = Form(False),
    policy: MergePolicy = Query(MergePolicy(settings.CURRICULUM_MERGE_POLICY)),
    store: DraftStore = Depends(get_draft_store),
    extractor: TextExtractor = Depends(get_text_extractor),
    generator: GenerationClient = Depends(get_generation_client),
) -> CurriculumImportResponse:
    """
    Import a curriculum CSV, JSON in the persistence shape, or a document.

    PDF/DOCX/TXT documents are read to text and turned into curriculum
    objects by the generation endpoint.  Rows sharing a merge key are folded
    into one record and merged into the records saved by earlier imports,
    so importing the same file twice creates nothing new.
    """
    ext = Path(file.filename or "").suffix.lower()
    if ext in settings.SPREADSHEET_UPLOAD_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=BINARY_UPLOAD_MESSAGE)

    data = await read_upload(file)
    existing = await _saved_records(store)

    # ParseError subclasses propagate to the 422 handler
    if ext in settings.DOCUMENT_UPLOAD_TYPES:
        outcome = await _import_document(
            data, file.filename, policy, is_public, existing, extractor, generator
        )
    elif ext == ".json":
        text = data.decode("utf-8-sig", errors="replace")
        outcome = import_curriculum_json(text, policy, is_public=is_public, existing=existing)
    else:
        text = data.decode("utf-8-sig", errors="replace")
        outcome = import_curriculum_csv(
            text,
            policy,
            is_public=is_public,
            existing=existing,
            default_subject=settings.DEFAULT_SUBJECT,
        )

    records = outcome.result.records
    await store.save(CURRICULUM_KEY, [r.model_dump() for r in records])

    message = (
        f"Processed {outcome.rows_processed} row(s): "
        f"{outcome.result.created} new record(s), {outcome.result.merged} merged."
    )
    logger.info("import_curriculum: %s (%s)", message, file.filename)
    return CurriculumImportResponse(
        filename=file.filename,
        policy=policy,
        rows_processed=outcome.rows_processed,
        records_created=outcome.result.created,
        records_merged=outcome.result.merged,
        records=[r.to_db_row() for r in records],
        message=message,
    )


@router.get("/", response_model=List[CurriculumRecord])
async def list_curriculum(store: DraftStore = Depends(get_draft_store)) -> List[CurriculumRecord]:
    return await _saved_records(store)


@router.get("/template")
async def curriculum_template() -> Response:
    """Downloadable CSV showing the expected curriculum columns."""
    return Response(
        content=curriculum_template_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="curriculum_template.csv"'},
    )
