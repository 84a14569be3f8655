"""
Service dependencies for FastAPI routes.

Routes receive their draft store and generation client through these
providers so tests can swap them via ``app.dependency_overrides``.
"""
from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import HTTPException, UploadFile, status

from notegen.config import settings
from notegen.services.draft_store import DraftStore, FileDraftStore
from notegen.services.errors import StructuralParseError
from notegen.services.generation_client import GenerationClient
from notegen.services.text_extractor import TextExtractor

logger = logging.getLogger(__name__)


@lru_cache
def _file_draft_store() -> FileDraftStore:
    return FileDraftStore()


async def get_draft_store() -> DraftStore:
    """The process-wide file-backed draft store."""
    return _file_draft_store()


async def get_text_extractor() -> TextExtractor:
    return TextExtractor()


async def get_generation_client() -> GenerationClient:
    """
    A client for the configured generation endpoint.

    A fresh client per request keeps its concurrency semaphore bound to the
    running event loop.
    """
    return GenerationClient()


async def read_upload(file: UploadFile) -> bytes:
    """
    Read an uploaded file while enforcing MAX_FILE_SIZE.

    Raises:
        HTTPException 400: the upload has no filename.
        HTTPException 413: the upload is larger than MAX_FILE_SIZE.
    """
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Upload must include a filename.",
        )

    data = bytearray()
    while True:
        chunk = await file.read(1024 * 1024)   # 1 MB slices
        if not chunk:
            break
        data.extend(chunk)
        if len(data) > settings.MAX_FILE_SIZE:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=(
                    f"File exceeds the {settings.MAX_FILE_SIZE // (1024 * 1024)} MB "
                    "size limit."
                ),
            )
    logger.info("Received %r (%s bytes)", file.filename, f"{len(data):,}")
    return bytes(data)


def document_text_for_generation(
    data: bytes,
    filename: str,
    extractor: TextExtractor,
    generator: GenerationClient,
) -> str:
    """
    Extract the text of an uploaded document that will be sent for generation.

    Raises:
        HTTPException 503: no generation endpoint is configured.
        StructuralParseError: the document yielded no text, only a placeholder.
    """
    if not generator.configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Generation endpoint is not configured.",
        )

    text = extractor.extract_text(data, filename)
    if not text.strip() or (text.startswith("[") and text.endswith("]")):
        raise StructuralParseError(text.strip("[]") or "Document contains no extractable text.")
    return text
