"""
Lesson endpoints: model text -> structured lessons -> Word document.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import Response

from notegen.models.schemas import (
    LessonParseRequest,
    LessonParseResponse,
    LessonRenderRequest,
)
from notegen.services.lesson_renderer import LessonRenderer
from notegen.services.response_parser import parse_model_json

logger = logging.getLogger(__name__)

router = APIRouter()

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


@router.post("/parse", response_model=LessonParseResponse)
async def parse_lessons(body: LessonParseRequest) -> LessonParseResponse:
    """Parse a generation response into one lesson or several."""
    parsed = parse_model_json(body.text)
    return LessonParseResponse(
        kind=parsed.kind,
        count=len(parsed.lessons),
        lessons=[lesson.model_dump(by_alias=True) for lesson in parsed.lessons],
    )


@router.post("/render")
async def render_lessons(body: LessonRenderRequest) -> Response:
    """
    Render lessons to a .docx download.

    Send either ``lessons`` (structured) or ``text`` (a raw generation
    response, parsed first).  Several lessons share one document and are
    numbered "1 of N" .. "N of N".
    """
    if body.lessons:
        lessons = body.lessons
    elif body.text and body.text.strip():
        lessons = parse_model_json(body.text).lessons
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide either 'lessons' or 'text'.",
        )

    rendered = LessonRenderer().render(lessons)
    logger.info("render_lessons: %d lesson(s) -> %s", len(lessons), rendered.filename)
    return Response(
        content=rendered.content,
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{rendered.filename}"'},
    )
