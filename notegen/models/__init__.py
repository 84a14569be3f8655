"""Schema models for notegen."""
from notegen.models.schemas import (
    CurriculumRecord,
    CurriculumImportResponse,
    SchemeItem,
    SchemeImportResponse,
    PhaseDetail,
    LessonPhases,
    LessonDocument,
    LessonParseResponse,
    BatchStatusResponse,
    HealthCheckResponse,
)

__all__ = [
    # Canonical records
    "CurriculumRecord",
    "SchemeItem",
    "PhaseDetail",
    "LessonPhases",
    "LessonDocument",
    # API payloads
    "CurriculumImportResponse",
    "SchemeImportResponse",
    "LessonParseResponse",
    "BatchStatusResponse",
    "HealthCheckResponse",
]
