"""
Pydantic schemas for the canonical curriculum/lesson model and API payloads.
"""
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum


def _as_text(value: Any) -> str:
    """Coerce loosely-typed model output (numbers, lists, null) to text."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "\n".join(_as_text(v) for v in value if v is not None)
    if isinstance(value, dict):
        return "\n".join(f"{k}: {_as_text(v)}" for k, v in value.items())
    return str(value)


# Enums
class MergePolicy(str, Enum):
    """How curriculum merge keys are built."""

    # (grade, strand, sub-strand, content-standard code)
    CONTENT_STANDARD = "content_standard"
    # as above plus the joined indicator list, so distinct indicator sets
    # under one content standard stay separate records
    INDICATOR_SET = "indicator_set"


class ParsedKind(str, Enum):
    """Discriminant of a parsed model response."""

    SINGLE = "single"
    MANY = "many"


# Curriculum
class CurriculumRecord(BaseModel):
    """One content-standard unit for a class/subject."""

    grade_level: str
    subject: str = ""
    strand: str = ""
    sub_strand: str = ""
    content_standard_code: str = "CS"
    content_standard_description: str = ""
    # Every distinct content-standard text merged into this record
    content_standards: List[str] = Field(default_factory=list)
    learning_indicators: List[str] = Field(default_factory=list)
    exemplars: List[str] = Field(default_factory=list)
    is_public: bool = False

    def to_db_row(self) -> Dict[str, Any]:
        """Row shape expected by the curricula table."""
        return {
            "grade_level": self.grade_level,
            "subject": self.subject,
            "strand": self.strand,
            "sub_strand": self.sub_strand,
            "content_standards": list(self.content_standards),
            "learning_indicators": list(self.learning_indicators),
            "exemplars": "\n".join(self.exemplars),
            "is_public": self.is_public,
        }


class ExtractUrlRequest(BaseModel):
    """A remote file to download and extract."""

    url: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)


class CurriculumImportResponse(BaseModel):
    """Result of a curriculum CSV/JSON import."""

    filename: str
    policy: MergePolicy
    rows_processed: int
    records_created: int
    records_merged: int
    records: List[Dict[str, Any]]
    message: str


# Scheme of learning
class SchemeItem(BaseModel):
    """One subject/week teaching plan entry."""

    model_config = ConfigDict(populate_by_name=True)

    week: str = ""
    week_ending: str = Field("", validation_alias=AliasChoices("week_ending", "weekEnding"))
    term: str = ""
    subject: str = ""
    class_level: str = Field("", validation_alias=AliasChoices("class_level", "classLevel"))
    strand: str = ""
    sub_strand: str = Field("", validation_alias=AliasChoices("sub_strand", "subStrand"))
    content_standard: str = Field(
        "", validation_alias=AliasChoices("content_standard", "contentStandard")
    )
    indicators: str = ""
    exemplars: str = ""
    resources: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value).strip()

    @property
    def merge_key(self) -> str:
        return f"{self.week.strip()}-{self.subject.strip()}-{self.class_level.strip()}"

    @property
    def signature(self) -> str:
        return f"{self.class_level}|{self.subject}|{self.term}|{self.week}"


class SchemeImportResponse(BaseModel):
    """Result of a scheme import into a workspace."""

    filename: str
    parsed: int
    added: int
    skipped: int
    total: int
    items: List[SchemeItem]
    message: str


# Lessons
class PhaseDetail(BaseModel):
    """One teaching phase of a lesson."""

    model_config = ConfigDict(populate_by_name=True)

    duration: str = ""
    learner_activities: str = Field(
        "",
        validation_alias=AliasChoices("learner_activities", "learnerActivities", "activities"),
        serialization_alias="learnerActivities",
    )
    resources: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)


class LessonPhases(BaseModel):
    """Starter, new-learning and reflection phases."""

    model_config = ConfigDict(populate_by_name=True)

    starter: PhaseDetail = Field(
        default_factory=PhaseDetail,
        validation_alias=AliasChoices("starter", "phase1_starter"),
    )
    new_learning: PhaseDetail = Field(
        default_factory=PhaseDetail,
        validation_alias=AliasChoices("new_learning", "newLearning", "phase2_newLearning"),
        serialization_alias="newLearning",
    )
    reflection: PhaseDetail = Field(
        default_factory=PhaseDetail,
        validation_alias=AliasChoices("reflection", "phase3_reflection"),
    )

    @field_validator("*", mode="before")
    @classmethod
    def _empty_phase(cls, value: Any) -> Any:
        if isinstance(value, (dict, PhaseDetail)):
            return value
        return {"learner_activities": value}


_LESSON_TEXT_FIELDS = (
    "term", "week_number", "week_ending", "day", "subject", "duration", "strand",
    "class_level", "class_size", "sub_strand", "content_standard", "indicator",
    "lesson_ordinal", "performance_indicator", "core_competencies", "keywords",
    "reference",
)


class LessonDocument(BaseModel):
    """Canonical lesson shape consumed by the renderer."""

    model_config = ConfigDict(populate_by_name=True)

    term: str = ""
    week_number: str = Field(
        "", validation_alias=AliasChoices("week_number", "weekNumber", "week"),
        serialization_alias="weekNumber",
    )
    week_ending: str = Field(
        "", validation_alias=AliasChoices("week_ending", "weekEnding"),
        serialization_alias="weekEnding",
    )
    day: str = ""
    subject: str = ""
    duration: str = ""
    strand: str = ""
    class_level: str = Field(
        "", validation_alias=AliasChoices("class_level", "class", "classLevel", "level"),
        serialization_alias="class",
    )
    class_size: str = Field(
        "", validation_alias=AliasChoices("class_size", "classSize"),
        serialization_alias="classSize",
    )
    sub_strand: str = Field(
        "", validation_alias=AliasChoices("sub_strand", "subStrand"),
        serialization_alias="subStrand",
    )
    content_standard: str = Field(
        "", validation_alias=AliasChoices("content_standard", "contentStandard"),
        serialization_alias="contentStandard",
    )
    indicator: str = ""
    lesson_ordinal: str = Field(
        "", validation_alias=AliasChoices("lesson_ordinal", "lessonOrdinal", "lesson"),
        serialization_alias="lesson",
    )
    performance_indicator: str = Field(
        "", validation_alias=AliasChoices("performance_indicator", "performanceIndicator"),
        serialization_alias="performanceIndicator",
    )
    core_competencies: str = Field(
        "", validation_alias=AliasChoices("core_competencies", "coreCompetencies"),
        serialization_alias="coreCompetencies",
    )
    keywords: str = ""
    reference: str = ""
    phases: LessonPhases = Field(default_factory=LessonPhases)

    @field_validator(*_LESSON_TEXT_FIELDS, mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if isinstance(value, (list, tuple)):
            return ", ".join(_as_text(v) for v in value if v is not None)
        return _as_text(value)

    @field_validator("phases", mode="before")
    @classmethod
    def _default_phases(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, LessonPhases)) else {}


class LessonParseRequest(BaseModel):
    """Raw model output to parse."""

    text: str = Field(..., min_length=1)


class LessonParseResponse(BaseModel):
    """Tagged parse result."""

    kind: ParsedKind
    count: int
    lessons: List[Dict[str, Any]]


class LessonRenderRequest(BaseModel):
    """Either raw model text or already-structured lessons."""

    text: Optional[str] = None
    lessons: Optional[List[LessonDocument]] = None


# Batches
class BatchItemRequest(BaseModel):
    """One unit of batch work: a ready model response or a prompt."""

    label: str = ""
    response_text: Optional[str] = None
    prompt: Optional[str] = None
    system_message: Optional[str] = None


class BatchCreateRequest(BaseModel):
    """Items to generate, parse and render concurrently."""

    items: List[BatchItemRequest] = Field(..., min_length=1)


class BatchItemStatusResponse(BaseModel):
    index: int
    label: str
    status: str
    filename: Optional[str] = None
    error: Optional[str] = None


class BatchStatusResponse(BaseModel):
    """Live status of a background batch."""

    batch_id: str
    phase: str
    total: int
    succeeded: int
    failed: int
    skipped: int
    cancelled: int
    halted_reason: Optional[str] = None
    elapsed_seconds: float
    items: List[BatchItemStatusResponse] = Field(default_factory=list)
    archive_filename: Optional[str] = None


# Health
class HealthCheckResponse(BaseModel):
    """Schema for health check response."""

    status: str
    version: str
    generation: str
    timestamp: datetime
