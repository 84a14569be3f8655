"""
Import orchestration: raw upload text -> canonical records.

Chains the delimited parser, column mappers and mergers for curriculum and
scheme uploads, and accepts curriculum JSON in the persistence shape.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from notegen.models.schemas import CurriculumRecord, SchemeItem
from notegen.services.column_mapper import (
    CurriculumColumnMapper,
    SchemeColumnMapper,
    content_code,
    content_description,
    split_exemplars,
    split_indicators,
)
from notegen.services.delimited_parser import parse_delimited, split_lines
from notegen.services.errors import StructuralParseError
from notegen.services.record_merger import MergePolicy, MergeResult, RecordMerger, SchemeMerger
from notegen.utils.helpers import normalize_grade_level

logger = logging.getLogger(__name__)

BINARY_UPLOAD_MESSAGE = (
    "File appears to be binary (like Excel .xlsx). "
    "Please save as CSV (Comma Delimited) and try again."
)


@dataclass
class CurriculumImport:
    rows_processed: int
    result: MergeResult


def ensure_text_upload(text: str) -> None:
    """Reject spreadsheet binaries that were uploaded under a text name."""
    if "\x00" in text:
        raise StructuralParseError(BINARY_UPLOAD_MESSAGE)


def import_curriculum_csv(
    text: str,
    policy: MergePolicy = MergePolicy.CONTENT_STANDARD,
    is_public: bool = False,
    existing: Optional[Iterable[CurriculumRecord]] = None,
    default_subject: Optional[str] = None,
) -> CurriculumImport:
    """
    Parse a curriculum CSV and merge its rows into canonical records.

    Raises:
        StructuralParseError: binary content, fewer than two lines, or no
            row survived column mapping.
    """
    ensure_text_upload(text)
    if len(split_lines(text)) < 2:
        raise StructuralParseError("CSV file must have headers and at least one data row")

    table = parse_delimited(text, assume_header=True)
    mapper = CurriculumColumnMapper(table.headers, default_subject=default_subject, is_public=is_public)
    records = mapper.map_rows(table.rows)
    if not records:
        raise StructuralParseError(
            "Could not find any valid curriculum items in the CSV. Please check the headers."
        )

    result = RecordMerger(policy).merge(records, existing)
    return CurriculumImport(rows_processed=len(table.rows), result=result)


def _as_list(value: Any, splitter) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return splitter(str(value))


def curriculum_from_json(payload: Any, is_public: bool = False) -> List[CurriculumRecord]:
    """Build records from one curriculum object or a list of them."""
    items = payload if isinstance(payload, list) else [payload]
    records: List[CurriculumRecord] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        standards = _as_list(item.get("content_standards"), lambda s: [s.strip()] if s.strip() else [])
        first = standards[0] if standards else ""
        code = content_code(first)
        records.append(CurriculumRecord(
            grade_level=normalize_grade_level(str(item.get("grade_level") or "")),
            subject=str(item.get("subject") or ""),
            strand=str(item.get("strand") or ""),
            sub_strand=str(item.get("sub_strand") or ""),
            content_standard_code=code,
            content_standard_description=content_description(first, code),
            content_standards=standards,
            learning_indicators=_as_list(item.get("learning_indicators"), split_indicators),
            exemplars=_as_list(item.get("exemplars"), split_exemplars),
            is_public=bool(item.get("is_public", is_public)),
        ))
    return records


def import_curriculum_json(
    text: str,
    policy: MergePolicy = MergePolicy.CONTENT_STANDARD,
    is_public: bool = False,
    existing: Optional[Iterable[CurriculumRecord]] = None,
) -> CurriculumImport:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StructuralParseError(f"Invalid JSON: {exc.msg}") from exc
    return import_curriculum_records(payload, policy, is_public=is_public, existing=existing)


def import_curriculum_records(
    payload: Any,
    policy: MergePolicy = MergePolicy.CONTENT_STANDARD,
    is_public: bool = False,
    existing: Optional[Iterable[CurriculumRecord]] = None,
) -> CurriculumImport:
    """Merge decoded curriculum objects (from a JSON file or a model response)."""
    records = curriculum_from_json(payload, is_public=is_public)
    if not records:
        raise StructuralParseError("No curriculum objects found.")
    result = RecordMerger(policy).merge(records, existing)
    return CurriculumImport(rows_processed=len(records), result=result)


def parse_scheme_csv(text: str) -> List[SchemeItem]:
    """Parse a scheme-of-learning CSV into merged SchemeItems."""
    ensure_text_upload(text)
    table = parse_delimited(text)
    items = SchemeColumnMapper(table.header_map).map_rows(table.rows)
    merged = SchemeMerger().merge(items)
    if not merged:
        raise StructuralParseError("No scheme rows found in the file.")
    logger.info("Scheme CSV: %d rows -> %d items", len(items), len(merged))
    return merged
