"""
Column mapping from delimited rows to canonical records.

Curriculum rows come in three shapes, each handled by its own strategy:

* ``UserFormatStrategy`` - the sheet has a content-standard column plus an
  indicator or exemplar column; every field is located by header keyword,
  falling back to a fixed offset table when a keyword is missing.
* ``DefaultTemplateStrategy`` - no recognisable header and at least seven
  cells, laid out as the downloadable template.
* ``MinimalStrategy`` - anything shorter, read positionally.

Scheme rows are mapped by header map when one was detected, otherwise by
the fixed scheme column order.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from notegen.config import settings
from notegen.models.schemas import CurriculumRecord, SchemeItem
from notegen.utils.helpers import (
    canonical_term,
    canonical_week,
    normalize_grade_level,
    split_values,
)

logger = logging.getLogger(__name__)

EXEMPLAR_SPLIT = r"\r?\n|•|;"


def cell(row: Sequence[str], index: int) -> str:
    """row[index] or "" when the index is missing or out of range."""
    if index < 0 or index >= len(row):
        return ""
    return row[index] or ""


def split_indicators(text: str) -> List[str]:
    """
    Split an indicators cell into individual indicators.

    A line break is inserted before every "N. " token first, so
    "1. Identify parts 2. Describe uses" yields two items and neither
    loses its number.
    """
    if not text:
        return []
    spaced = re.sub(r"(\s|^)(\d+\.\s+)", r"\n\2", text)
    return split_values(spaced)


def split_exemplars(text: str) -> List[str]:
    return split_values(text, EXEMPLAR_SPLIT)


def content_code(content_standard: str) -> str:
    """Leading "B4.1.1.1"-style code, or "CS" when there is none."""
    match = re.match(r"^([A-Z0-9.]+)(?::|\s|$)", content_standard or "")
    return match.group(1) if match else "CS"


def content_description(content_standard: str, code: str) -> str:
    text = (content_standard or "").strip()
    if code != "CS" and text.startswith(code):
        return text[len(code):].lstrip(":").strip()
    return text


# ---------------------------------------------------------------------------
# Curriculum strategies
# ---------------------------------------------------------------------------

@dataclass
class RawCurriculumRow:
    """Cell values picked out of one row, before normalisation."""

    class_level: str = ""
    subject: str = ""
    strand: str = ""
    sub_strand: str = ""
    content_standard: str = ""
    indicators: str = ""
    exemplars: str = ""


@dataclass(frozen=True)
class FallbackOffsets:
    """Column positions used when a header keyword lookup fails."""

    strand: int
    sub_strand: int
    content: int
    indicators: int


# A subject column at index 1 pushes every later column one to the right
SUBJECT_AT_INDEX_1 = FallbackOffsets(strand=2, sub_strand=3, content=4, indicators=5)
DEFAULT_OFFSETS = FallbackOffsets(strand=1, sub_strand=2, content=3, indicators=4)


def _find(headers: Sequence[str], predicate) -> int:
    for index, header in enumerate(headers):
        if predicate(header):
            return index
    return -1


class UserFormatStrategy:
    """Header-driven mapping with a conditional fallback offset table."""

    name = "user_format"

    def __init__(self, headers: Sequence[str], default_subject: Optional[str] = None) -> None:
        h = [x.lower() for x in headers]
        self.default_subject = default_subject or settings.DEFAULT_SUBJECT
        self.class_idx = _find(h, lambda x: "class" in x or "grade" in x or "year" in x)
        self.subject_idx = _find(h, lambda x: "subject" in x)
        self.strand_idx = _find(h, lambda x: "strand" in x and "sub" not in x)
        self.sub_strand_idx = _find(h, lambda x: "sub" in x and ("strand" in x or "std" in x))
        self.content_idx = _find(h, lambda x: "content" in x or "standard" in x)
        self.indicator_idx = _find(
            h, lambda x: ("indicator" in x or "learning" in x) and "exemplar" not in x
        )
        self.fallback_indicator_idx = _find(h, lambda x: "indicator" in x or "learning" in x)
        self.exemplar_idx = _find(h, lambda x: "exemplar" in x)
        self.offsets = SUBJECT_AT_INDEX_1 if self.subject_idx == 1 else DEFAULT_OFFSETS

    @staticmethod
    def matches(headers: Optional[Sequence[str]]) -> bool:
        if not headers:
            return False
        h = [x.lower() for x in headers]
        has_content = any("content standard" in x for x in h)
        has_indicators = any("indicator" in x or "exemplar" in x for x in h)
        return has_content and has_indicators

    def map(self, row: Sequence[str]) -> RawCurriculumRow:
        o = self.offsets
        raw = RawCurriculumRow(
            class_level=cell(row, self.class_idx if self.class_idx >= 0 else 0),
            subject=cell(row, self.subject_idx) if self.subject_idx >= 0 else self.default_subject,
            strand=cell(row, self.strand_idx if self.strand_idx >= 0 else o.strand),
            sub_strand=cell(row, self.sub_strand_idx if self.sub_strand_idx >= 0 else o.sub_strand),
            content_standard=cell(row, self.content_idx if self.content_idx >= 0 else o.content),
        )

        if self.indicator_idx >= 0:
            raw.indicators = cell(row, self.indicator_idx)
        elif self.fallback_indicator_idx >= 0 and self.exemplar_idx == -1:
            raw.indicators = cell(row, self.fallback_indicator_idx)
        else:
            raw.indicators = cell(row, o.indicators)

        if self.exemplar_idx >= 0:
            raw.exemplars = cell(row, self.exemplar_idx)
        elif len(row) > 7:
            raw.exemplars = cell(row, 7)
        return raw


class DefaultTemplateStrategy:
    """Class, Strand, Sub-Strand, CS code, CS text, indicator code, indicator text, [exemplars]."""

    name = "default_template"
    min_cells = 7

    def __init__(self, default_subject: Optional[str] = None) -> None:
        self.default_subject = default_subject or settings.DEFAULT_SUBJECT

    def map(self, row: Sequence[str]) -> RawCurriculumRow:
        return RawCurriculumRow(
            class_level=cell(row, 0),
            subject=self.default_subject,
            strand=cell(row, 1),
            sub_strand=cell(row, 2),
            content_standard=f"{cell(row, 3)}: {cell(row, 4)}",
            indicators=f"{cell(row, 5)}: {cell(row, 6)}",
            exemplars=cell(row, 7),
        )


class MinimalStrategy:
    """Short rows: class, strand, sub-strand, content standard, indicators."""

    name = "minimal"

    def __init__(self, default_subject: Optional[str] = None) -> None:
        self.default_subject = default_subject or settings.DEFAULT_SUBJECT

    def map(self, row: Sequence[str]) -> RawCurriculumRow:
        return RawCurriculumRow(
            class_level=cell(row, 0),
            subject=self.default_subject,
            strand=cell(row, 1),
            sub_strand=cell(row, 2),
            content_standard=cell(row, 3),
            indicators=cell(row, 4),
        )


class CurriculumColumnMapper:
    """Maps curriculum rows to CurriculumRecord objects."""

    MIN_CELLS = 3

    def __init__(
        self,
        headers: Optional[Sequence[str]] = None,
        default_subject: Optional[str] = None,
        is_public: bool = False,
    ) -> None:
        self.is_public = is_public
        self.user_format = (
            UserFormatStrategy(headers, default_subject)
            if UserFormatStrategy.matches(headers)
            else None
        )
        self.default_template = DefaultTemplateStrategy(default_subject)
        self.minimal = MinimalStrategy(default_subject)

    def strategy_for(self, row: Sequence[str]):
        if self.user_format is not None:
            return self.user_format
        if len(row) >= DefaultTemplateStrategy.min_cells:
            return self.default_template
        return self.minimal

    def map_row(self, row: Sequence[str]) -> Optional[CurriculumRecord]:
        """Return a normalised record, or None for rows too short to use."""
        if len(row) < self.MIN_CELLS:
            return None
        raw = self.strategy_for(row).map(row)
        return self.normalize(raw)

    def map_rows(self, rows: Sequence[Sequence[str]]) -> List[CurriculumRecord]:
        records = [r for r in (self.map_row(row) for row in rows) if r is not None]
        logger.info("Mapped %d of %d curriculum rows", len(records), len(rows))
        return records

    def normalize(self, raw: RawCurriculumRow) -> CurriculumRecord:
        content_standard = raw.content_standard.strip()
        code = content_code(content_standard)
        return CurriculumRecord(
            grade_level=normalize_grade_level(raw.class_level),
            subject=raw.subject.strip(),
            strand=raw.strand.strip(),
            sub_strand=raw.sub_strand.strip(),
            content_standard_code=code,
            content_standard_description=content_description(content_standard, code),
            content_standards=[content_standard] if content_standard else [],
            learning_indicators=split_indicators(raw.indicators),
            exemplars=split_exemplars(raw.exemplars),
            is_public=self.is_public,
        )


# ---------------------------------------------------------------------------
# Scheme rows
# ---------------------------------------------------------------------------

# Week, Week Ending, Term, Subject, Class, Strand, Sub-Strand, Content Standard,
# Indicators, [Exemplars], Resources
SCHEME_POSITIONS = (
    "week", "week_ending", "term", "subject", "class_level", "strand",
    "sub_strand", "content_standard", "indicators",
)


class SchemeColumnMapper:
    """Maps scheme rows to SchemeItem objects."""

    def __init__(self, header_map: Optional[Dict[str, int]] = None) -> None:
        self.header_map = header_map or {}

    def map_row(self, row: Sequence[str]) -> SchemeItem:
        if self.header_map:
            values = self._from_header(row)
        else:
            values = self._from_positions(row)
        values["week"] = canonical_week(values["week"])
        values["term"] = canonical_term(values["term"])
        return SchemeItem(**values)

    def map_rows(self, rows: Sequence[Sequence[str]]) -> List[SchemeItem]:
        return [self.map_row(row) for row in rows]

    def _from_header(self, row: Sequence[str]) -> Dict[str, str]:
        hm = self.header_map
        fields = (
            "week", "term", "subject", "class_level", "strand", "sub_strand",
            "content_standard", "indicators", "exemplars", "resources",
        )
        values = {name: cell(row, hm.get(name, -1)) for name in fields}
        # No week-ending column: the second cell usually holds the date
        values["week_ending"] = cell(row, hm["week_ending"] if "week_ending" in hm else 1)
        return values

    @staticmethod
    def _from_positions(row: Sequence[str]) -> Dict[str, str]:
        values = {name: cell(row, i) for i, name in enumerate(SCHEME_POSITIONS)}
        if len(row) > 10:
            values["exemplars"] = cell(row, 9)
            values["resources"] = cell(row, 10)
        else:
            values["exemplars"] = ""
            values["resources"] = cell(row, 9)
        return values
