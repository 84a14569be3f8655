"""
Weekly lesson plan renderer (python-docx).

Each lesson becomes one page section: three centred title lines followed
by five tables whose column widths (in twips) match the printed NaCCA
lesson-plan template:

    1. week ending / day / subject, duration / strand, class / size / sub-strand
       [1500, 600, 1100, 2600, 2600, 2100]
    2. content standard / indicator / lesson          [2100, 6300, 2100]
    3. performance indicator / core competencies      [8232, 2268]  fixed
    4. keywords / reference                           [2000, 8500]
    5. phase / learner activities / resources         [1701, 6497, 2268]  fixed

Display values (term, week, class, subject casing, reference line,
performance-indicator prefix) are derived here and never stored.
"""
from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from docx import Document
from docx.enum.section import WD_SECTION
from docx.enum.table import WD_CELL_VERTICAL_ALIGNMENT
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Pt, Twips

from notegen.models.schemas import LessonDocument, PhaseDetail
from notegen.services.text_formatting import (
    capitalize_first_letter,
    clean_and_split_text,
    format_generated_content,
    parse_markdown_line,
)
from notegen.utils.helpers import class_abbreviation, subject_abbreviation, week_abbreviation

logger = logging.getLogger(__name__)

FONT_NAME = "Segoe UI"
BODY_SIZE = Pt(10)
SMALL_SIZE = Pt(9)
TITLE_SIZE = Pt(12)
PAGE_MARGIN = Twips(720)
CELL_MARGIN = 100
HEADER_FILL = "D9D9D9"

HEADER_WIDTHS = [1500, 600, 1100, 2600, 2600, 2100]
STANDARDS_WIDTHS = [2100, 6300, 2100]
COMPETENCY_WIDTHS = [8232, 2268]
KEYWORD_WIDTHS = [2000, 8500]
PHASE_WIDTHS = [1701, 6497, 2268]

PERFORMANCE_PREFIX = "By the end of the lesson, learners will be able to"

PHASE_ROWS = (
    ("starter", "PHASE 1: STARTER", "10 mins"),
    ("new_learning", "PHASE 2: NEW LEARNING", "40 mins"),
    ("reflection", "PHASE 3: REFLECTION", "10 mins"),
)


# ---------------------------------------------------------------------------
# Display formatting
# ---------------------------------------------------------------------------

def format_subject(subject: str) -> str:
    return " ".join(w[:1].upper() + w[1:].lower() for w in (subject or "").split(" "))


def format_term(term: str) -> str:
    """"" -> FIRST TERM, "2" -> TERM 2, "second" -> SECOND TERM, else upper."""
    if not term:
        return "FIRST TERM"
    clean = term.strip().upper()
    if re.fullmatch(r"\d+", clean):
        return f"TERM {clean}"
    if clean in ("FIRST", "SECOND", "THIRD"):
        return f"{clean} TERM"
    return clean


def format_week(week: str) -> str:
    if not week:
        return "WEEK 1"
    clean = week.strip().upper()
    if not clean.startswith("WEEK"):
        return f"WEEK {clean}"
    return clean


def format_class(class_text: str) -> str:
    """"basic6" -> "Basic 6", "JHS 1" -> "Jhs 1"."""
    if not class_text:
        return ""
    spaced = re.sub(r"([A-Za-z]+)(\d+)", r"\1 \2", class_text)
    return " ".join(w[:1].upper() + w[1:] for w in spaced.lower().split(" "))


def clean_content_standard(text: str) -> str:
    """Collapse a repeated leading code: "B1.2.1.1.: B1.2.1.1. Demonstrate" -> "B1.2.1.1: Demonstrate"."""
    if not text:
        return ""
    match = re.match(
        r"^([A-Z0-9.]*[A-Z0-9])(?:\.:|:|.)\s*\1\.?\s*(.*)", text, flags=re.IGNORECASE | re.DOTALL
    )
    if match:
        return f"{match.group(1)}: {match.group(2)}"
    return text


def clean_strand(text: str) -> str:
    """Drop "Strand 1:", "Sub-strand 2:" and bare "3:" prefixes."""
    if not text:
        return ""
    return re.sub(r"^(?:Strand|Sub[- ]?Strand)?\s*\d+\s*:\s*", "", text, flags=re.IGNORECASE).strip()


def ensure_performance_prefix(text: str) -> str:
    if not text:
        return ""
    clean = text.strip()
    if clean.lower().startswith(PERFORMANCE_PREFIX.lower()):
        return clean
    return f"{PERFORMANCE_PREFIX}: {clean}"


def lesson_cell_text(ordinal: str) -> str:
    """"2 of 3" -> "Lesson: 2 of 3"; "1" -> "Lesson: 1 of 1"; "Lesson 2 of 3" -> "Lesson: 2 of 3"."""
    text = (ordinal or "").strip() or "1 of 1"
    if re.fullmatch(r"\d+", text):
        text = f"{text} of 1"
    lowered = text.lower()
    if lowered.startswith("lesson: "):
        return text
    if lowered.startswith("lesson "):
        return re.sub(r"^Lesson\s+", "Lesson: ", text, flags=re.IGNORECASE)
    return f"Lesson: {text}"


def reference_text(lesson: LessonDocument) -> str:
    return f"NaCCA {format_subject(lesson.subject)} Curriculum for {format_class(lesson.class_level)}"


def prepare_lessons(lessons: Sequence[LessonDocument]) -> List[LessonDocument]:
    """
    Copy *lessons*, numbering them "1 of N" ... "N of N" when N > 1.

    Any ordinal supplied by the generator is overwritten for multi-lesson
    batches; a lone lesson keeps its own ordinal.
    """
    total = len(lessons)
    prepared = [lesson.model_copy(deep=True) for lesson in lessons]
    if total > 1:
        for index, lesson in enumerate(prepared):
            lesson.lesson_ordinal = f"{index + 1} of {total}"
    return prepared


def lesson_filename(lessons: Sequence[LessonDocument], today: Optional[date] = None) -> str:
    """"{class}-{subject}-{week}.docx" from the first lesson, e.g. "B4-RME-WK2.docx"."""
    if not lessons:
        return f"ghana-lesson-plan-{(today or date.today()).isoformat()}.docx"
    first = lessons[0]
    return (
        f"{class_abbreviation(first.class_level)}-"
        f"{subject_abbreviation(first.subject)}-"
        f"{week_abbreviation(first.week_number)}.docx"
    )


# ---------------------------------------------------------------------------
# Low-level XML helpers
# ---------------------------------------------------------------------------

def _set_table_width_pct(table) -> None:
    tbl_pr = table._tbl.tblPr
    tbl_w = tbl_pr.find(qn("w:tblW"))
    if tbl_w is None:
        tbl_w = OxmlElement("w:tblW")
        tbl_pr.append(tbl_w)
    tbl_w.set(qn("w:type"), "pct")
    tbl_w.set(qn("w:w"), "5000")


def _style_cell(cell, shaded: bool = False) -> None:
    tc_pr = cell._tc.get_or_add_tcPr()

    borders = OxmlElement("w:tcBorders")
    for side in ("top", "left", "bottom", "right"):
        edge = OxmlElement(f"w:{side}")
        edge.set(qn("w:val"), "single")
        edge.set(qn("w:sz"), "4")
        edge.set(qn("w:space"), "0")
        edge.set(qn("w:color"), "000000")
        borders.append(edge)
    tc_pr.append(borders)

    if shaded:
        shd = OxmlElement("w:shd")
        shd.set(qn("w:val"), "clear")
        shd.set(qn("w:color"), "auto")
        shd.set(qn("w:fill"), HEADER_FILL)
        tc_pr.append(shd)

    margins = OxmlElement("w:tcMar")
    for side in ("top", "left", "bottom", "right"):
        node = OxmlElement(f"w:{side}")
        node.set(qn("w:w"), str(CELL_MARGIN))
        node.set(qn("w:type"), "dxa")
        margins.append(node)
    tc_pr.append(margins)

    cell.vertical_alignment = WD_CELL_VERTICAL_ALIGNMENT.TOP


def _add_run(paragraph, text: str, bold: bool = False, italic: bool = False, size=BODY_SIZE):
    run = paragraph.add_run(text)
    run.bold = bold
    if italic:
        run.italic = True
    run.font.name = FONT_NAME
    run.font.size = size
    return run


def _spacing(paragraph, before: int, after: int) -> None:
    fmt = paragraph.paragraph_format
    fmt.space_before = Twips(before)
    fmt.space_after = Twips(after)


# ---------------------------------------------------------------------------
# Cell content
# ---------------------------------------------------------------------------

@dataclass
class CellSpec:
    """One logical cell: text plus how many grid columns it spans."""

    text: str = ""
    span: int = 1
    bold: bool = False
    header: bool = False
    split_label: bool = False
    phase_label: Optional[str] = None
    phase_duration: str = ""


class _CellWriter:
    """Writes paragraphs into a cell, reusing its initial empty paragraph."""

    def __init__(self, cell, align) -> None:
        self.cell = cell
        self.align = align
        self._used = False

    def paragraph(self):
        if not self._used:
            self._used = True
            para = self.cell.paragraphs[0]
        else:
            para = self.cell.add_paragraph()
        para.alignment = self.align
        return para


def fill_label_cell(cell, text: str, header: bool = False) -> None:
    """
    "Label: value" with a bold label.

    Multi-line values put the label on the first line only.
    """
    writer = _CellWriter(cell, WD_ALIGN_PARAGRAPH.CENTER if header else WD_ALIGN_PARAGRAPH.LEFT)
    label, value = text.split(":", 1)
    lines = [line for line in clean_and_split_text(value) if line.strip()]

    if not lines:
        para = writer.paragraph()
        _add_run(para, f"{label}:", bold=True)
        _add_run(para, " ")
        _spacing(para, 80, 80)
        return

    last = len(lines) - 1
    for index, line in enumerate(lines):
        para = writer.paragraph()
        if index == 0:
            _add_run(para, f"{label}:", bold=True)
            _add_run(para, " " + line.strip())
        else:
            _add_run(para, line.strip())
        _spacing(para, 80 if index == 0 else 40, 80 if index == last else 0)


def fill_body_cell(cell, text: str, bold: bool = False, header: bool = False) -> None:
    """Free text using the markdown-lite rules (headers, bullets, bold/italic)."""
    writer = _CellWriter(cell, WD_ALIGN_PARAGRAPH.CENTER if header else WD_ALIGN_PARAGRAPH.LEFT)
    written = 0

    for line in clean_and_split_text(text):
        trimmed = line.strip()
        if not trimmed:
            continue

        check = trimmed.replace("**", "")
        force_bold = re.sub(r"[*_]+$", "", trimmed).strip().endswith(":")
        if re.match(r"^(Activity|Step|Part|Phase|Group)\s+\d+", check, re.IGNORECASE):
            force_bold = True
        if re.match(r"^#+\s", trimmed):
            trimmed = re.sub(r"^#+\s", "", trimmed)
            force_bold = True
        if re.match(r"^[-*]\s", trimmed):
            trimmed = re.sub(r"^[-*]\s", "• ", trimmed)

        para = writer.paragraph()
        if force_bold:
            _add_run(para, trimmed.replace("**", ""), bold=True)
        else:
            tokens = parse_markdown_line(trimmed)
            for token in tokens:
                _add_run(para, token.text, bold=bold or token.bold, italic=token.italic)
            if not tokens:
                _add_run(para, trimmed, bold=bold)

        before = 400 if re.search(r"Sample Class Exercises", trimmed, re.IGNORECASE) else 80
        _spacing(para, before, 80)
        written += 1

    if not written:
        para = writer.paragraph()
        _add_run(para, "")
        _spacing(para, 80, 80)


def fill_phase_label_cell(cell, label: str, duration: str) -> None:
    writer = _CellWriter(cell, WD_ALIGN_PARAGRAPH.LEFT)
    para = writer.paragraph()
    _add_run(para, label, bold=True)
    _spacing(para, 80, 40)
    para = writer.paragraph()
    _add_run(para, f"({duration})", bold=True, size=SMALL_SIZE)
    _spacing(para, 0, 80)


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------

@dataclass
class RenderedDocument:
    filename: str
    content: bytes
    lessons: List[LessonDocument]


class LessonRenderer:
    """Builds the .docx for one or more lessons."""

    def render(self, lessons: Sequence[LessonDocument]) -> RenderedDocument:
        """
        Render *lessons* into a single document, one section per lesson.

        Raises:
            ValueError: no lessons were given.
        """
        if not lessons:
            raise ValueError("No lessons to render")

        prepared = prepare_lessons(lessons)
        doc = Document()
        for index, lesson in enumerate(prepared):
            section = doc.sections[0] if index == 0 else doc.add_section(WD_SECTION.NEW_PAGE)
            for side in ("top_margin", "right_margin", "bottom_margin", "left_margin"):
                setattr(section, side, PAGE_MARGIN)
            self._render_lesson(doc, lesson)

        buffer = io.BytesIO()
        doc.save(buffer)
        filename = lesson_filename(prepared)
        logger.info("Rendered %d lesson(s) into %s", len(prepared), filename)
        return RenderedDocument(filename=filename, content=buffer.getvalue(), lessons=prepared)

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def _render_lesson(self, doc, lesson: LessonDocument) -> None:
        self._title(doc, format_term(lesson.term), after=100)
        self._title(doc, f"WEEKLY LESSON PLAN – {format_class(lesson.class_level or 'BASIC 1').upper()}", after=100)
        self._title(doc, format_week(lesson.week_number), after=300, underline=True)

        self._table(doc, HEADER_WIDTHS, [
            [
                CellSpec(f"Week Ending: {lesson.week_ending}", split_label=True),
                CellSpec(f"Day: {lesson.day}", span=2, split_label=True),
                CellSpec(f"Subject: {format_subject(lesson.subject)}", span=3, split_label=True),
            ],
            [
                CellSpec(f"Duration: {lesson.duration}", span=3, split_label=True),
                CellSpec(f"Strand: {clean_strand(lesson.strand)}", span=3, split_label=True),
            ],
            [
                CellSpec(f"Class: {format_class(lesson.class_level)}", split_label=True),
                CellSpec(f"Class Size: {lesson.class_size}", span=2, split_label=True),
                CellSpec(f"Sub Strand: {clean_strand(lesson.sub_strand)}", span=3, split_label=True),
            ],
        ])
        self._spacer(doc)

        self._table(doc, STANDARDS_WIDTHS, [[
            CellSpec(
                f"Content Standard: {clean_content_standard(lesson.content_standard)}",
                split_label=True,
            ),
            CellSpec(f"Indicator: {lesson.indicator}", split_label=True),
            CellSpec(lesson_cell_text(lesson.lesson_ordinal), split_label=True),
        ]])
        self._spacer(doc)

        self._table(doc, COMPETENCY_WIDTHS, [[
            CellSpec(
                f"Performance Indicator: {ensure_performance_prefix(lesson.performance_indicator)}",
                split_label=True,
            ),
            CellSpec(f"Core Competencies: {lesson.core_competencies}", split_label=True),
        ]], fixed=True)
        self._spacer(doc)

        self._table(doc, KEYWORD_WIDTHS, [
            [CellSpec("Keywords:", split_label=True), CellSpec(lesson.keywords)],
            [CellSpec("Reference:", split_label=True), CellSpec(reference_text(lesson))],
        ])
        self._spacer(doc)

        rows = [[
            CellSpec("Phase/Duration", bold=True, header=True),
            CellSpec("Learners Activities", bold=True, header=True),
            CellSpec("Resources", bold=True, header=True),
        ]]
        for attr, label, default_duration in PHASE_ROWS:
            phase: PhaseDetail = getattr(lesson.phases, attr)
            activities = format_generated_content(phase.learner_activities)
            rows.append([
                CellSpec(phase_label=label, phase_duration=phase.duration.strip() or default_duration),
                CellSpec(capitalize_first_letter(activities)),
                CellSpec(capitalize_first_letter(phase.resources)),
            ])
        self._table(doc, PHASE_WIDTHS, rows, fixed=True)

        closing = doc.add_paragraph()
        _spacing(closing, 400, 0)

    @staticmethod
    def _title(doc, text: str, after: int, underline: bool = False) -> None:
        para = doc.add_paragraph()
        para.alignment = WD_ALIGN_PARAGRAPH.CENTER
        para.paragraph_format.space_after = Twips(after)
        run = _add_run(para, text, bold=True, size=TITLE_SIZE)
        if underline:
            run.underline = True

    @staticmethod
    def _spacer(doc) -> None:
        para = doc.add_paragraph()
        fmt = para.paragraph_format
        fmt.space_before = Twips(0)
        fmt.space_after = Twips(0)
        fmt.line_spacing = Twips(1)
        para.add_run("").font.size = Pt(0.5)

    @staticmethod
    def _table(doc, widths: List[int], rows: List[List[CellSpec]], fixed: bool = False):
        table = doc.add_table(rows=len(rows), cols=len(widths))
        table.autofit = not fixed
        _set_table_width_pct(table)
        for index, width in enumerate(widths):
            table.columns[index].width = Twips(width)

        for row_index, specs in enumerate(rows):
            col = 0
            for spec in specs:
                row_cells = table.rows[row_index].cells
                cell = row_cells[col]
                if spec.span > 1:
                    cell = cell.merge(row_cells[col + spec.span - 1])
                cell.width = Twips(sum(widths[col: col + spec.span]))
                _style_cell(cell, shaded=spec.header)

                if spec.phase_label:
                    fill_phase_label_cell(cell, spec.phase_label, spec.phase_duration)
                elif spec.split_label and ":" in spec.text:
                    fill_label_cell(cell, spec.text, header=spec.header)
                else:
                    fill_body_cell(cell, spec.text, bold=spec.bold, header=spec.header)
                col += spec.span
        return table
