"""Tests for the .docx lesson renderer and its display helpers."""
import io

import pytest
from docx import Document
from docx.shared import Twips

from notegen.models.schemas import LessonDocument
from notegen.services.lesson_renderer import (
    COMPETENCY_WIDTHS,
    HEADER_WIDTHS,
    KEYWORD_WIDTHS,
    PHASE_WIDTHS,
    STANDARDS_WIDTHS,
    LessonRenderer,
    clean_content_standard,
    clean_strand,
    ensure_performance_prefix,
    format_class,
    format_subject,
    format_term,
    format_week,
    lesson_cell_text,
    lesson_filename,
    prepare_lessons,
)
from tests.conftest import lesson_json


def _lesson(**kwargs) -> LessonDocument:
    return LessonDocument.model_validate(lesson_json(**kwargs))


def _reopen(content: bytes):
    return Document(io.BytesIO(content))


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------

def test_format_term():
    assert format_term("") == "FIRST TERM"
    assert format_term("2") == "TERM 2"
    assert format_term("second") == "SECOND TERM"
    assert format_term("Term 1") == "TERM 1"


def test_format_week():
    assert format_week("") == "WEEK 1"
    assert format_week("2") == "WEEK 2"
    assert format_week("Week 3") == "WEEK 3"


def test_format_class_and_subject():
    assert format_class("basic6") == "Basic 6"
    assert format_class("BASIC 4") == "Basic 4"
    assert format_class("") == ""
    assert format_subject("religious and MORAL education") == "Religious And Moral Education"


def test_clean_strand_drops_numbered_prefixes():
    assert clean_strand("Strand 1: Introduction to Computing") == "Introduction to Computing"
    assert clean_strand("Sub-strand 2: Parts of a Computer") == "Parts of a Computer"
    assert clean_strand("3: Networks") == "Networks"
    assert clean_strand("Hardware") == "Hardware"


def test_clean_content_standard_collapses_repeated_code():
    assert clean_content_standard("B1.2.1.1.: B1.2.1.1. Demonstrate") == "B1.2.1.1: Demonstrate"
    assert clean_content_standard("B4.1.1.1: Demonstrate knowledge") == "B4.1.1.1: Demonstrate knowledge"


def test_performance_prefix_added_once():
    assert ensure_performance_prefix("identify parts") == (
        "By the end of the lesson, learners will be able to: identify parts"
    )
    already = "By the end of the lesson, learners will be able to name devices"
    assert ensure_performance_prefix(already) == already
    assert ensure_performance_prefix("") == ""


def test_lesson_cell_text():
    assert lesson_cell_text("2 of 3") == "Lesson: 2 of 3"
    assert lesson_cell_text("1") == "Lesson: 1 of 1"
    assert lesson_cell_text("Lesson 2 of 3") == "Lesson: 2 of 3"
    assert lesson_cell_text("") == "Lesson: 1 of 1"


def test_lesson_filename():
    lesson = LessonDocument(
        class_level="Basic 4", subject="Religious and Moral Education", week_number="Week 2"
    )
    assert lesson_filename([lesson]) == "B4-RME-WK2.docx"


def test_prepare_lessons_numbers_only_multi_lesson_batches():
    single = prepare_lessons([_lesson(lesson="2 of 5")])
    assert single[0].lesson_ordinal == "2 of 5"

    many = prepare_lessons([_lesson(), _lesson(), _lesson()])
    assert [lesson.lesson_ordinal for lesson in many] == ["1 of 3", "2 of 3", "3 of 3"]


def test_prepare_lessons_does_not_mutate_input():
    original = [_lesson(), _lesson()]
    prepare_lessons(original)
    assert original[0].lesson_ordinal == "1 of 1"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def test_render_requires_lessons():
    with pytest.raises(ValueError):
        LessonRenderer().render([])


def test_five_tables_per_lesson_with_template_widths():
    rendered = LessonRenderer().render([_lesson(), _lesson(subject="Science")])
    doc = _reopen(rendered.content)
    assert len(doc.tables) == 10

    expected = [HEADER_WIDTHS, STANDARDS_WIDTHS, COMPETENCY_WIDTHS, KEYWORD_WIDTHS, PHASE_WIDTHS]
    for offset in (0, 5):
        for table, widths in zip(doc.tables[offset: offset + 5], expected):
            assert len(table.columns) == len(widths)
            for column, width in zip(table.columns, widths):
                assert column.width == Twips(width)


def test_one_section_per_lesson():
    rendered = LessonRenderer().render([_lesson(), _lesson(), _lesson()])
    assert len(_reopen(rendered.content).sections) == 3


def test_label_cells_have_bold_label_and_plain_value():
    rendered = LessonRenderer().render([_lesson()])
    cell = _reopen(rendered.content).tables[0].rows[0].cells[0]
    runs = cell.paragraphs[0].runs
    assert runs[0].text == "Week Ending:"
    assert runs[0].bold is True
    assert not runs[1].bold
    assert runs[1].text == " 12/01/2024"


def test_phase_table_header_row_is_bold():
    rendered = LessonRenderer().render([_lesson()])
    phase_table = _reopen(rendered.content).tables[4]
    header = phase_table.rows[0].cells
    assert [c.text for c in header] == ["Phase/Duration", "Learners Activities", "Resources"]
    for cell in header:
        assert all(run.bold for run in cell.paragraphs[0].runs)
    assert phase_table.rows[1].cells[0].text == "PHASE 1: STARTER\n(10 mins)"
    assert phase_table.rows[2].cells[0].text == "PHASE 2: NEW LEARNING\n(40 mins)"


def test_missing_phase_duration_uses_default():
    data = lesson_json()
    data["phases"]["reflection"]["duration"] = ""
    rendered = LessonRenderer().render([LessonDocument.model_validate(data)])
    phase_table = _reopen(rendered.content).tables[4]
    assert phase_table.rows[3].cells[0].text == "PHASE 3: REFLECTION\n(10 mins)"


def test_multi_lesson_ordinals_are_rewritten():
    lessons = [_lesson(lesson="1 of 1"), _lesson(lesson="1 of 1"), _lesson(lesson="7")]
    doc = _reopen(LessonRenderer().render(lessons).content)
    ordinals = [doc.tables[5 * k + 1].rows[0].cells[2].text for k in range(3)]
    assert ordinals == ["Lesson: 1 of 3", "Lesson: 2 of 3", "Lesson: 3 of 3"]


def test_reference_is_derived_not_taken_from_input():
    doc = _reopen(LessonRenderer().render([_lesson()]).content)
    keyword_table = doc.tables[3]
    assert keyword_table.rows[1].cells[1].text == "NaCCA Computing Curriculum for Basic 4"


def test_strand_prefix_is_cleaned_in_document():
    doc = _reopen(LessonRenderer().render([_lesson()]).content)
    strand_cell = doc.tables[0].rows[1].cells[3]
    assert strand_cell.text == "Strand: Introduction to Computing"


def test_performance_indicator_gets_prefix_in_document():
    doc = _reopen(LessonRenderer().render([_lesson()]).content)
    cell = doc.tables[2].rows[0].cells[0]
    assert "By the end of the lesson, learners will be able to: identify the parts" in cell.text


def test_rendered_document_metadata():
    rendered = LessonRenderer().render([_lesson(subject="Religious and Moral Education")])
    assert rendered.filename == "B4-RME-WK2.docx"
    assert rendered.content[:2] == b"PK"
    assert len(rendered.lessons) == 1
