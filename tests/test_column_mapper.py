"""Tests for curriculum and scheme column mapping."""
from notegen.services.column_mapper import (
    DEFAULT_OFFSETS,
    SUBJECT_AT_INDEX_1,
    CurriculumColumnMapper,
    DefaultTemplateStrategy,
    MinimalStrategy,
    SchemeColumnMapper,
    UserFormatStrategy,
    content_code,
    content_description,
    split_exemplars,
    split_indicators,
)


# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------

def test_numbered_indicators_keep_their_numbers():
    assert split_indicators("1. Identify parts 2. Describe uses") == [
        "1. Identify parts",
        "2. Describe uses",
    ]


def test_indicators_split_on_bullets_semicolons_and_newlines():
    assert split_indicators("Name devices; Draw a mouse\n• Label keys") == [
        "Name devices", "Draw a mouse", "Label keys",
    ]


def test_indicator_codes_are_not_split():
    assert split_indicators("B4.1.1.1.1 Identify the parts of a computer") == [
        "B4.1.1.1.1 Identify the parts of a computer",
    ]


def test_split_exemplars():
    assert split_exemplars("Learners draw;  Learners label\r\n•Learners present") == [
        "Learners draw", "Learners label", "Learners present",
    ]
    assert split_exemplars("") == []


def test_content_code():
    assert content_code("B4.1.1.1: Demonstrate knowledge") == "B4.1.1.1"
    assert content_code("B4.1.1.1 Demonstrate knowledge") == "B4.1.1.1"
    assert content_code("Demonstrate knowledge") == "CS"
    assert content_code("") == "CS"


def test_content_description_drops_code():
    assert content_description("B4.1.1.1: Demonstrate knowledge", "B4.1.1.1") == "Demonstrate knowledge"
    assert content_description("Demonstrate knowledge", "CS") == "Demonstrate knowledge"


# ---------------------------------------------------------------------------
# Strategy selection
# ---------------------------------------------------------------------------

def test_user_format_requires_content_and_indicator_columns():
    assert UserFormatStrategy.matches(["class", "content standard", "indicators"])
    assert UserFormatStrategy.matches(["class", "content standard", "exemplars"])
    assert not UserFormatStrategy.matches(["class", "strand", "indicators"])
    assert not UserFormatStrategy.matches(None)


def test_subject_at_index_1_shifts_fallback_offsets():
    with_subject = UserFormatStrategy(["class", "subject", "x", "y", "content standard", "indicators"])
    without = UserFormatStrategy(["class", "x", "y", "content standard", "indicators"])
    assert with_subject.offsets == SUBJECT_AT_INDEX_1
    assert without.offsets == DEFAULT_OFFSETS


def test_user_format_fallback_uses_shifted_offsets():
    strategy = UserFormatStrategy(["class", "subject", "a", "b", "content standard", "indicators"])
    raw = strategy.map(["Basic 4", "Science", "Strand A", "Sub B", "B4.1.1.1: CS", "Ind 1"])
    assert raw.strand == "Strand A"
    assert raw.sub_strand == "Sub B"
    assert raw.subject == "Science"


def test_user_format_without_subject_uses_default():
    strategy = UserFormatStrategy(
        ["class", "strand", "sub-strand", "content standard", "indicators"], default_subject="Computing"
    )
    raw = strategy.map(["B5", "Hardware", "Devices", "B5.1.1.1: Know", "Name devices"])
    assert raw.subject == "Computing"
    assert raw.indicators == "Name devices"
    assert raw.exemplars == ""


def test_default_template_joins_codes_and_descriptions():
    mapper = CurriculumColumnMapper(headers=None, default_subject="Computing")
    row = ["B4", "Strand", "Sub", "B4.1.1.1", "Demonstrate", "B4.1.1.1.1", "Identify", "Draw"]
    assert mapper.strategy_for(row) is mapper.default_template
    record = mapper.map_row(row)
    assert record.grade_level == "Basic 4"
    assert record.content_standard_code == "B4.1.1.1"
    assert record.content_standards == ["B4.1.1.1: Demonstrate"]
    assert record.learning_indicators == ["B4.1.1.1.1: Identify"]
    assert record.exemplars == ["Draw"]


def test_minimal_strategy_for_short_rows():
    mapper = CurriculumColumnMapper(headers=["a", "b", "c", "d"], default_subject="Computing")
    row = ["Class 6", "Strand", "Sub", "Content", "Ind"]
    assert isinstance(mapper.strategy_for(row), MinimalStrategy)
    record = mapper.map_row(row)
    assert record.grade_level == "Basic 6"
    assert record.content_standard_code == "CS"
    assert record.subject == "Computing"


def test_too_short_rows_are_skipped():
    mapper = CurriculumColumnMapper()
    assert mapper.map_row(["Basic 4", "x"]) is None
    assert isinstance(mapper.default_template, DefaultTemplateStrategy)


# ---------------------------------------------------------------------------
# Scheme rows
# ---------------------------------------------------------------------------

def test_scheme_positional_short_row_puts_resources_in_column_10():
    row = ["1", "12/01/2024", "first term", "Computing", "Basic 4", "S", "SS", "CS", "Ind", "Computer"]
    item = SchemeColumnMapper().map_row(row)
    assert item.week == "Week 1"
    assert item.term == "Term 1"
    assert item.exemplars == ""
    assert item.resources == "Computer"


def test_scheme_positional_long_row_reads_exemplars():
    row = ["Wk 2", "19/01/2024", "Term 2", "Computing", "Basic 4", "S", "SS", "CS", "Ind", "Ex", "Charts"]
    item = SchemeColumnMapper().map_row(row)
    assert item.week == "Week 2"
    assert item.exemplars == "Ex"
    assert item.resources == "Charts"


def test_scheme_header_without_week_ending_falls_back_to_second_cell():
    header_map = {"week": 0, "subject": 2, "class_level": 3}
    item = SchemeColumnMapper(header_map).map_row(["3", "26/01/2024", "Computing", "Basic 4"])
    assert item.week == "Week 3"
    assert item.week_ending == "26/01/2024"
    assert item.class_level == "Basic 4"
