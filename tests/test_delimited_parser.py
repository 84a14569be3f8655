"""Tests for delimiter sniffing, header detection and quoted-field tokenizing."""
from notegen.services.delimited_parser import (
    build_header_map,
    looks_like_header,
    parse_delimited,
    sniff_delimiter,
    split_lines,
    tokenize_line,
)

COMMA_TABLE = (
    "Week,Subject,Strand,Class\n"
    "Week 1,Computing,Introduction to Computing,Basic 4\n"
    'Week 2,Mathematics,"Number, Operations",Basic 4\n'
)


def test_split_lines_handles_all_line_endings_and_blanks():
    assert split_lines("a\r\nb\rc\n\n  \nd") == ["a", "b", "c", "d"]


def test_sniff_delimiter():
    assert sniff_delimiter("a;b;c") == ";"
    assert sniff_delimiter("a,b,c") == ","
    assert sniff_delimiter("a;b,c") == ","  # tie favours comma


def test_header_detection():
    assert looks_like_header("Week,Subject,Strand")
    assert not looks_like_header("Week 1,2024-01-05,Term 1,Computing")
    assert not looks_like_header("Term 1,12/01/2024,Computing,Basic 4")
    assert not looks_like_header("Basic 4,Computing,Hardware")


def test_quoted_field_keeps_embedded_delimiter():
    assert tokenize_line('Week 2,"Addition, Subtraction",Basic 4', ",") == [
        "Week 2", "Addition, Subtraction", "Basic 4",
    ]


def test_doubled_quotes_collapse():
    assert tokenize_line('"He said ""hi""",x', ",") == ['He said "hi"', "x"]


def test_comma_and_semicolon_variants_yield_identical_rows():
    semicolon = (
        "Week;Subject;Strand;Class\n"
        "Week 1;Computing;Introduction to Computing;Basic 4\n"
        'Week 2;Mathematics;"Number, Operations";Basic 4\n'
    )
    comma_table = parse_delimited(COMMA_TABLE)
    semi_table = parse_delimited(semicolon)
    assert comma_table.delimiter == ","
    assert semi_table.delimiter == ";"
    assert comma_table.rows == semi_table.rows
    assert comma_table.rows[1][2] == "Number, Operations"


def test_first_data_row_is_not_treated_as_header():
    table = parse_delimited("Week 1,2024-01-05,Term 1,Computing\nWeek 2,2024-01-12,Term 1,Computing")
    assert not table.has_header
    assert len(table.rows) == 2
    assert table.rows[0][0] == "Week 1"


def test_header_row_builds_map():
    table = parse_delimited(COMMA_TABLE)
    assert table.has_header
    assert table.header_map == {"week": 0, "subject": 1, "strand": 2, "class_level": 3}
    assert len(table.rows) == 2


def test_header_map_priorities():
    headers = [
        "week", "week ending", "term", "subject", "class", "strand", "sub-strand",
        "content standard", "indicators", "exemplars", "resources",
    ]
    assert build_header_map(headers) == {
        "week": 0, "week_ending": 1, "term": 2, "subject": 3, "class_level": 4,
        "strand": 5, "sub_strand": 6, "content_standard": 7, "indicators": 8,
        "exemplars": 9, "resources": 10,
    }


def test_indicator_exemplar_column_maps_to_exemplars():
    assert build_header_map(["learning indicator exemplars"]) == {"exemplars": 0}


def test_sparse_rows_are_dropped():
    table = parse_delimited("Week,Subject\nWeek 1,Computing\n,,\nonly-one,,")
    assert table.rows == [["Week 1", "Computing"]]


def test_assume_header_overrides_detection():
    table = parse_delimited("a,b\nc,d", assume_header=True)
    assert table.headers == ["a", "b"]
    assert table.rows == [["c", "d"]]
