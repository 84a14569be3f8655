"""
CSV output: scheme export and the downloadable import templates.
"""
from __future__ import annotations

import csv
import io
from typing import Iterable, List, Sequence

from notegen.models.schemas import SchemeItem

SCHEME_HEADERS = [
    "Week", "Week Ending", "Term", "Subject", "Class", "Strand", "Sub-Strand",
    "Content Standard", "Indicators", "Exemplars", "Resources",
]

CURRICULUM_HEADERS = [
    "Class", "Subject", "Strand", "Sub-Strand", "Content Standard",
    "Learning Indicators", "Exemplars",
]

SCHEME_TEMPLATE_ROWS = [
    [
        "Week 1", "12/01/2024", "Term 1", "Computing", "Basic 4",
        "Introduction to Computing", "Parts of a Computer",
        "B4.1.1.1: Demonstrate knowledge of the parts of a computer",
        "B4.1.1.1.1 Identify the parts of a computer",
        "Learners name the monitor, keyboard and mouse",
        "Computer, charts",
    ],
]

CURRICULUM_TEMPLATE_ROWS = [
    [
        "Basic 4", "Computing", "Introduction to Computing", "Parts of a Computer",
        "B4.1.1.1: Demonstrate knowledge of the parts of a computer",
        "1. Identify the parts of a computer 2. Describe the uses of each part",
        "Learners name the monitor, keyboard and mouse; Learners draw a computer",
    ],
]


def _write(header: Sequence[str], rows: Iterable[Sequence[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def scheme_row(item: SchemeItem) -> List[str]:
    return [
        item.week, item.week_ending, item.term, item.subject, item.class_level,
        item.strand, item.sub_strand, item.content_standard, item.indicators,
        item.exemplars, item.resources,
    ]


def export_scheme_csv(items: Iterable[SchemeItem]) -> str:
    """One quoted row per item under the fixed scheme header."""
    return _write(SCHEME_HEADERS, (scheme_row(item) for item in items))


def scheme_template_csv() -> str:
    return _write(SCHEME_HEADERS, SCHEME_TEMPLATE_ROWS)


def curriculum_template_csv() -> str:
    return _write(CURRICULUM_HEADERS, CURRICULUM_TEMPLATE_ROWS)
