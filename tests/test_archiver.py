"""Tests for collision-safe zip packaging of rendered documents."""
import io
import zipfile
from datetime import date

from notegen.services.archiver import (
    ArchiveEntry,
    archive_filename,
    archive_names,
    build_archive,
    unique_name,
)


def _entry(name="B4-COMP-WK2.docx", label="", content=b"doc", **kwargs):
    return ArchiveEntry(name=name, content=content, label=label, **kwargs)


def test_free_name_is_kept():
    assert unique_name(_entry(), set()) == "B4-COMP-WK2.docx"


def test_first_entry_keeps_its_name_on_collision():
    names = archive_names([
        _entry(label="Monday"),
        _entry(label="Tuesday"),
        _entry(label="Tuesday"),
        _entry(),
    ])
    assert names == [
        "B4-COMP-WK2.docx",
        "B4-COMP-WK2-Tuesday.docx",
        "B4-COMP-WK2-Tuesday-2.docx",
        "B4-COMP-WK2-2.docx",
    ]


def test_labels_are_slugified():
    taken = {"plan.docx"}
    assert unique_name(_entry(name="plan.docx", label="Lesson 3 / Science"), taken) == (
        "plan-Lesson-3-Science.docx"
    )


def test_names_without_extension():
    taken = {"notes"}
    assert unique_name(_entry(name="notes"), taken) == "notes-2"


def test_build_archive_contains_every_entry():
    entries = [
        _entry(content=b"first", label="a"),
        _entry(content=b"second", label="b"),
    ]
    with zipfile.ZipFile(io.BytesIO(build_archive(entries))) as archive:
        assert archive.namelist() == ["B4-COMP-WK2.docx", "B4-COMP-WK2-b.docx"]
        assert archive.read("B4-COMP-WK2.docx") == b"first"
        assert archive.read("B4-COMP-WK2-b.docx") == b"second"


def test_archive_filename_from_first_entry():
    entries = [_entry(class_level="Basic 4", week="Week 2"), _entry(class_level="Basic 5", week="Week 9")]
    assert archive_filename(entries) == "B4_WK2.zip"


def test_archive_filename_fallback_is_dated():
    assert archive_filename([], today=date(2024, 1, 12)) == "lesson-notes-2024-01-12.zip"
    assert archive_filename([_entry()], today=date(2024, 1, 12)) == "lesson-notes-2024-01-12.zip"
