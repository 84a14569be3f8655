"""
Common utility functions and helpers.

Canonical forms ("Basic 4", "Week 1", "Term 1"), filename abbreviations and
the order-preserving unique-merge used by the importers.
"""
from typing import Iterable, List, Optional
import re


_TERM_WORDS = {
    "one": "1", "two": "2", "three": "3",
    "first": "1", "second": "2", "third": "3",
    "1st": "1", "2nd": "2", "3rd": "3",
}

SUBJECT_ABBREVIATIONS = {
    "MATHEMATICS": "MATH",
    "MATHS": "MATH",
    "SCIENCE": "SCI",
    "RELIGIOUS AND MORAL EDUCATION": "RME",
    "RELIGIOUS & MORAL EDUCATION": "RME",
    "COMPUTING": "COMP",
    "INFORMATION AND COMMUNICATION TECHNOLOGY": "ICT",
    "ICT": "ICT",
    "CREATIVE ARTS": "C.ART",
    "OUR WORLD OUR PEOPLE": "OWOP",
    "HISTORY": "HIST",
    "GHANAIAN LANGUAGE": "GH.LANG",
    "ENGLISH LANGUAGE": "ENG",
    "ENGLISH": "ENG",
    "FRENCH": "FRE",
    "PHYSICAL EDUCATION": "PE",
    "CAREER TECHNOLOGY": "C.TECH",
    "SOCIAL STUDIES": "S.STD",
    "HOME ECONOMICS": "HE",
    "PRE-TECHNICAL SKILLS": "PTS",
}

# Checked in order when there is no exact match
_SUBJECT_SUBSTRINGS = (
    ("RELIGIOUS", "RME"),
    ("OUR WORLD", "OWOP"),
    ("CREATIVE", "C.ART"),
    ("CAREER", "C.TECH"),
)


def normalize_grade_level(value: str) -> str:
    """
    Coerce a class/grade token to the canonical "Basic N" form.

    Any token containing a digit run becomes "Basic <digits>" ("B4",
    "Class 4", "basic4" -> "Basic 4").  Tokens without digits are returned
    trimmed.
    """
    value = (value or "").strip()
    match = re.search(r"\d+", value)
    if match:
        return f"Basic {match.group(0)}"
    return value


def canonical_week(value: str) -> str:
    """Return "Week N" for "3", "week3", "Wk 3", "WEEK 3"; other text trimmed."""
    value = (value or "").strip()
    if not value:
        return ""
    match = re.fullmatch(r"(?:w(?:ee)?k\.?\s*)?(\d+)", value, flags=re.IGNORECASE)
    if match:
        return f"Week {int(match.group(1))}"
    return value


def canonical_term(value: str) -> str:
    """
    Return "Term N" for bare numbers and numbered/named term variants.

    "1", "term 1", "First Term", "term two" and "2nd term" all map to a
    "Term N" form.  Unrecognised names are kept as given (trimmed).
    """
    value = (value or "").strip()
    if not value:
        return ""
    lowered = value.lower()
    match = re.fullmatch(r"(?:term\s*)?(\d+)", lowered)
    if match:
        return f"Term {int(match.group(1))}"
    match = re.fullmatch(r"(?:term\s+)?(\w+)(?:\s+term)?", lowered)
    if match and match.group(1) in _TERM_WORDS:
        return f"Term {_TERM_WORDS[match.group(1)]}"
    return value


def split_values(text: str, pattern: str = r"\r\n|\r|\n|•|;") -> List[str]:
    """Split *text* on *pattern*, trim each fragment, drop empty ones."""
    if not text:
        return []
    return [part.strip() for part in re.split(pattern, text) if part.strip()]


def unique_extend(target: List[str], values: Iterable[str]) -> int:
    """
    Append each value not already present in *target* (exact text match).

    Preserves first-seen order.  Returns the number of values appended.
    """
    added = 0
    for value in values:
        if value not in target:
            target.append(value)
            added += 1
    return added


def merge_fields(existing: str, incoming: str, separator: str = "\n") -> str:
    """
    Union two separator-joined strings, keeping first-seen order.

    Args:
        existing: Current value
        incoming: Value from a duplicate row
        separator: Separator used both to split and to re-join

    Returns:
        Merged string without exact-text duplicates
    """
    if not incoming:
        return existing
    if not existing:
        return incoming
    merged: List[str] = []
    unique_extend(merged, (p.strip() for p in existing.split(separator) if p.strip()))
    unique_extend(merged, (p.strip() for p in incoming.split(separator) if p.strip()))
    return separator.join(merged)


def merge_resources(first: str, second: str) -> str:
    """Comma-aware unique merge so "chalk, ruler" + "chalk" stays "chalk, ruler"."""
    if not first:
        return second
    if not second:
        return first
    merged: List[str] = []
    unique_extend(merged, (p.strip() for p in first.split(",") if p.strip()))
    unique_extend(merged, (p.strip() for p in second.split(",") if p.strip()))
    return ", ".join(merged)


def class_abbreviation(class_name: Optional[str]) -> str:
    """"Basic 4" -> "B4", "KG 1" -> "KG1", "JHS 2" -> "JHS2", "Year 3" -> "Y3"."""
    if not class_name:
        return "CLS"
    upper = class_name.upper().strip()
    if "BASIC" in upper:
        upper = upper.replace("BASIC", "B", 1)
    elif "YEAR" in upper:
        upper = upper.replace("YEAR", "Y", 1)
    return re.sub(r"\s", "", upper)


def subject_abbreviation(subject: Optional[str]) -> str:
    """Lookup-table abbreviation with substring fallbacks, else first 4 chars."""
    if not subject:
        return "SUBJ"
    upper = subject.upper().strip()
    if upper in SUBJECT_ABBREVIATIONS:
        return SUBJECT_ABBREVIATIONS[upper]
    for needle, abbr in _SUBJECT_SUBSTRINGS:
        if needle in upper:
            return abbr
    return re.sub(r"\s", "", upper[:4])


def week_abbreviation(week: Optional[str]) -> str:
    """"Week 5" -> "WK5"; empty -> "WK1"; no digits -> "WK"."""
    if not week:
        return "WK1"
    match = re.search(r"\d+", week)
    if match:
        return f"WK{match.group(0)}"
    return "WK"


def slugify(text: str, max_length: int = 40) -> str:
    """Reduce *text* to a filename-safe token of letters, digits and hyphens."""
    slug = re.sub(r"[^A-Za-z0-9]+", "-", text or "").strip("-")
    return slug[:max_length].rstrip("-")

