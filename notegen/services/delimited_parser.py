"""
Delimited-table parsing for comma- or semicolon-separated exports.

Spreadsheet exports from different locales use different delimiters, and
many curriculum/scheme files are hand-made without a header row.  This
module sniffs the delimiter, decides whether the first line is a header,
tokenizes quoted fields, and builds a keyword-driven header map.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

HEADER_KEYWORDS = ("week", "subject", "strand", "class", "content", "indicator")

_DATA_ROW_PATTERNS = (
    re.compile(r"week\s*\d", re.IGNORECASE),
    re.compile(r"\d{1,2}/\d{1,2}/\d{4}"),
)


@dataclass
class DelimitedTable:
    """Result of parse_delimited."""

    delimiter: str
    rows: List[List[str]] = field(default_factory=list)
    headers: Optional[List[str]] = None     # lowercased; None when no header row
    header_map: Dict[str, int] = field(default_factory=dict)

    @property
    def has_header(self) -> bool:
        return self.headers is not None


def split_lines(text: str) -> List[str]:
    """Split on CRLF/LF/CR and drop blank lines."""
    return [line for line in re.split(r"\r\n|\n|\r", text or "") if line.strip()]


def sniff_delimiter(line: str) -> str:
    """Semicolon only when it outnumbers commas; ties favour comma."""
    return ";" if line.count(";") > line.count(",") else ","


def looks_like_header(line: str) -> bool:
    """
    Decide whether *line* is a header row.

    A header mentions one of the header keywords and does not itself look
    like data: "Week,Subject,Strand" is a header, "Week 1,05/01/2024,..." is
    not, even though both contain "week".
    """
    lowered = line.lower()
    if not any(keyword in lowered for keyword in HEADER_KEYWORDS):
        return False
    return not any(pattern.search(lowered) for pattern in _DATA_ROW_PATTERNS)


def _clean_token(token: str) -> str:
    token = token.strip()
    if len(token) >= 2 and token.startswith('"') and token.endswith('"'):
        token = token[1:-1]
    return token.replace('""', '"').strip()


def tokenize_line(line: str, delimiter: str) -> List[str]:
    """
    Split one line on *delimiter*, ignoring delimiters inside double quotes.

    One layer of surrounding quotes is removed from each token and doubled
    quotes inside a quoted field collapse to one.
    """
    tokens: List[str] = []
    current: List[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
            current.append(char)
        elif char == delimiter and not in_quotes:
            tokens.append(_clean_token("".join(current)))
            current = []
        else:
            current.append(char)
    tokens.append(_clean_token("".join(current)))
    return tokens


def _header_field(header: str) -> Optional[str]:
    """First matching canonical field for one lowercased header cell."""
    h = header
    if "week" in h and "ending" in h:
        return "week_ending"
    if "week" in h:
        return "week"
    if "term" in h:
        return "term"
    if "subject" in h:
        return "subject"
    if "class" in h or "level" in h or "basic" in h:
        return "class_level"
    if "sub-strand" in h or "sub strand" in h:
        return "sub_strand"
    if "strand" in h:
        return "strand"
    if "content" in h or "standard" in h:
        return "content_standard"
    if ("indicator" in h or "learning" in h) and "exemplar" not in h:
        return "indicators"
    if "exemplar" in h:
        return "exemplars"
    if "resource" in h or "material" in h:
        return "resources"
    return None


def build_header_map(headers: List[str]) -> Dict[str, int]:
    """
    Map canonical scheme fields to column indices.

    Each header cell is tested against an ordered list of substring rules
    and assigned to the first field it matches.  When several columns match
    the same field the right-most one wins.
    """
    header_map: Dict[str, int] = {}
    for index, header in enumerate(headers):
        name = _header_field(header.lower())
        if name:
            header_map[name] = index
    return header_map


def _meaningful(row: List[str]) -> int:
    return sum(1 for cell in row if cell)


def parse_delimited(text: str, assume_header: Optional[bool] = None) -> DelimitedTable:
    """
    Parse delimited text into rows of string cells.

    Args:
        text:          Raw file text.
        assume_header: True/False forces header handling; None detects it
                       with looks_like_header().

    Returns:
        DelimitedTable.  Rows with fewer than two non-empty cells are
        dropped.
    """
    lines = split_lines(text)
    if not lines:
        return DelimitedTable(delimiter=",")

    delimiter = sniff_delimiter(lines[0])
    has_header = looks_like_header(lines[0]) if assume_header is None else assume_header

    table = DelimitedTable(delimiter=delimiter)
    body = lines
    if has_header:
        table.headers = [h.lower() for h in tokenize_line(lines[0], delimiter)]
        table.header_map = build_header_map(table.headers)
        body = lines[1:]

    dropped = 0
    for line in body:
        row = tokenize_line(line, delimiter)
        if _meaningful(row) < 2:
            dropped += 1
            continue
        table.rows.append(row)

    logger.info(
        "Parsed delimited text: delimiter=%r header=%s rows=%d dropped=%d",
        delimiter, has_header, len(table.rows), dropped,
    )
    return table
