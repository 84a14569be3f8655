"""
Zip packaging for batches of rendered lesson documents.
"""
from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence, Set

from notegen.utils.helpers import class_abbreviation, slugify, week_abbreviation

logger = logging.getLogger(__name__)


@dataclass
class ArchiveEntry:
    """One document destined for the archive."""

    name: str
    content: bytes
    label: str = ""          # lesson identifier used to disambiguate names
    class_level: str = ""
    week: str = ""


def _split_ext(name: str):
    if "." in name:
        stem, ext = name.rsplit(".", 1)
        return stem, f".{ext}"
    return name, ""


def unique_name(entry: ArchiveEntry, taken: Set[str]) -> str:
    """
    Pick a name not yet in *taken*.

    The base name is used as-is when free; otherwise "-{label}" is tried,
    then "-2", "-3", ... until a free name is found.
    """
    if entry.name not in taken:
        return entry.name

    stem, ext = _split_ext(entry.name)
    label = slugify(entry.label)
    if label:
        candidate = f"{stem}-{label}{ext}"
        if candidate not in taken:
            return candidate
        stem = f"{stem}-{label}"

    counter = 2
    while f"{stem}-{counter}{ext}" in taken:
        counter += 1
    return f"{stem}-{counter}{ext}"


def build_archive(entries: Sequence[ArchiveEntry]) -> bytes:
    """Zip *entries* with collision-safe names; the first of any clash keeps its name."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, entry in zip(archive_names(entries), entries):
            if name != entry.name:
                logger.debug("Archive name %s taken, using %s", entry.name, name)
            archive.writestr(name, entry.content)
    logger.info("Archived %d document(s)", len(entries))
    return buffer.getvalue()


def archive_filename(entries: Sequence[ArchiveEntry], today: Optional[date] = None) -> str:
    """"{ClassAbbr}_{WeekAbbr}.zip" from the first entry, else a dated generic name."""
    first = entries[0] if entries else None
    if first is not None and first.class_level and first.week:
        return f"{class_abbreviation(first.class_level)}_{week_abbreviation(first.week)}.zip"
    return f"lesson-notes-{(today or date.today()).isoformat()}.zip"


def archive_names(entries: Sequence[ArchiveEntry]) -> List[str]:
    """Names build_archive() would assign, in entry order."""
    taken: Set[str] = set()
    names: List[str] = []
    for entry in entries:
        name = unique_name(entry, taken)
        taken.add(name)
        names.append(name)
    return names
