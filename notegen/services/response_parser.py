"""
Tolerant parsing of generative-model responses.

Model output is the least trustworthy input in the system: it arrives
wrapped in code fences, surrounded by prose, split by "---" lines, or cut
off mid-stream.  parse_model_json() tries each stage below in order and the
first success wins:

1. strip one layer of code fences
2. JSON array of lesson-like objects
3. "---"-separated JSON objects
4. the whole cleaned text as JSON
5. recovery: slice from the first "{"/"[" to the last "}"/"]" of the raw
   text; a truncated array keeps its complete leading elements

If all of them fail a single ModelOutputParseError is raised.  Nothing is
guessed beyond these stages.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from notegen.models.schemas import LessonDocument, ParsedKind
from notegen.services.errors import ModelOutputParseError

logger = logging.getLogger(__name__)

LESSON_PARSE_ERROR = "Failed to parse lesson data. Please ensure the AI returned valid JSON."
SCHEME_PARSE_ERROR = "Failed to parse scheme of learning data."

_SEPARATOR_RE = re.compile(r"^[ \t]*-{3,}[ \t]*$", re.MULTILINE)


@dataclass
class ParsedLesson:
    """Tagged result: one lesson or several, never a bare list-or-object."""

    kind: ParsedKind
    lessons: List[LessonDocument]

    @property
    def single(self) -> LessonDocument:
        return self.lessons[0]

    @classmethod
    def from_objects(cls, objects: List[Dict[str, Any]]) -> "ParsedLesson":
        lessons = [LessonDocument.model_validate(obj) for obj in objects]
        kind = ParsedKind.SINGLE if len(lessons) == 1 else ParsedKind.MANY
        return cls(kind=kind, lessons=lessons)


# ---------------------------------------------------------------------------
# Low-level helpers
# ---------------------------------------------------------------------------

def _try_json(text: str) -> Tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return False, None


def strip_code_fences(text: str) -> str:
    """Remove one ```json / ``` wrapper when the text starts with a fence."""
    text = (text or "").strip()
    if not text.startswith("```"):
        return text
    text = re.sub(r"^```(?:json)?\s*\n?", "", text, flags=re.IGNORECASE)
    text = re.sub(r"\n?```\s*$", "", text)
    return text.strip()


def is_lesson_like(obj: Any) -> bool:
    return isinstance(obj, dict) and bool(obj.get("subject") or obj.get("phases") or obj.get("strand"))


def lesson_objects(values: List[Any]) -> List[Dict[str, Any]]:
    return [item for item in values if is_lesson_like(item)]


def repair_truncated_array(text: str) -> Optional[List[Any]]:
    """
    Recover the complete leading elements of a JSON array cut off mid-stream.

    Elements are decoded one at a time; decoding stops at the first element
    that is incomplete.  Returns None when not even one element survives.
    """
    decoder = json.JSONDecoder()
    start = text.find("[")
    if start == -1:
        return None

    items: List[Any] = []
    pos = start + 1
    length = len(text)
    while pos < length:
        while pos < length and text[pos] in " \t\r\n,":
            pos += 1
        if pos >= length or text[pos] == "]":
            break
        try:
            value, pos = decoder.raw_decode(text, pos)
        except json.JSONDecodeError:
            break
        items.append(value)
    return items or None


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def parse_array_stage(text: str) -> Optional[List[Dict[str, Any]]]:
    """Stage 2: a JSON array whose lesson-like elements are kept."""
    if not (text.startswith("[") and "{" in text):
        return None
    ok, parsed = _try_json(text)
    if not ok or not isinstance(parsed, list):
        return None
    return lesson_objects(parsed) or None


def parse_separator_stage(text: str) -> Optional[List[Dict[str, Any]]]:
    """Stage 3: independent JSON objects separated by "---" lines."""
    if not _SEPARATOR_RE.search(text):
        return None
    results: List[Dict[str, Any]] = []
    for part in _SEPARATOR_RE.split(text):
        part = part.strip()
        if len(part) < 5:
            continue
        ok, parsed = _try_json(strip_code_fences(part))
        if ok and isinstance(parsed, dict) and (parsed.get("subject") or parsed.get("phases")):
            results.append(parsed)
    return results or None


def parse_whole_stage(text: str) -> Optional[List[Dict[str, Any]]]:
    """Stage 4: the whole cleaned text as one JSON value."""
    ok, parsed = _try_json(text)
    if not ok:
        return None
    if isinstance(parsed, list):
        return lesson_objects(parsed) or None
    if isinstance(parsed, dict):
        return [parsed]
    return None


def recover_stage(raw: str) -> Optional[List[Dict[str, Any]]]:
    """Stage 5: slice the outermost JSON-looking span out of the raw text."""
    match = re.search(r"[{\[]", raw)
    last_close = max(raw.rfind("}"), raw.rfind("]"))
    if not match or last_close <= match.start():
        return None

    fragment = raw[match.start(): last_close + 1]
    ok, parsed = _try_json(fragment)
    if ok:
        if isinstance(parsed, list):
            return lesson_objects(parsed) or None
        return [parsed] if isinstance(parsed, dict) else None

    if fragment.startswith("["):
        items = repair_truncated_array(fragment)
        if items:
            logger.warning("Recovered %d elements from a truncated JSON array", len(items))
            return lesson_objects(items) or None
    return None


_STAGES = (
    ("array", parse_array_stage),
    ("separator", parse_separator_stage),
    ("whole", parse_whole_stage),
)


def parse_model_json(text: str) -> ParsedLesson:
    """
    Parse a model response into one or more LessonDocuments.

    Raises:
        ModelOutputParseError: every stage failed.
    """
    cleaned = strip_code_fences(text)
    for name, stage in _STAGES:
        objects = stage(cleaned)
        if objects:
            logger.info("Parsed %d lesson object(s) at %s stage", len(objects), name)
            return ParsedLesson.from_objects(objects)

    objects = recover_stage(text or "")
    if objects:
        logger.warning("Lesson response needed recovery; %d object(s) kept", len(objects))
        return ParsedLesson.from_objects(objects)

    logger.error("Unparseable lesson response. Preview: %s", (text or "")[:300])
    raise ModelOutputParseError(LESSON_PARSE_ERROR)


def parse_model_records(text: str) -> List[Dict[str, Any]]:
    """
    Parse a model response that should be a JSON array of flat records.

    Used for scheme extraction; a truncated array keeps its complete
    leading elements and a lone object becomes a one-element list.

    Raises:
        ModelOutputParseError: nothing usable could be decoded.
    """
    cleaned = strip_code_fences(text)
    ok, parsed = _try_json(cleaned)
    if not ok:
        parsed = repair_truncated_array(cleaned)
        if parsed is None:
            logger.error("Unparseable record response. Preview: %s", (text or "")[:300])
            raise ModelOutputParseError(SCHEME_PARSE_ERROR)
        logger.warning("Repaired truncated record array: %d item(s)", len(parsed))

    if isinstance(parsed, dict):
        parsed = [parsed]
    if not isinstance(parsed, list):
        raise ModelOutputParseError(SCHEME_PARSE_ERROR)
    return [item for item in parsed if isinstance(item, dict)]
