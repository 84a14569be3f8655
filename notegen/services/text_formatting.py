"""
Body-text clean-up for generated lesson content.

Generated activities often arrive as one run-on paragraph ("1. A 2. B",
"Activity 1: ... Activity 2: ...").  clean_and_split_text() puts list
items, activity headers and new instructions on their own lines;
parse_markdown_line() turns **bold** / *italic* markers into runs.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

HEADER_WORDS = "Activity|Step|Part|Phase|Group"

NEW_THOUGHT_KEYWORDS = (
    # sequence
    "Next,", "Then,", "Finally,", "First,", "Second,", "Third,", "Firstly,", "Secondly,",
    "Thirdly,", "Lastly,", "To begin,", "To start,", "Initially,",
    # addition
    "Additionally,", "Moreover,", "Furthermore,", "In addition,", "Also,", "Besides,",
    "Equally important,", "What is more,",
    # contrast
    "However,", "Nevertheless,", "On the other hand,", "Conversely,", "In contrast,",
    "Although,", "Despite this,", "Yet,", "Still,", "Nonetheless,",
    # cause/effect
    "Therefore,", "As a result,", "Consequently,", "Hence,", "Thus,", "Accordingly,",
    "For this reason,", "Because of this,",
    # examples
    "For example,", "For instance,", "Such as,", "Specifically,", "In particular,",
    "To illustrate,", "As an example,",
    # summary
    "In conclusion,", "To summarize,", "In summary,", "To conclude,", "Overall,",
    "In short,", "Briefly,", "To sum up,",
    # time
    "Meanwhile,", "Subsequently,", "Afterwards,", "Before this,", "After this,",
    "During this,", "At the same time,", "Later,", "Earlier,",
    # emphasis
    "Indeed,", "In fact,", "Certainly,", "Undoubtedly,", "Clearly,",
    "Obviously,", "Of course,", "Importantly,", "Significantly,",
    # instruction
    "Note that", "Remember that", "Ensure that", "Make sure", "Be sure to",
    "It is important to", "Students should", "Learners should", "Teachers should",
    "Ask students to", "Have students", "Guide students", "Allow students",
    "Encourage students", "Instruct students",
)

_NEW_THOUGHT_PATTERNS = [
    (
        re.compile(rf"([.!?])\s+({re.escape(keyword)})", re.IGNORECASE),
        re.compile(rf"\.\s+({re.escape(keyword)})", re.IGNORECASE),
    )
    for keyword in NEW_THOUGHT_KEYWORDS
]


@dataclass
class TextToken:
    text: str
    bold: bool = False
    italic: bool = False


def remove_orphan_asterisks(text: str) -> str:
    """Drop "**" markers that have no partner; balanced pairs are left alone."""
    result = text
    if len(re.findall(r"\*\*", result)) % 2 == 0:
        return result
    if result.rstrip().endswith("**"):
        result = re.sub(r"\*\*\s*$", "", result)
        if len(re.findall(r"\*\*", result)) % 2 == 0:
            return result
    # last closing-looking marker glued to a word: "Directions** more"
    glued = list(re.finditer(r"(?<=[a-zA-Z0-9.)\]!?,;])\*\*(?=\s|$)", result))
    if glued:
        last = glued[-1]
        result = result[: last.start()] + result[last.end():]
    return result


def _bold_header_line(line: str) -> str:
    trimmed = line.strip()
    if not trimmed:
        return line
    if re.match(rf"^({HEADER_WORDS})\s+\d+", trimmed, re.IGNORECASE):
        trimmed = re.sub(r"\*\*\s*$", "", trimmed)
        trimmed = re.sub(r"^\*\*", "", trimmed)
        if not trimmed.startswith("**"):
            return f"**{trimmed}**"
    if re.match(r"^Lesson:\s*\d+\s*of\s*\d+", trimmed, re.IGNORECASE):
        trimmed = re.sub(r"^\*\*", "", trimmed)
        trimmed = re.sub(r"\*\*$", "", trimmed)
        if not trimmed.startswith("**"):
            return f"**{trimmed}**"
    return line


def clean_and_split_text(text: str) -> List[str]:
    """
    Normalise run-on generated text and return its lines.

    Blank lines are kept so callers can render paragraph gaps.
    """
    if not text:
        return []

    s = remove_orphan_asterisks(text)

    # inline lists onto their own lines
    s = re.sub(r"([^\n\d])(\s+)(\d+\.\s)", r"\1\n\3", s)
    s = re.sub(r"([^\n\d])(\s*)(\d+\)\s)", r"\1\n\3", s)
    s = re.sub(r"([^\n])(\s+)([a-zA-Z][).]\s)", r"\1\n\3", s)
    s = re.sub(r"([^\n])(\s+)(Tier\s\d)", r"\1\n\3", s, flags=re.IGNORECASE)

    for after_sentence, after_period in _NEW_THOUGHT_PATTERNS:
        s = after_sentence.sub(r"\1\n\2", s)
        s = after_period.sub(r".\n\1", s)

    s = re.sub(r"([.!?])\s{2,}([A-Z])", r"\1\n\2", s)
    s = re.sub(r"([.!?])\s+(The teacher|The learner|Students|Learners|Pupils)", r"\1\n\2", s)
    s = re.sub(
        r"([.!?])\s+(Ask |Tell |Show |Explain |Demonstrate |Guide |Have |Let |Allow |Encourage )",
        r"\1\n\2",
        s,
    )

    # normalise existing bold around activity headers
    s = re.sub(rf"\*\*({HEADER_WORDS})\s+(\d+:?)\*\*", r"\1 \2", s, flags=re.IGNORECASE)
    s = re.sub(rf"\*\*({HEADER_WORDS})\s+(\d+:?)", r"\1 \2", s, flags=re.IGNORECASE)
    s = re.sub(rf"({HEADER_WORDS})\s+(\d+:?)\*\*", r"\1 \2", s, flags=re.IGNORECASE)
    s = re.sub(rf"\*\*({HEADER_WORDS})\s+(\d+)\*\*(:)", r"\1 \2\3", s, flags=re.IGNORECASE)

    # header content stays on the header line
    s = re.sub(
        rf"(\**(?:{HEADER_WORDS})\s+\d+(?::|.*?:)?\**)\s*[\r\n]+\s*", r"\1 ", s, flags=re.IGNORECASE
    )

    # a blank line before each header
    for header in (r"Activity\s+\d+:", r"Step\s+\d+:", r"Part\s+\d+:", r"Phase\s+\d+:", r"Group\s+\d+"):
        s = re.sub(rf"([^\n])\s*({header})", r"\1\n\n\2", s, flags=re.IGNORECASE)

    s = "\n".join(_bold_header_line(line) for line in s.split("\n"))

    s = re.sub(r"\*{4,}", "**", s)
    s = re.sub(r"\n{3,}", "\n\n", s)

    # "1.\nText" back onto one line
    s = re.sub(r"(\n|^)(\s*(?:\*\*)?\(?\d+[.)](?:\*\*)?)\s*\n\s*", r"\1\2 ", s)

    # short inline "Label: Value" split after the colon
    s = re.sub(
        rf"(\n|^)(?!\**(?:{HEADER_WORDS})\s+\d+)([^:\n]{{3,60}}:)[ \t]+([A-Z0-9(])",
        r"\1\2\n\3",
        s,
    )
    return s.split("\n")


def parse_markdown_line(text: str) -> List[TextToken]:
    """Tokenise **bold** and *italic* spans; stray markers are dropped."""
    cleaned = remove_orphan_asterisks(text)
    while len(re.findall(r"\*\*", cleaned)) % 2 != 0:
        idx = cleaned.rfind("**")
        cleaned = cleaned[:idx] + cleaned[idx + 2:]

    tokens: List[TextToken] = []
    for part in re.split(r"(\*\*[^*]+\*\*)", cleaned):
        if part.startswith("**") and part.endswith("**") and len(part) > 4:
            content = part[2:-2]
            if content.strip():
                tokens.append(TextToken(content, bold=True))
            continue
        if not part:
            continue
        for sub in re.split(r"(\*[^*]+\*)", part):
            if sub.startswith("*") and sub.endswith("*") and len(sub) > 2 and not sub.startswith("**"):
                tokens.append(TextToken(sub[1:-1], italic=True))
            elif sub:
                plain = sub.replace("**", "")
                if plain:
                    tokens.append(TextToken(plain))
    return tokens


def format_generated_content(text: str) -> str:
    """Bold the recurring activity captions and set off "Sample Class Exercises"."""
    if not text:
        return text
    s = re.sub(r"(^|\n)(?!\*\*)(Recap Activity:[^\n]*)", r"\1**\2**", text, flags=re.IGNORECASE)
    s = re.sub(r"(^|\n)(?!\*\*)(Quick oral quiz:)", r"\1**\2**", s, flags=re.IGNORECASE)
    s = re.sub(r"(^|\n)(?!\*\*)(Teacher summari[sz]es[^:]*:)", r"\1**\2**", s, flags=re.IGNORECASE)
    s = re.sub(
        r"\n*(\*\*)?(Sample Class Exercises):?(\*\*)?",
        "\n\n**Sample Class Exercises:**",
        s,
        flags=re.IGNORECASE,
    )
    s = re.sub(r"\n{3,}", "\n\n", s)
    return s.replace("****", "**")


def capitalize_first_letter(text: str) -> str:
    if not text:
        return text
    return text[0].upper() + text[1:]
