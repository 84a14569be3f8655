"""
Text extraction for uploaded or remote files.

Dispatches on the lowercased file extension and always returns a string:
plain-text types are decoded verbatim, DOCX is flattened from its document
XML with table structure kept as " | " cells and row newlines, and PDF text
is reflowed from glyph coordinates into reading order.  Anything that goes
wrong is reported as a bracketed placeholder string so callers iterating
over many files never have to handle an exception from this module.
"""
from __future__ import annotations

import functools
import io
import logging
import re
import zipfile
import zlib
from dataclasses import dataclass
from typing import Iterable, List, Optional

import fitz  # PyMuPDF
import httpx

from notegen.config import settings
from notegen.services.errors import ExtractionError

logger = logging.getLogger(__name__)

PLAIN_TEXT_EXTENSIONS = ("txt", "csv", "md", "json", "html")

_XML_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
    ("&quot;", '"'),
    ("&apos;", "'"),
)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class TextFragment:
    """A positioned run of text on a PDF page.

    Coordinates are PDF user space: the origin is bottom-left, so a larger
    ``y`` is higher on the page.
    """

    x: float
    y: float
    text: str


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def file_extension(filename: str) -> str:
    """Return the lowercased text after the last dot ("" when there is none)."""
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def reflow_fragments(
    fragments: Iterable[TextFragment],
    same_line_tolerance: Optional[float] = None,
    new_line_tolerance: Optional[float] = None,
) -> str:
    """
    Rebuild reading order from positioned fragments.

    Fragments whose vertical positions differ by no more than
    *same_line_tolerance* are ordered left-to-right; otherwise higher
    fragments come first.  A newline is emitted whenever consecutive
    fragments are more than *new_line_tolerance* apart vertically, else a
    single space unless the text already ends in whitespace.
    """
    same_tol = settings.PDF_SAME_LINE_TOLERANCE if same_line_tolerance is None else same_line_tolerance
    new_tol = settings.PDF_NEW_LINE_TOLERANCE if new_line_tolerance is None else new_line_tolerance

    def _compare(a: TextFragment, b: TextFragment) -> float:
        if abs(a.y - b.y) > same_tol:
            return b.y - a.y
        return a.x - b.x

    items = sorted(fragments, key=functools.cmp_to_key(_compare))
    if not items:
        return ""

    text = ""
    last_y = items[0].y
    for item in items:
        if abs(item.y - last_y) > new_tol:
            text += "\n"
        elif text and not text.endswith("\n") and not text.endswith(" "):
            text += " "
        text += item.text
        last_y = item.y
    return text


def docx_xml_to_text(xml: str) -> str:
    """Flatten WordprocessingML to text, keeping rows and cells recognisable."""
    text = xml.replace("</w:tr>", "\n")
    text = text.replace("</w:tc>", " | ")
    text = text.replace("</w:p>", " ")
    text = re.sub(r"<[^>]+>", "", text)
    for entity, char in _XML_ENTITIES:
        text = text.replace(entity, char)
    # \s+ also swallows the row newlines, matching the flattened layout
    # downstream heuristics were tuned on
    text = re.sub(r"\s+", " ", text)
    text = text.replace(" |\n", "\n").replace("\n |", "\n")
    return text.strip()


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class TextExtractor:
    """Turns file bytes into plain text; never raises."""

    def __init__(
        self,
        same_line_tolerance: Optional[float] = None,
        new_line_tolerance: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.same_line_tolerance = (
            settings.PDF_SAME_LINE_TOLERANCE if same_line_tolerance is None else same_line_tolerance
        )
        self.new_line_tolerance = (
            settings.PDF_NEW_LINE_TOLERANCE if new_line_tolerance is None else new_line_tolerance
        )
        self.timeout = timeout or 30.0
        self._transport = transport

    def extract_text(self, data: bytes, filename: str) -> str:
        """
        Extract text from *data* according to the extension of *filename*.

        Args:
            data:     Raw file bytes.
            filename: Original file name; only its extension is inspected.

        Returns:
            The extracted text, or a bracketed placeholder describing why no
            text could be produced.
        """
        ext = file_extension(filename)
        try:
            if ext == "docx":
                return self._extract_docx(data)
            if ext == "pdf":
                return self._extract_pdf(data)
            if ext in PLAIN_TEXT_EXTENSIONS:
                return data.decode("utf-8", errors="replace")
            logger.warning("No extractor for .%s (%s)", ext, filename)
            return (
                f"[Content extraction for .{ext} files is not currently supported. "
                f"File: {filename}]"
            )
        except ExtractionError as exc:
            logger.warning("Extraction failed for %s: %s", filename, exc)
            return f"[Error reading file {filename}: {exc}]"

    async def fetch_and_extract(self, url: str, filename: str) -> str:
        """Download *url* and extract its text; fetch failures become placeholders."""
        logger.info("Downloading %s from %s", filename, url)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True, transport=self._transport
            ) as client:
                resp = await client.get(url)
        except httpx.HTTPError as exc:
            logger.error("Fetching %s failed: %s", filename, exc)
            return f"[Error reading file {filename}: {exc}]"

        if resp.status_code != 200:
            reason = resp.reason_phrase or f"HTTP {resp.status_code}"
            logger.error("Fetching %s returned HTTP %d", filename, resp.status_code)
            return f"[Error reading file {filename}: Failed to fetch file: {reason}]"

        return self.extract_text(resp.content, filename)

    # ------------------------------------------------------------------
    # DOCX
    # ------------------------------------------------------------------

    def _extract_docx(self, data: bytes) -> str:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                if "word/document.xml" not in archive.namelist():
                    return "[Empty DOCX file]"
                xml = archive.read("word/document.xml").decode("utf-8", errors="replace")
        except (
            zipfile.BadZipFile,
            zlib.error,
            OSError,
            RuntimeError,
            NotImplementedError,
            ValueError,
        ) as exc:
            # damaged deflate streams, encrypted or unsupported members
            logger.warning("Cannot open DOCX archive: %s", exc)
            return "[Error parsing DOCX file]"

        if not xml:
            return "[Empty DOCX file]"
        return docx_xml_to_text(xml)

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    def _extract_pdf(self, data: bytes) -> str:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except (fitz.FileDataError, RuntimeError, ValueError) as exc:
            logger.warning("Cannot open PDF: %s", exc)
            return f"[Error parsing PDF file: {exc}]"

        try:
            if doc.needs_pass:
                raise ExtractionError("PDF is password-protected")

            full_text = ""
            for page_num, page in enumerate(doc, start=1):
                fragments = self._page_fragments(page)
                if not fragments:
                    continue
                page_text = reflow_fragments(
                    fragments, self.same_line_tolerance, self.new_line_tolerance
                )
                full_text += f"--- Page {page_num} ---\n{page_text}\n\n"
            return full_text
        except (fitz.FileDataError, RuntimeError, ValueError) as exc:
            logger.warning("Cannot read PDF pages: %s", exc)
            return f"[Error parsing PDF file: {exc}]"
        finally:
            doc.close()

    @staticmethod
    def _page_fragments(page: fitz.Page) -> List[TextFragment]:
        """Collect span-level fragments, flipping y into bottom-left space."""
        page_height = page.rect.height
        fragments: List[TextFragment] = []
        for block in page.get_text("dict")["blocks"]:
            if block.get("type") != 0:
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    text = span.get("text", "")
                    if not text:
                        continue
                    x, y = span.get("origin", span["bbox"][:2])
                    fragments.append(TextFragment(x=x, y=page_height - y, text=text))
        return fragments
