"""
Error taxonomy for the ingestion and rendering pipeline.

Extraction failures never escape the text extractor (they degrade to a
placeholder string).  Parse errors abort the operation for one input only.
Generation failures are counted per item by the batch runner; an
InsufficientBalanceError halts the batch.
"""


class NotegenError(Exception):
    """Base class for all pipeline errors."""


class ExtractionError(NotegenError):
    """A file could not be read or decoded."""


class ParseError(NotegenError):
    """Input could not be turned into canonical records."""


class StructuralParseError(ParseError):
    """Delimited input is too short or no rows survived column mapping."""


class ModelOutputParseError(ParseError):
    """Every recovery stage failed on a generative-model response."""


class GenerationFailure(NotegenError):
    """The external generation endpoint failed for one item."""


class GenerationTimeout(GenerationFailure):
    """The generation call exceeded its timeout."""


class InsufficientBalanceError(GenerationFailure):
    """The account funding generation calls is exhausted."""


class DuplicateItemError(NotegenError):
    """A batch item duplicates work already done and is skipped."""
