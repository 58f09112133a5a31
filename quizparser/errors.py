"""
Error Taxonomy
==============
Failures surfaced by the ingestion and publishing pipelines.

Malformed question blocks are not errors: they are reported as
ExtractionWarning records next to the successful results.
Grading never raises for empty input.
"""

from __future__ import annotations


class QuizParserError(Exception):
    """Base class for all quiz parser failures."""


class DocumentOpenError(QuizParserError):
    """The source document could not be opened or read."""


class EmptyResultError(QuizParserError):
    """An ingestion pass produced zero usable questions."""

    def __init__(self, message: str, warnings: list | None = None):
        super().__init__(message)
        self.warnings = list(warnings or [])


class QuizTimeoutError(QuizParserError):
    """A caller-supplied time budget was exceeded. Safe to retry."""

    retryable = True

    def __init__(self, message: str, budget_seconds: float | None = None):
        super().__init__(message)
        self.budget_seconds = budget_seconds


class ExtractionTimeoutError(QuizTimeoutError):
    """Document extraction exceeded its time budget."""


class PublishTimeoutError(QuizTimeoutError):
    """Persisting a parsed quiz exceeded its time budget."""


class AssetUploadError(QuizParserError):
    """An asset store rejected a blob."""
