"""
Data Models
===========
Pydantic models for quiz ingestion and grading.
All models are serializable to JSON for the persistence collaborator.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

OPTION_LABELS = ("A", "B", "C", "D")


# ─── Enums ────────────────────────────────────────────────────────────────────


class QuestionType(str, Enum):
    """Question formats understood by the grader."""
    MULTIPLE_CHOICE = "multiple-choice"
    FILL_BLANK = "fill-blank"
    SHORT_ANSWER = "short-answer"


class ExtractionMethod(str, Enum):
    """How a question record was produced."""
    TEXT = "text"
    TEXT_WITH_IMAGE = "text_with_image"
    PAGE_IMAGE = "page_image"
    PLACEHOLDER = "placeholder"


class ExtractionStrategy(str, Enum):
    """Caller-chosen policy for routing blocks to the page-image fallback."""
    AUTO = "auto"
    TEXT = "text"
    PAGE_IMAGE = "page_image"


class WarningType(str, Enum):
    """Recoverable, per-item problems found during ingestion."""
    MISSING_ANSWER = "missing_answer"
    UNPARSEABLE_OPTIONS = "unparseable_options"
    MISSING_QUESTION_TEXT = "missing_question_text"
    DUPLICATE_ORDINAL = "duplicate_ordinal"
    IMAGE_FALLBACK = "image_fallback"
    PLACEHOLDER_OPTIONS = "placeholder_options"
    RENDER_FAILED = "render_failed"


# ─── Document Models ──────────────────────────────────────────────────────────


class PageText(BaseModel):
    """Plain text extracted from a single page."""
    page_index: int = Field(ge=0)
    text: str = ""


class RawDocumentText(BaseModel):
    """
    Ordered (page index, text) pairs for a whole document.
    Pages are joined with a newline so that a page always starts a new line.
    """
    pages: list[PageText] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def full_text(self) -> str:
        return "\n".join(p.text for p in self.pages)

    def page_for_offset(self, offset: int) -> int:
        """Return the page index containing a character offset of full_text."""
        position = 0
        for page in self.pages:
            end = position + len(page.text)
            if offset <= end:
                return page.page_index
            position = end + 1
        return self.pages[-1].page_index if self.pages else 0


class QuestionBlock(BaseModel):
    """A contiguous span of text believed to hold exactly one question."""
    ordinal: int = Field(ge=1)
    raw_text: str
    page_index: int = Field(default=0, ge=0)


# ─── Question Models ──────────────────────────────────────────────────────────


class ImageAsset(BaseModel):
    """Rendered raster attached to a question. Bytes are never serialized."""
    data: bytes = Field(exclude=True, repr=False)
    filename: str
    content_type: str = "image/png"

    @computed_field
    @property
    def size_bytes(self) -> int:
        return len(self.data)


class ExtractedQuestion(BaseModel):
    """
    A question record ready for persistence.

    Invariants:
        - exactly four options
        - has_image implies image_asset is present
    """
    question_text: str = Field(min_length=1)
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    options: list[str]
    correct_answer: Optional[str] = None
    point_value: float = 1
    order_index: int = Field(ge=0)
    has_image: bool = False
    image_asset: Optional[ImageAsset] = None
    source_page: int = Field(default=0, ge=0)
    extraction_method: ExtractionMethod = ExtractionMethod.TEXT

    @model_validator(mode="after")
    def _check_invariants(self) -> "ExtractedQuestion":
        if len(self.options) != len(OPTION_LABELS):
            raise ValueError(
                f"expected {len(OPTION_LABELS)} options, got {len(self.options)}"
            )
        if self.has_image and self.image_asset is None:
            raise ValueError("has_image is set but no image_asset attached")
        return self

    @property
    def ordinal(self) -> int:
        return self.order_index + 1


class UnparseableBlock(BaseModel):
    """A detected question whose fields could not be extracted from text."""
    ordinal: int = Field(ge=1)
    page_index: int = Field(default=0, ge=0)
    question_text: str = ""
    options: list[str] = Field(default_factory=list)
    missing_fields: list[str] = Field(default_factory=list)
    raw_text: str = ""


ExtractionOutcome = Union[ExtractedQuestion, UnparseableBlock]


class ParsedQuizDocument(BaseModel):
    """A quiz ready to hand to the persistence store."""
    title: str
    description: str = ""
    duration: int = Field(default=90, ge=0, description="Minutes")
    questions: list[ExtractedQuestion] = Field(default_factory=list)

    @computed_field
    @property
    def total_points(self) -> float:
        return sum(q.point_value for q in self.questions)


# ─── Warning / Report Models ──────────────────────────────────────────────────


class ExtractionWarning(BaseModel):
    """A recoverable problem reported alongside the extracted questions."""
    type: WarningType
    ordinal: Optional[int] = None
    field: Optional[str] = None
    message: str


class ValidationReport(BaseModel):
    """Post-extraction report over the assembled questions."""
    total_questions_detected: int = 0
    structured_successfully: int = 0
    image_fallbacks: int = 0
    placeholder_records: int = 0
    missing_ordinals: list[int] = Field(default_factory=list)
    duplicate_ordinals: list[int] = Field(default_factory=list)
    defaulted_answers: list[int] = Field(default_factory=list)
    questions_without_answer: list[int] = Field(default_factory=list)
    warning_breakdown: dict[str, int] = Field(default_factory=dict)

    @computed_field
    @property
    def success_rate(self) -> float:
        if self.total_questions_detected == 0:
            return 0.0
        return round(
            self.structured_successfully / self.total_questions_detected * 100,
            2
        )


class ExtractionResult(BaseModel):
    """Complete output of one ingestion pass."""
    document: ParsedQuizDocument
    warnings: list[ExtractionWarning] = Field(default_factory=list)
    validation: ValidationReport = Field(default_factory=ValidationReport)
    page_count: int = 0
    strategy: ExtractionStrategy = ExtractionStrategy.AUTO
    parser_version: str = "1.0.0"
    elapsed_seconds: float = 0.0
    parse_timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


# ─── Grading Models ───────────────────────────────────────────────────────────


class KeywordRubric(BaseModel):
    """
    Grading key for a free-text question: expected phrases and their weights.
    Weights that are missing, non-numeric, infinite or not positive count as 1.
    """
    keywords: list[str] = Field(default_factory=list)
    weight: dict[str, Any] = Field(default_factory=dict)

    @field_validator("keywords")
    @classmethod
    def _dedupe(cls, keywords: list[str]) -> list[str]:
        return list(dict.fromkeys(keywords))

    def weight_for(self, keyword: str) -> float:
        value = self.weight.get(keyword)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 1
        if not math.isfinite(value) or value <= 0:
            return 1
        return value

    @property
    def is_empty(self) -> bool:
        return not self.keywords


class KeywordMatch(BaseModel):
    keyword: str
    found: bool
    weight: float


class GradingResult(BaseModel):
    """Outcome of grading one response against one rubric."""
    score: float = 0
    max_score: float = 0
    percentage: float = 0
    matches: list[KeywordMatch] = Field(default_factory=list)


class AnswerGrade(BaseModel):
    """Grading outcome for a single attempt answer, any question type."""
    is_correct: bool = False
    points_earned: float = 0
    max_points: float = 0
    auto_graded_score: Optional[float] = None
    requires_manual_review: bool = False
    grading: Optional[GradingResult] = None


class AttemptGrade(BaseModel):
    """Totals over every answer of one attempt."""
    score: float = 0
    max_score: float = 0
    answers: list[AnswerGrade] = Field(default_factory=list)

    @computed_field
    @property
    def needs_review_count(self) -> int:
        return sum(1 for a in self.answers if a.requires_manual_review)


# ─── Publishing Models ────────────────────────────────────────────────────────


class PartialAssetFailure(BaseModel):
    """An image that never reached its already-persisted question row."""
    question_index: int
    order_index: int
    question_id: Optional[Any] = None
    asset_name: str
    error: str


class PublishResult(BaseModel):
    """Outcome of persisting a parsed quiz."""
    quiz_id: Any
    question_ids: dict[int, Any] = Field(default_factory=dict)
    image_urls: dict[int, str] = Field(default_factory=dict)
    asset_failures: list[PartialAssetFailure] = Field(default_factory=list)

    @computed_field
    @property
    def is_degraded(self) -> bool:
        return bool(self.asset_failures)
