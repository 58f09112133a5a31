"""
Quiz Extraction Engine
======================
Main orchestrator that combines text reading, segmentation, field
extraction, the page-image fallback, assembly and validation into a
complete ingestion pass.

Usage:
    engine = QuizExtractionEngine(ExtractionConfig(default_point_value=2))
    result = engine.parse("path/to/exam.pdf", title="Unit 3 Test")
    # result.document is a ParsedQuizDocument for the persistence store

Architecture:
    PDF → read_document_text → RawDocumentText → segment_document →
    QuestionBlocks → extract / PageImageExtractor → assemble →
    ParsedQuizDocument → ValidationEngine → ExtractionResult
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from . import __version__
from .assembly import assemble
from .document import DocumentSource, PdfDocumentSource, read_document_text
from .errors import ExtractionTimeoutError
from .field_extractor import extract
from .models import (
    OPTION_LABELS,
    ExtractedQuestion,
    ExtractionMethod,
    ExtractionOutcome,
    ExtractionResult,
    ExtractionStrategy,
    ExtractionWarning,
    UnparseableBlock,
    WarningType,
)
from .page_image import PageImageExtractor
from .segmenter import segment_document
from .validator import ValidationEngine

logger = logging.getLogger(__name__)

DocumentInput = Union[str, os.PathLike, bytes, DocumentSource]


@dataclass
class ExtractionConfig:
    """Configuration for one or more ingestion passes."""

    # Fallback policy
    strategy: ExtractionStrategy = ExtractionStrategy.AUTO
    fallback_threshold: float = 0.5
    render_scale: float = 1.0

    # Question defaults
    default_point_value: float = 2

    # Quiz defaults
    default_title: str = ""
    default_description: str = ""
    default_duration: int = 90

    # Processing
    first_page: int = 0
    timeout_seconds: Optional[float] = None

    # Output
    output_dir: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        self.strategy = ExtractionStrategy(self.strategy)
        if not 0 <= self.fallback_threshold <= 1:
            raise ValueError("fallback_threshold must be between 0 and 1")


class QuizExtractionEngine:
    """
    Turns an exam document into a ParsedQuizDocument.

    Pipeline:
        1. Page text reading (in page order)
        2. Question block segmentation over the whole text
        3. Field extraction per block
        4. Fallback routing (page image or placeholder options)
        5. Assembly and validation

    Holds no per-pass state; one engine may run several passes concurrently.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()
        self._setup_logging()

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        if not isinstance(log_level, int):
            log_level = logging.INFO
        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        # Configure root logger for the quizparser package
        package_logger = logging.getLogger("quizparser")
        package_logger.setLevel(log_level)

        # Console handler
        if not package_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(formatter)
            package_logger.addHandler(console)

        # File handler
        if self.config.log_file:
            log_path = Path(self.config.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            already = any(
                isinstance(h, logging.FileHandler)
                and Path(h.baseFilename) == log_path.resolve()
                for h in package_logger.handlers
            )
            if not already:
                file_handler = logging.FileHandler(log_path, encoding="utf-8")
                file_handler.setLevel(log_level)
                file_handler.setFormatter(formatter)
                package_logger.addHandler(file_handler)

    def parse(
        self,
        document: DocumentInput,
        title: Optional[str] = None,
        description: Optional[str] = None,
        duration: Optional[int] = None,
        timeout: Optional[float] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> ExtractionResult:
        """
        Run one ingestion pass.

        Args:
            document: PDF path, PDF bytes, or an open DocumentSource.
            title: Quiz title (defaults to config, then the file name).
            description: Quiz description.
            duration: Quiz duration in minutes.
            timeout: Time budget in seconds (defaults to config).
            progress_callback: Callback(page_index, total_pages) per page read.

        Returns:
            ExtractionResult with the quiz document, warnings and validation.

        Raises:
            FileNotFoundError: If a PDF path doesn't exist.
            DocumentOpenError: If the PDF cannot be opened.
            EmptyResultError: If no usable question was extracted.
            ExtractionTimeoutError: If the time budget was exceeded.
        """
        budget = timeout if timeout is not None else self.config.timeout_seconds
        start_time = time.monotonic()
        deadline = start_time + budget if budget is not None else None

        def check_deadline(stage: str):
            if deadline is not None and time.monotonic() > deadline:
                raise ExtractionTimeoutError(
                    f"Extraction exceeded {budget}s budget during {stage}",
                    budget_seconds=budget,
                )

        owns_source = not isinstance(document, DocumentSource)
        source = PdfDocumentSource.open(document) if owns_source else document
        source_name = getattr(source, "name", "") or ""

        try:
            page_count = source.get_page_count()
            logger.info(f"Starting ingestion of: {source_name or 'document'}")

            # ── Step 1: Read page text ────────────────────────────────────
            logger.info("Phase 1: Text extraction")

            def on_page(page_index: int, total: int):
                check_deadline(f"page {page_index} text")
                if progress_callback:
                    progress_callback(page_index, total)

            raw = read_document_text(
                source,
                first_page=self.config.first_page,
                progress_callback=on_page,
            )

            # ── Step 2: Segment and extract ───────────────────────────────
            logger.info("Phase 2: Question extraction")
            warnings: list[ExtractionWarning] = []
            blocks = segment_document(raw)
            outcomes = [
                extract(block, self.config.default_point_value, warnings)
                for block in blocks
            ]

            # ── Step 3: Fallback routing ──────────────────────────────────
            logger.info(f"Phase 3: Fallback routing ({self.config.strategy.value})")
            records = self._route(outcomes, source, warnings, check_deadline)

            # ── Step 4: Assemble ──────────────────────────────────────────
            logger.info("Phase 4: Assembly")
            quiz = assemble(
                records,
                title=title or self.config.default_title
                or _title_from_name(source_name),
                description=description or self.config.default_description,
                duration=duration if duration is not None
                else self.config.default_duration,
                warnings=warnings,
            )

            # ── Step 5: Validation ────────────────────────────────────────
            logger.info("Phase 5: Validation")
            validation = ValidationEngine().validate(quiz.questions, warnings)
        finally:
            if owns_source:
                source.close()

        elapsed = time.monotonic() - start_time
        result = ExtractionResult(
            document=quiz,
            warnings=warnings,
            validation=validation,
            page_count=page_count,
            strategy=self.config.strategy,
            parser_version=__version__,
            elapsed_seconds=round(elapsed, 3),
        )

        logger.info(
            f"Ingestion complete in {elapsed:.2f}s: "
            f"{len(quiz.questions)} questions, {len(warnings)} warnings"
        )

        if self.config.output_dir:
            output_dir = Path(self.config.output_dir)
            output_dir.mkdir(parents=True, exist_ok=True)
            stem = _safe_stem(source_name or quiz.title)
            self._save_json(result, output_dir / f"{stem}_parsed.json")

        return result

    def _route(
        self,
        outcomes: list[ExtractionOutcome],
        source: DocumentSource,
        warnings: list[ExtractionWarning],
        check_deadline: Callable[[str], None],
    ) -> list[ExtractedQuestion]:
        """Apply the fallback policy so every detected ordinal yields one record."""
        strategy = self.config.strategy
        images = PageImageExtractor(scale=self.config.render_scale)
        unreliable = self._unreliable_pages(outcomes)
        records: list[ExtractedQuestion] = []

        for item in outcomes:
            if isinstance(item, UnparseableBlock):
                page = item.page_index
                if strategy == ExtractionStrategy.PAGE_IMAGE or page in unreliable:
                    check_deadline(f"page {page} render")
                    records.append(images.extract_as_image(
                        page,
                        source,
                        item.ordinal,
                        question_text=item.question_text,
                        point_value=self.config.default_point_value,
                        warnings=warnings,
                    ))
                else:
                    records.append(self._placeholder(item, warnings))
                continue

            if strategy == ExtractionStrategy.PAGE_IMAGE:
                check_deadline(f"page {item.source_page} render")
                asset = images.image_for(item.source_page, source, item.ordinal)
                if asset is None:
                    warnings.append(ExtractionWarning(
                        type=WarningType.RENDER_FAILED,
                        ordinal=item.ordinal,
                        field="image_asset",
                        message=f"Page {item.source_page} could not be rendered",
                    ))
                else:
                    item = item.model_copy(update={
                        "has_image": True,
                        "image_asset": asset,
                        "extraction_method": ExtractionMethod.TEXT_WITH_IMAGE,
                    })
            records.append(item)

        return records

    def _unreliable_pages(self, outcomes: list[ExtractionOutcome]) -> set[int]:
        """Pages whose unparseable share exceeds the configured threshold."""
        if self.config.strategy != ExtractionStrategy.AUTO:
            return set()

        per_page: dict[int, list[bool]] = defaultdict(list)
        for item in outcomes:
            if isinstance(item, UnparseableBlock):
                per_page[item.page_index].append(True)
            else:
                per_page[item.source_page].append(False)

        unreliable = {
            page for page, flags in per_page.items()
            if sum(flags) / len(flags) > self.config.fallback_threshold
        }
        if unreliable:
            logger.info(f"Pages routed to image fallback: {sorted(unreliable)}")
        return unreliable

    def _placeholder(
        self,
        item: UnparseableBlock,
        warnings: list[ExtractionWarning],
    ) -> ExtractedQuestion:
        """Keep an unparseable question with literal A-D option labels."""
        logger.warning(
            f"Question {item.ordinal}: kept with placeholder options "
            f"(missing {', '.join(item.missing_fields)})"
        )
        warnings.append(ExtractionWarning(
            type=WarningType.PLACEHOLDER_OPTIONS,
            ordinal=item.ordinal,
            field=item.missing_fields[0] if item.missing_fields else "options",
            message=f"Missing {', '.join(item.missing_fields)}; "
                    f"placeholder options used",
        ))
        return ExtractedQuestion(
            question_text=item.question_text or f"Question {item.ordinal}",
            options=list(OPTION_LABELS),
            correct_answer=None,
            point_value=self.config.default_point_value,
            order_index=item.ordinal - 1,
            source_page=item.page_index,
            extraction_method=ExtractionMethod.PLACEHOLDER,
        )

    def _save_json(self, result: ExtractionResult, filepath: Path):
        """Save ExtractionResult to JSON file."""
        try:
            data = result.model_dump(mode="json")
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            logger.info(f"Saved JSON output: {filepath}")
        except OSError as e:
            logger.error(f"Failed to save JSON: {e}")


def _title_from_name(name: str) -> str:
    stem = Path(name).stem if name and not name.startswith("<") else ""
    return stem.replace("_", " ").strip() or "Imported Quiz"


def _safe_stem(name: str) -> str:
    stem = Path(name).stem if name else "quiz"
    clean = "".join(c if c.isalnum() or c in "-_" else "_" for c in stem)
    return clean[:50] or "quiz"
