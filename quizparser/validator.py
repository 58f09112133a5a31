"""
Validation Engine
=================
Post-extraction validation and reporting.

After each ingestion pass, generates a report:
    - Total Questions Detected
    - Structured Successfully (options read from text)
    - Image Fallbacks / Placeholder Records
    - Missing Ordinals (gaps in sequence)
    - Duplicate Ordinals
    - Defaulted Answers / Questions Without Answer Key
    - Warning breakdown by type

Never silently ignores failures.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Optional

from .models import (
    ExtractedQuestion,
    ExtractionMethod,
    ExtractionWarning,
    ValidationReport,
    WarningType,
)

logger = logging.getLogger(__name__)


class ValidationEngine:
    """
    Validates assembled questions and produces a report.
    """

    def validate(
        self,
        questions: list[ExtractedQuestion],
        warnings: Optional[list[ExtractionWarning]] = None,
    ) -> ValidationReport:
        """
        Run validation on extracted questions.

        Args:
            questions: Assembled questions.
            warnings: Warnings collected during the pass.

        Returns:
            ValidationReport with all detected issues.
        """
        report = ValidationReport()
        warnings = warnings or []

        report.warning_breakdown = dict(
            Counter(w.type.value for w in warnings)
        )

        if not questions:
            logger.warning("No questions to validate")
            return report

        report.total_questions_detected = len(questions)

        ordinals = [q.ordinal for q in questions]
        counts = Counter(ordinals)

        report.duplicate_ordinals = sorted(
            num for num, count in counts.items() if count > 1
        )

        expected = set(range(min(ordinals), max(ordinals) + 1))
        report.missing_ordinals = sorted(expected - set(ordinals))

        methods = Counter(q.extraction_method for q in questions)
        report.structured_successfully = (
            methods[ExtractionMethod.TEXT]
            + methods[ExtractionMethod.TEXT_WITH_IMAGE]
        )
        report.image_fallbacks = methods[ExtractionMethod.PAGE_IMAGE]
        report.placeholder_records = methods[ExtractionMethod.PLACEHOLDER]

        report.defaulted_answers = sorted({
            w.ordinal for w in warnings
            if w.type == WarningType.MISSING_ANSWER and w.ordinal is not None
        })
        report.questions_without_answer = [
            q.ordinal for q in questions if q.correct_answer is None
        ]

        # Log summary
        logger.info("=" * 60)
        logger.info("VALIDATION REPORT")
        logger.info("=" * 60)
        logger.info(
            f"Total Questions Detected: {report.total_questions_detected}"
        )
        logger.info(
            f"Structured Successfully: {report.structured_successfully} "
            f"({report.success_rate}%)"
        )
        logger.info(f"Image Fallbacks: {report.image_fallbacks}")
        logger.info(f"Placeholder Records: {report.placeholder_records}")
        logger.info(f"Missing Ordinals: {len(report.missing_ordinals)}")
        logger.info(f"Duplicate Ordinals: {len(report.duplicate_ordinals)}")
        logger.info(f"Defaulted Answers: {len(report.defaulted_answers)}")

        if report.warning_breakdown:
            logger.info("Warning Breakdown:")
            for warning_type, count in sorted(report.warning_breakdown.items()):
                logger.info(f"  • {warning_type}: {count}")

        logger.info("=" * 60)

        return report
