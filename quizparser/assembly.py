"""
Quiz Assembly
=============
Orders extracted questions and packages them into a quiz document.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Optional

from .errors import EmptyResultError
from .models import (
    ExtractedQuestion,
    ExtractionOutcome,
    ExtractionWarning,
    ParsedQuizDocument,
    UnparseableBlock,
    WarningType,
)

logger = logging.getLogger(__name__)


def assemble(
    questions: Iterable[ExtractionOutcome],
    title: str,
    description: str = "",
    duration: int = 90,
    warnings: Optional[list[ExtractionWarning]] = None,
) -> ParsedQuizDocument:
    """
    Build a quiz document from extracted questions.

    Unrecovered UnparseableBlock entries are dropped with a warning. The
    remaining questions are stably sorted by order_index; duplicate
    ordinals keep their encounter order and are reported as warnings.

    Raises:
        EmptyResultError: If no usable question remains.
    """
    if warnings is None:
        warnings = []

    usable: list[ExtractedQuestion] = []
    for item in questions:
        if isinstance(item, UnparseableBlock):
            logger.warning(
                f"Question {item.ordinal}: dropped, missing "
                f"{', '.join(item.missing_fields) or 'fields'}"
            )
            warnings.append(ExtractionWarning(
                type=WarningType.UNPARSEABLE_OPTIONS,
                ordinal=item.ordinal,
                field=item.missing_fields[0] if item.missing_fields else None,
                message=f"Unparseable block dropped (missing: "
                        f"{', '.join(item.missing_fields)})",
            ))
            continue
        usable.append(item)

    if not usable:
        raise EmptyResultError(
            "No usable questions extracted. Ensure the document has "
            "selectable text and numbered questions with options A-D.",
            warnings=warnings,
        )

    ordered = sorted(usable, key=lambda q: q.order_index)

    counts = Counter(q.order_index for q in ordered)
    for order_index, count in sorted(counts.items()):
        if count > 1:
            logger.warning(
                f"Question number {order_index + 1} appears {count} times"
            )
            warnings.append(ExtractionWarning(
                type=WarningType.DUPLICATE_ORDINAL,
                ordinal=order_index + 1,
                message=f"Question number {order_index + 1} appears "
                        f"{count} times; encounter order kept",
            ))

    return ParsedQuizDocument(
        title=title,
        description=description,
        duration=duration,
        questions=ordered,
    )
