"""
Question Field Extractor
========================
Pulls question text, four options and the answer key out of a question block.

Expected block shape (line breaks optional):

    12. Which planet is largest?
    A. Mars  B. Jupiter  C. Venus  D. Earth
    Answer: B
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Union

from .models import (
    OPTION_LABELS,
    ExtractedQuestion,
    ExtractionMethod,
    ExtractionWarning,
    QuestionBlock,
    UnparseableBlock,
    WarningType,
)
from .text import collapse_whitespace

logger = logging.getLogger(__name__)

# ─── Anchor Patterns ──────────────────────────────────────────────────────────

# Leading "12. " of a block
NUMBER_MARKER_PATTERN = re.compile(r"^\s*(\d+)\.\s*")

# "A." / "B)" at the start of the text or after whitespace
OPTION_MARKER_PATTERN = re.compile(r"(?:^|(?<=\s))([A-D])[.)](?=\s|$)")

# "Answer: B", "ANSWER B", "Correct: C", "Correct Answer: D"
ANSWER_PATTERN = re.compile(
    r"\b(?i:correct\s+answer|answer|correct)\s*:?\s*([A-D])\b"
)

# "Answer:" with no usable letter still ends the last option
ANSWER_TERMINATOR_PATTERN = re.compile(
    r"\b(?:correct\s+answer|answer|correct)\s*:", re.IGNORECASE
)

_LABEL_PATTERNS = {
    label: re.compile(rf"(?:^|(?<=\s)){label}[.)](?=\s|$)")
    for label in OPTION_LABELS
}


def find_answer_letter(text: str, start: int = 0) -> Optional[str]:
    """Return the answer letter (A-D) after the first answer marker, if any."""
    match = ANSWER_PATTERN.search(text, start)
    return match.group(1) if match else None


def has_closing_marker(text: str) -> bool:
    """True when text already holds an option D label or an answer marker."""
    return bool(
        _LABEL_PATTERNS["D"].search(text)
        or ANSWER_PATTERN.search(text)
        or ANSWER_TERMINATOR_PATTERN.search(text)
    )


def _locate_options(text: str, start: int) -> list[Optional[re.Match]]:
    """Find each option label in order, each searched after the previous one."""
    found: list[Optional[re.Match]] = []
    position = start
    for label in OPTION_LABELS:
        match = _LABEL_PATTERNS[label].search(text, position)
        found.append(match)
        if match:
            position = match.end()
    return found


def extract(
    block: QuestionBlock,
    point_value: float,
    warnings: Optional[list[ExtractionWarning]] = None,
) -> Union[ExtractedQuestion, UnparseableBlock]:
    """
    Extract a question record from a block.

    Args:
        block: The segmented question text.
        point_value: Points awarded for the question (ingestion policy).
        warnings: Optional list that receives recoverable problems.

    Returns:
        ExtractedQuestion, or UnparseableBlock when the question text is
        empty or fewer than four options have content.
    """
    text = block.raw_text
    number_match = NUMBER_MARKER_PATTERN.match(text)
    body_start = number_match.end() if number_match else 0

    # ── Question text: up to the first option marker ──────────────────
    first_option = OPTION_MARKER_PATTERN.search(text, body_start)
    question_end = first_option.start() if first_option else len(text)
    question_text = collapse_whitespace(text[body_start:question_end])

    # ── Options ────────────────────────────────────────────────────────
    markers = _locate_options(text, body_start)
    present = [m for m in markers if m is not None]

    answer_match = None
    terminator = len(text)
    if present:
        tail_start = present[-1].end()
        answer_match = ANSWER_PATTERN.search(text, tail_start)
        terminator_match = answer_match or ANSWER_TERMINATOR_PATTERN.search(
            text, tail_start
        )
        if terminator_match:
            terminator = terminator_match.start()

    options: list[str] = []
    missing: list[str] = []
    for idx, (label, match) in enumerate(zip(OPTION_LABELS, markers)):
        if match is None:
            options.append("")
            missing.append(f"option_{label}")
            continue
        following = [m.start() for m in markers[idx + 1:] if m is not None]
        end = following[0] if following else terminator
        option_text = collapse_whitespace(text[match.end():end])
        options.append(option_text)
        if not option_text:
            missing.append(f"option_{label}")

    if not question_text:
        missing.insert(0, "question_text")

    if missing:
        logger.debug(f"Block {block.ordinal} unparseable: missing {missing}")
        return UnparseableBlock(
            ordinal=block.ordinal,
            page_index=block.page_index,
            question_text=question_text,
            options=[o for o in options if o],
            missing_fields=missing,
            raw_text=text,
        )

    # ── Answer key ─────────────────────────────────────────────────────
    if answer_match:
        correct_answer = options[OPTION_LABELS.index(answer_match.group(1))]
    else:
        correct_answer = options[0]
        logger.warning(
            f"Question {block.ordinal}: no answer marker found, "
            f"defaulting correct answer to option A"
        )
        if warnings is not None:
            warnings.append(ExtractionWarning(
                type=WarningType.MISSING_ANSWER,
                ordinal=block.ordinal,
                field="correct_answer",
                message="No answer marker found; correct answer defaulted to option A",
            ))

    return ExtractedQuestion(
        question_text=question_text,
        options=options,
        correct_answer=correct_answer,
        point_value=point_value,
        order_index=block.ordinal - 1,
        source_page=block.page_index,
        extraction_method=ExtractionMethod.TEXT,
    )
