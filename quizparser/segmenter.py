"""
Question Block Segmenter
========================
Splits raw document text into per-question blocks at numbered markers
("1. ", "12. ").

Markers at the start of a line always open a new block. PDF text layers
often flatten a page to a single line, so a marker in the middle of a line
(preceded by whitespace) also opens a block, but only when its number is
the next ordinal in sequence (or 1 before any question was seen) and the
open question already shows option D or an answer marker. That keeps
"the cost is 4. Then ..." and "doubled to give 2. What ..." inside their
questions.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from .field_extractor import has_closing_marker
from .models import QuestionBlock, RawDocumentText

logger = logging.getLogger(__name__)

# ─── Marker Patterns ──────────────────────────────────────────────────────────

# "1. ", "  42.\t" at start of a line
LINE_MARKER_PATTERN = re.compile(r"^[ \t]*(\d+)\.\s", re.MULTILINE)

# "... Answer: B 2. Capital of France?" (marker after whitespace, mid-line)
INLINE_MARKER_PATTERN = re.compile(r"(?<=[ \t])(\d+)\.\s")


def _find_markers(raw_text: str) -> list[tuple[int, int]]:
    """Return (offset, ordinal) of every accepted question marker."""
    candidates: dict[int, tuple[int, bool]] = {}

    for match in LINE_MARKER_PATTERN.finditer(raw_text):
        candidates[match.start(1)] = (int(match.group(1)), True)

    for match in INLINE_MARKER_PATTERN.finditer(raw_text):
        candidates.setdefault(match.start(1), (int(match.group(1)), False))

    markers: list[tuple[int, int]] = []
    previous: Optional[int] = None

    for offset in sorted(candidates):
        ordinal, at_line_start = candidates[offset]
        if ordinal < 1:
            continue
        if not at_line_start:
            expected = 1 if previous is None else previous + 1
            if ordinal != expected:
                continue
            # The open question must be complete before a mid-line split
            if markers and not has_closing_marker(raw_text[markers[-1][0]:offset]):
                continue
        markers.append((offset, ordinal))
        previous = ordinal

    return markers


def _split(raw_text: str) -> list[tuple[int, int, str]]:
    """Return (offset, ordinal, block text) for every question span."""
    markers = _find_markers(raw_text)
    spans: list[tuple[int, int, str]] = []

    for i, (offset, ordinal) in enumerate(markers):
        end = markers[i + 1][0] if i + 1 < len(markers) else len(raw_text)
        text = raw_text[offset:end].strip()
        if text:
            spans.append((offset, ordinal, text))

    return spans


def segment(raw_text: str) -> list[QuestionBlock]:
    """
    Split document text into question blocks.

    Each block starts with its own number marker and runs to the next
    accepted marker. Text before the first marker (headers, instructions)
    is discarded. Blocks are returned in document order.
    """
    if not raw_text:
        return []

    blocks = [
        QuestionBlock(ordinal=ordinal, raw_text=text)
        for _, ordinal, text in _split(raw_text)
    ]
    logger.debug(f"Segmented {len(blocks)} question blocks")
    return blocks


def segment_document(document: RawDocumentText) -> list[QuestionBlock]:
    """
    Segment a whole document and tag each block with the page it starts on.

    Operates on the accumulated text of every page, since a question's
    options may continue on the next page.
    """
    blocks = [
        QuestionBlock(
            ordinal=ordinal,
            raw_text=text,
            page_index=document.page_for_offset(offset),
        )
        for offset, ordinal, text in _split(document.full_text)
    ]
    logger.info(
        f"Segmented {len(blocks)} question blocks "
        f"across {len(document.pages)} pages"
    )
    return blocks
