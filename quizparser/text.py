"""
Text Normalization
==================
Canonical text forms used for keyword matching and field cleanup.
"""

from __future__ import annotations

import re

# Anything that is not a letter, digit or whitespace. \w also admits "_",
# which is punctuation here, so it is listed explicitly.
_PUNCTUATION_RE = re.compile(r"[^\w\s]|_")
_WHITESPACE_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    """Collapse whitespace runs to one space and trim."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize(text: str) -> str:
    """
    Canonicalize text for matching.

    Lowercases, replaces each punctuation character with a space,
    collapses whitespace and trims. Idempotent; never fails.
    """
    if not text:
        return ""
    return collapse_whitespace(_PUNCTUATION_RE.sub(" ", text.lower()))


def words(text: str) -> list[str]:
    """Whitespace-delimited words of an already normalized string."""
    return text.split() if text else []
