"""
Grading Engine
==============
Keyword-based auto-grading of free-text answers with partial credit.

A response earns the weight of every rubric keyword it contains; the
earned share of the total weight is scaled to the question's points.
Scores in the 40-60% band are routed to manual review.

Grading is stateless: every call builds a fresh GradingResult, so
attempts can be graded concurrently without locking.
"""

from __future__ import annotations

import logging
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

from .models import (
    AnswerGrade,
    AttemptGrade,
    GradingResult,
    KeywordMatch,
    KeywordRubric,
    QuestionType,
)
from .text import normalize, words

logger = logging.getLogger(__name__)

REVIEW_BAND_LOW = 40.0
REVIEW_BAND_HIGH = 60.0


# ─── Keyword Matcher ──────────────────────────────────────────────────────────


def matches(response: str, keyword: str) -> bool:
    """
    Decide whether a keyword or phrase is present in a response.

    Exact normalized substring first; otherwise every keyword word must
    overlap (substring in either direction) with some response word.
    """
    norm_keyword = normalize(keyword)
    if not norm_keyword:
        return False

    norm_response = normalize(response)
    if not norm_response:
        return False

    if norm_keyword in norm_response:
        return True

    response_words = words(norm_response)
    return all(
        any(kw in rw or rw in kw for rw in response_words)
        for kw in words(norm_keyword)
    )


# ─── Keyword Grading ──────────────────────────────────────────────────────────


def _round_score(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return float(
        Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    )


def grade(
    response: str,
    rubric: Optional[KeywordRubric],
    total_points: float,
) -> GradingResult:
    """
    Score a free-text response against a keyword rubric.

    Args:
        response: The learner's answer.
        rubric: Keywords and per-keyword weights.
        total_points: Points available for the question.

    Returns:
        GradingResult with score rounded to 2 decimals. An empty response
        or rubric is a zero score, not an error. Non-finite total_points
        count as 0.
    """
    if not math.isfinite(total_points):
        logger.warning(f"Non-finite total_points {total_points!r}; using 0")
        total_points = 0.0

    if not response or rubric is None or rubric.is_empty:
        return GradingResult(score=0, max_score=total_points, percentage=0)

    results: list[KeywordMatch] = []
    earned = 0.0
    possible = 0.0

    for keyword in rubric.keywords:
        weight = rubric.weight_for(keyword)
        found = matches(response, keyword)

        possible += weight
        if found:
            earned += weight

        results.append(KeywordMatch(keyword=keyword, found=found, weight=weight))

    ratio = earned / possible if possible > 0 else 0.0
    score = _round_score(max(ratio * total_points, 0.0))

    logger.debug(
        f"Graded response: {earned}/{possible} keyword weight, "
        f"score {score}/{total_points}"
    )

    return GradingResult(
        score=score,
        max_score=total_points,
        percentage=ratio * 100,
        matches=results,
    )


def needs_review(result: GradingResult) -> bool:
    """True when the percentage falls in the inclusive manual-review band."""
    return REVIEW_BAND_LOW <= result.percentage <= REVIEW_BAND_HIGH


def is_partially_correct(result: GradingResult) -> bool:
    """Partial-credit scheme: any score above zero counts as (partly) correct."""
    return result.score > 0


# ─── Per-Answer Grading ───────────────────────────────────────────────────────


def grade_answer(
    answer: str,
    question_type: Union[QuestionType, str],
    points: float,
    correct_answer: Optional[str] = None,
    rubric: Optional[KeywordRubric] = None,
) -> AnswerGrade:
    """
    Grade one attempt answer according to its question type.

    Multiple-choice answers compare exactly, fill-blank answers compare
    case-insensitively, short answers use keyword grading. Questions with
    no answer key or no rubric are flagged for manual review.
    """
    question_type = QuestionType(question_type)
    answer = answer or ""

    if question_type == QuestionType.MULTIPLE_CHOICE:
        if correct_answer is None:
            # Image-fallback records carry no answer key
            return AnswerGrade(max_points=points, requires_manual_review=True)
        is_correct = answer == correct_answer
        return AnswerGrade(
            is_correct=is_correct,
            points_earned=points if is_correct else 0,
            max_points=points,
        )

    if question_type == QuestionType.FILL_BLANK:
        if correct_answer is None:
            return AnswerGrade(max_points=points, requires_manual_review=True)
        is_correct = answer.strip().lower() == correct_answer.strip().lower()
        return AnswerGrade(
            is_correct=is_correct,
            points_earned=points if is_correct else 0,
            max_points=points,
        )

    if rubric is None or rubric.is_empty:
        return AnswerGrade(max_points=points, requires_manual_review=True)

    result = grade(answer, rubric, points)
    return AnswerGrade(
        is_correct=is_partially_correct(result),
        points_earned=result.score,
        max_points=points,
        auto_graded_score=result.score,
        requires_manual_review=needs_review(result),
        grading=result,
    )


def grade_stored_answer(answer: str, question: dict) -> AnswerGrade:
    """
    Grade an answer against a question row as stored by the persistence
    collaborator: question_type, points, and optionally correct_answer,
    expected_keywords and keyword_weightage.
    """
    rubric = None
    keywords = question.get("expected_keywords")
    if keywords:
        rubric = KeywordRubric(
            keywords=keywords,
            weight=question.get("keyword_weightage") or {},
        )

    return grade_answer(
        answer,
        question.get("question_type") or QuestionType.MULTIPLE_CHOICE,
        question.get("points", 1),
        correct_answer=question.get("correct_answer"),
        rubric=rubric,
    )


def grade_attempt(answers: Iterable[tuple[str, dict]]) -> AttemptGrade:
    """
    Grade every answer of an attempt.

    Args:
        answers: (answer_text, question row) pairs.

    Returns:
        AttemptGrade with per-answer grades and totals.
    """
    grades: list[AnswerGrade] = []
    total = 0.0
    max_total = 0.0

    for answer, question in answers:
        answer_grade = grade_stored_answer(answer, question)
        grades.append(answer_grade)
        total += answer_grade.points_earned
        max_total += answer_grade.max_points

    return AttemptGrade(
        score=_round_score(total),
        max_score=max_total,
        answers=grades,
    )
