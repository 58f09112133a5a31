"""
Quiz Publisher
==============
Hands a ParsedQuizDocument to the persistence collaborator.

Order of operations:
    1. Insert the quiz header row
    2. Insert every question row without an image URL
    3. Upload images and patch image URLs concurrently

Step 3 is best-effort: a failed upload is reported as a
PartialAssetFailure and never rolls back the quiz or its questions.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Optional, Protocol

from .errors import PublishTimeoutError, QuizParserError
from .grading import grade_stored_answer
from .models import (
    AnswerGrade,
    ExtractedQuestion,
    ParsedQuizDocument,
    PartialAssetFailure,
    PublishResult,
)

logger = logging.getLogger(__name__)


class QuizStore(Protocol):
    """Persistence collaborator: plain inserts and updates."""

    def insert_quiz(self, header: dict) -> Any: ...

    def insert_questions(self, quiz_id: Any, rows: list[dict]) -> list[Any]: ...

    def update_question_image(self, question_id: Any, image_url: str) -> None: ...

    def get_question(self, question_id: Any) -> Optional[dict]: ...

    def update_answer_grade(self, answer_id: Any, grade: AnswerGrade) -> None: ...


class AssetStore(Protocol):
    """Accepts a named blob and returns a retrievable URL."""

    def put(self, name: str, data: bytes, content_type: str = "image/png") -> str: ...


def question_row(question: ExtractedQuestion, quiz_id: Any) -> dict:
    """Row for the questions table; image_url is patched in later."""
    return {
        "quiz_id": quiz_id,
        "question_text": question.question_text,
        "question_type": question.question_type.value,
        "options": list(question.options),
        "correct_answer": question.correct_answer,
        "points": question.point_value,
        "order_index": question.order_index,
        "has_image": question.has_image,
        "image_url": None,
    }


class QuizPublisher:
    """
    Persists parsed quizzes through a QuizStore and an AssetStore.

    Args:
        quiz_store: Receives the quiz header and question rows.
        asset_store: Receives question images.
        max_workers: Concurrent image uploads.
    """

    def __init__(
        self,
        quiz_store: QuizStore,
        asset_store: AssetStore,
        max_workers: int = 4,
    ):
        self.quiz_store = quiz_store
        self.asset_store = asset_store
        self.max_workers = max_workers

    def publish(
        self,
        document: ParsedQuizDocument,
        is_published: bool = True,
        password: Optional[str] = None,
        created_by: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> PublishResult:
        """
        Persist a quiz and its questions, then attach images.

        Raises:
            QuizParserError: If the store created no question rows.
            PublishTimeoutError: If the time budget was exceeded.
        """
        start = time.monotonic()

        def remaining() -> Optional[float]:
            if timeout is None:
                return None
            left = timeout - (time.monotonic() - start)
            if left <= 0:
                raise PublishTimeoutError(
                    f"Publishing exceeded {timeout}s budget",
                    budget_seconds=timeout,
                )
            return left

        header = {
            "title": document.title,
            "description": document.description,
            "duration": document.duration,
            "status": "published" if is_published else "draft",
            "password_protected": bool(password),
            "access_password": password,
            "created_by": created_by,
        }
        quiz_id = self.quiz_store.insert_quiz(header)
        logger.info(f"Created quiz {quiz_id}: {document.title}")

        remaining()
        rows = [question_row(q, quiz_id) for q in document.questions]
        question_ids = self.quiz_store.insert_questions(quiz_id, rows)
        if not question_ids or len(question_ids) != len(rows):
            raise QuizParserError(
                f"Expected {len(rows)} question rows, store created "
                f"{len(question_ids or [])}"
            )
        logger.info(f"Inserted {len(rows)} questions into quiz {quiz_id}")

        result = PublishResult(
            quiz_id=quiz_id,
            question_ids=dict(enumerate(question_ids)),
        )

        pending = [
            (index, question, question_ids[index])
            for index, question in enumerate(document.questions)
            if question.has_image and question.image_asset is not None
        ]
        if not pending:
            return result

        logger.info(f"Uploading {len(pending)} question images")
        pool = ThreadPoolExecutor(max_workers=self.max_workers)
        try:
            futures = {
                pool.submit(
                    self._upload_and_patch, quiz_id, index, question, question_id
                ): (index, question, question_id)
                for index, question, question_id in pending
            }
            done, not_done = wait(futures, timeout=remaining())
            if not_done:
                raise PublishTimeoutError(
                    f"Publishing exceeded {timeout}s budget with "
                    f"{len(not_done)} image uploads outstanding "
                    f"(quiz {quiz_id} was created)",
                    budget_seconds=timeout,
                )

            for future in done:
                index, question, question_id = futures[future]
                asset_name = self._asset_name(quiz_id, index)
                try:
                    result.image_urls[index] = future.result()
                except Exception as e:
                    logger.warning(
                        f"Failed to upload/patch image for question "
                        f"{index}: {e}"
                    )
                    result.asset_failures.append(PartialAssetFailure(
                        question_index=index,
                        order_index=question.order_index,
                        question_id=question_id,
                        asset_name=asset_name,
                        error=str(e),
                    ))
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        result.asset_failures.sort(key=lambda f: f.question_index)
        return result

    @staticmethod
    def _asset_name(quiz_id: Any, index: int) -> str:
        return f"quiz-{quiz_id}/question-{index}.png"

    def _upload_and_patch(
        self,
        quiz_id: Any,
        index: int,
        question: ExtractedQuestion,
        question_id: Any,
    ) -> str:
        asset = question.image_asset
        url = self.asset_store.put(
            self._asset_name(quiz_id, index), asset.data, asset.content_type
        )
        self.quiz_store.update_question_image(question_id, url)
        return url


def record_answer_grade(
    store: QuizStore,
    answer_id: Any,
    question_id: Any,
    answer_text: str,
) -> AnswerGrade:
    """
    Grade a stored answer against its question's key and write the outcome
    (score and manual-review flag) back to the answer row.
    """
    question = store.get_question(question_id)
    if question is None:
        raise QuizParserError(f"Question not found: {question_id}")

    grade = grade_stored_answer(answer_text, question)
    store.update_answer_grade(answer_id, grade)
    return grade
