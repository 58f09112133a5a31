"""
Test Suite for Publishing and Persistence
=========================================
QuizPublisher against in-memory collaborators, the SQLite quiz store
and the filesystem asset store.
"""

from __future__ import annotations

import threading
import time
from unittest import mock

import pytest

from quizparser.database import SQLiteQuizStore
from quizparser.errors import (
    AssetUploadError,
    PublishTimeoutError,
    QuizParserError,
    QuizTimeoutError,
)
from quizparser.models import (
    ExtractedQuestion,
    ExtractionMethod,
    ImageAsset,
    KeywordRubric,
    ParsedQuizDocument,
)
from quizparser.publisher import QuizPublisher, question_row, record_answer_grade
from quizparser.storage import LocalAssetStore


class MemoryQuizStore:
    """QuizStore keeping rows in dictionaries."""

    def __init__(self, drop_rows=False):
        self.quizzes = {}
        self.questions = {}
        self.answers = {}
        self.drop_rows = drop_rows
        self._lock = threading.Lock()
        self._next_id = 1

    def _new_id(self):
        with self._lock:
            value = self._next_id
            self._next_id += 1
            return value

    def insert_quiz(self, header):
        quiz_id = self._new_id()
        self.quizzes[quiz_id] = dict(header)
        return quiz_id

    def insert_questions(self, quiz_id, rows):
        if self.drop_rows:
            return []
        ids = []
        for row in rows:
            question_id = self._new_id()
            self.questions[question_id] = dict(row)
            ids.append(question_id)
        return ids

    def update_question_image(self, question_id, image_url):
        self.questions[question_id]["image_url"] = image_url

    def get_question(self, question_id):
        return self.questions.get(question_id)

    def update_answer_grade(self, answer_id, grade):
        self.answers[answer_id] = grade


class MemoryAssetStore:
    """AssetStore that fails or stalls for chosen names."""

    def __init__(self, fail_names=(), delay=0.0):
        self.blobs = {}
        self.fail_names = set(fail_names)
        self.delay = delay

    def put(self, name, data, content_type="image/png"):
        if self.delay:
            time.sleep(self.delay)
        if name in self.fail_names:
            raise AssetUploadError(f"bucket rejected {name}")
        self.blobs[name] = data
        return f"https://cdn.example.test/{name}"


def _image_question(order_index):
    return ExtractedQuestion(
        question_text=f"Question {order_index + 1}",
        options=["A", "B", "C", "D"],
        correct_answer=None,
        point_value=2,
        order_index=order_index,
        has_image=True,
        image_asset=ImageAsset(
            data=b"\x89PNG page", filename=f"question_{order_index + 1}.png"
        ),
        extraction_method=ExtractionMethod.PAGE_IMAGE,
    )


def _text_question(order_index):
    return ExtractedQuestion(
        question_text="What is 2+2?",
        options=["3", "4", "5", "6"],
        correct_answer="4",
        point_value=2,
        order_index=order_index,
    )


@pytest.fixture
def mixed_quiz():
    return ParsedQuizDocument(
        title="Unit 3",
        description="Imported",
        duration=45,
        questions=[_text_question(0), _image_question(1), _image_question(2)],
    )


# ═══════════════════════════════════════════════════════════════════════════════
# PUBLISHER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestQuizPublisher:
    """Test quiz persistence ordering and failure handling."""

    def test_publish_all(self, mixed_quiz):
        quizzes = MemoryQuizStore()
        assets = MemoryAssetStore()

        result = QuizPublisher(quizzes, assets).publish(
            mixed_quiz, password="secret", created_by="instructor-1"
        )

        header = quizzes.quizzes[result.quiz_id]
        assert header["status"] == "published"
        assert header["password_protected"] is True
        assert header["duration"] == 45

        assert len(result.question_ids) == 3
        assert sorted(result.image_urls) == [1, 2]
        assert result.image_urls[1] == (
            f"https://cdn.example.test/quiz-{result.quiz_id}/question-1.png"
        )
        assert not result.is_degraded

        rows = [quizzes.questions[result.question_ids[i]] for i in range(3)]
        assert rows[0]["image_url"] is None
        assert rows[1]["image_url"] == result.image_urls[1]
        assert [r["order_index"] for r in rows] == [0, 1, 2]

    def test_failed_upload_keeps_quiz(self, mixed_quiz):
        quizzes = MemoryQuizStore()
        failing = "quiz-1/question-2.png"
        assets = MemoryAssetStore(fail_names=[failing])

        result = QuizPublisher(quizzes, assets).publish(mixed_quiz)

        # Quiz and every question row survive
        assert result.quiz_id in quizzes.quizzes
        assert len(quizzes.questions) == 3
        assert result.is_degraded
        assert len(result.asset_failures) == 1

        failure = result.asset_failures[0]
        assert failure.question_index == 2
        assert failure.order_index == 2
        assert failure.asset_name == failing
        assert "bucket rejected" in failure.error
        assert quizzes.questions[failure.question_id]["image_url"] is None
        assert 1 in result.image_urls

    def test_draft(self, mixed_quiz):
        quizzes = MemoryQuizStore()
        result = QuizPublisher(quizzes, MemoryAssetStore()).publish(
            mixed_quiz, is_published=False
        )
        assert quizzes.quizzes[result.quiz_id]["status"] == "draft"
        assert quizzes.quizzes[result.quiz_id]["password_protected"] is False

    def test_missing_question_rows(self, mixed_quiz):
        with pytest.raises(QuizParserError):
            QuizPublisher(MemoryQuizStore(drop_rows=True), MemoryAssetStore()).publish(
                mixed_quiz
            )

    def test_slow_uploads_time_out(self, mixed_quiz):
        quizzes = MemoryQuizStore()
        publisher = QuizPublisher(quizzes, MemoryAssetStore(delay=0.5))

        with pytest.raises(PublishTimeoutError) as exc_info:
            publisher.publish(mixed_quiz, timeout=0.05)

        assert isinstance(exc_info.value, QuizTimeoutError)
        assert exc_info.value.retryable
        assert len(quizzes.quizzes) == 1

    def test_text_only_quiz_skips_uploads(self):
        assets = mock.Mock()
        quiz = ParsedQuizDocument(title="Q", questions=[_text_question(0)])

        result = QuizPublisher(MemoryQuizStore(), assets).publish(quiz)

        assets.put.assert_not_called()
        assert result.image_urls == {}

    def test_question_row(self):
        row = question_row(_text_question(4), quiz_id=9)
        assert row["quiz_id"] == 9
        assert row["question_type"] == "multiple-choice"
        assert row["options"] == ["3", "4", "5", "6"]
        assert row["points"] == 2
        assert row["image_url"] is None


# ═══════════════════════════════════════════════════════════════════════════════
# SQLITE STORE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestSQLiteQuizStore:
    """Test the SQLite persistence collaborator."""

    @pytest.fixture
    def store(self, tmp_path):
        return SQLiteQuizStore(str(tmp_path / "quizzes.sqlite"))

    def test_publish_round_trip(self, store, mixed_quiz, tmp_path):
        assets = LocalAssetStore(base_dir=str(tmp_path / "assets"))
        result = QuizPublisher(store, assets).publish(mixed_quiz)

        quiz = store.get_quiz(result.quiz_id)
        assert quiz["title"] == "Unit 3"
        assert quiz["status"] == "published"

        questions = store.get_quiz_questions(result.quiz_id)
        assert [q["order_index"] for q in questions] == [0, 1, 2]
        assert questions[0]["options"] == ["3", "4", "5", "6"]
        assert questions[0]["has_image"] is False
        assert questions[1]["has_image"] is True
        assert questions[1]["image_url"].startswith("file://")
        assert questions[1]["correct_answer"] is None

        image_path = assets.path_for(f"quiz-{result.quiz_id}/question-1.png")
        assert image_path.read_bytes() == b"\x89PNG page"

    def test_grade_stored_short_answer(self, store):
        quiz_id = store.insert_quiz({"title": "Biology"})
        [question_id] = store.insert_questions(quiz_id, [{
            "question_text": "How do plants make food?",
            "question_type": "multiple-choice",
            "options": ["A", "B", "C", "D"],
            "points": 6,
            "order_index": 0,
        }])
        store.set_question_rubric(question_id, KeywordRubric(
            keywords=["photosynthesis", "chlorophyll"],
            weight={"photosynthesis": 2, "chlorophyll": 1},
        ))
        answer_text = "Leaves are green because of chlorophyll."
        answer_id = store.insert_answer(question_id, answer_text, attempt_id="a-1")

        grade = record_answer_grade(store, answer_id, question_id, answer_text)

        assert grade.points_earned == 2.0
        stored = store.get_answer(answer_id)
        assert stored["points_earned"] == 2.0
        assert stored["auto_graded_score"] == 2.0
        assert stored["is_correct"] is True
        assert stored["requires_manual_review"] is False

    def test_grade_unknown_question(self, store):
        with pytest.raises(QuizParserError):
            record_answer_grade(store, 1, 999, "anything")

    def test_init_is_idempotent(self, tmp_path):
        path = str(tmp_path / "again.sqlite")
        SQLiteQuizStore(path)
        store = SQLiteQuizStore(path)
        assert store.get_quiz(1) is None


# ═══════════════════════════════════════════════════════════════════════════════
# ASSET STORE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestLocalAssetStore:
    """Test the filesystem asset store."""

    def test_put_returns_file_uri(self, tmp_path):
        store = LocalAssetStore(base_dir=str(tmp_path))
        url = store.put("quiz-1/question-0.png", b"png")
        assert url.startswith("file://")
        assert (tmp_path / "quiz-1" / "question-0.png").read_bytes() == b"png"

    def test_put_with_base_url(self, tmp_path):
        store = LocalAssetStore(base_dir=str(tmp_path), base_url="https://cdn.test/q/")
        url = store.put("quiz-7/question-3.png", b"png")
        assert url == "https://cdn.test/q/quiz-7/question-3.png"

    def test_overwrite(self, tmp_path):
        store = LocalAssetStore(base_dir=str(tmp_path))
        store.put("a.png", b"one")
        store.put("a.png", b"two")
        assert store.path_for("a.png").read_bytes() == b"two"

    def test_traversal_stays_inside(self, tmp_path):
        store = LocalAssetStore(base_dir=str(tmp_path / "assets"))
        store.put("../../escape.png", b"x")
        assert (tmp_path / "assets" / "escape.png").exists()
        assert not (tmp_path / "escape.png").exists()

    def test_invalid_name(self, tmp_path):
        store = LocalAssetStore(base_dir=str(tmp_path))
        with pytest.raises(AssetUploadError):
            store.put("..", b"x")

    def test_env_default_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("QUIZPARSER_ASSET_DIR", str(tmp_path / "env"))
        store = LocalAssetStore()
        assert store.base_dir == tmp_path / "env"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
