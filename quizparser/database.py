"""
SQLite Quiz Store
=================
Reference persistence collaborator backed by SQLite.

Stores quiz headers, question rows (with keyword rubrics for short-answer
questions) and graded attempt answers. Implements the QuizStore protocol
used by QuizPublisher and record_answer_grade.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from .models import AnswerGrade, KeywordRubric

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = str(Path.cwd() / "quizzes.sqlite")

_JSON_COLUMNS = ("options", "expected_keywords", "keyword_weightage")


def get_db_path() -> str:
    """Return the configured database path."""
    return os.environ.get("QUIZPARSER_DB_PATH", _DEFAULT_DB_PATH)


@contextmanager
def get_connection(db_path: Optional[str] = None):
    """
    Context manager for database connections.
    Ensures proper commit/rollback and connection cleanup.
    """
    db_path = db_path or get_db_path()
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_path: Optional[str] = None):
    """
    Initialize the database schema.
    Safe to call multiple times (IF NOT EXISTS).
    """
    db_path = db_path or get_db_path()
    logger.info(f"Initializing database at: {db_path}")

    with get_connection(db_path) as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS quizzes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                description TEXT DEFAULT '',
                duration INTEGER DEFAULT 90,
                status TEXT DEFAULT 'draft',
                password_protected INTEGER DEFAULT 0,
                access_password TEXT,
                created_by TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS questions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                quiz_id INTEGER NOT NULL,
                question_text TEXT NOT NULL,
                question_type TEXT DEFAULT 'multiple-choice',
                options TEXT DEFAULT '[]',
                correct_answer TEXT,
                points REAL DEFAULT 1,
                order_index INTEGER NOT NULL,
                has_image INTEGER DEFAULT 0,
                image_url TEXT,
                expected_keywords TEXT,
                keyword_weightage TEXT,
                FOREIGN KEY(quiz_id) REFERENCES quizzes(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS attempt_answers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                attempt_id TEXT,
                question_id INTEGER NOT NULL,
                answer_text TEXT DEFAULT '',
                is_correct INTEGER DEFAULT 0,
                points_earned REAL DEFAULT 0,
                auto_graded_score REAL,
                requires_manual_review INTEGER DEFAULT 0,
                FOREIGN KEY(question_id) REFERENCES questions(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_questions_quiz_id
                ON questions(quiz_id);
            CREATE INDEX IF NOT EXISTS idx_questions_quiz_order
                ON questions(quiz_id, order_index);
            CREATE INDEX IF NOT EXISTS idx_answers_question_id
                ON attempt_answers(question_id);
        """)

    logger.info("Database schema initialized successfully")


def _hydrate(row: sqlite3.Row) -> dict:
    """Decode JSON columns and integer booleans of a row."""
    data = dict(row)
    for column in _JSON_COLUMNS:
        if column in data and data[column] is not None:
            data[column] = json.loads(data[column])
    for column in ("has_image", "password_protected", "is_correct",
                   "requires_manual_review"):
        if column in data and data[column] is not None:
            data[column] = bool(data[column])
    return data


class SQLiteQuizStore:
    """QuizStore over a SQLite file. Each call opens its own connection."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_db_path()
        init_db(self.db_path)

    # ─── Quiz / Question Inserts ──────────────────────────────────────────

    def insert_quiz(self, header: dict) -> int:
        """Insert a quiz header row. Returns the quiz id."""
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """INSERT INTO quizzes
                   (title, description, duration, status,
                    password_protected, access_password, created_by)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    header["title"],
                    header.get("description", ""),
                    header.get("duration", 90),
                    header.get("status", "draft"),
                    int(bool(header.get("password_protected"))),
                    header.get("access_password"),
                    header.get("created_by"),
                ),
            )
            return cursor.lastrowid

    def insert_questions(self, quiz_id: int, rows: list[dict]) -> list[int]:
        """Insert question rows in one transaction. Returns ids in row order."""
        ids: list[int] = []
        with get_connection(self.db_path) as conn:
            for row in rows:
                cursor = conn.execute(
                    """INSERT INTO questions
                       (quiz_id, question_text, question_type, options,
                        correct_answer, points, order_index, has_image,
                        image_url, expected_keywords, keyword_weightage)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        quiz_id,
                        row["question_text"],
                        row.get("question_type", "multiple-choice"),
                        json.dumps(row.get("options", [])),
                        row.get("correct_answer"),
                        row.get("points", 1),
                        row["order_index"],
                        int(bool(row.get("has_image"))),
                        row.get("image_url"),
                        _dump_optional(row.get("expected_keywords")),
                        _dump_optional(row.get("keyword_weightage")),
                    ),
                )
                ids.append(cursor.lastrowid)
        return ids

    def update_question_image(self, question_id: int, image_url: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                "UPDATE questions SET image_url = ? WHERE id = ?",
                (image_url, question_id),
            )

    def set_question_rubric(self, question_id: int, rubric: KeywordRubric) -> None:
        """Attach a keyword rubric to a question and mark it short-answer."""
        with get_connection(self.db_path) as conn:
            conn.execute(
                """UPDATE questions
                   SET question_type = 'short-answer',
                       expected_keywords = ?, keyword_weightage = ?
                   WHERE id = ?""",
                (json.dumps(rubric.keywords), json.dumps(rubric.weight),
                 question_id),
            )

    # ─── Reads ────────────────────────────────────────────────────────────

    def get_quiz(self, quiz_id: int) -> Optional[dict]:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM quizzes WHERE id = ?", (quiz_id,)
            ).fetchone()
            return _hydrate(row) if row else None

    def get_question(self, question_id: int) -> Optional[dict]:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM questions WHERE id = ?", (question_id,)
            ).fetchone()
            return _hydrate(row) if row else None

    def get_quiz_questions(self, quiz_id: int) -> list[dict]:
        """All questions of a quiz ordered by order_index."""
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """SELECT * FROM questions WHERE quiz_id = ?
                   ORDER BY order_index, id""",
                (quiz_id,),
            ).fetchall()
            return [_hydrate(r) for r in rows]

    # ─── Attempt Answers ──────────────────────────────────────────────────

    def insert_answer(
        self, question_id: int, answer_text: str, attempt_id: str = ""
    ) -> int:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """INSERT INTO attempt_answers
                   (attempt_id, question_id, answer_text)
                   VALUES (?, ?, ?)""",
                (attempt_id, question_id, answer_text),
            )
            return cursor.lastrowid

    def get_answer(self, answer_id: int) -> Optional[dict]:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM attempt_answers WHERE id = ?", (answer_id,)
            ).fetchone()
            return _hydrate(row) if row else None

    def update_answer_grade(self, answer_id: int, grade: AnswerGrade) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """UPDATE attempt_answers
                   SET is_correct = ?, points_earned = ?,
                       auto_graded_score = ?, requires_manual_review = ?
                   WHERE id = ?""",
                (
                    int(grade.is_correct),
                    grade.points_earned,
                    grade.auto_graded_score,
                    int(grade.requires_manual_review),
                    answer_id,
                ),
            )


def _dump_optional(value) -> Optional[str]:
    return json.dumps(value) if value is not None else None
