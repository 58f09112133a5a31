"""
Test Suite for the HTTP API
===========================
Flask test-client checks for the parse and grading endpoints.
"""

from __future__ import annotations

import io

import pytest

from quizparser.server import create_app


@pytest.fixture
def client():
    app = create_app({"TESTING": True, "PARSE_TIMEOUT": 30})
    return app.test_client()


def _upload(client, pdf_bytes, filename="exam.pdf", **form):
    data = {"file": (io.BytesIO(pdf_bytes), filename)}
    data.update(form)
    return client.post("/api/parse", data=data, content_type="multipart/form-data")


# ═══════════════════════════════════════════════════════════════════════════════
# STATUS ENDPOINTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestStatusEndpoints:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"

    def test_info(self, client):
        data = client.get("/api/info").get_json()
        assert "page_image" in data["strategies"]
        assert data["supported_formats"] == ["pdf"]


# ═══════════════════════════════════════════════════════════════════════════════
# PARSE ENDPOINT
# ═══════════════════════════════════════════════════════════════════════════════


class TestParseEndpoint:

    def test_requires_file(self, client):
        response = client.post("/api/parse", data={})
        assert response.status_code == 400

    def test_parse_pdf(self, client, two_question_pdf):
        response = _upload(client, two_question_pdf, duration="30")
        assert response.status_code == 200

        data = response.get_json()
        document = data["document"]
        assert document["title"] == "exam"
        assert document["duration"] == 30
        assert [q["correct_answer"] for q in document["questions"]] == ["4", "Paris"]
        assert data["validation"]["total_questions_detected"] == 2

    def test_blank_pdf_is_empty_result(self, client, make_pdf):
        response = _upload(client, make_pdf([["Instructions only"]]))
        assert response.status_code == 422
        assert response.get_json()["code"] == "empty_result"

    def test_corrupt_upload(self, client):
        response = _upload(client, b"this is not a pdf")
        assert response.status_code == 400
        assert response.get_json()["code"] == "invalid_document"

    @pytest.mark.parametrize("level", ["BASIC_FORMAT", "verbose"])
    def test_invalid_log_level(self, client, two_question_pdf, level):
        response = _upload(client, two_question_pdf, log_level=level)
        assert response.status_code == 400

    def test_invalid_strategy(self, client, two_question_pdf):
        response = _upload(client, two_question_pdf, strategy="ocr")
        assert response.status_code == 400


# ═══════════════════════════════════════════════════════════════════════════════
# GRADING ENDPOINTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestGradeEndpoints:

    def test_grade_partial(self, client):
        response = client.post("/api/grade", json={
            "response": "Leaves are green because of chlorophyll.",
            "keywords": ["photosynthesis", "chlorophyll"],
            "weights": {"photosynthesis": 2, "chlorophyll": 1},
            "total_points": 6,
        })
        assert response.status_code == 200

        data = response.get_json()
        assert data["score"] == 2.0
        assert data["needs_review"] is False
        assert data["is_correct"] is True
        assert len(data["matches"]) == 2

    def test_grade_empty_response(self, client):
        data = client.post("/api/grade", json={
            "response": "",
            "keywords": ["x ray"],
            "total_points": 3,
        }).get_json()
        assert data["score"] == 0
        assert data["max_score"] == 3

    def test_grade_bad_rubric(self, client):
        response = client.post("/api/grade", json={
            "response": "abc",
            "keywords": "not-a-list",
            "total_points": 1,
        })
        assert response.status_code == 400

    def test_grade_bad_points(self, client):
        response = client.post("/api/grade", json={
            "response": "abc",
            "keywords": ["abc"],
            "total_points": "many",
        })
        assert response.status_code == 400

    @pytest.mark.parametrize("total", ["Infinity", "-inf", "nan"])
    def test_grade_non_finite_points(self, client, total):
        response = client.post("/api/grade", json={
            "response": "abc",
            "keywords": ["abc"],
            "total_points": total,
        })
        assert response.status_code == 400

    def test_grade_infinite_weight(self, client):
        response = client.post(
            "/api/grade",
            data='{"response": "a1", "keywords": ["a1", "b2"], '
                 '"weights": {"a1": Infinity}, "total_points": 10}',
            content_type="application/json",
        )
        assert response.status_code == 200
        assert response.get_json()["score"] == 5.0

    @pytest.mark.parametrize("endpoint", ["/api/grade", "/api/grade/attempt"])
    @pytest.mark.parametrize("body", [[{"response": "x"}], "text", 7])
    def test_non_object_body(self, client, endpoint, body):
        response = client.post(endpoint, json=body)
        assert response.status_code == 400

    def test_grade_attempt(self, client):
        response = client.post("/api/grade/attempt", json={"answers": [
            {"answer": "4", "question": {
                "question_type": "multiple-choice",
                "points": 2,
                "correct_answer": "4",
            }},
            {"answer": "B", "question": {
                "question_type": "multiple-choice",
                "points": 2,
                "correct_answer": None,
            }},
        ]})
        assert response.status_code == 200

        data = response.get_json()
        assert data["score"] == 2.0
        assert data["max_score"] == 4.0
        assert data["needs_review_count"] == 1

    def test_grade_attempt_requires_list(self, client):
        response = client.post("/api/grade/attempt", json={"answers": "none"})
        assert response.status_code == 400

    def test_grade_attempt_unknown_type(self, client):
        response = client.post("/api/grade/attempt", json={"answers": [
            {"answer": "x", "question": {"question_type": "essay"}},
        ]})
        assert response.status_code == 400
