"""
HTTP Microservice
=================
Flask-based HTTP API for quiz ingestion and grading.

Endpoints:
    POST   /api/parse         → Parse an uploaded exam PDF
    POST   /api/grade         → Grade a free-text response
    POST   /api/grade/attempt → Grade every answer of an attempt
    GET    /api/health        → Health check
    GET    /api/info          → Parser version info
"""

from __future__ import annotations

import logging
import math

from flask import Flask, jsonify, request
from flask_cors import CORS

from . import __version__
from .engine import ExtractionConfig, QuizExtractionEngine
from .errors import DocumentOpenError, EmptyResultError, QuizTimeoutError
from .grading import grade, grade_attempt, is_partially_correct, needs_review
from .models import ExtractionStrategy, KeywordRubric

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def create_app(config: dict = None) -> Flask:
    """Create and configure the Flask app."""
    app = Flask(__name__)
    CORS(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 100 * 1024 * 1024)  # 100MB
    app.config.setdefault("PARSE_TIMEOUT", 120)
    app.config.setdefault("DEFAULT_POINT_VALUE", 2)
    if config:
        app.config.update(config)

    # ─── Health Check ─────────────────────────────────────────────────────

    @app.route("/api/health", methods=["GET"])
    def health():
        """Health check endpoint."""
        return jsonify({
            "status": "healthy",
            "service": "quiz-parser",
            "version": __version__,
        })

    @app.route("/api/info", methods=["GET"])
    def info():
        """Parser version and capability info."""
        return jsonify({
            "version": __version__,
            "engine": "PyMuPDF",
            "strategies": [s.value for s in ExtractionStrategy],
            "capabilities": [
                "question_extraction",
                "page_image_fallback",
                "keyword_grading",
            ],
            "supported_formats": ["pdf"],
        })

    # ─── Parse Endpoint ───────────────────────────────────────────────────

    @app.route("/api/parse", methods=["POST"])
    def parse_pdf():
        """
        Parse an uploaded PDF synchronously.

        Multipart form:
            file: PDF file (required)
            title, description, duration, strategy, points: optional
        """
        if "file" not in request.files:
            return jsonify({"error": "Provide a PDF file upload"}), 400

        file = request.files["file"]
        if not file.filename:
            return jsonify({"error": "No file selected"}), 400

        params = request.form
        log_level = params.get("log_level", "INFO").upper()
        if log_level not in LOG_LEVELS:
            return jsonify({
                "error": f"Invalid log_level; expected one of {list(LOG_LEVELS)}"
            }), 400

        try:
            config = ExtractionConfig(
                strategy=ExtractionStrategy(
                    params.get("strategy", ExtractionStrategy.AUTO.value)
                ),
                default_point_value=float(
                    params.get("points", app.config["DEFAULT_POINT_VALUE"])
                ),
                log_level=log_level,
            )
            duration = int(params["duration"]) if params.get("duration") else None
        except ValueError as e:
            return jsonify({"error": f"Invalid parameter: {e}"}), 400

        try:
            engine = QuizExtractionEngine(config)
            result = engine.parse(
                file.read(),
                title=params.get("title") or file.filename.rsplit(".", 1)[0],
                description=params.get("description", ""),
                duration=duration,
                timeout=app.config["PARSE_TIMEOUT"],
            )
        except EmptyResultError as e:
            return jsonify({
                "error": str(e),
                "code": "empty_result",
                "warnings": [w.model_dump(mode="json") for w in e.warnings],
            }), 422
        except QuizTimeoutError as e:
            return jsonify({
                "error": str(e),
                "code": "timeout",
                "retryable": True,
            }), 504
        except DocumentOpenError as e:
            return jsonify({"error": str(e), "code": "invalid_document"}), 400

        return jsonify(result.model_dump(mode="json")), 200

    # ─── Grading Endpoints ────────────────────────────────────────────────

    @app.route("/api/grade", methods=["POST"])
    def grade_response():
        """
        Grade a free-text response.

        JSON body:
            response: str
            keywords: list[str]
            weights: dict[str, number] (optional)
            total_points: number
        """
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Request body must be a JSON object"}), 400

        try:
            rubric = KeywordRubric(
                keywords=data.get("keywords") or [],
                weight=data.get("weights") or {},
            )
            total_points = float(data.get("total_points", 1))
        except (ValueError, TypeError) as e:
            return jsonify({"error": f"Invalid rubric: {e}"}), 400
        if not math.isfinite(total_points):
            return jsonify({"error": "total_points must be a finite number"}), 400

        result = grade(data.get("response") or "", rubric, total_points)
        payload = result.model_dump(mode="json")
        payload["needs_review"] = needs_review(result)
        payload["is_correct"] = is_partially_correct(result)
        return jsonify(payload), 200

    @app.route("/api/grade/attempt", methods=["POST"])
    def grade_attempt_answers():
        """
        Grade an attempt.

        JSON body:
            answers: list of {"answer": str, "question": {...question row...}}
        """
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Request body must be a JSON object"}), 400

        answers = data.get("answers")
        if not isinstance(answers, list):
            return jsonify({"error": "answers must be a list"}), 400

        try:
            result = grade_attempt(
                (item.get("answer") or "", item.get("question") or {})
                for item in answers
            )
        except (ValueError, TypeError, AttributeError) as e:
            return jsonify({"error": f"Invalid answer: {e}"}), 400

        return jsonify(result.model_dump(mode="json")), 200

    return app


# ─── Run Server ──────────────────────────────────────────────────────────────


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
):
    """Start the microservice server."""
    app = create_app()
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    run_server(debug=True)
