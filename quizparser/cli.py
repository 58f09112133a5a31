"""
CLI Interface
=============
Command-line interface for quiz ingestion and grading.

Usage:
    python -m quizparser parse <pdf_path> [options]
    python -m quizparser import <pdf_path> [options]
    python -m quizparser grade <response> -k keyword[=weight] ... [options]
    python -m quizparser info <pdf_path>
    python -m quizparser serve [options]
"""

from __future__ import annotations

import json
import os
import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .database import SQLiteQuizStore
from .engine import ExtractionConfig, QuizExtractionEngine
from .errors import DocumentOpenError, EmptyResultError, QuizTimeoutError
from .grading import grade, is_partially_correct, needs_review
from .models import ExtractionStrategy, KeywordRubric
from .publisher import QuizPublisher
from .storage import LocalAssetStore

console = Console()

_STRATEGIES = [s.value for s in ExtractionStrategy]


def _extraction_options(func):
    """Options shared by parse and import."""
    options = [
        click.option("--title", "-t", default=None, help="Quiz title (defaults to filename)"),
        click.option("--description", "-d", default="", help="Quiz description"),
        click.option("--duration", default=90, type=int, help="Quiz duration in minutes"),
        click.option(
            "--strategy", "-s",
            default=ExtractionStrategy.AUTO.value,
            type=click.Choice(_STRATEGIES),
            help="Page-image fallback policy",
        ),
        click.option(
            "--points",
            default=2.0,
            type=float,
            help="Default point value per question",
        ),
        click.option(
            "--fallback-threshold",
            default=0.5,
            type=click.FloatRange(0, 1),
            help="Share of unparseable questions that marks a page unreliable",
        ),
        click.option("--scale", default=1.0, type=float, help="Page render scale"),
        click.option(
            "--first-page",
            default=0,
            type=int,
            help="First page to read (0-indexed; skip cover pages)",
        ),
        click.option("--timeout", default=None, type=float, help="Time budget in seconds"),
        click.option(
            "--log-level",
            default="INFO",
            type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
            help="Logging level",
        ),
        click.option("--log-file", default=None, help="Path to log file"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_engine(strategy, points, fallback_threshold, scale, first_page,
                  log_level, log_file, output=None) -> QuizExtractionEngine:
    return QuizExtractionEngine(ExtractionConfig(
        strategy=ExtractionStrategy(strategy),
        default_point_value=points,
        fallback_threshold=fallback_threshold,
        render_scale=scale,
        first_page=first_page,
        output_dir=output,
        log_level=log_level,
        log_file=log_file,
    ))


@click.group()
@click.version_option(version=__version__, prog_name="quizparser")
def cli():
    """Quiz Parser: exam PDF ingestion and keyword auto-grading."""
    pass


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True))
@click.option(
    "--output", "-o",
    default=None,
    help="Directory for the parsed JSON output",
)
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only JSON result to stdout (for programmatic use)",
)
@_extraction_options
def parse(
    pdf_path: str,
    output: str,
    json_output: bool,
    title: str,
    description: str,
    duration: int,
    strategy: str,
    points: float,
    fallback_threshold: float,
    scale: float,
    first_page: int,
    timeout: float,
    log_level: str,
    log_file: str,
):
    """Parse an exam PDF into a quiz document."""

    if json_output:
        # Suppress console output for JSON mode
        log_level = "ERROR"
    else:
        console.print()
        console.print(
            Panel.fit(
                f"[bold cyan]Quiz Parser v{__version__}[/]\n"
                f"[dim]Parsing: {os.path.basename(pdf_path)}[/]",
                border_style="cyan",
            )
        )
        console.print()

    engine = _build_engine(strategy, points, fallback_threshold, scale,
                           first_page, log_level, log_file, output)
    result = _run_parse(engine, pdf_path, title, description, duration, timeout)

    if json_output:
        click.echo(json.dumps(
            result.model_dump(mode="json"),
            indent=2,
            ensure_ascii=False,
        ))
    else:
        _display_results(result)


@cli.command("import")
@click.argument("pdf_path", type=click.Path(exists=True))
@click.option("--db", default=None, help="SQLite database path")
@click.option("--asset-dir", default=None, help="Directory for question images")
@click.option("--asset-url", default=None, help="Public URL prefix for images")
@click.option("--draft", is_flag=True, default=False, help="Create as draft")
@click.option("--password", default=None, help="Quiz access password")
@_extraction_options
def import_quiz(
    pdf_path: str,
    db: str,
    asset_dir: str,
    asset_url: str,
    draft: bool,
    password: str,
    title: str,
    description: str,
    duration: int,
    strategy: str,
    points: float,
    fallback_threshold: float,
    scale: float,
    first_page: int,
    timeout: float,
    log_level: str,
    log_file: str,
):
    """Parse an exam PDF and store it as a quiz."""

    engine = _build_engine(strategy, points, fallback_threshold, scale,
                           first_page, log_level, log_file)
    result = _run_parse(engine, pdf_path, title, description, duration, timeout)

    publisher = QuizPublisher(
        SQLiteQuizStore(db),
        LocalAssetStore(asset_dir, asset_url),
    )
    try:
        published = publisher.publish(
            result.document,
            is_published=not draft,
            password=password,
            timeout=timeout,
        )
    except QuizTimeoutError as e:
        console.print(f"[red]Timeout (retryable):[/] {e}")
        sys.exit(3)

    _display_results(result)
    console.print(
        f"[bold green]Created quiz {published.quiz_id}[/] with "
        f"{len(published.question_ids)} questions, "
        f"{len(published.image_urls)} images"
    )
    for failure in published.asset_failures:
        console.print(
            f"[yellow]⚠ Image for question {failure.order_index + 1} "
            f"not attached:[/] {failure.error}"
        )
    console.print()


@cli.command("grade")
@click.argument("response")
@click.option(
    "--keyword", "-k",
    "keywords",
    multiple=True,
    required=True,
    help="Expected keyword, optionally weighted as keyword=weight",
)
@click.option("--points", "-p", default=10.0, type=float, help="Total points")
@click.option("--json-output", is_flag=True, default=False, help="Output JSON")
def grade_response(response: str, keywords: tuple, points: float, json_output: bool):
    """Grade a free-text RESPONSE against weighted keywords."""

    rubric = _parse_rubric(keywords)
    result = grade(response, rubric, points)
    review = needs_review(result)

    if json_output:
        data = result.model_dump(mode="json")
        data["needs_review"] = review
        click.echo(json.dumps(data, indent=2, ensure_ascii=False))
        return

    table = Table(title="Keyword Matches", border_style="cyan")
    table.add_column("Keyword", style="bold")
    table.add_column("Weight", justify="right")
    table.add_column("Found", justify="center")
    for match in result.matches:
        table.add_row(
            match.keyword,
            f"{match.weight:g}",
            "[green]✓[/]" if match.found else "[red]✗[/]",
        )
    console.print()
    console.print(table)
    console.print(
        f"[bold]Score:[/] {result.score:g} / {result.max_score:g} "
        f"({result.percentage:.2f}%)"
    )
    console.print(
        f"[bold]Correct:[/] "
        f"{'partially/fully' if is_partially_correct(result) else 'no'}"
    )
    if review:
        console.print("[yellow]⚠ Needs manual review[/]")
    console.print()


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
def serve(host: str, port: int, debug: bool):
    """Start the HTTP API server."""
    from .server import run_server

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Quiz Parser API[/]\n"
            f"[dim]Starting on {host}:{port}[/]",
            border_style="cyan",
        )
    )
    console.print()

    run_server(host=host, port=port, debug=debug)


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True))
def info(pdf_path: str):
    """Display PDF file information."""
    from .document import PdfDocumentSource

    try:
        source = PdfDocumentSource.open(pdf_path)
    except DocumentOpenError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    with source:
        console.print()
        table = Table(title="PDF Information", border_style="cyan")
        table.add_column("Property", style="bold")
        table.add_column("Value")

        table.add_row("File", os.path.basename(pdf_path))
        table.add_row("Pages", str(source.get_page_count()))
        table.add_row(
            "File Size",
            f"{os.path.getsize(pdf_path) / 1024 / 1024:.2f} MB",
        )

        for key in ["title", "author", "subject", "creator", "producer"]:
            val = source.metadata.get(key, "")
            if val:
                table.add_row(key.title(), val)

        text_pages = sum(
            1 for i in range(source.get_page_count())
            if source.get_page_text(i).strip()
        )
        table.add_row("Pages With Text", str(text_pages))

    console.print(table)
    console.print()


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _run_parse(engine, pdf_path, title, description, duration, timeout):
    """Run a parse pass, mapping failures to exit codes."""
    try:
        return engine.parse(
            pdf_path,
            title=title,
            description=description,
            duration=duration,
            timeout=timeout,
        )
    except EmptyResultError as e:
        console.print(f"[red]No questions found:[/] {e}")
        sys.exit(2)
    except QuizTimeoutError as e:
        console.print(f"[red]Timeout (retryable):[/] {e}")
        sys.exit(3)
    except (FileNotFoundError, DocumentOpenError) as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)


def _parse_rubric(keywords: tuple) -> KeywordRubric:
    """
    Build a rubric from 'keyword' or 'keyword=weight' strings.

    Text after the last '=' is a weight only when it is a number, so
    keywords such as 'E=mc2' are kept whole.
    """
    names: list[str] = []
    weights: dict[str, float] = {}
    for item in keywords:
        name, sep, weight = item.rpartition("=")
        value = None
        if sep and name.strip():
            try:
                value = float(weight)
            except ValueError:
                value = None
        if value is None:
            name = item
        name = name.strip()
        if not name:
            raise click.BadParameter(
                f"Empty keyword in {item!r}", param_hint="--keyword"
            )
        names.append(name)
        if value is not None:
            weights[name] = value
    return KeywordRubric(keywords=names, weight=weights)


def _display_results(result):
    """Display ingestion results as formatted tables."""
    console.print()

    quiz = result.document
    table = Table(title="Quiz", border_style="cyan")
    table.add_column("Property", style="bold")
    table.add_column("Value")
    table.add_row("Title", quiz.title)
    table.add_row("Description", quiz.description or "(none)")
    table.add_row("Duration", f"{quiz.duration} min")
    table.add_row("Questions", str(len(quiz.questions)))
    table.add_row("Total Points", f"{quiz.total_points:g}")
    table.add_row("Pages", str(result.page_count))
    table.add_row("Strategy", result.strategy.value)
    console.print(table)
    console.print()

    _display_validation_table(result.validation.model_dump())

    if result.warnings:
        warn_table = Table(title="Warnings", border_style="yellow")
        warn_table.add_column("Question", justify="right")
        warn_table.add_column("Type", style="bold")
        warn_table.add_column("Message")
        for w in result.warnings:
            warn_table.add_row(
                str(w.ordinal) if w.ordinal is not None else "-",
                w.type.value,
                w.message,
            )
        console.print(warn_table)
        console.print()

    console.print(
        f"[dim]Parser v{result.parser_version} | "
        f"Elapsed: {result.elapsed_seconds:.2f}s | "
        f"Timestamp: {result.parse_timestamp}[/]"
    )
    console.print()


def _display_validation_table(validation: dict):
    """Display validation report as a rich table."""
    table = Table(title="Validation Report", border_style="green")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status", justify="center")

    total = validation.get("total_questions_detected", 0)
    success = validation.get("structured_successfully", 0)
    rate = validation.get("success_rate", 0)

    def status_icon(count, threshold=0):
        if count <= threshold:
            return "[green]✓[/]"
        return "[red]✗[/]"

    table.add_row(
        "Total Questions Detected",
        str(total),
        "[green]✓[/]" if total > 0 else "[red]✗[/]",
    )
    table.add_row(
        "Structured Successfully",
        f"{success} ({rate}%)",
        "[green]✓[/]" if rate >= 90 else "[yellow]⚠[/]",
    )

    for label, key in [
        ("Image Fallbacks", "image_fallbacks"),
        ("Placeholder Records", "placeholder_records"),
    ]:
        count = validation.get(key, 0)
        table.add_row(label, str(count), status_icon(count))

    for label, key in [
        ("Missing Ordinals", "missing_ordinals"),
        ("Duplicate Ordinals", "duplicate_ordinals"),
        ("Defaulted Answers", "defaulted_answers"),
        ("Questions Without Answer Key", "questions_without_answer"),
    ]:
        values = validation.get(key, [])
        table.add_row(label, str(len(values)), status_icon(len(values)))

    console.print(table)
    console.print()


# ─── Entry point (for python -m quizparser.cli) ───────────────────────────────


if __name__ == "__main__":
    cli()
