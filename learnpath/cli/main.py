"""
Typer CLI for the learnpath engine (operator tooling).

Commands:
    learnpath db init                     - Create tables
    learnpath config show                 - Show static settings and live adaptive config
    learnpath path build STUDENT          - (Re)build a student's active path
    learnpath path show STUDENT           - Show the active path and its entries
    learnpath path next STUDENT           - Show the next recommended entry
    learnpath event apply STUDENT TYPE    - Record and apply one learning event
    learnpath insights STUDENT            - Weekly insight rollup
    learnpath placement score FILE        - Validate and score a placement JSON file

Usage:
    learnpath --help
    learnpath path build s-123 --grade-band 3-5 --grade-level 4
    learnpath event apply s-123 practice_answered --payload '{"correct": true, "standards": ["6.EE.A.2"]}'
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn

import typer
from loguru import logger
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from learnpath.adaptive.insights import compute_student_insights
from learnpath.adaptive.models import AdaptiveEvent, EntryStatus, PathEntry
from learnpath.adaptive.orchestrator import AdaptiveOrchestrator
from learnpath.adaptive.path_builder import PathBuilder
from learnpath.adaptive.placement import (
    PlacementQuestion,
    PlacementResponse,
    PlacementScorer,
    validate_placement_questions,
)
from learnpath.adaptive.runtime_config import RuntimeConfigProvider
from learnpath.config import get_settings
from learnpath.db.store import SqlActivityStore
from learnpath.errors import EngineError, StoreError
from learnpath.logging_config import configure_logging

app = typer.Typer(help="learnpath CLI: adaptive learning paths, placement and insights")
console = Console()

db_app = typer.Typer(help="Database management")
config_app = typer.Typer(help="Inspect configuration")
path_app = typer.Typer(help="Student learning paths")
event_app = typer.Typer(help="Adaptive events")
placement_app = typer.Typer(help="Placement content and scoring")

app.add_typer(db_app, name="db")
app.add_typer(config_app, name="config")
app.add_typer(path_app, name="path")
app.add_typer(event_app, name="event")
app.add_typer(placement_app, name="placement")


def get_store() -> SqlActivityStore:
    """Store used by all commands (patched in tests)."""
    return SqlActivityStore()


def _fail(message: str) -> NoReturn:
    rprint(f"[red]✗[/red] {message}")
    raise typer.Exit(code=1)


def _entries_table(title: str, entries: list[PathEntry], highlight: int | None = None) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("Pos", justify="right", style="dim")
    table.add_column("ID", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Status")
    table.add_column("Title")
    table.add_column("Standards", style="magenta")
    table.add_column("Reason", style="yellow")

    status_styles = {
        EntryStatus.COMPLETED: "green",
        EntryStatus.IN_PROGRESS: "yellow",
        EntryStatus.NOT_STARTED: "dim",
    }
    for entry in entries:
        marker = " ◀" if highlight is not None and entry.id == highlight else ""
        style = status_styles[entry.status]
        table.add_row(
            str(entry.position),
            str(entry.id) if entry.id is not None else "-",
            entry.type.value,
            f"[{style}]{entry.status.value}[/{style}]",
            (entry.metadata.module_title or "-") + marker,
            ", ".join(entry.target_standard_codes) or "-",
            entry.metadata.reason or "-",
        )
    return table


# =============================================================================
# db
# =============================================================================


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    from learnpath.db.database import init_db

    logger.info("Initializing database tables...")
    try:
        init_db()
    except Exception as exc:  # Driver/connection errors surface as many types
        logger.exception("Database initialization failed")
        _fail(f"Database initialization failed: {exc}")
    rprint("[green]✓[/green] Database initialized!")


# =============================================================================
# config
# =============================================================================


@config_app.command("show")
def config_show() -> None:
    """Show static settings and the adaptive config the engine would use now."""
    settings = get_settings()

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("database_url", settings.database_url)
    table.add_row("log_level", settings.log_level)
    table.add_row("adaptive_attempt_window", str(settings.adaptive_attempt_window))
    table.add_row("context_attempt_window", str(settings.context_attempt_window))
    table.add_row("insight_event_window", str(settings.insight_event_window))
    table.add_row("default_path_length", str(settings.default_path_length))
    console.print(table)

    config = RuntimeConfigProvider(get_store(), settings).load()
    adaptive = Table(title="Adaptive config (live)", show_header=True)
    adaptive.add_column("Key", style="cyan")
    adaptive.add_column("Value", style="green")
    for key, value in config.model_dump().items():
        adaptive.add_row(f"adaptive.{key}", str(value))
    console.print(adaptive)


# =============================================================================
# path
# =============================================================================


@path_app.command("build")
def path_build(
    student_id: str = typer.Argument(..., help="Student identifier"),
    grade_band: str | None = typer.Option(None, "--grade-band", "-b", help="Grade band, e.g. 3-5"),
    grade_level: int | None = typer.Option(None, "--grade-level", "-g", help="Student grade level"),
    goal_focus: str | None = typer.Option(None, "--goal-focus", help="Subject focus, e.g. math"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Entries to seed"),
    source: str = typer.Option("operator", "--source", help="Provenance recorded on the path"),
) -> None:
    """(Re)build a student's active path from the curriculum."""
    try:
        result = PathBuilder(get_store()).build_student_path(
            student_id,
            grade_band=grade_band,
            grade_level=grade_level,
            goal_focus=goal_focus,
            source=source,
            limit=limit,
        )
    except (EngineError, StoreError) as exc:
        _fail(f"Could not build path: {exc}")

    rprint(
        f"[green]✓[/green] Path {result.path_id} built for [bold]{student_id}[/bold] "
        f"({result.path.metadata.grade_band}, {len(result.entries)} entries via {result.tier})"
    )
    console.print(_entries_table("Seeded entries", result.entries))


@path_app.command("show")
def path_show(student_id: str = typer.Argument(..., help="Student identifier")) -> None:
    """Show the active path, its adaptive state and entries."""
    orchestrator = AdaptiveOrchestrator(get_store())
    try:
        view = orchestrator.get_student_path(student_id)
    except StoreError as exc:
        _fail(f"Could not load path: {exc}")

    if view is None:
        rprint(f"[yellow]No active path for {student_id}[/yellow]")
        raise typer.Exit(code=0)

    state = view.path.metadata.adaptive
    rprint(
        f"[bold]Path {view.path.id}[/bold] ({view.path.status.value}) "
        f"difficulty={state.current_difficulty} streak={state.difficulty_streak} "
        f"misconceptions={', '.join(state.misconceptions) or '-'}"
    )
    next_entry = orchestrator.select_next_entry(student_id)
    console.print(_entries_table("Entries", view.entries, highlight=next_entry.id if next_entry else None))


@path_app.command("next")
def path_next(student_id: str = typer.Argument(..., help="Student identifier")) -> None:
    """Show the next recommended entry."""
    try:
        entry = AdaptiveOrchestrator(get_store()).select_next_entry(student_id)
    except (EngineError, StoreError) as exc:
        _fail(f"Could not select next entry: {exc}")

    if entry is None:
        rprint(f"[yellow]Nothing to recommend for {student_id}[/yellow]")
        return
    title = entry.metadata.module_title or f"{entry.type.value} #{entry.id}"
    rprint(f"[green]Next:[/green] {title} [dim]({entry.type.value}, {entry.metadata.reason or 'path order'})[/dim]")


# =============================================================================
# event
# =============================================================================


@event_app.command("apply")
def event_apply(
    student_id: str = typer.Argument(..., help="Student identifier"),
    event_type: str = typer.Argument(..., help="practice_answered, quiz_submitted, lesson_completed, ..."),
    payload: str = typer.Option("{}", "--payload", "-p", help="Event payload as JSON"),
    entry_id: int | None = typer.Option(None, "--entry", "-e", help="Target path entry id"),
    status: EntryStatus | None = typer.Option(None, "--status", "-s", help="New entry status"),
    score: float | None = typer.Option(None, "--score", help="Entry score"),
    time_spent: float | None = typer.Option(None, "--time-spent", help="Seconds spent"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON"),
) -> None:
    """Record a learning event and run the adaptive loop on it."""
    try:
        event = AdaptiveEvent(
            event_type=event_type,
            path_entry_id=entry_id,
            status=status,
            score=score,
            time_spent_seconds=time_spent,
            payload=json.loads(payload),
        )
    except (json.JSONDecodeError, ValidationError) as exc:
        _fail(f"Invalid event: {exc}")

    try:
        result = AdaptiveOrchestrator(get_store()).apply_adaptive_event(student_id, event, record_event=True)
    except (EngineError, StoreError) as exc:
        _fail(f"Adaptive event failed: {exc}")

    if as_json:
        console.print_json(result.model_dump_json())
        return

    if result.path is None:
        rprint(f"[yellow]No active path for {student_id}; event recorded only[/yellow]")
        return

    adaptive = result.adaptive
    rprint(
        f"[green]✓[/green] difficulty={adaptive.target_difficulty} "
        f"misconceptions={', '.join(adaptive.misconceptions) or '-'} "
        f"recent_attempts={len(adaptive.recent_attempts)}"
    )
    console.print(
        _entries_table("Path", result.path.entries, highlight=result.next.id if result.next else None)
    )


# =============================================================================
# insights
# =============================================================================


@app.command("insights")
def insights(student_id: str = typer.Argument(..., help="Student identifier")) -> None:
    """Weekly accuracy, time, focus standards and struggle flag."""
    snapshot = compute_student_insights(get_store(), student_id)

    def fmt(value: float | int | None, suffix: str = "") -> str:
        return "-" if value is None else f"{value}{suffix}"

    table = Table(title=f"Insights for {student_id}", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Accuracy (this week)", fmt(snapshot.avg_accuracy, "%"))
    table.add_row("Accuracy (prior week)", fmt(snapshot.avg_accuracy_prior_week, "%"))
    table.add_row("Accuracy delta", fmt(snapshot.avg_accuracy_delta))
    table.add_row("Minutes (this week)", str(snapshot.weekly_time_minutes))
    table.add_row("Minutes (prior week)", str(snapshot.weekly_time_minutes_prior_week))
    table.add_row("Lessons completed", str(snapshot.lessons_completed))
    table.add_row("Latest quiz", fmt(snapshot.latest_quiz_score, "%"))
    table.add_row(
        "Focus standards",
        ", ".join(f"{item.code} ({item.accuracy}%)" for item in snapshot.focus_standards) or "-",
    )
    table.add_row("Struggling", "[red]yes[/red]" if snapshot.struggle else "[green]no[/green]")
    console.print(table)


# =============================================================================
# placement
# =============================================================================


@placement_app.command("score")
def placement_score(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON with questions and responses"),
) -> None:
    """
    Validate and score a placement attempt from a JSON file.

    The file holds ``{"assessment_id": 1, "questions": [...], "responses": [...]}``.
    """
    try:
        data = json.loads(file.read_text(encoding="utf-8"))
        questions = [PlacementQuestion.model_validate(item) for item in data.get("questions", [])]
        responses = [PlacementResponse.model_validate(item) for item in data.get("responses", [])]
    except (json.JSONDecodeError, ValidationError, AttributeError) as exc:
        _fail(f"Invalid placement file: {exc}")

    try:
        validation = validate_placement_questions(questions, assessment_id=data.get("assessment_id"))
    except EngineError as exc:
        _fail(f"{exc.message} ({exc.code})")

    for invalid in validation.invalid:
        rprint(f"[yellow]⚠[/yellow] question {invalid.bank_question_id} skipped: {invalid.reason}")

    score = PlacementScorer().score_attempt(responses, validation.questions)
    rprint(
        f"[bold]Mastery:[/bold] {score.mastery_pct}% "
        f"[dim]({score.earned_weight:g}/{score.total_weight:g} weight)[/dim]"
    )

    table = Table(title="Strand estimates", show_header=True)
    table.add_column("Strand", style="cyan")
    table.add_column("Correct", justify="right", style="green")
    table.add_column("Total", justify="right")
    table.add_column("Accuracy", justify="right", style="yellow")
    for estimate in score.strand_estimates:
        table.add_row(estimate.strand, str(estimate.correct), str(estimate.total), f"{estimate.accuracy_pct}%")
    console.print(table)


def run() -> None:
    """Console-script entry point."""
    configure_logging()
    app()


if __name__ == "__main__":
    run()
