from __future__ import annotations

import json
import logging
import signal
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, NoReturn, Optional

import typer

from taskboard.domain.entities import RecurrencePattern, RecurringDefinitionEntity
from taskboard.domain.errors import TaskboardError
from taskboard.infra.activity import ActivityRecorder
from taskboard.infra.db import create_schema, init_db
from taskboard.infra.logging import setup_logging
from taskboard.infra.repository import TaskRepository
from taskboard.services.dependency_graph import DependencyGraph
from taskboard.services.locks import BoardLocks
from taskboard.services.pattern_calculator import describe_pattern
from taskboard.services.recurrence_scheduler import RecurrenceScheduler
from taskboard.services.recurring_task_service import RecurringTaskService

logger = logging.getLogger(__name__)

app = typer.Typer(name="taskboard", help="Recurring task scheduler and dependency graph", add_completion=False)
recurring_app = typer.Typer(help="Manage recurring task definitions")
deps_app = typer.Typer(help="Manage task dependencies")
app.add_typer(recurring_app, name="recurring")
app.add_typer(deps_app, name="deps")


@dataclass
class Services:
    scheduler: RecurrenceScheduler
    graph: DependencyGraph
    recurring: RecurringTaskService


def build_services() -> Services:
    repo = TaskRepository()
    activity = ActivityRecorder()
    locks = BoardLocks()
    return Services(
        scheduler=RecurrenceScheduler(repo, activity, locks),
        graph=DependencyGraph(repo, activity, locks),
        recurring=RecurringTaskService(repo, activity, locks),
    )


def _fail(exc: TaskboardError) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


@app.callback()
def main_callback(
    log_level: Annotated[Optional[str], typer.Option("--log-level", help="Override LOG_LEVEL")] = None,
) -> None:
    setup_logging(log_level)


@app.command("init-db")
def init_db_command() -> None:
    """Check the database connection and create any missing tables."""
    init_db()
    create_schema()
    typer.echo("Schema ready")


@app.command()
def run(
    now: Annotated[
        Optional[datetime], typer.Option(help="Treat this timestamp as the current time")
    ] = None,
) -> None:
    """Run one generation pass and print its summary."""
    try:
        summary = build_services().scheduler.generate_due_tasks(now)
    except TaskboardError as exc:
        _fail(exc)
    typer.echo(f"Generated {summary.count} task(s)")
    for issue in summary.skipped:
        typer.echo(f"Skipped definition {issue.definition_id}: {issue.reason}")
    for issue in summary.failed:
        typer.echo(f"Failed definition {issue.definition_id}: {issue.reason}")
    if summary.deferred:
        typer.echo(f"Deferred: {', '.join(str(item) for item in summary.deferred)}")
    if summary.failed:
        raise typer.Exit(code=2)


@app.command()
def serve(
    interval: Annotated[Optional[float], typer.Option(help="Seconds between passes")] = None,
) -> None:
    """Run generation passes on a fixed tick until interrupted."""
    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    logger.info("Scheduler started")
    try:
        build_services().scheduler.run_periodically(stop, interval)
    except KeyboardInterrupt:
        stop.set()
    logger.info("Scheduler stopped")


def _parse_pattern(raw: str) -> RecurrencePattern:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        typer.echo(f"Error: invalid pattern: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    try:
        return RecurrencePattern.from_dict(data)
    except TaskboardError as exc:
        _fail(exc)


def _echo_definition(definition: RecurringDefinitionEntity) -> None:
    state = "active" if definition.is_active else "inactive"
    typer.echo(
        f"{definition.id}\t{describe_pattern(definition.pattern)}\t"
        f"{definition.next_due_date.isoformat()}\t{state}"
    )


@recurring_app.command("list")
def recurring_list(board_id: int) -> None:
    try:
        definitions = build_services().recurring.list_for_board(board_id)
    except TaskboardError as exc:
        _fail(exc)
    for definition in definitions:
        _echo_definition(definition)


@recurring_app.command("create")
def recurring_create(
    board_id: int,
    template_task_id: int,
    pattern: Annotated[str, typer.Option(help="Pattern as a JSON object")],
    generate_first: Annotated[
        bool, typer.Option("--generate-first", help="Also create the first instance right away")
    ] = False,
) -> None:
    """Mark a task as recurring."""
    parsed = _parse_pattern(pattern)
    try:
        definition = build_services().recurring.create_recurring_task(
            board_id, template_task_id, parsed, generate_first=generate_first
        )
    except TaskboardError as exc:
        _fail(exc)
    _echo_definition(definition)


@recurring_app.command("update")
def recurring_update(
    definition_id: int,
    active: Annotated[Optional[bool], typer.Option("--active/--inactive")] = None,
    pattern: Annotated[Optional[str], typer.Option(help="Pattern as a JSON object")] = None,
    next_due: Annotated[Optional[datetime], typer.Option(help="New next due timestamp")] = None,
) -> None:
    """Update a definition's pattern, cursor or active flag."""
    parsed = _parse_pattern(pattern) if pattern else None
    try:
        definition = build_services().recurring.update_recurring_task(
            definition_id, pattern=parsed, next_due=next_due, is_active=active
        )
    except TaskboardError as exc:
        _fail(exc)
    _echo_definition(definition)


@deps_app.command("add")
def deps_add(board_id: int, task_id: int, depends_on_id: int) -> None:
    try:
        edge = build_services().graph.add_dependency(board_id, task_id, depends_on_id)
    except TaskboardError as exc:
        _fail(exc)
    if edge.created:
        typer.echo(f"Task {task_id} now depends on {depends_on_id}")
    else:
        typer.echo(f"Task {task_id} already depends on {depends_on_id}")


@deps_app.command("remove")
def deps_remove(board_id: int, task_id: int, depends_on_id: int) -> None:
    try:
        removed = build_services().graph.remove_dependency(board_id, task_id, depends_on_id)
    except TaskboardError as exc:
        _fail(exc)
    typer.echo("Removed" if removed else "No such dependency")


@deps_app.command("blocked")
def deps_blocked() -> None:
    """List every open task waiting on an open dependency."""
    for item in build_services().graph.list_blocked():
        blockers = ", ".join(f"#{task.id} {task.title}" for task in item.blocking_tasks)
        typer.echo(f"[{item.board_title}] #{item.task.id} {item.task.title} <- {blockers}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
