from __future__ import annotations

import json
from datetime import datetime

import pytest
from typer.testing import CliRunner

from taskboard import main as cli
from taskboard.domain.entities import RecurrencePattern
from taskboard.domain.enums import RecurrenceFrequency
from taskboard.services.dependency_graph import DependencyGraph
from taskboard.services.locks import BoardLocks
from taskboard.services.recurrence_scheduler import RecurrenceScheduler
from taskboard.services.recurring_task_service import RecurringTaskService

from conftest import FakeRepo

runner = CliRunner()


@pytest.fixture
def services(repo: FakeRepo, monkeypatch: pytest.MonkeyPatch) -> cli.Services:
    locks = BoardLocks()
    built = cli.Services(
        scheduler=RecurrenceScheduler(repo, locks=locks, max_workers=1),
        graph=DependencyGraph(repo, locks=locks),
        recurring=RecurringTaskService(repo, locks=locks),
    )
    monkeypatch.setattr(cli, "build_services", lambda: built)
    monkeypatch.setattr(cli, "setup_logging", lambda level=None: None)
    return built


def test_run_prints_generated_count(repo: FakeRepo, services: cli.Services) -> None:
    board = repo.create_board("Team")
    template = repo.create_task(board.id, {"title": "Standup"})
    services.recurring.create_recurring_task(
        board.id, template.id, RecurrencePattern(frequency=RecurrenceFrequency.DAILY), now=datetime(2025, 1, 1)
    )

    result = runner.invoke(cli.app, ["run", "--now", "2025-01-02T00:00:00"])

    assert result.exit_code == 0
    assert "Generated 1 task(s)" in result.stdout


def test_run_reports_skipped_definitions(repo: FakeRepo, services: cli.Services) -> None:
    board = repo.create_board("Team")
    repo.create_recurring_definition({
        "board_id": board.id,
        "template_task_id": 404,
        "pattern": RecurrencePattern(frequency=RecurrenceFrequency.DAILY),
        "next_due_date": datetime(2025, 1, 1),
    })

    result = runner.invoke(cli.app, ["run", "--now", "2025-01-02T00:00:00"])

    assert result.exit_code == 0
    assert "Generated 0 task(s)" in result.stdout
    assert "Skipped definition" in result.stdout


def test_deps_add_rejects_cycle(repo: FakeRepo, services: cli.Services) -> None:
    board = repo.create_board("Team")
    a = repo.create_task(board.id, {"title": "A"})
    b = repo.create_task(board.id, {"title": "B"})

    first = runner.invoke(cli.app, ["deps", "add", str(board.id), str(a.id), str(b.id)])
    second = runner.invoke(cli.app, ["deps", "add", str(board.id), str(b.id), str(a.id)])

    assert first.exit_code == 0
    assert f"Task {a.id} now depends on {b.id}" in first.stdout
    assert second.exit_code == 1
    assert repo.get_dependency_edges(board.id, b.id) == set()


def test_deps_blocked_and_remove(repo: FakeRepo, services: cli.Services) -> None:
    board = repo.create_board("Team")
    a = repo.create_task(board.id, {"title": "Deploy"})
    b = repo.create_task(board.id, {"title": "Review"})
    services.graph.add_dependency(board.id, a.id, b.id)

    blocked = runner.invoke(cli.app, ["deps", "blocked"])
    removed = runner.invoke(cli.app, ["deps", "remove", str(board.id), str(a.id), str(b.id)])

    assert f"#{a.id} Deploy <- #{b.id} Review" in blocked.stdout
    assert "Removed" in removed.stdout


def test_recurring_update_validates_pattern(repo: FakeRepo, services: cli.Services) -> None:
    board = repo.create_board("Team")
    template = repo.create_task(board.id, {"title": "Report"})
    definition = services.recurring.create_recurring_task(
        board.id, template.id, RecurrencePattern(frequency=RecurrenceFrequency.DAILY), now=datetime(2025, 1, 1)
    )

    bad = runner.invoke(
        cli.app,
        ["recurring", "update", str(definition.id), "--pattern", json.dumps({"frequency": "daily", "interval": 0})],
    )
    good = runner.invoke(
        cli.app,
        [
            "recurring",
            "update",
            str(definition.id),
            "--inactive",
            "--pattern",
            json.dumps({"frequency": "monthly", "day_of_month": 15}),
        ],
    )

    assert bad.exit_code == 1
    assert good.exit_code == 0
    assert "Monthly on day 15" in good.stdout
    assert "inactive" in good.stdout
    assert repo.get_recurring_definition(definition.id).is_active is False


def test_recurring_update_accepts_numeric_strings(repo: FakeRepo, services: cli.Services) -> None:
    board = repo.create_board("Team")
    template = repo.create_task(board.id, {"title": "Report"})
    definition = services.recurring.create_recurring_task(
        board.id, template.id, RecurrencePattern(frequency=RecurrenceFrequency.DAILY), now=datetime(2025, 1, 1)
    )

    result = runner.invoke(
        cli.app,
        ["recurring", "update", str(definition.id), "--pattern", json.dumps({"frequency": "monthly", "day_of_month": "15"})],
    )

    assert result.exit_code == 0
    assert repo.get_recurring_definition(definition.id).pattern.day_of_month == 15


@pytest.mark.parametrize(
    "pattern",
    [
        {"frequency": "daily", "interval": 1.9},
        {"frequency": "monthly", "day_of_month": "mid"},
        {"frequency": "hourly"},
    ],
)
def test_recurring_update_reports_malformed_pattern(repo: FakeRepo, services: cli.Services, pattern: dict) -> None:
    board = repo.create_board("Team")
    template = repo.create_task(board.id, {"title": "Report"})
    definition = services.recurring.create_recurring_task(
        board.id, template.id, RecurrencePattern(frequency=RecurrenceFrequency.DAILY), now=datetime(2025, 1, 1)
    )

    result = runner.invoke(cli.app, ["recurring", "update", str(definition.id), "--pattern", json.dumps(pattern)])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert repo.get_recurring_definition(definition.id).pattern.frequency == RecurrenceFrequency.DAILY


def test_recurring_create_with_first_instance(repo: FakeRepo, services: cli.Services) -> None:
    board = repo.create_board("Team")
    template = repo.create_task(board.id, {"title": "Report"})

    result = runner.invoke(
        cli.app,
        [
            "recurring",
            "create",
            str(board.id),
            str(template.id),
            "--pattern",
            json.dumps({"frequency": "weekly", "days_of_week": [1]}),
            "--generate-first",
        ],
    )

    assert result.exit_code == 0
    assert "Weekly on Mon" in result.stdout
    assert [task.title for task in repo.tasks.values() if task.recurring_definition_id] == ["Report"]
