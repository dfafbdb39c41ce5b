from __future__ import annotations

import re

import allure
import pytest
from click.testing import CliRunner

from kanban_agents.main import kanban_agents

pytestmark = [
    allure.epic("CLI"),
    allure.feature("Agent Pipeline Commands"),
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in (
        "KANBAN_AGENTS_AGENT_TYPE",
        "KANBAN_AGENTS_INSTANCE_ID",
        "KANBAN_AGENTS_GENERATOR_BACKEND",
        "KANBAN_AGENTS_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def _invoke(runner: CliRunner, *args: str):
    result = runner.invoke(kanban_agents, list(args))
    assert result.exit_code == 0, result.output
    return result


def _extract(output: str, key: str) -> str:
    match = re.search(rf"{key}=(\S+)", output)
    assert match is not None, output
    return match.group(1)


def _seed_feature(runner: CliRunner, db_path: str) -> str:
    project = _invoke(
        runner,
        "projects",
        "create",
        "--db-path",
        db_path,
        "--name",
        "Shop",
        "--tech",
        "python",
        "--tech",
        "sqlite",
    )
    project_id = _extract(project.output, "project_id")
    item = _invoke(
        runner,
        "items",
        "create",
        "--db-path",
        db_path,
        "--project-id",
        project_id,
        "--title",
        "Guest checkout",
        "--type",
        "feature",
        "--priority",
        "high",
    )
    assert "status=ready priority=high" in item.output
    return _extract(item.output, "item_id")


def test_pipeline_runs_through_cli_with_echo_generator(tmp_path) -> None:
    runner = CliRunner()
    db_path = str(tmp_path / "cli.db")
    feature_id = _seed_feature(runner, db_path)

    for agent_type in ("project_manager", "scrum_master", "developer"):
        result = _invoke(
            runner,
            "agent",
            "run",
            "--db-path",
            db_path,
            "--agent-type",
            agent_type,
            "--once",
            "--generator",
            "echo",
        )
        assert f"Agent {agent_type} (" in result.output
        assert "polls=1 processed=1 succeeded=1 failed=0" in result.output

    review = _invoke(runner, "items", "list", "--db-path", db_path, "--status", "review")
    assert "Work items: 1" in review.output
    assert "type=story" in review.output
    assert "priority=high" in review.output

    details = _invoke(runner, "items", "inspect", "--db-path", db_path, "--item-id", feature_id)
    assert "Status: done" in details.output
    assert "Children: 1" in details.output
    assert "Handoffs: 1" in details.output
    assert "project_manager -> scrum_master targets=1" in details.output

    agents = _invoke(runner, "agent", "list", "--db-path", db_path)
    assert "Agents: 3" in agents.output
    assert agents.output.count("status=inactive") == 3

    projects = _invoke(runner, "projects", "list", "--db-path", db_path)
    assert "tech_stack=python, sqlite" in projects.output


def test_agent_run_idle_poll_reports_no_work(tmp_path) -> None:
    runner = CliRunner()
    result = _invoke(
        runner,
        "agent",
        "run",
        "--db-path",
        str(tmp_path / "idle.db"),
        "--agent-type",
        "developer",
        "--instance-id",
        "dev-idle",
        "--once",
        "--generator",
        "echo",
    )

    assert "Agent developer (dev-idle) stopped: polls=1 processed=0" in result.output
    assert "idle_polls=1" in result.output


def test_agent_run_requires_agent_type(tmp_path) -> None:
    result = CliRunner().invoke(
        kanban_agents,
        ["agent", "run", "--db-path", str(tmp_path / "x.db"), "--once", "--generator", "echo"],
    )

    assert result.exit_code != 0
    assert "Agent type is required" in result.output


def test_release_commands(tmp_path) -> None:
    runner = CliRunner()
    db_path = str(tmp_path / "release.db")
    feature_id = _seed_feature(runner, db_path)

    not_released = _invoke(
        runner,
        "items",
        "release",
        "--db-path",
        db_path,
        "--item-id",
        feature_id,
    )
    assert f"Work item not released (not in progress): {feature_id}" in not_released.output

    stale = _invoke(runner, "items", "release-stale", "--db-path", db_path, "--minutes", "5")
    assert "Stale claims released: 0 (older than 5 min)" in stale.output


def test_inspect_missing_item(tmp_path) -> None:
    result = _invoke(
        CliRunner(),
        "items",
        "inspect",
        "--db-path",
        str(tmp_path / "empty.db"),
        "--item-id",
        "missing",
    )

    assert "Work item not found: missing" in result.output


def test_items_create_rejects_unknown_project(tmp_path) -> None:
    result = CliRunner().invoke(
        kanban_agents,
        [
            "items",
            "create",
            "--db-path",
            str(tmp_path / "orphan.db"),
            "--project-id",
            "missing-project",
            "--title",
            "Orphan",
            "--type",
            "story",
        ],
    )

    assert result.exit_code == 1
    assert "Project not found: missing-project" in result.output
    assert "Traceback" not in result.output
