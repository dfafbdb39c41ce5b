"""CLI entrypoint for kanban-agents."""

from pathlib import Path

import rich_click as click

from kanban_agents import __version__
from kanban_agents.orchestrator.controllers import (
    AgentListCommand,
    AgentRunCommand,
    ItemCreateCommand,
    ItemInspectCommand,
    ItemListCommand,
    ItemReleaseCommand,
    KanbanCliController,
    ProjectCreateCommand,
    ProjectListCommand,
    ReleaseStaleCommand,
)
from kanban_agents.orchestrator.errors import AgentRegistrationError, StoreUnavailableError
from kanban_agents.orchestrator.models import WorkItemPriority, WorkItemStatus
from kanban_agents.orchestrator.routing import SUPPORTED_AGENT_TYPES

click.rich_click.USE_MARKDOWN = True
CONTROLLER = KanbanCliController()

STATUS_CHOICES = [status.value for status in WorkItemStatus]
PRIORITY_CHOICES = [priority.value for priority in WorkItemPriority]


@click.group()
@click.version_option(version=__version__, prog_name="kanban-agents")
def kanban_agents() -> None:
    """Kanban agents CLI.

    Agents of each type (`project_manager`, `scrum_master`, `developer`) claim
    ready work items from a shared SQLite store and hand off to the next stage.
    """


@kanban_agents.group()
def agent() -> None:
    """Agent runtime commands."""


@agent.command("run")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--agent-type",
    type=click.Choice(list(SUPPORTED_AGENT_TYPES), case_sensitive=False),
    default=None,
    help="Agent type to run. Defaults to KANBAN_AGENTS_AGENT_TYPE.",
)
@click.option("--instance-id", default=None, help="Agent instance id. Generated when omitted.")
@click.option(
    "--once/--loop",
    default=False,
    show_default=True,
    help="Run one poll cycle or poll until SIGINT/SIGTERM.",
)
@click.option(
    "--poll-interval",
    type=click.FloatRange(min=0.1),
    default=None,
    help="Seconds to wait after an empty poll. Defaults to KANBAN_AGENTS_POLL_INTERVAL_SECONDS.",
)
@click.option(
    "--max-polls",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many poll cycles.",
)
@click.option(
    "--generator",
    "generator_backend",
    type=click.Choice(["http", "echo"], case_sensitive=False),
    default=None,
    help="Content generator backend. Defaults to KANBAN_AGENTS_GENERATOR_BACKEND.",
)
def agent_run(  # noqa: PLR0913
    db_path: Path | None,
    agent_type: str | None,
    instance_id: str | None,
    once: bool,
    poll_interval: float | None,
    max_polls: int | None,
    generator_backend: str | None,
) -> None:
    """Register an agent instance and process work items of its type."""

    try:
        lines = CONTROLLER.run_agent(
            AgentRunCommand(
                db_path=db_path,
                agent_type=agent_type.lower() if agent_type else None,
                instance_id=instance_id,
                once=once,
                poll_interval_seconds=poll_interval,
                max_polls=max_polls,
                generator_backend=generator_backend.lower() if generator_backend else None,
            ),
        )
    except (ValueError, AgentRegistrationError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@agent.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--agent-type",
    type=click.Choice(list(SUPPORTED_AGENT_TYPES), case_sensitive=False),
    default=None,
    help="Optional agent type filter.",
)
@click.option(
    "--active-only/--all",
    default=False,
    show_default=True,
    help="Only show active instances.",
)
def agent_list(db_path: Path | None, agent_type: str | None, active_only: bool) -> None:
    """List registered agent instances."""

    _emit_lines(
        CONTROLLER.list_agents(
            AgentListCommand(
                db_path=db_path,
                agent_type=agent_type.lower() if agent_type else None,
                active_only=active_only,
            ),
        ),
    )


@kanban_agents.group()
def projects() -> None:
    """Project commands."""


@projects.command("create")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--name", required=True, help="Project name.")
@click.option("--description", default=None, help="Project description.")
@click.option(
    "--tech",
    "tech_stack",
    multiple=True,
    help="Technology in the project's stack. Can be repeated.",
)
@click.option("--created-by", default=None, help="Owner recorded on the project.")
def projects_create(
    db_path: Path | None,
    name: str,
    description: str | None,
    tech_stack: tuple[str, ...],
    created_by: str | None,
) -> None:
    """Create a project that work items belong to."""

    _emit_lines(
        CONTROLLER.create_project(
            ProjectCreateCommand(
                db_path=db_path,
                name=name,
                description=description,
                tech_stack=tech_stack,
                created_by=created_by,
            ),
        ),
    )


@projects.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def projects_list(db_path: Path | None) -> None:
    """List projects."""

    _emit_lines(CONTROLLER.list_projects(ProjectListCommand(db_path=db_path)))


@kanban_agents.group()
def items() -> None:
    """Work-item commands."""


@items.command("create")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--project-id", required=True, help="Owning project id.")
@click.option("--title", required=True, help="Work item title.")
@click.option(
    "--type",
    "item_type",
    required=True,
    help="Item type, for example feature, prd, story, bug or task.",
)
@click.option("--description", default="", help="Work item description.")
@click.option(
    "--priority",
    type=click.Choice(PRIORITY_CHOICES, case_sensitive=False),
    default=WorkItemPriority.MEDIUM.value,
    show_default=True,
    help="Work item priority.",
)
@click.option(
    "--status",
    type=click.Choice(STATUS_CHOICES, case_sensitive=False),
    default=WorkItemStatus.READY.value,
    show_default=True,
    help="Initial status. Only `ready` items are picked up by agents.",
)
@click.option("--created-by", default=None, help="Owner inherited by child items.")
def items_create(  # noqa: PLR0913
    db_path: Path | None,
    project_id: str,
    title: str,
    item_type: str,
    description: str,
    priority: str,
    status: str,
    created_by: str | None,
) -> None:
    """Create a work item."""

    try:
        lines = CONTROLLER.create_item(
            ItemCreateCommand(
                db_path=db_path,
                project_id=project_id,
                title=title,
                item_type=item_type.strip().lower(),
                description=description,
                priority=priority.lower(),
                status=status.lower(),
                created_by=created_by,
            ),
        )
    except (ValueError, StoreUnavailableError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@items.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice(STATUS_CHOICES, case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
@click.option("--type", "item_type", default=None, help="Optional item type filter.")
@click.option("--project-id", default=None, help="Optional project filter.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max items to print.",
)
def items_list(
    db_path: Path | None,
    status: str | None,
    item_type: str | None,
    project_id: str | None,
    limit: int,
) -> None:
    """List work items, newest first."""

    _emit_lines(
        CONTROLLER.list_items(
            ItemListCommand(
                db_path=db_path,
                status=status.lower() if status else None,
                item_type=item_type,
                project_id=project_id,
                limit=limit,
            ),
        ),
    )


@items.command("inspect")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--item-id", required=True, help="Work item id.")
def items_inspect(db_path: Path | None, item_id: str) -> None:
    """Inspect one work item with children, handoffs, comments and activity."""

    _emit_lines(CONTROLLER.inspect_item(ItemInspectCommand(db_path=db_path, item_id=item_id)))


@items.command("release")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--item-id", required=True, help="Work item id.")
@click.option("--reason", default=None, help="Reason recorded in the activity log.")
def items_release(db_path: Path | None, item_id: str, reason: str | None) -> None:
    """Return an in-progress item to `ready`, clearing any escalation."""

    _emit_lines(
        CONTROLLER.release_item(
            ItemReleaseCommand(db_path=db_path, item_id=item_id, reason=reason),
        ),
    )


@items.command("release-stale")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--minutes",
    type=click.IntRange(min=1),
    default=None,
    help="Claim age threshold. Defaults to KANBAN_AGENTS_STALE_CLAIM_MINUTES.",
)
def items_release_stale(db_path: Path | None, minutes: int | None) -> None:
    """Release claims held longer than the threshold. Escalated items are kept."""

    _emit_lines(CONTROLLER.release_stale(ReleaseStaleCommand(db_path=db_path, minutes=minutes)))


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    kanban_agents()
