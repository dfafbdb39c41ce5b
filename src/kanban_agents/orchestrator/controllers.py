"""Controllers for agent and work-item CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from uuid import uuid4

from kanban_agents.config import Settings
from kanban_agents.orchestrator.backend import EchoGenerator, Generator, HttpGenerator
from kanban_agents.orchestrator.models import (
    AgentInstanceStatus,
    PollingConfig,
    ProjectCreate,
    WorkItemCreate,
    WorkItemPriority,
    WorkItemStatus,
)
from kanban_agents.orchestrator.repository import WorkItemRepository
from kanban_agents.orchestrator.routing import validate_agent_type
from kanban_agents.orchestrator.runtime import AgentRuntime

MANUAL_RELEASE_REASON = "released by operator"


@dataclass(slots=True)
class AgentRunCommand:
    """CLI input for running one agent instance."""

    db_path: Path | None
    agent_type: str | None
    instance_id: str | None
    once: bool
    poll_interval_seconds: float | None = None
    max_polls: int | None = None
    generator_backend: str | None = None


@dataclass(slots=True)
class AgentListCommand:
    db_path: Path | None
    agent_type: str | None
    active_only: bool


@dataclass(slots=True)
class ProjectCreateCommand:
    """CLI input for project creation."""

    db_path: Path | None
    name: str
    description: str | None
    tech_stack: tuple[str, ...]
    created_by: str | None


@dataclass(slots=True)
class ProjectListCommand:
    db_path: Path | None


@dataclass(slots=True)
class ItemCreateCommand:
    """CLI input for work-item creation."""

    db_path: Path | None
    project_id: str
    title: str
    item_type: str
    description: str
    priority: str
    status: str
    created_by: str | None


@dataclass(slots=True)
class ItemListCommand:
    db_path: Path | None
    status: str | None
    item_type: str | None
    project_id: str | None
    limit: int


@dataclass(slots=True)
class ItemInspectCommand:
    db_path: Path | None
    item_id: str


@dataclass(slots=True)
class ItemReleaseCommand:
    """CLI input for operator release of a stuck or escalated item."""

    db_path: Path | None
    item_id: str
    reason: str | None


@dataclass(slots=True)
class ReleaseStaleCommand:
    db_path: Path | None
    minutes: int | None


class KanbanCliController:
    """Coordinates agent runtime, item management, and inspection CLI operations."""

    def run_agent(self, command: AgentRunCommand) -> list[str]:
        settings = _agent_settings(command)
        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
        agent = settings.agent
        agent_type = validate_agent_type(agent.agent_type)
        instance_id = agent.instance_id or f"{agent_type}-{uuid4().hex[:8]}"

        with _repository(settings) as repository, _generator(settings) as generator:
            runtime = AgentRuntime(
                repository=repository,
                agent_type=agent_type,
                instance_id=instance_id,
                generator=generator,
                display_name=agent.display_name,
                heartbeat_interval_seconds=agent.heartbeat_interval_seconds,
                claim_rate_limit=agent.claim_rate_limit,
                claim_rate_window_minutes=agent.claim_rate_window_minutes,
                claim_max_attempts=agent.claim_max_attempts,
                candidate_batch_size=agent.candidate_batch_size,
            )
            summary = runtime.start_polling(
                PollingConfig(
                    interval_seconds=agent.poll_interval_seconds,
                    max_concurrent=agent.max_concurrent,
                ),
                max_polls=1 if command.once else command.max_polls,
            )

        return [
            f"Agent {agent_type} ({instance_id}) stopped: "
            f"polls={summary.polls} processed={summary.processed} "
            f"succeeded={summary.succeeded} failed={summary.failed} "
            f"idle_polls={summary.idle_polls} store_errors={summary.store_errors}",
        ]

    def list_agents(self, command: AgentListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        agent_type = validate_agent_type(command.agent_type) if command.agent_type else None
        with _repository(settings) as repository:
            instances = repository.list_instances(
                agent_type=agent_type,
                status=AgentInstanceStatus.ACTIVE if command.active_only else None,
            )
        lines = [f"Agents: {len(instances)}"]
        for instance in instances:
            lines.append(
                f"  {instance.instance_id} type={instance.agent_type} "
                f"status={instance.status.value} name={instance.display_name} "
                f"last_seen={instance.last_seen_at.isoformat()}",
            )
        return lines

    def create_project(self, command: ProjectCreateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            project = repository.create_project(
                ProjectCreate(
                    name=command.name,
                    description=command.description,
                    created_by=command.created_by,
                    tech_stack=command.tech_stack,
                ),
            )
        return [f"Project created: project_id={project.project_id} name={project.name}"]

    def list_projects(self, command: ProjectListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            projects = repository.list_projects()
        lines = [f"Projects: {len(projects)}"]
        for project in projects:
            tech_stack = ", ".join(project.metadata.get("tech_stack") or []) or "-"
            lines.append(f"  {project.project_id} name={project.name} tech_stack={tech_stack}")
        return lines

    def create_item(self, command: ItemCreateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            if repository.get_project(command.project_id) is None:
                raise ValueError(f"Project not found: {command.project_id}")
            item = repository.create_item(
                WorkItemCreate(
                    project_id=command.project_id,
                    title=command.title,
                    item_type=command.item_type,
                    description=command.description,
                    priority=WorkItemPriority(command.priority),
                    status=WorkItemStatus(command.status),
                    created_by=command.created_by,
                ),
            )
        return [
            "Work item created: "
            f"item_id={item.item_id} type={item.item_type} "
            f"status={item.status.value} priority={item.priority.value}",
        ]

    def list_items(self, command: ItemListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status_filter = WorkItemStatus(command.status) if command.status else None
        with _repository(settings) as repository:
            items = repository.list_items(
                status=status_filter,
                item_type=command.item_type,
                project_id=command.project_id,
                limit=command.limit,
            )

        lines = [f"Work items: {len(items)}"]
        for item in items:
            flags = " escalated" if item.is_escalated else ""
            lines.append(
                f"  {item.item_id} type={item.item_type} status={item.status.value} "
                f"priority={item.priority.value} agent={item.assigned_agent or '-'}"
                f"{flags} title={item.title}",
            )
        return lines

    def inspect_item(self, command: ItemInspectCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            details = repository.get_item_details(command.item_id)
        if details is None:
            return [f"Work item not found: {command.item_id}"]

        item = details.item
        lines = [
            f"Work item: {item.item_id}",
            f"Title: {item.title}",
            f"Type: {item.item_type}",
            f"Status: {item.status.value}",
            f"Priority: {item.priority.value}",
            f"Parent: {item.parent_id or '-'}",
            f"Claimed by: {item.claimed_by_instance or '-'} ({item.assigned_agent or '-'})",
            f"Escalated: {item.escalation_reason or '-'}",
            f"Children: {len(details.children)}",
        ]
        for child in details.children:
            lines.append(
                f"  child {child.item_id} type={child.item_type} "
                f"status={child.status.value} title={child.title}",
            )
        lines.append(f"Handoffs: {len(details.handoffs)}")
        for handoff in details.handoffs:
            lines.append(
                f"  {handoff.created_at.isoformat()} {handoff.from_agent_type} -> "
                f"{handoff.to_agent_type or '-'} targets={len(handoff.target_work_item_ids)}",
            )
        lines.append(f"Comments: {len(details.comments)}")
        for comment in details.comments:
            first_line = comment.content.splitlines()[0] if comment.content else ""
            lines.append(
                f"  {comment.created_at.isoformat()} {comment.author_agent or '-'}: {first_line}",
            )
        lines.append(f"Activity: {len(details.activity)}")
        for entry in details.activity:
            duration = f" {entry.duration_ms}ms" if entry.duration_ms is not None else ""
            lines.append(
                f"  {entry.created_at.isoformat()} {entry.action.value} "
                f"{entry.status.value} {entry.agent_type}{duration}",
            )
        return lines

    def release_item(self, command: ItemReleaseCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            released = repository.force_release(
                item_id=command.item_id,
                reason=command.reason or MANUAL_RELEASE_REASON,
            )
        if not released:
            return [f"Work item not released (not in progress): {command.item_id}"]
        return [f"Work item released: {command.item_id}"]

    def release_stale(self, command: ReleaseStaleCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        minutes = command.minutes or settings.agent.stale_claim_minutes
        with _repository(settings) as repository:
            released = repository.release_stale_claims(older_than=timedelta(minutes=minutes))
        lines = [f"Stale claims released: {len(released)} (older than {minutes} min)"]
        lines += [f"  {item_id}" for item_id in released]
        return lines


def _agent_settings(command: AgentRunCommand) -> Settings:
    settings = Settings.from_env(db_path=command.db_path)
    agent = replace(
        settings.agent,
        agent_type=command.agent_type or settings.agent.agent_type,
        instance_id=command.instance_id or settings.agent.instance_id,
        poll_interval_seconds=(
            command.poll_interval_seconds
            if command.poll_interval_seconds is not None
            else settings.agent.poll_interval_seconds
        ),
    )
    generator = settings.generator
    if command.generator_backend:
        generator = replace(generator, backend=command.generator_backend)
    settings = replace(settings, agent=agent, generator=generator)
    settings.validate_for_agent()
    return settings


@contextmanager
def _generator(settings: Settings) -> Iterator[Generator]:
    config = settings.generator
    if config.backend == "echo":
        yield EchoGenerator()
        return
    with HttpGenerator(
        api_key=config.api_key,
        api_url=config.api_url,
        model=config.model,
        max_tokens=config.max_tokens,
        timeout_seconds=config.timeout_seconds,
        max_retries=config.max_retries,
    ) as generator:
        yield generator


@contextmanager
def _repository(settings: Settings) -> Iterator[WorkItemRepository]:
    repository = WorkItemRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
