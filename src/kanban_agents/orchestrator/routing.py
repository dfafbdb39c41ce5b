"""Stage routing: which agent type processes which item types.

The table is the whole directed stage graph. A child item is routed by its
type to whichever agent type lists it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from kanban_agents.orchestrator.models import WorkItemStatus

PROJECT_MANAGER = "project_manager"
SCRUM_MASTER = "scrum_master"
DEVELOPER = "developer"


@dataclass(frozen=True, slots=True)
class StageRoute:
    """Processable item types and completion status for one agent type."""

    agent_type: str
    item_types: tuple[str, ...]
    completion_status: WorkItemStatus


STAGE_ROUTING: Mapping[str, StageRoute] = MappingProxyType(
    {
        PROJECT_MANAGER: StageRoute(
            agent_type=PROJECT_MANAGER,
            item_types=("project_spec", "feature"),
            completion_status=WorkItemStatus.DONE,
        ),
        SCRUM_MASTER: StageRoute(
            agent_type=SCRUM_MASTER,
            item_types=("prd",),
            completion_status=WorkItemStatus.DONE,
        ),
        DEVELOPER: StageRoute(
            agent_type=DEVELOPER,
            item_types=("story", "bug", "task"),
            completion_status=WorkItemStatus.REVIEW,
        ),
    },
)

SUPPORTED_AGENT_TYPES = tuple(STAGE_ROUTING)


def processable_item_types(agent_type: str) -> tuple[str, ...]:
    """Item types ``agent_type`` may claim; empty for unknown agent types."""

    route = STAGE_ROUTING.get(agent_type)
    return route.item_types if route is not None else ()


def agent_type_for_item_type(item_type: str) -> str | None:
    for route in STAGE_ROUTING.values():
        if item_type in route.item_types:
            return route.agent_type
    return None


def completion_status_for(item_type: str) -> WorkItemStatus:
    """Status an item of ``item_type`` moves to when its stage completes."""

    agent_type = agent_type_for_item_type(item_type)
    if agent_type is None:
        return WorkItemStatus.DONE
    return STAGE_ROUTING[agent_type].completion_status


def validate_agent_type(agent_type: str) -> str:
    normalized = agent_type.strip().lower().replace("-", "_")
    if normalized not in STAGE_ROUTING:
        raise ValueError(
            f"Unsupported agent type: {agent_type!r}. "
            f"Expected one of: {', '.join(SUPPORTED_AGENT_TYPES)}",
        )
    return normalized
