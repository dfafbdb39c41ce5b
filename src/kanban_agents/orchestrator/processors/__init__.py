"""Stage processors and the capability table that dispatches to them."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from kanban_agents.orchestrator.backend.base import Generator
from kanban_agents.orchestrator.processors.base import StageContext, StageOutput, StageProcessor
from kanban_agents.orchestrator.processors.developer import DeveloperProcessor
from kanban_agents.orchestrator.processors.project_manager import ProjectManagerProcessor
from kanban_agents.orchestrator.processors.scrum_master import ScrumMasterProcessor
from kanban_agents.orchestrator.routing import (
    DEVELOPER,
    PROJECT_MANAGER,
    SCRUM_MASTER,
    STAGE_ROUTING,
    StageRoute,
)


@dataclass(frozen=True, slots=True)
class Capability:
    """What one agent type can claim and how to build its processor."""

    route: StageRoute
    factory: Callable[[Generator], StageProcessor]


CAPABILITIES: Mapping[str, Capability] = MappingProxyType(
    {
        PROJECT_MANAGER: Capability(STAGE_ROUTING[PROJECT_MANAGER], ProjectManagerProcessor),
        SCRUM_MASTER: Capability(STAGE_ROUTING[SCRUM_MASTER], ScrumMasterProcessor),
        DEVELOPER: Capability(STAGE_ROUTING[DEVELOPER], DeveloperProcessor),
    },
)


def build_processor(agent_type: str, generator: Generator) -> StageProcessor:
    capability = CAPABILITIES.get(agent_type)
    if capability is None:
        raise ValueError(f"No processor registered for agent type {agent_type!r}")
    return capability.factory(generator)


__all__ = [
    "CAPABILITIES",
    "Capability",
    "StageContext",
    "StageOutput",
    "StageProcessor",
    "build_processor",
]
