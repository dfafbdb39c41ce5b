from __future__ import annotations

import allure
import pytest

from kanban_agents.orchestrator.backend import EchoGenerator
from kanban_agents.orchestrator.models import WorkItemStatus
from kanban_agents.orchestrator.processors import CAPABILITIES, build_processor
from kanban_agents.orchestrator.processors.developer import DeveloperProcessor
from kanban_agents.orchestrator.routing import (
    DEVELOPER,
    PROJECT_MANAGER,
    SCRUM_MASTER,
    STAGE_ROUTING,
    SUPPORTED_AGENT_TYPES,
    agent_type_for_item_type,
    completion_status_for,
    processable_item_types,
    validate_agent_type,
)

pytestmark = [
    allure.epic("Work Items"),
    allure.feature("Stage Routing"),
]


def test_routing_table_covers_the_three_stages() -> None:
    assert SUPPORTED_AGENT_TYPES == (PROJECT_MANAGER, SCRUM_MASTER, DEVELOPER)
    assert processable_item_types(PROJECT_MANAGER) == ("project_spec", "feature")
    assert processable_item_types(SCRUM_MASTER) == ("prd",)
    assert processable_item_types(DEVELOPER) == ("story", "bug", "task")


def test_each_item_type_routes_to_exactly_one_agent_type() -> None:
    seen: dict[str, str] = {}
    for route in STAGE_ROUTING.values():
        for item_type in route.item_types:
            assert item_type not in seen
            seen[item_type] = route.agent_type
    for item_type, agent_type in seen.items():
        assert agent_type_for_item_type(item_type) == agent_type


def test_unknown_types_route_nowhere() -> None:
    assert processable_item_types("tester") == ()
    assert agent_type_for_item_type("epic") is None


@pytest.mark.parametrize(
    ("item_type", "expected"),
    [
        ("feature", WorkItemStatus.DONE),
        ("prd", WorkItemStatus.DONE),
        ("story", WorkItemStatus.REVIEW),
        ("bug", WorkItemStatus.REVIEW),
        ("epic", WorkItemStatus.DONE),
    ],
)
def test_completion_status_depends_on_stage(item_type, expected) -> None:
    assert completion_status_for(item_type) == expected


def test_routing_table_is_read_only() -> None:
    with pytest.raises(TypeError):
        STAGE_ROUTING["tester"] = STAGE_ROUTING[DEVELOPER]  # type: ignore[index]


def test_validate_agent_type_normalizes_and_rejects() -> None:
    assert validate_agent_type(" Scrum-Master ") == SCRUM_MASTER
    with pytest.raises(ValueError, match="Unsupported agent type"):
        validate_agent_type("tester")


def test_every_routed_agent_type_has_a_processor() -> None:
    assert set(CAPABILITIES) == set(STAGE_ROUTING)
    assert isinstance(build_processor(DEVELOPER, EchoGenerator()), DeveloperProcessor)
    with pytest.raises(ValueError, match="No processor registered"):
        build_processor("tester", EchoGenerator())
