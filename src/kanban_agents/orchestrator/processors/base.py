"""Stage processor contract and shared reply parsing."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from kanban_agents.orchestrator.errors import OutputValidationError
from kanban_agents.orchestrator.models import ChildItemSpec, ProjectContext, WorkItemView


@dataclass(slots=True)
class StageContext:
    """Project facts and a step hook a processor may use besides the item itself."""

    agent_type: str
    instance_id: str | None
    project: ProjectContext
    on_step: Callable[[str], None] | None = None

    def report_step(self, step: str) -> None:
        """Announce that a generation step is about to run."""

        if self.on_step is not None:
            self.on_step(step)


@dataclass(slots=True)
class StageOutput:
    """Validated result of one stage: payload, follow-up items, optional comment."""

    output: dict[str, Any]
    children: list[ChildItemSpec] = field(default_factory=list)
    summary: str | None = None


class StageProcessor(Protocol):
    """Turns one claimed item into a validated stage output, or raises."""

    def process(self, item: WorkItemView, context: StageContext) -> StageOutput:
        """Process ``item``; raise OutputValidationError on malformed generator output."""


def parse_json_reply(text: str) -> Any:
    """Parse a generator reply that should be JSON.

    Markdown code fences are stripped. When the reply carries prose around the
    payload, the outermost object or array is parsed instead.
    """

    candidate = _strip_code_fence(text.strip())
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("{", "}"), ("[", "]")):
        start = candidate.find(opener)
        end = candidate.rfind(closer)
        if start == -1 or end <= start:
            continue
        try:
            return json.loads(candidate[start : end + 1])
        except json.JSONDecodeError:
            continue
    raise OutputValidationError("Generator reply is not valid JSON.")


def parse_json_object(text: str) -> dict[str, Any]:
    parsed = parse_json_reply(text)
    if not isinstance(parsed, dict):
        raise OutputValidationError("Generator reply must be a JSON object.")
    return parsed


def render_project_context(project: ProjectContext) -> str:
    lines = [f"- Project Name: {project.name}"]
    if project.description:
        lines.append(f"- Description: {project.description}")
    if project.tech_stack:
        lines.append(f"- Tech Stack: {', '.join(project.tech_stack)}")
    if project.conventions:
        lines.append(f"- Conventions: {json.dumps(project.conventions, sort_keys=True)}")
    return "\n".join(lines)


def is_non_empty_str(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def is_optional_str(value: object) -> bool:
    return value is None or isinstance(value, str)


def is_optional_list(value: object) -> bool:
    return value is None or isinstance(value, list)


def _strip_code_fence(text: str) -> str:
    if not text.startswith("```"):
        return text
    lines = text.splitlines()[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()
