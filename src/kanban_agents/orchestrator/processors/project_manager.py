"""Project manager stage: feature or project spec in, PRD out."""

from __future__ import annotations

import json
from typing import Any

from kanban_agents.orchestrator.backend.base import GenerationRequest, Generator
from kanban_agents.orchestrator.errors import OutputValidationError
from kanban_agents.orchestrator.models import ChildItemSpec, WorkItemView
from kanban_agents.orchestrator.processors.base import (
    StageContext,
    StageOutput,
    is_non_empty_str,
    is_optional_list,
    is_optional_str,
    parse_json_object,
    render_project_context,
)

PRD_STAGE = "prd"
REQUIREMENT_PRIORITIES = ("must", "should", "could")

PRD_SYSTEM_PROMPT = """You are a senior product manager. Generate comprehensive PRDs from feature specifications.

Output JSON with this exact structure:
{
  "summary": "Executive summary of the feature",
  "personas": [{ "name": "...", "description": "...", "needs": ["..."] }],
  "requirements": {
    "functional": [{ "id": "FR-1", "description": "...", "priority": "must|should|could" }],
    "nonFunctional": [{ "id": "NFR-1", "category": "...", "description": "..." }]
  },
  "acceptanceCriteria": [{ "id": "AC-1", "scenario": "...", "given": "...", "when": "...", "then": "..." }],
  "technicalConsiderations": ["..."],
  "dependencies": ["..."],
  "risks": [{ "description": "...", "likelihood": "low|medium|high", "impact": "low|medium|high", "mitigation": "..." }],
  "outOfScope": ["..."]
}

Prioritize requirements clearly (must > should > could), include 3-5 acceptance
criteria, and state what is out of scope.

Output ONLY valid JSON, no markdown or explanations."""  # noqa: E501


class ProjectManagerProcessor:
    """Turns a feature or project spec into a PRD child item."""

    def __init__(self, generator: Generator) -> None:
        self.generator = generator

    def process(self, item: WorkItemView, context: StageContext) -> StageOutput:
        context.report_step(PRD_STAGE)
        reply = self.generator.generate(
            GenerationRequest(
                stage=PRD_STAGE,
                system_prompt=PRD_SYSTEM_PROMPT,
                user_prompt=_build_prompt(item, context),
            ),
        )
        prd = parse_json_object(reply)
        validate_prd(prd)
        formatted = format_prd(prd)
        child = ChildItemSpec(
            title=f"PRD: {item.title}",
            item_type="prd",
            description=formatted,
            metadata={
                "prd_output": prd,
                "source_item_id": item.item_id,
                "source_item_type": item.item_type,
            },
        )
        return StageOutput(output={"prd": prd}, children=[child])


def validate_prd(prd: dict[str, Any]) -> None:  # noqa: C901
    """Raise OutputValidationError unless ``prd`` has the fields later stages need."""

    errors: list[str] = []
    if not is_non_empty_str(prd.get("summary")):
        errors.append("summary is required")

    requirements = prd.get("requirements")
    functional = requirements.get("functional") if isinstance(requirements, dict) else None
    if not isinstance(functional, list) or not functional:
        errors.append("at least one functional requirement is required")
    else:
        for index, requirement in enumerate(functional):
            if not isinstance(requirement, dict):
                errors.append(f"functional requirement {index} must be an object")
                continue
            if not is_non_empty_str(requirement.get("id")):
                errors.append(f"functional requirement {index} is missing id")
            if not is_non_empty_str(requirement.get("description")):
                errors.append(f"functional requirement {index} is missing description")
            if requirement.get("priority") not in REQUIREMENT_PRIORITIES:
                errors.append(f"functional requirement {index} has invalid priority")

    criteria = prd.get("acceptanceCriteria")
    if not isinstance(criteria, list) or not criteria:
        errors.append("at least one acceptance criterion is required")
    else:
        for index, criterion in enumerate(criteria):
            if not isinstance(criterion, dict):
                errors.append(f"acceptance criterion {index} must be an object")
                continue
            missing = [
                key
                for key in ("id", "scenario", "given", "when", "then")
                if not is_non_empty_str(criterion.get(key))
            ]
            if missing:
                errors.append(f"acceptance criterion {index} is missing {', '.join(missing)}")

    errors += _optional_section_errors(prd, requirements)
    if errors:
        raise OutputValidationError(f"Invalid PRD: {'; '.join(errors)}")


def _optional_section_errors(prd: dict[str, Any], requirements: object) -> list[str]:
    """Shape errors in the sections format_prd renders but later stages do not need."""

    errors: list[str] = []
    personas = prd.get("personas")
    if not is_optional_list(personas):
        errors.append("personas must be a list")
    else:
        for index, persona in enumerate(personas or []):
            if not isinstance(persona, dict):
                errors.append(f"persona {index} must be an object")
                continue
            if not is_optional_str(persona.get("name")) or not is_optional_str(
                persona.get("description"),
            ):
                errors.append(f"persona {index} name and description must be strings")
            if not is_optional_list(persona.get("needs")):
                errors.append(f"persona {index} needs must be a list")

    non_functional = requirements.get("nonFunctional") if isinstance(requirements, dict) else None
    if not is_optional_list(non_functional):
        errors.append("non-functional requirements must be a list")
    else:
        for index, requirement in enumerate(non_functional or []):
            if not isinstance(requirement, dict):
                errors.append(f"non-functional requirement {index} must be an object")

    for key in ("technicalConsiderations", "dependencies", "outOfScope", "risks"):
        if not is_optional_list(prd.get(key)):
            errors.append(f"{key} must be a list")
    return errors


def format_prd(prd: dict[str, Any]) -> str:  # noqa: C901
    """Render a PRD as markdown for the child item description."""

    sections = ["# Product Requirements Document", "", "## Executive Summary", "", prd["summary"], ""]

    personas = prd.get("personas") or []
    if personas:
        sections += ["## User Personas", ""]
        for persona in personas:
            sections += [f"### {persona.get('name') or ''}", ""]
            sections += [persona.get("description") or "", ""]
            needs = persona.get("needs") or []
            if needs:
                sections.append("**Needs:**")
                sections += [f"- {need}" for need in needs]
                sections.append("")

    requirements = prd.get("requirements") or {}
    sections += [
        "## Functional Requirements",
        "",
        "| ID | Requirement | Priority |",
        "|----|-------------|----------|",
    ]
    sections += [
        f"| {req['id']} | {req['description']} | {req['priority']} |"
        for req in requirements.get("functional", [])
    ]
    sections.append("")

    non_functional = requirements.get("nonFunctional") or []
    if non_functional:
        sections += [
            "## Non-Functional Requirements",
            "",
            "| ID | Category | Requirement |",
            "|----|----------|-------------|",
        ]
        sections += [
            f"| {req.get('id', '')} | {req.get('category', '')} | {req.get('description', '')} |"
            for req in non_functional
        ]
        sections.append("")

    sections += ["## Acceptance Criteria", ""]
    for criterion in prd.get("acceptanceCriteria", []):
        sections += [
            f"### {criterion['id']}: {criterion['scenario']}",
            "",
            f"- **Given** {criterion['given']}",
            f"- **When** {criterion['when']}",
            f"- **Then** {criterion['then']}",
            "",
        ]

    for title, key in (
        ("Technical Considerations", "technicalConsiderations"),
        ("Dependencies", "dependencies"),
        ("Out of Scope", "outOfScope"),
    ):
        entries = prd.get(key) or []
        if entries:
            sections += [f"## {title}", ""]
            sections += [f"- {entry}" for entry in entries]
            sections.append("")

    risks = prd.get("risks") or []
    if risks:
        sections += ["## Risks", ""]
        for risk in risks:
            if isinstance(risk, dict):
                sections.append(
                    f"- {risk.get('description', '')} "
                    f"(likelihood: {risk.get('likelihood', '?')}, "
                    f"impact: {risk.get('impact', '?')}) "
                    f"Mitigation: {risk.get('mitigation', '-')}",
                )
            else:
                sections.append(f"- {risk}")
        sections.append("")

    return "\n".join(sections).rstrip() + "\n"


def _build_prompt(item: WorkItemView, context: StageContext) -> str:
    lines = [
        f"Feature: {item.title}",
        "",
        "Description:",
        item.description or "(none)",
        "",
        "Project Context:",
        render_project_context(context.project),
    ]
    if item.metadata:
        lines += ["", "Additional metadata:", json.dumps(item.metadata, indent=2, sort_keys=True)]
    lines += ["", "Generate a comprehensive PRD that covers all aspects of this feature."]
    return "\n".join(lines)
