"""Developer stage: story, bug or task in, implementation plan and code changes out."""

from __future__ import annotations

import json
from typing import Any

from kanban_agents.orchestrator.backend.base import GenerationRequest, Generator
from kanban_agents.orchestrator.errors import OutputValidationError
from kanban_agents.orchestrator.models import WorkItemView
from kanban_agents.orchestrator.processors.base import (
    StageContext,
    StageOutput,
    is_non_empty_str,
    parse_json_object,
    render_project_context,
)

PLAN_STAGE = "plan"
CODE_STAGE = "code"
FILE_ACTIONS = ("create", "modify", "delete")

PLAN_SYSTEM_PROMPT = """You are a senior software engineer. Create detailed implementation plans.

Output JSON with this exact structure:
{
  "summary": "Brief overview of changes",
  "steps": [
    {
      "order": 1,
      "description": "What to do",
      "files": ["path/to/file"],
      "action": "create|modify|delete",
      "details": "Specific implementation details"
    }
  ],
  "tests": [{ "file": "path/to/test", "scenarios": ["test scenario descriptions"] }],
  "risks": ["potential issues to watch for"],
  "dependencies": ["external packages if needed"]
}

Be specific about file paths, order steps so dependencies come first, and name
the exact file action for every step.

Output ONLY valid JSON, no markdown or explanations."""

CODE_SYSTEM_PROMPT = """You are a senior software engineer implementing an approved plan.

Output JSON with this exact structure:
{
  "summary": "What was implemented",
  "files": [
    { "path": "path/to/file", "action": "create|modify|delete", "content": "complete file content" }
  ]
}

Every created or modified file carries its complete new content. Deleted files
carry no content. Include test files.

Output ONLY valid JSON, no markdown or explanations."""


class DeveloperProcessor:
    """Plans and generates code for an item, which then waits for review."""

    def __init__(self, generator: Generator) -> None:
        self.generator = generator

    def process(self, item: WorkItemView, context: StageContext) -> StageOutput:
        context.report_step(PLAN_STAGE)
        plan = parse_json_object(
            self.generator.generate(
                GenerationRequest(
                    stage=PLAN_STAGE,
                    system_prompt=PLAN_SYSTEM_PROMPT,
                    user_prompt=_build_plan_prompt(item, context),
                ),
            ),
        )
        validate_plan(plan)

        context.report_step(CODE_STAGE)
        changes = parse_json_object(
            self.generator.generate(
                GenerationRequest(
                    stage=CODE_STAGE,
                    system_prompt=CODE_SYSTEM_PROMPT,
                    user_prompt=_build_code_prompt(item, plan),
                ),
            ),
        )
        validate_changes(changes)

        files = changes["files"]
        summary = "\n".join(
            [
                f"Implementation ready for review: {plan['summary']}",
                "",
                *(f"- {change['action']} `{change['path']}`" for change in files),
            ],
        )
        return StageOutput(
            output={
                "plan": plan,
                "changes": changes,
                "files_changed": len(files),
            },
            summary=summary,
        )


def validate_plan(plan: dict[str, Any]) -> None:
    errors: list[str] = []
    if not is_non_empty_str(plan.get("summary")):
        errors.append("plan summary is required")
    steps = plan.get("steps")
    if not isinstance(steps, list) or not steps:
        errors.append("plan needs at least one step")
    else:
        for index, step in enumerate(steps):
            if not isinstance(step, dict):
                errors.append(f"step {index} must be an object")
                continue
            if not is_non_empty_str(step.get("description")):
                errors.append(f"step {index} is missing description")
            files = step.get("files")
            if not isinstance(files, list) or not files:
                errors.append(f"step {index} must name at least one file")
            if step.get("action") not in FILE_ACTIONS:
                errors.append(f"step {index} has invalid action: {step.get('action')!r}")
    if errors:
        raise OutputValidationError(f"Plan validation failed: {', '.join(errors)}")


def validate_changes(changes: dict[str, Any]) -> None:
    errors: list[str] = []
    files = changes.get("files")
    if not isinstance(files, list) or not files:
        errors.append("no file changes generated")
    else:
        for index, change in enumerate(files):
            if not isinstance(change, dict):
                errors.append(f"change {index} must be an object")
                continue
            if not is_non_empty_str(change.get("path")):
                errors.append(f"change {index} is missing path")
            action = change.get("action")
            if action not in FILE_ACTIONS:
                errors.append(f"change {index} has invalid action: {action!r}")
            elif action != "delete" and not isinstance(change.get("content"), str):
                errors.append(f"change {index} ({change.get('path')}) has no content")
    if errors:
        raise OutputValidationError(f"Changes validation failed: {', '.join(errors)}")


def _build_plan_prompt(item: WorkItemView, context: StageContext) -> str:
    criteria = item.metadata.get("acceptance_criteria") or []
    lines = [
        f"{item.item_type.upper()}: {item.title}",
        "",
        "Description:",
        item.description or "(none)",
        "",
        "Acceptance Criteria:",
        "\n".join(f"- {criterion}" for criterion in criteria) or "See description",
        "",
        "Codebase Context:",
        render_project_context(context.project),
    ]
    technical_notes = item.metadata.get("technical_notes")
    if technical_notes:
        lines += ["", "Technical Notes:", str(technical_notes)]
    lines += ["", "Create a detailed, step-by-step implementation plan."]
    return "\n".join(lines)


def _build_code_prompt(item: WorkItemView, plan: dict[str, Any]) -> str:
    return "\n".join(
        [
            f"{item.item_type.upper()}: {item.title}",
            "",
            "Implement this plan:",
            json.dumps(plan, indent=2),
        ],
    )
