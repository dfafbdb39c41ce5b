"""Scrum master stage: PRD in, prioritized user stories out."""

from __future__ import annotations

import json
from typing import Any

from kanban_agents.orchestrator.backend.base import GenerationRequest, Generator
from kanban_agents.orchestrator.errors import OutputValidationError
from kanban_agents.orchestrator.models import ChildItemSpec, WorkItemPriority, WorkItemView
from kanban_agents.orchestrator.processors.base import (
    StageContext,
    StageOutput,
    is_non_empty_str,
    is_optional_list,
    is_optional_str,
    parse_json_reply,
    render_project_context,
)

STORIES_STAGE = "stories"
VALID_STORY_POINTS = (1, 2, 3, 5, 8, 13)
STORY_PRIORITY_ORDER = {"must-have": 0, "should-have": 1, "could-have": 2}
STORY_TO_ITEM_PRIORITY = {
    "must-have": WorkItemPriority.HIGH,
    "should-have": WorkItemPriority.MEDIUM,
    "could-have": WorkItemPriority.LOW,
}

STORIES_SYSTEM_PROMPT = """You are an experienced Scrum Master. Break down PRDs into user stories.

Each story should follow this JSON structure:
{
  "title": "As a [user type], I want [feature] so that [benefit]",
  "description": "Detailed description of what needs to be built",
  "acceptanceCriteria": ["Given [context], when [action], then [outcome]"],
  "storyPoints": 1|2|3|5|8|13,
  "technicalNotes": "Implementation guidance",
  "dependencies": ["story title or description"],
  "priority": "must-have|should-have|could-have"
}

Story points: 1 trivial, 2 simple, 3 half a day, 5 one to two days, 8 three to
five days, 13 very large and worth splitting.

Include 2-5 acceptance criteria per story and note dependencies between stories.

Output a JSON array of stories, ordered by priority (must-have first).
Output ONLY valid JSON, no markdown or explanations."""


class ScrumMasterProcessor:
    """Breaks a PRD item into one story item per generated story."""

    def __init__(self, generator: Generator) -> None:
        self.generator = generator

    def process(self, item: WorkItemView, context: StageContext) -> StageOutput:
        context.report_step(STORIES_STAGE)
        reply = self.generator.generate(
            GenerationRequest(
                stage=STORIES_STAGE,
                system_prompt=STORIES_SYSTEM_PROMPT,
                user_prompt=_build_prompt(item, context),
            ),
        )
        stories = prioritize_stories(validate_stories(parse_json_reply(reply)))
        total_points = sum(story["storyPoints"] for story in stories)

        children = [
            ChildItemSpec(
                title=story["title"],
                item_type="story",
                description=format_story(story),
                priority=STORY_TO_ITEM_PRIORITY[story["priority"]],
                metadata={
                    "story_points": story["storyPoints"],
                    "priority_order": order,
                    "story_priority": story["priority"],
                    "dependencies": story.get("dependencies") or [],
                    "acceptance_criteria": story["acceptanceCriteria"],
                    "technical_notes": story.get("technicalNotes") or "",
                    "source_prd_id": item.item_id,
                },
            )
            for order, story in enumerate(stories, start=1)
        ]
        summary_lines = [
            f"Created {len(stories)} user stories ({total_points} story points total):",
            "",
        ]
        summary_lines += [
            f"{order}. {story['title']} ({story['storyPoints']} pts, {story['priority']})"
            for order, story in enumerate(stories, start=1)
        ]
        return StageOutput(
            output={"stories": stories, "total_points": total_points},
            children=children,
            summary="\n".join(summary_lines),
        )


def validate_stories(parsed: Any) -> list[dict[str, Any]]:
    """Accept a story array, or an object wrapping one under ``stories``."""

    stories = parsed.get("stories") if isinstance(parsed, dict) else parsed
    if not isinstance(stories, list) or not stories:
        raise OutputValidationError("Invalid stories: at least one story is required")

    errors: list[str] = []
    for index, story in enumerate(stories):
        if not isinstance(story, dict):
            errors.append(f"story {index} must be an object")
            continue
        if not is_non_empty_str(story.get("title")):
            errors.append(f"story {index} is missing title")
        criteria = story.get("acceptanceCriteria")
        if not isinstance(criteria, list) or not criteria:
            errors.append(f"story {index} needs at least one acceptance criterion")
        points = story.get("storyPoints")
        if isinstance(points, bool) or points not in VALID_STORY_POINTS:
            errors.append(f"story {index} has invalid story points: {points!r}")
        if story.get("priority") not in STORY_PRIORITY_ORDER:
            errors.append(f"story {index} has invalid priority: {story.get('priority')!r}")
        for key in ("description", "technicalNotes"):
            if not is_optional_str(story.get(key)):
                errors.append(f"story {index} {key} must be a string")
        if not is_optional_list(story.get("dependencies")):
            errors.append(f"story {index} dependencies must be a list")
    if errors:
        raise OutputValidationError(f"Invalid stories: {'; '.join(errors)}")
    return stories


def prioritize_stories(stories: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Must-have first, then smaller stories first within a priority."""

    return sorted(
        stories,
        key=lambda story: (STORY_PRIORITY_ORDER[story["priority"]], story["storyPoints"]),
    )


def format_story(story: dict[str, Any]) -> str:
    sections = [f"## {story['title']}", "", "### Description", ""]
    sections += [story.get("description") or "", ""]
    sections += ["### Acceptance Criteria", ""]
    sections += [
        f"{index}. {criterion}"
        for index, criterion in enumerate(story["acceptanceCriteria"], start=1)
    ]
    sections.append("")
    if story.get("technicalNotes"):
        sections += ["### Technical Notes", "", story["technicalNotes"], ""]
    sections += [
        "### Estimation",
        "",
        f"- **Story Points:** {story['storyPoints']}",
        f"- **Priority:** {story['priority']}",
        "",
    ]
    dependencies = story.get("dependencies") or []
    if dependencies:
        sections += ["### Dependencies", ""]
        sections += [f"- {dependency}" for dependency in dependencies]
    return "\n".join(sections).strip()


def _build_prompt(item: WorkItemView, context: StageContext) -> str:
    prd = item.metadata.get("prd_output")
    prd_text = json.dumps(prd, indent=2) if isinstance(prd, dict) else item.description
    return "\n".join(
        [
            item.title,
            "",
            "Break down this PRD into user stories:",
            "",
            prd_text or "(empty PRD)",
            "",
            "Project Context:",
            render_project_context(context.project),
        ],
    )
