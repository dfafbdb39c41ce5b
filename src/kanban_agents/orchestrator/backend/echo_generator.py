"""Deterministic offline generator for demos and integration tests."""

from __future__ import annotations

import json
from typing import Any

from kanban_agents.orchestrator.backend.base import GenerationRequest
from kanban_agents.orchestrator.errors import GeneratorError


class EchoGenerator:
    """Returns a minimal valid reply for each processor stage.

    The first line of the user prompt is echoed into the reply so that
    outputs can be traced back to the item that produced them.
    """

    def __init__(self) -> None:
        self.requests: list[GenerationRequest] = []

    def generate(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        headline = _headline(request.user_prompt)
        builder = _STAGE_REPLIES.get(request.stage)
        if builder is None:
            raise GeneratorError(f"Echo generator has no reply for stage {request.stage!r}")
        return json.dumps(builder(headline), ensure_ascii=False)


def _headline(prompt: str) -> str:
    for line in prompt.splitlines():
        stripped = line.strip()
        if stripped:
            return stripped[:200]
    return "work item"


def _prd(headline: str) -> dict[str, Any]:
    return {
        "summary": f"Deliver: {headline}",
        "personas": [{"name": "User", "description": "Primary user", "needs": ["A working feature"]}],
        "requirements": {
            "functional": [
                {"id": "FR-1", "description": f"Implement {headline}", "priority": "must"},
            ],
            "nonFunctional": [],
        },
        "acceptanceCriteria": [
            {
                "id": "AC-1",
                "scenario": "Happy path",
                "given": "the feature is available",
                "when": "a user uses it",
                "then": "it behaves as described",
            },
        ],
        "technicalConsiderations": [],
        "dependencies": [],
        "risks": [],
        "outOfScope": [],
    }


def _stories(headline: str) -> dict[str, Any]:
    return {
        "stories": [
            {
                "title": f"As a user, I want {headline} so that I get value",
                "description": headline,
                "acceptanceCriteria": ["Given the feature, when used, then it works"],
                "storyPoints": 3,
                "technicalNotes": "",
                "dependencies": [],
                "priority": "must-have",
            },
        ],
    }


def _plan(headline: str) -> dict[str, Any]:
    return {
        "summary": f"Implement {headline}",
        "steps": [
            {
                "order": 1,
                "description": "Add implementation module",
                "files": ["src/feature.py"],
                "action": "create",
                "details": headline,
            },
        ],
        "tests": [{"file": "tests/test_feature.py", "scenarios": ["happy path"]}],
        "risks": [],
        "dependencies": [],
    }


def _code(headline: str) -> dict[str, Any]:
    return {
        "summary": f"Implemented {headline}",
        "files": [
            {
                "path": "src/feature.py",
                "action": "create",
                "content": f'"""{headline}."""\n',
            },
        ],
    }


_STAGE_REPLIES = {
    "prd": _prd,
    "stories": _stories,
    "plan": _plan,
    "code": _code,
}
