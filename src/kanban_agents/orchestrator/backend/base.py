"""Generator interface used by stage processors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(slots=True)
class GenerationRequest:
    """One prompt for the content generator."""

    stage: str
    system_prompt: str
    user_prompt: str
    max_tokens: int | None = None


class Generator(Protocol):
    """Protocol implemented by content generators."""

    def generate(self, request: GenerationRequest) -> str:
        """Return the raw text reply for ``request``."""
