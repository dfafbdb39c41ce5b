"""Content generator implementations."""

from kanban_agents.orchestrator.backend.base import GenerationRequest, Generator
from kanban_agents.orchestrator.backend.echo_generator import EchoGenerator
from kanban_agents.orchestrator.backend.http_generator import HttpGenerator

__all__ = [
    "EchoGenerator",
    "GenerationRequest",
    "Generator",
    "HttpGenerator",
]
