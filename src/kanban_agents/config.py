"""Runtime configuration for agents, the store, and the content generator."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

GENERATOR_BACKENDS = ("http", "echo")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(slots=True)
class AgentSettings:
    """Settings of one agent runtime process."""

    agent_type: str = ""
    instance_id: str | None = None
    display_name: str | None = None
    poll_interval_seconds: float = 30.0
    max_concurrent: int = 1
    heartbeat_interval_seconds: float = 30.0
    claim_rate_limit: int = 10
    claim_rate_window_minutes: int = 1
    claim_max_attempts: int = 3
    candidate_batch_size: int = 5
    stale_claim_minutes: int = 30


@dataclass(slots=True)
class GeneratorSettings:
    """Content generator settings."""

    backend: str = "http"
    api_url: str = "https://api.anthropic.com/v1/messages"
    api_key: str = ""
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    timeout_seconds: float = 120.0
    max_retries: int = 2


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".kanban_agents.db")
    sqlite_busy_timeout_ms: int = 5_000
    log_level: str = "INFO"
    agent: AgentSettings = field(default_factory=AgentSettings)
    generator: GeneratorSettings = field(default_factory=GeneratorSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("KANBAN_AGENTS_DB_PATH", ".kanban_agents.db")),
            sqlite_busy_timeout_ms=int(os.getenv("KANBAN_AGENTS_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            log_level=os.getenv("KANBAN_AGENTS_LOG_LEVEL", "INFO").strip().upper(),
            agent=AgentSettings(
                agent_type=os.getenv("KANBAN_AGENTS_AGENT_TYPE", "").strip(),
                instance_id=_env_optional("KANBAN_AGENTS_INSTANCE_ID"),
                display_name=_env_optional("KANBAN_AGENTS_DISPLAY_NAME"),
                poll_interval_seconds=float(
                    os.getenv("KANBAN_AGENTS_POLL_INTERVAL_SECONDS", "30"),
                ),
                max_concurrent=int(os.getenv("KANBAN_AGENTS_MAX_CONCURRENT", "1")),
                heartbeat_interval_seconds=float(
                    os.getenv("KANBAN_AGENTS_HEARTBEAT_INTERVAL_SECONDS", "30"),
                ),
                claim_rate_limit=int(os.getenv("KANBAN_AGENTS_CLAIM_RATE_LIMIT", "10")),
                claim_rate_window_minutes=int(
                    os.getenv("KANBAN_AGENTS_CLAIM_RATE_WINDOW_MINUTES", "1"),
                ),
                claim_max_attempts=int(os.getenv("KANBAN_AGENTS_CLAIM_MAX_ATTEMPTS", "3")),
                candidate_batch_size=int(os.getenv("KANBAN_AGENTS_CANDIDATE_BATCH_SIZE", "5")),
                stale_claim_minutes=int(os.getenv("KANBAN_AGENTS_STALE_CLAIM_MINUTES", "30")),
            ),
            generator=GeneratorSettings(
                backend=os.getenv("KANBAN_AGENTS_GENERATOR_BACKEND", "http").strip().lower(),
                api_url=os.getenv(
                    "KANBAN_AGENTS_GENERATOR_API_URL",
                    "https://api.anthropic.com/v1/messages",
                ),
                api_key=os.getenv(
                    "KANBAN_AGENTS_GENERATOR_API_KEY",
                    os.getenv("ANTHROPIC_API_KEY", ""),
                ),
                model=os.getenv("KANBAN_AGENTS_GENERATOR_MODEL", "claude-sonnet-4-20250514"),
                max_tokens=int(os.getenv("KANBAN_AGENTS_GENERATOR_MAX_TOKENS", "4096")),
                timeout_seconds=float(
                    os.getenv("KANBAN_AGENTS_GENERATOR_TIMEOUT_SECONDS", "120"),
                ),
                max_retries=int(os.getenv("KANBAN_AGENTS_GENERATOR_MAX_RETRIES", "2")),
            ),
        )

    def validate_for_agent(self) -> None:  # noqa: C901
        """Raise configuration error if agent runtime settings are unusable."""

        agent = self.agent
        if not agent.agent_type:
            raise ValueError(
                "Agent type is required. Set KANBAN_AGENTS_AGENT_TYPE or pass --agent-type.",
            )
        if agent.poll_interval_seconds <= 0:
            raise ValueError("KANBAN_AGENTS_POLL_INTERVAL_SECONDS must be > 0.")
        if agent.max_concurrent < 1:
            raise ValueError("KANBAN_AGENTS_MAX_CONCURRENT must be >= 1.")
        if agent.heartbeat_interval_seconds <= 0:
            raise ValueError("KANBAN_AGENTS_HEARTBEAT_INTERVAL_SECONDS must be > 0.")
        if agent.claim_rate_limit <= 0:
            raise ValueError("KANBAN_AGENTS_CLAIM_RATE_LIMIT must be > 0.")
        if agent.claim_rate_window_minutes <= 0:
            raise ValueError("KANBAN_AGENTS_CLAIM_RATE_WINDOW_MINUTES must be > 0.")
        if agent.claim_max_attempts <= 0:
            raise ValueError("KANBAN_AGENTS_CLAIM_MAX_ATTEMPTS must be > 0.")
        if agent.candidate_batch_size <= 0:
            raise ValueError("KANBAN_AGENTS_CANDIDATE_BATCH_SIZE must be > 0.")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(
                f"Invalid KANBAN_AGENTS_LOG_LEVEL: {self.log_level!r}. "
                f"Expected one of: {', '.join(LOG_LEVELS)}",
            )
        self.validate_generator()

    def validate_generator(self) -> None:
        generator = self.generator
        if generator.backend not in GENERATOR_BACKENDS:
            raise ValueError(
                f"Unsupported generator backend: {generator.backend!r}. "
                f"Expected one of: {', '.join(GENERATOR_BACKENDS)}",
            )
        if generator.backend == "http" and not generator.api_key.strip():
            raise ValueError(
                "Generator API key is required for the http backend. "
                "Set KANBAN_AGENTS_GENERATOR_API_KEY or ANTHROPIC_API_KEY.",
            )
        if generator.max_tokens <= 0:
            raise ValueError("KANBAN_AGENTS_GENERATOR_MAX_TOKENS must be > 0.")
        if generator.timeout_seconds <= 0:
            raise ValueError("KANBAN_AGENTS_GENERATOR_TIMEOUT_SECONDS must be > 0.")
        if generator.max_retries < 0:
            raise ValueError("KANBAN_AGENTS_GENERATOR_MAX_RETRIES must be >= 0.")


def _env_optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None
