from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import allure
import pytest

from kanban_agents.config import Settings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings"),
]

_ENV_VARS = (
    "KANBAN_AGENTS_DB_PATH",
    "KANBAN_AGENTS_LOG_LEVEL",
    "KANBAN_AGENTS_AGENT_TYPE",
    "KANBAN_AGENTS_INSTANCE_ID",
    "KANBAN_AGENTS_POLL_INTERVAL_SECONDS",
    "KANBAN_AGENTS_CLAIM_RATE_LIMIT",
    "KANBAN_AGENTS_GENERATOR_BACKEND",
    "KANBAN_AGENTS_GENERATOR_API_KEY",
    "ANTHROPIC_API_KEY",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = Settings.from_env()

    assert settings.db_path == Path(".kanban_agents.db")
    assert settings.log_level == "INFO"
    assert settings.agent.agent_type == ""
    assert settings.agent.instance_id is None
    assert settings.agent.poll_interval_seconds == 30.0
    assert settings.agent.claim_rate_limit == 10
    assert settings.agent.claim_max_attempts == 3
    assert settings.agent.stale_claim_minutes == 30
    assert settings.generator.backend == "http"
    assert settings.generator.api_key == ""


def test_env_overrides_and_explicit_db_path(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("KANBAN_AGENTS_DB_PATH", "/ignored.db")
    monkeypatch.setenv("KANBAN_AGENTS_AGENT_TYPE", " developer ")
    monkeypatch.setenv("KANBAN_AGENTS_INSTANCE_ID", "dev-7")
    monkeypatch.setenv("KANBAN_AGENTS_POLL_INTERVAL_SECONDS", "2.5")
    monkeypatch.setenv("KANBAN_AGENTS_CLAIM_RATE_LIMIT", "4")
    monkeypatch.setenv("KANBAN_AGENTS_LOG_LEVEL", "debug")
    monkeypatch.setenv("KANBAN_AGENTS_GENERATOR_BACKEND", "ECHO")

    settings = Settings.from_env(db_path=tmp_path / "explicit.db")

    assert settings.db_path == tmp_path / "explicit.db"
    assert settings.agent.agent_type == "developer"
    assert settings.agent.instance_id == "dev-7"
    assert settings.agent.poll_interval_seconds == 2.5
    assert settings.agent.claim_rate_limit == 4
    assert settings.log_level == "DEBUG"
    assert settings.generator.backend == "echo"
    settings.validate_for_agent()


def test_api_key_falls_back_to_anthropic_env(monkeypatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-fallback")

    assert Settings.from_env().generator.api_key == "sk-fallback"

    monkeypatch.setenv("KANBAN_AGENTS_GENERATOR_API_KEY", "sk-explicit")

    assert Settings.from_env().generator.api_key == "sk-explicit"


def test_validate_requires_agent_type() -> None:
    with pytest.raises(ValueError, match="Agent type is required"):
        Settings.from_env().validate_for_agent()


def test_validate_requires_api_key_for_http_backend() -> None:
    settings = Settings.from_env()
    settings = replace(settings, agent=replace(settings.agent, agent_type="developer"))

    with pytest.raises(ValueError, match="Generator API key is required"):
        settings.validate_for_agent()


@pytest.mark.parametrize(
    ("agent_changes", "generator_changes", "message"),
    [
        ({"poll_interval_seconds": 0}, {}, "POLL_INTERVAL_SECONDS must be > 0"),
        ({"claim_rate_limit": 0}, {}, "CLAIM_RATE_LIMIT must be > 0"),
        ({"claim_max_attempts": 0}, {}, "CLAIM_MAX_ATTEMPTS must be > 0"),
        ({"max_concurrent": 0}, {}, "MAX_CONCURRENT must be >= 1"),
        ({}, {"backend": "grpc"}, "Unsupported generator backend"),
        ({}, {"max_retries": -1}, "MAX_RETRIES must be >= 0"),
    ],
)
def test_validate_rejects_unusable_values(agent_changes, generator_changes, message) -> None:
    settings = Settings.from_env()
    settings = replace(
        settings,
        agent=replace(settings.agent, agent_type="developer", **agent_changes),
        generator=replace(settings.generator, **{"backend": "echo", **generator_changes}),
    )

    with pytest.raises(ValueError, match=message):
        settings.validate_for_agent()


def test_validate_rejects_unknown_log_level() -> None:
    settings = Settings.from_env()
    settings = replace(
        settings,
        log_level="CHATTY",
        agent=replace(settings.agent, agent_type="developer"),
        generator=replace(settings.generator, backend="echo"),
    )

    with pytest.raises(ValueError, match="Invalid KANBAN_AGENTS_LOG_LEVEL"):
        settings.validate_for_agent()
