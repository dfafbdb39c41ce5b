"""HTTP generator for Anthropic-style messages endpoints."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from kanban_agents.orchestrator.backend.base import GenerationRequest
from kanban_agents.orchestrator.errors import GeneratorError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_MAX_RETRIES = 2
API_VERSION = "2023-06-01"


class HttpGenerator:
    """Messages API client wrapper with retry and timeout configuration."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        api_key: str,
        api_url: str = DEFAULT_API_URL,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_url = api_url
        self.model = model
        self.max_tokens = max_tokens
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={
                "x-api-key": api_key,
                "anthropic-version": API_VERSION,
                "content-type": "application/json",
            },
            transport=transport or httpx.HTTPTransport(retries=max_retries),
        )

    def generate(self, request: GenerationRequest) -> str:
        payload = {
            "model": self.model,
            "max_tokens": request.max_tokens or self.max_tokens,
            "system": request.system_prompt,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }
        try:
            response = self._client.post(self.api_url, json=payload)
        except httpx.TimeoutException as error:
            logger.warning("Generator timeout for stage %s", request.stage)
            raise GeneratorError(f"Generator timed out for stage {request.stage}") from error
        except httpx.HTTPError as error:
            logger.warning("Generator HTTP error for stage %s: %s", request.stage, error)
            raise GeneratorError(f"Generator request failed: {error}") from error

        if not response.is_success:
            raise GeneratorError(
                f"Generator returned HTTP {response.status_code}: {response.text[:500]}",
            )
        try:
            body = response.json()
        except ValueError as error:
            raise GeneratorError("Generator returned a non-JSON body") from error
        return _first_text_block(body)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpGenerator:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _first_text_block(body: Any) -> str:
    content = body.get("content") if isinstance(body, dict) else None
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text")
                if isinstance(text, str):
                    return text
    raise GeneratorError("No text response from generator")
