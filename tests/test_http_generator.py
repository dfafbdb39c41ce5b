from __future__ import annotations

import json

import allure
import httpx
import pytest

from kanban_agents.orchestrator.backend import EchoGenerator, GenerationRequest, HttpGenerator
from kanban_agents.orchestrator.errors import GeneratorError

pytestmark = [
    allure.epic("Agents"),
    allure.feature("Content Generator"),
]

REQUEST = GenerationRequest(
    stage="prd",
    system_prompt="You are a product manager.",
    user_prompt="Feature: Search",
)


def _generator(handler) -> HttpGenerator:
    return HttpGenerator(
        api_key="test-key",
        api_url="https://llm.example.com/v1/messages",
        model="test-model",
        max_tokens=512,
        transport=httpx.MockTransport(handler),
    )


def test_generate_posts_messages_payload_and_returns_first_text_block() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "content": [
                    {"type": "tool_use", "id": "x"},
                    {"type": "text", "text": '{"summary": "ok"}'},
                ],
            },
        )

    with _generator(_handler) as generator:
        reply = generator.generate(REQUEST)

    assert reply == '{"summary": "ok"}'
    request = seen[0]
    assert request.headers["x-api-key"] == "test-key"
    assert request.headers["anthropic-version"] == "2023-06-01"
    payload = json.loads(request.content)
    assert payload == {
        "model": "test-model",
        "max_tokens": 512,
        "system": "You are a product manager.",
        "messages": [{"role": "user", "content": "Feature: Search"}],
    }


def test_request_max_tokens_overrides_default() -> None:
    seen: list[dict] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"content": [{"type": "text", "text": "{}"}]})

    with _generator(_handler) as generator:
        generator.generate(
            GenerationRequest(stage="code", system_prompt="", user_prompt="x", max_tokens=64),
        )

    assert seen[0]["max_tokens"] == 64


@pytest.mark.parametrize(
    ("response", "fragment"),
    [
        (httpx.Response(529, text="overloaded"), "HTTP 529"),
        (httpx.Response(200, text="<html>"), "non-JSON"),
        (httpx.Response(200, json={"content": []}), "No text response"),
        (httpx.Response(200, json=["unexpected"]), "No text response"),
    ],
)
def test_bad_responses_raise_generator_error(response, fragment) -> None:
    with _generator(lambda _: response) as generator, pytest.raises(GeneratorError) as error:
        generator.generate(REQUEST)

    assert fragment in str(error.value)


def test_transport_failures_raise_generator_error() -> None:
    def _timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    def _refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _generator(_timeout) as generator, pytest.raises(GeneratorError, match="timed out"):
        generator.generate(REQUEST)
    with _generator(_refused) as generator, pytest.raises(GeneratorError, match="request failed"):
        generator.generate(REQUEST)


def test_echo_generator_rejects_unknown_stage() -> None:
    generator = EchoGenerator()

    with pytest.raises(GeneratorError, match="no reply for stage"):
        generator.generate(GenerationRequest(stage="review", system_prompt="", user_prompt=""))
    assert len(generator.requests) == 1
