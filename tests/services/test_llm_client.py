"""
Tests for OpenRouterClient
==========================

Uses httpx.MockTransport; no network access.
"""

import json

import httpx
import pytest

from datacleaner.services.llm.client import LLMConfig, OpenRouterClient
from datacleaner.utils.errors import ConfigurationError, ParseError, RemoteError

MESSAGES = [{"role": "user", "content": "hi"}]


def completion(content, usage=None) -> dict:
    return {
        "model": "google/gemini-2.0-flash-001",
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": usage or {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


def make_client(handler, api_key: str | None = "sk-test") -> OpenRouterClient:
    config = LLMConfig(api_key=api_key, base_url="https://llm.test/api/v1", max_tokens=1234)
    return OpenRouterClient(config, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_success_returns_content_and_sends_contract() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=completion('{"profiles": []}'))

    client = make_client(handler)
    response = await client.chat(MESSAGES, response_format={"type": "json_object"}, operation="extract")
    await client.close()

    assert response.content == '{"profiles": []}'
    assert response.tokens_used == 15
    request = captured[0]
    assert request.url == "https://llm.test/api/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert request.headers["X-Title"] == "Data Cleaner Tool"
    assert request.headers["HTTP-Referer"] == "http://localhost"
    body = json.loads(request.content)
    assert body["messages"] == MESSAGES
    assert body["max_tokens"] == 1234
    assert body["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_non_2xx_uses_provider_message_and_keeps_body() -> None:
    error_body = {"error": {"message": "Insufficient credits", "code": 402}}

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(402, json=error_body)

    client = make_client(handler)
    with pytest.raises(RemoteError) as exc_info:
        await client.chat(MESSAGES)

    assert exc_info.value.message == "Insufficient credits"
    assert exc_info.value.status_code == 402
    assert json.loads(exc_info.value.raw_payload) == error_body


@pytest.mark.asyncio
async def test_non_json_error_body_falls_back_to_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="<html>Service Unavailable</html>")

    client = make_client(handler)
    with pytest.raises(RemoteError) as exc_info:
        await client.chat(MESSAGES)

    assert exc_info.value.message == "API Error: 503"
    assert exc_info.value.raw_payload == "<html>Service Unavailable</html>"


@pytest.mark.asyncio
async def test_network_error_has_no_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(RemoteError) as exc_info:
        await client.chat(MESSAGES)

    assert exc_info.value.status_code is None
    assert "Network error" in exc_info.value.message


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [completion(""), completion(None), {"choices": []}, {"unexpected": True}],
)
async def test_empty_content_is_parse_error(payload: dict) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    client = make_client(handler)
    with pytest.raises(ParseError, match="Empty Content"):
        await client.chat(MESSAGES)


@pytest.mark.asyncio
async def test_missing_key_fails_without_request() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=completion("x"))

    client = make_client(handler, api_key=None)
    with pytest.raises(ConfigurationError):
        await client.chat(MESSAGES)

    assert calls == []


def test_config_from_settings_prefers_explicit_key(settings) -> None:
    settings.openrouter_api_key = "env-key"

    assert LLMConfig.from_settings(settings, api_key="stored-key").api_key == "stored-key"
    assert LLMConfig.from_settings(settings).api_key == "env-key"
