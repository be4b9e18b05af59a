"""Test suite for the remote completion client."""

import json

import httpx
import pytest

from local_ai_chat.domain.models import ChatSettings, Message
from local_ai_chat.services.completion import (
    NO_RESPONSE,
    CompletionClient,
    CompletionValidationError,
    TransportError,
    UpstreamError,
    build_payload,
    describe_error,
)

URL = "https://completions.test/chat/completions"


def _client(handler) -> CompletionClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CompletionClient(URL, headers={"Authorization": "Bearer t"}, http_client=http_client)


def _reply(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def test_build_payload_prepends_system_prompt():
    settings = ChatSettings(system_prompt="Be terse.", temperature=0.1, max_tokens=64)
    messages = [
        Message(role="user", content="Hi"),
        Message(role="assistant", content="Hello"),
    ]

    payload = build_payload(messages, settings)

    assert payload["model"] == settings.model
    assert payload["messages"] == [
        {"role": "system", "content": "Be terse."},
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello"},
    ]
    assert payload["temperature"] == 0.1
    assert payload["max_tokens"] == 64


@pytest.mark.asyncio
async def test_complete_returns_reply_text():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_reply("Sure thing"))

    client = _client(handler)
    reply = await client.complete([Message(role="user", content="Help")], ChatSettings())

    assert reply == "Sure thing"
    assert seen["url"] == URL
    assert seen["auth"] == "Bearer t"
    assert seen["body"]["messages"][0]["role"] == "system"


@pytest.mark.asyncio
async def test_complete_without_choices_returns_placeholder():
    client = _client(lambda request: httpx.Response(200, json={"choices": []}))

    assert await client.complete([Message(role="user", content="Hi")], ChatSettings()) == NO_RESPONSE


@pytest.mark.asyncio
async def test_http_error_is_upstream_error():
    client = _client(
        lambda request: httpx.Response(429, json={"error": {"message": "Too many requests"}})
    )

    with pytest.raises(UpstreamError) as exc_info:
        await client.complete([Message(role="user", content="Hi")], ChatSettings())

    assert exc_info.value.kind == "upstream"
    assert exc_info.value.status_code == 429
    assert exc_info.value.is_rate_limited
    assert str(exc_info.value) == "Too many requests"


@pytest.mark.asyncio
async def test_http_error_without_body_uses_status_message():
    client = _client(lambda request: httpx.Response(500, text="oops"))

    with pytest.raises(UpstreamError) as exc_info:
        await client.complete([Message(role="user", content="Hi")], ChatSettings())

    assert str(exc_info.value) == "API request failed with status 500"
    assert exc_info.value.is_server_error


@pytest.mark.asyncio
async def test_error_in_successful_body_is_upstream_error():
    client = _client(lambda request: httpx.Response(200, json={"error": {"message": "bad model"}}))

    with pytest.raises(UpstreamError, match="bad model"):
        await client.complete([Message(role="user", content="Hi")], ChatSettings())


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)

    with pytest.raises(TransportError) as exc_info:
        await client.complete([Message(role="user", content="Hi")], ChatSettings())
    assert exc_info.value.kind == "transport"


@pytest.mark.asyncio
async def test_empty_message_list_is_validation_error():
    client = _client(lambda request: httpx.Response(200, json=_reply("unused")))

    with pytest.raises(CompletionValidationError):
        await client.complete([], ChatSettings())


@pytest.mark.asyncio
async def test_connection_round_trip():
    ok = _client(lambda request: httpx.Response(200, json=_reply("OK")))
    down = _client(lambda request: httpx.Response(503, json={}))

    assert await ok.test_connection() is True
    assert await down.test_connection() is False


def test_describe_error():
    assert describe_error(TransportError("x")).startswith("Network error")
    assert describe_error(UpstreamError("x", status_code=401)).startswith("Authentication error")
    assert describe_error(UpstreamError("x", status_code=429)).startswith("Rate limit exceeded")
    assert describe_error(UpstreamError("x", status_code=502)).startswith("AI service is temporarily")
    assert describe_error(UpstreamError("bad request", status_code=400)) == "bad request"
    assert describe_error(RuntimeError()) == "An unexpected error occurred. Please try again."
