"""Tests for the LiteLLM client, using httpx.MockTransport."""

import asyncio
import json

import httpx
import pytest

from aimate.config import LiteLLMSettings
from aimate.errors import CompletionError
from aimate.llm.client import DEFAULT_MODELS, LiteLLMClient

MESSAGES = [{"role": "user", "content": "hi"}]


def _client(handler, **settings):
    settings.setdefault("base_url", "http://litellm.test")
    return LiteLLMClient(LiteLLMSettings(**settings), transport=httpx.MockTransport(handler))


def _completion(content="Hello!", model="gpt-4"):
    return {
        "model": model,
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
    }


def test_send_chat_posts_openai_payload():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion())

    client = _client(handler, api_key="sk-test")
    result = asyncio.run(client.send_chat(MESSAGES, temperature=0.2))

    assert result.content == "Hello!"
    assert result.total_tokens == 5
    assert result.finish_reason == "stop"
    assert seen["path"] == "/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"] == {
        "model": "gpt-4",
        "messages": MESSAGES,
        "temperature": 0.2,
        "max_tokens": 2000,
        "stream": False,
    }


def test_no_auth_header_without_api_key():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json=_completion())

    asyncio.run(_client(handler).send_chat(MESSAGES, model="claude-3-5-sonnet"))
    assert seen["auth"] is None


def test_http_error_raises_completion_error():
    client = _client(lambda request: httpx.Response(500, text="upstream down"))
    with pytest.raises(CompletionError, match="HTTP 500"):
        asyncio.run(client.send_chat(MESSAGES))


def test_connection_error_raises_completion_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(CompletionError):
        asyncio.run(_client(handler).send_chat(MESSAGES))


def test_unreadable_body_raises_completion_error():
    with pytest.raises(CompletionError):
        asyncio.run(_client(lambda r: httpx.Response(200, text="<html>")).send_chat(MESSAGES))
    with pytest.raises(CompletionError):
        asyncio.run(_client(lambda r: httpx.Response(200, json={"choices": []})).send_chat(MESSAGES))


def test_stream_chat_parses_sse_until_done():
    body = "\n".join(
        [
            'data: {"choices": [{"delta": {"role": "assistant"}}]}',
            "",
            'data: {"choices": [{"delta": {"content": "Hel"}}]}',
            ": keep-alive",
            "data: {not json",
            'data: {"choices": [{"delta": {"content": "lo"}}]}',
            "data: [DONE]",
            'data: {"choices": [{"delta": {"content": "ignored"}}]}',
        ]
    )
    seen = {}

    def handler(request):
        seen["stream"] = json.loads(request.content)["stream"]
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    async def collect():
        return [chunk async for chunk in _client(handler).stream_chat(MESSAGES)]

    assert asyncio.run(collect()) == ["Hel", "lo"]
    assert seen["stream"] is True


def test_stream_error_status_raises():
    async def collect():
        client = _client(lambda r: httpx.Response(401, text="bad key"))
        return [chunk async for chunk in client.stream_chat(MESSAGES)]

    with pytest.raises(CompletionError, match="HTTP 401"):
        asyncio.run(collect())


def test_list_models_and_fallback():
    ok = _client(lambda r: httpx.Response(200, json={"data": [{"id": "gpt-4o"}, {"id": "llama3"}]}))
    assert asyncio.run(ok.list_models()) == ["gpt-4o", "llama3"]

    down = _client(lambda r: httpx.Response(503))
    assert asyncio.run(down.list_models()) == DEFAULT_MODELS
