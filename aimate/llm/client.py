"""Completion backend for aiMate.

Talks to a LiteLLM proxy through its OpenAI-compatible HTTP API, with
non-streaming and server-sent-event streaming completions.  The chat
service depends only on the :class:`CompletionBackend` protocol, so tests
and other deployments can substitute their own backend.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Protocol

import httpx

from aimate.config import LiteLLMSettings
from aimate.errors import BackendNotConfiguredError, CompletionError

logger = logging.getLogger(__name__)

DEFAULT_MODELS = ["gpt-4", "gpt-3.5-turbo", "claude-3-5-sonnet"]

_SSE_PREFIX = "data: "
_SSE_DONE = "[DONE]"


# ---------------------------------------------------------------------------
# Response dataclass
# ---------------------------------------------------------------------------


@dataclass
class ChatCompletion:
    """Structured result of a non-streaming completion."""

    content: str
    model: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    latency_ms: int = 0
    finish_reason: Optional[str] = None


class CompletionBackend(Protocol):
    async def send_chat(
        self,
        messages: list[dict[str, str]],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatCompletion: ...

    def stream_chat(
        self,
        messages: list[dict[str, str]],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[str]: ...


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class LiteLLMClient:
    """Async client for a LiteLLM (OpenAI-compatible) proxy.

    Parameters
    ----------
    settings : LiteLLMSettings
        Base URL, API key and request defaults.
    transport : httpx.AsyncBaseTransport | None
        Optional transport override; tests pass an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Optional[LiteLLMSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or LiteLLMSettings()
        headers = {"Content-Type": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        self._client = httpx.AsyncClient(
            base_url=self.settings.base_url.rstrip("/"),
            headers=headers,
            timeout=self.settings.request_timeout_seconds,
            transport=transport,
        )

    # -- properties ----------------------------------------------------------

    @property
    def configured(self) -> bool:
        return bool(self.settings.base_url)

    # -- helpers -------------------------------------------------------------

    def _payload(
        self,
        messages: list[dict[str, str]],
        model: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
        stream: bool,
    ) -> dict[str, Any]:
        if not self.configured:
            raise BackendNotConfiguredError("LiteLLM base URL is not configured")
        return {
            "model": model or self.settings.default_model,
            "messages": messages,
            "temperature": self.settings.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.settings.max_tokens,
            "stream": stream,
        }

    # -- completion ----------------------------------------------------------

    async def send_chat(
        self,
        messages: list[dict[str, str]],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatCompletion:
        """Request a single completion and return it whole."""
        payload = self._payload(messages, model, temperature, max_tokens, stream=False)

        start = time.monotonic()
        try:
            response = await self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise CompletionError(
                f"LiteLLM returned HTTP {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise CompletionError(f"LiteLLM request failed: {exc}") from exc
        except ValueError as exc:
            raise CompletionError(f"LiteLLM returned invalid JSON: {exc}") from exc
        latency_ms = int((time.monotonic() - start) * 1000)

        try:
            choice = data["choices"][0]
            content = choice["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise CompletionError(f"LiteLLM response has no choices: {exc}") from exc

        usage = data.get("usage") or {}
        return ChatCompletion(
            content=content,
            model=data.get("model", payload["model"]),
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
            latency_ms=latency_ms,
            finish_reason=choice.get("finish_reason"),
        )

    async def stream_chat(
        self,
        messages: list[dict[str, str]],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[str]:
        """Stream content deltas as they arrive.

        Lines that are not ``data:`` events, or whose JSON cannot be
        decoded, are skipped.
        """
        payload = self._payload(messages, model, temperature, max_tokens, stream=True)
        try:
            async with self._client.stream("POST", "/chat/completions", json=payload) as response:
                if response.is_error:
                    body = (await response.aread()).decode(errors="replace")
                    raise CompletionError(
                        f"LiteLLM returned HTTP {response.status_code}: {body[:200]}"
                    )
                async for line in response.aiter_lines():
                    if not line.startswith(_SSE_PREFIX):
                        continue
                    data = line[len(_SSE_PREFIX):].strip()
                    if data == _SSE_DONE:
                        break
                    try:
                        chunk = json.loads(data)
                        delta = chunk["choices"][0].get("delta") or {}
                    except (ValueError, KeyError, IndexError, TypeError):
                        logger.debug("Skipping malformed stream chunk")
                        continue
                    content = delta.get("content")
                    if content:
                        yield content
        except httpx.HTTPError as exc:
            raise CompletionError(f"LiteLLM stream failed: {exc}") from exc

    async def list_models(self) -> list[str]:
        """Return model ids offered by the proxy, or the defaults if it is unreachable."""
        try:
            response = await self._client.get("/models")
            response.raise_for_status()
            models = [m["id"] for m in response.json().get("data", [])]
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Could not list LiteLLM models, using defaults: %s", exc)
            return list(DEFAULT_MODELS)
        return models or list(DEFAULT_MODELS)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> LiteLLMClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
