"""Completion backend integration (LiteLLM proxy)."""

from aimate.llm.client import ChatCompletion, CompletionBackend, LiteLLMClient

__all__ = ["ChatCompletion", "CompletionBackend", "LiteLLMClient"]
