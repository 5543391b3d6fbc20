"""Tests for the command-line interface."""

import asyncio
import tempfile
from pathlib import Path

import click
from click.testing import CliRunner

import aimate.llm.client
from aimate.cli import main


class FakeClient:
    instances = []

    def __init__(self, settings, transport=None):
        self.calls = []
        self.closed = False
        FakeClient.instances.append(self)

    async def send_chat(self, messages, model=None, temperature=None, max_tokens=None):
        raise AssertionError("streaming is the default")

    async def stream_chat(self, messages, model=None, temperature=None, max_tokens=None):
        self.calls.append(messages)
        for chunk in ["Hi", " there"]:
            yield chunk

    async def aclose(self):
        self.closed = True


def _config_file(tmpdir):
    path = Path(tmpdir) / "config.yaml"
    path.write_text("plugins:\n  enabled: [mental-health-safety]\n")
    return str(path)


def test_chat_reads_input_off_the_event_loop(monkeypatch):
    inputs = iter(["hello", "exit"])
    prompt_threads = []

    def fake_prompt(*args, **kwargs):
        try:
            asyncio.get_running_loop()
            prompt_threads.append("event loop")
        except RuntimeError:
            prompt_threads.append("worker")
        return next(inputs)

    FakeClient.instances = []
    monkeypatch.setattr(aimate.llm.client, "LiteLLMClient", FakeClient)
    monkeypatch.setattr(click, "prompt", fake_prompt)

    with tempfile.TemporaryDirectory() as tmpdir:
        result = CliRunner().invoke(main, ["--config", _config_file(tmpdir), "chat"])

    assert result.exit_code == 0, result.output
    assert prompt_threads == ["worker", "worker"]
    client = FakeClient.instances[0]
    assert client.calls[0][-1] == {"role": "user", "content": "hello"}
    assert client.closed
