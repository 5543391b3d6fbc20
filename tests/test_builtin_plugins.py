"""Tests for the bundled web-search and code-generator plugins."""

import asyncio
import tempfile
from pathlib import Path

import httpx

from aimate.config import AimateConfig
from aimate.errors import CompletionError
from aimate.llm.client import ChatCompletion
from aimate.models.chat import Message
from aimate.plugins.builtin import default_plugin_factories
from aimate.plugins.builtin.code_generator import (
    INSTRUCTIONS_MARKER,
    CodeGeneratorPlugin,
    extract_python_block,
)
from aimate.plugins.builtin.web_search import (
    RESULTS_MARKER,
    SearchResult,
    WebSearchPlugin,
    needs_search,
)
from aimate.plugins.manager import PluginManager
from aimate.plugins.models import ConversationContext
from aimate.safety.plugin import MentalHealthSafetyPlugin

PAGE = """
<html><head><script>var x = 1;</script><style>p {}</style></head>
<body><nav>Menu</nav><main><h1>Title</h1><p>Body text here.</p></main></body></html>
"""


def _run_with(plugin, coro_fn):
    async def run():
        manager = PluginManager()
        await manager.register(plugin)
        try:
            return await coro_fn(manager)
        finally:
            await manager.shutdown()

    return asyncio.run(run())


# ---------------------------------------------------------------------------
# Web search
# ---------------------------------------------------------------------------


def test_search_triggers():
    assert needs_search("What's the latest news on the election?")
    assert needs_search("Who won the game today")
    assert not needs_search("Tell me a story about dragons")


def test_search_results_are_appended_once():
    queries = []

    async def search(query, num_results):
        queries.append(query)
        return [SearchResult("Result", "https://news.test/1", "Snippet", "news.test")]

    plugin = WebSearchPlugin(search=search)
    message = Message.user("What's the latest news?")
    result = asyncio.run(plugin.on_before_send(message, ConversationContext()))

    content = result.modified_message.content
    assert content.startswith("What's the latest news?\n\n" + RESULTS_MARKER)
    assert "[1] Result" in content
    assert "URL: https://news.test/1" in content
    assert result.metadata == {
        "search_query": "What's the latest news?",
        "results_count": 1,
        "search_performed": True,
    }

    again = asyncio.run(plugin.on_before_send(result.modified_message, ConversationContext()))
    assert again.modified_message is None
    assert len(queries) == 1


def test_auto_search_can_be_disabled():
    plugin = WebSearchPlugin()
    context = ConversationContext(user_settings={"auto_search": False})
    result = asyncio.run(plugin.on_before_send(Message.user("latest news"), context))
    assert result.modified_message is None


def test_web_search_tool_limits_results():
    result = _run_with(
        WebSearchPlugin(),
        lambda m: m.execute_tool("web-search", "web_search", {"query": "nz weather", "num_results": 1}),
    )
    assert result.success
    assert len(result.result) == 1
    assert set(result.result[0]) == {"title", "url", "snippet", "source"}
    assert result.metadata["query"] == "nz weather"


def test_get_webpage_extracts_text():
    def handler(request):
        return httpx.Response(200, text=PAGE, headers={"content-type": "text/html"})

    plugin = WebSearchPlugin(transport=httpx.MockTransport(handler))
    result = _run_with(
        plugin, lambda m: m.execute_tool("web-search", "get_webpage", {"url": "https://a.test"})
    )
    assert result.success
    assert "Body text here." in result.result
    assert "Title" in result.result
    assert "var x" not in result.result
    assert "Menu" not in result.result


def test_get_webpage_truncates_and_reports_errors():
    def handler(request):
        if request.url.path == "/missing":
            return httpx.Response(404)
        return httpx.Response(200, text="x" * 6000, headers={"content-type": "text/plain"})

    plugin = WebSearchPlugin(transport=httpx.MockTransport(handler))

    async def fetch_both(manager):
        long = await manager.execute_tool("web-search", "get_webpage", {"url": "https://a.test/long"})
        missing = await manager.execute_tool("web-search", "get_webpage", {"url": "https://a.test/missing"})
        return long, missing

    long, missing = _run_with(plugin, fetch_both)
    assert len(long.result) == 5000
    assert long.metadata["truncated"] is True
    assert not missing.success
    assert missing.error.startswith("Failed to fetch webpage")


def test_web_search_actions_by_role():
    plugin = WebSearchPlugin()
    assert [a.id for a in plugin.get_message_actions(Message.user("q"))] == ["search-web"]
    assert [a.id for a in plugin.get_message_actions(Message.assistant("a"))] == ["verify-facts"]


# ---------------------------------------------------------------------------
# Code generator
# ---------------------------------------------------------------------------


def test_code_requests_get_instructions():
    plugin = CodeGeneratorPlugin()
    result = asyncio.run(
        plugin.on_before_send(Message.user("Write a function to merge two lists"), ConversationContext())
    )
    assert INSTRUCTIONS_MARKER in result.modified_message.content
    assert "Python" in result.modified_message.content
    assert result.metadata == {"enhanced_by": "code-generator"}

    plain = asyncio.run(plugin.on_before_send(Message.user("Hello"), ConversationContext()))
    assert plain.modified_message is None


def test_generate_class_tool():
    result = _run_with(
        CodeGeneratorPlugin(),
        lambda m: m.execute_tool(
            "code-generator",
            "generate_class",
            {"class_name": "Point", "fields": [{"name": "x", "type": "float"}, {"name": "label"}]},
        ),
    )
    assert result.success
    assert "@dataclass" in result.result
    assert "class Point:" in result.result
    assert "    x: float" in result.result
    assert "    label: str" in result.result
    compile(result.result, "<generated>", "exec")


def test_generate_class_rejects_bad_identifiers():
    result = _run_with(
        CodeGeneratorPlugin(),
        lambda m: m.execute_tool(
            "code-generator", "generate_class", {"class_name": "not valid", "fields": []}
        ),
    )
    assert not result.success
    assert "Invalid class name" in result.error


def test_refactor_requires_confirmation():
    tools = {t.name: t for t in CodeGeneratorPlugin().get_tools()}
    assert tools["refactor_code"].requires_confirmation is True
    assert tools["generate_class"].requires_confirmation is False


class RefactorBackend:
    def __init__(self, content="", error=None):
        self.content = content
        self.error = error
        self.prompts = []

    async def send_chat(self, messages, model=None, temperature=None, max_tokens=None):
        self.prompts.append(messages[-1]["content"])
        if self.error:
            raise self.error
        return ChatCompletion(content=self.content, model="fake-model")


def test_refactor_asks_the_backend():
    backend = RefactorBackend("```python\ndef add(a, b):\n    return a + b\n```\n- renamed")
    plugin = CodeGeneratorPlugin(backend=backend)
    result = asyncio.run(
        plugin.execute_tool(
            "refactor_code", {"code": "def f(a,b): return a+b", "improvements": "readability"}
        )
    )

    assert result.success
    assert result.result == "def add(a, b):\n    return a + b"
    assert result.metadata["improvements_applied"] == ["readability"]
    assert result.metadata["model"] == "fake-model"
    assert "def f(a,b): return a+b" in backend.prompts[0]
    assert "focusing on: readability" in backend.prompts[0]


def test_refactor_without_backend_or_code_block_fails():
    params = {"code": "x = 1"}
    no_backend = asyncio.run(CodeGeneratorPlugin().execute_tool("refactor_code", params))
    assert not no_backend.success
    assert "completion backend" in no_backend.error

    prose = CodeGeneratorPlugin(backend=RefactorBackend("Looks fine to me."))
    assert not asyncio.run(prose.execute_tool("refactor_code", params)).success

    down = CodeGeneratorPlugin(backend=RefactorBackend(error=CompletionError("proxy down")))
    failed = asyncio.run(down.execute_tool("refactor_code", params))
    assert failed.error == "Refactor failed: proxy down"


def test_save_code_action_for_python_replies():
    reply = Message.assistant("Here you go:\n```python\nprint('hi')\n```\n")
    with tempfile.TemporaryDirectory() as tmpdir:
        plugin = CodeGeneratorPlugin(output_dir=Path(tmpdir))
        (action,) = plugin.get_message_actions(reply)
        assert action.id == "save-code"
        asyncio.run(action.on_click(reply))
        saved = list(Path(tmpdir).glob("*.py"))
        assert len(saved) == 1
        assert saved[0].read_text() == "print('hi')\n"

    assert list(plugin.get_message_actions(Message.assistant("no code"))) == []
    assert list(plugin.get_message_actions(Message.user(reply.content))) == []


def test_extract_python_block():
    assert extract_python_block("```py\nx = 1\n```") == "x = 1"
    assert extract_python_block("```js\nlet x\n```") is None


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def test_default_factories_follow_config():
    config = AimateConfig()
    config.plugins.enabled = ["code-generator", "unknown", "mental-health-safety"]
    plugins = [factory() for factory in default_plugin_factories(config)]
    assert [p.id for p in plugins] == ["code-generator", "mental-health-safety"]
    assert isinstance(plugins[1], MentalHealthSafetyPlugin)


def test_safety_runs_before_other_interceptors():
    async def run():
        manager = PluginManager()
        await manager.load_plugins(default_plugin_factories(AimateConfig()))
        try:
            return [p.id for p in manager.ordered_interceptors()]
        finally:
            await manager.shutdown()

    assert asyncio.run(run()) == ["mental-health-safety", "web-search", "code-generator"]


def test_search_query_uses_typed_text_after_safety_guidance():
    queries = []

    async def search(query, num_results):
        queries.append(query)
        return [SearchResult("Result", "https://news.test/1", "Snippet", "news.test")]

    async def run():
        manager = PluginManager()
        await manager.register(WebSearchPlugin(search=search))
        await manager.register(MentalHealthSafetyPlugin())
        try:
            message = Message.user("I feel hopeless, what's the latest news")
            return await manager.run_before_send(message, ConversationContext())
        finally:
            await manager.shutdown()

    result = asyncio.run(run())

    assert queries == ["I feel hopeless, what's the latest news"]
    assert result.metadata["search_query"] == "I feel hopeless, what's the latest news"
    assert result.modified_message.content.startswith("[SAFETY GUIDANCE FOR AI]")
    assert RESULTS_MARKER in result.modified_message.content
