"""Web search plugin.

Appends search results to messages that ask for current information and
exposes ``web_search`` / ``get_webpage`` tools.  The search backend is any
async callable ``(query, num_results) -> list[SearchResult]``; the default
one returns canned results so the plugin works without an API key.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx
from bs4 import BeautifulSoup

from aimate.config import parse_bool
from aimate.errors import ConfigError
from aimate.models.chat import Message, Role
from aimate.plugins.base import (
    Capability,
    MessageInterceptor,
    Plugin,
    ToolProvider,
    UIExtension,
)
from aimate.plugins.models import (
    ConversationContext,
    InputExtension,
    InterceptResult,
    MessageAction,
    PluginSettings,
    PluginTool,
    SettingField,
    SettingFieldType,
    ToolParameter,
    ToolResult,
    ToolValueType,
)

logger = logging.getLogger(__name__)

RESULTS_MARKER = "[WEB_SEARCH_RESULTS]"
MAX_QUERY_CHARS = 100
MAX_PAGE_CHARS = 5000

SEARCH_TRIGGERS = (
    "latest", "current", "recent", "today", "news", "what's happening",
    "what happened", "who won", "who is the", "when did",
)
_TRIGGER_RE = re.compile(
    r"(?<!\w)(?:" + "|".join(re.escape(t) for t in SEARCH_TRIGGERS) + r")(?!\w)"
)


@dataclass
class SearchResult:
    title: str
    url: str
    snippet: str = ""
    source: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


SearchBackend = Callable[[str, int], Awaitable[list[SearchResult]]]


async def canned_search(query: str, num_results: int) -> list[SearchResult]:
    """Offline search backend returning placeholder results."""
    results = [
        SearchResult(
            title=f"Example result {i} for {query[:40]}",
            url=f"https://example.com/{i}",
            snippet="This is a sample search result snippet.",
            source="example.com",
        )
        for i in range(1, 3)
    ]
    return results[:num_results]


def needs_search(text: str) -> bool:
    return bool(_TRIGGER_RE.search(text.replace("’", "'").lower()))


def format_results(results: list[SearchResult]) -> str:
    return "\n\n".join(
        f"[{i}] {r.title}\n{r.snippet}\nSource: {r.source}\nURL: {r.url}"
        for i, r in enumerate(results, 1)
    )


def html_to_text(html: str) -> str:
    """Extract readable text from an HTML page."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["script", "style", "nav", "header", "footer", "aside", "noscript"]):
        tag.decompose()
    main = soup.find("main") or soup.find("article") or soup.body or soup
    return main.get_text(separator="\n", strip=True)


class WebSearchPlugin(Plugin, MessageInterceptor, UIExtension, ToolProvider):
    id = "web-search"
    name = "Web Search"
    description = "Search the web for current information"
    version = "1.0.0"
    author = "aiMate Team"
    icon = "Search"
    capabilities = (
        Capability.MESSAGE_INTERCEPTOR | Capability.UI_EXTENSION | Capability.TOOL_PROVIDER
    )

    def __init__(
        self,
        search: Optional[SearchBackend] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_results: int = 5,
    ) -> None:
        self._search = search or canned_search
        self._transport = transport
        self.max_results = max_results
        self._http: Optional[httpx.AsyncClient] = None

    async def initialize(self) -> None:
        self._http = httpx.AsyncClient(
            timeout=15.0, follow_redirects=True, transport=self._transport
        )

    async def dispose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # -- interception --------------------------------------------------------

    def _auto_search(self, context: ConversationContext) -> bool:
        try:
            return parse_bool(context.user_settings.get("auto_search", True), "auto_search")
        except ConfigError:
            return True

    async def on_before_send(
        self, message: Message, context: ConversationContext
    ) -> InterceptResult:
        # Earlier interceptors may have prepended text; search on what the user typed
        typed = (context.original_message or message).content
        if (
            RESULTS_MARKER in message.content
            or not self._auto_search(context)
            or not needs_search(typed)
        ):
            return InterceptResult.passthrough()

        query = typed[:MAX_QUERY_CHARS]
        results = await self._search(query, self.max_results)
        content = (
            f"{message.content}\n\n{RESULTS_MARKER}\n{format_results(results)}\n\n"
            "Please use the above web search results to answer the question "
            "accurately with current information."
        )
        return InterceptResult.rewrite(
            message.with_content(content),
            {"search_query": query, "results_count": len(results), "search_performed": True},
        )

    async def on_after_receive(
        self, message: Message, context: ConversationContext
    ) -> InterceptResult:
        return InterceptResult.passthrough()

    # -- UI ------------------------------------------------------------------

    async def _search_message(self, message: Message) -> None:
        results = await self._search(message.content[:MAX_QUERY_CHARS], self.max_results)
        logger.info("Found %d results", len(results))

    async def _verify_message(self, message: Message) -> None:
        logger.info("Fact verification requested for message %s", message.id)

    async def _open_quick_search(self) -> None:
        logger.info("Quick search opened")

    def get_message_actions(self, message: Message) -> Iterable[MessageAction]:
        if message.role == Role.USER:
            return [
                MessageAction(
                    id="search-web",
                    label="Search Web",
                    icon="Search",
                    tooltip="Search web for this query",
                    on_click=self._search_message,
                    show_on_user_messages=True,
                    show_on_assistant_messages=False,
                )
            ]
        if message.role == Role.ASSISTANT:
            return [
                MessageAction(
                    id="verify-facts",
                    label="Verify",
                    icon="FactCheck",
                    tooltip="Verify facts with web search",
                    on_click=self._verify_message,
                )
            ]
        return []

    def get_input_extensions(self) -> Iterable[InputExtension]:
        return [
            InputExtension(
                id="quick-search",
                icon="TravelExplore",
                tooltip="Quick web search",
                on_click=self._open_quick_search,
                order=20,
            )
        ]

    def get_settings_ui(self) -> Optional[PluginSettings]:
        return PluginSettings(
            title="Web Search Settings",
            fields=[
                SettingField(
                    key="auto_search",
                    label="Auto-search for current info",
                    type=SettingFieldType.BOOLEAN,
                    default_value=True,
                ),
                SettingField(
                    key="search_provider",
                    label="Search Provider",
                    type=SettingFieldType.DROPDOWN,
                    default_value="Google",
                    options=["Google", "Bing", "DuckDuckGo"],
                ),
                SettingField(
                    key="max_results",
                    label="Max Results",
                    type=SettingFieldType.NUMBER,
                    default_value=self.max_results,
                ),
                SettingField(
                    key="api_key",
                    label="API Key",
                    type=SettingFieldType.TEXT,
                    placeholder="Enter your search API key",
                ),
            ],
        )

    # -- tools ---------------------------------------------------------------

    def get_tools(self) -> Iterable[PluginTool]:
        return [
            PluginTool(
                name="web_search",
                description="Search the web for current information",
                parameters=[
                    ToolParameter("query", "Search query"),
                    ToolParameter(
                        "num_results",
                        "Number of results to return",
                        ToolValueType.NUMBER,
                        required=False,
                        default=5,
                    ),
                ],
            ),
            PluginTool(
                name="get_webpage",
                description="Fetch and extract text from a webpage",
                parameters=[ToolParameter("url", "URL of the webpage")],
            ),
        ]

    async def execute_tool(self, tool_name: str, parameters: dict[str, Any]) -> ToolResult:
        if tool_name == "web_search":
            return await self._web_search(parameters)
        if tool_name == "get_webpage":
            return await self._get_webpage(parameters)
        return ToolResult.fail(f"Unknown tool: {tool_name}")

    async def _web_search(self, parameters: dict[str, Any]) -> ToolResult:
        query = parameters["query"]
        num_results = max(int(parameters.get("num_results", 5)), 0)
        results = await self._search(query, num_results)
        return ToolResult.ok(
            [r.to_dict() for r in results[:num_results]],
            {"query": query, "results_count": len(results)},
        )

    async def _get_webpage(self, parameters: dict[str, Any]) -> ToolResult:
        url = parameters["url"]
        if self._http is None:
            await self.initialize()
        try:
            response = await self._http.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            return ToolResult.fail(f"Failed to fetch webpage: {exc}")

        if "html" in response.headers.get("content-type", ""):
            text = html_to_text(response.text)
        else:
            text = response.text
        return ToolResult.ok(
            text[:MAX_PAGE_CHARS],
            {"url": url, "content_length": len(text), "truncated": len(text) > MAX_PAGE_CHARS},
        )
