"""Plugin contract.

Every plugin subclasses :class:`Plugin` and declares which capabilities it
implements through the ``capabilities`` class attribute.  The manager reads
that declaration at registration time; it does not guess capabilities from
the class hierarchy.

    class Shouty(Plugin, MessageInterceptor):
        id = "shouty"
        name = "Shouty"
        capabilities = Capability.MESSAGE_INTERCEPTOR

        async def on_before_send(self, message, context):
            return InterceptResult.rewrite(message.with_content(message.content.upper()))

        async def on_after_receive(self, message, context):
            return InterceptResult.passthrough()
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Flag, auto
from typing import Any, Iterable, Optional

from aimate.models.chat import Message
from aimate.plugins.models import (
    ConversationContext,
    InputExtension,
    InterceptResult,
    MessageAction,
    PluginSettings,
    PluginTool,
    ToolResult,
)


class Capability(Flag):
    """Optional capability sets a plugin can implement, in any combination."""

    NONE = 0
    MESSAGE_INTERCEPTOR = auto()
    UI_EXTENSION = auto()
    TOOL_PROVIDER = auto()


# Methods a plugin must provide for each declared capability
CAPABILITY_METHODS: dict[Capability, tuple[str, ...]] = {
    Capability.MESSAGE_INTERCEPTOR: ("on_before_send", "on_after_receive"),
    Capability.UI_EXTENSION: (
        "get_message_actions",
        "get_input_extensions",
        "get_settings_ui",
        "render_custom_content",
    ),
    Capability.TOOL_PROVIDER: ("get_tools", "execute_tool"),
}


class Plugin:
    """Base class for all plugins.

    Subclasses set the descriptive attributes as class attributes.
    ``priority`` orders interceptors (ascending); plugins that leave it as
    None run after all prioritised plugins, in registration order.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    version: str = "1.0.0"
    author: str = ""
    icon: str = ""
    priority: Optional[float] = None
    capabilities: Capability = Capability.NONE

    async def initialize(self) -> None:
        """Called once when the plugin is registered."""

    async def dispose(self) -> None:
        """Called once when the plugin is unregistered."""

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "author": self.author,
            "icon": self.icon,
            "priority": self.priority,
            "capabilities": capability_names(self.capabilities),
        }


def capability_names(capabilities: Capability) -> list[str]:
    return [c.name.lower() for c in CAPABILITY_METHODS if c in capabilities]


class MessageInterceptor(ABC):
    """Inspects or rewrites messages around the model call.

    Interceptors run one at a time; slow I/O here delays every plugin after
    this one in the pipeline.
    """

    @abstractmethod
    async def on_before_send(
        self, message: Message, context: ConversationContext
    ) -> InterceptResult:
        """Called before *message* is sent to the model."""

    @abstractmethod
    async def on_after_receive(
        self, message: Message, context: ConversationContext
    ) -> InterceptResult:
        """Called with the model's reply before it is shown."""


class UIExtension(ABC):
    """Contributes declarative UI descriptors.  Must not mutate core state."""

    def get_message_actions(self, message: Message) -> Iterable[MessageAction]:
        return []

    def get_input_extensions(self) -> Iterable[InputExtension]:
        return []

    def get_settings_ui(self) -> Optional[PluginSettings]:
        return None

    def render_custom_content(self, message: Message) -> Optional[str]:
        return None


class ToolProvider(ABC):
    """Exposes named tools with typed parameters."""

    @abstractmethod
    def get_tools(self) -> Iterable[PluginTool]:
        """Return the tools this plugin provides."""

    @abstractmethod
    async def execute_tool(self, tool_name: str, parameters: dict[str, Any]) -> ToolResult:
        """Run *tool_name* with already-validated *parameters*."""
