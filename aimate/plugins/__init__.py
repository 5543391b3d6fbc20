"""Plugin contract and manager.

A plugin declares any subset of three capabilities:
- message interception: inspect, rewrite or block messages around the model call
- UI extension: contribute action buttons, input-bar buttons and a settings schema
- tool provision: expose named tools with typed parameters
"""

from aimate.plugins.base import (
    Capability,
    MessageInterceptor,
    Plugin,
    ToolProvider,
    UIExtension,
)
from aimate.plugins.manager import PluginErrorEvent, PluginEvent, PluginManager
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

__all__ = [
    "Capability",
    "ConversationContext",
    "InputExtension",
    "InterceptResult",
    "MessageAction",
    "MessageInterceptor",
    "Plugin",
    "PluginErrorEvent",
    "PluginEvent",
    "PluginManager",
    "PluginSettings",
    "PluginTool",
    "SettingField",
    "SettingFieldType",
    "ToolParameter",
    "ToolProvider",
    "ToolResult",
    "ToolValueType",
    "UIExtension",
]
