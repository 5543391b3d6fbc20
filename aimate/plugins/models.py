"""Data models shared between plugins and the plugin manager."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from aimate.errors import ToolValueError
from aimate.models.chat import Message, Role


# ---------------------------------------------------------------------------
# Interception
# ---------------------------------------------------------------------------


@dataclass
class InterceptResult:
    """Outcome of one interceptor call, or of a whole pipeline pass.

    ``proceed`` is False when the pipeline must stop.  A stopped result may
    still carry ``modified_message``: that message is delivered in place of
    the blocked one (a crisis-intervention reply, for example).
    """

    proceed: bool = True
    modified_message: Optional[Message] = None
    cancel_reason: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def passthrough(cls, metadata: Optional[dict[str, Any]] = None) -> InterceptResult:
        return cls(proceed=True, metadata=metadata or {})

    @classmethod
    def rewrite(
        cls, message: Message, metadata: Optional[dict[str, Any]] = None
    ) -> InterceptResult:
        return cls(proceed=True, modified_message=message, metadata=metadata or {})

    @classmethod
    def block(
        cls,
        reason: str,
        replacement: Optional[Message] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> InterceptResult:
        return cls(
            proceed=False,
            modified_message=replacement,
            cancel_reason=reason,
            metadata=metadata or {},
        )


@dataclass
class ConversationContext:
    """Per-turn state handed to every interceptor.

    ``original_message`` is the user's message as typed, before any
    interceptor rewrote it; the manager fills it in on the before-send pass.
    ``plugin_data`` is scratch space shared by all plugins within a single
    pipeline run; it is not persisted between turns.
    """

    conversation_id: str = ""
    message_history: list[Message] = field(default_factory=list)
    user_settings: dict[str, Any] = field(default_factory=dict)
    plugin_data: dict[str, Any] = field(default_factory=dict)
    original_message: Optional[Message] = None


# ---------------------------------------------------------------------------
# UI descriptors
# ---------------------------------------------------------------------------

MessageActionHandler = Callable[[Message], Awaitable[None]]
InputExtensionHandler = Callable[[], Awaitable[None]]


@dataclass
class MessageAction:
    """A button rendered under a chat message."""

    id: str
    label: str
    icon: str = ""
    tooltip: str = ""
    on_click: Optional[MessageActionHandler] = None
    show_on_user_messages: bool = False
    show_on_assistant_messages: bool = True

    def visible_for(self, message: Message) -> bool:
        if message.role == Role.USER:
            return self.show_on_user_messages
        if message.role == Role.ASSISTANT:
            return self.show_on_assistant_messages
        return False


@dataclass
class InputExtension:
    """A button rendered in the chat input bar; lower ``order`` sits further left."""

    id: str
    icon: str = ""
    tooltip: str = ""
    on_click: Optional[InputExtensionHandler] = None
    order: int = 0


class SettingFieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DROPDOWN = "dropdown"
    TEXTAREA = "textarea"


@dataclass
class SettingField:
    key: str
    label: str
    type: SettingFieldType = SettingFieldType.TEXT
    default_value: Any = None
    placeholder: Optional[str] = None
    options: list[str] = field(default_factory=list)  # dropdown only


@dataclass
class PluginSettings:
    """Settings schema a plugin contributes to the settings dialog."""

    title: str
    fields: list[SettingField] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

ToolValue = Union[str, int, float, bool, list["ToolValue"], dict[str, "ToolValue"]]


class ToolValueType(str, Enum):
    """The closed set of value kinds a tool may accept or return."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    LIST = "list"
    MAP = "map"

    @classmethod
    def of(cls, value: Any) -> ToolValueType:
        """Return the variant *value* belongs to, or raise :class:`ToolValueError`."""
        # bool before int: True is an int in Python but not a number here
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, str):
            return cls.STRING
        if isinstance(value, (int, float)):
            return cls.NUMBER
        if isinstance(value, (list, tuple)):
            return cls.LIST
        if isinstance(value, dict):
            return cls.MAP
        raise ToolValueError(f"unsupported tool value type: {type(value).__name__}")


def check_tool_value(
    value: Any, path: str = "value", _parents: Optional[frozenset[int]] = None
) -> ToolValue:
    """Validate that *value* (recursively) belongs to the tool value union.

    Returns the value with tuples normalised to lists.  A list or map that
    contains itself is rejected.
    """
    kind = ToolValueType.of(value)
    if kind not in (ToolValueType.LIST, ToolValueType.MAP):
        return value

    parents = _parents or frozenset()
    if id(value) in parents:
        raise ToolValueError(f"{path}: value contains itself")
    parents = parents | {id(value)}

    if kind is ToolValueType.LIST:
        return [
            check_tool_value(item, f"{path}[{i}]", parents) for i, item in enumerate(value)
        ]
    checked: dict[str, ToolValue] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ToolValueError(f"{path}: map keys must be strings, got {key!r}")
        checked[key] = check_tool_value(item, f"{path}.{key}", parents)
    return checked


@dataclass
class ToolParameter:
    name: str
    description: str = ""
    type: ToolValueType = ToolValueType.STRING
    required: bool = True
    default: Optional[ToolValue] = None

    def accepts(self, value: Any) -> bool:
        try:
            check_tool_value(value, self.name)
        except ToolValueError:
            return False
        return ToolValueType.of(value) is self.type


@dataclass
class PluginTool:
    """A named function a plugin exposes to the chat."""

    name: str
    description: str = ""
    parameters: list[ToolParameter] = field(default_factory=list)
    requires_confirmation: bool = False

    def get_parameter(self, name: str) -> Optional[ToolParameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None


@dataclass
class ToolResult:
    success: bool
    result: Optional[ToolValue] = None
    error: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, result: ToolValue, metadata: Optional[dict[str, Any]] = None) -> ToolResult:
        return cls(success=True, result=result, metadata=metadata or {})

    @classmethod
    def fail(cls, error: str, metadata: Optional[dict[str, Any]] = None) -> ToolResult:
        return cls(success=False, error=error, metadata=metadata or {})
