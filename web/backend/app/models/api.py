"""Pydantic models for API request/response serialization.

These mirror the aiMate dataclasses and give the FastAPI endpoints
proper JSON schemas.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Chat models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    """Mirrors aimate.models.chat.Message."""

    id: str
    role: str
    content: str
    timestamp: str
    model: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChatSendRequest(BaseModel):
    message: str = Field(..., min_length=1)
    conversation_id: Optional[str] = None
    model: Optional[str] = None
    user_settings: dict[str, Any] = Field(default_factory=dict)


class ChatSendResponse(BaseModel):
    """Mirrors aimate.chat.service.TurnOutcome."""

    conversation_id: str
    status: str
    user_message: MessageResponse
    reply: Optional[MessageResponse] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class ConversationResponse(BaseModel):
    id: str
    title: str
    messages: list[MessageResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Plugin models
# ---------------------------------------------------------------------------


class PluginResponse(BaseModel):
    """Mirrors aimate.plugins.base.Plugin.describe()."""

    id: str
    name: str
    description: str = ""
    version: str = ""
    author: str = ""
    icon: str = ""
    priority: Optional[float] = None
    capabilities: list[str] = Field(default_factory=list)


class SettingFieldResponse(BaseModel):
    key: str
    label: str
    type: str
    default_value: Any = None
    placeholder: Optional[str] = None
    options: list[str] = Field(default_factory=list)


class PluginSettingsResponse(BaseModel):
    title: str
    fields: list[SettingFieldResponse] = Field(default_factory=list)


class InputExtensionResponse(BaseModel):
    id: str
    icon: str = ""
    tooltip: str = ""
    order: int = 0


class MessageActionRequest(BaseModel):
    role: str
    content: str


class MessageActionResponse(BaseModel):
    id: str
    label: str
    icon: str = ""
    tooltip: str = ""
    show_on_user_messages: bool = False
    show_on_assistant_messages: bool = True


class ToolParameterResponse(BaseModel):
    name: str
    description: str = ""
    type: str
    required: bool = True
    default: Any = None


class ToolResponse(BaseModel):
    plugin_id: str
    name: str
    description: str = ""
    requires_confirmation: bool = False
    parameters: list[ToolParameterResponse] = Field(default_factory=list)


class ToolExecuteRequest(BaseModel):
    parameters: dict[str, Any] = Field(default_factory=dict)


class ToolResultResponse(BaseModel):
    """Mirrors aimate.plugins.models.ToolResult."""

    success: bool
    result: Any = None
    error: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Safety models
# ---------------------------------------------------------------------------


class HotlineResponse(BaseModel):
    name: str
    number: str
    available: str = "24/7"
    can_text: bool = False


class CrisisResourcesResponse(BaseModel):
    """Mirrors aimate.safety.models.CrisisResources plus the lookup outcome."""

    code: str
    region: str
    emergency: str
    hotlines: list[HotlineResponse] = Field(default_factory=list)
    web_chats: list[str] = Field(default_factory=list)
    matched: bool = True


class SafetyAuditEntryResponse(BaseModel):
    """Mirrors aimate.safety.audit_log.SafetyAuditEntry."""

    id: str
    timestamp: str
    action: str
    conversation_id: str
    plugin_id: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
