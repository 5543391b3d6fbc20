"""Plugins API router: metadata, UI descriptors and tool execution.

Prefix: ``/api/plugins``
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from aimate.models.chat import Message, Role
from web.backend.app.models.api import (
    InputExtensionResponse,
    MessageActionRequest,
    MessageActionResponse,
    PluginResponse,
    PluginSettingsResponse,
    SettingFieldResponse,
    ToolExecuteRequest,
    ToolParameterResponse,
    ToolResponse,
    ToolResultResponse,
)
from web.backend.app.runtime import Runtime, get_runtime

router = APIRouter(prefix="/api/plugins", tags=["plugins"])


@router.get("", response_model=list[PluginResponse])
async def list_plugins(runtime: Runtime = Depends(get_runtime)):
    """List loaded plugins in registration order."""
    return [PluginResponse(**p.describe()) for p in runtime.plugins.list_plugins()]


@router.get("/settings", response_model=dict[str, PluginSettingsResponse])
async def plugin_settings(runtime: Runtime = Depends(get_runtime)):
    """Settings schemas keyed by plugin id."""
    return {
        plugin_id: PluginSettingsResponse(
            title=s.title,
            fields=[
                SettingFieldResponse(
                    key=f.key,
                    label=f.label,
                    type=f.type.value,
                    default_value=f.default_value,
                    placeholder=f.placeholder,
                    options=f.options,
                )
                for f in s.fields
            ],
        )
        for plugin_id, s in runtime.plugins.get_all_plugin_settings().items()
    }


@router.get("/input-extensions", response_model=list[InputExtensionResponse])
async def input_extensions(runtime: Runtime = Depends(get_runtime)):
    return [
        InputExtensionResponse(id=e.id, icon=e.icon, tooltip=e.tooltip, order=e.order)
        for e in runtime.plugins.get_input_extensions()
    ]


@router.post("/message-actions", response_model=list[MessageActionResponse])
async def message_actions(req: MessageActionRequest, runtime: Runtime = Depends(get_runtime)):
    """Action buttons the plugins offer for a message with this role and content."""
    try:
        role = Role(req.role)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown role '{req.role}'")
    message = Message(role=role, content=req.content)
    return [
        MessageActionResponse(
            id=a.id,
            label=a.label,
            icon=a.icon,
            tooltip=a.tooltip,
            show_on_user_messages=a.show_on_user_messages,
            show_on_assistant_messages=a.show_on_assistant_messages,
        )
        for a in runtime.plugins.get_message_actions(message)
    ]


@router.get("/tools", response_model=list[ToolResponse])
async def list_tools(runtime: Runtime = Depends(get_runtime)):
    return [
        ToolResponse(
            plugin_id=plugin_id,
            name=t.name,
            description=t.description,
            requires_confirmation=t.requires_confirmation,
            parameters=[
                ToolParameterResponse(
                    name=p.name,
                    description=p.description,
                    type=p.type.value,
                    required=p.required,
                    default=p.default,
                )
                for p in t.parameters
            ],
        )
        for plugin_id, t in runtime.plugins.get_all_tools()
    ]


@router.post("/{plugin_id}/tools/{tool_name}", response_model=ToolResultResponse)
async def execute_tool(
    plugin_id: str,
    tool_name: str,
    req: ToolExecuteRequest,
    runtime: Runtime = Depends(get_runtime),
):
    """Execute a tool.  Tool failures are reported in the body, not as HTTP errors."""
    if runtime.plugins.get_plugin(plugin_id) is None:
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' not found")
    result = await runtime.plugins.execute_tool(plugin_id, tool_name, req.parameters)
    return ToolResultResponse(
        success=result.success,
        result=result.result,
        error=result.error,
        metadata=result.metadata,
    )
