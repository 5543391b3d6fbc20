"""Tests for tool value typing and tool dispatch through the manager."""

import asyncio

import pytest

from aimate.errors import ToolValueError
from aimate.plugins.base import Capability, Plugin, ToolProvider
from aimate.plugins.manager import PluginManager
from aimate.plugins.models import (
    PluginTool,
    ToolParameter,
    ToolResult,
    ToolValueType,
    check_tool_value,
)


class Calculator(Plugin, ToolProvider):
    id = "calc"
    name = "Calculator"
    capabilities = Capability.TOOL_PROVIDER

    def __init__(self):
        self.calls = []

    def get_tools(self):
        return [
            PluginTool(
                name="add",
                description="Add two numbers",
                parameters=[
                    ToolParameter("a", "first", ToolValueType.NUMBER),
                    ToolParameter("b", "second", ToolValueType.NUMBER, required=False, default=1),
                ],
            ),
            PluginTool(name="boom"),
            PluginTool(name="odd_result"),
            PluginTool(name="loop_result"),
        ]

    async def execute_tool(self, tool_name, parameters):
        self.calls.append((tool_name, parameters))
        if tool_name == "add":
            return ToolResult.ok(parameters["a"] + parameters["b"])
        if tool_name == "boom":
            raise RuntimeError("kaboom")
        if tool_name == "loop_result":
            looped = {"name": "node"}
            looped["self"] = looped
            return ToolResult.ok(looped)
        return ToolResult.ok({1, 2})


def _run(coro):
    return asyncio.run(coro)


def _manager():
    manager = PluginManager()
    plugin = Calculator()
    _run(manager.register(plugin))
    return manager, plugin


# ---------------------------------------------------------------------------
# Value typing
# ---------------------------------------------------------------------------


def test_bool_is_never_a_number():
    assert ToolValueType.of(True) is ToolValueType.BOOLEAN
    assert ToolValueType.of(3) is ToolValueType.NUMBER
    assert ToolValueType.of(2.5) is ToolValueType.NUMBER
    assert not ToolParameter("n", type=ToolValueType.NUMBER).accepts(False)


def test_nested_values_are_checked_and_tuples_normalised():
    value = check_tool_value({"tags": ("a", "b"), "limits": [1, 2.5], "on": True})
    assert value == {"tags": ["a", "b"], "limits": [1, 2.5], "on": True}


def test_unsupported_values_are_rejected():
    with pytest.raises(ToolValueError):
        check_tool_value(None)
    with pytest.raises(ToolValueError):
        check_tool_value([1, object()])
    with pytest.raises(ToolValueError):
        check_tool_value({1: "int key"})


def test_self_referencing_values_are_rejected():
    looped = [1]
    looped.append(looped)
    with pytest.raises(ToolValueError, match="contains itself"):
        check_tool_value(looped)

    shared = ["x"]
    assert check_tool_value({"a": shared, "b": shared}) == {"a": ["x"], "b": ["x"]}


def test_parameter_accepts_only_its_variant():
    param = ToolParameter("names", type=ToolValueType.LIST)
    assert param.accepts(["x"])
    assert not param.accepts("x")
    assert not param.accepts([None])


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def test_defaults_are_filled_in():
    manager, plugin = _manager()
    result = _run(manager.execute_tool("calc", "add", {"a": 2}))
    assert result.success
    assert result.result == 3
    assert plugin.calls == [("add", {"a": 2, "b": 1})]


def test_missing_required_parameter_fails():
    manager, plugin = _manager()
    result = _run(manager.execute_tool("calc", "add", {}))
    assert not result.success
    assert result.error == "Missing required parameter 'a'"
    assert plugin.calls == []


def test_wrong_type_fails():
    manager, _ = _manager()
    result = _run(manager.execute_tool("calc", "add", {"a": True}))
    assert not result.success
    assert result.error == "Parameter 'a' must be a number"


def test_unknown_parameter_fails():
    manager, _ = _manager()
    result = _run(manager.execute_tool("calc", "add", {"a": 1, "c": 2}))
    assert not result.success
    assert "Unknown parameter(s) for add: c" == result.error


def test_unknown_plugin_and_tool():
    manager, _ = _manager()
    assert _run(manager.execute_tool("nope", "add")).error == "Plugin nope not found"
    assert _run(manager.execute_tool("calc", "sub")).error == "Tool sub not found in plugin calc"


def test_provider_exception_becomes_failure():
    manager, _ = _manager()
    errors = []
    manager.on_plugin_error(errors.append)
    result = _run(manager.execute_tool("calc", "boom"))
    assert not result.success
    assert result.error == "kaboom"
    assert errors[0].operation == "execute_tool:boom"


def test_result_outside_value_union_fails():
    manager, _ = _manager()
    result = _run(manager.execute_tool("calc", "odd_result"))
    assert not result.success
    assert "unsupported result" in result.error


def test_self_referencing_result_fails_instead_of_raising():
    manager, _ = _manager()
    result = _run(manager.execute_tool("calc", "loop_result"))
    assert not result.success
    assert "contains itself" in result.error


def test_get_all_tools_pairs_plugin_ids():
    manager, _ = _manager()
    tools = manager.get_all_tools()
    assert [(pid, t.name) for pid, t in tools] == [
        ("calc", "add"),
        ("calc", "boom"),
        ("calc", "odd_result"),
        ("calc", "loop_result"),
    ]
