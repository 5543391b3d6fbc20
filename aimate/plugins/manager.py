"""Plugin registry and message-interception pipeline.

The manager owns every loaded plugin and exposes the operations the chat
application calls each turn: the before-send / after-receive pipelines,
the UI aggregations, and tool dispatch.  Failures in plugin code are
contained here: they are logged, published to error listeners, and never
propagate to the caller.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from aimate.errors import CapabilityError, PluginRegistrationError, ToolValueError
from aimate.models.chat import Message
from aimate.plugins.base import CAPABILITY_METHODS, Capability, Plugin
from aimate.plugins.models import (
    ConversationContext,
    InputExtension,
    InterceptResult,
    MessageAction,
    PluginSettings,
    PluginTool,
    ToolResult,
    ToolValue,
    check_tool_value,
)

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Events
# ------------------------------------------------------------------


@dataclass
class PluginEvent:
    plugin: Plugin


@dataclass
class PluginErrorEvent:
    """A contained plugin failure."""

    plugin_id: str
    operation: str
    exception: BaseException


PluginListener = Callable[[PluginEvent], None]
ErrorListener = Callable[[PluginErrorEvent], None]
PluginFactory = Callable[[], Plugin]


@dataclass
class _Entry:
    plugin: Plugin
    seq: int

    @property
    def sort_key(self) -> tuple[int, float, int]:
        # Prioritised plugins first (ascending), then the rest by registration
        if self.plugin.priority is None:
            return (1, 0.0, self.seq)
        return (0, float(self.plugin.priority), self.seq)


class PluginManager:
    """Registry of plugin instances plus the ordered interceptor pipeline.

    Interceptor order is ascending ``Plugin.priority``; plugins without a
    priority run after all prioritised ones in registration order.  The
    order is recomputed from a snapshot of the registry at the start of
    every pipeline run.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._plugins: dict[str, _Entry] = {}
        self._interceptors: list[Plugin] = []
        self._ui_extensions: list[Plugin] = []
        self._tool_providers: list[Plugin] = []
        self._seq = itertools.count()

        self._loaded_listeners: list[PluginListener] = []
        self._unloaded_listeners: list[PluginListener] = []
        self._error_listeners: list[ErrorListener] = []

    # ------------------------------------------------------------------
    # Event subscription
    # ------------------------------------------------------------------

    def on_plugin_loaded(self, listener: PluginListener) -> PluginListener:
        self._loaded_listeners.append(listener)
        return listener

    def on_plugin_unloaded(self, listener: PluginListener) -> PluginListener:
        self._unloaded_listeners.append(listener)
        return listener

    def on_plugin_error(self, listener: ErrorListener) -> ErrorListener:
        """Subscribe to contained plugin failures (the error-notification channel)."""
        self._error_listeners.append(listener)
        return listener

    def _notify(self, listeners: Iterable[Callable[[Any], None]], event: Any) -> None:
        for listener in list(listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Plugin event listener %r failed", listener)

    def _publish_error(self, plugin_id: str, operation: str, exc: BaseException) -> None:
        logger.error(
            "Plugin %s failed in %s: %s", plugin_id, operation, exc, exc_info=exc
        )
        self._notify(self._error_listeners, PluginErrorEvent(plugin_id, operation, exc))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @staticmethod
    def _check_capabilities(plugin: Plugin) -> None:
        if not plugin.id:
            raise PluginRegistrationError(type(plugin).__name__, "plugin id is empty")
        for capability, methods in CAPABILITY_METHODS.items():
            if capability not in plugin.capabilities:
                continue
            missing = [m for m in methods if not callable(getattr(plugin, m, None))]
            if missing:
                raise CapabilityError(
                    plugin.id,
                    f"declares {capability.name} but does not implement {', '.join(missing)}",
                )

    async def register(self, plugin: Plugin) -> bool:
        """Initialize *plugin* and add it to the registry.

        Returns False when the id is already registered (the existing plugin
        is kept) or when the plugin fails validation or initialization.
        """
        plugin_id = getattr(plugin, "id", "") or type(plugin).__name__
        with self._lock:
            if plugin_id in self._plugins:
                logger.warning("Plugin %s already loaded", plugin_id)
                return False

        try:
            self._check_capabilities(plugin)
            await plugin.initialize()
        except Exception as exc:
            self._publish_error(plugin_id, "initialize", exc)
            return False

        with self._lock:
            if plugin_id in self._plugins:
                # Lost a race with a concurrent registration of the same id
                logger.warning("Plugin %s already loaded", plugin_id)
                duplicate = True
            else:
                duplicate = False
                self._plugins[plugin_id] = _Entry(plugin, next(self._seq))
                if Capability.MESSAGE_INTERCEPTOR in plugin.capabilities:
                    self._interceptors.append(plugin)
                if Capability.UI_EXTENSION in plugin.capabilities:
                    self._ui_extensions.append(plugin)
                if Capability.TOOL_PROVIDER in plugin.capabilities:
                    self._tool_providers.append(plugin)

        if duplicate:
            await self._dispose(plugin)
            return False

        logger.info("Registered plugin: %s v%s", plugin.name or plugin_id, plugin.version)
        self._notify(self._loaded_listeners, PluginEvent(plugin))
        return True

    async def unregister(self, plugin_id: str) -> bool:
        """Dispose and remove a plugin.  Returns False if it was not loaded."""
        with self._lock:
            entry = self._plugins.pop(plugin_id, None)
            if entry is None:
                return False
            for bucket in (self._interceptors, self._ui_extensions, self._tool_providers):
                bucket[:] = [p for p in bucket if p.id != plugin_id]

        await self._dispose(entry.plugin)
        logger.info("Unloaded plugin: %s", plugin_id)
        self._notify(self._unloaded_listeners, PluginEvent(entry.plugin))
        return True

    async def _dispose(self, plugin: Plugin) -> None:
        try:
            await plugin.dispose()
        except Exception as exc:
            self._publish_error(plugin.id, "dispose", exc)

    async def load_plugins(self, factories: Iterable[PluginFactory]) -> int:
        """Construct and register a plugin from each factory.

        A factory that raises is logged, published as an error event and
        skipped; the remaining factories still load.  Returns the number of
        plugins registered.
        """
        loaded = 0
        for factory in factories:
            name = getattr(factory, "__name__", repr(factory))
            try:
                plugin = factory()
            except Exception as exc:
                self._publish_error(name, "construct", exc)
                continue
            if await self.register(plugin):
                loaded += 1
        logger.info("Loaded %d plugins", loaded)
        return loaded

    async def shutdown(self) -> None:
        """Unregister every plugin."""
        for plugin_id in [p.id for p in self.list_plugins()]:
            await self.unregister(plugin_id)

    def get_plugin(self, plugin_id: str) -> Optional[Plugin]:
        with self._lock:
            entry = self._plugins.get(plugin_id)
        return entry.plugin if entry else None

    def list_plugins(self) -> list[Plugin]:
        """Return registered plugins in registration order."""
        with self._lock:
            entries = sorted(self._plugins.values(), key=lambda e: e.seq)
        return [e.plugin for e in entries]

    def ordered_interceptors(self) -> list[Plugin]:
        """Snapshot of the interceptors in pipeline order."""
        with self._lock:
            entries = [self._plugins[p.id] for p in self._interceptors]
        return [e.plugin for e in sorted(entries, key=lambda e: e.sort_key)]

    # ------------------------------------------------------------------
    # Message interception
    # ------------------------------------------------------------------

    async def run_before_send(
        self,
        message: Message,
        context: ConversationContext,
        timeout: Optional[float] = None,
    ) -> InterceptResult:
        """Pass an outgoing message through every interceptor."""
        if context.original_message is None:
            context.original_message = message
        return await self._run_pipeline("on_before_send", message, context, timeout)

    async def run_after_receive(
        self,
        message: Message,
        context: ConversationContext,
        timeout: Optional[float] = None,
    ) -> InterceptResult:
        """Pass a model reply through every interceptor."""
        return await self._run_pipeline("on_after_receive", message, context, timeout)

    async def _run_pipeline(
        self,
        hook: str,
        message: Message,
        context: ConversationContext,
        timeout: Optional[float],
    ) -> InterceptResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        current = message
        metadata: dict[str, Any] = {}

        for plugin in self.ordered_interceptors():
            try:
                call = getattr(plugin, hook)(current, context)
                if deadline is None:
                    result = await call
                else:
                    result = await asyncio.wait_for(call, max(deadline - loop.time(), 0.0))
            except asyncio.TimeoutError as exc:
                self._publish_error(plugin.id, hook, exc)
                if deadline is None:
                    continue
                return InterceptResult(
                    proceed=False,
                    cancel_reason="timeout",
                    metadata={**metadata, "timed_out": True, "timed_out_plugin": plugin.id},
                )
            except Exception as exc:
                self._publish_error(plugin.id, hook, exc)
                continue

            if not isinstance(result, InterceptResult):
                self._publish_error(
                    plugin.id,
                    hook,
                    TypeError(f"expected InterceptResult, got {type(result).__name__}"),
                )
                continue

            if not result.proceed:
                logger.info(
                    "Message intercepted by %s: %s", plugin.name or plugin.id, result.cancel_reason
                )
                return InterceptResult(
                    proceed=False,
                    modified_message=result.modified_message,
                    cancel_reason=result.cancel_reason,
                    metadata={**metadata, **result.metadata, "intercepted_by": plugin.id},
                )

            metadata.update(result.metadata)
            if result.modified_message is not None:
                current = result.modified_message

        return InterceptResult(proceed=True, modified_message=current, metadata=metadata)

    # ------------------------------------------------------------------
    # UI extensions
    # ------------------------------------------------------------------

    def _snapshot(self, bucket: list[Plugin]) -> list[Plugin]:
        with self._lock:
            return list(bucket)

    def get_message_actions(self, message: Message) -> list[MessageAction]:
        """Collect the action buttons visible on *message*."""
        actions: list[MessageAction] = []
        for plugin in self._snapshot(self._ui_extensions):
            try:
                contributed = list(plugin.get_message_actions(message))
            except Exception as exc:
                self._publish_error(plugin.id, "get_message_actions", exc)
                continue
            actions.extend(a for a in contributed if a.visible_for(message))
        return actions

    def get_input_extensions(self) -> list[InputExtension]:
        """Collect input-bar extensions, sorted by ``order``."""
        extensions: list[InputExtension] = []
        for plugin in self._snapshot(self._ui_extensions):
            try:
                extensions.extend(plugin.get_input_extensions())
            except Exception as exc:
                self._publish_error(plugin.id, "get_input_extensions", exc)
        return sorted(extensions, key=lambda e: e.order)

    def get_all_plugin_settings(self) -> dict[str, PluginSettings]:
        settings: dict[str, PluginSettings] = {}
        for plugin in self._snapshot(self._ui_extensions):
            try:
                schema = plugin.get_settings_ui()
            except Exception as exc:
                self._publish_error(plugin.id, "get_settings_ui", exc)
                continue
            if schema is not None:
                settings[plugin.id] = schema
        return settings

    def render_custom_content(self, message: Message) -> Optional[str]:
        """Return the first custom rendering any plugin offers for *message*."""
        for plugin in self._snapshot(self._ui_extensions):
            try:
                rendered = plugin.render_custom_content(message)
            except Exception as exc:
                self._publish_error(plugin.id, "render_custom_content", exc)
                continue
            if rendered:
                return rendered
        return None

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def get_all_tools(self) -> list[tuple[str, PluginTool]]:
        """Return ``(plugin_id, tool)`` pairs for every tool provider."""
        tools: list[tuple[str, PluginTool]] = []
        for plugin in self._snapshot(self._tool_providers):
            try:
                tools.extend((plugin.id, tool) for tool in plugin.get_tools())
            except Exception as exc:
                self._publish_error(plugin.id, "get_tools", exc)
        return tools

    @staticmethod
    def _bind_arguments(tool: PluginTool, parameters: dict[str, Any]) -> dict[str, ToolValue]:
        known = {p.name for p in tool.parameters}
        unknown = sorted(set(parameters) - known)
        if unknown:
            raise ToolValueError(f"Unknown parameter(s) for {tool.name}: {', '.join(unknown)}")

        args: dict[str, ToolValue] = {}
        for param in tool.parameters:
            if param.name in parameters:
                value = parameters[param.name]
                if not param.accepts(value):
                    raise ToolValueError(
                        f"Parameter '{param.name}' must be a {param.type.value}"
                    )
                args[param.name] = check_tool_value(value, param.name)
            elif param.required:
                raise ToolValueError(f"Missing required parameter '{param.name}'")
            elif param.default is not None:
                args[param.name] = param.default
        return args

    async def execute_tool(
        self, plugin_id: str, tool_name: str, parameters: Optional[dict[str, Any]] = None
    ) -> ToolResult:
        """Run a tool on the plugin that owns it.  Never raises."""
        with self._lock:
            provider = next((p for p in self._tool_providers if p.id == plugin_id), None)
        if provider is None:
            return ToolResult.fail(f"Plugin {plugin_id} not found")

        try:
            tool = next((t for t in provider.get_tools() if t.name == tool_name), None)
        except Exception as exc:
            self._publish_error(plugin_id, "get_tools", exc)
            return ToolResult.fail(f"Plugin {plugin_id} failed to list tools: {exc}")
        if tool is None:
            return ToolResult.fail(f"Tool {tool_name} not found in plugin {plugin_id}")

        try:
            args = self._bind_arguments(tool, parameters or {})
        except (ToolValueError, RecursionError) as exc:
            return ToolResult.fail(str(exc))

        logger.info("Executing tool %s from plugin %s", tool_name, plugin_id)
        try:
            result = await provider.execute_tool(tool_name, args)
        except Exception as exc:
            self._publish_error(plugin_id, f"execute_tool:{tool_name}", exc)
            return ToolResult.fail(str(exc) or type(exc).__name__)

        if not isinstance(result, ToolResult):
            return ToolResult.fail(f"Tool {tool_name} returned {type(result).__name__}")
        if result.result is not None:
            try:
                result.result = check_tool_value(result.result, "result")
            except (ToolValueError, RecursionError) as exc:
                return ToolResult.fail(f"Tool {tool_name} returned an unsupported result: {exc}")
        return result
