"""Tests for plugin registration, the interception pipeline and UI aggregation."""

import asyncio

from aimate.errors import CapabilityError
from aimate.models.chat import Message
from aimate.plugins.base import Capability, MessageInterceptor, Plugin, UIExtension
from aimate.plugins.manager import PluginManager
from aimate.plugins.models import (
    ConversationContext,
    InputExtension,
    InterceptResult,
    MessageAction,
    PluginSettings,
)


class Recorder(Plugin, MessageInterceptor):
    """Appends *suffix* to every message and logs its id."""

    capabilities = Capability.MESSAGE_INTERCEPTOR

    def __init__(self, plugin_id, log, priority=None, suffix=""):
        self.id = plugin_id
        self.name = plugin_id
        self.priority = priority
        self.log = log
        self.suffix = suffix
        self.disposed = False

    async def on_before_send(self, message, context):
        self.log.append(self.id)
        return InterceptResult.rewrite(
            message.with_content(message.content + self.suffix), {self.id: True}
        )

    async def on_after_receive(self, message, context):
        self.log.append(self.id)
        return InterceptResult.passthrough()

    async def dispose(self):
        self.disposed = True


class Blocker(Recorder):
    async def on_before_send(self, message, context):
        self.log.append(self.id)
        return InterceptResult.block("nope", Message.assistant("blocked"), {"why": "test"})

    async def on_after_receive(self, message, context):
        self.log.append(self.id)
        return InterceptResult.block("withheld", Message.assistant("replacement"))


class Raiser(Recorder):
    async def on_before_send(self, message, context):
        self.log.append(self.id)
        raise RuntimeError("plugin bug")


class Sleeper(Recorder):
    async def on_before_send(self, message, context):
        await asyncio.sleep(5)
        return InterceptResult.passthrough()


class WrongType(Recorder):
    async def on_before_send(self, message, context):
        self.log.append(self.id)
        return {"proceed": False}


class FailingInit(Recorder):
    async def initialize(self):
        raise ValueError("cannot start")


class NoTools(Plugin):
    id = "no-tools"
    capabilities = Capability.TOOL_PROVIDER


class Buttons(Plugin, UIExtension):
    capabilities = Capability.UI_EXTENSION

    def __init__(self, plugin_id, order):
        self.id = plugin_id
        self.order = order

    def get_message_actions(self, message):
        return [
            MessageAction(id=f"{self.id}-user", label="U", show_on_user_messages=True,
                          show_on_assistant_messages=False),
            MessageAction(id=f"{self.id}-assistant", label="A"),
        ]

    def get_input_extensions(self):
        return [InputExtension(id=self.id, order=self.order)]

    def get_settings_ui(self):
        return PluginSettings(title=self.id)


def _manager(*plugins):
    manager = PluginManager()
    errors = []
    manager.on_plugin_error(errors.append)

    async def setup():
        for plugin in plugins:
            await manager.register(plugin)

    asyncio.run(setup())
    return manager, errors


def _send(manager, text="hello", timeout=None):
    return asyncio.run(
        manager.run_before_send(Message.user(text), ConversationContext("c1"), timeout=timeout)
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def test_duplicate_id_is_rejected_and_first_kept():
    log = []
    first = Recorder("dup", log)
    second = Recorder("dup", log)
    manager = PluginManager()

    assert asyncio.run(manager.register(first)) is True
    assert asyncio.run(manager.register(second)) is False
    assert manager.get_plugin("dup") is first
    assert len(manager.list_plugins()) == 1


def test_declared_capability_must_be_implemented():
    manager, errors = _manager(NoTools())
    assert manager.get_plugin("no-tools") is None
    assert isinstance(errors[0].exception, CapabilityError)
    assert errors[0].plugin_id == "no-tools"


def test_failed_initialize_is_contained():
    manager, errors = _manager(FailingInit("broken", []), Recorder("ok", []))
    assert [p.id for p in manager.list_plugins()] == ["ok"]
    assert errors[0].operation == "initialize"


def test_load_plugins_skips_failing_factories():
    def bad_factory():
        raise RuntimeError("no config")

    manager = PluginManager()
    errors = []
    manager.on_plugin_error(errors.append)
    loaded = asyncio.run(manager.load_plugins([lambda: Recorder("a", []), bad_factory]))

    assert loaded == 1
    assert errors[0].plugin_id == "bad_factory"


def test_unregister_disposes_and_removes_from_pipeline():
    log = []
    plugin = Recorder("gone", log)
    manager, _ = _manager(plugin)
    unloaded = []
    manager.on_plugin_unloaded(lambda event: unloaded.append(event.plugin.id))

    assert asyncio.run(manager.unregister("gone")) is True
    assert plugin.disposed
    assert unloaded == ["gone"]
    assert asyncio.run(manager.unregister("gone")) is False
    _send(manager)
    assert log == []


def test_listener_failure_does_not_break_registration():
    manager = PluginManager()

    @manager.on_plugin_loaded
    def explode(event):
        raise RuntimeError("listener bug")

    assert asyncio.run(manager.register(Recorder("a", []))) is True


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def test_empty_pipeline_returns_original_message():
    manager = PluginManager()
    message = Message.user("hi")
    result = asyncio.run(manager.run_before_send(message, ConversationContext()))
    assert result.proceed is True
    assert result.modified_message is message


def test_priority_orders_pipeline_then_registration_order():
    log = []
    manager, _ = _manager(
        Recorder("late", log),
        Recorder("safety", log, priority=0),
        Recorder("later", log),
        Recorder("mid", log, priority=5),
    )
    _send(manager)
    assert log == ["safety", "mid", "late", "later"]
    assert [p.id for p in manager.ordered_interceptors()] == log


def test_rewrites_chain_and_metadata_merges():
    log = []
    manager, _ = _manager(Recorder("a", log, suffix=" A"), Recorder("b", log, suffix=" B"))
    result = _send(manager)
    assert result.proceed is True
    assert result.modified_message.content == "hello A B"
    assert result.metadata == {"a": True, "b": True}


def test_block_short_circuits_pipeline():
    log = []
    manager, _ = _manager(
        Recorder("first", log, priority=0),
        Blocker("blocker", log, priority=1),
        Recorder("never", log),
    )
    result = _send(manager)

    assert log == ["first", "blocker"]
    assert result.proceed is False
    assert result.cancel_reason == "nope"
    assert result.modified_message.content == "blocked"
    assert result.metadata == {"first": True, "why": "test", "intercepted_by": "blocker"}


def test_raising_interceptor_is_skipped():
    log = []
    manager, errors = _manager(Raiser("buggy", log, priority=0), Recorder("next", log, suffix="!"))
    result = _send(manager)

    assert log == ["buggy", "next"]
    assert result.proceed is True
    assert result.modified_message.content == "hello!"
    assert errors[0].plugin_id == "buggy"
    assert errors[0].operation == "on_before_send"
    assert str(errors[0].exception) == "plugin bug"


def test_wrong_return_type_is_skipped():
    log = []
    manager, errors = _manager(WrongType("odd", log), Recorder("next", log))
    result = _send(manager)
    assert result.proceed is True
    assert isinstance(errors[0].exception, TypeError)


def test_turn_timeout_cancels_pipeline():
    log = []
    manager, errors = _manager(Recorder("fast", log, priority=0), Sleeper("slow", log))
    result = _send(manager, timeout=0.05)

    assert result.proceed is False
    assert result.cancel_reason == "timeout"
    assert result.metadata["timed_out"] is True
    assert result.metadata["timed_out_plugin"] == "slow"
    assert result.metadata["fast"] is True
    assert errors[0].plugin_id == "slow"


def test_after_receive_honours_block():
    log = []
    manager, _ = _manager(Blocker("filter", log), Recorder("after", log))
    result = asyncio.run(
        manager.run_after_receive(Message.assistant("reply"), ConversationContext())
    )
    assert result.proceed is False
    assert result.modified_message.content == "replacement"
    assert log == ["filter"]


# ---------------------------------------------------------------------------
# UI aggregation
# ---------------------------------------------------------------------------


def test_message_actions_respect_visibility():
    manager, _ = _manager(Buttons("x", order=5))
    user_ids = [a.id for a in manager.get_message_actions(Message.user("hi"))]
    assistant_ids = [a.id for a in manager.get_message_actions(Message.assistant("hi"))]
    assert user_ids == ["x-user"]
    assert assistant_ids == ["x-assistant"]


def test_input_extensions_sorted_and_settings_keyed_by_plugin():
    manager, _ = _manager(Buttons("right", order=50), Buttons("left", order=10))
    assert [e.id for e in manager.get_input_extensions()] == ["left", "right"]
    settings = manager.get_all_plugin_settings()
    assert set(settings) == {"left", "right"}
    assert settings["left"].title == "left"
