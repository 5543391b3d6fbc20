"""One chat turn through the plugin pipeline and the completion backend.

    user text -> run_before_send -> backend -> run_after_receive -> reply

The conversation keeps the user's original text; only the copy sent to
the backend carries any interceptor rewrites (safety guidance, search
results and so on).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Optional

from aimate.config import ChatSettings
from aimate.errors import CompletionError
from aimate.llm.client import CompletionBackend
from aimate.models.chat import Conversation, Message
from aimate.plugins.manager import PluginManager
from aimate.plugins.models import ConversationContext, InterceptResult

logger = logging.getLogger(__name__)

BACKEND_FAILURE_REPLY = (
    "Sorry, I couldn't reach the language model just now. Please try again in a moment."
)
WITHHELD_REPLY = "This reply was withheld by a plugin."


class TurnStatus(str, Enum):
    COMPLETED = "completed"
    BLOCKED = "blocked"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class TurnOutcome:
    """Result of one turn.  ``reply`` is None only when the turn timed out."""

    status: TurnStatus
    user_message: Message
    reply: Optional[Message] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass
class TurnEvent:
    """Streaming event: ``chunk`` events for a checked reply, then one ``final``."""

    kind: str
    content: str = ""
    outcome: Optional[TurnOutcome] = None
    replaced: bool = False


@dataclass
class _Turn:
    user_message: Message
    context: ConversationContext
    before: InterceptResult


class ChatService:
    def __init__(
        self,
        backend: CompletionBackend,
        plugin_manager: PluginManager,
        settings: Optional[ChatSettings] = None,
    ) -> None:
        self.backend = backend
        self.plugins = plugin_manager
        self.settings = settings or ChatSettings()

    @property
    def _timeout(self) -> Optional[float]:
        timeout = self.settings.turn_timeout_seconds
        return timeout if timeout and timeout > 0 else None

    # ------------------------------------------------------------------
    # Turn phases
    # ------------------------------------------------------------------

    async def _begin(
        self,
        conversation: Conversation,
        text: str,
        user_settings: Optional[dict[str, Any]],
    ) -> _Turn:
        user_message = Message.user(text)
        context = ConversationContext(
            conversation_id=conversation.id,
            message_history=list(conversation.messages),
            user_settings=dict(user_settings or {}),
        )
        conversation.append(user_message)
        before = await self.plugins.run_before_send(user_message, context, timeout=self._timeout)
        return _Turn(user_message, context, before)

    def _stopped_before_send(self, conversation: Conversation, turn: _Turn) -> TurnOutcome:
        before = turn.before
        if before.metadata.get("timed_out"):
            logger.warning("Before-send pipeline timed out in conversation %s", conversation.id)
            return TurnOutcome(
                TurnStatus.TIMED_OUT,
                turn.user_message,
                metadata=before.metadata,
                error="Message checks timed out",
            )
        reply = before.modified_message or Message.assistant(WITHHELD_REPLY)
        conversation.append(reply)
        return TurnOutcome(TurnStatus.BLOCKED, turn.user_message, reply, before.metadata)

    @staticmethod
    def _backend_messages(turn: _Turn) -> list[dict[str, str]]:
        outgoing = turn.before.modified_message or turn.user_message
        return [m.to_chat_dict() for m in turn.context.message_history] + [
            outgoing.to_chat_dict()
        ]

    def _failed(
        self, conversation: Conversation, turn: _Turn, exc: CompletionError
    ) -> TurnOutcome:
        logger.error("Completion failed in conversation %s: %s", conversation.id, exc)
        reply = Message.assistant(BACKEND_FAILURE_REPLY)
        conversation.append(reply)
        return TurnOutcome(
            TurnStatus.FAILED, turn.user_message, reply, turn.before.metadata, error=str(exc)
        )

    async def _finish(
        self, conversation: Conversation, turn: _Turn, reply: Message
    ) -> tuple[TurnOutcome, bool]:
        after = await self.plugins.run_after_receive(reply, turn.context, timeout=self._timeout)
        metadata = {**turn.before.metadata, **after.metadata}

        if not after.proceed and after.metadata.get("timed_out"):
            # An unchecked reply is never delivered
            logger.warning("After-receive pipeline timed out in conversation %s", conversation.id)
            return (
                TurnOutcome(
                    TurnStatus.TIMED_OUT,
                    turn.user_message,
                    metadata=metadata,
                    error="Reply checks timed out",
                ),
                True,
            )

        if not after.proceed:
            final = after.modified_message or Message.assistant(WITHHELD_REPLY)
            status = TurnStatus.BLOCKED
        else:
            final = after.modified_message or reply
            status = TurnStatus.COMPLETED

        conversation.append(final)
        return TurnOutcome(status, turn.user_message, final, metadata), final is not reply

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send_message(
        self,
        conversation: Conversation,
        text: str,
        user_settings: Optional[dict[str, Any]] = None,
        model: Optional[str] = None,
    ) -> TurnOutcome:
        """Run one complete turn and append its messages to *conversation*."""
        turn = await self._begin(conversation, text, user_settings)
        if not turn.before.proceed:
            return self._stopped_before_send(conversation, turn)

        try:
            completion = await self.backend.send_chat(self._backend_messages(turn), model=model)
        except CompletionError as exc:
            return self._failed(conversation, turn, exc)

        reply = Message.assistant(completion.content, model=completion.model or model)
        outcome, _ = await self._finish(conversation, turn, reply)
        return outcome

    async def stream_message(
        self,
        conversation: Conversation,
        text: str,
        user_settings: Optional[dict[str, Any]] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[TurnEvent]:
        """Like :meth:`send_message`, yielding the reply as ``chunk`` events.

        Backend chunks are held back until the after-receive pipeline has
        checked the whole reply.  They are only released when the reply
        went through unchanged; otherwise no chunks are yielded and the
        ``final`` event carries the substitute with ``replaced=True``.
        """
        turn = await self._begin(conversation, text, user_settings)
        if not turn.before.proceed:
            outcome = self._stopped_before_send(conversation, turn)
            content = outcome.reply.content if outcome.reply else ""
            yield TurnEvent("final", content, outcome, replaced=outcome.reply is not None)
            return

        chunks: list[str] = []
        try:
            async for chunk in self.backend.stream_chat(self._backend_messages(turn), model=model):
                chunks.append(chunk)
        except CompletionError as exc:
            outcome = self._failed(conversation, turn, exc)
            yield TurnEvent("final", outcome.reply.content, outcome, replaced=True)
            return

        reply = Message.assistant("".join(chunks), model=model)
        outcome, replaced = await self._finish(conversation, turn, reply)
        if not replaced and outcome.status is TurnStatus.COMPLETED:
            for chunk in chunks:
                yield TurnEvent("chunk", content=chunk)
        yield TurnEvent(
            "final",
            content=outcome.reply.content if outcome.reply else "",
            outcome=outcome,
            replaced=replaced,
        )
