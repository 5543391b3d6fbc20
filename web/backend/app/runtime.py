"""Process-wide objects shared by the routers.

Built once in the application lifespan and stored on ``app.state.runtime``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from fastapi import Request

from aimate.chat.service import ChatService
from aimate.config import AimateConfig
from aimate.llm.client import CompletionBackend
from aimate.models.chat import Conversation
from aimate.plugins.manager import PluginManager
from aimate.safety.audit_log import SafetyAuditLog


@dataclass
class Runtime:
    config: AimateConfig
    plugins: PluginManager
    chat: ChatService
    audit_log: SafetyAuditLog
    backend: CompletionBackend
    # In-memory only; conversations do not survive a restart
    conversations: dict[str, Conversation] = field(default_factory=dict)

    def conversation(self, conversation_id: Optional[str]) -> Optional[Conversation]:
        """Return the conversation, a new one when *conversation_id* is None,
        or None when the id is unknown."""
        if conversation_id is None:
            conversation = Conversation()
            self.conversations[conversation.id] = conversation
            return conversation
        return self.conversations.get(conversation_id)


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime
