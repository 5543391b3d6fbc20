"""Conversation and message data models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Who authored a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class Attachment:
    """File, knowledge item, URL or image attached to a message."""

    name: str
    type: str = "file"  # "file" | "knowledge" | "url" | "image"
    url: Optional[str] = None
    size: Optional[int] = None
    mime_type: Optional[str] = None
    content: Optional[str] = None  # text-based attachments only
    id: str = field(default_factory=_new_id)


@dataclass
class Message:
    """A single chat message.

    Messages are treated as immutable once sent.  Plugins that rewrite a
    message build a new one with :meth:`with_content` instead of editing
    ``content`` in place.
    """

    role: Role
    content: str
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_utcnow)
    model: Optional[str] = None
    attachments: list[Attachment] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.role = Role(self.role)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, model: Optional[str] = None) -> Message:
        return cls(role=Role.ASSISTANT, content=content, model=model)

    def with_content(self, content: str) -> Message:
        """Return a copy carrying *content*, keeping id, role and timestamp."""
        return replace(
            self,
            content=content,
            attachments=list(self.attachments),
            metadata=dict(self.metadata),
        )

    def to_chat_dict(self) -> dict[str, str]:
        """Return the ``{"role", "content"}`` pair sent to the completion API."""
        return {"role": self.role.value, "content": self.content}


@dataclass
class Conversation:
    """An ordered, append-only thread of messages."""

    title: str = "New Chat"
    id: str = field(default_factory=_new_id)
    messages: list[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)

    def append(self, message: Message) -> None:
        self.messages.append(message)
        self.updated_at = _utcnow()
