"""Core chat data models."""

from aimate.models.chat import Attachment, Conversation, Message, Role

__all__ = ["Attachment", "Conversation", "Message", "Role"]
