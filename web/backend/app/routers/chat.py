"""Chat API router.

Prefix: ``/api/chat``
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from aimate.models.chat import Message
from web.backend.app.models.api import (
    ChatSendRequest,
    ChatSendResponse,
    ConversationResponse,
    MessageResponse,
)
from web.backend.app.runtime import Runtime, get_runtime

router = APIRouter(prefix="/api/chat", tags=["chat"])


def message_to_response(m: Message) -> MessageResponse:
    return MessageResponse(
        id=m.id,
        role=m.role.value,
        content=m.content,
        timestamp=m.timestamp.isoformat(),
        model=m.model,
        metadata=m.metadata,
    )


@router.post("/send", response_model=ChatSendResponse)
async def send_message(req: ChatSendRequest, runtime: Runtime = Depends(get_runtime)):
    """Run one chat turn through the plugin pipeline and the model."""
    conversation = runtime.conversation(req.conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversation '{req.conversation_id}' not found")

    outcome = await runtime.chat.send_message(
        conversation, req.message, user_settings=req.user_settings, model=req.model
    )
    return ChatSendResponse(
        conversation_id=conversation.id,
        status=outcome.status.value,
        user_message=message_to_response(outcome.user_message),
        reply=message_to_response(outcome.reply) if outcome.reply else None,
        metadata=outcome.metadata,
        error=outcome.error,
    )


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(conversation_id: str, runtime: Runtime = Depends(get_runtime)):
    """Return a conversation's messages as stored (user text unmodified)."""
    conversation = runtime.conversations.get(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversation '{conversation_id}' not found")
    return ConversationResponse(
        id=conversation.id,
        title=conversation.title,
        messages=[message_to_response(m) for m in conversation.messages],
    )
