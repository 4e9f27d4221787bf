"""
Chat API endpoints - Conversations and streamed message sending.

A send streams the assistant reply as raw ``text/plain`` fragments; the body
is the concatenation of the fragments and the connection closes when the
turn has been committed.
"""

import logging
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Path, status
from fastapi.responses import StreamingResponse

from ..config import settings
from ..core.turn_accumulator import TurnAccumulator
from ..llm.base import LLMProvider
from ..middleware.rate_limiter import chat_limiter, general_limiter, strict_limiter
from ..models import (
    CONVERSATION_ID_PATTERN,
    Conversation,
    ConversationSummary,
    CreateConversationRequest,
    SendMessageRequest,
    UpdateConversationRequest,
)
from ..storage import ConversationStore
from ..utils.auth import get_current_user_id
from .deps import get_conversation_store, get_llm_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"], dependencies=[Depends(general_limiter)])

ConversationId = Annotated[str, Path(pattern=CONVERSATION_ID_PATTERN, description="Conversation ID")]

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


@router.get("/conversations", response_model=List[ConversationSummary])
async def list_conversations(
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
):
    """List the caller's conversations, most recently active first."""
    return await store.list_summaries(user_id)


@router.get("/conversations/{conversation_id}", response_model=Conversation)
async def get_conversation(
    conversation_id: ConversationId,
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
):
    """Get a conversation with all of its messages."""
    return await store.get(user_id, conversation_id)


@router.post("/conversations", response_model=Conversation, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    request: Optional[CreateConversationRequest] = None,
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
):
    """Create an empty conversation."""
    return await store.create(user_id, request.title if request else None)


@router.put("/conversations/{conversation_id}", response_model=Conversation)
async def rename_conversation(
    request: UpdateConversationRequest,
    conversation_id: ConversationId,
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
):
    """Rename a conversation."""
    return await store.rename(user_id, conversation_id, request.title)


@router.delete("/conversations/{conversation_id}", dependencies=[Depends(strict_limiter)])
async def delete_conversation(
    conversation_id: ConversationId,
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
):
    """Delete a conversation and all of its messages."""
    await store.delete(user_id, conversation_id)
    return {"message": "Conversation deleted successfully"}


@router.post("/conversations/{conversation_id}/messages", dependencies=[Depends(chat_limiter)])
async def send_message(
    request: SendMessageRequest,
    conversation_id: ConversationId,
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
    llm_provider: Optional[LLMProvider] = Depends(get_llm_provider),
):
    """
    Send a message and stream the assistant reply.

    Validation, ownership and busy checks happen before the response starts,
    so they still produce JSON errors with the proper status code. Once
    streaming, a generation failure is reported in-band as a fallback
    sentence and the status stays 200.

    Returns:
        StreamingResponse: text/plain body of reply fragments
    """
    accumulator = TurnAccumulator(store, llm_provider, system_prompt=settings.system_prompt)
    session = await accumulator.handle_send(user_id, conversation_id, request.message)

    return StreamingResponse(
        session.fragments(),
        media_type="text/plain; charset=utf-8",
        headers=STREAM_HEADERS,
    )
