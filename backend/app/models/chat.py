"""
Chat Models - Conversations, messages and request bodies for the chat API.
Serialized with camelCase aliases (`_id`, `lastMessageAt`, ...) on the wire and on disk.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

CONVERSATION_ID_PATTERN = r"^[0-9a-f]{32}$"
DEFAULT_CONVERSATION_TITLE = "New Conversation"

_conversation_id_re = re.compile(CONVERSATION_ID_PATTERN)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_conversation_id(value: str) -> bool:
    """Check that a conversation id is syntactically valid."""
    return bool(_conversation_id_re.match(value or ""))


class MessageRole(str, Enum):
    """Author of a turn."""

    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """One turn in a conversation."""
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def user_content_not_blank(self) -> "Message":
        # Assistant turns may be empty when generation produced nothing
        if self.role == MessageRole.USER and not self.content.strip():
            raise ValueError("User message content must not be empty")
        return self


class ConversationSummary(BaseModel):
    """Conversation listing entry."""
    id: str = Field(..., alias="_id")
    title: str
    last_message_at: datetime
    created_at: datetime

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class Conversation(ConversationSummary):
    """Full conversation document with its ordered messages."""
    user_id: str
    messages: List[Message] = Field(default_factory=list)
    updated_at: datetime

    def summary(self) -> ConversationSummary:
        return ConversationSummary(
            id=self.id,
            title=self.title,
            last_message_at=self.last_message_at,
            created_at=self.created_at,
        )


class CreateConversationRequest(BaseModel):
    """Body for creating a conversation."""
    title: Optional[str] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else None


class UpdateConversationRequest(BaseModel):
    """Body for renaming a conversation."""
    title: str

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title must not be empty")
        return value


class SendMessageRequest(BaseModel):
    """Body for sending a message."""
    message: str

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message must not be empty")
        return value
