"""Models module."""

from .user import User, UserCreate, UserLogin, Token, TokenData
from .chat import (
    Message, MessageRole, Conversation, ConversationSummary,
    CreateConversationRequest, UpdateConversationRequest, SendMessageRequest,
    CONVERSATION_ID_PATTERN, DEFAULT_CONVERSATION_TITLE,
)

__all__ = [
    'User', 'UserCreate', 'UserLogin', 'Token', 'TokenData',
    'Message', 'MessageRole', 'Conversation', 'ConversationSummary',
    'CreateConversationRequest', 'UpdateConversationRequest', 'SendMessageRequest',
    'CONVERSATION_ID_PATTERN', 'DEFAULT_CONVERSATION_TITLE',
]
