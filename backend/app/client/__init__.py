"""Client module - async API client and streaming conversation reader."""

from .chat_client import (
    ChatClient,
    ConversationReader,
    ChatAPIError,
    SessionExpiredError,
    StreamInProgressError,
)

__all__ = ['ChatClient', 'ConversationReader', 'ChatAPIError', 'SessionExpiredError', 'StreamInProgressError']
