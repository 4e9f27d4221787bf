"""
Domain exceptions for the chat pipeline.
Mapped to HTTP responses in middleware/error_handler.py.
"""

from typing import Optional


class ChatError(Exception):
    """Base exception for chat pipeline errors."""

    status_code: int = 500
    default_message: str = "Server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ConversationNotFoundError(ChatError):
    """Raised when a conversation is absent or owned by another user."""

    status_code = 404
    default_message = "Conversation not found"


class ConversationBusyError(ChatError):
    """Raised when a send is already in flight for the conversation."""

    status_code = 409
    default_message = "A response is already being generated for this conversation"


class PersistenceError(ChatError):
    """Raised when a conversation document could not be written."""

    status_code = 500
    default_message = "Failed to save conversation"


class LLMNotConfiguredError(ChatError):
    """Raised when no LLM provider is configured."""

    status_code = 503
    default_message = "LLM provider is not configured"


class RateLimitExceeded(ChatError):
    """Raised when a caller exceeds a rate limit window."""

    status_code = 429
    default_message = "Too many requests, please try again later."

    def __init__(self, message: Optional[str] = None, retry_after: int = 60):
        super().__init__(message)
        self.retry_after = retry_after
