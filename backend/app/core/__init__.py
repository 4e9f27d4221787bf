"""Core module - chat pipeline logic, exceptions and logging setup."""

from .exceptions import (
    ChatError,
    ConversationNotFoundError,
    ConversationBusyError,
    PersistenceError,
    LLMNotConfiguredError,
    RateLimitExceeded,
)

__all__ = [
    'ChatError',
    'ConversationNotFoundError',
    'ConversationBusyError',
    'PersistenceError',
    'LLMNotConfiguredError',
    'RateLimitExceeded',
]
