"""Middleware module."""

from .logging_middleware import RequestLoggingMiddleware
from .error_handler import register_exception_handlers
from .rate_limiter import (
    RateLimiter,
    general_limiter,
    chat_limiter,
    strict_limiter,
    auth_limiter,
    create_account_limiter,
    reset_rate_limiters,
)

__all__ = [
    'RequestLoggingMiddleware',
    'register_exception_handlers',
    'RateLimiter',
    'general_limiter',
    'chat_limiter',
    'strict_limiter',
    'auth_limiter',
    'create_account_limiter',
    'reset_rate_limiters',
]
