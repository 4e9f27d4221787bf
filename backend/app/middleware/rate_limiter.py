"""
Fixed-window rate limiting exposed as FastAPI dependencies.

Counters live in process memory and are keyed by client address, so limits
apply per caller per worker process.
"""

import logging
import math
import time
from typing import Callable, Dict, List, Tuple
from fastapi import Request

from ..config import settings
from ..core.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Allow at most ``max_requests`` per ``window_seconds`` for each caller.

    Usage:
        chat_limiter = RateLimiter("chat", 10, 60, "Too many messages sent")
        @router.post("/...", dependencies=[Depends(chat_limiter)])
    """

    def __init__(
        self,
        name: str,
        max_requests: int,
        window_seconds: int,
        message: str,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self._clock = clock
        # caller key -> (window start, request count)
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._last_prune = clock()

    @staticmethod
    def _caller_key(request: Request) -> str:
        return request.client.host if request.client else "unknown"

    def hit(self, key: str) -> None:
        """
        Count one request for ``key``.

        Raises:
            RateLimitExceeded: If the caller is over the limit for the current window
        """
        now = self._clock()
        self._prune(now)
        window_start, count = self._windows.get(key, (now, 0))
        if now - window_start >= self.window_seconds:
            window_start, count = now, 0

        if count >= self.max_requests:
            retry_after = max(1, math.ceil(self.window_seconds - (now - window_start)))
            logger.warning(
                f"Rate limit exceeded: {self.name}",
                extra={"extra_fields": {"limiter": self.name, "caller": key, "retry_after": retry_after}}
            )
            raise RateLimitExceeded(self.message, retry_after=retry_after)

        self._windows[key] = (window_start, count + 1)

    def _prune(self, now: float) -> None:
        """Drop expired windows, at most once per window length."""
        if now - self._last_prune < self.window_seconds:
            return
        self._last_prune = now
        expired = [key for key, (start, _) in self._windows.items() if now - start >= self.window_seconds]
        for key in expired:
            del self._windows[key]

    @property
    def tracked_callers(self) -> int:
        return len(self._windows)

    def reset(self) -> None:
        self._windows.clear()

    async def __call__(self, request: Request) -> None:
        if not settings.rate_limit_enabled:
            return
        self.hit(self._caller_key(request))


general_limiter = RateLimiter(
    "general",
    settings.general_rate_limit,
    settings.general_rate_window,
    "Too many requests from this IP, please try again later.",
)

chat_limiter = RateLimiter(
    "chat",
    settings.chat_rate_limit,
    settings.chat_rate_window,
    "Too many messages sent, please slow down.",
)

strict_limiter = RateLimiter(
    "strict",
    settings.strict_rate_limit,
    settings.strict_rate_window,
    "Rate limit exceeded for this operation. Please try again later.",
)

auth_limiter = RateLimiter(
    "auth",
    settings.auth_rate_limit,
    settings.auth_rate_window,
    "Too many authentication attempts, please try again later.",
)

create_account_limiter = RateLimiter(
    "create_account",
    settings.create_account_rate_limit,
    settings.create_account_rate_window,
    "Too many accounts created from this IP, please try again later.",
)

ALL_LIMITERS: List[RateLimiter] = [
    general_limiter, chat_limiter, strict_limiter, auth_limiter, create_account_limiter,
]


def reset_rate_limiters() -> None:
    """Clear every limiter's counters."""
    for limiter in ALL_LIMITERS:
        limiter.reset()
