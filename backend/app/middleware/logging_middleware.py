"""
FastAPI middleware for logging API requests and responses.

Uses pure ASGI middleware (not BaseHTTPMiddleware) so streamed message
responses are passed through chunk by chunk, never buffered.

Streamed ``text/plain`` bodies are only counted (chunks and bytes); JSON bodies
are captured, filtered for sensitive keys and truncated.
"""

import json
import logging
import time
from typing import Optional
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.logging_config import filter_sensitive_data, truncate_large_data

logger = logging.getLogger(__name__)

MAX_LOGGED_BODY = 5000


def _sanitize_text_or_json(data: bytes) -> str:
    """Filter sensitive data if payload is JSON, fallback to plain text."""
    text = data.decode("utf-8", errors="ignore")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return truncate_large_data(text, max_length=MAX_LOGGED_BODY)
    filtered_payload = filter_sensitive_data(payload)
    return truncate_large_data(json.dumps(filtered_payload, ensure_ascii=False), max_length=MAX_LOGGED_BODY)


def _extract_error_reason(response_text: Optional[str]) -> Optional[str]:
    """Pull the ``message`` out of an error body."""
    if not response_text:
        return None
    try:
        payload = json.loads(response_text)
    except json.JSONDecodeError:
        return truncate_large_data(response_text, max_length=500)
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            if payload.get(key):
                return str(payload[key])
    return truncate_large_data(response_text, max_length=500)


class RequestLoggingMiddleware:
    """Pure ASGI middleware to log all API requests and responses."""

    def __init__(self, app: ASGIApp, exclude_paths: Optional[list] = None):
        """
        Initialize the logging middleware.

        Args:
            app: The ASGI application
            exclude_paths: List of paths to exclude from logging (e.g., ["/health"])
        """
        self.app = app
        self.exclude_paths = exclude_paths or ["/health", "/"]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI entry point."""
        if scope["type"] != "http" or scope.get("path", "") in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        request_id = id(scope)
        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "")
        client = scope.get("client")
        client_host = client[0] if client else None

        body_chunks = []

        async def logging_receive() -> Message:
            message = await receive()
            if message["type"] == "http.request":
                body_chunks.append(message.get("body", b""))
            return message

        status_code = 0
        streamed = False
        response_chunks = []
        streamed_chunks = 0
        streamed_bytes = 0

        async def logging_send(message: Message) -> None:
            nonlocal status_code, streamed, streamed_chunks, streamed_bytes
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
                headers = {
                    k.decode("latin-1").lower(): v.decode("latin-1")
                    for k, v in message.get("headers", [])
                }
                streamed = headers.get("content-type", "").startswith("text/plain")
            elif message["type"] == "http.response.body":
                body = message.get("body", b"")
                if streamed:
                    if body:
                        streamed_chunks += 1
                        streamed_bytes += len(body)
                else:
                    response_chunks.append(body)
            await send(message)

        logger.info(
            f"Request started: {method} {path}",
            extra={"extra_fields": {
                "request_id": request_id,
                "method": method,
                "path": path,
                "client": client_host,
            }}
        )

        try:
            await self.app(scope, logging_receive, logging_send)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {method} {path} - {str(e)}",
                exc_info=True,
                extra={"extra_fields": {
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                    "error": str(e),
                }}
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        request_body = b"".join(body_chunks)
        request_body_text = _sanitize_text_or_json(request_body) if request_body else None
        response_body_text = None
        if response_chunks:
            response_body = b"".join(response_chunks)
            response_body_text = _sanitize_text_or_json(response_body) if response_body else None

        error_reason = _extract_error_reason(response_body_text) if status_code >= 400 else None

        if status_code < 400:
            log_level = logging.INFO
        elif status_code < 500:
            log_level = logging.WARNING
        else:
            log_level = logging.ERROR

        completion_message = f"Request completed: {method} {path} - {status_code} ({duration_ms:.2f}ms)"
        if streamed:
            completion_message += f" | streamed {streamed_chunks} chunks, {streamed_bytes} bytes"
        if error_reason:
            completion_message += f" | error_reason={error_reason}"

        logger.log(
            log_level,
            completion_message,
            extra={"extra_fields": {
                "request_id": request_id,
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "request_body": request_body_text,
                "response_body": response_body_text,
                "streamed_chunks": streamed_chunks if streamed else None,
                "streamed_bytes": streamed_bytes if streamed else None,
                "error_reason": error_reason,
            }}
        )
