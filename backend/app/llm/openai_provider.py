"""
OpenAI-compatible LLM Providers.
Streams from any `/chat/completions` endpoint that speaks the OpenAI SSE format,
including OpenRouter.
"""

import httpx
import json
import logging
import time
from typing import Optional, List, Dict, Any, AsyncGenerator

from .base import LLMProvider, LLMMessage

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """
    Provider for OpenAI and OpenAI-compatible Chat Completions APIs.
    """

    provider_name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str = "https://api.openai.com/v1",
        default_temperature: float = 0.7,
        default_max_tokens: int = 2048,
        timeout: float = 120.0,
    ):
        super().__init__(api_key, model, base_url, default_temperature, default_max_tokens)
        self.timeout = timeout

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _parse_sse_line(line: str) -> Optional[Dict[str, Any]]:
        """
        Parse one SSE line into a chunk dict.

        Returns None for blank lines, comments, malformed payloads and the
        terminating ``[DONE]`` marker (check ``is_done_line`` for that).
        """
        if not line.startswith("data:"):
            return None
        data_str = line[5:].strip()
        if not data_str or data_str == "[DONE]":
            return None
        try:
            chunk = json.loads(data_str)
        except json.JSONDecodeError:
            return None
        return chunk if isinstance(chunk, dict) else None

    @staticmethod
    def is_done_line(line: str) -> bool:
        return line.startswith("data:") and line[5:].strip() == "[DONE]"

    async def chat_completion_stream(
        self,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> AsyncGenerator[str, None]:
        """Stream chat completion fragments from the Chat Completions endpoint."""
        start_time = time.time()
        url = f"{self.base_url}/chat/completions"
        payload: Dict[str, Any] = {
            "model": kwargs.get("model", self.model),
            "messages": self._format_messages(messages),
            "temperature": temperature if temperature is not None else self.default_temperature,
            "max_tokens": max_tokens or self.default_max_tokens,
            "stream": True,
        }

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"LLM API stream starting: provider={self.provider_name}, model={payload['model']}, "
                f"temperature={payload['temperature']}, {len(messages)} messages"
            )

        content_length = 0
        usage_data: Dict[str, Any] = {}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream('POST', url, json=payload, headers=self._get_headers()) as response:
                    response.raise_for_status()

                    async for line in response.aiter_lines():
                        if self.is_done_line(line):
                            break

                        chunk = self._parse_sse_line(line)
                        if chunk is None:
                            continue

                        # Upstream errors can arrive inside an otherwise 200 stream
                        if chunk.get("error"):
                            raise RuntimeError(f"LLM stream error: {chunk['error']}")

                        choices = chunk.get("choices") or []
                        if choices:
                            content = (choices[0].get("delta") or {}).get("content")
                            if content:
                                content_length += len(content)
                                yield content

                        if chunk.get("usage"):
                            usage_data = chunk["usage"]

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "LLM API stream completed",
                extra={"extra_fields": {
                    "provider": self.provider_name,
                    "model": payload["model"],
                    "prompt_tokens": usage_data.get("prompt_tokens", 0),
                    "completion_tokens": usage_data.get("completion_tokens", 0),
                    "total_tokens": usage_data.get("total_tokens", 0),
                    "duration_ms": round(duration_ms, 2),
                    "content_length": content_length,
                }}
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"LLM API stream failed: {str(e)}",
                extra={"extra_fields": {
                    "provider": self.provider_name,
                    "model": payload.get("model"),
                    "duration_ms": round(duration_ms, 2),
                    "error": str(e),
                }}
            )
            raise


class OpenRouterProvider(OpenAIProvider):
    """
    Provider for OpenRouter, which exposes many models behind an
    OpenAI-compatible API.
    """

    provider_name = "openrouter"

    def __init__(
        self,
        api_key: str,
        model: str = "openai/gpt-oss-120b",
        base_url: str = "https://openrouter.ai/api/v1",
        app_title: Optional[str] = None,
        **kwargs
    ):
        super().__init__(api_key, model=model, base_url=base_url, **kwargs)
        self.app_title = app_title

    def _get_headers(self) -> Dict[str, str]:
        headers = super()._get_headers()
        if self.app_title:
            headers["X-Title"] = self.app_title
        return headers
